"""
Email-gated demo access: a visitor leaves an email, gets a 24h link, and the
demo page verifies the token before showing the product tour.
"""
import html
import logging
import secrets
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional, Tuple

from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.demo_access import DemoAccessToken
from app.models.lead import Lead
from app.models.message import OutboundMessage
from app.services.email_service import PROVIDER
from app.services.lead_status import LeadStatus

logger = logging.getLogger(__name__)

# (to_email, subject, html, text) -> (success, error)
EmailSender = Callable[[str, str, str, Optional[str]], Tuple[bool, Optional[str]]]

DEMO_LINK_TEXT = """{greeting}

Thank you for your interest in {site_name}. Open the link below to access your demo:
{demo_link}

This link will expire in {expires_in}. If you didn't request this demo, you can safely ignore this email.

The {site_name} Team
"""


def build_demo_link(token: str) -> str:
    return f"{settings.SITE_URL}/demo?token={token}"


def render_demo_link_email(clinic_name: Optional[str], demo_link: str, expires_in: str) -> Tuple[str, str, str]:
    greeting = f"Welcome, {clinic_name}!" if clinic_name else "Welcome!"
    subject = f"Your {settings.SITE_NAME} Demo Access Link"
    text = DEMO_LINK_TEXT.format(
        greeting=greeting, site_name=settings.SITE_NAME, demo_link=demo_link, expires_in=expires_in,
    )
    body = (
        f"<h2>{html.escape(greeting)}</h2>"
        f"<p>Thank you for your interest in {html.escape(settings.SITE_NAME)}.</p>"
        f"<p><a href=\"{html.escape(demo_link, quote=True)}\">Access Your Demo</a></p>"
        f"<p>This link will expire in <strong>{html.escape(expires_in)}</strong>.</p>"
    )
    return subject, body, text


class DemoAccessService:
    def __init__(self, db: Session, email_sender: Optional[EmailSender] = None):
        self.db = db
        self._email_sender = email_sender

    @property
    def email_sender(self) -> EmailSender:
        if self._email_sender is None:
            from app.services.email_service import EmailService
            self._email_sender = EmailService().send_email
        return self._email_sender

    def _find_or_create_lead(self, email: str, clinic_name: Optional[str], now: datetime) -> Lead:
        lead = self.db.query(Lead).filter(Lead.clinic_id.is_(None), Lead.email == email).first()
        if lead:
            return lead

        lead = Lead(
            name=clinic_name or email.split("@")[0],
            email=email,
            clinic_name=clinic_name,
            notes="Requested demo access via email-gated form",
            status=LeadStatus.NEW.value,
            source="demo_access",
            sequence_day=0,
            marketing_opt_in=True,
            emails_sent=0,
            next_send_at=now,
            created_at=now,
            updated_at=now,
        )
        self.db.add(lead)
        self.db.flush()
        logger.info(f"🆕 Created demo_access lead {lead.id} for {email}")
        return lead

    def send_demo_link(self, email: str, clinic_name: Optional[str] = None, now: Optional[datetime] = None):
        """Issues a token, records the lead and emails the link. Returns (token_row, email_sent)."""
        now = now or datetime.utcnow()
        email = email.strip().lower()
        clinic_name = (clinic_name or "").strip() or None
        ttl_hours = settings.DEMO_TOKEN_TTL_HOURS

        lead = self._find_or_create_lead(email, clinic_name, now)
        access = DemoAccessToken(
            email=email,
            clinic_name=clinic_name,
            token=secrets.token_hex(32),
            expires_at=now + timedelta(hours=ttl_hours),
            used=False,
            lead_id=lead.id,
            created_at=now,
        )
        self.db.add(access)
        self.db.commit()
        self.db.refresh(access)

        subject, body, text = render_demo_link_email(clinic_name, build_demo_link(access.token), f"{ttl_hours} hours")
        try:
            success, error = self.email_sender(email, subject, body, text)
        except Exception as e:
            success, error = False, str(e)

        self.db.add(OutboundMessage(
            lead_id=lead.id,
            channel="email",
            source="demo_access",
            to_address=email,
            subject=subject,
            body=text,
            status="sent" if success else "failed",
            provider=PROVIDER,
            error_message=None if success else error,
            sent_at=now,
            created_at=now,
        ))
        self.db.commit()

        if success:
            logger.info(f"🔑 Demo access link sent to {email}")
        else:
            logger.error(f"❌ Demo access link to {email} failed: {error}")
        return access, success

    def verify_token(self, token: Optional[str], now: Optional[datetime] = None) -> Dict:
        if not token:
            return {"valid": False, "message": "No token provided"}

        access = self.db.query(DemoAccessToken).filter(DemoAccessToken.token == token).first()
        if not access:
            return {"valid": False, "message": "Invalid access link"}

        now = now or datetime.utcnow()
        if access.expires_at < now:
            return {"valid": False, "message": "This demo link has expired"}

        # Stays valid for the whole window; only the first visit is stamped
        if not access.used:
            access.used = True
            access.used_at = now
            self.db.commit()

        return {"valid": True, "email": access.email, "clinic_name": access.clinic_name}
