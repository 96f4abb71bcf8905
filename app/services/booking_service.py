import html
import logging
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.booking import DemoBooking, PatientBooking
from app.models.clinic import Clinic
from app.models.lead import Lead
from app.models.message import OutboundMessage
from app.schemas.booking import (
    DEMO_BOOKING_STATUSES,
    PATIENT_BOOKING_STATUSES,
    DemoBookingCreate,
    PatientBookingCreate,
)
from app.services.lead_status import Actor, LeadStatus, apply_transition, is_forward

logger = logging.getLogger(__name__)

# (to_email, subject, html, text) -> (success, error)
EmailSender = Callable[[str, str, str, Optional[str]], Tuple[bool, Optional[str]]]

DEMO_EMAIL_SUBJECT = "Your {site_name} demo is ready"

DEMO_EMAIL_TEXT = """Hi {name},

Thanks for requesting a demo of {site_name} for {clinic_name}.

You can explore the platform right now:
{demo_link}

Questions? Just reply to this email or write to {support_email}.

The {site_name} Team
"""


class UnknownClinic(ValueError):
    pass


def render_demo_email(booking: DemoBooking) -> Tuple[str, str, str]:
    values = {
        "name": booking.owner_name,
        "clinic_name": booking.clinic_name,
        "site_name": settings.SITE_NAME,
        "demo_link": settings.DEMO_LINK,
        "support_email": settings.SUPPORT_EMAIL,
    }
    subject = DEMO_EMAIL_SUBJECT.format(**values)
    text = DEMO_EMAIL_TEXT.format(**values)

    escaped = {k: html.escape(str(v)) for k, v in values.items()}
    body = (
        f"<p>Hi {escaped['name']},</p>"
        f"<p>Thanks for requesting a demo of {escaped['site_name']} for {escaped['clinic_name']}.</p>"
        f"<p><a href=\"{escaped['demo_link']}\">Open your demo</a></p>"
        f"<p>Questions? Write to {escaped['support_email']}.</p>"
    )
    return subject, body, text


def _validate_status(status: str, allowed) -> str:
    value = (status or "").strip().lower()
    if value not in allowed:
        raise ValueError(f"Invalid status '{status}'. Must be one of: {', '.join(allowed)}")
    return value


class BookingService:
    def __init__(self, db: Session):
        self.db = db

    # ---------------------------------------------------------
    # 1. SALES DEMO BOOKINGS
    # ---------------------------------------------------------
    def _find_or_create_demo_lead(self, data: DemoBookingCreate, now: datetime) -> Lead:
        email = str(data.email).strip().lower()
        lead = self.db.query(Lead).filter(
            Lead.clinic_id.is_(None),
            Lead.email == email,
        ).first()

        if lead:
            current = lead.status
            try:
                if is_forward(current, LeadStatus.DEMO_BOOKED):
                    apply_transition(lead, LeadStatus.DEMO_BOOKED, Actor.MANUAL, now)
            except ValueError:
                logger.warning(f"⚠️ Lead {lead.id} has unknown status '{current}', leaving it unchanged")
            return lead

        # demo_booked is not sequence-active, so the GENIUS drip skips it
        lead = Lead(
            name=data.owner_name.strip(),
            email=email,
            phone=data.phone,
            clinic_name=data.clinic_name,
            state=data.state,
            notes=data.notes,
            status=LeadStatus.DEMO_BOOKED.value,
            source="demo_request",
            sequence_day=0,
            marketing_opt_in=True,
            emails_sent=0,
            created_at=now,
            updated_at=now,
        )
        self.db.add(lead)
        self.db.flush()
        logger.info(f"🆕 Created demo_request lead {lead.id} for {email}")
        return lead

    def create_demo_booking(self, data: DemoBookingCreate, email_sender: Optional[EmailSender] = None):
        """Stores the request, links it to a sales lead and emails the demo link. Returns (booking, email_sent)."""
        now = datetime.utcnow()
        lead = self._find_or_create_demo_lead(data, now)

        booking = DemoBooking(
            clinic_name=data.clinic_name.strip(),
            owner_name=data.owner_name.strip(),
            email=str(data.email).strip().lower(),
            phone=data.phone,
            state=data.state,
            preferred_time=data.preferred_time,
            notes=data.notes,
            status="pending",
            lead_id=lead.id,
            created_at=now,
        )
        self.db.add(booking)
        self.db.commit()
        self.db.refresh(booking)

        email_sent = self._send_demo_email(booking, email_sender)
        return booking, email_sent

    def _send_demo_email(self, booking: DemoBooking, email_sender: Optional[EmailSender]) -> bool:
        if email_sender is None:
            from app.services.email_service import EmailService
            email_sender = EmailService().send_email

        subject, body, text = render_demo_email(booking)
        try:
            success, error = email_sender(booking.email, subject, body, text)
        except Exception as e:
            success, error = False, str(e)

        now = datetime.utcnow()
        self.db.add(OutboundMessage(
            lead_id=booking.lead_id,
            channel="email",
            source="booking",
            to_address=booking.email,
            subject=subject,
            body=text,
            status="sent" if success else "failed",
            provider="zeptomail",
            error_message=None if success else error,
            sent_at=now,
            created_at=now,
        ))
        self.db.commit()

        if success:
            logger.info(f"📧 Demo email sent to {booking.email}")
        else:
            logger.error(f"❌ Demo email to {booking.email} failed: {error}")
        return success

    def list_demo_bookings(self) -> List[DemoBooking]:
        return self.db.query(DemoBooking).order_by(DemoBooking.created_at.desc(), DemoBooking.id.desc()).all()

    def get_demo_booking(self, booking_id: int) -> Optional[DemoBooking]:
        return self.db.query(DemoBooking).filter(DemoBooking.id == booking_id).first()

    def update_demo_status(self, booking_id: int, status: str) -> Optional[DemoBooking]:
        value = _validate_status(status, DEMO_BOOKING_STATUSES)
        booking = self.get_demo_booking(booking_id)
        if not booking:
            return None

        booking.status = value
        self.db.commit()
        self.db.refresh(booking)
        return booking

    # ---------------------------------------------------------
    # 2. PATIENT BOOKINGS
    # ---------------------------------------------------------
    def create_patient_booking(self, data: PatientBookingCreate) -> PatientBooking:
        clinic = self.db.query(Clinic).filter(Clinic.id == data.clinic_id).first()
        if not clinic:
            raise UnknownClinic(f"Clinic {data.clinic_id} does not exist")

        now = datetime.utcnow()
        booking = PatientBooking(
            clinic_id=clinic.id,
            patient_name=data.patient_name.strip(),
            patient_email=str(data.patient_email).strip().lower(),
            patient_phone=data.patient_phone,
            appointment_type=data.appointment_type,
            preferred_date=data.preferred_date,
            preferred_time=data.preferred_time,
            notes=data.notes,
            status="pending",
            created_at=now,
            updated_at=now,
        )
        self.db.add(booking)
        self.db.commit()
        self.db.refresh(booking)
        logger.info(f"🦷 Patient booking {booking.id} created for clinic {clinic.id}")
        return booking

    def list_patient_bookings(self, clinic_ids: Optional[List[int]] = None) -> List[PatientBooking]:
        query = self.db.query(PatientBooking)
        if clinic_ids is not None:
            query = query.filter(PatientBooking.clinic_id.in_(clinic_ids))
        return query.order_by(PatientBooking.created_at.desc(), PatientBooking.id.desc()).all()

    def get_patient_booking(self, booking_id: int) -> Optional[PatientBooking]:
        return self.db.query(PatientBooking).filter(PatientBooking.id == booking_id).first()

    def update_patient_status(self, booking_id: int, status: str) -> Optional[PatientBooking]:
        value = _validate_status(status, PATIENT_BOOKING_STATUSES)
        booking = self.get_patient_booking(booking_id)
        if not booking:
            return None

        booking.status = value
        booking.updated_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(booking)
        return booking
