"""
Automated outreach: turns a clinic's new patient leads into a paced email
campaign without anyone building it by hand.

Each cycle creates one automated campaign per clinic that has eligible leads
and no live email campaign, then tops it up with a few newly eligible leads.
Sending is left to the campaign worker, which honours ``per_tick_limit``.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.automation_job import AutomationJob
from app.models.campaign import Campaign, CampaignLead
from app.models.clinic import Clinic
from app.models.lead import Lead
from app.services.lead_status import LeadStatus

logger = logging.getLogger(__name__)

JOB_TYPE = "outreach_tick"

DEFAULT_SUBJECT = "{{first_name}}, it's time for your next visit at {{clinic_name}}"
DEFAULT_MESSAGE = """Hi {{first_name}},

Thanks for getting in touch with {{clinic_name}}. We'd love to see you in the chair soon.

Picking a time only takes a minute:
{{booking_url}}

If you have any questions, just reply to this email and our front desk will get back to you.

See you soon,
The {{clinic_name}} Team"""

UNSUBSCRIBE_FOOTER = """

---
You're receiving this because you asked {{clinic_name}} to contact you.
If you'd prefer not to receive these emails, reply with "unsubscribe" and we'll remove you from our list."""

LIVE_CAMPAIGN_STATUSES = ("active", "ready")


class OutreachService:
    def __init__(self, db: Session):
        self.db = db

    def _eligible_leads_query(self, clinic_id: int):
        enrolled = (
            select(CampaignLead.lead_id)
            .join(Campaign, Campaign.id == CampaignLead.campaign_id)
            .where(Campaign.clinic_id == clinic_id, Campaign.is_automated.is_(True))
        )
        return self.db.query(Lead).filter(
            Lead.clinic_id == clinic_id,
            Lead.status == LeadStatus.NEW.value,
            Lead.marketing_opt_in.is_(True),
            Lead.email.isnot(None),
            Lead.email != "",
            ~Lead.id.in_(enrolled),
        )

    def clinics_needing_campaigns(self) -> List[Clinic]:
        """Clinics with eligible leads but no active or ready email campaign."""
        live = select(Campaign.clinic_id).where(
            Campaign.clinic_id.isnot(None),
            Campaign.type == "email",
            Campaign.status.in_(LIVE_CAMPAIGN_STATUSES),
        )
        candidates = (
            self.db.query(Clinic)
            .filter(~Clinic.id.in_(live))
            .order_by(Clinic.id)
            .all()
        )
        return [c for c in candidates if self._eligible_leads_query(c.id).first() is not None]

    def create_auto_campaign(self, clinic: Clinic, now: Optional[datetime] = None) -> Campaign:
        now = now or datetime.utcnow()
        campaign = Campaign(
            name=f"Auto Outreach - {clinic.name}",
            type="email",
            status="active",
            subject=DEFAULT_SUBJECT,
            message=DEFAULT_MESSAGE + UNSUBSCRIBE_FOOTER,
            clinic_id=clinic.id,
            daily_limit=settings.DEFAULT_CAMPAIGN_DAILY_LIMIT,
            per_tick_limit=settings.AUTO_OUTREACH_SENDS_PER_TICK,
            is_automated=True,
            sent_today=0,
            total_leads=0,
            total_sent=0,
            total_failed=0,
            created_at=now,
            updated_at=now,
        )
        self.db.add(campaign)
        self.db.commit()
        self.db.refresh(campaign)
        logger.info(f"🤖 Created auto campaign {campaign.id} for clinic {clinic.id} ({clinic.name})")
        return campaign

    def enroll_new_leads(self, campaign: Campaign, limit: Optional[int] = None) -> int:
        limit = limit or settings.AUTO_OUTREACH_LEADS_PER_CLINIC
        leads = self._eligible_leads_query(campaign.clinic_id).order_by(Lead.id).limit(limit).all()
        if not leads:
            return 0

        for lead in leads:
            self.db.add(CampaignLead(campaign_id=campaign.id, lead_id=lead.id, status="queued"))
        campaign.total_leads = (campaign.total_leads or 0) + len(leads)
        campaign.updated_at = datetime.utcnow()
        self.db.commit()

        logger.info(f"📥 Enrolled {len(leads)} leads into auto campaign {campaign.id}")
        return len(leads)

    def run_cycle(self, now: Optional[datetime] = None) -> Dict[str, int]:
        now = now or datetime.utcnow()
        created = 0
        enrolled = 0

        for clinic in self.clinics_needing_campaigns():
            self.create_auto_campaign(clinic, now)
            created += 1

        automated = self.db.query(Campaign).filter(
            Campaign.is_automated.is_(True),
            Campaign.type == "email",
            Campaign.status == "active",
        ).order_by(Campaign.id).all()
        for campaign in automated:
            enrolled += self.enroll_new_leads(campaign)

        if created or enrolled:
            logger.info(f"🤖 Outreach: {created} campaigns created, {enrolled} leads enrolled")
        return {"campaigns_created": created, "leads_enrolled": enrolled}

    def get_status(self) -> Dict:
        totals = self.db.query(
            func.count(Campaign.id),
            func.coalesce(func.sum(Campaign.total_leads), 0),
            func.coalesce(func.sum(Campaign.total_sent), 0),
        ).filter(Campaign.is_automated.is_(True)).one()
        active = self.db.query(func.count(Campaign.id)).filter(
            Campaign.is_automated.is_(True), Campaign.status == "active",
        ).scalar()
        last_job = (
            self.db.query(AutomationJob)
            .filter(AutomationJob.job_type == JOB_TYPE)
            .order_by(AutomationJob.id.desc())
            .first()
        )
        return {
            "enabled": settings.AUTO_OUTREACH_ENABLED,
            "automated_campaigns": totals[0],
            "active_campaigns": active,
            "leads_enrolled": int(totals[1]),
            "emails_sent": int(totals[2]),
            "last_run_at": last_job.started_at if last_job else None,
            "last_run_status": last_job.status if last_job else None,
        }
