import csv
import json
import logging
from io import StringIO
from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import func

# MODELS
from app.core.config import settings
from app.models.campaign import Campaign, CampaignLead
from app.models.lead import Lead
from app.schemas.campaign import CreateCampaignRequest, UpdateCampaignRequest, GenerateDraftRequest

logger = logging.getLogger(__name__)

# draft -> ready -> active <-> paused -> completed -> archived
CAMPAIGN_TRANSITIONS = {
    "draft": {"ready", "active", "archived"},
    "ready": {"active", "archived"},
    "active": {"paused", "completed"},
    "paused": {"active", "archived"},
    "completed": {"archived"},
    "archived": set(),
}


class InvalidCampaignTransition(ValueError):
    pass


def check_campaign_transition(current: str, target: str) -> None:
    if target not in CAMPAIGN_TRANSITIONS:
        raise InvalidCampaignTransition(f"Invalid campaign status '{target}'")
    if target not in CAMPAIGN_TRANSITIONS.get(current, set()):
        raise InvalidCampaignTransition(f"Cannot move campaign from {current} to {target}")


class CampaignService:
    def __init__(self, db: Session):
        self.db = db

    # ---------------------------------------------------------
    # 1. READ
    # ---------------------------------------------------------
    def list_campaigns(self, clinic_ids: Optional[List[int]] = None) -> List[Campaign]:
        query = self.db.query(Campaign)
        if clinic_ids is not None:
            query = query.filter(Campaign.clinic_id.in_(clinic_ids))
        return query.order_by(Campaign.created_at.desc(), Campaign.id.desc()).all()

    def get_campaign(self, campaign_id: int) -> Optional[Campaign]:
        return self.db.query(Campaign).filter(Campaign.id == campaign_id).first()

    def get_campaign_stats(self, campaign_id: int):
        counts = dict(
            self.db.query(CampaignLead.status, func.count(CampaignLead.id))
            .filter(CampaignLead.campaign_id == campaign_id)
            .group_by(CampaignLead.status)
            .all()
        )
        return {
            "total": sum(counts.values()),
            "queued": counts.get("queued", 0),
            "sent": counts.get("sent", 0),
            "failed": counts.get("failed", 0),
            "skipped": counts.get("skipped", 0),
        }

    def get_campaign_kpis(self, clinic_ids: Optional[List[int]] = None):
        campaigns = self.db.query(Campaign)
        if clinic_ids is not None:
            campaigns = campaigns.filter(Campaign.clinic_id.in_(clinic_ids))
        return {
            "total_campaigns": campaigns.count(),
            "active_campaigns": campaigns.filter(Campaign.status == "active").count(),
            "messages_sent": sum(c.total_sent or 0 for c in campaigns.all()),
            "messages_failed": sum(c.total_failed or 0 for c in campaigns.all()),
        }

    # ---------------------------------------------------------
    # 2. CAMPAIGN MANAGEMENT
    # ---------------------------------------------------------
    def create_campaign(self, data: CreateCampaignRequest) -> Campaign:
        now = datetime.utcnow()
        campaign = Campaign(
            name=data.name,
            type=data.type,
            subject=data.subject,
            message=data.message,
            clinic_id=data.clinic_id,
            status="draft",
            daily_limit=data.daily_limit or settings.DEFAULT_CAMPAIGN_DAILY_LIMIT,
            sent_today=0,
            total_leads=0,
            total_sent=0,
            total_failed=0,
            created_at=now,
            updated_at=now,
        )
        self.db.add(campaign)
        self.db.flush()

        self._attach_leads(campaign, data.lead_ids)

        self.db.commit()
        self.db.refresh(campaign)
        return campaign

    def _attach_leads(self, campaign: Campaign, lead_ids: List[int]) -> int:
        if not lead_ids:
            return 0

        valid_ids = {
            r.id for r in self.db.query(Lead.id).filter(Lead.id.in_(set(lead_ids))).all()
        }
        missing = set(lead_ids) - valid_ids
        if missing:
            raise ValueError(f"Unknown lead ids: {sorted(missing)}")

        already = {
            r.lead_id for r in self.db.query(CampaignLead.lead_id).filter(CampaignLead.campaign_id == campaign.id).all()
        }

        new_links = [
            CampaignLead(campaign_id=campaign.id, lead_id=lid, status="queued")
            for lid in sorted(valid_ids - already)
        ]
        if new_links:
            self.db.add_all(new_links)
        campaign.total_leads = (campaign.total_leads or 0) + len(new_links)
        return len(new_links)

    def add_leads(self, campaign_id: int, lead_ids: List[int]) -> Optional[int]:
        campaign = self.get_campaign(campaign_id)
        if not campaign:
            return None
        if campaign.status in ("completed", "archived"):
            raise ValueError(f"Cannot add leads to a {campaign.status} campaign")

        added = self._attach_leads(campaign, lead_ids)
        campaign.updated_at = datetime.utcnow()
        self.db.commit()
        return added

    def update_campaign(self, campaign_id: int, data: UpdateCampaignRequest) -> Optional[Campaign]:
        campaign = self.get_campaign(campaign_id)
        if not campaign:
            return None

        update_data = data.model_dump(exclude_unset=True)
        status = update_data.pop("status", None)
        if status is not None and status != campaign.status:
            check_campaign_transition(campaign.status, status)
            campaign.status = status

        for key, value in update_data.items():
            setattr(campaign, key, value)
        campaign.updated_at = datetime.utcnow()

        self.db.commit()
        self.db.refresh(campaign)
        return campaign

    def set_status(self, campaign_id: int, status: str) -> Optional[Campaign]:
        campaign = self.get_campaign(campaign_id)
        if not campaign:
            return None

        check_campaign_transition(campaign.status, status)
        campaign.status = status
        campaign.updated_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(campaign)
        return campaign

    # ---------------------------------------------------------
    # 3. AI DRAFTS
    # ---------------------------------------------------------
    def generate_draft(self, data: GenerateDraftRequest, llm=None):
        from app.services.llm_service import LLMService

        llm = llm or LLMService()
        clinic_name = data.clinic_name or settings.SITE_NAME

        if data.type == "email":
            system_prompt = (
                "You write short marketing emails for dental clinics. "
                "Reply with JSON only: {\"subject\": \"...\", \"message\": \"...\"}. "
                "Use {{first_name}} for the patient's first name and {{booking_url}} for the booking link."
            )
        else:
            system_prompt = (
                "You write SMS/WhatsApp messages for dental clinics, under 300 characters. "
                "Reply with JSON only: {\"message\": \"...\"}. "
                "Use {{first_name}} for the patient's first name and {{booking_url}} for the booking link."
            )
        user_context = f"Clinic: {clinic_name}\nGoal: {data.goal}\nTone: {data.tone or 'friendly'}"

        raw = llm.generate_outreach(system_prompt, user_context)
        try:
            parsed = json.loads(raw)
            subject = parsed.get("subject")
            message = parsed.get("message") or ""
        except (json.JSONDecodeError, AttributeError):
            logger.warning("⚠️ LLM draft was not JSON, using raw text")
            subject, message = None, raw

        if data.type != "email":
            subject = None
        return {"subject": subject, "message": message.strip()}

    # ---------------------------------------------------------
    # 4. EXPORT
    # ---------------------------------------------------------
    def export_campaign_leads(self, campaign_id: int):
        results = self.db.query(
            Lead.name,
            Lead.email,
            Lead.phone,
            Lead.clinic_name,
            CampaignLead.status,
            CampaignLead.sent_at,
            CampaignLead.error_message,
        ).join(CampaignLead, Lead.id == CampaignLead.lead_id)\
         .filter(CampaignLead.campaign_id == campaign_id)\
         .order_by(CampaignLead.id).all()

        output = StringIO()
        writer = csv.writer(output)
        writer.writerow(["Name", "Email", "Phone", "Clinic", "Status", "Sent At", "Error"])

        for r in results:
            writer.writerow([r.name, r.email, r.phone, r.clinic_name, r.status, r.sent_at or "", r.error_message or ""])

        output.seek(0)
        return output
