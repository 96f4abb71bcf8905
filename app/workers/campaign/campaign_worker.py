import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from typing import Callable, Optional, Tuple
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.database import SessionLocal
from app.core.config import settings
from app.core.locks import acquire_lease, release_lease
from app.models.automation_job import AutomationJob
from app.models.campaign import Campaign, CampaignLead
from app.models.clinic import Clinic
from app.models.message import OutboundMessage
from app.services.lead_status import Actor, LeadStatus, InvalidTransition, apply_transition
from app.services.sequence_service import lead_variables
from app.services.template_catalog import fill_template, should_send_sms

logger = logging.getLogger(__name__)

LEASE_NAME = "campaign_tick"
MAX_WORKERS = 5

# (to_email, subject, html, text) -> (success, error)
EmailSender = Callable[[str, str, str, Optional[str]], Tuple[bool, Optional[str]]]
# (channel, to_phone, body) -> (success, error)
TextSender = Callable[[str, str, str], Tuple[bool, Optional[str]]]


def process_single_message(item, email_sender: EmailSender, text_sender: TextSender):
    """
    Helper function to run inside a Thread. No DB access here.
    """
    campaign_lead_id, channel, to_address, subject, body = item

    try:
        if channel == "email":
            html = f"<div>{body.replace(chr(10), '<br/>')}</div>"
            success, error = email_sender(to_address, subject, html, body)
        else:
            success, error = text_sender(channel, to_address, body)
        return campaign_lead_id, success, error
    except Exception as e:
        return campaign_lead_id, False, str(e)


def _reset_daily_counter(campaign: Campaign, now: datetime) -> None:
    today = now.date()
    if campaign.sent_today_date != today:
        campaign.sent_today = 0
        campaign.sent_today_date = today


def _skip(cl: CampaignLead, reason: str) -> None:
    cl.status = "skipped"
    cl.error_message = reason


def run_campaign_batch(
    db: Session,
    email_sender: EmailSender,
    text_sender: TextSender,
    now: Optional[datetime] = None,
) -> dict:
    """
    Sends queued CampaignLeads of every active campaign, respecting each
    campaign's remaining daily allowance.
    """
    now = now or datetime.utcnow()
    summary = {"sent": 0, "failed": 0, "skipped": 0, "completed_campaigns": 0}

    active_campaigns = db.query(Campaign).filter(Campaign.status == "active").all()
    if not active_campaigns:
        return summary

    work = []
    for campaign in active_campaigns:
        _reset_daily_counter(campaign, now)

        # --- A. Check for Completion ---
        remaining_count = db.query(func.count(CampaignLead.id)).filter(
            CampaignLead.campaign_id == campaign.id,
            CampaignLead.status == "queued",
        ).scalar()

        if remaining_count == 0:
            if campaign.is_automated:
                db.commit()
                continue
            logger.info(f"🏁 Campaign {campaign.id} has finished! Marking as completed.")
            campaign.status = "completed"
            campaign.updated_at = now
            summary["completed_campaigns"] += 1
            db.commit()
            continue

        # --- B. Daily allowance ---
        allowance = max(0, (campaign.daily_limit or 0) - (campaign.sent_today or 0))
        if campaign.per_tick_limit:
            allowance = min(allowance, campaign.per_tick_limit)
        if allowance == 0:
            logger.info(f"🚫 Campaign {campaign.id} daily limit reached ({campaign.daily_limit})")
            db.commit()
            continue

        pending = db.query(CampaignLead).filter(
            CampaignLead.campaign_id == campaign.id,
            CampaignLead.status == "queued",
        ).order_by(CampaignLead.id).limit(allowance).all()

        clinic = db.query(Clinic).filter(Clinic.id == campaign.clinic_id).first() if campaign.clinic_id else None

        for cl in pending:
            lead = cl.lead
            if not lead.marketing_opt_in:
                _skip(cl, "Lead opted out of marketing")
                summary["skipped"] += 1
                continue

            if campaign.type == "email":
                to_address = lead.email
                if not to_address:
                    _skip(cl, "No email address found")
                    summary["skipped"] += 1
                    continue
            else:
                to_address = lead.phone
                if not to_address:
                    _skip(cl, "No phone number found")
                    summary["skipped"] += 1
                    continue
                if not should_send_sms(lead.status, "campaign"):
                    _skip(cl, f"Lead status '{lead.status}' is not eligible for {campaign.type}")
                    summary["skipped"] += 1
                    continue

            variables = lead_variables(lead, clinic)
            body = fill_template(campaign.message, variables)
            subject = fill_template(campaign.subject, variables) or campaign.name
            work.append((cl.id, campaign.type, to_address, subject, body))

        db.commit()

    # --- C. Send (Threaded) ---
    if not work:
        return summary

    logger.info(f"🚀 Sending {len(work)} campaign messages...")
    items = {item[0]: item for item in work}

    with ThreadPoolExecutor(max_workers=MAX_WORKERS) as executor:
        futures = [
            executor.submit(process_single_message, item, email_sender, text_sender)
            for item in work
        ]

        for future in as_completed(futures):
            cl_id, success, error = future.result()
            _, channel, to_address, subject, body = items[cl_id]
            record = db.query(CampaignLead).filter(CampaignLead.id == cl_id).first()
            campaign = record.campaign

            db.add(OutboundMessage(
                lead_id=record.lead_id,
                channel=channel,
                source="campaign",
                to_address=to_address,
                subject=subject if channel == "email" else None,
                body=body,
                status="sent" if success else "failed",
                provider="zeptomail" if channel == "email" else "twilio",
                error_message=None if success else error,
                sent_at=now,
                created_at=now,
            ))

            if success:
                record.status = "sent"
                record.sent_at = now
                record.error_message = None
                campaign.sent_today = (campaign.sent_today or 0) + 1
                campaign.total_sent = (campaign.total_sent or 0) + 1
                summary["sent"] += 1

                lead = record.lead
                if lead.status == LeadStatus.NEW.value:
                    try:
                        apply_transition(lead, LeadStatus.CONTACTED, Actor.AUTOMATION, now)
                    except InvalidTransition as e:
                        logger.warning(f"⚠️ {e}")
                logger.info(f"✅ Sent to Campaign Lead {cl_id}")
            else:
                record.status = "failed"
                record.error_message = error
                campaign.total_failed = (campaign.total_failed or 0) + 1
                summary["failed"] += 1
                logger.error(f"❌ Failed Campaign Lead {cl_id}: {error}")

            campaign.updated_at = now
            db.commit()

    return summary


def run_campaigns():
    """Scheduler entrypoint."""
    from app.services.email_service import EmailService
    from app.services.sms_service import SMSService

    db = SessionLocal()
    job = None
    token = None
    try:
        token = acquire_lease(db, LEASE_NAME)
        if not token:
            return

        job = AutomationJob(job_type=LEASE_NAME, status="running", started_at=datetime.utcnow())
        db.add(job)
        db.commit()

        summary = run_campaign_batch(db, EmailService().send_email, SMSService().send)

        job.status = "completed"
        job.processed_count = summary["sent"] + summary["failed"] + summary["skipped"]
        job.error_count = summary["failed"]
        job.message = f"{summary['sent']} sent, {summary['failed']} failed, {summary['skipped']} skipped"
        job.finished_at = datetime.utcnow()
        db.commit()

    except Exception as e:
        logger.error(f"❌ Campaign Worker Error: {e}")
        db.rollback()
        if job is not None:
            job.status = "failed"
            job.error_message = str(e)
            job.finished_at = datetime.utcnow()
            db.commit()
    finally:
        release_lease(db, LEASE_NAME, token)
        db.close()


if __name__ == "__main__":
    logging.basicConfig(level=settings.LOG_LEVEL)
    run_campaigns()
