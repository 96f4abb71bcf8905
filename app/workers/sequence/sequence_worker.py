import logging
from datetime import datetime

from app.core.database import SessionLocal
from app.core.config import settings
from app.core.locks import acquire_lease, release_lease
from app.models.automation_job import AutomationJob
from app.services.sequence_service import SequenceService

logger = logging.getLogger(__name__)

LEASE_NAME = "sequence_tick"


def run_sequences():
    """Scheduler entrypoint: sends every enrollment step that is due."""
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

        result = SequenceService(db).process_due_enrollments(EmailService().send_email, SMSService().send)
        if result["processed"]:
            logger.info(
                f"📬 Sequences: {result['sent']} sent, {result['failed']} failed, {result['stopped']} stopped"
            )

        job.status = "completed"
        job.processed_count = result["processed"]
        job.error_count = result["failed"]
        job.message = f"{result['sent']} sent, {result['failed']} failed, {result['stopped']} stopped"
        job.finished_at = datetime.utcnow()
        db.commit()

    except Exception as e:
        logger.error(f"❌ Sequence Worker Error: {e}")
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
    run_sequences()
