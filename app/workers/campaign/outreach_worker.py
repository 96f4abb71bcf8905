import logging
from datetime import datetime
from typing import Dict, Optional

from sqlalchemy.orm import Session

from app.core.database import SessionLocal
from app.core.config import settings
from app.core.locks import acquire_lease, release_lease
from app.models.automation_job import AutomationJob
from app.services.outreach_service import JOB_TYPE, OutreachService

logger = logging.getLogger(__name__)

LEASE_NAME = JOB_TYPE


def run_outreach_cycle(db: Session) -> Optional[Dict]:
    """
    One outreach pass under the lease, recorded as an AutomationJob.
    Returns None when another replica holds the lease.
    """
    token = acquire_lease(db, LEASE_NAME)
    if not token:
        return None

    job = None
    try:
        job = AutomationJob(job_type=JOB_TYPE, status="running", started_at=datetime.utcnow())
        db.add(job)
        db.commit()

        result = OutreachService(db).run_cycle()

        job.status = "completed"
        job.processed_count = result["leads_enrolled"]
        job.message = f"{result['campaigns_created']} campaigns created, {result['leads_enrolled']} leads enrolled"
        job.finished_at = datetime.utcnow()
        db.commit()
        return {**result, "error": None}

    except Exception as e:
        logger.error(f"❌ Outreach Worker Error: {e}")
        db.rollback()
        if job is not None:
            job.status = "failed"
            job.error_message = str(e)
            job.finished_at = datetime.utcnow()
            db.commit()
        return {"campaigns_created": 0, "leads_enrolled": 0, "error": str(e)}
    finally:
        release_lease(db, LEASE_NAME, token)


def run_outreach():
    """Scheduler entrypoint: no-op while automated outreach is switched off."""
    if not settings.AUTO_OUTREACH_ENABLED:
        return

    db = SessionLocal()
    try:
        run_outreach_cycle(db)
    finally:
        db.close()


if __name__ == "__main__":
    logging.basicConfig(level=settings.LOG_LEVEL)
    run_outreach()
