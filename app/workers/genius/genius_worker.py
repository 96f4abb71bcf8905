import logging
from datetime import datetime

from app.core.database import SessionLocal
from app.core.config import settings
from app.core.locks import acquire_lease, release_lease
from app.models.automation_job import AutomationJob
from app.services.genius_engine import GeniusEngine, LEASE_NAME

logger = logging.getLogger(__name__)


def run_genius_cycle():
    """
    Scheduler entrypoint. Runs one GENIUS cycle when the engine has been
    started from the admin panel; a stopped engine is a no-op.
    """
    db = SessionLocal()
    job = None
    token = None
    try:
        engine = GeniusEngine(db)
        if not engine.get_state().is_running:
            db.commit()
            return

        token = acquire_lease(db, LEASE_NAME)
        if not token:
            return

        job = AutomationJob(job_type=LEASE_NAME, status="running", started_at=datetime.utcnow())
        db.add(job)
        db.commit()

        logger.info("🧠 GENIUS: Starting cycle...")
        result = engine.run_cycle(lease_token=token)

        job.status = "completed" if result.success else "skipped"
        job.processed_count = result.emails_sent + result.errors
        job.error_count = result.errors
        job.message = result.message
        job.finished_at = datetime.utcnow()
        db.commit()

    except Exception as e:
        logger.error(f"❌ GENIUS Worker Error: {e}")
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
    run_genius_cycle()
