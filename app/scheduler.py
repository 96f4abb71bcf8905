import logging
from apscheduler.schedulers.background import BackgroundScheduler
from app.core.config import settings

# --- WORKERS ---
from app.workers.genius.genius_worker import run_genius_cycle
from app.workers.sequence.sequence_worker import run_sequences
from app.workers.campaign.campaign_worker import run_campaigns
from app.workers.campaign.outreach_worker import run_outreach

logger = logging.getLogger(__name__)
scheduler = BackgroundScheduler()

GENIUS_JOB_ID = "genius_cycle"


# ---------------------------------------------------------
# SCHEDULER SETUP
# ---------------------------------------------------------
def start_scheduler():
    if scheduler.running:
        return

    # 1. GENIUS drip (every 10 minutes, no-op while the engine is stopped)
    scheduler.add_job(
        run_genius_cycle, "interval", minutes=settings.GENIUS_CYCLE_MINUTES,
        id=GENIUS_JOB_ID, max_instances=1, coalesce=True,
    )

    # 2. Custom sequence steps (every 5 minutes)
    scheduler.add_job(
        run_sequences, "interval", minutes=settings.SEQUENCE_TICK_MINUTES,
        id="sequence_tick", max_instances=1, coalesce=True,
    )

    # 3. Outreach campaigns (every 10 minutes)
    scheduler.add_job(
        run_campaigns, "interval", minutes=settings.CAMPAIGN_TICK_MINUTES,
        id="campaign_tick", max_instances=1, coalesce=True,
    )

    # 4. Automated outreach: auto campaigns and enrollment (every 10 minutes)
    scheduler.add_job(
        run_outreach, "interval", minutes=settings.OUTREACH_TICK_MINUTES,
        id="outreach_tick", max_instances=1, coalesce=True,
    )

    scheduler.start()
    logger.info("🚀 Background Scheduler Started.")


def reschedule_genius(minutes: int):
    """Applies a new GENIUS cycle interval chosen from the admin panel."""
    if not scheduler.running:
        return
    scheduler.reschedule_job(GENIUS_JOB_ID, trigger="interval", minutes=minutes)
    logger.info(f"⏱️ GENIUS cycle rescheduled to every {minutes} minutes")


def shutdown_scheduler():
    if scheduler.running:
        scheduler.shutdown(wait=False)
