"""Background job scheduler for housekeeping sweeps."""
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlmodel import Session

from groupcal import notifications
from groupcal.core.config import settings
from groupcal.core.database import engine
from groupcal.groups.invitations import expire_stale

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()


def run_cleanup(session: Session) -> dict:
    """Expire overdue invitations and archive expired notifications."""
    return {
        "invitations_expired": expire_stale(session),
        "notifications_archived": notifications.archive_expired(session),
    }


def cleanup_job():
    """Background cleanup job."""
    try:
        with Session(engine) as session:
            stats = run_cleanup(session)
            logger.info(f"Background cleanup completed: {stats}")
    except Exception as e:
        logger.error(f"Background cleanup failed: {e}")


def start_scheduler():
    """Start the background scheduler."""
    scheduler.add_job(
        cleanup_job,
        trigger=IntervalTrigger(minutes=settings.cleanup_interval_minutes),
        id="cleanup",
        replace_existing=True,
    )
    scheduler.start()
    logger.info(
        f"Scheduler started, cleaning up every {settings.cleanup_interval_minutes} minutes"
    )


def shutdown_scheduler():
    """Graceful shutdown."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
    logger.info("Scheduler shut down")
