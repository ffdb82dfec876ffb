"""Background scheduler that purges expired key-value entries (sessions)."""

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from passvault.config import settings
from passvault.database import SessionLocal
from passvault.exceptions import StoreUnavailable
from passvault.logging_config import get_logger
from passvault.services.kv_store import KVStore

logger = get_logger("scheduler")

scheduler = BackgroundScheduler()


def cleanup_job() -> None:
    """Delete expired entries. Reads already ignore them; this reclaims space."""
    db = SessionLocal()
    try:
        purged = KVStore(db).purge_expired()
        if purged:
            logger.info("expired_entries_purged", count=purged)
    except StoreUnavailable:
        logger.error("expired_entries_purge_failed")
    finally:
        db.close()


def start_scheduler() -> None:
    """Start the background scheduler."""
    scheduler.add_job(
        cleanup_job,
        trigger=IntervalTrigger(minutes=settings.cleanup_interval_minutes),
        id="purge_expired_entries",
        replace_existing=True,
    )
    scheduler.start()
    logger.info("scheduler_started", interval_minutes=settings.cleanup_interval_minutes)


def shutdown_scheduler() -> None:
    """Shutdown the scheduler gracefully."""
    scheduler.shutdown()
    logger.info("scheduler_stopped")
