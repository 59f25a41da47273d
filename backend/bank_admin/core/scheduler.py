"""
Background scheduler for periodic tasks.

This module manages background jobs that run on a schedule:
- Cleanup expired sessions and throttle records: Runs every hour
"""

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from bank_admin.core.database import SessionLocal
from bank_admin.services.login_throttle import login_throttle
from bank_admin.services.rate_limiter import rate_limiter
from bank_admin.services.session_service import session_service
import logging

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler()


def cleanup_expired_sessions_job():
    """
    Delete session rows past their expiry and forget elapsed throttle state.

    Expired sessions are already rejected on lookup; this only keeps the
    table and the in-memory counters from growing without bound.
    """
    db = SessionLocal()
    try:
        deleted = session_service.delete_expired_sessions(db)
        purged_attempts = login_throttle.purge_expired()
        purged_windows = rate_limiter.purge_expired()
        logger.info(
            f"Cleanup job completed: {deleted} expired sessions, "
            f"{purged_attempts} throttle records, {purged_windows} rate windows removed"
        )
    finally:
        db.close()


def start_scheduler():
    """
    Start the background scheduler.

    This should be called when the FastAPI app starts.
    """
    if not scheduler.running:
        scheduler.add_job(
            cleanup_expired_sessions_job,
            trigger=IntervalTrigger(hours=1),
            id="cleanup_expired_sessions",
            name="Cleanup expired sessions",
            replace_existing=True
        )

        scheduler.start()
        logger.info("Background scheduler started. Cleanup job scheduled to run every hour.")


def stop_scheduler():
    """
    Stop the background scheduler.

    This should be called when the FastAPI app shuts down.
    """
    if scheduler.running:
        scheduler.shutdown()
        logger.info("Background scheduler stopped.")
