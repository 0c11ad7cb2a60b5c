"""Background cleanup jobs."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from ..auth_providers.client_session import client_session_store
from ..auth_providers.session import SessionEngine
from ..core.config import settings
from ..dependencies import get_credential_store, get_notifier, get_registry, token_generator


logger = logging.getLogger(__name__)


# Global scheduler instance
scheduler = AsyncIOScheduler()


def _build_engine() -> SessionEngine:
    return SessionEngine(
        get_credential_store(),
        get_registry(),
        token_generator,
        get_notifier(),
        login_expiry_days=settings.LOGIN_EXPIRY,
        state_ttl_seconds=settings.STATE_TTL_SECONDS,
        debug_mode=settings.DEBUG_MODE,
    )


async def cleanup_expired_sessions(engine: SessionEngine | None = None) -> int:
    """
    Delete login sessions older than LOGIN_EXPIRY days.

    Runs daily at CLEANUP_HOUR. Errors are logged and the job tries
    again on its next run.
    """
    try:
        engine = engine or _build_engine()
        return await engine.prune_expired_sessions(settings.LOGIN_EXPIRY)
    except Exception as e:
        logger.error(f"Error in cleanup_expired_sessions job: {e}", exc_info=True)
        return 0


async def cleanup_transport_sessions() -> int:
    """
    Drop expired state tokens and visitor values from the in-memory store.

    Runs every 5 minutes. A no-op when Redis is the backend.
    """
    try:
        count = client_session_store.purge_expired()
        if count > 0:
            logger.info(f"Purged {count} expired client session entries")
        else:
            logger.debug("No expired client session entries to purge")
        return count
    except Exception as e:
        logger.error(f"Error in cleanup_transport_sessions job: {e}", exc_info=True)
        return 0


def register_jobs():
    """Add the cleanup jobs to the scheduler, replacing any earlier registration."""
    scheduler.add_job(
        cleanup_expired_sessions,
        "cron",
        hour=settings.CLEANUP_HOUR,
        minute=0,
        id="cleanup_expired_sessions",
        replace_existing=True,
    )
    scheduler.add_job(
        cleanup_transport_sessions,
        "interval",
        minutes=5,
        id="cleanup_transport_sessions",
        replace_existing=True,
    )


def start_background_jobs():
    """Start all background jobs."""
    logger.info("Starting background jobs scheduler...")
    register_jobs()
    scheduler.start()
    logger.info(f"Background jobs started: {[job.id for job in scheduler.get_jobs()]}")


def stop_background_jobs():
    """Stop all background jobs."""
    if not scheduler.running:
        return
    logger.info("Stopping background jobs scheduler...")
    scheduler.shutdown()
    logger.info("Background jobs stopped")


def get_job_status():
    """Describe each scheduled job for the admin endpoint."""
    status = []
    for job in scheduler.get_jobs():
        # Jobs added before start() have no next_run_time yet
        next_run = getattr(job, "next_run_time", None)
        status.append({
            "id": job.id,
            "name": job.name,
            "next_run": next_run.isoformat() if next_run else None,
            "trigger": str(job.trigger),
        })
    return status

