"""
APScheduler jobs for background re-sync.

A daily sync at `auto_sync_hour` keeps the journal fresh even if nobody
opened the app, in whichever mode the store currently selects. The job
goes through the same SyncService as interactive runs, so it shares the
in-flight guard and never overlaps a manual sync.
"""
import logging
from datetime import datetime, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from careersync.config import get_settings

logger = logging.getLogger(__name__)


def build_scheduler(service) -> AsyncIOScheduler:
    """
    Create and configure the APScheduler.

    Args:
        service: SyncService the job runs syncs through.

    Returns:
        Configured AsyncIOScheduler (not yet started).
    """
    settings = get_settings()
    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        _scheduled_sync,
        trigger="cron",
        hour=settings.auto_sync_hour,
        minute=0,
        id="auto_sync",
        replace_existing=True,
        kwargs={"service": service},
    )

    return scheduler


async def _scheduled_sync(service) -> None:
    """
    Daily job: run one sync in the current mode.

    Skips quietly if a sync is already running; never raises, so the
    scheduler stays alive.
    """
    if service.is_running:
        logger.info("Scheduled sync skipped: a sync is already in progress")
        return

    logger.info("Scheduled sync starting at %s", datetime.now(timezone.utc).isoformat())
    try:
        result = await service.run()
    except Exception as exc:
        logger.error("Scheduled sync failed: %s", exc)
        return

    if result is None:
        error = service.latest_error
        logger.error("Scheduled sync failed: %s", error or "unknown error")
    else:
        logger.info(
            "Scheduled sync finished: %d activities, %d entries",
            result.activity_count,
            result.entry_count,
        )
