"""Embedded scheduler for deployments without an external cron."""

import logging
from datetime import UTC, datetime, timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from abacus.config import get_settings
from abacus.database import async_session_maker
from abacus.services.adapters import PROVIDERS
from abacus.services.orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)
settings = get_settings()

# Global scheduler instance
scheduler: AsyncIOScheduler | None = None


async def forward_sync_job(provider: str) -> None:
    """Background job to catch one provider up to the present."""
    logger.info(f"Starting scheduled {provider} forward sync")
    try:
        async with async_session_maker() as db:
            result = await SyncOrchestrator(db).run_forward_sync(provider)
            if result.skipped:
                return
            logger.info(
                f"{provider} forward sync complete: {result.records_imported} records "
                f"(success={result.success})"
            )
    except Exception as e:
        logger.error(f"{provider} forward sync failed: {e}", exc_info=True)


async def backfill_job() -> None:
    """Background job to advance every provider's backfill by one batch."""
    logger.info("Starting scheduled backfill")
    for provider in PROVIDERS:
        try:
            async with async_session_maker() as db:
                result = await SyncOrchestrator(db).run_backfill(provider)
                if result.status not in ("complete", "skipped"):
                    logger.info(f"{provider} backfill {result.status}: oldest={result.oldest_backfilled_date}")
        except Exception as e:
            logger.error(f"{provider} backfill failed: {e}", exc_info=True)


def setup_scheduler() -> AsyncIOScheduler:
    """Set up and start the background task scheduler."""
    global scheduler

    scheduler = AsyncIOScheduler()
    now = datetime.now(UTC)

    intervals = {
        "claude_code": settings.usage_report_poll_interval_minutes,
        "cursor": settings.hourly_events_poll_interval_minutes,
        "github": settings.commits_poll_interval_minutes,
    }
    for offset, provider in enumerate(PROVIDERS):
        scheduler.add_job(
            forward_sync_job,
            trigger=IntervalTrigger(minutes=intervals[provider]),
            args=[provider],
            next_run_time=now + timedelta(seconds=10 * offset),
            id=f"forward_sync_{provider}",
            name=f"Forward sync {provider}",
            replace_existing=True,
        )

    scheduler.add_job(
        backfill_job,
        trigger=IntervalTrigger(minutes=settings.backfill_poll_interval_minutes),
        next_run_time=now + timedelta(minutes=1),
        id="backfill",
        name="Backfill all providers",
        replace_existing=True,
    )

    scheduler.start()
    logger.info("Scheduler started")

    return scheduler


def shutdown_scheduler() -> None:
    """Shut down the scheduler gracefully."""
    global scheduler

    if scheduler:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler shut down")
        scheduler = None
