"""
Daily partner suggestion batch job.

Runs the batch for yesterday once per day at BATCH_SCHEDULE_HOUR (in
BATCH_TIMEZONE), then purges expired suggestions.

Usage:
    python -m app.jobs.worker daily_batch        # long-running scheduler
    python -m app.jobs.worker daily_batch_once   # single run, then exit
"""

import asyncio
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from app.config import settings
from app.db.pool import db_pool
from app.features.partner_suggestions.domain import BatchReport
from app.features.partner_suggestions.services import BatchScheduler, SuggestionCleanupService
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

ERROR_RETRY_SECONDS = 3600


def seconds_until_next_run(now: datetime, schedule_hour: int) -> float:
    """Seconds from now until the next occurrence of schedule_hour:00."""
    next_run = now.replace(hour=schedule_hour, minute=0, second=0, microsecond=0)
    if now >= next_run:
        next_run += timedelta(days=1)
    return (next_run - now).total_seconds()


async def _ensure_pool() -> None:
    if not db_pool.is_initialized:
        await db_pool.initialize()


async def run_daily_batch_once(
    scheduler: BatchScheduler | None = None,
    cleanup_service: SuggestionCleanupService | None = None,
) -> BatchReport:
    """Run yesterday's batch and the expired-suggestion purge once."""
    await _ensure_pool()

    scheduler = scheduler or BatchScheduler()
    cleanup_service = cleanup_service or SuggestionCleanupService()

    report = await scheduler.run()

    try:
        await cleanup_service.purge_expired()
    except Exception as e:
        logger.error("Expired suggestion purge failed", error=str(e))

    logger.info(
        "Daily batch job cycle completed",
        batch_date=report.batch_date.isoformat(),
        state=report.state.value,
        **report.summary(),
    )
    return report


async def start_daily_batch_scheduler() -> None:
    """
    Long-running loop for the worker process.

    Sleeps until the next scheduled hour, runs the batch, repeats. Errors in
    one cycle are logged and retried after an hour.
    """
    if not settings.BATCH_SCHEDULER_ENABLED:
        logger.info("Daily batch scheduler DISABLED", environment=settings.environment)
        return

    schedule_hour = settings.BATCH_SCHEDULE_HOUR
    tz = ZoneInfo(settings.BATCH_TIMEZONE)

    logger.info(
        "Daily batch scheduler STARTED",
        schedule_hour=schedule_hour,
        timezone=settings.BATCH_TIMEZONE,
        environment=settings.environment,
    )

    while True:
        try:
            sleep_seconds = seconds_until_next_run(datetime.now(tz), schedule_hour)
            logger.info("Daily batch scheduled", sleep_seconds=sleep_seconds)

            await asyncio.sleep(sleep_seconds)
            await run_daily_batch_once()

        except asyncio.CancelledError:
            logger.info("Daily batch scheduler cancelled")
            break
        except Exception as e:
            logger.error(
                "Error in daily batch scheduler, will retry",
                error=str(e),
                error_type=type(e).__name__,
            )
            await asyncio.sleep(ERROR_RETRY_SECONDS)


if __name__ == "__main__":
    asyncio.run(run_daily_batch_once())
