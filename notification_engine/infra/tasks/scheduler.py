"""APScheduler integration for the engine's periodic jobs.

Two jobs run inside the API process:
- retry sweep: re-dispatches FAILED notifications whose backoff elapsed
- housekeeping: removes settled notifications past the retention window

Each job opens its own session. ``max_instances=1`` keeps a slow sweep from
overlapping the next tick.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from apscheduler.schedulers.asyncio import (
    AsyncIOScheduler,  # type: ignore[import-untyped]
)
from apscheduler.triggers.interval import (
    IntervalTrigger,  # type: ignore[import-untyped]
)

from notification_engine.core.settings import get_notification_settings
from notification_engine.features.notifications.retry import RetryScheduler
from notification_engine.features.notifications.service import get_notification_service
from notification_engine.infra.database import get_async_session

if TYPE_CHECKING:
    from notification_engine.features.notifications.retry import RetrySweepResult
    from notification_engine.features.notifications.service import HousekeepingResult

logger = logging.getLogger(__name__)

RETRY_SWEEP_JOB_ID = "notification_retry_sweep"
HOUSEKEEPING_JOB_ID = "notification_housekeeping"

scheduler = AsyncIOScheduler(
    timezone="UTC",
    job_defaults={
        "coalesce": True,  # Combine multiple pending executions into one
        "max_instances": 1,  # Only one instance of each job at a time
        "misfire_grace_time": 60,  # Allow 60s delay before considering job missed
    },
)


async def run_retry_sweep() -> RetrySweepResult:
    """Run one retry sweep in a fresh session."""
    async with get_async_session() as session:
        return await RetryScheduler().run_once(session)


async def run_housekeeping() -> HousekeepingResult:
    """Run one housekeeping pass in a fresh session."""
    async with get_async_session() as session:
        return await get_notification_service().cleanup(session)


async def _retry_sweep_job() -> None:
    try:
        await run_retry_sweep()
    except Exception:
        logger.exception("Retry sweep failed")


async def _housekeeping_job() -> None:
    try:
        await run_housekeeping()
    except Exception:
        logger.exception("Housekeeping failed")


def setup_scheduled_jobs() -> None:
    """Register the periodic jobs. Safe to call more than once."""
    settings = get_notification_settings()

    scheduler.add_job(
        func=_retry_sweep_job,
        trigger=IntervalTrigger(seconds=settings.retry_interval_seconds),
        id=RETRY_SWEEP_JOB_ID,
        name="Retry failed notifications",
        replace_existing=True,
    )

    if settings.cleanup_enabled:
        scheduler.add_job(
            func=_housekeeping_job,
            trigger=IntervalTrigger(hours=settings.cleanup_interval_hours),
            id=HOUSEKEEPING_JOB_ID,
            name="Remove settled notifications",
            replace_existing=True,
        )
    elif scheduler.get_job(HOUSEKEEPING_JOB_ID) is not None:
        scheduler.remove_job(HOUSEKEEPING_JOB_ID)

    logger.info(
        "Scheduled notification jobs",
        extra={
            "jobs": len(scheduler.get_jobs()),
            "retry_interval_seconds": settings.retry_interval_seconds,
            "cleanup_enabled": settings.cleanup_enabled,
        },
    )


async def start_scheduler() -> None:
    """Start the APScheduler.

    Call during application startup after setup_scheduled_jobs().
    """
    if not scheduler.running:
        logger.info("Starting APScheduler")
        scheduler.start()
        logger.info(f"APScheduler started with {len(scheduler.get_jobs())} jobs")
    else:
        logger.warning("APScheduler is already running")


async def stop_scheduler() -> None:
    """Stop the APScheduler gracefully."""
    if scheduler.running:
        logger.info("Stopping APScheduler")
        scheduler.shutdown(wait=True)
        logger.info("APScheduler stopped")
    else:
        logger.debug("APScheduler is not running")


def get_job_status() -> list[dict[str, Any]]:
    """Describe the registered jobs and their next run time."""
    jobs = []
    for job in scheduler.get_jobs():
        # Pending jobs get a next_run_time only once the scheduler starts
        next_run = getattr(job, "next_run_time", None)
        jobs.append(
            {
                "id": job.id,
                "name": job.name,
                "next_run_time": next_run.isoformat() if next_run else None,
                "trigger": str(job.trigger),
            }
        )
    return jobs
