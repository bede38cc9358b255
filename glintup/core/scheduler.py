"""
APScheduler integration for FastAPI.

Runs the two recurring delivery triggers in-process.

Jobs:
- Daily schedule: creates today's outbox jobs for every active subscriber
  (default 00:05 UTC)
- Outbox dispatch: drains due outbox jobs (default every 5 minutes)
"""

from datetime import UTC, datetime
from typing import Any

from apscheduler import AsyncScheduler, ConflictPolicy, JobOutcome, JobReleased
from apscheduler.datastores.memory import MemoryDataStore
from apscheduler.triggers.cron import CronTrigger

from glintup.config import get_config, get_settings
from glintup.core.database import AsyncSessionLocal
from glintup.core.datetime_utils import parse_time_of_day, utc_now
from glintup.core.logging import get_logger

logger = get_logger(__name__)

DAILY_SCHEDULE_JOB_ID = "daily_schedule"
OUTBOX_DISPATCH_JOB_ID = "outbox_dispatch"

# Global scheduler instance
scheduler: AsyncScheduler | None = None


async def daily_schedule_job() -> None:
    """Create today's outbox jobs. Safe to fire more than once a day."""
    from glintup.services.outbox_scheduler import schedule_today

    logger.info("scheduled_daily_schedule_started")

    async with AsyncSessionLocal() as db:
        try:
            stats = await schedule_today(db)
            logger.bind(
                jobs_created=stats.jobs_created,
                skipped_scheduled=stats.skipped_scheduled,
                skipped_invalid=stats.skipped_invalid,
                failed=stats.failed,
            ).info("scheduled_daily_schedule_completed")
        except Exception as e:
            logger.bind(error=str(e)).error("scheduled_daily_schedule_failed")
            raise  # Re-raise so APScheduler records the failure


async def outbox_dispatch_job() -> None:
    """Send every queued job whose send time has arrived."""
    from glintup.services.delivery_dispatch import dispatch_due_jobs

    logger.debug("outbox_dispatch_job_started")

    async with AsyncSessionLocal() as db:
        try:
            stats = await dispatch_due_jobs(db)
            if stats.processed or stats.errors:
                logger.bind(
                    sent=stats.sent,
                    failed=stats.failed,
                    retried=stats.retried,
                    errors=len(stats.errors),
                ).info("outbox_dispatch_job_completed")
            else:
                logger.debug("outbox_dispatch_nothing_due")
        except Exception as e:
            logger.bind(error=str(e)).error("outbox_dispatch_job_failed")
            raise


def _naive_utc(value: datetime | None) -> datetime:
    if value is None:
        return utc_now()
    if value.tzinfo is not None:
        return value.astimezone(UTC).replace(tzinfo=None)
    return value


async def _record_job_result(
    job_id: str,
    scheduled_at: datetime,
    started_at: datetime,
    outcome: JobOutcome,
    error: str | None = None,
) -> None:
    """Record job execution result to database."""
    from glintup.models.job_run import JobRun

    async with AsyncSessionLocal() as db:
        job_run = JobRun(
            job_id=job_id,
            scheduled_at=scheduled_at,
            started_at=started_at,
            finished_at=utc_now(),
            outcome=outcome.name,
            error=error,
        )
        db.add(job_run)
        await db.commit()


def daily_trigger() -> CronTrigger:
    run_time = parse_time_of_day(get_config().schedule.daily_run_time_utc)
    if run_time is None:
        raise ValueError("schedule.daily_run_time_utc must be HH:MM")
    return CronTrigger(hour=run_time.hour, minute=run_time.minute, timezone="UTC")


def dispatch_trigger() -> CronTrigger:
    interval = get_config().schedule.dispatch_interval_minutes
    return CronTrigger(minute=f"*/{interval}", timezone="UTC")


async def start_scheduler() -> AsyncScheduler | None:
    """Initialize and start the in-process scheduler."""
    global scheduler

    settings = get_settings()

    if not settings.scheduler_enabled:
        logger.info("scheduler_disabled_by_config")
        return None

    # Schedules live in memory; every run's state is in the database
    data_store = MemoryDataStore()
    scheduler = AsyncScheduler(data_store=data_store)

    # Start the scheduler first (required before calling other methods in APScheduler 4.x)
    await scheduler.__aenter__()

    # Subscribe to job events for history tracking
    scheduler.subscribe(_on_job_completed)

    await scheduler.add_schedule(
        daily_schedule_job,
        daily_trigger(),
        id=DAILY_SCHEDULE_JOB_ID,
        conflict_policy=ConflictPolicy.replace,
    )

    await scheduler.add_schedule(
        outbox_dispatch_job,
        dispatch_trigger(),
        id=OUTBOX_DISPATCH_JOB_ID,
        conflict_policy=ConflictPolicy.replace,
    )

    # Start the scheduler's background worker to actually process jobs
    await scheduler.start_in_background()

    logger.bind(jobs=[DAILY_SCHEDULE_JOB_ID, OUTBOX_DISPATCH_JOB_ID]).info("scheduler_started")

    return scheduler


async def _on_job_completed(event: Any) -> None:
    """Handle job completion events."""
    if isinstance(event, JobReleased):
        try:
            exception = getattr(event, "exception", None)

            await _record_job_result(
                job_id=event.schedule_id or "unknown",
                scheduled_at=_naive_utc(getattr(event, "scheduled_fire_time", None)),
                started_at=_naive_utc(getattr(event, "started_at", None)),
                outcome=event.outcome,
                error=str(exception) if event.outcome == JobOutcome.error and exception else None,
            )
        except Exception as e:
            logger.bind(error=str(e)).error("failed_to_record_job_result")


async def stop_scheduler() -> None:
    """Gracefully stop the scheduler."""
    global scheduler

    if scheduler:
        await scheduler.__aexit__(None, None, None)
        logger.info("scheduler_stopped")
        scheduler = None


async def get_job_schedules() -> list[dict[str, Any]]:
    """Get all registered job schedules."""
    if not scheduler:
        return []

    schedules = await scheduler.get_schedules()
    return [
        {
            "id": s.id,
            "task_id": s.task_id,
            "trigger": str(s.trigger),
            "next_fire_time": s.next_fire_time.isoformat() if s.next_fire_time else None,
            "last_fire_time": s.last_fire_time.isoformat() if s.last_fire_time else None,
        }
        for s in schedules
    ]
