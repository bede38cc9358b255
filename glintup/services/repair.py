"""
Operator repair actions.

Each action is independently invocable and idempotent: running it twice in
a row leaves the same state as running it once.
"""

from collections.abc import Awaitable, Callable
from datetime import date, datetime

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from glintup.core.datetime_utils import utc_now
from glintup.core.errors import ValidationError
from glintup.core.logging import get_logger
from glintup.models.outbox import OutboxJob, OutboxStatus
from glintup.models.subscriber import DeliverySettings, Subscriber
from glintup.pipeline.word_selection import WordSelector
from glintup.schemas.health import RepairResult
from glintup.services.delivery_dispatch import requeue
from glintup.services.delivery_settings import default_settings
from glintup.services.outbox_scheduler import schedule_today

logger = get_logger(__name__)


async def rerun_scheduler(
    db: AsyncSession,
    run_date: date | None = None,
    selector: WordSelector | None = None,
    now: datetime | None = None,
) -> RepairResult:
    """Re-run the outbox scheduler for a date; already-scheduled subscribers are skipped."""
    stats = await schedule_today(db, selector=selector, run_date=run_date, now=now)
    return RepairResult(action="rerun-scheduler", affected=stats.jobs_created, details=stats.as_dict())


async def requeue_failed(
    db: AsyncSession,
    run_date: date | None = None,
    now: datetime | None = None,
) -> RepairResult:
    """
    Move the day's failed jobs back to queued with a fresh attempt budget.

    A job whose slot is already held by another queued job is skipped and
    left failed; the rest are still requeued.
    """
    run_date = run_date or (now or utc_now()).date()
    result = await db.execute(
        select(OutboxJob).where(
            OutboxJob.slot_date == run_date, OutboxJob.status == OutboxStatus.FAILED
        )
    )
    jobs = list(result.scalars().all())

    requeued = 0
    skipped: list[str] = []
    for job in jobs:
        job_id = str(job.id)
        try:
            async with db.begin_nested():
                requeue(job)
                await db.flush()
            requeued += 1
        except IntegrityError as e:
            skipped.append(job_id)
            logger.bind(job_id=job_id, error=str(e.orig)).warning("requeue_slot_conflict")
    await db.commit()

    logger.bind(run_date=str(run_date), requeued=requeued, skipped=len(skipped)).info(
        "failed_jobs_requeued"
    )
    return RepairResult(
        action="requeue-failed",
        affected=requeued,
        details={"run_date": run_date.isoformat(), "skipped_job_ids": skipped},
    )


async def backfill_settings(db: AsyncSession) -> RepairResult:
    """Create default delivery settings for subscribers that have none."""
    result = await db.execute(
        select(Subscriber.id)
        .outerjoin(DeliverySettings, DeliverySettings.subscriber_id == Subscriber.id)
        .where(DeliverySettings.subscriber_id.is_(None))
    )
    missing = list(result.scalars().all())
    db.add_all(default_settings(subscriber_id) for subscriber_id in missing)
    await db.commit()

    logger.bind(created=len(missing)).info("delivery_settings_backfilled")
    return RepairResult(
        action="backfill-settings",
        affected=len(missing),
        details={"subscriber_ids": [str(s) for s in missing]},
    )


async def purge_unreachable(db: AsyncSession) -> RepairResult:
    """Deactivate subscriptions with no phone number and no email, cancelling their queue."""
    no_phone = or_(Subscriber.phone_number.is_(None), Subscriber.phone_number == "")
    no_email = or_(Subscriber.email.is_(None), Subscriber.email == "")
    result = await db.execute(
        select(Subscriber).where(Subscriber.is_active == True, and_(no_phone, no_email))  # noqa: E712
    )
    subscribers = list(result.scalars().all())

    cancelled = 0
    for subscriber in subscribers:
        subscriber.is_active = False
        jobs = await db.execute(
            select(OutboxJob).where(
                OutboxJob.subscriber_id == subscriber.id,
                OutboxJob.status == OutboxStatus.QUEUED,
            )
        )
        for job in jobs.scalars().all():
            job.transition_to(OutboxStatus.CANCELLED)
            cancelled += 1
    await db.commit()

    logger.bind(deactivated=len(subscribers), cancelled_jobs=cancelled).info(
        "unreachable_subscribers_purged"
    )
    return RepairResult(
        action="purge-unreachable",
        affected=len(subscribers),
        details={
            "subscriber_ids": [str(s.id) for s in subscribers],
            "cancelled_jobs": cancelled,
        },
    )


RepairHandler = Callable[..., Awaitable[RepairResult]]

REPAIR_ACTIONS: dict[str, RepairHandler] = {
    "rerun-scheduler": rerun_scheduler,
    "requeue-failed": requeue_failed,
    "backfill-settings": backfill_settings,
    "purge-unreachable": purge_unreachable,
}


async def run_repair(
    db: AsyncSession,
    action: str,
    run_date: date | None = None,
    selector: WordSelector | None = None,
) -> RepairResult:
    """Run one named repair action."""
    if action not in REPAIR_ACTIONS:
        raise ValidationError(
            f"unknown repair action {action!r}, expected one of {sorted(REPAIR_ACTIONS)}",
            field="action",
        )
    logger.bind(action=action).info("repair_started")
    if action == "rerun-scheduler":
        return await rerun_scheduler(db, run_date=run_date, selector=selector)
    if action == "requeue-failed":
        return await requeue_failed(db, run_date=run_date)
    return await REPAIR_ACTIONS[action](db)
