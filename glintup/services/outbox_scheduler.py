"""
Outbox scheduling: materialize today's send jobs for every active subscriber.

Each subscriber is planned, given words and queued in its own transaction,
so one subscriber's failure never discards another's jobs. Re-running for a
date that already has jobs is a no-op for that subscriber.
"""

import uuid
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from typing import Any

from sqlalchemy import exists, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from glintup.config import DeliveryConfig, get_config
from glintup.core.datetime_utils import local_slot_to_utc, utc_now
from glintup.core.errors import GlintupError, ValidationError
from glintup.core.logging import get_logger
from glintup.models.outbox import OutboxJob, OutboxStatus
from glintup.models.subscriber import Subscriber
from glintup.pipeline.generator import OpenAIWordGenerator
from glintup.pipeline.planner import plan_for_subscriber
from glintup.pipeline.word_selection import SelectedWord, WordSelector
from glintup.services.delivery_settings import ensure_delivery_settings

logger = get_logger(__name__)


@dataclass
class ScheduleStats:
    """Aggregate counts for one scheduling run."""

    run_date: date
    processed: int = 0
    jobs_created: int = 0
    skipped_scheduled: int = 0
    skipped_invalid: int = 0
    failed: int = 0
    errors: list[dict[str, str]] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["run_date"] = self.run_date.isoformat()
        return data


def default_selector() -> WordSelector:
    return WordSelector(generator=OpenAIWordGenerator())


def reachable_clause():
    """SQL condition for subscribers with at least one usable address."""
    return or_(
        (Subscriber.phone_number.is_not(None)) & (Subscriber.phone_number != ""),
        (Subscriber.email.is_not(None)) & (Subscriber.email != ""),
    )


async def get_active_subscriber_ids(
    db: AsyncSession, subscriber_ids: list[uuid.UUID] | None = None
) -> list[uuid.UUID]:
    query = select(Subscriber.id).where(Subscriber.is_active == True)  # noqa: E712
    if subscriber_ids:
        query = query.where(Subscriber.id.in_(subscriber_ids))
    result = await db.execute(query.order_by(Subscriber.created_at, Subscriber.id))
    return list(result.scalars().all())


async def load_subscriber(db: AsyncSession, subscriber_id: uuid.UUID) -> Subscriber | None:
    """Fresh load, safe after a rollback expired the identity map."""
    result = await db.execute(
        select(Subscriber)
        .where(Subscriber.id == subscriber_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def has_jobs_for_date(db: AsyncSession, subscriber_id: uuid.UUID, run_date: date) -> bool:
    """True if any non-cancelled job exists for the subscriber on run_date."""
    result = await db.execute(
        select(
            exists().where(
                OutboxJob.subscriber_id == subscriber_id,
                OutboxJob.slot_date == run_date,
                OutboxJob.status != OutboxStatus.CANCELLED,
            )
        )
    )
    return bool(result.scalar())


def build_payload(
    subscriber: Subscriber, word: SelectedWord, position: int, total: int
) -> dict[str, Any]:
    payload = word.to_payload()
    payload.update(position=position, total_words=total, first_name=subscriber.first_name)
    return payload


async def create_jobs_for_subscriber(
    db: AsyncSession,
    subscriber: Subscriber,
    selector: WordSelector,
    run_date: date,
    config: DeliveryConfig | None = None,
    now: datetime | None = None,
) -> list[OutboxJob]:
    """
    Plan slots, select words and queue one job per (slot, word) pair.

    Flushes but does not commit.

    Raises:
        ValidationError: Subscriber settings are malformed or no channel is usable
        ContentUnavailableError: Not enough words could be selected
    """
    config = config or get_config().delivery
    now = now or utc_now()

    channel = subscriber.resolve_channel()
    if channel is None:
        raise ValidationError("subscriber has no usable delivery address", field="channel")

    settings = await ensure_delivery_settings(db, subscriber, config)
    slots = plan_for_subscriber(
        subscriber,
        settings,
        config.free_max_words,
        config.pro_max_words,
        config.default_auto_times,
    )

    selection = await selector.select_words(db, subscriber, len(slots), now=now)

    jobs = []
    for position, (slot, word) in enumerate(zip(slots, selection.words, strict=True), start=1):
        jobs.append(
            OutboxJob(
                subscriber_id=subscriber.id,
                channel=channel,
                word_ref=word.word_ref,
                payload=build_payload(subscriber, word, position, len(slots)),
                slot_date=run_date,
                slot_time=slot,
                send_at=local_slot_to_utc(run_date, slot, settings.timezone),
                status=OutboxStatus.QUEUED,
                attempts=0,
                created_at=now,
            )
        )
    db.add_all(jobs)
    await db.flush()
    return jobs


async def schedule_today(
    db: AsyncSession,
    selector: WordSelector | None = None,
    run_date: date | None = None,
    subscriber_ids: list[uuid.UUID] | None = None,
    dry_run: bool = False,
    now: datetime | None = None,
) -> ScheduleStats:
    """
    Create today's outbox jobs for every active subscriber.

    Args:
        db: Database session
        selector: Word selector (defaults to OpenAI generation with fallback)
        run_date: Slot date to schedule (defaults to the current UTC date)
        subscriber_ids: Restrict the run to these subscribers
        dry_run: Plan and select without committing anything
        now: Reference time for created_at and history timestamps

    Returns:
        ScheduleStats with per-outcome counts and per-subscriber errors
    """
    now = now or utc_now()
    run_date = run_date or now.date()
    selector = selector or default_selector()
    config = get_config().delivery
    stats = ScheduleStats(run_date=run_date)

    ids = await get_active_subscriber_ids(db, subscriber_ids)
    logger.bind(run_date=str(run_date), subscribers=len(ids), dry_run=dry_run).info(
        "outbox_schedule_started"
    )

    for subscriber_id in ids:
        subscriber = await load_subscriber(db, subscriber_id)
        if subscriber is None:
            continue
        category = subscriber.category
        stats.processed += 1

        if await has_jobs_for_date(db, subscriber_id, run_date):
            stats.skipped_scheduled += 1
            continue

        try:
            jobs = await create_jobs_for_subscriber(db, subscriber, selector, run_date, config, now)
            if dry_run:
                await db.rollback()
            else:
                await db.commit()
            stats.jobs_created += len(jobs)
        except IntegrityError:
            # A concurrent run queued the same slots first
            await db.rollback()
            stats.skipped_scheduled += 1
            logger.bind(subscriber_id=str(subscriber_id)).warning("outbox_slot_conflict")
        except ValidationError as e:
            await db.rollback()
            stats.skipped_invalid += 1
            stats.errors.append({"subscriber_id": str(subscriber_id), "error": str(e)})
            logger.bind(
                subscriber_id=str(subscriber_id), category=category, field=e.field, error=str(e)
            ).warning("subscriber_skipped_invalid")
        except GlintupError as e:
            await db.rollback()
            stats.failed += 1
            stats.errors.append({"subscriber_id": str(subscriber_id), "error": str(e)})
            logger.bind(subscriber_id=str(subscriber_id), category=category, error=str(e)).error(
                "subscriber_schedule_failed"
            )
        except Exception as e:
            await db.rollback()
            stats.failed += 1
            stats.errors.append({"subscriber_id": str(subscriber_id), "error": str(e)})
            logger.bind(subscriber_id=str(subscriber_id), category=category, error=str(e)).exception(
                "subscriber_schedule_error"
            )

    logger.bind(**stats.as_dict()).info("outbox_schedule_complete")
    return stats
