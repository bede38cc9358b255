"""
Delivery dispatch: drain due outbox jobs through the WhatsApp and email providers.

Jobs are claimed one row at a time (FOR UPDATE SKIP LOCKED on Postgres),
sent, and committed before the next is claimed, so concurrent drains never
send the same job and a crash loses at most the job in flight.

Transient provider errors keep the job queued with its send time pushed
back; the next drain picks it up. Nothing sleeps in-process.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from glintup.config import DeliveryConfig, get_config
from glintup.core.datetime_utils import utc_now
from glintup.core.errors import (
    ConfigurationError,
    DeliveryError,
    InvalidTransitionError,
    TransientDeliveryError,
)
from glintup.core.logging import get_logger
from glintup.models.delivery_status import DeliveryStatusRecord
from glintup.models.outbox import OutboxJob, OutboxStatus
from glintup.models.subscriber import Channel
from glintup.services.email_service import EmailProvider
from glintup.services.whatsapp_service import SendResult, WhatsAppProvider

logger = get_logger(__name__)


class DeliveryProvider(Protocol):
    """A channel that can deliver one scheduled word."""

    name: str

    async def send(self, to: str | None, payload: dict[str, Any]) -> SendResult: ...


@dataclass
class DispatchOutcome:
    """Result of one dispatch attempt."""

    job_id: str
    status: str  # sent, failed, retry, skipped, missing
    reason: str | None = None
    provider_message_id: str | None = None


@dataclass
class DispatchStats:
    processed: int = 0
    sent: int = 0
    failed: int = 0
    retried: int = 0
    skipped: int = 0
    errors: list[dict[str, str]] = field(default_factory=list)

    def record(self, outcome: DispatchOutcome) -> None:
        self.processed += 1
        if outcome.status == "sent":
            self.sent += 1
        elif outcome.status == "failed":
            self.failed += 1
        elif outcome.status == "retry":
            self.retried += 1
        else:
            self.skipped += 1


def default_providers() -> dict[Channel, DeliveryProvider]:
    return {Channel.WHATSAPP: WhatsAppProvider(), Channel.EMAIL: EmailProvider()}


def retry_delay(attempts: int, base_minutes: int) -> timedelta:
    """Exponential backoff: base, 2*base, 4*base, ..."""
    return timedelta(minutes=base_minutes * 2 ** max(attempts - 1, 0))


async def _load_job(db: AsyncSession, job_id: uuid.UUID) -> OutboxJob | None:
    query = (
        select(OutboxJob)
        .where(OutboxJob.id == job_id)
        .with_for_update(of=OutboxJob)
        .execution_options(populate_existing=True)
    )
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def claim_next_due_job(
    db: AsyncSession, now: datetime, seen: set[uuid.UUID]
) -> uuid.UUID | None:
    """Lock and return the oldest due queued job not yet handled in this run."""
    query = (
        select(OutboxJob.id)
        .where(OutboxJob.status == OutboxStatus.QUEUED, OutboxJob.send_at <= now)
        .order_by(OutboxJob.send_at, OutboxJob.id)
        .limit(1)
        .with_for_update(skip_locked=True)
    )
    if seen:
        query = query.where(OutboxJob.id.not_in(seen))
    result = await db.execute(query)
    return result.scalar_one_or_none()


def _record_status(
    db: AsyncSession,
    job: OutboxJob,
    provider: str,
    status: str,
    now: datetime,
    recipient: str | None = None,
    provider_message_id: str | None = None,
    error: DeliveryError | None = None,
    error_code: str | None = None,
    error_message: str | None = None,
) -> None:
    raw = None
    if error is not None:
        error_code = str(error.status_code) if error.status_code else error.reason
        error_message = str(error)
        raw = {"reason": error.reason, "detail": error.detail} if error.detail else {"reason": error.reason}
    db.add(
        DeliveryStatusRecord(
            outbox_job_id=job.id,
            provider_message_id=provider_message_id,
            provider=provider,
            status=status,
            recipient=recipient,
            error_code=error_code,
            error_message=error_message,
            raw=raw,
            created_at=now,
        )
    )


def _fail(job: OutboxJob, reason: str, detail: str | None) -> None:
    job.transition_to(OutboxStatus.FAILED)
    job.error_reason = reason
    job.error_detail = detail


def _record_delivery_error(
    db: AsyncSession,
    job: OutboxJob,
    channel: Channel,
    address: str,
    error: DeliveryError,
    config: DeliveryConfig,
    now: datetime,
    log: Any,
) -> DispatchOutcome:
    """Keep a transient failure queued with backoff until the attempt cap, else fail it."""
    job_id = str(job.id)
    if error.transient and job.attempts < config.max_attempts:
        # Offset by slot position so one subscriber's retries keep distinct send times
        job.send_at = (
            now
            + retry_delay(job.attempts, config.retry_backoff_minutes)
            + timedelta(seconds=int(job.payload.get("position") or 0))
        )
        job.error_reason = error.reason
        job.error_detail = error.describe()
        _record_status(db, job, channel.value, "retry", now, recipient=address, error=error)
        log.bind(error=error.describe(), next_attempt_at=job.send_at.isoformat()).warning(
            "dispatch_transient_error"
        )
        return DispatchOutcome(job_id=job_id, status="retry", reason=error.reason)

    _fail(job, error.reason, error.describe())
    _record_status(db, job, channel.value, "failed", now, recipient=address, error=error)
    log.bind(error=error.describe(), detail=str(error.detail)[:300]).error("dispatch_failed")
    return DispatchOutcome(job_id=job_id, status="failed", reason=error.reason)


async def deliver_job(
    db: AsyncSession,
    job: OutboxJob,
    providers: dict[Channel, DeliveryProvider],
    config: DeliveryConfig,
    now: datetime,
) -> DispatchOutcome:
    """
    Attempt one send for a queued job and record the outcome on it.

    Mutates the job and appends a status record; the caller commits.
    """
    job_id = str(job.id)
    if job.status != OutboxStatus.QUEUED:
        # Already sent, failed or cancelled: never re-send
        logger.bind(job_id=job_id, status=job.status.value).info("dispatch_skipped_not_queued")
        return DispatchOutcome(job_id=job_id, status="skipped", reason=job.status.value)

    subscriber = job.subscriber
    channel = job.channel
    address = subscriber.address_for(channel) if subscriber else None
    if address is None and subscriber is not None:
        fallback_channel = subscriber.resolve_channel()
        if fallback_channel is not None:
            channel = fallback_channel
            address = subscriber.address_for(channel)

    job.attempts += 1
    job.last_attempt_at = now
    log = logger.bind(
        job_id=job_id,
        subscriber_id=str(job.subscriber_id),
        channel=channel.value,
        attempt=job.attempts,
    )

    if address is None:
        _fail(job, "no-target", "subscriber has no phone number or email")
        _record_status(db, job, channel.value, "failed", now, error_code="no-target")
        log.warning("dispatch_no_target")
        return DispatchOutcome(job_id=job_id, status="failed", reason="no-target")

    provider = providers[channel]
    try:
        result = await provider.send(address, job.payload)
    except ConfigurationError as e:
        _fail(job, "configuration", str(e))
        _record_status(
            db, job, channel.value, "failed", now, recipient=address,
            error_code="configuration", error_message=str(e),
        )
        log.bind(error=str(e)).error("dispatch_configuration_error")
        return DispatchOutcome(job_id=job_id, status="failed", reason="configuration")
    except DeliveryError as e:
        return _record_delivery_error(db, job, channel, address, e, config, now, log)
    except Exception as e:
        # Unclassified provider failure counts as transient, so retries stay bounded
        log.bind(error=repr(e)).exception("dispatch_unclassified_error")
        error = TransientDeliveryError(
            f"unexpected provider error: {e}",
            provider=channel.value,
            reason="provider-error",
            detail=repr(e),
        )
        return _record_delivery_error(db, job, channel, address, error, config, now, log)

    job.transition_to(OutboxStatus.SENT)
    job.channel = channel
    job.provider_message_id = result.provider_message_id
    job.error_reason = None
    job.error_detail = None
    _record_status(
        db, job, channel.value, "sent", now,
        recipient=result.recipient, provider_message_id=result.provider_message_id,
    )
    log.bind(message_id=result.provider_message_id).info("dispatch_sent")
    return DispatchOutcome(
        job_id=job_id, status="sent", provider_message_id=result.provider_message_id
    )


async def dispatch_job(
    db: AsyncSession,
    job_id: uuid.UUID,
    providers: dict[Channel, DeliveryProvider] | None = None,
    now: datetime | None = None,
) -> DispatchOutcome:
    """
    Dispatch a single job now, regardless of its send time.

    A job that is not queued (including one already sent) is left untouched.
    """
    job = await _load_job(db, job_id)
    if job is None:
        return DispatchOutcome(job_id=str(job_id), status="missing")
    outcome = await deliver_job(
        db, job, providers or default_providers(), get_config().delivery, now or utc_now()
    )
    await db.commit()
    return outcome


async def dispatch_due_jobs(
    db: AsyncSession,
    providers: dict[Channel, DeliveryProvider] | None = None,
    now: datetime | None = None,
    limit: int | None = None,
) -> DispatchStats:
    """
    Send every queued job whose send time has arrived.

    Each job is claimed, attempted and committed on its own. A job whose
    processing raises unexpectedly is rolled back, logged and left queued
    for the next drain.

    Args:
        db: Database session
        providers: Channel to provider mapping (defaults to WhatsApp and Resend)
        now: Reference time (defaults to utc_now())
        limit: Maximum jobs per run (defaults to the configured batch size)

    Returns:
        DispatchStats with per-outcome counts
    """
    config = get_config().delivery
    providers = providers or default_providers()
    now = now or utc_now()
    limit = limit or config.batch_size
    stats = DispatchStats()
    seen: set[uuid.UUID] = set()

    while len(seen) < limit:
        job_id = await claim_next_due_job(db, now, seen)
        if job_id is None:
            break
        seen.add(job_id)

        try:
            # Re-read under lock to honor a last-moment cancellation
            job = await _load_job(db, job_id)
            if job is None:
                await db.rollback()
                continue
            outcome = await deliver_job(db, job, providers, config, now)
            await db.commit()
            stats.record(outcome)
        except InvalidTransitionError as e:
            await db.rollback()
            stats.skipped += 1
            logger.bind(job_id=str(job_id), error=str(e)).warning("dispatch_transition_rejected")
        except Exception as e:
            await db.rollback()
            stats.errors.append({"job_id": str(job_id), "error": str(e)})
            logger.bind(job_id=str(job_id), error=str(e)).exception("dispatch_job_error")

    logger.bind(
        processed=stats.processed,
        sent=stats.sent,
        failed=stats.failed,
        retried=stats.retried,
        skipped=stats.skipped,
        errors=len(stats.errors),
    ).info("outbox_dispatch_complete")
    return stats


async def cancel_job(db: AsyncSession, job_id: uuid.UUID) -> OutboxJob | None:
    """queued -> cancelled. Raises InvalidTransitionError for any other status."""
    job = await _load_job(db, job_id)
    if job is None:
        return None
    job.transition_to(OutboxStatus.CANCELLED)
    await db.commit()
    logger.bind(job_id=str(job_id)).info("outbox_job_cancelled")
    return job


async def retry_job(db: AsyncSession, job_id: uuid.UUID) -> OutboxJob | None:
    """Operator retry: failed -> queued with the attempt count reset."""
    job = await _load_job(db, job_id)
    if job is None:
        return None
    requeue(job)
    await db.commit()
    logger.bind(job_id=str(job_id)).info("outbox_job_requeued")
    return job


def requeue(job: OutboxJob) -> None:
    """failed -> queued, keeping the original send time."""
    job.transition_to(OutboxStatus.QUEUED)
    job.attempts = 0
    job.error_reason = None
    job.error_detail = None
