"""WhatsApp webhook status ingestion."""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from glintup.core.datetime_utils import utc_now
from glintup.core.logging import get_logger
from glintup.models.delivery_status import DeliveryStatusRecord
from glintup.models.outbox import OutboxJob

logger = get_logger(__name__)

KNOWN_STATUSES = {"sent", "delivered", "read", "failed"}


def extract_statuses(payload: dict[str, Any]) -> list[dict[str, Any]]:
    """Flatten entry[].changes[].value.statuses[] from a Meta webhook body."""
    statuses: list[dict[str, Any]] = []
    for entry in payload.get("entry") or []:
        if not isinstance(entry, dict):
            continue
        for change in entry.get("changes") or []:
            if not isinstance(change, dict):
                continue
            value = change.get("value") or {}
            if not isinstance(value, dict):
                continue
            statuses.extend(s for s in value.get("statuses") or [] if isinstance(s, dict))
    return statuses


def _timestamp(value: Any) -> datetime:
    try:
        return datetime.fromtimestamp(int(value), UTC).replace(tzinfo=None)
    except (TypeError, ValueError, OverflowError):
        return utc_now()


async def record_whatsapp_statuses(db: AsyncSession, payload: dict[str, Any]) -> int:
    """
    Append one status record per reported message status.

    Records are linked to the outbox job whose provider message id matches.
    Unknown status values are skipped.

    Returns:
        Number of records written
    """
    written = 0
    for status in extract_statuses(payload):
        message_id = status.get("id")
        value = str(status.get("status", "")).lower()
        if not message_id or value not in KNOWN_STATUSES:
            logger.bind(message_id=message_id, status=value).debug("webhook_status_ignored")
            continue

        job_id = await db.scalar(
            select(OutboxJob.id).where(OutboxJob.provider_message_id == message_id).limit(1)
        )

        errors = status.get("errors") or []
        first_error = errors[0] if errors and isinstance(errors[0], dict) else {}

        db.add(
            DeliveryStatusRecord(
                outbox_job_id=job_id,
                provider_message_id=message_id,
                provider="whatsapp",
                status=value,
                recipient=status.get("recipient_id"),
                error_code=str(first_error["code"]) if "code" in first_error else None,
                error_message=first_error.get("title") or first_error.get("message"),
                raw=status,
                created_at=_timestamp(status.get("timestamp")),
            )
        )
        written += 1

        if value == "failed":
            logger.bind(
                message_id=message_id,
                job_id=str(job_id) if job_id else None,
                error=first_error,
            ).warning("whatsapp_delivery_failed")

    await db.flush()
    if written:
        logger.bind(records=written).info("webhook_statuses_recorded")
    return written
