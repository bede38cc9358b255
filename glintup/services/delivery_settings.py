"""Subscriber delivery settings: defaults, validation and replacement."""

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from glintup.config import DeliveryConfig, get_config
from glintup.core.datetime_utils import is_valid_timezone, minutes_of_day, parse_time_of_day, utc_now
from glintup.core.errors import ValidationError
from glintup.core.logging import get_logger
from glintup.models.subscriber import CustomDeliveryTime, DeliveryMode, DeliverySettings, Subscriber
from glintup.pipeline.planner import (
    effective_words_per_day,
    normalize_time,
    plan_for_subscriber,
    validate_words_per_day,
)
from glintup.schemas.settings import DeliverySettingsResponse, DeliverySettingsUpdate

logger = get_logger(__name__)


def default_settings(subscriber_id: uuid.UUID, config: DeliveryConfig | None = None) -> DeliverySettings:
    config = config or get_config().delivery
    return DeliverySettings(
        subscriber_id=subscriber_id,
        mode=DeliveryMode.AUTO,
        words_per_day=config.default_words_per_day,
        timezone=config.default_timezone,
        auto_window_start=config.default_window_start,
        auto_window_end=config.default_window_end,
        updated_at=utc_now(),
    )


async def ensure_delivery_settings(
    db: AsyncSession,
    subscriber: Subscriber,
    config: DeliveryConfig | None = None,
) -> DeliverySettings:
    """Return the subscriber's settings, creating the defaults if missing."""
    if subscriber.delivery_settings is not None:
        return subscriber.delivery_settings

    settings = default_settings(subscriber.id, config)
    db.add(settings)
    subscriber.delivery_settings = settings
    await db.flush()
    logger.bind(subscriber_id=str(subscriber.id)).info("delivery_settings_defaulted")
    return settings


def validate_settings_update(update: DeliverySettingsUpdate) -> list[str]:
    """
    Check a settings update and return its normalized custom times.

    Raises:
        ValidationError: On the first rule the update breaks
    """
    validate_words_per_day(update.words_per_day)

    if not is_valid_timezone(update.timezone):
        raise ValidationError(f"unknown timezone {update.timezone!r}", field="timezone")

    start = normalize_time(update.auto_window_start, "auto_window_start")
    end = normalize_time(update.auto_window_end, "auto_window_end")
    if minutes_of_day(parse_time_of_day(end)) <= minutes_of_day(parse_time_of_day(start)):
        raise ValidationError("auto window end must be after its start", field="auto_window_end")

    times = [normalize_time(t, "custom_times") for t in update.custom_times]
    if len(set(times)) != len(times):
        raise ValidationError("custom delivery times must be distinct", field="custom_times")
    if update.mode == DeliveryMode.CUSTOM.value and len(times) != update.words_per_day:
        raise ValidationError(
            f"custom mode needs exactly {update.words_per_day} times, got {len(times)}",
            field="custom_times",
        )
    return times


async def get_subscriber(db: AsyncSession, subscriber_id: uuid.UUID) -> Subscriber | None:
    result = await db.execute(
        select(Subscriber)
        .where(Subscriber.id == subscriber_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def build_settings_response(subscriber: Subscriber, config: DeliveryConfig | None = None) -> DeliverySettingsResponse:
    config = config or get_config().delivery
    settings = subscriber.delivery_settings
    return DeliverySettingsResponse(
        subscriber_id=str(subscriber.id),
        mode=settings.mode.value,
        words_per_day=settings.words_per_day,
        effective_words_per_day=effective_words_per_day(
            subscriber, settings, config.free_max_words, config.pro_max_words
        ),
        timezone=settings.timezone,
        auto_window_start=settings.auto_window_start,
        auto_window_end=settings.auto_window_end,
        custom_times=[ct.time for ct in subscriber.custom_times],
        planned_times=plan_for_subscriber(
            subscriber,
            settings,
            config.free_max_words,
            config.pro_max_words,
            config.default_auto_times,
        ),
        updated_at=settings.updated_at,
    )


async def update_delivery_settings(
    db: AsyncSession,
    subscriber: Subscriber,
    update: DeliverySettingsUpdate,
) -> Subscriber:
    """
    Replace a subscriber's schedule preferences.

    Custom times are replaced wholesale. Nothing is corrected silently: any
    invalid field raises before the database is touched.
    """
    times = validate_settings_update(update)
    settings = await ensure_delivery_settings(db, subscriber)

    settings.mode = DeliveryMode(update.mode)
    settings.words_per_day = update.words_per_day
    settings.timezone = update.timezone
    settings.auto_window_start = normalize_time(update.auto_window_start)
    settings.auto_window_end = normalize_time(update.auto_window_end)
    settings.updated_at = utc_now()

    # Flush the removals first so (subscriber, position) stays unique
    subscriber.custom_times.clear()
    await db.flush()
    subscriber.custom_times.extend(
        CustomDeliveryTime(subscriber_id=subscriber.id, position=i, time=t)
        for i, t in enumerate(times, start=1)
    )
    await db.flush()

    logger.bind(
        subscriber_id=str(subscriber.id),
        mode=update.mode,
        words_per_day=update.words_per_day,
        custom_times=times,
    ).info("delivery_settings_updated")

    return subscriber
