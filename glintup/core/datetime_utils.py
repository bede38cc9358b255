"""Centralized datetime utilities for consistent timezone handling.

All functions that return datetimes for storage return naive UTC values,
matching the naive UTC columns on the SQLAlchemy models.

Usage:
    from glintup.core.datetime_utils import utc_now, local_slot_to_utc

    now = utc_now()
    send_at = local_slot_to_utc(date(2026, 1, 5), "09:00", "Asia/Kolkata")
"""

import re
from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

_TIME_OF_DAY = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")


def utc_now() -> datetime:
    """Get current UTC time as naive datetime."""
    return datetime.now(UTC).replace(tzinfo=None)


def get_cutoff(hours: int = 0, days: int = 0, now: datetime | None = None) -> datetime:
    """Get cutoff datetime for filtering queries.

    Args:
        hours: Hours to subtract from now
        days: Days to subtract from now
        now: Reference time (defaults to utc_now())

    Returns:
        Naive UTC datetime representing the cutoff point
    """
    return (now or utc_now()) - timedelta(hours=hours, days=days)


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """Naive UTC [start, end) bounds of a calendar day."""
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


def is_valid_timezone(tz_name: str) -> bool:
    """Check if a timezone name is a valid IANA identifier."""
    try:
        ZoneInfo(tz_name)
        return True
    except (ZoneInfoNotFoundError, KeyError, ValueError):
        return False


def _zone(tz_name: str) -> ZoneInfo:
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, KeyError, ValueError):
        return ZoneInfo("UTC")


def parse_time_of_day(value: str) -> time | None:
    """Parse "H:MM", "HH:MM" or "HH:MM:SS" into a time, None if invalid."""
    match = _TIME_OF_DAY.match(value.strip()) if value else None
    if not match:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        return None
    return time(hour=hour, minute=minute)


def format_time_of_day(value: time) -> str:
    """Format a time as 24-hour HH:MM."""
    return f"{value.hour:02d}:{value.minute:02d}"


def minutes_of_day(value: time) -> int:
    return value.hour * 60 + value.minute


def local_slot_to_utc(day: date, slot: str, timezone: str) -> datetime:
    """Convert a wall-clock slot on a local date to naive UTC.

    Args:
        day: Local calendar date of the slot
        slot: Time of day in "HH:MM" format
        timezone: Subscriber's IANA timezone (invalid names fall back to UTC)

    Returns:
        Naive UTC datetime for the outbox send_at column
    """
    parsed = parse_time_of_day(slot)
    if parsed is None:
        raise ValueError(f"invalid time of day: {slot!r}")
    local_dt = datetime.combine(day, parsed, tzinfo=_zone(timezone))
    return local_dt.astimezone(UTC).replace(tzinfo=None)
