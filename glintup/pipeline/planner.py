"""
Delivery-time planning.

Turns a subscriber's schedule preferences into the ordered HH:MM slots at
which each of the day's words is sent. Pure and deterministic: identical
input always yields the identical list.

Auto mode:
- 1 to 3 words: the fixed default slots (09:00, 12:00, 19:00), sliced
- 4 or 5 words: evenly interpolated across the auto window (inclusive),
  each point rounded to the nearest whole hour. If hour rounding makes two
  slots collide (narrow window), minute precision is used instead; a window
  too narrow even for that is rejected.

Custom mode: the subscriber's own times, truncated (or padded from the auto
plan) to the word count. Duplicate times are rejected, never merged.
"""

from collections.abc import Sequence

from glintup.core.datetime_utils import format_time_of_day, minutes_of_day, parse_time_of_day
from glintup.core.errors import ValidationError
from glintup.models.subscriber import DeliveryMode, DeliverySettings, Subscriber

DEFAULT_AUTO_TIMES: tuple[str, ...] = ("09:00", "12:00", "19:00")
MIN_WORDS_PER_DAY = 1
MAX_WORDS_PER_DAY = 5


def normalize_time(value: str, field: str = "time") -> str:
    """Normalize "9:00" / "09:00:00" to "09:00", raising on anything else."""
    parsed = parse_time_of_day(value) if isinstance(value, str) else None
    if parsed is None:
        raise ValidationError(f"invalid time of day {value!r}, expected HH:MM", field=field)
    return format_time_of_day(parsed)


def validate_words_per_day(words_per_day: int) -> None:
    if not isinstance(words_per_day, int) or not (
        MIN_WORDS_PER_DAY <= words_per_day <= MAX_WORDS_PER_DAY
    ):
        raise ValidationError(
            f"words per day must be between {MIN_WORDS_PER_DAY} and {MAX_WORDS_PER_DAY}",
            field="words_per_day",
        )


def _format_minutes(total: int) -> str:
    return f"{total // 60:02d}:{total % 60:02d}"


def _interpolate(start: int, end: int, count: int) -> list[float]:
    step = (end - start) / (count - 1)
    return [start + i * step for i in range(count)]


def auto_times(
    words_per_day: int,
    window_start: str = "09:00",
    window_end: str = "21:00",
    default_times: Sequence[str] = DEFAULT_AUTO_TIMES,
) -> list[str]:
    """Evenly spaced slots for auto mode."""
    validate_words_per_day(words_per_day)

    if words_per_day <= len(default_times):
        return [normalize_time(t) for t in default_times[:words_per_day]]

    start = minutes_of_day(parse_time_of_day(normalize_time(window_start, "auto_window_start")))
    end = minutes_of_day(parse_time_of_day(normalize_time(window_end, "auto_window_end")))
    if end <= start:
        raise ValidationError("auto window end must be after its start", field="auto_window_end")

    points = _interpolate(start, end, words_per_day)

    # Nearest whole hour, halves rounding up
    hourly = [int((p + 30) // 60) * 60 for p in points]
    if len(set(hourly)) == len(hourly):
        return [_format_minutes(m) for m in hourly]

    by_minute = [int(p + 0.5) for p in points]
    if len(set(by_minute)) == len(by_minute):
        return [_format_minutes(m) for m in by_minute]

    raise ValidationError(
        f"auto window too narrow for {words_per_day} distinct times", field="auto_window_end"
    )


def custom_times_plan(
    words_per_day: int,
    custom_times: Sequence[str],
    window_start: str = "09:00",
    window_end: str = "21:00",
    default_times: Sequence[str] = DEFAULT_AUTO_TIMES,
) -> list[str]:
    """Slots for custom mode, in chronological order."""
    validate_words_per_day(words_per_day)
    if not custom_times:
        raise ValidationError("custom mode requires at least one time", field="custom_times")

    chosen = [normalize_time(t, "custom_times") for t in custom_times[:words_per_day]]
    if len(set(chosen)) != len(chosen):
        raise ValidationError("custom delivery times must be distinct", field="custom_times")

    if len(chosen) < words_per_day:
        for slot in auto_times(words_per_day, window_start, window_end, default_times):
            if len(chosen) == words_per_day:
                break
            if slot not in chosen:
                chosen.append(slot)

    return sorted(chosen)


def plan_delivery_times(
    words_per_day: int,
    mode: DeliveryMode | str,
    auto_window_start: str = "09:00",
    auto_window_end: str = "21:00",
    custom_times: Sequence[str] | None = None,
    default_times: Sequence[str] = DEFAULT_AUTO_TIMES,
) -> list[str]:
    """
    Plan the day's send times for one subscriber.

    Args:
        words_per_day: Number of words delivered per day (1-5)
        mode: "auto" or "custom"
        auto_window_start: Start of the auto window (HH:MM)
        auto_window_end: End of the auto window (HH:MM)
        custom_times: Subscriber-picked times for custom mode
        default_times: Fixed auto slots used for up to len(default_times) words

    Returns:
        Ordered list of HH:MM strings, one per word

    Raises:
        ValidationError: On any malformed input or duplicate custom time
    """
    try:
        mode = DeliveryMode(mode)
    except ValueError:
        raise ValidationError(f"unknown delivery mode {mode!r}", field="mode") from None

    if mode == DeliveryMode.CUSTOM:
        return custom_times_plan(
            words_per_day, custom_times or [], auto_window_start, auto_window_end, default_times
        )
    return auto_times(words_per_day, auto_window_start, auto_window_end, default_times)


def effective_words_per_day(
    subscriber: Subscriber,
    settings: DeliverySettings,
    free_max: int = 3,
    pro_max: int = 5,
) -> int:
    """Stored preference clamped to the subscriber's tier cap."""
    cap = pro_max if subscriber.is_pro else free_max
    return max(MIN_WORDS_PER_DAY, min(settings.words_per_day, cap))


def plan_for_subscriber(
    subscriber: Subscriber,
    settings: DeliverySettings,
    free_max: int = 3,
    pro_max: int = 5,
    default_times: Sequence[str] = DEFAULT_AUTO_TIMES,
) -> list[str]:
    """Plan slots from a subscriber's stored settings and custom times."""
    words = effective_words_per_day(subscriber, settings, free_max, pro_max)
    return plan_delivery_times(
        words,
        settings.mode,
        settings.auto_window_start,
        settings.auto_window_end,
        [ct.time for ct in subscriber.custom_times],
        default_times,
    )
