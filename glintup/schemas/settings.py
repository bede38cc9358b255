from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class DeliverySettingsUpdate(BaseModel):
    """Full replacement of a subscriber's schedule preferences.

    Field shapes are checked here; cross-field rules (custom count, distinct
    times, window order, timezone) are enforced by the settings service so
    they raise the same ValidationError from every entry point.
    """

    mode: Literal["auto", "custom"] = "auto"
    words_per_day: int = 3
    timezone: str = "Asia/Kolkata"
    auto_window_start: str = "09:00"
    auto_window_end: str = "21:00"
    custom_times: list[str] = Field(default_factory=list)


class DeliverySettingsResponse(BaseModel):
    subscriber_id: str
    mode: Literal["auto", "custom"]
    words_per_day: int
    effective_words_per_day: int
    timezone: str
    auto_window_start: str
    auto_window_end: str
    custom_times: list[str]
    planned_times: list[str]
    updated_at: datetime | None = None
