from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

AlertLevel = Literal["warning", "critical"]
HealthStatus = Literal["healthy", "warning", "critical"]
RepairAction = Literal["rerun-scheduler", "requeue-failed", "backfill-settings", "purge-unreachable"]


class Alert(BaseModel):
    """A single threshold breach with the operator action that addresses it."""

    level: AlertLevel
    code: str
    message: str
    action: str


class HealthSnapshot(BaseModel):
    """Read-only aggregate view of scheduling and delivery state."""

    status: HealthStatus
    checked_at: datetime
    scheduler_ran_today: bool
    last_run_at: datetime | None = None
    queue_size: int
    sent: int
    failed: int
    failure_rate: float
    window_hours: int
    active_subscribers: int
    subscribers_covered: int
    coverage: float
    alerts: list[Alert] = Field(default_factory=list)


class RepairResult(BaseModel):
    """Outcome of one repair action."""

    action: RepairAction
    affected: int
    details: dict[str, Any] = Field(default_factory=dict)
