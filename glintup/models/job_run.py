"""Execution history of the recurring scheduler and dispatcher triggers."""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from glintup.models.base import Base


class JobRun(Base):
    """
    One row per fired trigger, written when APScheduler releases the job.

    The health snapshot reads the latest successful `daily_schedule` run to
    decide whether the scheduler ran today.
    """

    __tablename__ = "job_runs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    job_id: Mapped[str] = mapped_column(String(100), index=True)
    scheduled_at: Mapped[datetime]
    started_at: Mapped[datetime]
    finished_at: Mapped[datetime]
    # APScheduler JobOutcome name: success, error, missed_start_deadline, cancelled...
    outcome: Mapped[str] = mapped_column(String(32))
    error: Mapped[str | None] = mapped_column(Text, default=None)

    @property
    def duration_seconds(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()
