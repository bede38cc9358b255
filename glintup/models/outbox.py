"""Outbox jobs: one scheduled word send per subscriber slot."""

from __future__ import annotations

import enum
import uuid
from datetime import date, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import JSON, Date, Enum, ForeignKey, Index, Integer, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from glintup.core.errors import InvalidTransitionError
from glintup.models.base import Base
from glintup.models.subscriber import Channel

if TYPE_CHECKING:
    from glintup.models.subscriber import Subscriber


class OutboxStatus(str, enum.Enum):
    """Lifecycle of an outbox job."""

    QUEUED = "queued"
    SENT = "sent"
    FAILED = "failed"
    CANCELLED = "cancelled"


# failed -> queued is the operator retry; sent and cancelled are terminal
ALLOWED_TRANSITIONS: dict[OutboxStatus, frozenset[OutboxStatus]] = {
    OutboxStatus.QUEUED: frozenset(
        {OutboxStatus.SENT, OutboxStatus.FAILED, OutboxStatus.CANCELLED}
    ),
    OutboxStatus.FAILED: frozenset({OutboxStatus.QUEUED}),
    OutboxStatus.SENT: frozenset(),
    OutboxStatus.CANCELLED: frozenset(),
}


class OutboxJob(Base):
    """A scheduled, not-yet-delivered word for one subscriber slot."""

    __tablename__ = "outbox_jobs"
    __table_args__ = (
        Index(
            "uq_outbox_pending_slot",
            "subscriber_id",
            "send_at",
            unique=True,
            postgresql_where=text("status = 'queued'"),
            sqlite_where=text("status = 'queued'"),
        ),
        Index("ix_outbox_status_send_at", "status", "send_at"),
        Index("ix_outbox_subscriber_slot_date", "subscriber_id", "slot_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    subscriber_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("subscribers.id", ondelete="CASCADE")
    )
    channel: Mapped[Channel] = mapped_column(
        Enum(
            Channel,
            values_callable=lambda e: [x.value for x in e],
            name="deliverychannel",
            create_type=False,
        )
    )

    # What to send
    word_ref: Mapped[str] = mapped_column(String(120))
    payload: Mapped[dict[str, Any]] = mapped_column(JSON)

    # When to send: local slot plus its UTC instant
    slot_date: Mapped[date] = mapped_column(Date)
    slot_time: Mapped[str] = mapped_column(String(5))
    send_at: Mapped[datetime] = mapped_column()

    status: Mapped[OutboxStatus] = mapped_column(
        Enum(
            OutboxStatus,
            values_callable=lambda e: [x.value for x in e],
            name="outboxstatus",
            create_type=False,
        ),
        default=OutboxStatus.QUEUED,
    )
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column()
    last_attempt_at: Mapped[datetime | None] = mapped_column(default=None)

    # Outcome
    provider_message_id: Mapped[str | None] = mapped_column(String(128), index=True, default=None)
    error_reason: Mapped[str | None] = mapped_column(String(50), default=None)
    error_detail: Mapped[str | None] = mapped_column(Text, default=None)

    subscriber: Mapped[Subscriber] = relationship(back_populates="outbox_jobs", lazy="selectin")

    def can_transition(self, target: OutboxStatus) -> bool:
        return target in ALLOWED_TRANSITIONS[self.status]

    def transition_to(self, target: OutboxStatus) -> None:
        """Move to a new status, refusing anything the state machine forbids."""
        if not self.can_transition(target):
            raise InvalidTransitionError(
                f"outbox job {self.id}: {self.status.value} -> {target.value} not allowed"
            )
        self.status = target

    def __repr__(self) -> str:
        return f"<OutboxJob {self.id} {self.slot_date} {self.slot_time} {self.status.value}>"
