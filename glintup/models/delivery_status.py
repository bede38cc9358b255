"""Provider-reported delivery outcomes (append-only)."""

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from glintup.models.base import Base


class DeliveryStatusRecord(Base):
    """One status event for a sent message.

    Produced by the dispatcher for every attempt and by provider webhooks
    (sent, delivered, read, failed). Never updated after insert.
    """

    __tablename__ = "delivery_status_records"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    outbox_job_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("outbox_jobs.id", ondelete="SET NULL"), index=True, default=None
    )
    provider_message_id: Mapped[str | None] = mapped_column(String(128), index=True, default=None)
    provider: Mapped[str] = mapped_column(String(20))  # 'whatsapp' or 'email'
    status: Mapped[str] = mapped_column(String(20), index=True)
    recipient: Mapped[str | None] = mapped_column(String(255), default=None)
    error_code: Mapped[str | None] = mapped_column(String(50), default=None)
    error_message: Mapped[str | None] = mapped_column(Text, default=None)
    raw: Mapped[dict[str, Any] | None] = mapped_column(JSON, default=None)
    created_at: Mapped[datetime] = mapped_column()

    def __repr__(self) -> str:
        return f"<DeliveryStatusRecord {self.provider}:{self.status}>"
