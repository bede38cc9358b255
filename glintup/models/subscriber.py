"""Subscribers and their delivery configuration."""

from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Enum, ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from glintup.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from glintup.models.outbox import OutboxJob


class DeliveryMode(str, enum.Enum):
    """How daily send times are chosen."""

    AUTO = "auto"
    CUSTOM = "custom"


class Channel(str, enum.Enum):
    """Delivery channel for a subscriber's words."""

    WHATSAPP = "whatsapp"
    EMAIL = "email"


class Subscriber(Base, TimestampMixin):
    """A user's subscription: where to deliver and what to deliver."""

    __tablename__ = "subscribers"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str | None] = mapped_column(String(255), index=True, default=None)
    phone_number: Mapped[str | None] = mapped_column(String(20), index=True, default=None)
    first_name: Mapped[str | None] = mapped_column(String(100), default=None)

    is_pro: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    category: Mapped[str] = mapped_column(String(50), default="general")
    subcategory: Mapped[str | None] = mapped_column(String(50), default=None)
    preferred_channel: Mapped[Channel] = mapped_column(
        Enum(
            Channel,
            values_callable=lambda e: [x.value for x in e],
            name="deliverychannel",
            create_type=False,
        ),
        default=Channel.WHATSAPP,
    )

    # Relationships
    delivery_settings: Mapped[DeliverySettings | None] = relationship(
        back_populates="subscriber",
        lazy="selectin",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    custom_times: Mapped[list[CustomDeliveryTime]] = relationship(
        back_populates="subscriber",
        lazy="selectin",
        order_by="CustomDeliveryTime.position",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    outbox_jobs: Mapped[list[OutboxJob]] = relationship(
        back_populates="subscriber",
        lazy="noload",
        passive_deletes=True,
    )

    def address_for(self, channel: Channel) -> str | None:
        """Delivery address for a channel, None if the subscriber has none."""
        value = self.phone_number if channel == Channel.WHATSAPP else self.email
        return value.strip() if value and value.strip() else None

    def resolve_channel(self) -> Channel | None:
        """Preferred channel when reachable there, otherwise the other one."""
        preferred = self.preferred_channel or Channel.WHATSAPP
        if self.address_for(preferred):
            return preferred
        other = Channel.EMAIL if preferred == Channel.WHATSAPP else Channel.WHATSAPP
        if self.address_for(other):
            return other
        return None

    @property
    def is_reachable(self) -> bool:
        return self.resolve_channel() is not None

    def __repr__(self) -> str:
        return f"<Subscriber {self.id} {self.category}>"


class DeliverySettings(Base):
    """Per-subscriber schedule preferences."""

    __tablename__ = "delivery_settings"

    subscriber_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("subscribers.id", ondelete="CASCADE"), primary_key=True
    )
    mode: Mapped[DeliveryMode] = mapped_column(
        Enum(
            DeliveryMode,
            values_callable=lambda e: [x.value for x in e],
            name="deliverymode",
            create_type=False,
        ),
        default=DeliveryMode.AUTO,
    )
    words_per_day: Mapped[int] = mapped_column(Integer, default=3)
    timezone: Mapped[str] = mapped_column(String(50), default="Asia/Kolkata")
    auto_window_start: Mapped[str] = mapped_column(String(5), default="09:00")
    auto_window_end: Mapped[str] = mapped_column(String(5), default="21:00")
    updated_at: Mapped[datetime | None] = mapped_column(default=None)

    subscriber: Mapped[Subscriber] = relationship(back_populates="delivery_settings")

    def __repr__(self) -> str:
        return f"<DeliverySettings {self.subscriber_id} {self.mode.value}x{self.words_per_day}>"


class CustomDeliveryTime(Base):
    """One user-picked send time; position orders them within a day."""

    __tablename__ = "custom_delivery_times"
    __table_args__ = (
        UniqueConstraint("subscriber_id", "position", name="uq_custom_time_position"),
        UniqueConstraint("subscriber_id", "time", name="uq_custom_time_value"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    subscriber_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("subscribers.id", ondelete="CASCADE"), index=True
    )
    position: Mapped[int] = mapped_column(Integer)
    time: Mapped[str] = mapped_column(String(5))

    subscriber: Mapped[Subscriber] = relationship(back_populates="custom_times")
