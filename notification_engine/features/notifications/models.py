"""SQLAlchemy models for the notifications feature."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from notification_engine.core.database import UUIDv7TimestampedBase
from notification_engine.features.notifications.enums import (
    Channel,
    NotificationStatus,
    NotificationType,
)

# Fallbacks for keys missing from a stored settings record
DEFAULT_CHANNEL_PREFERENCES: dict[str, bool] = {
    Channel.EMAIL: True,
    Channel.PUSH: True,
    Channel.SMS: False,
}
DEFAULT_TYPE_PREFERENCES: dict[str, bool] = {t.value: True for t in NotificationType}


class Notification(UUIDv7TimestampedBase):
    """One attempt to deliver a message to a user over one channel.

    ``status`` and ``retry_count`` are only changed through
    ``NotificationRepository.apply_transition`` so that every write is a
    compare-and-set against the state the writer observed.

    Indexes:
        - (user_id, status) for inbox queries and unread counts
        - (status, retry_count) for exhausted-failure listings
        - (status, created_at) for housekeeping
        - (status, updated_at) for the retry sweep's oldest-first scan
        - idempotency_key for duplicate event detection
    """

    __tablename__ = "notifications"

    user_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Recipient user id (owned by the user service)",
    )
    type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="NotificationType value",
    )
    channel: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="Provider channel key: EMAIL, PUSH, SMS, ...",
    )
    title: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
        comment="Resolved title / subject",
    )
    content: Mapped[str] = mapped_column(
        Text(),
        nullable=False,
        comment="Resolved message body",
    )
    recipient_address: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
        comment="Email address, device token or phone number",
    )

    # Lifecycle
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=NotificationStatus.PENDING.value,
        comment="PENDING, SENT, DELIVERED, READ, FAILED, CANCELLED",
    )
    retry_count: Mapped[int] = mapped_column(
        Integer(),
        nullable=False,
        default=0,
        comment="Failed attempts so far",
    )
    error_category: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
        comment="Why the last attempt failed or the record was cancelled",
    )
    error_message: Mapped[str | None] = mapped_column(
        Text(),
        nullable=True,
        comment="Detail for the last failure",
    )
    sent_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, comment="Transport accepted the message"
    )
    delivered_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, comment="Delivery receipt received"
    )
    read_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, comment="Recipient read the message"
    )
    cancelled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, comment="Record was cancelled"
    )

    # Origin
    event_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="Id of the inbound event that produced this record",
    )
    idempotency_key: Mapped[str | None] = mapped_column(
        String(320),
        nullable=True,
        comment="event_id:channel, used to drop duplicate deliveries",
    )
    service_origin: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        default="system",
        comment="Service that published the event",
    )
    extra_metadata: Mapped[dict[str, Any] | None] = mapped_column(
        JSONB().with_variant(JSON(), "sqlite"),
        nullable=True,
        comment="Opaque event metadata carried along for support",
    )

    __table_args__ = (
        Index("idx_notifications_user_status", "user_id", "status"),
        Index("idx_notifications_status_retry", "status", "retry_count"),
        Index("idx_notifications_status_created", "status", "created_at"),
        Index("idx_notifications_status_updated", "status", "updated_at"),
        Index("idx_notifications_idempotency_key", "idempotency_key"),
    )

    def __repr__(self) -> str:
        return (
            f"<Notification(id={self.id}, user_id={self.user_id!r}, channel={self.channel!r}, "
            f"status={self.status!r}, retry_count={self.retry_count})>"
        )


class UserNotificationSettings(UUIDv7TimestampedBase):
    """Per-user channel and type enablement.

    ``channels`` and ``types`` are sparse mappings; a missing key falls back
    to ``DEFAULT_CHANNEL_PREFERENCES`` / ``DEFAULT_TYPE_PREFERENCES``.
    """

    __tablename__ = "user_notification_settings"

    user_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
        comment="User these preferences belong to",
    )
    email: Mapped[str | None] = mapped_column(
        String(320), nullable=True, comment="Fallback address for EMAIL"
    )
    phone_number: Mapped[str | None] = mapped_column(
        String(32), nullable=True, comment="Fallback address for SMS"
    )
    device_token: Mapped[str | None] = mapped_column(
        String(500), nullable=True, comment="Fallback address for PUSH"
    )
    channels: Mapped[dict[str, bool]] = mapped_column(
        JSONB().with_variant(JSON(), "sqlite"),
        nullable=False,
        default=dict,
        comment="Channel key -> enabled",
    )
    types: Mapped[dict[str, bool]] = mapped_column(
        JSONB().with_variant(JSON(), "sqlite"),
        nullable=False,
        default=dict,
        comment="NotificationType -> enabled",
    )

    def is_channel_enabled(self, channel: str) -> bool:
        """Stored flag for ``channel``, else the system default.

        Channels without a default (custom providers) are enabled.
        """
        if channel in self.channels:
            return bool(self.channels[channel])
        return DEFAULT_CHANNEL_PREFERENCES.get(channel, True)

    def is_type_enabled(self, notification_type: str) -> bool:
        """Stored flag for ``notification_type``, else the system default."""
        if notification_type in self.types:
            return bool(self.types[notification_type])
        return DEFAULT_TYPE_PREFERENCES.get(notification_type, True)

    def address_for(self, channel: str) -> str | None:
        """Stored destination for ``channel``, if any."""
        return {
            Channel.EMAIL: self.email,
            Channel.SMS: self.phone_number,
            Channel.PUSH: self.device_token,
        }.get(channel)

    def __repr__(self) -> str:
        return f"<UserNotificationSettings(user_id={self.user_id!r})>"
