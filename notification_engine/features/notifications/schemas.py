"""Pydantic schemas for the notifications feature."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from notification_engine.core.database import utcnow
from notification_engine.features.notifications.enums import (
    NotificationStatus,
    NotificationType,
    normalize_channel,
)

# ============================================================================
# Inbound events
# ============================================================================


class NotificationEvent(BaseModel):
    """A domain event asking for a user to be notified.

    Published on the event bus or posted to the dispatch endpoint. ``title``
    and ``content`` arrive already rendered.
    """

    model_config = ConfigDict(coerce_numbers_to_str=True, frozen=True)

    event_id: str = Field(
        default_factory=lambda: str(uuid4()),
        min_length=1,
        max_length=255,
        description="Producer-assigned id; repeated deliveries must reuse it",
    )
    service_origin: str = Field(
        default="system",
        min_length=1,
        max_length=100,
        description="Publishing service",
    )
    type: NotificationType = Field(..., description="Notification type")
    user_id: str = Field(..., min_length=1, max_length=255, description="Recipient user id")
    recipients: dict[str, str] = Field(
        default_factory=dict,
        description="Channel -> address hints (email, device token, phone number)",
    )
    channels: list[str] | None = Field(
        default=None,
        description="Candidate channels; the configured defaults apply when omitted",
    )
    title: str = Field(..., min_length=1, max_length=500)
    content: str = Field(..., min_length=1)
    timestamp: datetime = Field(default_factory=utcnow)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("recipients", mode="after")
    @classmethod
    def _normalize_recipient_keys(cls, value: dict[str, str]) -> dict[str, str]:
        return {normalize_channel(k): v for k, v in value.items() if v}

    @field_validator("channels", mode="after")
    @classmethod
    def _normalize_channels(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        return list(dict.fromkeys(normalize_channel(c) for c in value if c.strip()))


# ============================================================================
# Notification Schemas
# ============================================================================


class NotificationRead(BaseModel):
    """Representation of a notification record returned from the API."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: str
    type: NotificationType
    channel: str
    title: str
    content: str
    recipient_address: str | None = None
    status: NotificationStatus
    retry_count: int
    error_category: str | None = None
    error_message: str | None = None
    sent_at: datetime | None = None
    delivered_at: datetime | None = None
    read_at: datetime | None = None
    cancelled_at: datetime | None = None
    event_id: str | None = None
    service_origin: str
    extra_metadata: dict[str, Any] | None = None
    created_at: datetime
    updated_at: datetime


class NotificationListResponse(BaseModel):
    """Paginated notification listing."""

    items: list[NotificationRead]
    total: int = Field(..., ge=0)
    limit: int
    offset: int
    has_next: bool


class UnreadCountResponse(BaseModel):
    user_id: str
    unread_count: int = Field(..., ge=0)


class DispatchResponse(BaseModel):
    """Records created or reused for one dispatched event."""

    event_id: str
    notifications: list[NotificationRead]


class CancelRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=1000)


class MarkAllReadResponse(BaseModel):
    user_id: str
    updated: int = Field(..., ge=0)


class RetrySweepResponse(BaseModel):
    """Summary of one retry sweep."""

    batches: int
    selected: int
    sent: int
    failed: int
    exhausted: int
    skipped: int
    recovered: int


class StatusCountsResponse(BaseModel):
    """Notification records per lifecycle status."""

    counts: dict[str, int]
    total: int


class HousekeepingResponse(BaseModel):
    """Summary of one housekeeping run."""

    cutoff: datetime
    deleted: int
    exhausted: int


# ============================================================================
# UserNotificationSettings Schemas
# ============================================================================


class UserNotificationSettingsRead(BaseModel):
    """Stored settings for one user, with defaults applied to missing keys."""

    model_config = ConfigDict(from_attributes=True)

    user_id: str
    email: str | None = None
    phone_number: str | None = None
    device_token: str | None = None
    channels: dict[str, bool]
    types: dict[str, bool]
    updated_at: datetime


class UserNotificationSettingsUpdate(BaseModel):
    """Partial update; ``channels`` and ``types`` are merged key by key."""

    email: str | None = Field(default=None, max_length=320)
    phone_number: str | None = Field(default=None, max_length=32)
    device_token: str | None = Field(default=None, max_length=500)
    channels: dict[str, bool] | None = None
    types: dict[NotificationType, bool] | None = None

    @field_validator("channels", mode="after")
    @classmethod
    def _normalize_channel_keys(cls, value: dict[str, bool] | None) -> dict[str, bool] | None:
        if value is None:
            return None
        return {normalize_channel(k): v for k, v in value.items()}


# ============================================================================
# Provider Schemas
# ============================================================================


class ProviderStatus(BaseModel):
    channel: str
    provider: str
    enabled: bool
