"""Enumerations shared across the notifications feature."""

from __future__ import annotations

from enum import StrEnum


class NotificationStatus(StrEnum):
    """Delivery lifecycle of one notification record."""

    PENDING = "PENDING"
    SENT = "SENT"
    DELIVERED = "DELIVERED"
    READ = "READ"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class NotificationType(StrEnum):
    """What happened, as far as the recipient is concerned."""

    TASK_CREATED = "TASK_CREATED"
    TASK_UPDATED = "TASK_UPDATED"
    TASK_DELETED = "TASK_DELETED"
    TASK_ASSIGNED = "TASK_ASSIGNED"
    TASK_COMPLETED = "TASK_COMPLETED"
    TASK_OVERDUE = "TASK_OVERDUE"
    USER_REGISTERED = "USER_REGISTERED"
    USER_LOGIN = "USER_LOGIN"
    SYSTEM_ALERT = "SYSTEM_ALERT"
    REMINDER = "REMINDER"


class Channel(StrEnum):
    """Channels with a bundled provider.

    Notification.channel stays a plain string so providers for other
    channels can be registered without touching this enum.
    """

    EMAIL = "EMAIL"
    PUSH = "PUSH"
    SMS = "SMS"


class ErrorCategory(StrEnum):
    """Why the last attempt on a record did not succeed."""

    UNSUPPORTED_CHANNEL = "unsupported_channel"
    PROVIDER_DISABLED = "provider_disabled"
    TRANSPORT = "transport"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


def normalize_channel(channel: str) -> str:
    """Canonical channel key: stripped and upper case."""
    return channel.strip().upper()
