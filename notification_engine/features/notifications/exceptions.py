"""Domain exceptions for the notifications feature."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from uuid import UUID


class NotificationError(Exception):
    """Base exception for notification errors."""

    def __init__(self, message: str, *, notification_id: UUID | None = None) -> None:
        self.message = message
        self.notification_id = notification_id
        super().__init__(message)


class IllegalTransitionError(NotificationError):
    """Raised when a requested status change is not allowed from the current state.

    No state is changed when this is raised.
    """

    def __init__(
        self,
        current: str,
        requested: str,
        *,
        notification_id: UUID | None = None,
        reason: str | None = None,
    ) -> None:
        self.current = current
        self.requested = requested
        self.reason = reason
        message = f"Illegal transition {current} -> {requested}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, notification_id=notification_id)


class ConcurrentUpdateError(NotificationError):
    """Raised when a record kept changing underneath a writer."""

    def __init__(self, notification_id: UUID, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(
            f"Notification {notification_id} changed concurrently {attempts} times",
            notification_id=notification_id,
        )
