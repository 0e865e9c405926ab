"""Delivery state machine for notification records.

::

    create ──> PENDING ──send ok──> SENT ──receipt──> DELIVERED ──read──> READ
                 │  ^                 │                   │
        send fail│  │retry (< max)    │                   │
                 v  │                 v                   v
               FAILED ─────────────> CANCELLED <──────────┘

READ and CANCELLED are terminal. FAILED is terminal once ``retry_count``
reaches ``max_retries``; below that it is waiting for the retry sweep.

The machine itself holds no state. Each method validates a request against
the record as the caller observed it and returns a ``Transition`` that the
repository applies as a compare-and-set on ``(status, retry_count)``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from notification_engine.core.database import utcnow
from notification_engine.features.notifications.enums import ErrorCategory, NotificationStatus
from notification_engine.features.notifications.exceptions import IllegalTransitionError

if TYPE_CHECKING:
    from datetime import datetime
    from uuid import UUID

    from notification_engine.features.notifications.models import Notification

TERMINAL_STATUSES = frozenset({NotificationStatus.READ, NotificationStatus.CANCELLED})

_ALLOWED: dict[NotificationStatus, frozenset[NotificationStatus]] = {
    NotificationStatus.PENDING: frozenset(
        {NotificationStatus.SENT, NotificationStatus.FAILED, NotificationStatus.CANCELLED}
    ),
    NotificationStatus.SENT: frozenset({NotificationStatus.DELIVERED, NotificationStatus.CANCELLED}),
    NotificationStatus.DELIVERED: frozenset({NotificationStatus.READ, NotificationStatus.CANCELLED}),
    NotificationStatus.FAILED: frozenset({NotificationStatus.PENDING, NotificationStatus.CANCELLED}),
    NotificationStatus.READ: frozenset(),
    NotificationStatus.CANCELLED: frozenset(),
}

# Outcomes that count as a successful hand-off to the channel
SUCCESS_STATUSES = frozenset(
    {NotificationStatus.SENT, NotificationStatus.DELIVERED, NotificationStatus.READ}
)


@dataclass(frozen=True, slots=True)
class Transition:
    """A validated status change, ready to be applied as compare-and-set.

    Attributes:
        notification_id: Record to update.
        source: Status the writer observed.
        expected_retry_count: retry_count the writer observed.
        target: New status.
        values: Column values to write (includes status and updated_at).
    """

    notification_id: UUID
    source: NotificationStatus
    expected_retry_count: int
    target: NotificationStatus
    values: dict[str, Any] = field(default_factory=dict)


class DeliveryStateMachine:
    """Validates and builds status transitions for one retry policy."""

    def __init__(self, max_retries: int) -> None:
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self.max_retries = max_retries

    # ──────────────────────────────────────────────────────────────
    # Queries
    # ──────────────────────────────────────────────────────────────

    def is_terminal(self, notification: Notification) -> bool:
        status = NotificationStatus(notification.status)
        if status in TERMINAL_STATUSES:
            return True
        return status is NotificationStatus.FAILED and notification.retry_count >= self.max_retries

    def is_retry_eligible(self, notification: Notification) -> bool:
        """FAILED and still under the retry cap."""
        return (
            NotificationStatus(notification.status) is NotificationStatus.FAILED
            and notification.retry_count < self.max_retries
        )

    def can_transition(self, notification: Notification, target: NotificationStatus) -> bool:
        if self.is_terminal(notification):
            return False
        return target in _ALLOWED[NotificationStatus(notification.status)]

    # ──────────────────────────────────────────────────────────────
    # Transitions
    # ──────────────────────────────────────────────────────────────

    def mark_sent(self, notification: Notification, *, now: datetime | None = None) -> Transition:
        """PENDING -> SENT after the provider accepted the message."""
        now = now or utcnow()
        return self._build(
            notification,
            NotificationStatus.SENT,
            now,
            sent_at=now,
            error_category=None,
            error_message=None,
        )

    def mark_failed(
        self,
        notification: Notification,
        *,
        category: ErrorCategory,
        message: str | None = None,
        now: datetime | None = None,
    ) -> Transition:
        """PENDING -> FAILED, consuming one attempt."""
        now = now or utcnow()
        return self._build(
            notification,
            NotificationStatus.FAILED,
            now,
            retry_count=min(notification.retry_count + 1, self.max_retries),
            error_category=category.value,
            error_message=message,
        )

    def requeue(self, notification: Notification, *, now: datetime | None = None) -> Transition:
        """FAILED -> PENDING for another attempt; only below the retry cap."""
        return self._build(notification, NotificationStatus.PENDING, now or utcnow())

    def mark_delivered(
        self, notification: Notification, *, now: datetime | None = None
    ) -> Transition:
        """SENT -> DELIVERED on a delivery receipt."""
        now = now or utcnow()
        return self._build(notification, NotificationStatus.DELIVERED, now, delivered_at=now)

    def mark_read(self, notification: Notification, *, now: datetime | None = None) -> Transition:
        """DELIVERED -> READ (terminal)."""
        now = now or utcnow()
        return self._build(notification, NotificationStatus.READ, now, read_at=now)

    def cancel(
        self,
        notification: Notification,
        *,
        reason: str | None = None,
        category: ErrorCategory = ErrorCategory.CANCELLED,
        now: datetime | None = None,
    ) -> Transition:
        """Any non-terminal state -> CANCELLED (terminal)."""
        now = now or utcnow()
        return self._build(
            notification,
            NotificationStatus.CANCELLED,
            now,
            cancelled_at=now,
            error_category=category.value,
            error_message=reason,
        )

    def _build(
        self,
        notification: Notification,
        target: NotificationStatus,
        now: datetime,
        **values: Any,
    ) -> Transition:
        current = NotificationStatus(notification.status)
        if self.is_terminal(notification):
            reason = (
                "retry limit reached"
                if current is NotificationStatus.FAILED
                else f"{current} is terminal"
            )
            raise IllegalTransitionError(
                current, target, notification_id=notification.id, reason=reason
            )
        if target not in _ALLOWED[current]:
            raise IllegalTransitionError(current, target, notification_id=notification.id)

        return Transition(
            notification_id=notification.id,
            source=current,
            expected_retry_count=notification.retry_count,
            target=target,
            values={"status": target.value, "updated_at": now, **values},
        )
