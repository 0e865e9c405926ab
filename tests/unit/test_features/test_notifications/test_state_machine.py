"""Unit tests for the delivery state machine."""

from __future__ import annotations

import uuid

import pytest

from notification_engine.features.notifications.enums import ErrorCategory, NotificationStatus
from notification_engine.features.notifications.exceptions import IllegalTransitionError
from notification_engine.features.notifications.models import Notification
from notification_engine.features.notifications.state_machine import DeliveryStateMachine


def _notification(status: NotificationStatus, retry_count: int = 0) -> Notification:
    return Notification(
        id=uuid.uuid4(),
        user_id="42",
        type="TASK_ASSIGNED",
        channel="EMAIL",
        title="t",
        content="c",
        status=status.value,
        retry_count=retry_count,
    )


@pytest.fixture
def machine() -> DeliveryStateMachine:
    return DeliveryStateMachine(max_retries=3)


@pytest.mark.unit
class TestTransitions:
    @pytest.mark.parametrize(
        ("source", "target"),
        [
            (NotificationStatus.PENDING, NotificationStatus.SENT),
            (NotificationStatus.PENDING, NotificationStatus.FAILED),
            (NotificationStatus.PENDING, NotificationStatus.CANCELLED),
            (NotificationStatus.SENT, NotificationStatus.DELIVERED),
            (NotificationStatus.SENT, NotificationStatus.CANCELLED),
            (NotificationStatus.DELIVERED, NotificationStatus.READ),
            (NotificationStatus.DELIVERED, NotificationStatus.CANCELLED),
            (NotificationStatus.FAILED, NotificationStatus.PENDING),
            (NotificationStatus.FAILED, NotificationStatus.CANCELLED),
        ],
    )
    def test_allowed_edges(self, machine, source, target):
        """Every documented edge is allowed below the retry cap."""
        assert machine.can_transition(_notification(source), target)

    @pytest.mark.parametrize(
        ("source", "target"),
        [
            (NotificationStatus.PENDING, NotificationStatus.DELIVERED),
            (NotificationStatus.PENDING, NotificationStatus.READ),
            (NotificationStatus.SENT, NotificationStatus.READ),
            (NotificationStatus.SENT, NotificationStatus.FAILED),
            (NotificationStatus.DELIVERED, NotificationStatus.SENT),
            (NotificationStatus.FAILED, NotificationStatus.SENT),
            (NotificationStatus.READ, NotificationStatus.CANCELLED),
            (NotificationStatus.CANCELLED, NotificationStatus.PENDING),
        ],
    )
    def test_disallowed_edges(self, machine, source, target):
        assert not machine.can_transition(_notification(source), target)

    def test_mark_sent_builds_compare_and_set(self, machine):
        """The transition carries the observed status and retry count."""
        notification = _notification(NotificationStatus.PENDING, retry_count=1)

        transition = machine.mark_sent(notification)

        assert transition.notification_id == notification.id
        assert transition.source is NotificationStatus.PENDING
        assert transition.expected_retry_count == 1
        assert transition.target is NotificationStatus.SENT
        assert transition.values["status"] == "SENT"
        assert transition.values["sent_at"] is not None
        assert transition.values["error_category"] is None

    def test_mark_failed_consumes_an_attempt(self, machine):
        notification = _notification(NotificationStatus.PENDING, retry_count=0)

        transition = machine.mark_failed(
            notification, category=ErrorCategory.TIMEOUT, message="slow"
        )

        assert transition.values["retry_count"] == 1
        assert transition.values["error_category"] == "timeout"
        assert transition.values["error_message"] == "slow"

    def test_mark_failed_never_exceeds_cap(self, machine):
        notification = _notification(NotificationStatus.PENDING, retry_count=3)

        transition = machine.mark_failed(notification, category=ErrorCategory.TRANSPORT)

        assert transition.values["retry_count"] == 3

    def test_requeue_keeps_retry_count(self, machine):
        notification = _notification(NotificationStatus.FAILED, retry_count=2)

        transition = machine.requeue(notification)

        assert transition.target is NotificationStatus.PENDING
        assert "retry_count" not in transition.values

    def test_cancel_records_reason_and_category(self, machine):
        notification = _notification(NotificationStatus.SENT)

        transition = machine.cancel(notification, reason="user opted out")

        assert transition.values["error_category"] == "cancelled"
        assert transition.values["error_message"] == "user opted out"
        assert transition.values["cancelled_at"] is not None

    def test_illegal_transition_does_not_build(self, machine):
        notification = _notification(NotificationStatus.PENDING)

        with pytest.raises(IllegalTransitionError) as exc_info:
            machine.mark_delivered(notification)

        assert exc_info.value.current == NotificationStatus.PENDING
        assert exc_info.value.requested == NotificationStatus.DELIVERED
        assert exc_info.value.notification_id == notification.id
        assert notification.status == "PENDING"


@pytest.mark.unit
class TestTerminalStates:
    @pytest.mark.parametrize("status", [NotificationStatus.READ, NotificationStatus.CANCELLED])
    def test_read_and_cancelled_are_terminal(self, machine, status):
        notification = _notification(status)

        assert machine.is_terminal(notification)
        with pytest.raises(IllegalTransitionError):
            machine.cancel(notification)

    def test_failed_below_cap_is_retry_eligible(self, machine):
        notification = _notification(NotificationStatus.FAILED, retry_count=2)

        assert not machine.is_terminal(notification)
        assert machine.is_retry_eligible(notification)

    def test_failed_at_cap_is_terminal(self, machine):
        """A record that used its last attempt cannot be requeued or cancelled."""
        notification = _notification(NotificationStatus.FAILED, retry_count=3)

        assert machine.is_terminal(notification)
        assert not machine.is_retry_eligible(notification)
        with pytest.raises(IllegalTransitionError, match="retry limit reached"):
            machine.requeue(notification)
        with pytest.raises(IllegalTransitionError):
            machine.cancel(notification)

    def test_last_failed_attempt_reaches_terminal(self, machine):
        """Failing at retry_count == max_retries - 1 lands on the cap."""
        notification = _notification(NotificationStatus.PENDING, retry_count=2)

        transition = machine.mark_failed(notification, category=ErrorCategory.TRANSPORT)
        notification.status = transition.values["status"]
        notification.retry_count = transition.values["retry_count"]

        assert machine.is_terminal(notification)

    def test_max_retries_must_be_positive(self):
        with pytest.raises(ValueError):
            DeliveryStateMachine(max_retries=0)
