"""Tests for inbound task/auth event mapping and processing."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from notification_engine.features.notifications.enums import NotificationType
from notification_engine.features.notifications.events import (
    AuthEvent,
    TaskEvent,
    map_auth_event,
    map_task_event,
    process_auth_event,
    process_task_event,
)
from notification_engine.features.notifications.schemas import NotificationEvent

EVENT_TIME = datetime(2026, 3, 2, 9, 30, tzinfo=UTC)


def _task_event(**overrides) -> TaskEvent:
    payload = {
        "eventType": "CREATED",
        "taskId": 7,
        "title": "Quarterly report",
        "assignedUserId": 42,
        "createdByUserId": 9,
        "eventTime": EVENT_TIME.isoformat(),
    }
    payload.update(overrides)
    return TaskEvent.model_validate(payload)


def _auth_event(**overrides) -> AuthEvent:
    payload = {
        "eventType": "USER_REGISTERED",
        "userId": 42,
        "username": "sam",
        "email": "sam@example.com",
        "eventTime": EVENT_TIME.isoformat(),
    }
    payload.update(overrides)
    return AuthEvent.model_validate(payload)


@pytest.mark.unit
class TestTaskEventMapping:
    def test_camel_case_payload_is_parsed(self):
        event = _task_event()

        assert event.task_id == "7"
        assert event.assigned_user_id == "42"
        assert event.service_origin == "task-service"

    def test_created_notifies_assignee_and_creator(self):
        events = map_task_event(_task_event())

        assert [(e.user_id, e.type) for e in events] == [
            ("42", NotificationType.TASK_CREATED),
            ("9", NotificationType.TASK_CREATED),
        ]
        assert events[0].event_id != events[1].event_id
        assert "Quarterly report" in events[0].content
        assert events[0].metadata["task_id"] == "7"

    def test_created_by_assignee_notifies_once(self):
        events = map_task_event(_task_event(createdByUserId=42))

        assert len(events) == 1

    @pytest.mark.parametrize(
        ("event_type", "recipient", "ntype"),
        [
            ("UPDATED", "42", NotificationType.TASK_UPDATED),
            ("DELETED", "42", NotificationType.TASK_DELETED),
            ("ASSIGNED", "42", NotificationType.TASK_ASSIGNED),
            ("COMPLETED", "9", NotificationType.TASK_COMPLETED),
            ("OVERDUE", "42", NotificationType.TASK_OVERDUE),
        ],
    )
    def test_single_recipient_events(self, event_type, recipient, ntype):
        events = map_task_event(_task_event(eventType=event_type))

        assert [(e.user_id, e.type) for e in events] == [(recipient, ntype)]

    def test_unknown_type_produces_nothing(self):
        assert map_task_event(_task_event(eventType="ARCHIVED")) == []

    def test_event_id_is_stable_across_redeliveries(self):
        first = map_task_event(_task_event(eventType="ASSIGNED"))
        second = map_task_event(_task_event(eventType="ASSIGNED"))

        assert first[0].event_id == second[0].event_id

    def test_explicit_event_id_wins(self):
        events = map_task_event(_task_event(eventType="ASSIGNED", eventId="abc"))

        assert events[0].event_id == "abc:assignee"

    def test_event_type_is_required(self):
        with pytest.raises(ValidationError):
            TaskEvent.model_validate({"taskId": 1})


@pytest.mark.unit
class TestAuthEventMapping:
    def test_registration_sends_welcome_email(self):
        events = map_auth_event(_auth_event())

        assert len(events) == 1
        welcome = events[0]
        assert welcome.type == NotificationType.USER_REGISTERED
        assert welcome.channels == ["EMAIL"]
        assert welcome.recipients == {"EMAIL": "sam@example.com"}
        assert "sam" in welcome.content
        assert welcome.service_origin == "auth-service"

    def test_login_without_ip_is_ignored(self):
        assert map_auth_event(_auth_event(eventType="USER_LOGIN")) == []

    def test_login_with_ip_alerts(self):
        events = map_auth_event(_auth_event(eventType="USER_LOGIN", ipAddress="10.0.0.1"))

        assert events[0].type == NotificationType.USER_LOGIN
        assert "10.0.0.1" in events[0].content

    def test_password_reset_is_a_system_alert(self):
        events = map_auth_event(_auth_event(eventType="PASSWORD_RESET"))

        assert events[0].type == NotificationType.SYSTEM_ALERT

    def test_logout_produces_nothing(self):
        assert map_auth_event(_auth_event(eventType="USER_LOGOUT")) == []


@pytest.mark.unit
class TestNotificationEventSchema:
    def test_channels_and_recipients_are_normalized(self):
        event = NotificationEvent(
            type="REMINDER",
            user_id=42,
            channels=["email", "Email", "push"],
            recipients={"email": "a@example.com", "sms": ""},
            title="Reminder",
            content="Standup in 5 minutes",
        )

        assert event.user_id == "42"
        assert event.channels == ["EMAIL", "PUSH"]
        assert event.recipients == {"EMAIL": "a@example.com"}
        assert event.service_origin == "system"
        assert event.event_id

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            NotificationEvent(type="NOPE", user_id="42", title="t", content="c")


@pytest.mark.asyncio
async def test_process_task_event_dispatches_each_recipient(db_session, coordinator):
    records = await process_task_event(db_session, _task_event(), coordinator=coordinator)

    assert sorted({n.user_id for n in records}) == ["42", "9"]
    assert all(n.service_origin == "task-service" for n in records)


@pytest.mark.asyncio
async def test_process_registration_creates_settings_and_welcomes(
    db_session, coordinator, notification_service, email_provider
):
    records = await process_auth_event(
        db_session, _auth_event(), coordinator=coordinator, service=notification_service
    )

    settings = await notification_service.get_user_settings(db_session, "42")
    assert settings.email == "sam@example.com"
    assert [n.channel for n in records] == ["EMAIL"]
    assert records[0].status == "SENT"
    assert email_provider.sent[0].recipient_address == "sam@example.com"


@pytest.mark.asyncio
async def test_duplicate_registration_event_is_not_resent(
    db_session, coordinator, notification_service, email_provider
):
    event = _auth_event()

    await process_auth_event(db_session, event, coordinator=coordinator, service=notification_service)
    await process_auth_event(db_session, event, coordinator=coordinator, service=notification_service)

    assert len(email_provider.sent) == 1
