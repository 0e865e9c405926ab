"""Tests for the dispatch coordinator."""

from __future__ import annotations

import pytest
from sqlalchemy import func, select

from notification_engine.features.notifications.dispatcher import (
    DispatchCoordinator,
    get_dispatch_coordinator,
    idempotency_key,
    set_dispatch_coordinator,
)
from notification_engine.features.notifications.enums import ErrorCategory
from notification_engine.features.notifications.models import Notification
from notification_engine.features.notifications.providers import OutboundMessage
from notification_engine.features.notifications.repository import (
    UserNotificationSettingsRepository,
)
from tests.utils import FakeProvider


def _by_channel(records: list[Notification]) -> dict[str, Notification]:
    return {n.channel: n for n in records}


async def _count(session) -> int:
    return (await session.execute(select(func.count()).select_from(Notification))).scalar_one()


@pytest.mark.asyncio
async def test_one_failing_channel_does_not_affect_another(
    db_session, coordinator, make_event, push_provider
):
    """EMAIL accepted and PUSH rejected give SENT and FAILED(retry_count=1)."""
    push_provider.result = False

    records = await coordinator.dispatch(db_session, make_event())

    by_channel = _by_channel(records)
    assert [n.channel for n in records] == ["EMAIL", "PUSH"]
    assert by_channel["EMAIL"].status == "SENT"
    assert by_channel["EMAIL"].sent_at is not None
    assert by_channel["PUSH"].status == "FAILED"
    assert by_channel["PUSH"].retry_count == 1
    assert by_channel["PUSH"].error_category == ErrorCategory.TRANSPORT


@pytest.mark.asyncio
async def test_records_carry_event_fields(db_session, coordinator, make_event, email_provider):
    records = await coordinator.dispatch(
        db_session, make_event(channels=["EMAIL"], metadata={"taskId": "7"})
    )

    notification = records[0]
    assert notification.user_id == "42"
    assert notification.type == "TASK_ASSIGNED"
    assert notification.recipient_address == "user42@example.com"
    assert notification.idempotency_key == idempotency_key("evt-1", "EMAIL")
    assert notification.service_origin == "task-service"
    assert notification.extra_metadata == {"taskId": "7"}

    sent: OutboundMessage = email_provider.sent[0]
    assert sent.notification_id == notification.id
    assert sent.metadata == {"taskId": "7"}


@pytest.mark.asyncio
async def test_unregistered_channel_is_cancelled(db_session, coordinator, make_event):
    """An allowed channel without a provider is recorded, then CANCELLED."""
    records = await coordinator.dispatch(
        db_session, make_event(channels=["EMAIL", "SMS"], recipients={"SMS": "+15550100"})
    )

    sms = _by_channel(records)["SMS"]
    assert sms.status == "CANCELLED"
    assert sms.error_category == ErrorCategory.UNSUPPORTED_CHANNEL
    assert sms.cancelled_at is not None
    assert _by_channel(records)["EMAIL"].status == "SENT"


@pytest.mark.asyncio
async def test_duplicate_event_reuses_live_records(
    db_session, coordinator, make_event, email_provider, push_provider
):
    """Redelivering an event while attempts are in flight creates nothing new."""
    push_provider.result = False
    first = await coordinator.dispatch(db_session, make_event())

    second = await coordinator.dispatch(db_session, make_event())

    assert [n.id for n in second] == [n.id for n in first]
    assert await _count(db_session) == 2
    assert len(email_provider.sent) == 1
    assert len(push_provider.sent) == 1


@pytest.mark.asyncio
async def test_duplicate_after_cancel_creates_fresh_attempt(
    db_session, coordinator, notification_service, make_event
):
    first = await coordinator.dispatch(db_session, make_event(channels=["EMAIL"]))
    await notification_service.cancel(db_session, first[0].id, reason="retracted")

    second = await coordinator.dispatch(db_session, make_event(channels=["EMAIL"]))

    assert second[0].id != first[0].id
    assert second[0].status == "SENT"
    assert await _count(db_session) == 2


@pytest.mark.asyncio
async def test_timeout_is_a_failed_attempt(db_session, coordinator, make_event, push_provider):
    """A provider slower than the deadline fails without holding up other channels."""
    push_provider.delay = 1.0

    records = await coordinator.dispatch(db_session, make_event())

    by_channel = _by_channel(records)
    assert by_channel["PUSH"].status == "FAILED"
    assert by_channel["PUSH"].error_category == ErrorCategory.TIMEOUT
    assert by_channel["EMAIL"].status == "SENT"


@pytest.mark.asyncio
async def test_provider_exception_is_a_failed_attempt(
    db_session, coordinator, make_event, push_provider
):
    push_provider.error = ConnectionError("gateway down")

    records = await coordinator.dispatch(db_session, make_event())

    push = _by_channel(records)["PUSH"]
    assert push.status == "FAILED"
    assert push.error_category == ErrorCategory.TRANSPORT
    assert "gateway down" in push.error_message


@pytest.mark.asyncio
async def test_disabled_provider_records_retryable_failure(
    db_session, coordinator, make_event, push_provider
):
    """A switched-off provider is not called and the record stays retryable."""
    push_provider.disable()

    records = await coordinator.dispatch(db_session, make_event())

    push = _by_channel(records)["PUSH"]
    assert push.status == "FAILED"
    assert push.retry_count == 1
    assert push.error_category == ErrorCategory.PROVIDER_DISABLED
    assert push_provider.sent == []
    assert coordinator.state_machine.is_retry_eligible(push)


@pytest.mark.asyncio
async def test_default_channels_apply_when_event_names_none(db_session, coordinator, make_event):
    records = await coordinator.dispatch(db_session, make_event(channels=None))

    assert [n.channel for n in records] == ["EMAIL", "PUSH"]


@pytest.mark.asyncio
async def test_explicit_empty_channels_create_nothing(
    db_session, coordinator, make_event, email_provider
):
    records = await coordinator.dispatch(db_session, make_event(channels=[]))

    assert records == []
    assert email_provider.sent == []
    assert await _count(db_session) == 0


@pytest.mark.asyncio
async def test_recipient_falls_back_to_stored_settings(
    db_session, coordinator, make_event, email_provider
):
    await UserNotificationSettingsRepository().upsert(
        db_session, "42", email="stored@example.com", device_token="stored-device"
    )
    await db_session.commit()

    records = await coordinator.dispatch(db_session, make_event(recipients={}))

    by_channel = _by_channel(records)
    assert by_channel["EMAIL"].recipient_address == "stored@example.com"
    assert by_channel["PUSH"].recipient_address == "stored-device"
    assert email_provider.sent[0].recipient_address == "stored@example.com"


@pytest.mark.asyncio
async def test_disabled_type_creates_no_records(db_session, coordinator, make_event):
    await UserNotificationSettingsRepository().upsert(
        db_session, "42", types={"TASK_ASSIGNED": False}
    )
    await db_session.commit()

    records = await coordinator.dispatch(db_session, make_event())

    assert records == []
    assert await _count(db_session) == 0


@pytest.mark.asyncio
async def test_cancel_during_send_wins(
    db_session, session_factory, registry, notification_settings, notification_service, make_event
):
    """A cancel committed while the send is in flight is never overwritten."""

    async def cancel_from_elsewhere(message: OutboundMessage) -> None:
        async with session_factory() as other:
            await notification_service.cancel(other, message.notification_id, reason="user opted out")

    registry.register(FakeProvider("PUSH", on_send=cancel_from_elsewhere))
    coordinator = DispatchCoordinator(registry=registry, settings=notification_settings)

    records = await coordinator.dispatch(db_session, make_event(channels=["PUSH"]))

    push = records[0]
    assert push.status == "CANCELLED"
    assert push.sent_at is None
    assert push.error_message == "user opted out"


@pytest.mark.asyncio
async def test_cancel_in_same_session_discards_outcome(
    db_session, registry, notification_settings, notification_service, make_event
):
    async def cancel_same_session(message: OutboundMessage) -> None:
        await notification_service.cancel(db_session, message.notification_id)

    registry.register(FakeProvider("EMAIL", result=False, on_send=cancel_same_session))
    coordinator = DispatchCoordinator(registry=registry, settings=notification_settings)

    records = await coordinator.dispatch(db_session, make_event(channels=["EMAIL"]))

    assert records[0].status == "CANCELLED"
    assert records[0].retry_count == 0


def test_coordinator_singleton_can_be_replaced(coordinator):
    set_dispatch_coordinator(coordinator)

    assert get_dispatch_coordinator() is coordinator
