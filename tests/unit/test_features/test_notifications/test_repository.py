"""Tests for the notification repositories."""

from __future__ import annotations

import pytest

from notification_engine.core.database import utcnow
from notification_engine.features.notifications.enums import ErrorCategory
from notification_engine.features.notifications.models import Notification
from notification_engine.features.notifications.repository import (
    NotificationRepository,
    UserNotificationSettingsRepository,
)
from notification_engine.features.notifications.state_machine import DeliveryStateMachine
from tests.utils import seconds_ago


@pytest.fixture
def repository() -> NotificationRepository:
    return NotificationRepository()


@pytest.fixture
def settings_repository() -> UserNotificationSettingsRepository:
    return UserNotificationSettingsRepository()


@pytest.fixture
def machine() -> DeliveryStateMachine:
    return DeliveryStateMachine(max_retries=3)


@pytest.mark.asyncio
async def test_apply_transition_updates_row_and_instance(
    db_session, make_notification, repository, machine
):
    """A matching compare-and-set writes the row and the in-memory record."""
    notification = await make_notification()

    applied = await repository.apply_transition(
        db_session, notification, machine.mark_sent(notification)
    )
    await db_session.commit()

    assert applied is True
    assert notification.status == "SENT"
    assert notification.sent_at is not None

    db_session.expunge_all()
    reloaded = await repository.get(db_session, notification.id)
    assert reloaded.status == "SENT"


@pytest.mark.asyncio
async def test_apply_transition_lost_race_reloads(
    db_session, session_factory, make_notification, repository, machine
):
    """A stale writer changes nothing and sees the current row afterwards."""
    notification = await make_notification()
    stale_transition = machine.mark_sent(notification)

    async with session_factory() as other:
        copy = await repository.get_or_raise(other, notification.id)
        await repository.apply_transition(other, copy, machine.cancel(copy, reason="opt-out"))
        await other.commit()

    applied = await repository.apply_transition(db_session, notification, stale_transition)
    await db_session.commit()

    assert applied is False
    assert notification.status == "CANCELLED"
    assert notification.sent_at is None


@pytest.mark.asyncio
async def test_apply_transition_checks_retry_count(
    db_session, make_notification, repository, machine
):
    """Same status but a different retry_count is still a lost race."""
    notification = await make_notification(status="FAILED", retry_count=1)
    stale = machine.requeue(notification)

    await repository.apply_transition(db_session, notification, machine.requeue(notification))
    await repository.apply_transition(
        db_session,
        notification,
        machine.mark_failed(notification, category=ErrorCategory.TRANSPORT),
    )
    await db_session.commit()
    assert (notification.status, notification.retry_count) == ("FAILED", 2)

    assert await repository.apply_transition(db_session, notification, stale) is False
    assert notification.retry_count == 2


@pytest.mark.asyncio
async def test_find_by_idempotency_key_newest_first(db_session, make_notification, repository):
    older = await make_notification(idempotency_key="evt-1:EMAIL", created_at=seconds_ago(60))
    newer = await make_notification(idempotency_key="evt-1:EMAIL")
    await make_notification(idempotency_key="evt-1:PUSH", channel="PUSH")

    records = await repository.find_by_idempotency_key(db_session, "evt-1:EMAIL")

    assert [r.id for r in records] == [newer.id, older.id]


@pytest.mark.asyncio
async def test_find_retry_candidates_respects_windows(db_session, make_notification, repository):
    """Only FAILED records under the cap whose window elapsed are returned."""
    now = utcnow()
    due = await make_notification(status="FAILED", retry_count=1, updated_at=seconds_ago(600, now=now))
    await make_notification(status="FAILED", retry_count=1, updated_at=seconds_ago(30, now=now))
    await make_notification(status="FAILED", retry_count=3, updated_at=seconds_ago(600, now=now))
    await make_notification(status="PENDING", updated_at=seconds_ago(600, now=now))
    await make_notification(status="CANCELLED", updated_at=seconds_ago(600, now=now))

    cutoffs = {count: seconds_ago(60, now=now) for count in range(3)}
    records = await repository.find_retry_candidates(
        db_session, max_retries=3, cutoffs=cutoffs, limit=10
    )

    assert [r.id for r in records] == [due.id]


@pytest.mark.asyncio
async def test_find_retry_candidates_oldest_first_and_limited(
    db_session, make_notification, repository
):
    now = utcnow()
    oldest = await make_notification(status="FAILED", retry_count=1, updated_at=seconds_ago(900, now=now))
    middle = await make_notification(status="FAILED", retry_count=2, updated_at=seconds_ago(800, now=now))
    await make_notification(status="FAILED", retry_count=0, updated_at=seconds_ago(700, now=now))

    cutoffs = {count: seconds_ago(60, now=now) for count in range(3)}
    records = await repository.find_retry_candidates(
        db_session, max_retries=3, cutoffs=cutoffs, limit=2
    )

    assert [r.id for r in records] == [oldest.id, middle.id]


@pytest.mark.asyncio
async def test_count_unread_counts_sent_and_delivered(db_session, make_notification, repository):
    await make_notification(status="SENT")
    await make_notification(status="DELIVERED")
    await make_notification(status="READ", read_at=utcnow())
    await make_notification(status="FAILED", retry_count=1)
    await make_notification(status="SENT", user_id="7")

    assert await repository.count_unread(db_session, "42") == 2


@pytest.mark.asyncio
async def test_list_for_user_filters_and_paginates(db_session, make_notification, repository):
    for offset in range(3):
        await make_notification(status="SENT", created_at=seconds_ago(offset * 10))
    await make_notification(status="FAILED", retry_count=1)

    page = await repository.list_for_user(db_session, "42", status="SENT", limit=2)

    assert page.total == 3
    assert len(page.items) == 2
    assert page.has_next is True
    assert all(n.status == "SENT" for n in page.items)


@pytest.mark.asyncio
async def test_list_exhausted_only_returns_capped_failures(db_session, make_notification, repository):
    exhausted = await make_notification(status="FAILED", retry_count=3)
    await make_notification(status="FAILED", retry_count=2)

    result = await repository.list_exhausted(db_session, max_retries=3)

    assert [n.id for n in result.items] == [exhausted.id]


@pytest.mark.asyncio
async def test_list_settled_before_excludes_pending_work(db_session, make_notification, repository):
    old = seconds_ago(40 * 86_400)
    settled = [
        await make_notification(status="READ", created_at=old),
        await make_notification(status="CANCELLED", created_at=old),
        await make_notification(status="FAILED", retry_count=3, created_at=old),
    ]
    await make_notification(status="FAILED", retry_count=1, created_at=old)
    await make_notification(status="PENDING", created_at=old)
    await make_notification(status="SENT", created_at=old)
    await make_notification(status="DELIVERED", created_at=old)
    await make_notification(status="READ")

    records = await repository.list_settled_before(
        db_session, cutoff=seconds_ago(30 * 86_400), max_retries=3
    )

    assert {n.id for n in records} == {n.id for n in settled}


@pytest.mark.asyncio
async def test_status_counts(db_session, make_notification, repository):
    await make_notification(status="SENT")
    await make_notification(status="SENT")
    await make_notification(status="FAILED", retry_count=1)

    counts = await repository.get_status_counts(db_session)

    assert counts == {"SENT": 2, "FAILED": 1}


@pytest.mark.asyncio
async def test_settings_upsert_merges_flags(db_session, settings_repository):
    """A second upsert merges channel flags key by key."""
    await settings_repository.upsert(db_session, "42", email="a@example.com", channels={"SMS": True})
    await db_session.commit()

    updated = await settings_repository.upsert(db_session, "42", channels={"PUSH": False})
    await db_session.commit()

    assert updated.channels == {"SMS": True, "PUSH": False}
    assert updated.email == "a@example.com"
    assert updated.is_channel_enabled("EMAIL") is True
    assert updated.is_channel_enabled("PUSH") is False


@pytest.mark.asyncio
async def test_settings_get_for_user_missing(db_session, settings_repository):
    assert await settings_repository.get_for_user(db_session, "nobody") is None


def test_notification_repr():
    notification = Notification(user_id="42", channel="EMAIL", status="SENT", retry_count=0)

    assert "EMAIL" in repr(notification)
