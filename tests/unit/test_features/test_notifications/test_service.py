"""Tests for NotificationService."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock
import uuid

import pytest

from notification_engine.core.database import NotFoundError, utcnow
from notification_engine.features.notifications.exceptions import (
    ConcurrentUpdateError,
    IllegalTransitionError,
)
from notification_engine.features.notifications.models import Notification
from notification_engine.features.notifications.schemas import UserNotificationSettingsUpdate
from notification_engine.features.notifications.service import (
    MAX_TRANSITION_ATTEMPTS,
    NotificationService,
    get_notification_service,
)
from tests.utils import seconds_ago


@pytest.mark.asyncio
class TestStatusHooks:
    async def test_receipts_walk_to_read(self, db_session, make_notification, notification_service):
        notification = await make_notification(status="SENT", sent_at=utcnow())

        delivered = await notification_service.mark_delivered(db_session, notification.id)
        assert delivered.status == "DELIVERED"
        assert delivered.delivered_at is not None

        read = await notification_service.mark_read(db_session, notification.id)
        assert read.status == "READ"
        assert read.read_at is not None

    async def test_cancel_then_delivered_is_rejected(
        self, db_session, make_notification, notification_service
    ):
        """A delivery receipt for a cancelled record changes nothing."""
        notification = await make_notification(status="PENDING")

        cancelled = await notification_service.cancel(db_session, notification.id, reason="retracted")
        assert cancelled.status == "CANCELLED"
        assert cancelled.error_message == "retracted"

        with pytest.raises(IllegalTransitionError):
            await notification_service.mark_delivered(db_session, notification.id)

        db_session.expunge_all()
        reloaded = await notification_service.get_notification(db_session, notification.id)
        assert reloaded.status == "CANCELLED"
        assert reloaded.delivered_at is None

    async def test_read_before_delivery_is_rejected(
        self, db_session, make_notification, notification_service
    ):
        notification = await make_notification(status="SENT")

        with pytest.raises(IllegalTransitionError):
            await notification_service.mark_read(db_session, notification.id)

    async def test_exhausted_failure_cannot_be_cancelled(
        self, db_session, make_notification, notification_service
    ):
        notification = await make_notification(status="FAILED", retry_count=3)

        with pytest.raises(IllegalTransitionError, match="retry limit reached"):
            await notification_service.cancel(db_session, notification.id)

    async def test_unknown_notification(self, db_session, notification_service):
        with pytest.raises(NotFoundError):
            await notification_service.mark_delivered(db_session, uuid.uuid4())

    async def test_repeated_lost_races_raise(self, notification_settings):
        notification = Notification(
            id=uuid.uuid4(), user_id="42", channel="EMAIL", status="SENT", retry_count=0
        )
        repository = MagicMock()
        repository.get_or_raise = AsyncMock(return_value=notification)
        repository.apply_transition = AsyncMock(return_value=False)
        service = NotificationService(repository=repository, settings=notification_settings)

        with pytest.raises(ConcurrentUpdateError) as exc_info:
            await service.mark_delivered(MagicMock(), notification.id)

        assert exc_info.value.attempts == MAX_TRANSITION_ATTEMPTS
        assert repository.apply_transition.await_count == MAX_TRANSITION_ATTEMPTS


@pytest.mark.asyncio
class TestQueries:
    async def test_mark_all_read_only_touches_delivered(
        self, db_session, make_notification, notification_service
    ):
        await make_notification(status="DELIVERED")
        await make_notification(status="DELIVERED")
        sent = await make_notification(status="SENT")
        await make_notification(status="DELIVERED", user_id="7")

        updated = await notification_service.mark_all_read(db_session, "42")

        assert updated == 2
        assert sent.status == "SENT"
        assert await notification_service.count_unread(db_session, "42") == 1
        assert await notification_service.count_unread(db_session, "7") == 1

    async def test_list_for_user_by_status(self, db_session, make_notification, notification_service):
        from notification_engine.features.notifications.enums import NotificationStatus

        await make_notification(status="SENT")
        await make_notification(status="FAILED", retry_count=1)

        result = await notification_service.list_for_user(
            db_session, "42", status=NotificationStatus.FAILED
        )

        assert result.total == 1
        assert result.items[0].status == "FAILED"

    async def test_list_exhausted_uses_retry_cap(
        self, db_session, make_notification, notification_service
    ):
        exhausted = await make_notification(status="FAILED", retry_count=3, user_id="7")
        await make_notification(status="FAILED", retry_count=1, user_id="7")

        result = await notification_service.list_exhausted(db_session, user_id="7")

        assert [n.id for n in result.items] == [exhausted.id]


@pytest.mark.asyncio
class TestHousekeeping:
    async def test_cleanup_removes_settled_records_only(
        self, db_session, make_notification, notification_service
    ):
        old = seconds_ago(40 * 86_400)
        await make_notification(status="READ", created_at=old)
        await make_notification(status="CANCELLED", created_at=old)
        await make_notification(status="FAILED", retry_count=3, created_at=old)
        retryable = await make_notification(status="FAILED", retry_count=1, created_at=old)
        pending = await make_notification(status="PENDING", created_at=old)
        sent = await make_notification(status="SENT", created_at=old)
        delivered = await make_notification(status="DELIVERED", created_at=old)
        recent = await make_notification(status="READ")

        result = await notification_service.cleanup(db_session)

        assert result.deleted == 3
        assert result.exhausted == 1

        db_session.expunge_all()
        for survivor in (retryable, pending, sent, delivered, recent):
            assert await notification_service.get_notification(db_session, survivor.id)

    async def test_cleanup_honours_retention_override(
        self, db_session, make_notification, notification_service
    ):
        await make_notification(status="READ", created_at=seconds_ago(3 * 86_400))

        kept = await notification_service.cleanup(db_session, retention_days=7)
        removed = await notification_service.cleanup(db_session, retention_days=1)

        assert kept.deleted == 0
        assert removed.deleted == 1


@pytest.mark.asyncio
class TestUserSettings:
    async def test_get_missing_settings(self, db_session, notification_service):
        with pytest.raises(NotFoundError):
            await notification_service.get_user_settings(db_session, "42")

    async def test_update_creates_then_merges(self, db_session, notification_service):
        await notification_service.update_user_settings(
            db_session,
            "42",
            UserNotificationSettingsUpdate(email="a@example.com", channels={"sms": True}),
        )
        settings = await notification_service.update_user_settings(
            db_session,
            "42",
            UserNotificationSettingsUpdate(types={"TASK_OVERDUE": False}),
        )

        assert settings.email == "a@example.com"
        assert settings.channels == {"SMS": True}
        assert settings.types == {"TASK_OVERDUE": False}
        assert settings.is_type_enabled("TASK_OVERDUE") is False

    async def test_ensure_default_settings_is_idempotent(self, db_session, notification_service):
        created, was_created = await notification_service.ensure_default_settings(
            db_session, "42", email="a@example.com"
        )
        again, created_again = await notification_service.ensure_default_settings(db_session, "42")

        assert was_created is True
        assert created_again is False
        assert again.id == created.id
        assert created.channels == {"EMAIL": True, "PUSH": True, "SMS": False}


@pytest.mark.unit
class TestProviders:
    def test_kill_switch(self, notification_service, push_provider):
        provider = notification_service.set_provider_enabled("push", False)

        assert provider is push_provider
        assert push_provider.is_enabled() is False

        notification_service.set_provider_enabled("PUSH", True)
        assert push_provider.is_enabled() is True

    def test_unknown_provider(self, notification_service):
        with pytest.raises(NotFoundError):
            notification_service.set_provider_enabled("SMS", False)

    def test_list_providers(self, notification_service, email_provider, push_provider):
        assert notification_service.list_providers() == [email_provider, push_provider]


def test_service_singleton():
    assert get_notification_service() is get_notification_service()
