"""Tests for per-user channel filtering."""

from __future__ import annotations

import pytest

from notification_engine.features.notifications.preferences import PreferenceFilter
from notification_engine.features.notifications.repository import (
    UserNotificationSettingsRepository,
)


class _BrokenStore:
    async def get_settings(self, session, user_id):
        raise RuntimeError("settings table unavailable")


@pytest.fixture
def preference_filter() -> PreferenceFilter:
    return PreferenceFilter()


@pytest.mark.asyncio
async def test_no_settings_allows_every_candidate(db_session, preference_filter):
    """A user without a settings record gets all candidate channels."""
    decision = await preference_filter.resolve(
        db_session, "42", "TASK_ASSIGNED", ["EMAIL", "PUSH", "SMS"]
    )

    assert decision.channels == ("EMAIL", "PUSH", "SMS")
    assert decision.settings is None
    assert decision.degraded is False


@pytest.mark.asyncio
async def test_candidates_are_normalized_and_deduplicated(db_session, preference_filter):
    decision = await preference_filter.resolve(
        db_session, "42", "TASK_ASSIGNED", ["email", " EMAIL ", "push"]
    )

    assert decision.channels == ("EMAIL", "PUSH")


@pytest.mark.asyncio
async def test_disabled_channel_is_removed(db_session, preference_filter):
    await UserNotificationSettingsRepository().upsert(db_session, "42", channels={"PUSH": False})
    await db_session.commit()

    decision = await preference_filter.resolve(
        db_session, "42", "TASK_ASSIGNED", ["EMAIL", "PUSH"]
    )

    assert decision.channels == ("EMAIL",)
    assert decision.settings is not None


@pytest.mark.asyncio
async def test_missing_channel_key_falls_back_to_default(db_session, preference_filter):
    """SMS is off by default for users that have a settings record."""
    await UserNotificationSettingsRepository().upsert(db_session, "42")
    await db_session.commit()

    allowed = await preference_filter.allowed_channels(
        db_session, "42", "TASK_ASSIGNED", ["EMAIL", "PUSH", "SMS"]
    )

    assert allowed == {"EMAIL", "PUSH"}


@pytest.mark.asyncio
async def test_disabled_type_allows_nothing(db_session, preference_filter):
    await UserNotificationSettingsRepository().upsert(
        db_session, "42", types={"TASK_ASSIGNED": False}
    )
    await db_session.commit()

    decision = await preference_filter.resolve(
        db_session, "42", "TASK_ASSIGNED", ["EMAIL", "PUSH"]
    )
    other_type = await preference_filter.resolve(
        db_session, "42", "TASK_COMPLETED", ["EMAIL", "PUSH"]
    )

    assert decision.channels == ()
    assert other_type.channels == ("EMAIL", "PUSH")


@pytest.mark.asyncio
async def test_store_failure_degrades_to_default_allow(db_session):
    """A failing settings lookup still lets every candidate through."""
    preference_filter = PreferenceFilter(_BrokenStore())

    decision = await preference_filter.resolve(
        db_session, "42", "TASK_ASSIGNED", ["EMAIL", "PUSH"]
    )

    assert decision.channels == ("EMAIL", "PUSH")
    assert decision.degraded is True
    assert decision.settings is None
