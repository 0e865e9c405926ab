"""Per-user channel filtering.

A user with no settings record gets every candidate channel. A failing
settings store never blocks delivery: the lookup error is logged, counted
and treated as "no settings".
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import TYPE_CHECKING, Protocol

from notification_engine.features.notifications.enums import normalize_channel
from notification_engine.features.notifications.metrics import (
    notification_preference_degraded_total,
)
from notification_engine.features.notifications.repository import (
    UserNotificationSettingsRepository,
    get_user_notification_settings_repository,
)
from notification_engine.infra.logging import get_lazy_logger

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sqlalchemy.ext.asyncio import AsyncSession

    from notification_engine.features.notifications.models import UserNotificationSettings

logger = logging.getLogger(__name__)
lazy_logger = get_lazy_logger(__name__)


class PreferenceStore(Protocol):
    """Read access to per-user notification settings."""

    async def get_settings(
        self, session: AsyncSession, user_id: str
    ) -> UserNotificationSettings | None: ...


class SqlPreferenceStore:
    """PreferenceStore backed by the ``user_notification_settings`` table."""

    def __init__(self, repository: UserNotificationSettingsRepository | None = None) -> None:
        self._repository = repository or get_user_notification_settings_repository()

    async def get_settings(
        self, session: AsyncSession, user_id: str
    ) -> UserNotificationSettings | None:
        return await self._repository.get_for_user(session, user_id)


@dataclass(frozen=True, slots=True)
class PreferenceDecision:
    """Outcome of a preference lookup.

    Attributes:
        channels: Allowed channels in candidate order
        settings: The user's settings record, if one was found
        degraded: True when the lookup failed and defaults were applied
    """

    channels: tuple[str, ...]
    settings: UserNotificationSettings | None = None
    degraded: bool = False


class PreferenceFilter:
    """Intersects candidate channels with what a user has enabled."""

    def __init__(self, store: PreferenceStore | None = None) -> None:
        self._store = store or SqlPreferenceStore()

    async def resolve(
        self,
        session: AsyncSession,
        user_id: str,
        notification_type: str,
        candidate_channels: Iterable[str],
    ) -> PreferenceDecision:
        """Allowed channels plus the settings snapshot they were derived from."""
        candidates = tuple(dict.fromkeys(normalize_channel(c) for c in candidate_channels))

        try:
            settings = await self._store.get_settings(session, user_id)
        except Exception as exc:
            notification_preference_degraded_total.inc()
            logger.warning(
                "Preference lookup failed, using default-allow",
                extra={
                    "user_id": user_id,
                    "notification_type": notification_type,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                    "degraded": True,
                },
            )
            # Nothing is pending yet; reset so the session stays usable.
            await session.rollback()
            return PreferenceDecision(channels=candidates, degraded=True)

        if settings is None:
            lazy_logger.debug(lambda: f"preferences: no settings for {user_id}, allowing {candidates}")
            return PreferenceDecision(channels=candidates)

        if not settings.is_type_enabled(notification_type):
            logger.info(
                "Notification type disabled by user",
                extra={"user_id": user_id, "notification_type": notification_type},
            )
            return PreferenceDecision(channels=(), settings=settings)

        allowed = tuple(c for c in candidates if settings.is_channel_enabled(c))
        lazy_logger.debug(
            lambda: f"preferences: {user_id} {notification_type} {candidates} -> {allowed}"
        )
        return PreferenceDecision(channels=allowed, settings=settings)

    async def allowed_channels(
        self,
        session: AsyncSession,
        user_id: str,
        notification_type: str,
        candidate_channels: Iterable[str],
    ) -> set[str]:
        decision = await self.resolve(session, user_id, notification_type, candidate_channels)
        return set(decision.channels)
