"""Administrative operations, queries and housekeeping for notifications."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from notification_engine.core.database import NotFoundError, utcnow
from notification_engine.core.services import BaseService
from notification_engine.core.settings import get_notification_settings
from notification_engine.features.notifications.enums import NotificationStatus, normalize_channel
from notification_engine.features.notifications.exceptions import (
    ConcurrentUpdateError,
    IllegalTransitionError,
)
from notification_engine.features.notifications.metrics import (
    notification_concurrent_update_total,
    notification_delivered_total,
    notification_housekeeping_deleted_total,
    notification_illegal_transition_total,
    notification_provider_enabled,
)
from notification_engine.features.notifications.models import (
    DEFAULT_CHANNEL_PREFERENCES,
    DEFAULT_TYPE_PREFERENCES,
)
from notification_engine.features.notifications.providers import (
    UnsupportedChannel,
    get_provider_registry,
)
from notification_engine.features.notifications.repository import (
    NotificationRepository,
    UserNotificationSettingsRepository,
    get_notification_repository,
    get_user_notification_settings_repository,
)
from notification_engine.features.notifications.state_machine import DeliveryStateMachine

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession

    from notification_engine.core.database import SearchResult
    from notification_engine.core.settings import NotificationSettings
    from notification_engine.features.notifications.models import (
        Notification,
        UserNotificationSettings,
    )
    from notification_engine.features.notifications.providers import (
        NotificationProvider,
        ProviderRegistry,
    )
    from notification_engine.features.notifications.schemas import (
        UserNotificationSettingsUpdate,
    )
    from notification_engine.features.notifications.state_machine import Transition

# Compare-and-set attempts before giving up on a hot record
MAX_TRANSITION_ATTEMPTS = 3
HOUSEKEEPING_PAGE_SIZE = 500


@dataclass(frozen=True, slots=True)
class HousekeepingResult:
    cutoff: datetime
    deleted: int
    exhausted: int


class NotificationService(BaseService):
    """Status hooks, query surface and settings management.

    Provides:
    - mark_delivered / mark_read / cancel hooks driven by the state machine
    - Inbox queries (list, unread count) and exhausted-failure listings
    - Housekeeping of settled records past the retention window
    - User notification settings and provider kill switches
    """

    def __init__(
        self,
        repository: NotificationRepository | None = None,
        settings_repository: UserNotificationSettingsRepository | None = None,
        registry: ProviderRegistry | None = None,
        settings: NotificationSettings | None = None,
    ) -> None:
        super().__init__()
        self._repository = repository or get_notification_repository()
        self._settings_repository = settings_repository or get_user_notification_settings_repository()
        self._registry = registry
        self._settings = settings or get_notification_settings()
        self._machine = DeliveryStateMachine(self._settings.max_retries)

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry or get_provider_registry()

    @property
    def state_machine(self) -> DeliveryStateMachine:
        return self._machine

    # ──────────────────────────────────────────────────────────────
    # Status hooks
    # ──────────────────────────────────────────────────────────────

    async def get_notification(self, session: AsyncSession, notification_id: UUID) -> Notification:
        return await self._repository.get_or_raise(session, notification_id)

    async def mark_delivered(self, session: AsyncSession, notification_id: UUID) -> Notification:
        """SENT -> DELIVERED on a delivery receipt."""
        return await self._change_status(session, notification_id, self._machine.mark_delivered)

    async def mark_read(self, session: AsyncSession, notification_id: UUID) -> Notification:
        """DELIVERED -> READ."""
        return await self._change_status(session, notification_id, self._machine.mark_read)

    async def cancel(
        self,
        session: AsyncSession,
        notification_id: UUID,
        *,
        reason: str | None = None,
    ) -> Notification:
        """Cancel a non-terminal record. An in-flight send will not overwrite it."""
        return await self._change_status(
            session,
            notification_id,
            lambda notification: self._machine.cancel(notification, reason=reason),
        )

    async def _change_status(
        self,
        session: AsyncSession,
        notification_id: UUID,
        build: Callable[[Notification], Transition],
    ) -> Notification:
        """Validate and apply a transition, re-reading the record on a lost race.

        Raises:
            NotFoundError: No such notification.
            IllegalTransitionError: Not allowed from the current status.
            ConcurrentUpdateError: Lost the race MAX_TRANSITION_ATTEMPTS times.
        """
        for _attempt in range(MAX_TRANSITION_ATTEMPTS):
            notification = await self._repository.get_or_raise(session, notification_id)
            try:
                transition = build(notification)
            except IllegalTransitionError as exc:
                notification_illegal_transition_total.labels(
                    current_status=exc.current, requested_status=exc.requested
                ).inc()
                self.logger.info(
                    "Illegal transition rejected",
                    extra={
                        "notification_id": str(notification_id),
                        "current_status": exc.current,
                        "requested_status": exc.requested,
                    },
                )
                raise

            if await self._repository.apply_transition(session, notification, transition):
                await session.commit()
                notification_delivered_total.labels(
                    channel=notification.channel, status=notification.status
                ).inc()
                self.logger.info(
                    "Notification status changed",
                    extra={
                        "notification_id": str(notification_id),
                        "from_status": transition.source.value,
                        "to_status": transition.target.value,
                    },
                )
                return notification

            notification_concurrent_update_total.labels(
                requested_status=transition.target.value
            ).inc()

        raise ConcurrentUpdateError(notification_id, MAX_TRANSITION_ATTEMPTS)

    async def mark_all_read(self, session: AsyncSession, user_id: str) -> int:
        """Mark every DELIVERED record of ``user_id`` as READ.

        Returns:
            Number of records changed.
        """
        delivered = await self._repository.list_for_user_in_status(
            session, user_id, NotificationStatus.DELIVERED
        )
        now = utcnow()
        updated = 0
        for notification in delivered:
            transition = self._machine.mark_read(notification, now=now)
            if await self._repository.apply_transition(session, notification, transition):
                updated += 1
        await session.commit()

        self.logger.info(
            "Marked notifications as read",
            extra={"user_id": user_id, "updated": updated, "candidates": len(delivered)},
        )
        return updated

    # ──────────────────────────────────────────────────────────────
    # Queries
    # ──────────────────────────────────────────────────────────────

    async def list_for_user(
        self,
        session: AsyncSession,
        user_id: str,
        *,
        status: NotificationStatus | None = None,
        notification_type: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> SearchResult[Notification]:
        return await self._repository.list_for_user(
            session,
            user_id,
            status=status.value if status else None,
            notification_type=notification_type,
            limit=limit,
            offset=offset,
        )

    async def count_unread(self, session: AsyncSession, user_id: str) -> int:
        return await self._repository.count_unread(session, user_id)

    async def list_exhausted(
        self,
        session: AsyncSession,
        *,
        user_id: str | None = None,
        notification_type: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> SearchResult[Notification]:
        """FAILED records that will never be retried again."""
        return await self._repository.list_exhausted(
            session,
            max_retries=self._machine.max_retries,
            user_id=user_id,
            notification_type=notification_type,
            limit=limit,
            offset=offset,
        )

    async def list_settled_before(
        self,
        session: AsyncSession,
        cutoff: datetime,
        *,
        limit: int = HOUSEKEEPING_PAGE_SIZE,
    ) -> Sequence[Notification]:
        """Records older than ``cutoff`` with no pending work left."""
        return await self._repository.list_settled_before(
            session, cutoff=cutoff, max_retries=self._machine.max_retries, limit=limit
        )

    async def get_status_counts(self, session: AsyncSession) -> dict[str, int]:
        """Record count per status, every status present (zero when absent)."""
        counts = await self._repository.get_status_counts(session)
        return {status.value: counts.get(status.value, 0) for status in NotificationStatus}

    # ──────────────────────────────────────────────────────────────
    # Housekeeping
    # ──────────────────────────────────────────────────────────────

    async def cleanup(
        self,
        session: AsyncSession,
        *,
        now: datetime | None = None,
        retention_days: int | None = None,
    ) -> HousekeepingResult:
        """Delete settled records created more than ``retention_days`` ago.

        Exhausted FAILED records are logged with their ids before removal so
        support can still find them in the log pipeline.
        """
        days = retention_days if retention_days is not None else self._settings.retention_days
        cutoff = (now or utcnow()) - timedelta(days=days)
        deleted = 0
        exhausted = 0

        while True:
            batch = await self.list_settled_before(session, cutoff)
            if not batch:
                break

            failed = [n for n in batch if n.status == NotificationStatus.FAILED]
            if failed:
                exhausted += len(failed)
                self.logger.info(
                    "Removing exhausted notifications",
                    extra={
                        "count": len(failed),
                        "notification_ids": [str(n.id) for n in failed],
                        "user_ids": sorted({n.user_id for n in failed}),
                    },
                )

            deleted += await self._repository.delete_by_ids(session, [n.id for n in batch])
            await session.commit()

            if len(batch) < HOUSEKEEPING_PAGE_SIZE:
                break

        notification_housekeeping_deleted_total.inc(deleted)
        self.logger.info(
            "Housekeeping finished",
            extra={"cutoff": cutoff.isoformat(), "deleted": deleted, "exhausted": exhausted},
        )
        return HousekeepingResult(cutoff=cutoff, deleted=deleted, exhausted=exhausted)

    # ──────────────────────────────────────────────────────────────
    # User settings
    # ──────────────────────────────────────────────────────────────

    async def get_user_settings(
        self, session: AsyncSession, user_id: str
    ) -> UserNotificationSettings:
        settings = await self._settings_repository.get_for_user(session, user_id)
        if settings is None:
            raise NotFoundError("UserNotificationSettings", {"user_id": user_id})
        return settings

    async def update_user_settings(
        self,
        session: AsyncSession,
        user_id: str,
        update: UserNotificationSettingsUpdate,
    ) -> UserNotificationSettings:
        fields = update.model_dump(exclude_unset=True)
        if fields.get("types") is not None:
            fields["types"] = {str(k): v for k, v in fields["types"].items()}
        settings = await self._settings_repository.upsert(session, user_id, **fields)
        await session.commit()

        self.logger.info(
            "User notification settings updated",
            extra={"user_id": user_id, "fields": sorted(fields)},
        )
        return settings

    async def ensure_default_settings(
        self,
        session: AsyncSession,
        user_id: str,
        *,
        email: str | None = None,
    ) -> tuple[UserNotificationSettings, bool]:
        """Create default settings for a new user if none exist.

        Returns:
            (settings, created)
        """
        existing = await self._settings_repository.get_for_user(session, user_id)
        if existing is not None:
            return existing, False

        settings = await self._settings_repository.upsert(
            session,
            user_id,
            email=email,
            channels={str(k): v for k, v in DEFAULT_CHANNEL_PREFERENCES.items()},
            types=dict(DEFAULT_TYPE_PREFERENCES),
        )
        await session.commit()

        self.logger.info("Default notification settings created", extra={"user_id": user_id})
        return settings, True

    # ──────────────────────────────────────────────────────────────
    # Providers
    # ──────────────────────────────────────────────────────────────

    def list_providers(self) -> list[NotificationProvider]:
        return self.registry.providers()

    def set_provider_enabled(self, channel: str, enabled: bool) -> NotificationProvider:
        """Flip a provider's kill switch.

        Raises:
            NotFoundError: No provider is registered for ``channel``.
        """
        resolved = self.registry.resolve(channel)
        if isinstance(resolved, UnsupportedChannel):
            raise NotFoundError("NotificationProvider", {"channel": normalize_channel(channel)})

        if enabled:
            resolved.enable()
        else:
            resolved.disable()
        notification_provider_enabled.labels(channel=resolved.get_channel()).set(1 if enabled else 0)
        return resolved


_notification_service: NotificationService | None = None


def get_notification_service() -> NotificationService:
    """Get NotificationService singleton instance."""
    global _notification_service
    if _notification_service is None:
        _notification_service = NotificationService()
    return _notification_service
