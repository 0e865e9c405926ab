"""Repositories for the notifications feature."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.orm.attributes import set_committed_value

from notification_engine.core.database import BaseRepository, SearchResult
from notification_engine.features.notifications.enums import NotificationStatus
from notification_engine.features.notifications.models import (
    Notification,
    UserNotificationSettings,
)

if TYPE_CHECKING:
    from collections.abc import Collection, Mapping, Sequence
    from datetime import datetime
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession

    from notification_engine.features.notifications.state_machine import Transition

UNREAD_STATUSES = (NotificationStatus.SENT.value, NotificationStatus.DELIVERED.value)


class NotificationRepository(BaseRepository[Notification]):
    """Repository for Notification records.

    Status changes go through ``apply_transition`` only.
    """

    def __init__(self) -> None:
        super().__init__(Notification)

    async def apply_transition(
        self,
        session: AsyncSession,
        notification: Notification,
        transition: Transition,
    ) -> bool:
        """Apply ``transition`` if the row still has the observed status and retry count.

        On success the in-memory instance is updated without being marked
        dirty. On a lost race the instance is reloaded from the database and
        False is returned; nothing is written.
        """
        stmt = (
            update(Notification)
            .where(
                Notification.id == transition.notification_id,
                Notification.status == transition.source.value,
                Notification.retry_count == transition.expected_retry_count,
            )
            .values(**transition.values)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)

        if result.rowcount != 1:
            await session.refresh(notification)
            self._logger.info(
                "Notification changed concurrently, transition skipped",
                extra={
                    "notification_id": str(transition.notification_id),
                    "expected_status": transition.source.value,
                    "requested_status": transition.target.value,
                    "actual_status": notification.status,
                },
            )
            return False

        for key, value in transition.values.items():
            set_committed_value(notification, key, value)

        self._lazy.debug(
            lambda: f"db.apply_transition({transition.notification_id}): {transition.source} -> {transition.target}"
        )
        return True

    async def find_by_idempotency_key(
        self,
        session: AsyncSession,
        idempotency_key: str,
    ) -> Sequence[Notification]:
        """All records for an idempotency key, newest first."""
        stmt = (
            select(Notification)
            .where(Notification.idempotency_key == idempotency_key)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        items = result.scalars().all()

        self._lazy.debug(lambda: f"db.find_by_idempotency_key({idempotency_key=}) -> {len(items)} records")
        return items

    async def list_for_user(
        self,
        session: AsyncSession,
        user_id: str,
        *,
        status: str | None = None,
        notification_type: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> SearchResult[Notification]:
        """Newest-first page of a user's notifications with optional filters."""
        stmt = select(Notification).where(Notification.user_id == user_id)
        if status is not None:
            stmt = stmt.where(Notification.status == status)
        if notification_type is not None:
            stmt = stmt.where(Notification.type == notification_type)
        stmt = stmt.order_by(Notification.created_at.desc(), Notification.id.desc())

        return await self.search(session, stmt, limit=limit, offset=offset)

    async def count_unread(self, session: AsyncSession, user_id: str) -> int:
        """Count SENT or DELIVERED notifications that have not been read."""
        stmt = select(func.count()).where(
            and_(
                Notification.user_id == user_id,
                Notification.status.in_(UNREAD_STATUSES),
                Notification.read_at.is_(None),
            ),
        )
        count = (await session.execute(stmt)).scalar() or 0

        self._lazy.debug(lambda: f"db.count_unread({user_id=}) -> {count}")
        return count

    async def list_for_user_in_status(
        self,
        session: AsyncSession,
        user_id: str,
        status: NotificationStatus,
    ) -> Sequence[Notification]:
        stmt = (
            select(Notification)
            .where(Notification.user_id == user_id, Notification.status == status.value)
            .order_by(Notification.created_at.asc())
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalars().all()

    async def find_retry_candidates(
        self,
        session: AsyncSession,
        *,
        max_retries: int,
        cutoffs: Mapping[int, datetime],
        limit: int,
        exclude_ids: Collection[UUID] = (),
    ) -> Sequence[Notification]:
        """FAILED records under the cap whose backoff window has elapsed.

        Args:
            max_retries: Retry cap; records at or above it are never returned.
            cutoffs: retry_count -> latest ``updated_at`` that is old enough.
                Retry counts missing from the mapping are not selected.
            limit: Page size.
            exclude_ids: Records already handled earlier in the same sweep.

        Returns:
            Oldest ``updated_at`` first.
        """
        windows = [
            and_(Notification.retry_count == retry_count, Notification.updated_at < cutoff)
            for retry_count, cutoff in cutoffs.items()
            if retry_count < max_retries
        ]
        if not windows:
            return []

        filters = [
            Notification.status == NotificationStatus.FAILED.value,
            Notification.retry_count < max_retries,
            or_(*windows),
        ]
        if exclude_ids:
            filters.append(Notification.id.not_in(list(exclude_ids)))

        stmt = (
            select(Notification)
            .where(*filters)
            .order_by(Notification.updated_at.asc(), Notification.id.asc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        items = result.scalars().all()

        self._lazy.debug(lambda: f"db.find_retry_candidates({max_retries=}, {limit=}) -> {len(items)} records")
        return items

    async def find_stale_pending(
        self,
        session: AsyncSession,
        *,
        cutoff: datetime,
        limit: int,
    ) -> Sequence[Notification]:
        """PENDING records whose last transition is older than ``cutoff``, oldest first.

        A send is bounded by the provider timeout, so these are attempts whose
        worker died before recording an outcome.
        """
        stmt = (
            select(Notification)
            .where(
                Notification.status == NotificationStatus.PENDING.value,
                Notification.updated_at < cutoff,
            )
            .order_by(Notification.updated_at.asc(), Notification.id.asc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        items = result.scalars().all()

        self._lazy.debug(lambda: f"db.find_stale_pending({cutoff=}) -> {len(items)} records")
        return items

    async def list_exhausted(
        self,
        session: AsyncSession,
        *,
        max_retries: int,
        user_id: str | None = None,
        notification_type: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> SearchResult[Notification]:
        """FAILED records that reached the retry cap, oldest first."""
        stmt = select(Notification).where(
            Notification.status == NotificationStatus.FAILED.value,
            Notification.retry_count >= max_retries,
        )
        if user_id is not None:
            stmt = stmt.where(Notification.user_id == user_id)
        if notification_type is not None:
            stmt = stmt.where(Notification.type == notification_type)
        stmt = stmt.order_by(Notification.updated_at.asc(), Notification.id.asc())

        return await self.search(session, stmt, limit=limit, offset=offset)

    async def list_settled_before(
        self,
        session: AsyncSession,
        *,
        cutoff: datetime,
        max_retries: int,
        limit: int = 500,
    ) -> Sequence[Notification]:
        """Terminal records created before ``cutoff``: READ, CANCELLED and exhausted FAILED.

        SENT and DELIVERED records can still receive a receipt and are kept.
        """
        stmt = (
            select(Notification)
            .where(
                Notification.created_at < cutoff,
                or_(
                    Notification.status.in_(
                        [
                            NotificationStatus.READ.value,
                            NotificationStatus.CANCELLED.value,
                        ]
                    ),
                    and_(
                        Notification.status == NotificationStatus.FAILED.value,
                        Notification.retry_count >= max_retries,
                    ),
                ),
            )
            .order_by(Notification.created_at.asc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        items = result.scalars().all()

        self._lazy.debug(lambda: f"db.list_settled_before({cutoff=}) -> {len(items)} records")
        return items

    async def get_status_counts(self, session: AsyncSession) -> dict[str, int]:
        """Count records per status."""
        stmt = select(Notification.status, func.count(Notification.id)).group_by(
            Notification.status
        )
        result = await session.execute(stmt)
        return {status: count for status, count in result.all()}


class UserNotificationSettingsRepository(BaseRepository[UserNotificationSettings]):
    """Repository for per-user notification settings."""

    def __init__(self) -> None:
        super().__init__(UserNotificationSettings)

    async def get_for_user(
        self, session: AsyncSession, user_id: str
    ) -> UserNotificationSettings | None:
        return await self.get_by(session, UserNotificationSettings.user_id, user_id)

    async def upsert(
        self,
        session: AsyncSession,
        user_id: str,
        **fields: Any,
    ) -> UserNotificationSettings:
        """Create or update settings; ``channels``/``types`` are merged key by key."""
        existing = await self.get_for_user(session, user_id)

        if existing is None:
            settings = UserNotificationSettings(
                user_id=user_id,
                channels=dict(fields.pop("channels", None) or {}),
                types=dict(fields.pop("types", None) or {}),
                **fields,
            )
            created = await self.create(session, settings)
            self._lazy.debug(lambda: f"db.upsert({user_id=}) -> created")
            return created

        channels = fields.pop("channels", None)
        types = fields.pop("types", None)
        if channels:
            existing.channels = {**existing.channels, **channels}
        if types:
            existing.types = {**existing.types, **types}
        for key, value in fields.items():
            setattr(existing, key, value)
        await session.flush()

        self._lazy.debug(lambda: f"db.upsert({user_id=}) -> updated")
        return existing


# Factory functions for dependency injection
_notification_repository: NotificationRepository | None = None
_settings_repository: UserNotificationSettingsRepository | None = None


def get_notification_repository() -> NotificationRepository:
    """Get NotificationRepository singleton instance."""
    global _notification_repository
    if _notification_repository is None:
        _notification_repository = NotificationRepository()
    return _notification_repository


def get_user_notification_settings_repository() -> UserNotificationSettingsRepository:
    """Get UserNotificationSettingsRepository singleton instance."""
    global _settings_repository
    if _settings_repository is None:
        _settings_repository = UserNotificationSettingsRepository()
    return _settings_repository
