"""Retry sweep for FAILED notifications.

A FAILED record with ``retry_count < max_retries`` becomes eligible once
``backoff(retry_count)`` has elapsed since its last transition. Each sweep
loads eligible records oldest ``updated_at`` first, in pages of
``retry_batch_size``, for at most ``retry_max_batches`` pages, and sends each
one again through ``DispatchCoordinator.redispatch``.

Before selecting, the sweep fails PENDING records that have not moved for
``pending_timeout_seconds`` with category ``timeout``. Those are attempts whose
worker stopped between creating the record and recording the send outcome;
once FAILED they follow the normal backoff.

Each retried record is loaded by id inside its own unit of work, so a record
whose retry raises is rolled back and skipped without affecting the rest of
the sweep.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
import logging
import time
from typing import TYPE_CHECKING

from notification_engine.core.database import utcnow
from notification_engine.core.settings import get_notification_settings
from notification_engine.features.notifications.enums import ErrorCategory, NotificationStatus
from notification_engine.features.notifications.exceptions import IllegalTransitionError
from notification_engine.features.notifications.metrics import (
    notification_retry_sweep_duration_seconds,
    notification_stale_pending_total,
)
from notification_engine.features.notifications.repository import (
    NotificationRepository,
    get_notification_repository,
)

if TYPE_CHECKING:
    from collections.abc import Collection
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession

    from notification_engine.core.settings import NotificationSettings
    from notification_engine.core.settings.notifications import BackoffStrategy
    from notification_engine.features.notifications.dispatcher import DispatchCoordinator
    from notification_engine.features.notifications.models import Notification

logger = logging.getLogger(__name__)


class BackoffPolicy:
    """Delay before a FAILED record may be retried, keyed on its retry_count.

    ``fixed``: always ``base``.
    ``exponential``: ``base * 2**retry_count``.
    Both are capped at ``maximum``.
    """

    def __init__(
        self,
        strategy: BackoffStrategy = "exponential",
        base_seconds: float = 60.0,
        max_seconds: float = 3600.0,
    ) -> None:
        if strategy not in ("fixed", "exponential"):
            raise ValueError(f"Unknown backoff strategy: {strategy}")
        if base_seconds < 0 or max_seconds < 0:
            raise ValueError("Backoff durations must be non-negative")
        self.strategy = strategy
        self.base_seconds = base_seconds
        self.max_seconds = max_seconds

    @classmethod
    def from_settings(cls, settings: NotificationSettings) -> BackoffPolicy:
        return cls(
            strategy=settings.backoff_strategy,
            base_seconds=settings.backoff_base_seconds,
            max_seconds=settings.backoff_max_seconds,
        )

    def delay(self, retry_count: int) -> timedelta:
        if self.strategy == "fixed":
            seconds = self.base_seconds
        else:
            # Clamp the exponent so large retry counts cannot overflow a float.
            seconds = self.base_seconds * (2 ** min(retry_count, 64))
        return timedelta(seconds=min(seconds, self.max_seconds))

    def cutoffs(self, now: datetime, max_retries: int) -> dict[int, datetime]:
        """retry_count -> latest ``updated_at`` that has waited long enough."""
        return {count: now - self.delay(count) for count in range(max_retries)}

    def is_due(self, notification: Notification, now: datetime) -> bool:
        updated_at = notification.updated_at
        if updated_at.tzinfo is None:
            updated_at = updated_at.replace(tzinfo=UTC)
        return updated_at < now - self.delay(notification.retry_count)


@dataclass(slots=True)
class RetrySweepResult:
    """Counters for one sweep."""

    batches: int = 0
    selected: int = 0
    sent: int = 0
    failed: int = 0
    exhausted: int = 0
    skipped: int = 0
    recovered: int = 0


class RetryScheduler:
    """Selects due FAILED records and retries them one channel at a time."""

    def __init__(
        self,
        coordinator: DispatchCoordinator | None = None,
        *,
        repository: NotificationRepository | None = None,
        settings: NotificationSettings | None = None,
        backoff: BackoffPolicy | None = None,
    ) -> None:
        if coordinator is None:
            from notification_engine.features.notifications.dispatcher import (
                get_dispatch_coordinator,
            )

            coordinator = get_dispatch_coordinator()
        self._coordinator = coordinator
        self._repository = repository or get_notification_repository()
        self._settings = settings or get_notification_settings()
        self._backoff = backoff or BackoffPolicy.from_settings(self._settings)

    @property
    def backoff(self) -> BackoffPolicy:
        return self._backoff

    async def find_due(
        self,
        session: AsyncSession,
        *,
        now: datetime | None = None,
        limit: int | None = None,
        exclude_ids: Collection[UUID] = (),
    ) -> list[Notification]:
        """One page of records whose backoff window has elapsed, oldest first."""
        now = now or utcnow()
        max_retries = self._coordinator.state_machine.max_retries
        candidates = await self._repository.find_retry_candidates(
            session,
            max_retries=max_retries,
            cutoffs=self._backoff.cutoffs(now, max_retries),
            limit=limit or self._settings.retry_batch_size,
            exclude_ids=exclude_ids,
        )
        return list(candidates)

    async def recover_stale_pending(
        self, session: AsyncSession, *, now: datetime | None = None
    ) -> int:
        """Fail PENDING records left without a send outcome.

        Returns:
            Number of records moved to FAILED.
        """
        now = now or utcnow()
        timeout = self._settings.pending_timeout_seconds
        stale = await self._repository.find_stale_pending(
            session,
            cutoff=now - timedelta(seconds=timeout),
            limit=self._settings.retry_batch_size * self._settings.retry_max_batches,
        )

        machine = self._coordinator.state_machine
        recovered = 0
        for notification in stale:
            transition = machine.mark_failed(
                notification,
                category=ErrorCategory.TIMEOUT,
                message=f"No send outcome recorded within {timeout:g}s",
                now=now,
            )
            applied = await self._repository.apply_transition(session, notification, transition)
            await session.commit()
            if not applied:
                continue
            recovered += 1
            notification_stale_pending_total.labels(channel=notification.channel).inc()
            logger.warning(
                "Stale pending notification failed",
                extra={
                    "notification_id": str(notification.id),
                    "channel": notification.channel,
                    "retry_count": notification.retry_count,
                },
            )
        return recovered

    async def run_once(self, session: AsyncSession, *, now: datetime | None = None) -> RetrySweepResult:
        """Run one sweep.

        Args:
            session: Session used for selection and for every retried record.
            now: Reference time for backoff windows (defaults to current UTC time).

        Returns:
            Counters for the sweep.
        """
        now = now or utcnow()
        result = RetrySweepResult()
        seen: set[UUID] = set()
        batch_size = self._settings.retry_batch_size
        start = time.perf_counter()

        result.recovered = await self.recover_stale_pending(session, now=now)

        for _ in range(self._settings.retry_max_batches):
            batch_ids = [n.id for n in await self.find_due(session, now=now, exclude_ids=seen)]
            if not batch_ids:
                break
            result.batches += 1
            result.selected += len(batch_ids)
            seen.update(batch_ids)

            for notification_id in batch_ids:
                await self._retry_one(session, notification_id, result)

            if len(batch_ids) < batch_size:
                break

        notification_retry_sweep_duration_seconds.observe(time.perf_counter() - start)
        logger.info(
            "Retry sweep finished",
            extra={
                "batches": result.batches,
                "selected": result.selected,
                "sent": result.sent,
                "failed": result.failed,
                "exhausted": result.exhausted,
                "skipped": result.skipped,
                "recovered": result.recovered,
            },
        )
        return result

    async def _retry_one(
        self,
        session: AsyncSession,
        notification_id: UUID,
        result: RetrySweepResult,
    ) -> None:
        try:
            notification = await self._repository.get(session, notification_id)
            if notification is None:
                # Removed by housekeeping since it was selected
                result.skipped += 1
                return
            updated = await self._coordinator.redispatch(session, notification)
        except IllegalTransitionError as exc:
            result.skipped += 1
            logger.info(
                "Notification no longer retryable, skipped",
                extra={"notification_id": str(notification_id), "reason": exc.message},
            )
            return
        except Exception:
            result.skipped += 1
            logger.exception(
                "Retry failed unexpectedly",
                extra={"notification_id": str(notification_id)},
            )
            await session.rollback()
            return

        status = NotificationStatus(updated.status)
        if status is NotificationStatus.SENT:
            result.sent += 1
        elif status is NotificationStatus.FAILED:
            result.failed += 1
            if updated.retry_count >= self._coordinator.state_machine.max_retries:
                result.exhausted += 1
        else:
            result.skipped += 1
