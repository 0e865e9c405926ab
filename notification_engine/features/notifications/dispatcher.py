"""Dispatch coordinator: one event in, one record per permitted channel out.

Per event:
    1. Candidate channels (event or configured defaults) are filtered by the
       user's preferences.
    2. Each allowed channel gets its own record, keyed ``event_id:channel``.
       A key that already has a live or successful record is reused as-is.
    3. Channels without a registered provider are recorded as CANCELLED.
    4. Sends run concurrently, each under the provider timeout.
    5. Outcomes are written one record at a time as compare-and-set
       transitions, each in its own commit.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
import time
from typing import TYPE_CHECKING

from notification_engine.core.settings import get_notification_settings
from notification_engine.features.notifications.enums import ErrorCategory, NotificationStatus
from notification_engine.features.notifications.exceptions import IllegalTransitionError
from notification_engine.features.notifications.metrics import (
    notification_concurrent_update_total,
    notification_created_total,
    notification_delivered_total,
    notification_delivery_duration_seconds,
    notification_duplicate_total,
    notification_errors_total,
    notification_illegal_transition_total,
    notification_retry_exhausted_total,
    notification_retry_total,
    notification_unsupported_channel_total,
)
from notification_engine.features.notifications.models import Notification
from notification_engine.features.notifications.preferences import PreferenceFilter
from notification_engine.features.notifications.providers import (
    OutboundMessage,
    UnsupportedChannel,
    get_provider_registry,
)
from notification_engine.features.notifications.repository import (
    NotificationRepository,
    get_notification_repository,
)
from notification_engine.features.notifications.state_machine import (
    SUCCESS_STATUSES,
    DeliveryStateMachine,
)
from notification_engine.infra.logging import get_lazy_logger, log_context

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from notification_engine.core.settings import NotificationSettings
    from notification_engine.features.notifications.models import UserNotificationSettings
    from notification_engine.features.notifications.providers import (
        NotificationProvider,
        ProviderRegistry,
    )
    from notification_engine.features.notifications.schemas import NotificationEvent
    from notification_engine.features.notifications.state_machine import Transition

logger = logging.getLogger(__name__)
lazy_logger = get_lazy_logger(__name__)


@dataclass(frozen=True, slots=True)
class SendOutcome:
    """Result of one provider attempt."""

    accepted: bool
    category: ErrorCategory | None = None
    message: str | None = None
    duration_seconds: float = 0.0


def idempotency_key(event_id: str, channel: str) -> str:
    return f"{event_id}:{channel}"


class DispatchCoordinator:
    """Turns events into delivery attempts across channel providers.

    Channels are independent: a failing, slow or unsupported channel never
    changes the outcome for another channel of the same event.
    """

    def __init__(
        self,
        *,
        registry: ProviderRegistry | None = None,
        preference_filter: PreferenceFilter | None = None,
        repository: NotificationRepository | None = None,
        settings: NotificationSettings | None = None,
        state_machine: DeliveryStateMachine | None = None,
    ) -> None:
        self._settings = settings or get_notification_settings()
        self._registry = registry or get_provider_registry()
        self._preferences = preference_filter or PreferenceFilter()
        self._repository = repository or get_notification_repository()
        self._machine = state_machine or DeliveryStateMachine(self._settings.max_retries)

    @property
    def state_machine(self) -> DeliveryStateMachine:
        return self._machine

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    # ──────────────────────────────────────────────────────────────
    # Fan-out
    # ──────────────────────────────────────────────────────────────

    async def dispatch(self, session: AsyncSession, event: NotificationEvent) -> list[Notification]:
        """Expand ``event`` into one record per allowed channel and attempt delivery.

        Returns:
            Created or reused records in channel order. Unsupported channels
            appear as CANCELLED records.
        """
        with log_context(event_id=event.event_id, user_id=event.user_id):
            candidates = (
                self._settings.default_channels if event.channels is None else event.channels
            )
            decision = await self._preferences.resolve(
                session, event.user_id, event.type, candidates
            )

            logger.info(
                "Dispatching event",
                extra={
                    "notification_type": event.type,
                    "service_origin": event.service_origin,
                    "candidates": list(candidates),
                    "allowed": list(decision.channels),
                    "preferences_degraded": decision.degraded,
                },
            )

            results: list[Notification] = []
            pending: list[tuple[Notification, NotificationProvider]] = []

            for channel in decision.channels:
                key = idempotency_key(event.event_id, channel)
                existing = await self._find_reusable(session, key)
                if existing is not None:
                    notification_duplicate_total.labels(channel=channel).inc()
                    logger.info(
                        "Duplicate event for channel, returning existing record",
                        extra={
                            "channel": channel,
                            "notification_id": str(existing.id),
                            "status": existing.status,
                        },
                    )
                    results.append(existing)
                    continue

                notification = await self._create_record(
                    session, event, channel, key, decision.settings
                )
                results.append(notification)

                resolved = self._registry.resolve(channel)
                if isinstance(resolved, UnsupportedChannel):
                    await self._cancel_unsupported(session, notification, resolved)
                    continue
                pending.append((notification, resolved))

            await self._deliver(session, pending)
            return results

    async def _find_reusable(self, session: AsyncSession, key: str) -> Notification | None:
        records = await self._repository.find_by_idempotency_key(session, key)
        if not records:
            return None
        latest = records[0]
        if not self._machine.is_terminal(latest) or latest.status in SUCCESS_STATUSES:
            return latest
        # CANCELLED or exhausted FAILED: a redelivered event gets a fresh attempt.
        return None

    async def _create_record(
        self,
        session: AsyncSession,
        event: NotificationEvent,
        channel: str,
        key: str,
        settings: UserNotificationSettings | None,
    ) -> Notification:
        address = event.recipients.get(channel)
        if address is None and settings is not None:
            address = settings.address_for(channel)

        notification = Notification(
            user_id=event.user_id,
            type=event.type.value,
            channel=channel,
            title=event.title,
            content=event.content,
            recipient_address=address,
            status=NotificationStatus.PENDING.value,
            retry_count=0,
            event_id=event.event_id,
            idempotency_key=key,
            service_origin=event.service_origin,
            extra_metadata=dict(event.metadata) or None,
        )
        notification = await self._repository.create(session, notification)
        await session.commit()

        notification_created_total.labels(notification_type=event.type.value, channel=channel).inc()
        lazy_logger.debug(lambda: f"dispatch: created {notification.id} for {channel}")
        return notification

    async def _cancel_unsupported(
        self,
        session: AsyncSession,
        notification: Notification,
        unsupported: UnsupportedChannel,
    ) -> None:
        notification_unsupported_channel_total.labels(channel=unsupported.channel).inc()
        logger.warning(
            "No provider for allowed channel, recording as cancelled",
            extra={"channel": unsupported.channel, "notification_id": str(notification.id)},
        )
        transition = self._machine.cancel(
            notification,
            reason=unsupported.reason,
            category=ErrorCategory.UNSUPPORTED_CHANNEL,
        )
        await self._apply(session, notification, transition)

    # ──────────────────────────────────────────────────────────────
    # Single-channel retry path
    # ──────────────────────────────────────────────────────────────

    async def redispatch(self, session: AsyncSession, notification: Notification) -> Notification:
        """Retry one FAILED record: FAILED -> PENDING -> SENT or FAILED.

        Raises:
            IllegalTransitionError: The record is not FAILED below the retry cap.
        """
        with log_context(notification_id=str(notification.id), user_id=notification.user_id):
            transition = self._machine.requeue(notification)
            if not await self._apply(session, notification, transition):
                return notification

            notification_retry_total.labels(channel=notification.channel).inc()
            logger.info(
                "Retrying notification",
                extra={"channel": notification.channel, "retry_count": notification.retry_count},
            )

            resolved = self._registry.resolve(notification.channel)
            if isinstance(resolved, UnsupportedChannel):
                await self._cancel_unsupported(session, notification, resolved)
                return notification

            await self._deliver(session, [(notification, resolved)])
            return notification

    # ──────────────────────────────────────────────────────────────
    # Sending and recording outcomes
    # ──────────────────────────────────────────────────────────────

    async def _deliver(
        self,
        session: AsyncSession,
        pending: list[tuple[Notification, NotificationProvider]],
    ) -> None:
        if not pending:
            return

        outcomes = await asyncio.gather(
            *(
                self.attempt_send(provider, OutboundMessage.from_notification(notification))
                for notification, provider in pending
            )
        )
        for (notification, _provider), outcome in zip(pending, outcomes, strict=True):
            await self._record_outcome(session, notification, outcome)

    async def attempt_send(
        self, provider: NotificationProvider, message: OutboundMessage
    ) -> SendOutcome:
        """Run one provider call under the configured timeout. Never raises."""
        if not provider.is_enabled():
            return SendOutcome(
                accepted=False,
                category=ErrorCategory.PROVIDER_DISABLED,
                message=f"Provider for {message.channel} is disabled",
            )

        timeout = self._settings.provider_timeout_seconds
        start = time.perf_counter()
        try:
            accepted = await asyncio.wait_for(provider.send_notification(message), timeout=timeout)
        except TimeoutError:
            return SendOutcome(
                accepted=False,
                category=ErrorCategory.TIMEOUT,
                message=f"Provider did not answer within {timeout:g}s",
                duration_seconds=time.perf_counter() - start,
            )
        except Exception as exc:
            logger.exception(
                "Provider raised during send",
                extra={"channel": message.channel, "notification_id": str(message.notification_id)},
            )
            return SendOutcome(
                accepted=False,
                category=ErrorCategory.TRANSPORT,
                message=f"{type(exc).__name__}: {exc}",
                duration_seconds=time.perf_counter() - start,
            )

        duration = time.perf_counter() - start
        notification_delivery_duration_seconds.labels(channel=message.channel).observe(duration)
        if accepted:
            return SendOutcome(accepted=True, duration_seconds=duration)
        return SendOutcome(
            accepted=False,
            category=ErrorCategory.TRANSPORT,
            message="Provider reported failure",
            duration_seconds=duration,
        )

    async def _record_outcome(
        self,
        session: AsyncSession,
        notification: Notification,
        outcome: SendOutcome,
    ) -> None:
        try:
            if outcome.accepted:
                transition = self._machine.mark_sent(notification)
            else:
                transition = self._machine.mark_failed(
                    notification,
                    category=outcome.category or ErrorCategory.TRANSPORT,
                    message=outcome.message,
                )
        except IllegalTransitionError as exc:
            # Changed while the send was in flight (cancelled); the outcome is dropped.
            notification_illegal_transition_total.labels(
                current_status=exc.current, requested_status=exc.requested
            ).inc()
            logger.info(
                "Send outcome discarded, record no longer pending",
                extra={"notification_id": str(notification.id), "status": notification.status},
            )
            return

        if not await self._apply(session, notification, transition):
            return

        channel = notification.channel
        notification_delivered_total.labels(channel=channel, status=notification.status).inc()
        if outcome.accepted:
            logger.info(
                "Notification sent",
                extra={"notification_id": str(notification.id), "channel": channel},
            )
            return

        notification_errors_total.labels(
            channel=channel, error_category=notification.error_category
        ).inc()
        exhausted = notification.retry_count >= self._machine.max_retries
        if exhausted:
            notification_retry_exhausted_total.labels(channel=channel).inc()
        logger.warning(
            "Notification delivery failed",
            extra={
                "notification_id": str(notification.id),
                "channel": channel,
                "error_category": notification.error_category,
                "error_message": notification.error_message,
                "retry_count": notification.retry_count,
                "exhausted": exhausted,
            },
        )

    async def _apply(
        self,
        session: AsyncSession,
        notification: Notification,
        transition: Transition,
    ) -> bool:
        applied = await self._repository.apply_transition(session, notification, transition)
        await session.commit()
        if not applied:
            notification_concurrent_update_total.labels(
                requested_status=transition.target.value
            ).inc()
        return applied


_coordinator: DispatchCoordinator | None = None


def get_dispatch_coordinator() -> DispatchCoordinator:
    """Get DispatchCoordinator singleton instance."""
    global _coordinator
    if _coordinator is None:
        _coordinator = DispatchCoordinator()
    return _coordinator


def set_dispatch_coordinator(coordinator: DispatchCoordinator | None) -> None:
    global _coordinator
    _coordinator = coordinator
