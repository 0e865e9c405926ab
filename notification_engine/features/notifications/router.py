"""API router for the notifications feature.

Notification Endpoints:
- POST /notifications/dispatch - Dispatch an event to the user's channels
- GET /notifications/{notification_id} - Get one notification
- POST /notifications/{notification_id}/delivered - Delivery receipt hook
- POST /notifications/{notification_id}/read - Read receipt hook
- POST /notifications/{notification_id}/cancel - Cancel a non-terminal notification

User Endpoints:
- GET /notifications/users/{user_id} - List a user's notifications
- GET /notifications/users/{user_id}/unread-count - Unread count
- POST /notifications/users/{user_id}/read-all - Mark every delivered notification read
- GET /notifications/users/{user_id}/settings - Notification settings
- PUT /notifications/users/{user_id}/settings - Create or update settings

Admin Endpoints:
- GET /notifications/admin/exhausted - FAILED notifications past the retry cap
- GET /notifications/admin/settled - Settled notifications older than a cutoff
- GET /notifications/admin/stats - Record count per status
- POST /notifications/admin/retry-sweep - Run one retry sweep now
- POST /notifications/admin/housekeeping - Run housekeeping now
- GET /notifications/admin/providers - Registered providers
- POST /notifications/admin/providers/{channel}/enable|disable - Kill switch
"""

from __future__ import annotations

from datetime import timedelta
import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Body, Query, status

from notification_engine.core.database import NotFoundError, utcnow
from notification_engine.core.exceptions import ConflictException, NotFoundException
from notification_engine.features.notifications.dependencies import (
    DispatchCoordinatorDep,
    NotificationServiceDep,
    RetrySchedulerDep,
    SessionDep,
)
from notification_engine.features.notifications.enums import NotificationStatus, NotificationType
from notification_engine.features.notifications.exceptions import (
    ConcurrentUpdateError,
    IllegalTransitionError,
)
from notification_engine.features.notifications.models import (
    DEFAULT_CHANNEL_PREFERENCES,
    DEFAULT_TYPE_PREFERENCES,
    UserNotificationSettings,
)
from notification_engine.features.notifications.schemas import (
    CancelRequest,
    DispatchResponse,
    HousekeepingResponse,
    MarkAllReadResponse,
    NotificationEvent,
    NotificationListResponse,
    NotificationRead,
    ProviderStatus,
    RetrySweepResponse,
    StatusCountsResponse,
    UnreadCountResponse,
    UserNotificationSettingsRead,
    UserNotificationSettingsUpdate,
)
from notification_engine.features.notifications.service import NotificationService
from notification_engine.infra.logging import get_lazy_logger

logger = logging.getLogger(__name__)
lazy_logger = get_lazy_logger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])

admin_router = APIRouter(prefix="/notifications/admin", tags=["notifications-admin"])


def _not_found(exc: NotFoundError) -> NotFoundException:
    return NotFoundException(
        detail=str(exc),
        type="notification-not-found",
        extra={"model": exc.model_name, "identifier": {k: str(v) for k, v in exc.identifier.items()}},
    )


def _conflict(exc: IllegalTransitionError | ConcurrentUpdateError) -> ConflictException:
    if isinstance(exc, IllegalTransitionError):
        return ConflictException(
            detail=exc.message,
            type="illegal-transition",
            extra={
                "notification_id": str(exc.notification_id) if exc.notification_id else None,
                "current_status": str(exc.current),
                "requested_status": str(exc.requested),
            },
        )
    return ConflictException(
        detail=exc.message,
        type="concurrent-update",
        extra={"notification_id": str(exc.notification_id), "attempts": exc.attempts},
    )


def _settings_read(settings: UserNotificationSettings) -> UserNotificationSettingsRead:
    return UserNotificationSettingsRead(
        user_id=settings.user_id,
        email=settings.email,
        phone_number=settings.phone_number,
        device_token=settings.device_token,
        channels={**{str(k): v for k, v in DEFAULT_CHANNEL_PREFERENCES.items()}, **settings.channels},
        types={**DEFAULT_TYPE_PREFERENCES, **settings.types},
        updated_at=settings.updated_at,
    )


# ============================================================================
# Dispatch and status hooks
# ============================================================================


@router.post(
    "/dispatch",
    response_model=DispatchResponse,
    summary="Dispatch an event",
    description="""
Expand an event into one notification per allowed channel and attempt delivery.

Re-posting an event with the same `event_id` returns the existing records for
channels that are still in flight or already delivered.
""",
)
async def dispatch_event(
    event: NotificationEvent,
    session: SessionDep,
    coordinator: DispatchCoordinatorDep,
) -> DispatchResponse:
    notifications = await coordinator.dispatch(session, event)
    return DispatchResponse(
        event_id=event.event_id,
        notifications=[NotificationRead.model_validate(n) for n in notifications],
    )


@router.get("/{notification_id}", response_model=NotificationRead, summary="Get a notification")
async def get_notification(
    notification_id: UUID,
    session: SessionDep,
    service: NotificationServiceDep,
) -> NotificationRead:
    try:
        notification = await service.get_notification(session, notification_id)
    except NotFoundError as exc:
        raise _not_found(exc) from exc
    return NotificationRead.model_validate(notification)


@router.post(
    "/{notification_id}/delivered",
    response_model=NotificationRead,
    summary="Record a delivery receipt",
    responses={409: {"description": "Notification is not SENT"}},
)
async def mark_delivered(
    notification_id: UUID,
    session: SessionDep,
    service: NotificationServiceDep,
) -> NotificationRead:
    try:
        notification = await service.mark_delivered(session, notification_id)
    except NotFoundError as exc:
        raise _not_found(exc) from exc
    except (IllegalTransitionError, ConcurrentUpdateError) as exc:
        raise _conflict(exc) from exc
    return NotificationRead.model_validate(notification)


@router.post(
    "/{notification_id}/read",
    response_model=NotificationRead,
    summary="Record a read receipt",
    responses={409: {"description": "Notification is not DELIVERED"}},
)
async def mark_read(
    notification_id: UUID,
    session: SessionDep,
    service: NotificationServiceDep,
) -> NotificationRead:
    try:
        notification = await service.mark_read(session, notification_id)
    except NotFoundError as exc:
        raise _not_found(exc) from exc
    except (IllegalTransitionError, ConcurrentUpdateError) as exc:
        raise _conflict(exc) from exc
    return NotificationRead.model_validate(notification)


@router.post(
    "/{notification_id}/cancel",
    response_model=NotificationRead,
    summary="Cancel a notification",
    responses={409: {"description": "Notification is already terminal"}},
)
async def cancel_notification(
    notification_id: UUID,
    session: SessionDep,
    service: NotificationServiceDep,
    payload: Annotated[CancelRequest | None, Body()] = None,
) -> NotificationRead:
    reason = payload.reason if payload else None
    try:
        notification = await service.cancel(session, notification_id, reason=reason)
    except NotFoundError as exc:
        raise _not_found(exc) from exc
    except (IllegalTransitionError, ConcurrentUpdateError) as exc:
        raise _conflict(exc) from exc
    return NotificationRead.model_validate(notification)


# ============================================================================
# User queries and settings
# ============================================================================


@router.get(
    "/users/{user_id}",
    response_model=NotificationListResponse,
    summary="List a user's notifications",
)
async def list_user_notifications(
    user_id: str,
    session: SessionDep,
    service: NotificationServiceDep,
    status_filter: Annotated[
        NotificationStatus | None,
        Query(alias="status", description="Filter by status"),
    ] = None,
    notification_type: Annotated[
        NotificationType | None,
        Query(alias="type", description="Filter by notification type"),
    ] = None,
    limit: Annotated[int, Query(ge=1, le=100, description="Maximum results")] = 50,
    offset: Annotated[int, Query(ge=0, description="Pagination offset")] = 0,
) -> NotificationListResponse:
    result = await service.list_for_user(
        session,
        user_id,
        status=status_filter,
        notification_type=notification_type.value if notification_type else None,
        limit=limit,
        offset=offset,
    )
    return NotificationListResponse(
        items=[NotificationRead.model_validate(n) for n in result.items],
        total=result.total,
        limit=result.limit,
        offset=result.offset,
        has_next=result.has_next,
    )


@router.get(
    "/users/{user_id}/unread-count",
    response_model=UnreadCountResponse,
    summary="Count unread notifications",
)
async def unread_count(
    user_id: str,
    session: SessionDep,
    service: NotificationServiceDep,
) -> UnreadCountResponse:
    count = await service.count_unread(session, user_id)
    return UnreadCountResponse(user_id=user_id, unread_count=count)


@router.post(
    "/users/{user_id}/read-all",
    response_model=MarkAllReadResponse,
    summary="Mark all delivered notifications as read",
)
async def mark_all_read(
    user_id: str,
    session: SessionDep,
    service: NotificationServiceDep,
) -> MarkAllReadResponse:
    updated = await service.mark_all_read(session, user_id)
    return MarkAllReadResponse(user_id=user_id, updated=updated)


@router.get(
    "/users/{user_id}/settings",
    response_model=UserNotificationSettingsRead,
    summary="Get notification settings",
)
async def get_user_settings(
    user_id: str,
    session: SessionDep,
    service: NotificationServiceDep,
) -> UserNotificationSettingsRead:
    try:
        settings = await service.get_user_settings(session, user_id)
    except NotFoundError as exc:
        raise _not_found(exc) from exc
    return _settings_read(settings)


@router.put(
    "/users/{user_id}/settings",
    response_model=UserNotificationSettingsRead,
    summary="Create or update notification settings",
)
async def update_user_settings(
    user_id: str,
    update: UserNotificationSettingsUpdate,
    session: SessionDep,
    service: NotificationServiceDep,
) -> UserNotificationSettingsRead:
    settings = await service.update_user_settings(session, user_id, update)
    return _settings_read(settings)


# ============================================================================
# Admin
# ============================================================================


@admin_router.get(
    "/exhausted",
    response_model=NotificationListResponse,
    summary="List notifications that exhausted their retries",
)
async def list_exhausted(
    session: SessionDep,
    service: NotificationServiceDep,
    user_id: Annotated[str | None, Query(description="Filter by user")] = None,
    notification_type: Annotated[
        NotificationType | None,
        Query(alias="type", description="Filter by notification type"),
    ] = None,
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> NotificationListResponse:
    result = await service.list_exhausted(
        session,
        user_id=user_id,
        notification_type=notification_type.value if notification_type else None,
        limit=limit,
        offset=offset,
    )
    return NotificationListResponse(
        items=[NotificationRead.model_validate(n) for n in result.items],
        total=result.total,
        limit=result.limit,
        offset=result.offset,
        has_next=result.has_next,
    )


@admin_router.get(
    "/settled",
    response_model=list[NotificationRead],
    summary="List settled notifications older than a cutoff",
)
async def list_settled(
    session: SessionDep,
    service: NotificationServiceDep,
    older_than_days: Annotated[int, Query(ge=0, le=3650)] = 30,
    limit: Annotated[int, Query(ge=1, le=1000)] = 100,
) -> list[NotificationRead]:
    cutoff = utcnow() - timedelta(days=older_than_days)
    records = await service.list_settled_before(session, cutoff, limit=limit)
    return [NotificationRead.model_validate(n) for n in records]


@admin_router.get(
    "/stats",
    response_model=StatusCountsResponse,
    summary="Count notifications per status",
)
async def status_counts(session: SessionDep, service: NotificationServiceDep) -> StatusCountsResponse:
    counts = await service.get_status_counts(session)
    return StatusCountsResponse(counts=counts, total=sum(counts.values()))


@admin_router.post(
    "/retry-sweep",
    response_model=RetrySweepResponse,
    summary="Run one retry sweep now",
)
async def run_retry_sweep(session: SessionDep, scheduler: RetrySchedulerDep) -> RetrySweepResponse:
    result = await scheduler.run_once(session)
    return RetrySweepResponse(
        batches=result.batches,
        selected=result.selected,
        sent=result.sent,
        failed=result.failed,
        exhausted=result.exhausted,
        skipped=result.skipped,
        recovered=result.recovered,
    )


@admin_router.post(
    "/housekeeping",
    response_model=HousekeepingResponse,
    summary="Delete settled notifications past the retention window",
)
async def run_housekeeping(
    session: SessionDep,
    service: NotificationServiceDep,
    retention_days: Annotated[int | None, Query(ge=1, le=3650)] = None,
) -> HousekeepingResponse:
    result = await service.cleanup(session, retention_days=retention_days)
    return HousekeepingResponse(cutoff=result.cutoff, deleted=result.deleted, exhausted=result.exhausted)


@admin_router.get("/providers", response_model=list[ProviderStatus], summary="List providers")
async def list_providers(service: NotificationServiceDep) -> list[ProviderStatus]:
    return [
        ProviderStatus(
            channel=provider.get_channel(),
            provider=type(provider).__name__,
            enabled=provider.is_enabled(),
        )
        for provider in service.list_providers()
    ]


async def _set_provider(
    service: NotificationService, channel: str, enabled: bool
) -> ProviderStatus:
    try:
        provider = service.set_provider_enabled(channel, enabled)
    except NotFoundError as exc:
        raise _not_found(exc) from exc
    logger.warning(
        "Provider kill switch changed",
        extra={"channel": provider.get_channel(), "enabled": enabled},
    )
    return ProviderStatus(
        channel=provider.get_channel(),
        provider=type(provider).__name__,
        enabled=provider.is_enabled(),
    )


@admin_router.post(
    "/providers/{channel}/enable",
    response_model=ProviderStatus,
    status_code=status.HTTP_200_OK,
    summary="Enable a provider",
)
async def enable_provider(channel: str, service: NotificationServiceDep) -> ProviderStatus:
    return await _set_provider(service, channel, True)


@admin_router.post(
    "/providers/{channel}/disable",
    response_model=ProviderStatus,
    status_code=status.HTTP_200_OK,
    summary="Disable a provider",
)
async def disable_provider(channel: str, service: NotificationServiceDep) -> ProviderStatus:
    return await _set_provider(service, channel, False)
