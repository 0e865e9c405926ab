"""Inbound domain events and their translation into notification events.

Task and auth services publish their own event shapes (camelCase JSON).
This module validates them and turns each into zero or more
``NotificationEvent`` objects with rendered titles and content, then hands
them to the dispatch coordinator.
"""

from __future__ import annotations

from datetime import datetime
import logging
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from notification_engine.core.database import utcnow
from notification_engine.features.notifications.enums import Channel, NotificationType
from notification_engine.features.notifications.schemas import NotificationEvent

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from notification_engine.features.notifications.dispatcher import DispatchCoordinator
    from notification_engine.features.notifications.models import Notification
    from notification_engine.features.notifications.service import NotificationService

logger = logging.getLogger(__name__)

TASK_SERVICE_ORIGIN = "task-service"
AUTH_SERVICE_ORIGIN = "auth-service"


class _InboundEvent(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="ignore",
        frozen=True,
    )

    def as_metadata(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class TaskEvent(_InboundEvent):
    """Task lifecycle event published on the task topic."""

    event_id: str | None = None
    event_type: str = Field(..., description="CREATED, UPDATED, DELETED, ASSIGNED, COMPLETED, OVERDUE")
    task_id: str | None = None
    title: str = ""
    description: str | None = None
    priority: str | None = None
    status: str | None = None
    assigned_user_id: str | None = None
    created_by_user_id: str | None = None
    due_date: datetime | None = None
    event_time: datetime | None = None
    service_origin: str = TASK_SERVICE_ORIGIN


class AuthEvent(_InboundEvent):
    """Account event published on the auth topic."""

    event_id: str | None = None
    event_type: str = Field(..., description="USER_REGISTERED, USER_LOGIN, USER_LOGOUT, PASSWORD_RESET")
    user_id: str
    username: str | None = None
    email: str | None = None
    role: str | None = None
    event_time: datetime | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    service_origin: str = AUTH_SERVICE_ORIGIN


def _base_event_id(prefix: str, event: TaskEvent | AuthEvent, subject: str | None) -> str:
    """Stable id for redeliveries of the same upstream event.

    Without an explicit id or an event time there is nothing stable to key
    on, so a random id is used and duplicates are not detected.
    """
    if event.event_id:
        return event.event_id
    if event.event_time is not None:
        return f"{prefix}:{subject}:{event.event_type}:{event.event_time.isoformat()}"
    return f"{prefix}:{uuid4()}"


# ──────────────────────────────────────────────────────────────
# Task events
# ──────────────────────────────────────────────────────────────


def map_task_event(event: TaskEvent) -> list[NotificationEvent]:
    """Notification events for one task event; empty for unknown types."""
    base_id = _base_event_id("task", event, event.task_id)
    metadata = event.as_metadata()
    title = event.title
    assignee = event.assigned_user_id
    creator = event.created_by_user_id

    def build(role: str, user_id: str, ntype: NotificationType, subject: str, body: str) -> NotificationEvent:
        return NotificationEvent(
            event_id=f"{base_id}:{role}",
            service_origin=event.service_origin,
            type=ntype,
            user_id=user_id,
            title=subject,
            content=body,
            timestamp=event.event_time or utcnow(),
            metadata=metadata,
        )

    kind = event.event_type.upper()
    events: list[NotificationEvent] = []

    if kind == "CREATED":
        if assignee:
            events.append(
                build(
                    "assignee",
                    assignee,
                    NotificationType.TASK_CREATED,
                    "New Task Created",
                    f"A new task '{title}' has been created and assigned to you.",
                )
            )
        if creator and creator != assignee:
            events.append(
                build(
                    "creator",
                    creator,
                    NotificationType.TASK_CREATED,
                    "Task Created Successfully",
                    f"Your task '{title}' has been created successfully.",
                )
            )
    elif kind == "UPDATED" and assignee:
        events.append(
            build("assignee", assignee, NotificationType.TASK_UPDATED, "Task Updated", f"Task '{title}' has been updated.")
        )
    elif kind == "DELETED" and assignee:
        events.append(
            build("assignee", assignee, NotificationType.TASK_DELETED, "Task Deleted", f"Task '{title}' has been deleted.")
        )
    elif kind == "ASSIGNED" and assignee:
        events.append(
            build(
                "assignee",
                assignee,
                NotificationType.TASK_ASSIGNED,
                "Task Assigned to You",
                f"Task '{title}' has been assigned to you.",
            )
        )
    elif kind == "COMPLETED" and creator:
        events.append(
            build("creator", creator, NotificationType.TASK_COMPLETED, "Task Completed", f"Task '{title}' has been completed.")
        )
    elif kind == "OVERDUE" and assignee:
        events.append(
            build(
                "assignee",
                assignee,
                NotificationType.TASK_OVERDUE,
                "Task Overdue",
                f"Task '{title}' is overdue. Please complete it as soon as possible.",
            )
        )
    elif kind not in {"CREATED", "UPDATED", "DELETED", "ASSIGNED", "COMPLETED", "OVERDUE"}:
        logger.warning("Unknown task event type", extra={"event_type": event.event_type, "task_id": event.task_id})

    return events


# ──────────────────────────────────────────────────────────────
# Auth events
# ──────────────────────────────────────────────────────────────


def map_auth_event(event: AuthEvent) -> list[NotificationEvent]:
    """Notification events for one auth event.

    USER_LOGIN only produces an alert when the login carries an IP address.
    """
    kind = event.event_type.upper()
    base_id = _base_event_id("auth", event, event.user_id)
    recipients = {Channel.EMAIL.value: event.email} if event.email else {}
    when = event.event_time or utcnow()

    def build(ntype: NotificationType, subject: str, body: str) -> NotificationEvent:
        return NotificationEvent(
            event_id=base_id,
            service_origin=event.service_origin,
            type=ntype,
            user_id=event.user_id,
            recipients=recipients,
            channels=[Channel.EMAIL.value],
            title=subject,
            content=body,
            timestamp=when,
            metadata=event.as_metadata(),
        )

    if kind == "USER_REGISTERED":
        name = event.username or "there"
        return [
            build(
                NotificationType.USER_REGISTERED,
                "Welcome to Task Tracker!",
                f"Welcome {name}! Your account has been created successfully. "
                "You can now start managing your tasks and receive notifications about important updates.",
            )
        ]
    if kind == "USER_LOGIN":
        if not event.ip_address:
            return []
        return [
            build(
                NotificationType.USER_LOGIN,
                "New Login Detected",
                f"A new login to your Task Tracker account was detected from IP: "
                f"{event.ip_address} at {when.isoformat()}",
            )
        ]
    if kind == "PASSWORD_RESET":
        return [
            build(
                NotificationType.SYSTEM_ALERT,
                "Password Reset Request",
                "A password reset request has been made for your account. "
                "If you didn't request this, please contact support immediately.",
            )
        ]
    if kind != "USER_LOGOUT":
        logger.warning("Unknown auth event type", extra={"event_type": event.event_type, "user_id": event.user_id})
    return []


# ──────────────────────────────────────────────────────────────
# Processing
# ──────────────────────────────────────────────────────────────


async def dispatch_all(
    session: AsyncSession,
    events: list[NotificationEvent],
    coordinator: DispatchCoordinator,
) -> list[Notification]:
    results: list[Notification] = []
    for notification_event in events:
        results.extend(await coordinator.dispatch(session, notification_event))
    return results


async def process_task_event(
    session: AsyncSession,
    event: TaskEvent,
    *,
    coordinator: DispatchCoordinator,
) -> list[Notification]:
    return await dispatch_all(session, map_task_event(event), coordinator)


async def process_auth_event(
    session: AsyncSession,
    event: AuthEvent,
    *,
    coordinator: DispatchCoordinator,
    service: NotificationService,
) -> list[Notification]:
    """Dispatch an auth event; registrations first get default settings."""
    if event.event_type.upper() == "USER_REGISTERED":
        try:
            await service.ensure_default_settings(session, event.user_id, email=event.email)
        except Exception:
            # The welcome message still goes out on default-allow.
            logger.exception("Could not create default notification settings", extra={"user_id": event.user_id})
            await session.rollback()
    return await dispatch_all(session, map_auth_event(event), coordinator)
