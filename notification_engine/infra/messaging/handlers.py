"""Subscribers for inbound domain events.

Each topic has a plain handler function that opens its own session and
hands the event to the notification feature. Provider failures are
recorded on the notification records and never raised here. Anything else,
such as a database outage, is logged and re-raised so the broker can
redeliver the message.

AsyncAPI Documentation:
    Subscribers registered here appear in the AsyncAPI docs at /asyncapi
"""

from __future__ import annotations

import logging

from notification_engine.features.notifications.dispatcher import get_dispatch_coordinator
from notification_engine.features.notifications.events import (
    AuthEvent,
    TaskEvent,
    dispatch_all,
    process_auth_event,
    process_task_event,
)
from notification_engine.features.notifications.schemas import NotificationEvent
from notification_engine.features.notifications.service import get_notification_service
from notification_engine.infra.database import get_async_session
from notification_engine.infra.logging import log_context
from notification_engine.infra.messaging.broker import router
from notification_engine.infra.messaging.exchanges import (
    AUTH_EVENTS_QUEUE,
    DOMAIN_EVENTS_EXCHANGE,
    SYSTEM_EVENTS_QUEUE,
    TASK_EVENTS_QUEUE,
)

logger = logging.getLogger(__name__)


async def handle_task_event(event: TaskEvent) -> None:
    """Handle a task lifecycle event from the task topic."""
    with log_context(topic="task-events", task_id=event.task_id):
        logger.info(
            "Processing task event",
            extra={"event_type": event.event_type, "event_id": event.event_id},
        )
        try:
            async with get_async_session() as session:
                records = await process_task_event(
                    session, event, coordinator=get_dispatch_coordinator()
                )
        except Exception:
            logger.exception(
                "Task event processing failed",
                extra={"event_type": event.event_type, "event_id": event.event_id},
            )
            raise
        logger.info(
            "Task event processed",
            extra={"event_type": event.event_type, "notifications": len(records)},
        )


async def handle_auth_event(event: AuthEvent) -> None:
    """Handle an account event from the auth topic."""
    with log_context(topic="auth-events", user_id=event.user_id):
        logger.info("Processing auth event", extra={"event_type": event.event_type})
        try:
            async with get_async_session() as session:
                records = await process_auth_event(
                    session,
                    event,
                    coordinator=get_dispatch_coordinator(),
                    service=get_notification_service(),
                )
        except Exception:
            logger.exception(
                "Auth event processing failed", extra={"event_type": event.event_type}
            )
            raise
        logger.info(
            "Auth event processed",
            extra={"event_type": event.event_type, "notifications": len(records)},
        )


async def handle_system_event(event: NotificationEvent) -> None:
    """Handle an already-rendered event from the catch-all system topic.

    Events without a ``service_origin`` are labelled ``system``.
    """
    with log_context(topic="system-events", event_id=event.event_id):
        try:
            async with get_async_session() as session:
                records = await dispatch_all(session, [event], get_dispatch_coordinator())
        except Exception:
            logger.exception(
                "System event processing failed",
                extra={"notification_type": event.type, "service_origin": event.service_origin},
            )
            raise
        logger.info(
            "System event processed",
            extra={
                "notification_type": event.type,
                "service_origin": event.service_origin,
                "notifications": len(records),
            },
        )


# Only register subscribers when the router is available
if router is not None:
    router.subscriber(TASK_EVENTS_QUEUE, DOMAIN_EVENTS_EXCHANGE)(handle_task_event)
    router.subscriber(AUTH_EVENTS_QUEUE, DOMAIN_EVENTS_EXCHANGE)(handle_auth_event)
    router.subscriber(SYSTEM_EVENTS_QUEUE, DOMAIN_EVENTS_EXCHANGE)(handle_system_event)
