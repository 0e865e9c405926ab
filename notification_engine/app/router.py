"""Router registry and setup."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from notification_engine.core.settings import get_app_settings
from notification_engine.features.health.router import router as health_router
from notification_engine.features.metrics.router import router as metrics_router
from notification_engine.features.notifications.router import (
    admin_router as notifications_admin_router,
)
from notification_engine.features.notifications.router import router as notifications_router
from notification_engine.infra.messaging.broker import get_router as get_rabbit_router

if TYPE_CHECKING:
    from fastapi import FastAPI

    from notification_engine.core.settings.app import AppSettings

logger = logging.getLogger(__name__)


def setup_routers(app: FastAPI, app_settings: AppSettings | None = None) -> None:
    """Register all routers with the application.

    Args:
        app: FastAPI application instance.
        app_settings: Optional override for the API prefix.
    """
    app_settings = app_settings or get_app_settings()
    api_prefix = app_settings.api_prefix

    # Include metrics endpoint (no prefix - accessible at /metrics)
    app.include_router(metrics_router, tags=["observability"])

    app.include_router(health_router, prefix=api_prefix, tags=["health"])
    app.include_router(notifications_router, prefix=api_prefix, tags=["notifications"])
    app.include_router(
        notifications_admin_router, prefix=api_prefix, tags=["notifications-admin"]
    )

    # RabbitRouter handles broker lifespan and serves AsyncAPI docs at /asyncapi
    rabbit_router = get_rabbit_router()
    rabbit_enabled = False
    if rabbit_router is not None:
        # Import handlers to register them with the router
        import notification_engine.infra.messaging.handlers  # noqa: F401

        app.include_router(rabbit_router, tags=["messaging"])
        rabbit_enabled = True
        logger.info("RabbitMQ router included - AsyncAPI docs at /asyncapi")

    logger.info(
        "Router setup complete",
        extra={"api_prefix": api_prefix, "rabbitmq_enabled": rabbit_enabled},
    )
