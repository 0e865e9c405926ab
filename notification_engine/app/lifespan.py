"""Application lifespan management.

Startup Order:
1. Core (logging, application info)
2. Database (PostgreSQL) - conditional on configuration
3. Providers (channel registry, enabled gauges)
4. Messaging (RabbitMQ) - conditional on configuration
5. Scheduler (retry sweep, housekeeping) - requires database

Shutdown Order: Reverse of startup (what starts first, shuts down last)
"""

from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from typing import TYPE_CHECKING

from notification_engine.core.settings import (
    get_app_settings,
    get_db_settings,
    get_logging_settings,
    get_rabbit_settings,
)
from notification_engine.features.notifications.metrics import notification_provider_enabled
from notification_engine.features.notifications.providers import get_provider_registry
from notification_engine.infra.logging.config import setup_logging
from notification_engine.infra.logging.config import shutdown as shutdown_logging

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from fastapi import FastAPI

logger = logging.getLogger(__name__)

_database_ready = False
_scheduler_started = False


def get_database_ready() -> bool:
    """Check if the database answered at startup."""
    return _database_ready


def get_scheduler_started() -> bool:
    """Check if the periodic jobs were scheduled."""
    return _scheduler_started


# =============================================================================
# Startup functions - organized by service
# =============================================================================


async def _startup_core() -> None:
    """Configure logging."""
    app = get_app_settings()
    setup_logging(log_settings=get_logging_settings(), force=True)
    logger.info(
        "Application starting",
        extra={"service": app.service_name, "environment": app.environment},
    )


async def _startup_database() -> None:
    """Verify database connectivity."""
    global _database_ready

    from notification_engine.infra.database.session import init_database

    db = get_db_settings()
    _database_ready = False

    if not db.is_configured:
        return

    try:
        await init_database()
        _database_ready = True
    except Exception as e:
        if db.startup_require_db:
            logger.exception(
                "Database required but unavailable, failing startup",
                extra={"error": str(e), "startup_require_db": True},
            )
            raise
        logger.warning(
            "Database unavailable, continuing in degraded mode",
            extra={"error": str(e), "startup_require_db": False},
        )


async def _startup_providers() -> None:
    """Build the channel registry and publish provider state."""
    registry = get_provider_registry()
    for provider in registry.providers():
        notification_provider_enabled.labels(channel=provider.get_channel()).set(
            1 if provider.is_enabled() else 0
        )
    logger.info("Channel providers registered", extra={"channels": registry.channels()})


async def _startup_messaging() -> None:
    """Initialize RabbitMQ/FastStream broker."""
    from notification_engine.infra.messaging.broker import start_broker

    settings = get_rabbit_settings()

    if not settings.is_configured:
        return

    try:
        await start_broker()
        logger.info("RabbitMQ/FastStream broker initialized")
    except Exception as e:
        if settings.startup_require_rabbit:
            logger.exception("RabbitMQ required but unavailable, failing startup")
            raise
        logger.warning(
            "RabbitMQ unavailable, continuing in degraded mode",
            extra={"error": str(e), "startup_require_rabbit": False},
        )


async def _startup_scheduler() -> None:
    """Schedule the retry sweep and housekeeping jobs."""
    global _scheduler_started

    _scheduler_started = False
    if not get_app_settings().scheduler_enabled:
        logger.info("Scheduler disabled, retry sweep will not run in this process")
        return
    if not get_db_settings().is_configured:
        logger.warning("Database not configured, skipping scheduled jobs")
        return

    from notification_engine.infra.tasks.scheduler import setup_scheduled_jobs, start_scheduler

    setup_scheduled_jobs()
    await start_scheduler()
    _scheduler_started = True


# =============================================================================
# Shutdown functions
# =============================================================================


async def _shutdown_scheduler() -> None:
    if not _scheduler_started:
        return
    from notification_engine.infra.tasks.scheduler import stop_scheduler

    try:
        await stop_scheduler()
    except Exception:
        logger.exception("Error stopping scheduler")


async def _shutdown_messaging() -> None:
    if not get_rabbit_settings().is_configured:
        return
    from notification_engine.infra.messaging.broker import stop_broker

    await stop_broker()


async def _shutdown_database() -> None:
    from notification_engine.infra.database.session import close_database

    try:
        await close_database()
    except Exception:
        logger.exception("Error closing database connections")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Start services in dependency order and stop them in reverse."""
    _ = app

    await _startup_core()
    await _startup_database()
    await _startup_providers()
    await _startup_messaging()
    await _startup_scheduler()

    app_settings = get_app_settings()
    logger.info(
        "Application startup complete - listening on %s:%s",
        app_settings.host,
        app_settings.port,
        extra={
            "service": app_settings.service_name,
            "database_ready": _database_ready,
            "scheduler_started": _scheduler_started,
            "rabbitmq_configured": get_rabbit_settings().is_configured,
        },
    )

    yield

    logger.info("Application shutting down")
    await _shutdown_scheduler()
    await _shutdown_messaging()
    await _shutdown_database()
    logger.info("Application shutdown complete")
    shutdown_logging()
