"""RabbitMQ broker configuration using FastStream.

The RabbitRouter wraps a RabbitBroker and integrates with FastAPI: when it
is included in the app it connects on startup, and its subscribers appear
in the AsyncAPI docs at /asyncapi.

Usage Patterns:
- FastAPI app: ``app.include_router(get_router())`` (lifespan managed by FastAPI)
- CLI / scripts: ``await start_broker()`` / ``await stop_broker()``
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from notification_engine.core.settings import get_rabbit_settings

if TYPE_CHECKING:
    from faststream.rabbit import RabbitBroker
    from faststream.rabbit.fastapi import RabbitRouter as RabbitRouterType
else:
    RabbitRouterType = Any

logger = logging.getLogger(__name__)

router: RabbitRouterType | None = None
broker: RabbitBroker | None = None
_not_configured_logged = False


def _ensure_router_initialized() -> RabbitRouterType | None:
    """Create the RabbitRouter on first use; None when RabbitMQ is disabled."""
    global router, broker, _not_configured_logged

    if router is not None:
        return router

    rabbit_settings = get_rabbit_settings()
    if not rabbit_settings.is_configured:
        if not _not_configured_logged:
            logger.warning("RabbitMQ not configured - event consumption disabled")
            _not_configured_logged = True
        return None

    from faststream.rabbit.fastapi import RabbitRouter

    router = RabbitRouter(
        url=rabbit_settings.get_url(),
        graceful_timeout=rabbit_settings.graceful_timeout,
        logger=logger,
        schema_url="/asyncapi",
        include_in_schema=True,
        description="Domain events consumed by the notification engine",
    )
    broker = router.broker
    return router


def get_router() -> RabbitRouterType | None:
    """Get the RabbitMQ router for FastAPI integration."""
    return _ensure_router_initialized()


def get_broker() -> RabbitBroker | None:
    _ensure_router_initialized()
    return broker


async def start_broker() -> None:
    """Connect the broker unless it is already running.

    Raises:
        ConnectionError: The connection did not come up within the timeout.
    """
    _ensure_router_initialized()
    rabbit_settings = get_rabbit_settings()

    if broker is None:
        logger.warning("RabbitMQ not configured, skipping broker startup")
        return

    if getattr(broker, "running", False):
        logger.debug("RabbitMQ broker already running (connected via RabbitRouter)")
        return

    logger.info(
        "Starting RabbitMQ broker",
        extra={"host": rabbit_settings.host, "connection_timeout": rabbit_settings.connection_timeout},
    )
    try:
        await asyncio.wait_for(broker.start(), timeout=rabbit_settings.connection_timeout)
    except TimeoutError:
        error_msg = f"RabbitMQ connection timeout after {rabbit_settings.connection_timeout}s"
        logger.error(error_msg, extra={"host": rabbit_settings.host})
        raise ConnectionError(error_msg) from None
    logger.info("RabbitMQ broker started successfully")


async def stop_broker() -> None:
    """Close the broker connection if one was opened."""
    if broker is None:
        logger.debug("RabbitMQ not configured, skipping broker shutdown")
        return

    logger.info("Stopping RabbitMQ broker")
    try:
        await broker.close()
        logger.info("RabbitMQ broker stopped successfully")
    except Exception as e:
        logger.exception("Error stopping RabbitMQ broker", extra={"error": str(e)})


# Initialize eagerly so handler modules can register subscribers during import.
_ensure_router_initialized()
