"""Health check API endpoints.

- Liveness probe: /health/live - Is the process alive?
- Readiness probe: /health/ready - Can the service accept traffic?
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: TC002

from notification_engine.core.database.base import utcnow
from notification_engine.core.settings import get_app_settings, get_rabbit_settings
from notification_engine.features.health.schemas import LivenessResponse, ReadinessResponse
from notification_engine.infra.database import get_db_session
from notification_engine.infra.messaging.broker import get_broker

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])

SessionDep = Annotated[AsyncSession, Depends(get_db_session)]


@router.get(
    "/live",
    response_model=LivenessResponse,
    summary="Liveness probe (Kubernetes)",
)
async def liveness_check() -> LivenessResponse:
    """Always 200 while the event loop is serving requests."""
    return LivenessResponse(
        alive=True,
        timestamp=utcnow(),
        service=get_app_settings().service_name,
    )


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    responses={503: {"description": "Service not ready to accept traffic"}},
    summary="Readiness probe (Kubernetes)",
)
async def readiness_check(response: Response, session: SessionDep) -> ReadinessResponse:
    """Ready when the database answers a trivial query."""
    checks: dict[str, bool] = {}

    try:
        await session.execute(text("SELECT 1"))
        checks["database"] = True
    except Exception as e:
        logger.warning("Readiness database check failed", extra={"error": str(e)})
        checks["database"] = False

    if get_rabbit_settings().is_configured:
        broker = get_broker()
        checks["rabbitmq"] = bool(broker is not None and getattr(broker, "running", False))

    ready = checks["database"]
    if not ready:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return ReadinessResponse(ready=ready, checks=checks, timestamp=utcnow())
