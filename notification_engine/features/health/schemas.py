"""Health probe response schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class LivenessResponse(BaseModel):
    """Process is running and responsive."""

    alive: bool = Field(description="Liveness status")
    timestamp: datetime = Field(description="Check timestamp")
    service: str = Field(min_length=1, max_length=100, description="Service name")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "alive": True,
                "timestamp": "2025-01-01T00:00:00Z",
                "service": "notification-engine",
            }
        }
    )


class ReadinessResponse(BaseModel):
    """Whether the service can accept traffic.

    Returns 200 if ready, 503 if not ready. The broker check is only
    reported when RabbitMQ is configured and never blocks readiness,
    because the HTTP surface works without event consumption.
    """

    ready: bool = Field(description="Overall readiness status")
    checks: dict[str, bool] = Field(
        default_factory=dict, description="Individual dependency checks"
    )
    timestamp: datetime = Field(description="Check timestamp")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "ready": True,
                "checks": {"database": True, "rabbitmq": True},
                "timestamp": "2025-01-01T00:00:00Z",
            }
        }
    )
