"""Prometheus metrics endpoint.

Endpoints:
    GET /metrics - Prometheus scrape endpoint

Metrics Exposed:
    Notification lifecycle:
        - notification_created_total / notification_duplicate_total
        - notification_delivered_total - attempts by channel and resulting status
        - notification_delivery_duration_seconds - provider send latency
    Retries:
        - notification_retry_total / notification_retry_exhausted_total
        - notification_retry_sweep_duration_seconds
    Anomalies:
        - notification_unsupported_channel_total
        - notification_illegal_transition_total
        - notification_concurrent_update_total
        - notification_preference_degraded_total
"""

from __future__ import annotations

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

router = APIRouter(tags=["observability"])


@router.get("/metrics")
async def metrics() -> Response:
    """Expose all registered collectors in the Prometheus text format."""
    data = generate_latest(REGISTRY)
    return Response(
        content=data,
        media_type=CONTENT_TYPE_LATEST,
        headers={"Cache-Control": "no-cache, no-store, must-revalidate"},
    )
