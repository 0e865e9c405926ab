"""Tests for the probe and scrape endpoints."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from notification_engine.infra.database import get_db_session


@pytest.mark.asyncio
async def test_liveness(client):
    response = await client.get("/api/v1/health/live")

    assert response.status_code == 200
    assert response.json()["alive"] is True


@pytest.mark.asyncio
async def test_readiness_with_database(client):
    response = await client.get("/api/v1/health/ready")

    assert response.status_code == 200
    assert response.json()["ready"] is True
    assert response.json()["checks"]["database"] is True


@pytest.mark.asyncio
async def test_readiness_without_database(app, client):
    broken = MagicMock()
    broken.execute = AsyncMock(side_effect=ConnectionError("connection refused"))

    async def broken_session():
        yield broken

    app.dependency_overrides[get_db_session] = broken_session

    response = await client.get("/api/v1/health/ready")

    assert response.status_code == 503
    assert response.json()["checks"] == {"database": False}


@pytest.mark.asyncio
async def test_metrics_exposes_notification_collectors(client, make_event):
    await client.post("/api/v1/notifications/dispatch", json=make_event().model_dump(mode="json"))

    response = await client.get("/metrics")

    assert response.status_code == 200
    assert "notification_created_total" in response.text
    assert "notification_delivery_duration_seconds" in response.text
