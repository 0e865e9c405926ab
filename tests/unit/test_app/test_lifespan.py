"""Tests for application startup and shutdown."""

from __future__ import annotations

from fastapi import FastAPI
import pytest

from notification_engine.app import lifespan as lifespan_module


@pytest.mark.asyncio
async def test_starts_degraded_without_database_or_broker():
    """With no database or RabbitMQ configured the app still starts."""
    async with lifespan_module.lifespan(FastAPI()):
        assert lifespan_module.get_database_ready() is False
        assert lifespan_module.get_scheduler_started() is False


@pytest.mark.asyncio
async def test_required_database_failure_aborts_startup(monkeypatch):
    from unittest.mock import AsyncMock, MagicMock

    db_settings = MagicMock(is_configured=True, startup_require_db=True)
    monkeypatch.setattr(lifespan_module, "get_db_settings", lambda: db_settings)
    monkeypatch.setattr(
        "notification_engine.infra.database.session.init_database",
        AsyncMock(side_effect=ConnectionError("connection refused")),
    )

    with pytest.raises(ConnectionError):
        await lifespan_module._startup_database()

    assert lifespan_module.get_database_ready() is False


@pytest.mark.asyncio
async def test_optional_database_failure_degrades(monkeypatch):
    from unittest.mock import AsyncMock, MagicMock

    db_settings = MagicMock(is_configured=True, startup_require_db=False)
    monkeypatch.setattr(lifespan_module, "get_db_settings", lambda: db_settings)
    monkeypatch.setattr(
        "notification_engine.infra.database.session.init_database",
        AsyncMock(side_effect=ConnectionError("connection refused")),
    )

    await lifespan_module._startup_database()

    assert lifespan_module.get_database_ready() is False
