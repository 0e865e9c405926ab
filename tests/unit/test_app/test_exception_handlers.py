"""Tests for application exception handlers."""

from __future__ import annotations

import json

from fastapi import FastAPI
from fastapi.testclient import TestClient
from pydantic import BaseModel
import pytest
from starlette.requests import Request

from notification_engine.app.exception_handlers import (
    PROBLEM_JSON,
    app_exception_handler,
    configure_exception_handlers,
    generic_exception_handler,
)
from notification_engine.core.exceptions import ConflictException, NotFoundException


def _build_request(path: str = "/test") -> Request:
    """Create a minimal ASGI request for handler tests."""
    scope = {
        "type": "http",
        "method": "GET",
        "path": path,
        "headers": [],
        "query_string": b"",
        "client": ("test", 1234),
        "server": ("test", 80),
    }
    return Request(scope, lambda: None)


@pytest.mark.asyncio
async def test_app_exception_renders_problem_details():
    exc = ConflictException(
        detail="Cannot move notification from CANCELLED to DELIVERED",
        type="illegal-transition",
        extra={"current_status": "CANCELLED", "requested_status": "DELIVERED"},
    )

    response = await app_exception_handler(_build_request("/api/v1/notifications/1/delivered"), exc)

    body = json.loads(response.body)
    assert response.status_code == 409
    assert response.media_type == PROBLEM_JSON
    assert body["type"] == "illegal-transition"
    assert body["title"] == "Conflict"
    assert body["instance"] == "/api/v1/notifications/1/delivered"
    assert body["current_status"] == "CANCELLED"


@pytest.mark.asyncio
async def test_explicit_instance_is_kept():
    exc = NotFoundException(detail="missing", instance="/custom")

    response = await app_exception_handler(_build_request(), exc)

    assert json.loads(response.body)["instance"] == "/custom"


@pytest.mark.asyncio
async def test_generic_exception_hides_details():
    response = await generic_exception_handler(_build_request(), RuntimeError("secret dsn"))

    body = json.loads(response.body)
    assert response.status_code == 500
    assert body["type"] == "internal-error"
    assert "secret dsn" not in body["detail"]


class _Payload(BaseModel):
    count: int


def test_validation_errors_are_listed_per_field():
    app = FastAPI()
    configure_exception_handlers(app)

    @app.post("/items")
    async def create_item(payload: _Payload) -> dict:
        return payload.model_dump()

    client = TestClient(app)
    response = client.post("/items", json={"count": "many"})

    assert response.status_code == 422
    assert response.headers["content-type"].startswith(PROBLEM_JSON)
    body = response.json()
    assert body["type"] == "validation-error"
    assert body["errors"][0]["field"] == "body.count"
    assert body["errors"][0]["value"] == "many"


def test_unhandled_errors_become_500():
    app = FastAPI()
    configure_exception_handlers(app)

    @app.get("/boom")
    async def boom() -> None:
        raise RuntimeError("boom")

    client = TestClient(app, raise_server_exceptions=False)
    response = client.get("/boom")

    assert response.status_code == 500
    assert response.json()["type"] == "internal-error"
