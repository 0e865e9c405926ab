"""Pytest configuration and shared fixtures.

Organization:
    - Database Fixtures: in-memory SQLite engine, sessions and record factories
    - Provider Fixtures: scriptable fake channel providers and a registry
    - Engine Fixtures: settings, dispatch coordinator and notification service
    - Application Fixtures: FastAPI app wired to the fixtures above, HTTP client

When adding new features:
    1. Add fixtures to the appropriate section below
    2. Use @pytest.fixture with clear docstrings
    3. Make fixtures composable (fixtures can depend on other fixtures)
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Awaitable, Callable
import os
from typing import TYPE_CHECKING, Any

from httpx import ASGITransport, AsyncClient
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

    from tests.utils import FakeProvider

# Ensure tests run without external infrastructure
os.environ.setdefault("APP_ENVIRONMENT", "test")
os.environ.setdefault("APP_SCHEDULER_ENABLED", "false")
os.environ.setdefault("DB_ENABLED", "false")
os.environ.setdefault("RABBIT_ENABLED", "false")
os.environ.setdefault("LOG_FILE_ENABLED", "false")


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine]:
    """Async engine on a single shared in-memory SQLite connection.

    StaticPool keeps every session on the same connection, so records written
    through one session are visible to another within the same test.
    """
    from notification_engine.core.database import Base
    import notification_engine.features.notifications.models  # noqa: F401

    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory configured like the application's."""
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """Async database session for one test."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_notification(db_session: AsyncSession) -> Callable[..., Awaitable[Any]]:
    """Factory inserting a Notification row with arbitrary lifecycle fields.

    Example:
        async def test_something(make_notification):
            failed = await make_notification(status="FAILED", retry_count=1)
    """
    from notification_engine.core.database import utcnow
    from notification_engine.features.notifications.models import Notification

    async def _make(**overrides: Any) -> Notification:
        now = utcnow()
        values: dict[str, Any] = {
            "user_id": "42",
            "type": "TASK_ASSIGNED",
            "channel": "EMAIL",
            "title": "Task Assigned to You",
            "content": "Task 'Quarterly report' has been assigned to you.",
            "recipient_address": "user42@example.com",
            "status": "PENDING",
            "retry_count": 0,
            "service_origin": "task-service",
            "created_at": now,
            "updated_at": now,
        }
        values.update(overrides)
        notification = Notification(**values)
        db_session.add(notification)
        await db_session.commit()
        return notification

    return _make


# ============================================================================
# Provider Fixtures
# ============================================================================


@pytest.fixture
def email_provider() -> FakeProvider:
    from tests.utils import FakeProvider

    return FakeProvider("EMAIL")


@pytest.fixture
def push_provider() -> FakeProvider:
    from tests.utils import FakeProvider

    return FakeProvider("PUSH")


@pytest.fixture
def registry(email_provider: FakeProvider, push_provider: FakeProvider):
    """Registry with fake EMAIL and PUSH providers and no SMS provider."""
    from notification_engine.features.notifications.providers import ProviderRegistry

    return ProviderRegistry([email_provider, push_provider])


# ============================================================================
# Engine Fixtures
# ============================================================================


@pytest.fixture
def notification_settings():
    """Retry policy with a short provider timeout and a fixed 60s backoff."""
    from notification_engine.core.settings import NotificationSettings

    return NotificationSettings(
        max_retries=3,
        backoff_strategy="fixed",
        backoff_base_seconds=60,
        backoff_max_seconds=3600,
        retry_batch_size=10,
        retry_max_batches=5,
        provider_timeout_seconds=0.2,
        default_channels=["EMAIL", "PUSH"],
        retention_days=30,
    )


@pytest.fixture
def coordinator(registry, notification_settings):
    from notification_engine.features.notifications.dispatcher import DispatchCoordinator
    from notification_engine.features.notifications.preferences import PreferenceFilter
    from notification_engine.features.notifications.repository import NotificationRepository

    return DispatchCoordinator(
        registry=registry,
        preference_filter=PreferenceFilter(),
        repository=NotificationRepository(),
        settings=notification_settings,
    )


@pytest.fixture
def retry_scheduler(coordinator, notification_settings):
    from notification_engine.features.notifications.retry import RetryScheduler

    return RetryScheduler(coordinator, settings=notification_settings)


@pytest.fixture
def notification_service(registry, notification_settings):
    from notification_engine.features.notifications.service import NotificationService

    return NotificationService(registry=registry, settings=notification_settings)


@pytest.fixture
def make_event() -> Callable[..., Any]:
    """Factory for NotificationEvent with a TASK_ASSIGNED default."""
    from notification_engine.features.notifications.schemas import NotificationEvent

    def _make(**overrides: Any) -> NotificationEvent:
        values: dict[str, Any] = {
            "event_id": "evt-1",
            "service_origin": "task-service",
            "type": "TASK_ASSIGNED",
            "user_id": "42",
            "channels": ["EMAIL", "PUSH"],
            "recipients": {"EMAIL": "user42@example.com", "PUSH": "device-42"},
            "title": "Task Assigned to You",
            "content": "Task 'Quarterly report' has been assigned to you.",
        }
        values.update(overrides)
        return NotificationEvent(**values)

    return _make


@pytest.fixture(autouse=True)
def _reset_singletons():
    """Drop process-wide registry and coordinator instances between tests."""
    from notification_engine.features.notifications.dispatcher import set_dispatch_coordinator
    from notification_engine.features.notifications.providers import set_provider_registry

    yield
    set_provider_registry(None)
    set_dispatch_coordinator(None)


# ============================================================================
# Application Fixtures
# ============================================================================


@pytest.fixture
async def app(session_factory, coordinator, notification_service, retry_scheduler):
    """FastAPI application wired to the in-memory database and fake providers."""
    from notification_engine.app.main import create_app
    from notification_engine.features.notifications.dependencies import get_retry_scheduler
    from notification_engine.features.notifications.dispatcher import get_dispatch_coordinator
    from notification_engine.features.notifications.service import get_notification_service
    from notification_engine.infra.database import get_db_session

    application = create_app()

    async def _session_override() -> AsyncGenerator[AsyncSession]:
        async with session_factory() as session:
            yield session

    application.dependency_overrides[get_db_session] = _session_override
    application.dependency_overrides[get_dispatch_coordinator] = lambda: coordinator
    application.dependency_overrides[get_notification_service] = lambda: notification_service
    application.dependency_overrides[get_retry_scheduler] = lambda: retry_scheduler
    return application


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient]:
    """Async HTTP client bound to the test application."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


