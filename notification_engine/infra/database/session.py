"""Async SQLAlchemy engine and session factory (psycopg3 driver).

The engine is built on first use so importing the app, CLI or tests never
opens a connection pool.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from notification_engine.core.exceptions import ServiceUnavailableException
from notification_engine.core.settings import get_app_settings, get_db_settings

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

logger = logging.getLogger(__name__)

_engine: AsyncEngine | None = None
_sessionmaker: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """Return the process-wide async engine, creating it on first call.

    Raises:
        ServiceUnavailableException: If the database is disabled.
    """
    global _engine
    if _engine is None:
        db_settings = get_db_settings()
        if not db_settings.is_configured:
            raise ServiceUnavailableException(
                "Database is not configured", type="database-disabled"
            )
        kwargs = db_settings.sqlalchemy_engine_kwargs()
        kwargs["echo"] = kwargs["echo"] or get_app_settings().debug
        _engine = create_async_engine(db_settings.get_sqlalchemy_url(), **kwargs)
    return _engine


def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    """Return the session factory bound to the process-wide engine."""
    global _sessionmaker
    if _sessionmaker is None:
        _sessionmaker = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _sessionmaker


@asynccontextmanager
async def get_async_session() -> AsyncGenerator[AsyncSession]:
    """Open a session for background work (consumers, scheduled jobs).

    Work left uncommitted when the block raises is rolled back; callers
    commit their own units of work.

    Example:
        async with get_async_session() as session:
            await coordinator.dispatch(session, event)
    """
    async with get_sessionmaker()() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def get_db_session() -> AsyncGenerator[AsyncSession]:
    """FastAPI dependency yielding a request-scoped session."""
    async with get_sessionmaker()() as session:
        yield session


async def init_database() -> None:
    """Verify connectivity at startup."""
    engine = get_engine()
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    logger.info(
        "Database connection established",
        extra={"host": get_db_settings().host, "database": get_db_settings().name},
    )


async def close_database() -> None:
    """Dispose of the engine's connection pool."""
    global _engine, _sessionmaker
    if _engine is not None:
        await _engine.dispose()
        logger.info("Database connections closed")
    _engine = None
    _sessionmaker = None
