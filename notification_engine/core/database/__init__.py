"""Database building blocks: declarative base, mixins and repository."""

from __future__ import annotations

from notification_engine.core.database.base import (
    NAMING_CONVENTION,
    Base,
    TimestampMixin,
    UUIDv7PKMixin,
    UUIDv7TimestampedBase,
    utcnow,
)
from notification_engine.core.database.exceptions import NotFoundError, RepositoryError
from notification_engine.core.database.repository import BaseRepository, SearchResult

__all__ = [
    "NAMING_CONVENTION",
    "Base",
    "BaseRepository",
    "NotFoundError",
    "RepositoryError",
    "SearchResult",
    "TimestampMixin",
    "UUIDv7PKMixin",
    "UUIDv7TimestampedBase",
    "utcnow",
]
