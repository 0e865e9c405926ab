"""Service-layer building blocks."""

from __future__ import annotations

from notification_engine.core.services.base import BaseService

__all__ = ["BaseService"]
