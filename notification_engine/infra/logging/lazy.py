"""Lazy evaluation support for logging.

Messages passed as callables are only rendered when the level is enabled,
so debug logging of query and dispatch details costs nothing in production.
"""

from __future__ import annotations

import logging
from typing import Any


class LazyLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that evaluates callable messages and args on demand.

    ``LoggerAdapter.debug``/``info``/... all route through ``log``, so every
    level accepts callables.

    Example:
        logger = get_lazy_logger(__name__)
        logger.debug(lambda: f"db.search: {len(items)} items")
    """

    def log(self, level: int, msg: Any, *args: Any, **kwargs: Any) -> None:
        if not self.isEnabledFor(level):
            return
        if callable(msg):
            msg = msg()
        if args:
            args = tuple(arg() if callable(arg) else arg for arg in args)
        super().log(level, msg, *args, **kwargs)


def get_lazy_logger(name: str, **context: Any) -> LazyLoggerAdapter:
    """Get a logger with lazy evaluation support and optional bound context."""
    return LazyLoggerAdapter(logging.getLogger(name), context or {})
