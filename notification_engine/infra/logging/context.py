"""Contextvars-backed log context.

Fields bound with ``log_context`` (event_id, notification_id, user_id, ...)
are copied onto every log record emitted in the same asyncio task by
``ContextInjectingFilter``, so dispatch code does not have to thread them
through each call. Concurrent sends started with ``asyncio.gather`` each
inherit a copy of the dispatching task's context.
"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterator

_log_context: ContextVar[dict[str, Any]] = ContextVar("log_context", default={})


def get_log_context() -> dict[str, Any]:
    """Return a copy of the current logging context."""
    return _log_context.get().copy()


@contextmanager
def log_context(**kwargs: Any) -> Iterator[None]:
    """Scope fields to a block and restore the previous context afterwards.

    Example:
        with log_context(event_id=event.event_id):
            await coordinator.dispatch(session, event)
    """
    token = _log_context.set({**_log_context.get(), **kwargs})
    try:
        yield
    finally:
        _log_context.reset(token)


class ContextInjectingFilter(logging.Filter):
    """Copy the contextvars log context onto each LogRecord.

    Existing record attributes (including ``extra`` keys) are never
    overwritten.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in _log_context.get().items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True
