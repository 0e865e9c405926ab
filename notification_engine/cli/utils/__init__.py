"""CLI utilities for running async operations and formatting output."""

from notification_engine.cli.utils.async_runner import coro
from notification_engine.cli.utils.formatters import (
    enabled_label,
    error,
    header,
    info,
    status_label,
    success,
    warning,
)

__all__ = [
    "coro",
    "enabled_label",
    "error",
    "header",
    "info",
    "status_label",
    "success",
    "warning",
]
