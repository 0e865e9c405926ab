"""Logging infrastructure.

Basic usage:
    import logging
    from notification_engine.infra.logging import log_context

    logger = logging.getLogger(__name__)
    with log_context(event_id="evt-1"):
        logger.info("Dispatching")  # record carries event_id

    from notification_engine.infra.logging import get_lazy_logger

    lazy_logger = get_lazy_logger(__name__)
    lazy_logger.debug(lambda: f"Loaded {len(rows)} rows")
"""

from notification_engine.infra.logging.config import configure_logging, setup_logging, shutdown
from notification_engine.infra.logging.context import (
    ContextInjectingFilter,
    get_log_context,
    log_context,
)
from notification_engine.infra.logging.formatters import JSONFormatter
from notification_engine.infra.logging.lazy import LazyLoggerAdapter, get_lazy_logger

__all__ = [
    "ContextInjectingFilter",
    "JSONFormatter",
    "LazyLoggerAdapter",
    "configure_logging",
    "get_lazy_logger",
    "get_log_context",
    "log_context",
    "setup_logging",
    "shutdown",
]
