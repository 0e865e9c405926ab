"""Base class for business logic services."""

from __future__ import annotations

import logging

from notification_engine.infra.logging import get_lazy_logger


class BaseService:
    """Base class for service classes.

    Loggers:
        - self.logger: INFO/WARNING/ERROR, always evaluated
        - self._lazy: DEBUG messages passed as lambdas, skipped when DEBUG is off

    Example:
        class NotificationService(BaseService):
            async def cancel(self, session, notification_id):
                self.logger.info("Cancelling", extra={"notification_id": str(notification_id)})
                self._lazy.debug(lambda: f"state: {expensive_dump()}")
    """

    def __init__(self) -> None:
        class_name = self.__class__.__name__
        self.logger = logging.getLogger(class_name)
        self._lazy = get_lazy_logger(class_name)
