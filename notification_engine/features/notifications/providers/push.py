"""PUSH channel provider posting to an HTTP push gateway."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

import httpx

from notification_engine.features.notifications.enums import Channel
from notification_engine.infra.logging import get_lazy_logger

from .base import BaseNotificationProvider

if TYPE_CHECKING:
    from notification_engine.core.settings import PushSettings

    from .base import OutboundMessage

logger = logging.getLogger(__name__)
lazy_logger = get_lazy_logger(__name__)


class PushProvider(BaseNotificationProvider):
    """Delivers push notifications through a JSON gateway.

    The gateway is expected to answer 2xx once it has queued the push for the
    device; any other status or a network error counts as a failed attempt.
    """

    def __init__(
        self,
        settings: PushSettings,
        *,
        client: httpx.AsyncClient | None = None,
        enabled: bool | None = None,
    ) -> None:
        super().__init__(Channel.PUSH, enabled=settings.enabled if enabled is None else enabled)
        self._settings = settings
        self._client = client

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": "notification-engine/push",
        }
        if self._settings.api_key is not None:
            headers["Authorization"] = f"Bearer {self._settings.api_key.get_secret_value()}"
        return headers

    async def _post(self, payload: dict) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(
                self._settings.gateway_url,
                json=payload,
                headers=self._headers(),
                timeout=self._settings.timeout,
            )
        async with httpx.AsyncClient(timeout=self._settings.timeout) as client:
            return await client.post(
                self._settings.gateway_url, json=payload, headers=self._headers()
            )

    async def _send(self, message: OutboundMessage) -> bool:
        payload = {
            "device_token": message.recipient_address,
            "title": message.title,
            "body": message.content,
            "data": {
                "notification_id": str(message.notification_id),
                "type": message.notification_type,
            },
        }

        lazy_logger.debug(
            lambda: f"push.send: notification_id={message.notification_id}, url={self._settings.gateway_url}"
        )
        start_time = time.monotonic()
        try:
            response = await self._post(payload)
        except httpx.HTTPError as exc:
            logger.warning(
                "Push gateway request failed",
                extra={
                    "notification_id": str(message.notification_id),
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
            return False

        response_time_ms = int((time.monotonic() - start_time) * 1000)
        if response.is_success:
            logger.info(
                "Push accepted by gateway",
                extra={
                    "notification_id": str(message.notification_id),
                    "status_code": response.status_code,
                    "response_time_ms": response_time_ms,
                },
            )
            return True

        logger.warning(
            "Push gateway rejected request",
            extra={
                "notification_id": str(message.notification_id),
                "status_code": response.status_code,
                "response_body": response.text[:500],
                "response_time_ms": response_time_ms,
            },
        )
        return False
