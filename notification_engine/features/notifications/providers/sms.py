"""SMS channel provider posting to an HTTP SMS gateway."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx

from notification_engine.features.notifications.enums import Channel

from .base import BaseNotificationProvider

if TYPE_CHECKING:
    from notification_engine.core.settings import SmsSettings

    from .base import OutboundMessage

logger = logging.getLogger(__name__)


class SmsProvider(BaseNotificationProvider):
    """Sends text messages through a JSON SMS gateway.

    The title is prepended to the body and the result truncated to
    ``settings.max_length`` characters.
    """

    def __init__(
        self,
        settings: SmsSettings,
        *,
        client: httpx.AsyncClient | None = None,
        enabled: bool | None = None,
    ) -> None:
        super().__init__(Channel.SMS, enabled=settings.enabled if enabled is None else enabled)
        self._settings = settings
        self._client = client

    def format_text(self, message: OutboundMessage) -> str:
        text = f"{message.title}: {message.content}" if message.title else message.content
        limit = self._settings.max_length
        if len(text) <= limit:
            return text
        return text[: limit - 3] + "..."

    async def _send(self, message: OutboundMessage) -> bool:
        settings = self._settings
        payload = {
            "to": message.recipient_address,
            "from": settings.sender_id,
            "text": self.format_text(message),
            "reference": str(message.notification_id),
        }
        headers = {"Content-Type": "application/json"}
        if settings.api_key is not None:
            headers["Authorization"] = f"Bearer {settings.api_key.get_secret_value()}"

        try:
            if self._client is not None:
                response = await self._client.post(
                    settings.gateway_url, json=payload, headers=headers, timeout=settings.timeout
                )
            else:
                async with httpx.AsyncClient(timeout=settings.timeout) as client:
                    response = await client.post(settings.gateway_url, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning(
                "SMS gateway request failed",
                extra={
                    "notification_id": str(message.notification_id),
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
            return False

        if not response.is_success:
            logger.warning(
                "SMS gateway rejected request",
                extra={
                    "notification_id": str(message.notification_id),
                    "status_code": response.status_code,
                    "response_body": response.text[:500],
                },
            )
            return False

        logger.info(
            "SMS accepted by gateway",
            extra={"notification_id": str(message.notification_id), "status_code": response.status_code},
        )
        return True
