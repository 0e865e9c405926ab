"""EMAIL channel provider using aiosmtplib."""

from __future__ import annotations

from email.message import EmailMessage
from email.utils import make_msgid
import logging
import ssl
from typing import TYPE_CHECKING

import aiosmtplib

from notification_engine.features.notifications.enums import Channel

from .base import BaseNotificationProvider

if TYPE_CHECKING:
    from notification_engine.core.settings import EmailSettings

    from .base import OutboundMessage

logger = logging.getLogger(__name__)


class EmailProvider(BaseNotificationProvider):
    """Sends plain-text email over SMTP.

    Supports STARTTLS (port 587), implicit TLS (port 465) and plain SMTP.
    A new connection is opened per send; aiosmtplib clients are not shared
    between concurrent sends.
    """

    def __init__(self, settings: EmailSettings, *, enabled: bool | None = None) -> None:
        super().__init__(Channel.EMAIL, enabled=settings.enabled if enabled is None else enabled)
        self._settings = settings

        logger.info(
            "Email provider initialized",
            extra={
                "host": settings.smtp_host,
                "port": settings.smtp_port,
                "use_tls": settings.use_tls,
                "use_ssl": settings.use_ssl,
                "enabled": self.is_enabled(),
            },
        )

    def _build_message(self, message: OutboundMessage) -> EmailMessage:
        mime = EmailMessage()
        mime["From"] = self._settings.sender
        mime["To"] = message.recipient_address
        mime["Subject"] = message.title
        mime["Message-ID"] = make_msgid(domain=self._settings.from_email.split("@")[-1])
        mime["X-Notification-ID"] = str(message.notification_id)
        mime.set_content(message.content)
        return mime

    async def _send(self, message: OutboundMessage) -> bool:
        settings = self._settings
        mime = self._build_message(message)

        smtp = aiosmtplib.SMTP(
            hostname=settings.smtp_host,
            port=settings.smtp_port,
            use_tls=settings.use_ssl,
            start_tls=settings.use_tls,
            tls_context=ssl.create_default_context() if settings.use_tls or settings.use_ssl else None,
            timeout=settings.timeout,
        )

        try:
            async with smtp:
                if settings.smtp_username and settings.smtp_password:
                    await smtp.login(
                        settings.smtp_username,
                        settings.smtp_password.get_secret_value(),
                    )
                errors, response = await smtp.send_message(mime)
        except (aiosmtplib.SMTPException, OSError) as exc:
            logger.warning(
                "SMTP send failed",
                extra={
                    "notification_id": str(message.notification_id),
                    "host": settings.smtp_host,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
            return False

        if message.recipient_address in errors:
            logger.warning(
                "SMTP recipient rejected",
                extra={
                    "notification_id": str(message.notification_id),
                    "rejection": str(errors[message.recipient_address]),
                },
            )
            return False

        logger.info(
            "Email accepted by SMTP server",
            extra={
                "notification_id": str(message.notification_id),
                "message_id": mime["Message-ID"],
                "response": response,
            },
        )
        return True
