"""Base protocol and types for channel providers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
import logging
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from notification_engine.features.notifications.enums import normalize_channel

if TYPE_CHECKING:
    from collections.abc import Mapping
    from uuid import UUID

    from notification_engine.features.notifications.models import Notification

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class OutboundMessage:
    """Immutable view of a notification handed to a provider.

    Providers never see the ORM instance, so a send running concurrently
    with other channels cannot touch session state.

    Attributes:
        notification_id: Record being delivered
        user_id: Recipient user id
        channel: Channel key (EMAIL, PUSH, SMS, ...)
        notification_type: NotificationType value
        recipient_address: Email address, device token or phone number
        title: Resolved title / subject
        content: Resolved body
        metadata: Event metadata, read-only
    """

    notification_id: UUID
    user_id: str
    channel: str
    notification_type: str
    recipient_address: str | None
    title: str
    content: str
    metadata: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_notification(cls, notification: Notification) -> OutboundMessage:
        return cls(
            notification_id=notification.id,
            user_id=notification.user_id,
            channel=notification.channel,
            notification_type=notification.type,
            recipient_address=notification.recipient_address,
            title=notification.title,
            content=notification.content,
            metadata=MappingProxyType(dict(notification.extra_metadata or {})),
        )


@runtime_checkable
class NotificationProvider(Protocol):
    """Capability interface every channel provider satisfies.

    Implementations must be safe for concurrent use: the only mutable state
    is the enabled flag.
    """

    @property
    def channel(self) -> str:
        """Stable channel key matching ``Notification.channel``."""
        ...

    def get_channel(self) -> str:
        ...

    def is_enabled(self) -> bool:
        """Operational kill switch, checked before every send."""
        ...

    def enable(self) -> None:
        ...

    def disable(self) -> None:
        ...

    async def send_notification(self, message: OutboundMessage) -> bool:
        """Attempt one send.

        Returns:
            True when the transport accepted the message, False on any
            failure. Never raises for transport errors.
        """
        ...


class BaseNotificationProvider(ABC):
    """Shared behaviour for bundled providers.

    Subclasses implement ``_send``; this class handles the enabled flag,
    missing recipients and turns unexpected exceptions into ``False``.
    """

    def __init__(self, channel: str, *, enabled: bool = True) -> None:
        self._channel = normalize_channel(channel)
        self._enabled = enabled

    @property
    def channel(self) -> str:
        return self._channel

    def get_channel(self) -> str:
        return self._channel

    def is_enabled(self) -> bool:
        return self._enabled

    def enable(self) -> None:
        self._enabled = True
        logger.info("Provider enabled", extra={"channel": self._channel})

    def disable(self) -> None:
        self._enabled = False
        logger.warning("Provider disabled", extra={"channel": self._channel})

    async def send_notification(self, message: OutboundMessage) -> bool:
        if not message.recipient_address:
            logger.warning(
                "No recipient address, send skipped",
                extra={
                    "channel": self._channel,
                    "notification_id": str(message.notification_id),
                    "user_id": message.user_id,
                },
            )
            return False

        try:
            return await self._send(message)
        except Exception:
            logger.exception(
                "Unexpected provider error",
                extra={
                    "channel": self._channel,
                    "notification_id": str(message.notification_id),
                },
            )
            return False

    @abstractmethod
    async def _send(self, message: OutboundMessage) -> bool:
        """Contact the transport. May raise; the caller converts errors to False."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(channel={self._channel!r}, enabled={self._enabled})>"
