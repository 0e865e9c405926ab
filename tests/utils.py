"""Test utilities and helper functions.

Usage:
    from tests.utils import FakeProvider, seconds_ago

    slow_push = FakeProvider("PUSH", delay=1.0)
    stale = await make_notification(status="FAILED", updated_at=seconds_ago(600))
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from notification_engine.core.database import utcnow

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from notification_engine.features.notifications.providers import OutboundMessage


def seconds_ago(seconds: float, *, now: datetime | None = None) -> datetime:
    """UTC timestamp ``seconds`` before ``now``."""
    return (now or utcnow()) - timedelta(seconds=seconds)


class FakeProvider:
    """Scriptable channel provider satisfying ``NotificationProvider``.

    Args:
        channel: Channel key.
        result: Value returned by ``send_notification``.
        enabled: Initial kill switch state.
        delay: Seconds to sleep before answering.
        error: Exception raised instead of answering.
        on_send: Coroutine function awaited with the message before answering.
    """

    def __init__(
        self,
        channel: str,
        result: bool = True,
        *,
        enabled: bool = True,
        delay: float = 0.0,
        error: Exception | None = None,
        on_send: Callable[[OutboundMessage], Awaitable[None]] | None = None,
    ) -> None:
        self._channel = channel
        self.result = result
        self._enabled = enabled
        self.delay = delay
        self.error = error
        self.on_send = on_send
        self.sent: list[OutboundMessage] = []

    @property
    def channel(self) -> str:
        return self._channel

    def get_channel(self) -> str:
        return self._channel

    def is_enabled(self) -> bool:
        return self._enabled

    def enable(self) -> None:
        self._enabled = True

    def disable(self) -> None:
        self._enabled = False

    async def send_notification(self, message: OutboundMessage) -> bool:
        self.sent.append(message)
        if self.on_send is not None:
            await self.on_send(message)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result
