"""Channel -> provider lookup table.

The registry is built once at startup and shared read-only by every
dispatch. ``register`` replaces the whole mapping instead of mutating it, so
a concurrent ``resolve`` sees either the old table or the new one.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from types import MappingProxyType
from typing import TYPE_CHECKING

from notification_engine.features.notifications.enums import normalize_channel

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from notification_engine.core.settings import EmailSettings, PushSettings, SmsSettings

    from .base import NotificationProvider

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class UnsupportedChannel:
    """Returned by ``ProviderRegistry.resolve`` when no provider is registered."""

    channel: str

    @property
    def reason(self) -> str:
        return f"No provider registered for channel {self.channel}"


class ProviderRegistry:
    """Providers keyed by channel; the last registration for a channel wins."""

    def __init__(self, providers: Iterable[NotificationProvider] = ()) -> None:
        self._providers: Mapping[str, NotificationProvider] = MappingProxyType({})
        for provider in providers:
            self.register(provider)

    def register(self, provider: NotificationProvider) -> None:
        channel = normalize_channel(provider.get_channel())
        replaced = self._providers.get(channel)

        updated = dict(self._providers)
        updated[channel] = provider
        self._providers = MappingProxyType(updated)

        logger.info(
            "Provider registered",
            extra={
                "channel": channel,
                "provider": type(provider).__name__,
                "replaced": type(replaced).__name__ if replaced is not None else None,
                "enabled": provider.is_enabled(),
            },
        )

    def resolve(self, channel: str) -> NotificationProvider | UnsupportedChannel:
        """Provider for ``channel`` or an ``UnsupportedChannel`` marker. Never raises."""
        key = normalize_channel(channel)
        provider = self._providers.get(key)
        if provider is None:
            return UnsupportedChannel(key)
        return provider

    def is_supported(self, channel: str) -> bool:
        return normalize_channel(channel) in self._providers

    def channels(self) -> list[str]:
        return sorted(self._providers)

    def providers(self) -> list[NotificationProvider]:
        providers = self._providers
        return [providers[channel] for channel in sorted(providers)]

    def __contains__(self, channel: object) -> bool:
        return isinstance(channel, str) and self.is_supported(channel)

    def __len__(self) -> int:
        return len(self._providers)


def build_default_registry(
    email_settings: EmailSettings | None = None,
    push_settings: PushSettings | None = None,
    sms_settings: SmsSettings | None = None,
) -> ProviderRegistry:
    """Registry with the bundled EMAIL, PUSH and SMS providers.

    Each provider starts enabled or disabled according to its settings.
    """
    from notification_engine.core.settings import (
        get_email_settings,
        get_push_settings,
        get_sms_settings,
    )

    from .email import EmailProvider
    from .push import PushProvider
    from .sms import SmsProvider

    return ProviderRegistry(
        [
            EmailProvider(email_settings or get_email_settings()),
            PushProvider(push_settings or get_push_settings()),
            SmsProvider(sms_settings or get_sms_settings()),
        ]
    )


_registry: ProviderRegistry | None = None


def get_provider_registry() -> ProviderRegistry:
    """Get the process-wide ProviderRegistry, building it on first use."""
    global _registry
    if _registry is None:
        _registry = build_default_registry()
    return _registry


def set_provider_registry(registry: ProviderRegistry | None) -> None:
    """Replace the process-wide registry (startup wiring and tests)."""
    global _registry
    _registry = registry
