"""Channel providers and the provider registry."""

from __future__ import annotations

from .base import BaseNotificationProvider, NotificationProvider, OutboundMessage
from .email import EmailProvider
from .push import PushProvider
from .registry import (
    ProviderRegistry,
    UnsupportedChannel,
    build_default_registry,
    get_provider_registry,
    set_provider_registry,
)
from .sms import SmsProvider

__all__ = [
    "BaseNotificationProvider",
    "EmailProvider",
    "NotificationProvider",
    "OutboundMessage",
    "ProviderRegistry",
    "PushProvider",
    "SmsProvider",
    "UnsupportedChannel",
    "build_default_registry",
    "get_provider_registry",
    "set_provider_registry",
]
