"""Modular Pydantic Settings v2 configuration.

One frozen settings model per domain (app, db, rabbit, logging, notify,
email, push, sms), each read from environment variables with an optional
YAML/conf.d layer, and exposed through LRU-cached loaders.

Configuration precedence (highest to lowest):
    1. init kwargs (testing/overrides)
    2. YAML/conf.d files
    3. Environment variables
    4. .env file
    5. secrets_dir
"""

from __future__ import annotations

from .app import AppSettings
from .email import EmailSettings
from .loader import (
    clear_all_caches,
    get_app_settings,
    get_db_settings,
    get_email_settings,
    get_logging_settings,
    get_notification_settings,
    get_push_settings,
    get_rabbit_settings,
    get_sms_settings,
)
from .logs import LoggingSettings
from .notifications import NotificationSettings
from .postgres import PostgresSettings
from .push import PushSettings
from .rabbit import RabbitSettings
from .sms import SmsSettings

__all__ = [
    "AppSettings",
    "EmailSettings",
    "LoggingSettings",
    "NotificationSettings",
    "PostgresSettings",
    "PushSettings",
    "RabbitSettings",
    "SmsSettings",
    "clear_all_caches",
    "get_app_settings",
    "get_db_settings",
    "get_email_settings",
    "get_logging_settings",
    "get_notification_settings",
    "get_push_settings",
    "get_rabbit_settings",
    "get_sms_settings",
]
