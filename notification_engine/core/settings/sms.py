"""SMS channel settings for the HTTP SMS gateway.

Environment variables use SMS_ prefix.
Example: SMS_ENABLED=true, SMS_GATEWAY_URL=https://sms.internal/messages
"""

from __future__ import annotations

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from .yaml_sources import create_yaml_source


class SmsSettings(BaseSettings):
    """HTTP SMS gateway used by the SMS channel provider."""

    enabled: bool = Field(
        default=False,
        description="Enable the SMS channel. Disabled until a gateway is configured.",
    )
    gateway_url: str = Field(
        default="http://localhost:8082/messages",
        description="Endpoint accepting JSON SMS requests",
    )
    api_key: SecretStr | None = Field(
        default=None,
        description="Bearer token sent to the gateway",
    )
    sender_id: str = Field(
        default="TaskTracker",
        max_length=11,
        description="Alphanumeric sender id shown on the handset",
    )
    max_length: int = Field(
        default=160,
        ge=70,
        le=1600,
        description="Message bodies longer than this are truncated",
    )
    timeout: float = Field(
        default=10.0,
        ge=0.5,
        le=120.0,
        description="HTTP timeout in seconds",
    )

    model_config = SettingsConfigDict(
        env_prefix="SMS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
    )

    @classmethod
    def settings_customise_sources(
        cls, settings_cls, init_settings, env_settings, dotenv_settings, file_secret_settings
    ):
        """Customize settings source precedence: init > yaml > env > dotenv > secrets."""
        return (
            init_settings,
            create_yaml_source(settings_cls, "sms"),
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )
