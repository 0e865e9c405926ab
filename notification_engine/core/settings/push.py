"""Push channel settings for the HTTP push gateway.

Environment variables use PUSH_ prefix.
Example: PUSH_ENABLED=true, PUSH_GATEWAY_URL=https://push.internal/v1/send
"""

from __future__ import annotations

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from .yaml_sources import create_yaml_source


class PushSettings(BaseSettings):
    """HTTP push gateway used by the PUSH channel provider."""

    enabled: bool = Field(
        default=False,
        description="Enable the PUSH channel. Disabled until a gateway is configured.",
    )
    gateway_url: str = Field(
        default="http://localhost:8081/push",
        description="Endpoint accepting JSON push requests",
    )
    api_key: SecretStr | None = Field(
        default=None,
        description="Bearer token sent to the gateway",
    )
    timeout: float = Field(
        default=10.0,
        ge=0.5,
        le=120.0,
        description="HTTP timeout in seconds",
    )

    model_config = SettingsConfigDict(
        env_prefix="PUSH_",
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
            create_yaml_source(settings_cls, "push"),
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )
