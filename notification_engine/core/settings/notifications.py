"""Notification engine settings: retry policy, timeouts and housekeeping.

Environment variables use NOTIFY_ prefix.
Example: NOTIFY_MAX_RETRIES=5, NOTIFY_BACKOFF_STRATEGY=fixed
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from ._sanitizers import sanitize_inline_numeric, split_channel_list
from .yaml_sources import create_yaml_source

BackoffStrategy = Literal["fixed", "exponential"]


class NotificationSettings(BaseSettings):
    """Delivery engine configuration."""

    # ──────────────────────────────────────────────────────────────
    # Retry policy
    # ──────────────────────────────────────────────────────────────

    max_retries: int = Field(
        default=3,
        ge=1,
        le=50,
        description="Failed attempts after which a notification is terminally FAILED",
    )

    retry_interval_seconds: int = Field(
        default=300,
        ge=5,
        le=86_400,
        description="How often the retry sweep runs",
    )

    backoff_strategy: BackoffStrategy = Field(
        default="exponential",
        description="fixed: base delay; exponential: base * 2**retry_count",
    )

    backoff_base_seconds: float = Field(
        default=60.0,
        ge=0.0,
        le=86_400.0,
        description="Base delay before a FAILED notification becomes eligible again",
    )

    backoff_max_seconds: float = Field(
        default=3600.0,
        ge=0.0,
        le=604_800.0,
        description="Upper bound on the backoff delay",
    )

    retry_batch_size: int = Field(
        default=100,
        ge=1,
        le=10_000,
        description="Notifications loaded per page during a retry sweep",
    )

    retry_max_batches: int = Field(
        default=10,
        ge=1,
        le=1000,
        description="Pages processed per sweep; the rest waits for the next tick",
    )

    # ──────────────────────────────────────────────────────────────
    # Dispatch
    # ──────────────────────────────────────────────────────────────

    provider_timeout_seconds: float = Field(
        default=15.0,
        gt=0.0,
        le=300.0,
        description="Deadline for a single provider send; exceeding it counts as a failure",
    )

    pending_timeout_seconds: float = Field(
        default=600.0,
        gt=0.0,
        le=86_400.0,
        description="PENDING records untouched for this long are failed with category timeout by the retry sweep",
    )

    default_channels: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["EMAIL", "PUSH"],
        description="Candidate channels when an event does not name any (EMAIL,PUSH or JSON list)",
    )

    # ──────────────────────────────────────────────────────────────
    # Housekeeping
    # ──────────────────────────────────────────────────────────────

    retention_days: int = Field(
        default=30,
        ge=1,
        le=3650,
        description="Terminal notifications older than this are removed by housekeeping",
    )

    cleanup_interval_hours: int = Field(
        default=24,
        ge=1,
        le=168,
        description="How often the housekeeping job runs",
    )

    cleanup_enabled: bool = Field(
        default=True,
        description="Schedule the housekeeping job",
    )

    @field_validator("default_channels", mode="before")
    @classmethod
    def _normalize_channels(cls, value: Any) -> Any:
        return split_channel_list(value)

    @field_validator(
        "max_retries",
        "retry_interval_seconds",
        "backoff_base_seconds",
        "backoff_max_seconds",
        "retry_batch_size",
        "retry_max_batches",
        "provider_timeout_seconds",
        "pending_timeout_seconds",
        "retention_days",
        "cleanup_interval_hours",
        mode="before",
    )
    @classmethod
    def _normalize_numeric(cls, value: Any) -> Any:
        """Allow numeric env vars with inline comments."""
        return sanitize_inline_numeric(value)

    @model_validator(mode="after")
    def _pending_outlives_send(self) -> NotificationSettings:
        if self.pending_timeout_seconds <= self.provider_timeout_seconds:
            raise ValueError("pending_timeout_seconds must exceed provider_timeout_seconds")
        return self

    model_config = SettingsConfigDict(
        env_prefix="NOTIFY_",
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
            create_yaml_source(settings_cls, "notify"),
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )
