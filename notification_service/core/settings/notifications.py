"""Dispatch, resilience and read-model settings for notifications."""

from __future__ import annotations

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class NotificationSettings(BaseSettings):
    """Notification engine settings.

    Environment variables use NOTIFICATION_ prefix.
    Example: NOTIFICATION_PROVIDER_BASE_URL=https://api.provider.example
    """

    # ──────────────────────────────────────────────────────────────
    # Workflow provider
    # ──────────────────────────────────────────────────────────────

    provider_base_url: str = Field(
        default="https://api.novu.co",
        description="Base URL of the external workflow-trigger provider",
    )

    provider_api_key: SecretStr = Field(
        default=SecretStr(""),
        description="API key sent as 'Authorization: ApiKey <key>'",
    )

    provider_timeout: float = Field(
        default=10.0,
        gt=0,
        le=120.0,
        description="HTTP timeout in seconds for a single provider request",
    )

    # ──────────────────────────────────────────────────────────────
    # Circuit breaker around the provider
    # ──────────────────────────────────────────────────────────────

    circuit_key: str = Field(
        default="notification-provider",
        min_length=1,
        description="Dependency key identifying the provider circuit",
    )

    circuit_failure_threshold: int = Field(
        default=3,
        ge=1,
        description="Consecutive failures that open the provider circuit",
    )

    circuit_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Seconds allowed for one protected provider call",
    )

    circuit_reset_timeout: float = Field(
        default=60.0,
        gt=0,
        description="Seconds the circuit stays open before a half-open probe",
    )

    # ──────────────────────────────────────────────────────────────
    # Retry executor defaults
    # ──────────────────────────────────────────────────────────────

    retry_max_retries: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Retries after the initial provider call",
    )

    retry_base_delay: float = Field(
        default=1.0,
        ge=0,
        description="Base backoff delay in seconds",
    )

    retry_max_delay: float = Field(
        default=30.0,
        ge=0,
        description="Upper bound of a single backoff delay in seconds",
    )

    retry_backoff_multiplier: float = Field(
        default=2.0,
        ge=1.0,
        description="Exponential backoff multiplier",
    )

    # ──────────────────────────────────────────────────────────────
    # Batch retry and delivery retries
    # ──────────────────────────────────────────────────────────────

    batch_max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts made by send_notification_with_retry",
    )

    batch_retry_delays: list[float] = Field(
        default_factory=lambda: [1.0, 5.0, 15.0],
        description="Fixed delays in seconds between batch attempts",
    )

    max_delivery_retries: int = Field(
        default=3,
        ge=0,
        description="Retry ceiling for a failed delivery record",
    )

    persistence_max_retries: int = Field(
        default=2,
        ge=0,
        description="Retries for a single delivery record write",
    )

    # ──────────────────────────────────────────────────────────────
    # Read model
    # ──────────────────────────────────────────────────────────────

    history_cache_ttl: int = Field(
        default=300,
        ge=1,
        description="TTL in seconds of a cached history page",
    )

    unread_cache_ttl: int = Field(
        default=120,
        ge=1,
        description="TTL in seconds of a cached unread count",
    )

    default_page_size: int = Field(
        default=20,
        ge=1,
        le=100,
        description="History page size when the caller does not pass one",
    )

    max_page_size: int = Field(
        default=100,
        ge=1,
        le=100,
        description="Hard ceiling applied to every page size",
    )

    mark_all_batch_size: int = Field(
        default=1000,
        ge=1,
        description="Records transitioned by one mark-all-as-read command",
    )

    model_config = SettingsConfigDict(
        env_prefix="NOTIFICATION_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
    )

    @field_validator("batch_retry_delays")
    @classmethod
    def _non_negative_delays(cls, value: list[float]) -> list[float]:
        if any(delay < 0 for delay in value):
            msg = "batch_retry_delays must not contain negative values"
            raise ValueError(msg)
        return value

    def batch_delay(self, attempt: int) -> float:
        """Delay to wait after the given (0-based) batch attempt."""
        if not self.batch_retry_delays:
            return 0.0
        return self.batch_retry_delays[min(attempt, len(self.batch_retry_delays) - 1)]
