"""Application-level settings."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """Service identity and runtime mode.

    Environment variables use APP_ prefix.
    Example: APP_SERVICE_NAME=notification-service, APP_ENVIRONMENT=production
    """

    service_name: str = Field(
        default="notification-service",
        min_length=1,
        max_length=100,
        description="Service name used in logs, metrics and domain events",
    )

    environment: Literal["development", "test", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )

    debug: bool = Field(
        default=False,
        description="Enable debug behaviour (SQL echo, verbose logs)",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
    )
