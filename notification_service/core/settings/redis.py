"""Redis settings for the notification read-model cache."""

from __future__ import annotations

from typing import Any
from urllib.parse import urlparse

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RedisSettings(BaseSettings):
    """Connection, pool and command-retry options for Redis.

    Environment variables use the REDIS_ prefix, e.g.
    ``REDIS_URL=redis://:secret@cache:6379/2``. Host, port and database are
    read back from the URL for logging and diagnostics.
    """

    url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL (redis:// or rediss://)",
    )
    max_connections: int = Field(
        default=50,
        ge=1,
        le=1000,
        description="Maximum connection pool size",
    )
    socket_timeout: float = Field(
        default=5.0,
        ge=0.1,
        le=30.0,
        description="Per-command socket timeout in seconds",
    )
    socket_connect_timeout: float = Field(
        default=5.0,
        ge=0.1,
        le=30.0,
        description="Connect timeout in seconds",
    )
    max_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per cache command on connection/timeout errors",
    )
    retry_delay: float = Field(
        default=0.1,
        ge=0.01,
        le=5.0,
        description="First retry delay in seconds, doubled per attempt",
    )
    retry_timeout: float = Field(
        default=2.0,
        ge=0.1,
        le=30.0,
        description="Give up retrying a command after this many seconds",
    )

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
    )

    @field_validator("url")
    @classmethod
    def _check_scheme(cls, value: str) -> str:
        if urlparse(value).scheme not in ("redis", "rediss", "unix"):
            msg = f"Unsupported Redis URL scheme: {value.split(':', 1)[0]}"
            raise ValueError(msg)
        return value

    @property
    def host(self) -> str:
        return urlparse(self.url).hostname or "localhost"

    @property
    def port(self) -> int:
        return urlparse(self.url).port or 6379

    @property
    def db(self) -> int:
        path = urlparse(self.url).path.lstrip("/")
        return int(path) if path.isdigit() else 0

    def connection_pool_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for ``redis.asyncio.ConnectionPool.from_url``."""
        return {
            "max_connections": self.max_connections,
            "socket_timeout": self.socket_timeout,
            "socket_connect_timeout": self.socket_connect_timeout,
            "decode_responses": True,
        }
