"""Logging configuration settings."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class LoggingSettings(BaseSettings):
    """Where and how records are written (``LOG_`` prefix, e.g. ``LOG_LEVEL=DEBUG``)."""

    service_name: str = Field(default="notification-service", description="Static 'service' field of JSON records")
    level: LogLevel = Field(default="INFO", description="Root logger level")
    json_logs: bool = Field(default=True, description="JSON Lines instead of plain text")
    console_enabled: bool = Field(default=True, description="Write records to stderr")
    file_enabled: bool = Field(default=False, description="Also write records to a rotating file")
    file_path: Path = Field(
        default=Path("logs/notification-service.log.jsonl"),
        description="Rotating log file used when file_enabled is set",
    )
    file_max_bytes: int = Field(default=10 * 1024 * 1024, ge=1024, description="Rotate after this many bytes")
    file_backup_count: int = Field(default=5, ge=0, le=100, description="Rotated files kept")
    include_context: bool = Field(
        default=True,
        description="Copy log_context fields (user_id, notification_id, delivery_id) onto records",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
    )

    def to_logging_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for ``configure_logging``."""
        return {
            "service_name": self.service_name,
            "log_level": self.level,
            "json_logs": self.json_logs,
            "console_enabled": self.console_enabled,
            "file_path": self.file_path if self.file_enabled else None,
            "file_max_bytes": self.file_max_bytes,
            "file_backup_count": self.file_backup_count,
            "include_context": self.include_context,
        }
