"""Modular Pydantic Settings v2 configuration.

One settings class per domain (app/db/redis/logging/notifications), each
frozen and read from environment variables or a ``.env`` file, exposed
through LRU-cached loaders.

Configuration precedence (highest to lowest):
    1. init kwargs (testing/overrides)
    2. Environment variables
    3. .env file
"""

from __future__ import annotations

from .app import AppSettings
from .database import DatabaseSettings
from .loader import (
    clear_settings_cache,
    get_app_settings,
    get_db_settings,
    get_logging_settings,
    get_notification_settings,
    get_redis_settings,
)
from .logs import LoggingSettings
from .notifications import NotificationSettings
from .redis import RedisSettings

__all__ = [
    "AppSettings",
    "DatabaseSettings",
    "LoggingSettings",
    "NotificationSettings",
    "RedisSettings",
    "clear_settings_cache",
    "get_app_settings",
    "get_db_settings",
    "get_logging_settings",
    "get_notification_settings",
    "get_redis_settings",
]
