"""Cache infrastructure."""

from __future__ import annotations

from notification_service.infra.cache.redis import (
    RedisCache,
    start_cache,
    stop_cache,
)

__all__ = ["RedisCache", "start_cache", "stop_cache"]
