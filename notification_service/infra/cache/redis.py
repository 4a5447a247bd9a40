"""Redis client backing the notification read-model cache.

Values are JSON encoded. Commands are retried on connection and timeout
errors; every other Redis error reaches the caller, which decides whether a
cache failure matters.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
import json
import logging
import time
from typing import TYPE_CHECKING, Any, cast

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from notification_service.core.settings import get_redis_settings
from notification_service.infra.metrics.tracking import (
    observe_cache_operation,
    track_cache_error,
    track_cache_lookup,
)
from notification_service.utils.retry import retry

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable

logger = logging.getLogger(__name__)
redis_settings = get_redis_settings()

_transient_retry = retry(
    max_attempts=redis_settings.max_retries,
    initial_delay=redis_settings.retry_delay,
    max_delay=1.0,
    exceptions=(RedisConnectionError, RedisTimeoutError),
    stop_after_delay=redis_settings.retry_timeout,
)


class RedisCache:
    """Key/value operations over a pooled ``redis.asyncio`` client.

    Example:
        cache = RedisCache()
        await cache.connect()
        await cache.set("notification:unread-count:u1", {"count": 3}, ttl=120)
        await cache.delete_pattern("notification:history:u1:*")
        await cache.disconnect()
    """

    def __init__(self, client: Redis | None = None, *, cache_name: str = "redis") -> None:
        self._pool: ConnectionPool | None = None
        self._client: Redis | None = client
        self.cache_name = cache_name

    async def connect(self) -> None:
        """Build the pool from RedisSettings and PING the server."""
        logger.info(
            "Connecting to Redis",
            extra={"host": redis_settings.host, "port": redis_settings.port, "db": redis_settings.db},
        )
        self._pool = ConnectionPool.from_url(redis_settings.url, **redis_settings.connection_pool_kwargs())
        self._client = Redis(connection_pool=self._pool)
        try:
            await cast("Awaitable[bool]", self._client.ping())
        except Exception:
            logger.exception("Failed to connect to Redis")
            await self.disconnect()
            raise

    async def disconnect(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        if self._pool is not None:
            await self._pool.aclose()
            self._pool = None

    @property
    def client(self) -> Redis:
        if self._client is None:
            msg = "Redis client not connected. Call connect() first."
            raise RuntimeError(msg)
        return self._client

    @asynccontextmanager
    async def _instrument(self, operation: str, **log_extra: Any) -> AsyncIterator[None]:
        """Time one command; count and log its failure before re-raising."""
        started = time.perf_counter()
        try:
            yield
        except Exception:
            track_cache_error(operation, self.cache_name)
            logger.warning(f"Redis {operation} failed", extra={"operation": operation, **log_extra})
            raise
        observe_cache_operation(operation, self.cache_name, time.perf_counter() - started)

    @_transient_retry
    async def get(self, key: str) -> Any | None:
        """JSON-decoded value, raw value if not JSON, None on a miss."""
        async with self._instrument("get", key=key):
            value = await self.client.get(key)
        track_cache_lookup(self.cache_name, hit=value is not None)
        if value is None:
            return None
        try:
            return json.loads(value)
        except (json.JSONDecodeError, TypeError):
            return value

    @_transient_retry
    async def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        payload = value if isinstance(value, str) else json.dumps(value, default=str)
        async with self._instrument("set", key=key):
            result = await self.client.set(key, payload, ex=ttl)
        return bool(result)

    @_transient_retry
    async def delete(self, key: str) -> bool:
        async with self._instrument("delete", key=key):
            result = await self.client.delete(key)
        return bool(result)

    @_transient_retry
    async def delete_pattern(self, pattern: str) -> int:
        """SCAN for ``pattern`` and DEL the matches; returns the number removed."""
        async with self._instrument("delete_pattern", pattern=pattern):
            keys = [key async for key in self.client.scan_iter(match=pattern)]
            deleted = await self.client.delete(*keys) if keys else 0
        return int(deleted or 0)

    async def ttl(self, key: str) -> int:
        """Seconds left (-2 missing key, -1 no expiry)."""
        async with self._instrument("ttl", key=key):
            remaining = await self.client.ttl(key)
        return int(remaining) if remaining is not None else -1

    async def health_check(self) -> bool:
        try:
            await cast("Awaitable[bool]", self.client.ping())
        except Exception as e:
            logger.warning("Redis health check failed", extra={"error": str(e)})
            return False
        return True


_cache: RedisCache | None = None


async def start_cache() -> RedisCache:
    """Connect the process-wide cache once."""
    global _cache
    if _cache is None:
        cache = RedisCache()
        await cache.connect()
        _cache = cache
        logger.info("Redis cache started")
    return _cache


async def stop_cache() -> None:
    global _cache
    if _cache is not None:
        await _cache.disconnect()
        _cache = None
        logger.info("Redis cache stopped")
