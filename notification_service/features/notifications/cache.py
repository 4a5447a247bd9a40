"""Read-model cache for notification history and unread counts.

Cached values are disposable projections: the store is the source of truth.
Reads, populates and invalidations log and swallow backend failures so a
cache outage degrades to direct store reads. The generic ``set``/``get``/
``invalidate``/``get_cache_ttl`` helpers re-raise, for callers that need
to know.

Key layout:
    notification:history:{user_id}:{page}:{limit}:{fingerprint}
    notification:unread-count:{user_id}
    notification:cache:{key}
"""

from __future__ import annotations

from datetime import UTC, datetime
import hashlib
import json
import logging
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)

KEY_PREFIX = "notification"
HISTORY_TTL = 300
UNREAD_COUNT_TTL = 120


class CacheBackend(Protocol):
    """Subset of ``RedisCache`` the notification cache relies on."""

    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any, ttl: int | None = None) -> bool: ...

    async def delete(self, key: str) -> bool: ...

    async def delete_pattern(self, pattern: str) -> int: ...

    async def ttl(self, key: str) -> int: ...


def filter_fingerprint(filters: Mapping[str, Any] | None) -> str:
    """Stable MD5 of the non-None filters, independent of insertion order."""
    present = {key: value for key, value in (filters or {}).items() if value is not None}
    encoded = json.dumps(present, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.md5(encoded.encode("utf-8"), usedforsecurity=False).hexdigest()


def history_key(user_id: str, page: int, limit: int, filters: Mapping[str, Any] | None) -> str:
    return f"{KEY_PREFIX}:history:{user_id}:{page}:{limit}:{filter_fingerprint(filters)}"


# Single-character classes read the same under Redis MATCH and fnmatch.
_GLOB_ESCAPES = str.maketrans({"*": "[*]", "?": "[?]", "[": "[[]", "\\": "[\\\\]"})


def glob_escape(value: str) -> str:
    """Make ``value`` match only itself inside a SCAN MATCH pattern."""
    return value.translate(_GLOB_ESCAPES)


def history_pattern(user_id: str) -> str:
    return f"{KEY_PREFIX}:history:{glob_escape(user_id)}:*"


def unread_count_key(user_id: str) -> str:
    return f"{KEY_PREFIX}:unread-count:{user_id}"


def generic_key(key: str) -> str:
    return f"{KEY_PREFIX}:cache:{key}"


class NotificationCache:
    """Cache-aside helpers for the notification read model.

    Example:
        cache = NotificationCache(redis_cache, history_ttl=300, unread_ttl=120)
        page = await cache.get_cached_history("u1", 1, 20, filters)
        if page is None:
            page = await build_page()
            await cache.cache_history("u1", 1, 20, filters, page)
    """

    def __init__(
        self,
        backend: CacheBackend,
        *,
        history_ttl: int = HISTORY_TTL,
        unread_ttl: int = UNREAD_COUNT_TTL,
    ) -> None:
        self.backend = backend
        self.history_ttl = history_ttl
        self.unread_ttl = unread_ttl

    # ------------------------------------------------------------------
    # History pages
    # ------------------------------------------------------------------

    async def get_cached_history(
        self,
        user_id: str,
        page: int,
        limit: int,
        filters: Mapping[str, Any] | None,
    ) -> dict[str, Any] | None:
        key = history_key(user_id, page, limit, filters)
        try:
            cached = await self.backend.get(key)
        except Exception as e:
            logger.warning("Failed to read cached notification history", extra={"key": key, "error": str(e)})
            return None
        if cached is not None:
            logger.debug("Notification history cache hit", extra={"user_id": user_id, "page": page})
        return cached if isinstance(cached, dict) else None

    async def cache_history(
        self,
        user_id: str,
        page: int,
        limit: int,
        filters: Mapping[str, Any] | None,
        value: Mapping[str, Any],
    ) -> None:
        key = history_key(user_id, page, limit, filters)
        payload = {**value, "cached_at": datetime.now(UTC).isoformat()}
        try:
            await self.backend.set(key, payload, ttl=self.history_ttl)
        except Exception as e:
            logger.warning("Failed to cache notification history", extra={"key": key, "error": str(e)})

    async def invalidate_history(self, user_id: str) -> None:
        pattern = history_pattern(user_id)
        try:
            deleted = await self.backend.delete_pattern(pattern)
        except Exception as e:
            logger.warning(
                "Failed to invalidate notification history cache",
                extra={"user_id": user_id, "error": str(e)},
            )
            return
        logger.debug("Invalidated notification history cache", extra={"user_id": user_id, "deleted": deleted})

    # ------------------------------------------------------------------
    # Unread counts
    # ------------------------------------------------------------------

    async def get_cached_unread_count(self, user_id: str) -> dict[str, Any] | None:
        """Cached ``{"count", "last_updated"}`` for ``user_id``, or None."""
        key = unread_count_key(user_id)
        try:
            cached = await self.backend.get(key)
        except Exception as e:
            logger.warning("Failed to read cached unread count", extra={"key": key, "error": str(e)})
            return None
        if isinstance(cached, dict) and "count" in cached:
            return cached
        return None

    async def cache_unread_count(self, user_id: str, count: int) -> None:
        key = unread_count_key(user_id)
        payload = {"count": count, "last_updated": datetime.now(UTC).isoformat()}
        try:
            await self.backend.set(key, payload, ttl=self.unread_ttl)
        except Exception as e:
            logger.warning("Failed to cache unread count", extra={"key": key, "error": str(e)})

    async def invalidate_unread_count(self, user_id: str) -> None:
        key = unread_count_key(user_id)
        try:
            await self.backend.delete(key)
        except Exception as e:
            logger.warning("Failed to invalidate unread count cache", extra={"key": key, "error": str(e)})

    async def invalidate_all(self, user_id: str) -> None:
        """Drop every cached projection for ``user_id``."""
        await self.invalidate_unread_count(user_id)
        await self.invalidate_history(user_id)

    # ------------------------------------------------------------------
    # Generic helpers (errors propagate)
    # ------------------------------------------------------------------

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        namespaced = generic_key(key)
        try:
            await self.backend.set(namespaced, value, ttl=ttl)
        except Exception:
            logger.exception("Failed to set notification cache", extra={"key": namespaced})
            raise

    async def get(self, key: str) -> Any | None:
        namespaced = generic_key(key)
        try:
            return await self.backend.get(namespaced)
        except Exception:
            logger.exception("Failed to get notification cache", extra={"key": namespaced})
            raise

    async def invalidate(self, key: str) -> None:
        namespaced = generic_key(key)
        try:
            await self.backend.delete(namespaced)
        except Exception:
            logger.exception("Failed to invalidate notification cache", extra={"key": namespaced})
            raise

    async def get_cache_ttl(self, key: str) -> int:
        """Remaining TTL in seconds of a generic key (-2 missing, -1 no expiry)."""
        namespaced = generic_key(key)
        try:
            return await self.backend.ttl(namespaced)
        except Exception:
            logger.exception("Failed to get notification cache TTL", extra={"key": namespaced})
            raise
