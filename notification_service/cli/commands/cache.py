"""Cache commands."""

import sys

import click
from redis.exceptions import RedisError

from notification_service.cli.utils import coro, error, info, success, warning
from notification_service.core.settings import get_redis_settings
from notification_service.features.notifications.cache import NotificationCache
from notification_service.infra.cache import start_cache, stop_cache


@click.group(name="cache")
def cache() -> None:
    """Notification cache commands."""


@cache.command()
@coro
async def test() -> None:
    """Test Redis cache connectivity."""
    redis_settings = get_redis_settings()
    info(f"Connecting to: {redis_settings.host}:{redis_settings.port}/{redis_settings.db}")
    try:
        backend = await start_cache()
        if await backend.health_check():
            success("Redis connection successful!")
        else:
            error("Redis ping failed")
            sys.exit(1)
    except RedisError as e:
        error(f"Failed to connect to Redis: {e}")
        sys.exit(1)
    finally:
        await stop_cache()


@cache.command()
@click.argument("user_id")
@coro
async def invalidate(user_id: str) -> None:
    """Drop cached history pages and unread count of USER_ID."""
    try:
        backend = await start_cache()
        await NotificationCache(backend).invalidate_all(user_id)
        success(f"Invalidated cache for {user_id}")
    except RedisError as e:
        warning(f"Cache invalidation failed: {e}")
        sys.exit(1)
    finally:
        await stop_cache()
