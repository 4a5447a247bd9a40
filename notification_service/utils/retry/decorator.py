from __future__ import annotations

import asyncio
from functools import wraps
import logging
import time
from typing import TYPE_CHECKING, Any

from notification_service.infra.metrics.tracking import (
    track_retry_attempt,
    track_retry_exhausted,
    track_retry_success,
)

from .exceptions import RetryError
from .strategies import RetryStrategy

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


def retry[**P, R](**strategy_options: Any) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """Retry an async callable on selected exceptions with jittered backoff.

    Accepts the ``RetryStrategy`` fields as keyword arguments. Meant for
    infrastructure clients (Redis commands) where transient connection errors
    should be absorbed: exhaustion raises ``RetryError`` wrapping the last
    exception, and exceptions the strategy does not select propagate untouched.

    Example:
        @retry(max_attempts=3, initial_delay=0.1, exceptions=(ConnectionError,))
        async def ping() -> bool: ...
    """
    strategy = RetryStrategy(**strategy_options)

    def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        name = func.__name__

        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            started = time.monotonic()
            attempt = 0
            while True:
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    if not strategy.should_retry(e):
                        raise
                    if strategy.is_exhausted(attempt, time.monotonic() - started):
                        track_retry_exhausted(name)
                        logger.error(
                            f"All retry attempts exhausted for {name}",
                            extra={"function": name, "attempts": attempt + 1, "last_exception": str(e)},
                        )
                        raise RetryError(e, attempt + 1) from e

                    delay = strategy.calculate_delay(attempt)
                    attempt += 1
                    track_retry_attempt(name, attempt + 1)
                    logger.warning(
                        f"Retrying {name} after {delay:.2f}s (attempt {attempt}/{strategy.max_attempts})",
                        extra={"function": name, "attempt": attempt, "delay": delay, "exception": str(e)},
                    )
                    await asyncio.sleep(delay)
                else:
                    if attempt:
                        track_retry_success(name, attempt + 1)
                    return result

        return wrapper

    return decorator
