"""Bounded exponential-backoff retry for a single async operation.

Unlike the ``@retry`` decorator, the executor classifies every failure with
``classify_error`` and always re-raises the *original* error, so callers can
inspect provider status codes and error codes after retries are exhausted.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
import logging
import time
from typing import TYPE_CHECKING, Any

from notification_service.infra.metrics.tracking import (
    track_retry_aborted,
    track_retry_attempt,
    track_retry_exhausted,
    track_retry_success,
)

from .classification import classify_error, get_status_code

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from notification_service.core.settings import NotificationSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RetryOptions:
    """Backoff configuration; all durations are seconds.

    Attributes:
        max_retries: Retries after the first call (total calls = max_retries + 1).
        base_delay: Delay before the first retry.
        max_delay: Ceiling applied to every computed delay.
        backoff_multiplier: Growth factor between consecutive delays.
    """

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            msg = "max_retries must be >= 0"
            raise ValueError(msg)
        if self.base_delay < 0 or self.max_delay < 0:
            msg = "delays must be >= 0"
            raise ValueError(msg)

    def calculate_delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (0-based)."""
        return min(self.base_delay * (self.backoff_multiplier**attempt), self.max_delay)

    def merge(self, **overrides: Any) -> RetryOptions:
        """Return a copy with the non-None overrides applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    @classmethod
    def from_settings(cls, settings: NotificationSettings) -> RetryOptions:
        return cls(
            max_retries=settings.retry_max_retries,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
            backoff_multiplier=settings.retry_backoff_multiplier,
        )


class RetryExecutor:
    """Run async operations with classified, bounded retries.

    Example:
        executor = RetryExecutor(RetryOptions(max_retries=3))
        delivery_id = await executor.execute_with_retry(
            lambda: provider.trigger_workflow(workflow_id, recipients, payload),
            operation_name="trigger_workflow",
        )
    """

    def __init__(self, default_options: RetryOptions | None = None) -> None:
        self.default_options = default_options or RetryOptions()

    async def execute_with_retry[T](
        self,
        operation: Callable[[], Awaitable[T]],
        options: RetryOptions | None = None,
        *,
        operation_name: str | None = None,
    ) -> T:
        """Call ``operation`` until it succeeds, fails permanently or runs out of retries.

        Args:
            operation: Zero-argument coroutine factory; called once per attempt.
            options: Overrides for this call; defaults to the executor options.
            operation_name: Label used in logs and metrics.

        Returns:
            The operation's result.

        Raises:
            Exception: The original error of the last attempt.
        """
        opts = options or self.default_options
        name = operation_name or getattr(operation, "__name__", "operation")
        started = time.monotonic()

        for attempt in range(opts.max_retries + 1):
            try:
                result = await operation()
            except Exception as error:
                classification = classify_error(error)
                context = {
                    "operation": name,
                    "attempt": attempt + 1,
                    "max_attempts": opts.max_retries + 1,
                    "error_type": type(error).__name__,
                    "error_code": getattr(error, "code", None),
                    "status_code": get_status_code(error),
                    "reason": classification.reason,
                }

                if not classification.is_retryable:
                    track_retry_aborted(name)
                    logger.warning(
                        f"Non-retryable error in {name}: {error}",
                        extra=context,
                    )
                    raise

                if attempt >= opts.max_retries:
                    track_retry_exhausted(name)
                    logger.error(
                        f"All retry attempts exhausted for {name}",
                        extra={**context, "duration": time.monotonic() - started},
                    )
                    raise

                delay = opts.calculate_delay(attempt)
                track_retry_attempt(name, attempt + 2)
                logger.warning(
                    f"Retrying {name} after {delay:.2f}s (attempt {attempt + 1}/{opts.max_retries + 1})",
                    extra={**context, "delay": delay},
                )
                await asyncio.sleep(delay)
            else:
                if attempt > 0:
                    track_retry_success(name, attempt + 1)
                    logger.info(
                        f"{name} succeeded after {attempt + 1} attempts",
                        extra={"operation": name, "attempts": attempt + 1},
                    )
                return result

        msg = "Retry logic error: exhausted all attempts"
        raise RuntimeError(msg)
