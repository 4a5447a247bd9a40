from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
import random


@dataclass(frozen=True, slots=True)
class RetryStrategy:
    """Which errors the ``@retry`` decorator absorbs and how long it waits.

    Delays grow as ``initial_delay * exponential_base ** attempt`` up to
    ``max_delay``; with ``jitter`` each delay is scaled by a random factor in
    ``jitter_range`` so clients sharing a failing Redis do not retry in step.
    """

    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0
    jitter: bool = True
    jitter_range: tuple[float, float] = (0.5, 1.5)
    exceptions: tuple[type[Exception], ...] = (Exception,)
    retry_if: Callable[[Exception], bool] | None = None
    stop_after_delay: float | None = None

    def should_retry(self, exception: Exception) -> bool:
        if self.retry_if is not None:
            return self.retry_if(exception)
        return isinstance(exception, self.exceptions)

    def calculate_delay(self, attempt: int) -> float:
        delay = min(self.initial_delay * self.exponential_base**attempt, self.max_delay)
        return delay * random.uniform(*self.jitter_range) if self.jitter else delay

    def is_exhausted(self, attempt: int, elapsed: float) -> bool:
        """True when no attempt after ``attempt`` (0-based) may run."""
        if attempt >= self.max_attempts - 1:
            return True
        return self.stop_after_delay is not None and elapsed >= self.stop_after_delay
