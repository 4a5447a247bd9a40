"""Circuit breaker guarding calls to one external dependency.

    closed --(failure_threshold consecutive failures)--> open
    open --(recovery_timeout since the last failure)--> half_open
    half_open --(probe succeeds)--> closed
    half_open --(probe fails)--> open

While open, calls fail fast with ``CircuitOpenError``. Half-open admits one
probe at a time; concurrent callers are rejected until the probe settles.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from enum import StrEnum
import logging
from typing import TYPE_CHECKING, Any

from notification_service.infra.metrics.tracking import (
    track_circuit_breaker_failure,
    track_circuit_breaker_rejected,
    track_circuit_breaker_state_change,
    track_circuit_breaker_success,
    update_circuit_breaker_state,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class CircuitState(StrEnum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitOpenError(Exception):
    """A breaker rejected the call without running it."""

    code = "CIRCUIT_OPEN"
    is_retryable = False

    def __init__(
        self,
        message: str = "Circuit breaker is open",
        *,
        circuit_name: str | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message)
        self.circuit_name = circuit_name
        self.retry_after = retry_after


class CircuitBreaker:
    """Consecutive-failure breaker; state changes happen under an ``asyncio.Lock``.

    The protected call runs outside the lock. ``expected_exception`` selects
    what counts as a failure; cancellation never does.
    """

    def __init__(
        self,
        *,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        expected_exception: type[Exception] | tuple[type[Exception], ...] = Exception,
    ) -> None:
        if failure_threshold <= 0:
            msg = "failure_threshold must be greater than 0"
            raise ValueError(msg)
        if recovery_timeout <= 0:
            msg = "recovery_timeout must be greater than 0"
            raise ValueError(msg)

        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.expected_exception = expected_exception

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._probe_in_flight = False
        self._last_failure_time: datetime | None = None
        self._lock = asyncio.Lock()

        self.total_failures = 0
        self.total_successes = 0
        self.total_rejections = 0

        update_circuit_breaker_state(name, self._state.value)

    @property
    def next_attempt_at(self) -> datetime | None:
        """When an open circuit will admit a recovery probe."""
        if self._state is not CircuitState.OPEN or self._last_failure_time is None:
            return None
        return self._last_failure_time + timedelta(seconds=self.recovery_timeout)

    @property
    def state(self) -> CircuitState:
        """Effective state; an open circuit past its recovery timeout reads as half-open."""
        next_attempt = self.next_attempt_at
        if next_attempt is not None and datetime.now(UTC) >= next_attempt:
            return CircuitState.HALF_OPEN
        return self._state

    @property
    def is_open(self) -> bool:
        return self.state is CircuitState.OPEN

    @property
    def is_closed(self) -> bool:
        return self.state is CircuitState.CLOSED

    async def call[**P, T](self, func: Callable[P, Awaitable[T]], *args: P.args, **kwargs: P.kwargs) -> T:
        """Run ``func`` under the breaker.

        Raises:
            CircuitOpenError: Open, or a half-open probe is already running.
            Exception: Whatever ``func`` raised, after it was recorded.
        """
        probing = await self._admit()
        try:
            result = await func(*args, **kwargs)
        except self.expected_exception as e:
            await self._record_failure(e)
            raise
        except BaseException:
            if probing:
                self._probe_in_flight = False
            raise
        await self._record_success()
        return result

    async def _admit(self) -> bool:
        """Reject or admit a call; returns True when it is the half-open probe."""
        async with self._lock:
            if self.state is CircuitState.HALF_OPEN and self._state is CircuitState.OPEN:
                self._transition(CircuitState.HALF_OPEN)

            if self._state is CircuitState.CLOSED:
                return False
            if self._state is CircuitState.HALF_OPEN and not self._probe_in_flight:
                self._probe_in_flight = True
                return True

            self.total_rejections += 1
            track_circuit_breaker_rejected(self.name)
            next_attempt = self.next_attempt_at
            retry_after = max(0.0, (next_attempt - datetime.now(UTC)).total_seconds()) if next_attempt else None
            msg = f"Circuit breaker '{self.name}' is {self._state.value}"
            logger.warning(
                msg,
                extra={"circuit_breaker": self.name, "state": self._state.value, "retry_after": retry_after},
            )
            raise CircuitOpenError(msg, circuit_name=self.name, retry_after=retry_after)

    async def _record_success(self) -> None:
        async with self._lock:
            self.total_successes += 1
            track_circuit_breaker_success(self.name)
            if self._state is CircuitState.HALF_OPEN:
                self._transition(CircuitState.CLOSED)
            self._failure_count = 0

    async def _record_failure(self, exception: BaseException) -> None:
        async with self._lock:
            self.total_failures += 1
            self._failure_count += 1
            self._last_failure_time = datetime.now(UTC)
            track_circuit_breaker_failure(self.name)
            logger.warning(
                f"Circuit breaker '{self.name}' recorded failure",
                extra={
                    "circuit_breaker": self.name,
                    "failure_count": self._failure_count,
                    "failure_threshold": self.failure_threshold,
                    "exception_type": type(exception).__name__,
                },
            )
            if self._state is CircuitState.HALF_OPEN or self._failure_count >= self.failure_threshold:
                self._transition(CircuitState.OPEN)

    def _transition(self, new_state: CircuitState) -> None:
        old_state = self._state
        if old_state is new_state:
            return
        self._state = new_state
        self._probe_in_flight = False
        if new_state is CircuitState.CLOSED:
            self._failure_count = 0
            self._last_failure_time = None

        track_circuit_breaker_state_change(self.name, old_state.value, new_state.value)
        update_circuit_breaker_state(self.name, new_state.value)
        log = logger.error if new_state is CircuitState.OPEN else logger.info
        log(
            f"Circuit breaker '{self.name}' {old_state.value} -> {new_state.value}",
            extra={"circuit_breaker": self.name, "old_state": old_state.value, "new_state": new_state.value},
        )

    def get_metrics(self) -> dict[str, Any]:
        next_attempt = self.next_attempt_at
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self._failure_count,
            "total_failures": self.total_failures,
            "total_successes": self.total_successes,
            "total_rejections": self.total_rejections,
            "last_failure_time": self._last_failure_time.isoformat() if self._last_failure_time else None,
            "next_attempt_at": next_attempt.isoformat() if next_attempt else None,
        }

    async def reset(self) -> None:
        """Force CLOSED and clear lifetime counters."""
        async with self._lock:
            self._transition(CircuitState.CLOSED)
            self._failure_count = 0
            self._last_failure_time = None
            self.total_failures = 0
            self.total_successes = 0
            self.total_rejections = 0
