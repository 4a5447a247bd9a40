"""Per-dependency circuit breakers keyed by name.

Every caller that uses the same key shares one breaker, so failures seen by
one dispatch open the circuit for all concurrent dispatches.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from notification_service.infra.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitState,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class CircuitBreakerRegistry:
    """Lazily created circuit breakers, one per dependency key.

    Example:
        registry = CircuitBreakerRegistry()
        delivery_id = await registry.execute(
            "notification-provider",
            lambda: provider.trigger_workflow(workflow_id, recipients, payload),
            failure_threshold=3,
            timeout=30.0,
            reset_timeout=60.0,
        )
    """

    def __init__(self) -> None:
        self._breakers: dict[str, CircuitBreaker] = {}

    def get_breaker(
        self,
        key: str,
        *,
        failure_threshold: int = 5,
        reset_timeout: float = 60.0,
    ) -> CircuitBreaker:
        """Return the breaker for ``key``, creating it with the given options on first use."""
        breaker = self._breakers.get(key)
        if breaker is None:
            breaker = CircuitBreaker(
                name=key,
                failure_threshold=failure_threshold,
                recovery_timeout=reset_timeout,
            )
            self._breakers[key] = breaker
        return breaker

    async def execute[T](
        self,
        key: str,
        fn: Callable[[], Awaitable[T]],
        *,
        failure_threshold: int = 5,
        timeout: float | None = 30.0,
        reset_timeout: float = 60.0,
    ) -> T:
        """Run ``fn`` through the breaker for ``key``.

        ``timeout`` bounds the whole of ``fn``. Pass None when ``fn`` bounds its
        own calls, e.g. a retry loop whose attempts each carry a timeout.

        Raises:
            CircuitOpenError: The circuit is open; ``fn`` was not called.
            TimeoutError: ``fn`` exceeded ``timeout`` (recorded as a failure).
        """
        breaker = self.get_breaker(
            key,
            failure_threshold=failure_threshold,
            reset_timeout=reset_timeout,
        )

        if timeout is None:
            return await breaker.call(fn)

        async def _bounded() -> T:
            return await asyncio.wait_for(fn(), timeout=timeout)

        return await breaker.call(_bounded)

    def get_circuit_state(self, key: str) -> CircuitState:
        breaker = self._breakers.get(key)
        return breaker.state if breaker else CircuitState.CLOSED

    def is_circuit_open(self, key: str) -> bool:
        return self.get_circuit_state(key) == CircuitState.OPEN

    async def reset_circuit(self, key: str) -> None:
        breaker = self._breakers.get(key)
        if breaker is not None:
            await breaker.reset()
            logger.info("Circuit reset", extra={"circuit_breaker": key})

    def get_metrics(self, key: str | None = None) -> dict[str, Any]:
        """Metrics for one breaker, or for every breaker keyed by name."""
        if key is not None:
            breaker = self._breakers.get(key)
            return breaker.get_metrics() if breaker else {}
        return {name: breaker.get_metrics() for name, breaker in self._breakers.items()}
