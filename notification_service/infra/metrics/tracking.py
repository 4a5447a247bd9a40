"""Helper functions for tracking resilience and cache metrics."""

from __future__ import annotations

import logging

from opentelemetry import trace

from notification_service.infra.metrics import prometheus

logger = logging.getLogger(__name__)

_STATE_VALUES = {"closed": 0, "half_open": 1, "open": 2}


def current_trace_exemplar() -> dict[str, str] | None:
    """Return a trace_id exemplar for the active span, if any."""
    span_context = trace.get_current_span().get_span_context()
    if not span_context.is_valid:
        return None
    return {"trace_id": format(span_context.trace_id, "032x")}


# ============================================================================
# Circuit Breaker Tracking
# ============================================================================


def update_circuit_breaker_state(circuit_name: str, state: str) -> None:
    """Update circuit breaker state gauge.

    Example:
            update_circuit_breaker_state("notification-provider", "open")
    """
    prometheus.circuit_breaker_state.labels(circuit_name=circuit_name).set(
        _STATE_VALUES.get(state, 0),
    )


def track_circuit_breaker_failure(circuit_name: str) -> None:
    prometheus.circuit_breaker_failures_total.labels(circuit_name=circuit_name).inc()


def track_circuit_breaker_success(circuit_name: str) -> None:
    prometheus.circuit_breaker_successes_total.labels(circuit_name=circuit_name).inc()


def track_circuit_breaker_state_change(circuit_name: str, from_state: str, to_state: str) -> None:
    """Track a circuit breaker state change."""
    prometheus.circuit_breaker_state_changes_total.labels(
        circuit_name=circuit_name,
        from_state=from_state,
        to_state=to_state,
    ).inc()


def track_circuit_breaker_rejected(circuit_name: str) -> None:
    prometheus.circuit_breaker_rejected_total.labels(circuit_name=circuit_name).inc()


# ============================================================================
# Retry Tracking
# ============================================================================


def track_retry_attempt(operation: str, attempt_number: int) -> None:
    """Track a retry attempt.

    Args:
        operation: Name of the operation being retried
        attempt_number: Number of the attempt about to run (1-indexed)
    """
    prometheus.retry_attempts_total.labels(
        operation=operation,
        attempt_number=str(attempt_number),
    ).inc()


def track_retry_exhausted(operation: str) -> None:
    prometheus.retry_exhausted_total.labels(operation=operation).inc()


def track_retry_aborted(operation: str) -> None:
    prometheus.retry_aborted_total.labels(operation=operation).inc()


def track_retry_success(operation: str, attempts_needed: int) -> None:
    """Track an operation that succeeded only after retrying."""
    prometheus.retry_success_after_failure_total.labels(
        operation=operation,
        attempts_needed=str(attempts_needed),
    ).inc()


# ============================================================================
# Cache Tracking
# ============================================================================


def track_cache_lookup(cache_name: str, *, hit: bool) -> None:
    """Count a cache hit or miss, attaching a trace exemplar when available."""
    counter = prometheus.cache_hits_total if hit else prometheus.cache_misses_total
    exemplar = current_trace_exemplar()
    if exemplar:
        counter.labels(cache_name=cache_name).inc(exemplar=exemplar)
    else:
        counter.labels(cache_name=cache_name).inc()


def observe_cache_operation(operation: str, cache_name: str, duration: float) -> None:
    histogram = prometheus.cache_operation_duration_seconds.labels(
        operation=operation,
        cache_name=cache_name,
    )
    exemplar = current_trace_exemplar()
    if exemplar:
        histogram.observe(duration, exemplar=exemplar)
    else:
        histogram.observe(duration)


def track_cache_error(operation: str, cache_name: str) -> None:
    prometheus.cache_errors_total.labels(operation=operation, cache_name=cache_name).inc()
    logger.debug(
        "Tracked cache error",
        extra={"operation": operation, "cache_name": cache_name},
    )
