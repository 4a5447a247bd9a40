"""Retryable / non-retryable classification of errors.

Order of precedence:
1. an explicit boolean ``is_retryable`` attribute on the error;
2. network-class failures (connection reset/refused, timeouts, DNS);
3. HTTP-style status: >= 500 and 429 are transient, other 4xx are permanent;
4. anything else is treated as transient.
"""

from __future__ import annotations

from dataclasses import dataclass
import socket
from typing import Any

import httpx

from .exceptions import NonRetryableError, RetryableError

NETWORK_ERROR_CODES = frozenset({"ECONNRESET", "ECONNREFUSED", "ETIMEDOUT", "ENOTFOUND"})
NON_RETRYABLE_STATUS_CODES = frozenset({400, 401, 403, 404})
# 4xx statuses that still describe a transient condition
RETRYABLE_CLIENT_STATUS_CODES = frozenset({408, 429})

_NETWORK_EXCEPTIONS: tuple[type[BaseException], ...] = (
    ConnectionError,
    TimeoutError,
    socket.gaierror,
    httpx.TransportError,
)


@dataclass(frozen=True, slots=True)
class ErrorClassification:
    """Outcome of ``classify_error``."""

    is_retryable: bool
    reason: str


def get_status_code(error: BaseException) -> int | None:
    """Extract an HTTP-style status from an error, if it carries one."""
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    for attr in ("status_code", "status"):
        value: Any = getattr(error, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def classify_error(error: BaseException) -> ErrorClassification:
    """Decide whether ``error`` is worth another attempt."""
    flag = getattr(error, "is_retryable", None)
    if isinstance(flag, bool):
        return ErrorClassification(flag, "explicitly marked retryable" if flag else "explicitly marked non-retryable")

    code = getattr(error, "code", None)
    if isinstance(error, _NETWORK_EXCEPTIONS) or code in NETWORK_ERROR_CODES:
        return ErrorClassification(True, f"network error ({code or type(error).__name__})")

    status = get_status_code(error)
    if status is not None:
        if status >= 500:
            return ErrorClassification(True, f"server error ({status})")
        if status in RETRYABLE_CLIENT_STATUS_CODES:
            return ErrorClassification(True, f"transient client status ({status})")
        if status in NON_RETRYABLE_STATUS_CODES or 400 <= status < 500:
            return ErrorClassification(False, f"client error ({status})")

    return ErrorClassification(True, "unclassified error")


def create_retryable_error(message: str, cause: BaseException | None = None) -> RetryableError:
    """Build an error that forces a retry whatever its cause looks like."""
    return RetryableError(message, cause)


def create_non_retryable_error(message: str, cause: BaseException | None = None) -> NonRetryableError:
    """Build an error that stops a retry loop at once."""
    return NonRetryableError(message, cause)

