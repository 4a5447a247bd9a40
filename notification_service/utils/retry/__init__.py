from __future__ import annotations

from notification_service.utils.retry.classification import (
    ErrorClassification,
    classify_error,
    create_non_retryable_error,
    create_retryable_error,
    get_status_code,
)
from notification_service.utils.retry.decorator import retry
from notification_service.utils.retry.exceptions import (
    NonRetryableError,
    RetryableError,
    RetryError,
)
from notification_service.utils.retry.executor import RetryExecutor, RetryOptions
from notification_service.utils.retry.strategies import RetryStrategy

__all__ = [
    "ErrorClassification",
    "NonRetryableError",
    "RetryError",
    "RetryExecutor",
    "RetryOptions",
    "RetryStrategy",
    "RetryableError",
    "classify_error",
    "create_non_retryable_error",
    "create_retryable_error",
    "get_status_code",
    "retry",
]
