"""Errors raised or interpreted by the retry utilities."""

from __future__ import annotations


class RetryError(Exception):
    """Raised by the ``@retry`` decorator once its attempts are used up."""

    def __init__(self, last_exception: Exception, attempts: int) -> None:
        self.last_exception = last_exception
        self.attempts = attempts
        super().__init__(f"Failed after {attempts} attempts. Last error: {last_exception}")


class ClassifiedError(Exception):
    """Error whose ``is_retryable`` flag overrides every heuristic in ``classify_error``."""

    is_retryable: bool = True

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause


class RetryableError(ClassifiedError):
    is_retryable = True


class NonRetryableError(ClassifiedError):
    is_retryable = False
