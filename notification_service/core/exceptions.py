"""Exception hierarchy shared by every layer of the notification service.

Each exception carries RFC 7807 problem-details fields so whatever surface
reports the error (CLI, logs, an HTTP adapter) can render it uniformly.
Subclasses pin ``status_code``, ``title`` and a default ``type`` as class
attributes; instances only supply the detail and context.
"""

from __future__ import annotations

from typing import Any, ClassVar


class AppException(Exception):
    """Base application exception.

    Attributes:
        status_code: HTTP-style status code for the error.
        detail: Human-readable error message.
        type: Problem type identifier.
        title: Short summary of the problem type.
        instance: Reference identifying this occurrence.
        extra: Additional context merged into the problem details.

    Example:
        raise AppException(
            status_code=404,
            detail="Delivery record r-1 not found",
            type="notification-not-found",
            extra={"notification_id": "r-1"},
        )
    """

    default_status_code: ClassVar[int] = 500
    default_title: ClassVar[str] = "Error"
    default_type: ClassVar[str] = "about:blank"

    def __init__(
        self,
        detail: str,
        *,
        status_code: int | None = None,
        type: str | None = None,
        title: str | None = None,
        instance: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        self.status_code = status_code or self.default_status_code
        self.detail = detail
        self.type = type or self.default_type
        self.title = title or self.default_title
        self.instance = instance
        self.extra = extra or {}
        super().__init__(detail)

    def to_problem_details(self) -> dict[str, Any]:
        """Render as an RFC 7807 mapping; ``extra`` keys are flattened in."""
        problem: dict[str, Any] = {
            "type": self.type,
            "title": self.title,
            "status": self.status_code,
            "detail": self.detail,
        }
        if self.instance:
            problem["instance"] = self.instance
        problem.update(self.extra)
        return problem


class NotFoundException(AppException):
    default_status_code = 404
    default_title = "Not Found"
    default_type = "not-found"


class ForbiddenException(AppException):
    """The caller does not own the target resource."""

    default_status_code = 403
    default_title = "Forbidden"
    default_type = "forbidden"


class ConflictException(AppException):
    """The request conflicts with the resource's current state."""

    default_status_code = 409
    default_title = "Conflict"
    default_type = "conflict"


class ServiceUnavailableException(AppException):
    default_status_code = 503
    default_title = "Service Unavailable"
    default_type = "service-unavailable"


class CircuitBreakerOpenException(ServiceUnavailableException):
    """A circuit breaker rejected the call before it reached the dependency."""

    default_type = "circuit-breaker-open"


class InternalServerException(AppException):
    default_status_code = 500
    default_title = "Internal Server Error"
    default_type = "internal-error"


__all__ = [
    "AppException",
    "CircuitBreakerOpenException",
    "ConflictException",
    "ForbiddenException",
    "InternalServerException",
    "NotFoundException",
    "ServiceUnavailableException",
]
