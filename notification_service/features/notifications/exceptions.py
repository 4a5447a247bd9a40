"""Notification feature exceptions."""

from __future__ import annotations

from typing import TYPE_CHECKING

from notification_service.core.exceptions import (
    ConflictException,
    ForbiddenException,
    InternalServerException,
    NotFoundException,
)

if TYPE_CHECKING:
    from notification_service.features.notifications.enums import DeliveryStatus


class NotificationNotFoundException(NotFoundException):
    def __init__(self, notification_id: str) -> None:
        super().__init__(
            detail=f"Notification {notification_id} not found",
            type="notification-not-found",
            extra={"notification_id": notification_id},
        )
        self.notification_id = notification_id


class NotificationAccessDeniedException(ForbiddenException):
    """Raised when a recipient targets a delivery record they do not own."""

    def __init__(self, notification_id: str, user_id: str) -> None:
        super().__init__(
            detail=f"Access denied to notification {notification_id}",
            type="notification-access-denied",
            extra={"notification_id": notification_id, "user_id": user_id},
        )
        self.notification_id = notification_id
        self.user_id = user_id


class InvalidStatusTransitionError(ConflictException):
    """Raised when a delivery record would leave the allowed state machine."""

    def __init__(self, record_id: str, from_status: DeliveryStatus, to_status: DeliveryStatus) -> None:
        super().__init__(
            detail=f"Cannot move delivery record {record_id} from '{from_status}' to '{to_status}'",
            type="invalid-status-transition",
            extra={
                "record_id": record_id,
                "from_status": str(from_status),
                "to_status": str(to_status),
            },
        )
        self.record_id = record_id
        self.from_status = from_status
        self.to_status = to_status


class RetryLimitExceededError(ConflictException):
    def __init__(self, record_id: str, retry_count: int, max_retries: int) -> None:
        super().__init__(
            detail=f"Delivery record {record_id} already retried {retry_count} times (max {max_retries})",
            type="retry-limit-exceeded",
            extra={"record_id": record_id, "retry_count": retry_count, "max_retries": max_retries},
        )
        self.record_id = record_id
        self.retry_count = retry_count


class DeliveryPersistenceError(InternalServerException):
    """Raised after a dispatch when some per-recipient records could not be written.

    Attributes:
        failed_user_ids: Recipients whose record write failed.
        errors: The underlying exceptions, in the same order.
    """

    def __init__(self, failed_user_ids: list[str], errors: list[BaseException]) -> None:
        super().__init__(
            detail=f"Failed to persist delivery records for {len(failed_user_ids)} recipient(s)",
            type="delivery-persistence-failed",
            extra={"failed_user_ids": failed_user_ids},
        )
        self.failed_user_ids = failed_user_ids
        self.errors = errors
