"""Tests for the RFC 7807 exception hierarchy."""

from __future__ import annotations

import pytest

from notification_service.core.exceptions import AppException, CircuitBreakerOpenException
from notification_service.features.notifications.enums import DeliveryStatus
from notification_service.features.notifications.exceptions import (
    DeliveryPersistenceError,
    InvalidStatusTransitionError,
    NotificationAccessDeniedException,
    NotificationNotFoundException,
)


@pytest.mark.unit
class TestExceptions:
    def test_problem_details(self) -> None:
        error = NotificationNotFoundException("n1")
        problem = error.to_problem_details()

        assert problem["status"] == 404
        assert problem["type"] == "notification-not-found"
        assert problem["title"] == "Not Found"
        assert problem["notification_id"] == "n1"

    @pytest.mark.parametrize(
        ("error", "status"),
        [
            (NotificationAccessDeniedException("n1", "u2"), 403),
            (InvalidStatusTransitionError("r1", DeliveryStatus.FAILED, DeliveryStatus.READ), 409),
            (DeliveryPersistenceError(["u1"], [RuntimeError("x")]), 500),
            (CircuitBreakerOpenException(detail="open"), 503),
        ],
    )
    def test_status_codes(self, error: AppException, status: int) -> None:
        assert error.status_code == status
        assert isinstance(error, AppException)

    def test_transition_error_carries_states(self) -> None:
        error = InvalidStatusTransitionError("r1", DeliveryStatus.PENDING, DeliveryStatus.READ)

        assert error.extra == {"record_id": "r1", "from_status": "pending", "to_status": "read"}
