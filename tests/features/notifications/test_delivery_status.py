"""Tests for the delivery status state machine."""

from __future__ import annotations

import pytest

from notification_service.features.notifications.enums import UNREAD_STATUSES, DeliveryStatus


@pytest.mark.unit
class TestDeliveryStatusTransitions:
    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (DeliveryStatus.PENDING, DeliveryStatus.SENT),
            (DeliveryStatus.PENDING, DeliveryStatus.FAILED),
            (DeliveryStatus.SENT, DeliveryStatus.DELIVERED),
            (DeliveryStatus.SENT, DeliveryStatus.FAILED),
            (DeliveryStatus.SENT, DeliveryStatus.READ),
            (DeliveryStatus.DELIVERED, DeliveryStatus.READ),
            (DeliveryStatus.DELIVERED, DeliveryStatus.CLICKED),
            (DeliveryStatus.READ, DeliveryStatus.CLICKED),
            (DeliveryStatus.FAILED, DeliveryStatus.SENT),
            (DeliveryStatus.FAILED, DeliveryStatus.FAILED),
            (DeliveryStatus.FAILED, DeliveryStatus.PENDING),
        ],
    )
    def test_allowed(self, current: DeliveryStatus, target: DeliveryStatus) -> None:
        assert current.can_transition_to(target)

    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (DeliveryStatus.PENDING, DeliveryStatus.READ),
            (DeliveryStatus.FAILED, DeliveryStatus.READ),
            (DeliveryStatus.DELIVERED, DeliveryStatus.SENT),
            (DeliveryStatus.READ, DeliveryStatus.DELIVERED),
            (DeliveryStatus.READ, DeliveryStatus.SENT),
            (DeliveryStatus.CLICKED, DeliveryStatus.READ),
        ],
    )
    def test_rejected(self, current: DeliveryStatus, target: DeliveryStatus) -> None:
        assert not current.can_transition_to(target)

    def test_only_clicked_is_terminal(self) -> None:
        assert [status for status in DeliveryStatus if status.is_terminal] == [DeliveryStatus.CLICKED]

    def test_unread_statuses(self) -> None:
        assert set(UNREAD_STATUSES) == {DeliveryStatus.SENT, DeliveryStatus.DELIVERED}
        assert not DeliveryStatus.FAILED.is_unread
        assert not DeliveryStatus.PENDING.is_unread
