"""Builders for delivery records and notifications used across feature tests."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from notification_service.features.notifications.enums import (
    DeliveryStatus,
    NotificationChannel,
    NotificationPriority,
    NotificationType,
)
from notification_service.features.notifications.schemas import DeliveryRecord, NotificationAggregate


def make_notification(**overrides: Any) -> NotificationAggregate:
    values: dict[str, Any] = {
        "id": "n1",
        "title": "Payment received",
        "body": "Your payment was processed",
        "type": NotificationType.PAYMENT,
        "priority": NotificationPriority.HIGH,
        "data": {"amount": 42},
    }
    values.update(overrides)
    return NotificationAggregate(**values)


def make_record(user_id: str = "u1", **overrides: Any) -> DeliveryRecord:
    values: dict[str, Any] = {
        "id": str(uuid4()),
        "user_id": user_id,
        "notification_id": "n1",
        "title": "Payment received",
        "type": NotificationType.PAYMENT,
        "priority": NotificationPriority.NORMAL,
        "channel": NotificationChannel.PUSH,
        "status": DeliveryStatus.SENT,
        "sent_at": datetime.now(UTC),
        "delivery_id": "d1",
    }
    values.update(overrides)
    return DeliveryRecord(**values)
