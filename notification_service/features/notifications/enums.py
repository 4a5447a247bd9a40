"""Closed enumerations for notifications and the delivery state machine."""

from __future__ import annotations

from enum import StrEnum


class NotificationType(StrEnum):
    PAYMENT = "payment"
    ORDER = "order"
    PROMOTION = "promotion"
    SYSTEM = "system"
    SECURITY = "security"
    EMERGENCY = "emergency"
    BOOKING = "booking"
    ANNOUNCEMENT = "announcement"


class NotificationChannel(StrEnum):
    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"
    IN_APP = "in_app"
    WEBHOOK = "webhook"


class NotificationPriority(StrEnum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class NotificationLifecycle(StrEnum):
    """Status of the logical notification (never of a delivery record)."""

    DRAFT = "draft"
    SCHEDULED = "scheduled"
    SENDING = "sending"
    SENT = "sent"
    FAILED = "failed"


class DeliveryStatus(StrEnum):
    """Per-recipient delivery status.

    Allowed transitions:
        pending   -> sent, failed
        sent      -> delivered, failed, read
        delivered -> read, clicked
        read      -> clicked
        failed    -> failed, pending, sent
        clicked   -> (terminal)
    """

    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"
    READ = "read"
    CLICKED = "clicked"

    def can_transition_to(self, target: DeliveryStatus) -> bool:
        return target in _TRANSITIONS[self]

    @property
    def is_terminal(self) -> bool:
        return not _TRANSITIONS[self]

    @property
    def is_unread(self) -> bool:
        """Whether a record in this status counts toward the unread badge."""
        return self in (DeliveryStatus.SENT, DeliveryStatus.DELIVERED)


_TRANSITIONS: dict[DeliveryStatus, frozenset[DeliveryStatus]] = {
    DeliveryStatus.PENDING: frozenset({DeliveryStatus.SENT, DeliveryStatus.FAILED}),
    DeliveryStatus.SENT: frozenset(
        {DeliveryStatus.DELIVERED, DeliveryStatus.FAILED, DeliveryStatus.READ}
    ),
    DeliveryStatus.DELIVERED: frozenset({DeliveryStatus.READ, DeliveryStatus.CLICKED}),
    DeliveryStatus.READ: frozenset({DeliveryStatus.CLICKED}),
    DeliveryStatus.FAILED: frozenset(
        {DeliveryStatus.FAILED, DeliveryStatus.PENDING, DeliveryStatus.SENT}
    ),
    DeliveryStatus.CLICKED: frozenset(),
}

# Statuses counted as unread when read_at is null and the record is not archived
UNREAD_STATUSES: tuple[DeliveryStatus, ...] = (DeliveryStatus.SENT, DeliveryStatus.DELIVERED)
