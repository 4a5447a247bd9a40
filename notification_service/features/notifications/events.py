"""Domain events for the notifications feature.

Published on the in-process ``EventBus`` after the corresponding state
change has been persisted. Handlers run detached from the publisher.
"""

from __future__ import annotations

from datetime import datetime
from typing import ClassVar

from pydantic import Field

from notification_service.core.events import DomainEvent


class NotificationSent(DomainEvent):
    """Published when the provider accepted a dispatch batch."""

    event_type: ClassVar[str] = "notification.sent"

    notification_id: str = Field(description="Source notification ID")
    delivery_id: str = Field(description="Provider transaction ID for the batch")
    channel: str = Field(description="Delivery channel")
    user_ids: list[str] = Field(description="Recipients in the batch")


class NotificationFailed(DomainEvent):
    """Published when a dispatch batch could not be handed to the provider."""

    event_type: ClassVar[str] = "notification.failed"

    notification_id: str = Field(description="Source notification ID")
    channel: str = Field(description="Delivery channel")
    user_ids: list[str] = Field(description="Recipients in the batch")
    error_code: str = Field(description="Machine-readable failure code")
    error_message: str = Field(description="Failure detail")


class NotificationRead(DomainEvent):
    event_type: ClassVar[str] = "notification.read"

    notification_id: str = Field(description="Delivery record ID")
    user_id: str = Field(description="Recipient who read it")
    read_at: datetime = Field(description="When it was read")


class NotificationsBulkUpdated(DomainEvent):
    """Published after mark-all / bulk read / bulk archive changed at least one record."""

    event_type: ClassVar[str] = "notification.bulk_updated"

    user_id: str = Field(description="Recipient whose records changed")
    action: str = Field(description="read or archive")
    notification_ids: list[str] = Field(description="Records that changed")


class DeliveryStatusUpdated(DomainEvent):
    event_type: ClassVar[str] = "notification.delivery_status_updated"

    delivery_id: str = Field(description="Provider transaction ID")
    status: str = Field(description="New delivery status")
    updated_count: int = Field(description="Records that changed")
    user_ids: list[str] = Field(default_factory=list, description="Affected recipients")
