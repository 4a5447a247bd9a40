"""Pydantic schemas for the notifications feature."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from notification_service.features.notifications.enums import (
    DeliveryStatus,
    NotificationChannel,
    NotificationLifecycle,
    NotificationPriority,
    NotificationType,
)

SortField = Literal["created_at", "updated_at", "sent_at", "delivered_at", "read_at"]
SortOrder = Literal["asc", "desc"]


# ============================================================================
# Input aggregate
# ============================================================================


class NotificationAggregate(BaseModel):
    """Logical notification handed to the dispatcher (read-only here)."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Notification identifier")
    title: str = Field(..., min_length=1, max_length=255, description="Notification title")
    body: str = Field(default="", description="Notification body text")
    type: NotificationType = Field(..., description="Notification category")
    priority: NotificationPriority = Field(
        default=NotificationPriority.NORMAL,
        description="Priority level",
    )
    channels: list[NotificationChannel] = Field(
        default_factory=lambda: [NotificationChannel.IN_APP],
        description="Ordered delivery channels",
    )
    user_ids: list[str] = Field(default_factory=list, description="Explicit recipients")
    roles: list[str] = Field(default_factory=list, description="Recipient roles")
    data: dict[str, Any] = Field(default_factory=dict, description="Arbitrary payload data")
    status: NotificationLifecycle = Field(
        default=NotificationLifecycle.DRAFT,
        description="Lifecycle status of the notification",
    )


# ============================================================================
# Delivery records
# ============================================================================


class DeliveryRecord(BaseModel):
    """One copy of a notification for one recipient on one channel."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    notification_id: str
    title: str
    body: str = ""
    type: NotificationType
    priority: NotificationPriority = NotificationPriority.NORMAL
    channel: NotificationChannel
    data: dict[str, Any] = Field(default_factory=dict)
    status: DeliveryStatus = DeliveryStatus.PENDING
    sent_at: datetime | None = None
    delivered_at: datetime | None = None
    read_at: datetime | None = None
    error_message: str | None = None
    error_code: str | None = None
    retry_count: int = 0
    delivery_id: str | None = None
    archived: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_unread(self) -> bool:
        return self.status.is_unread and self.read_at is None and not self.archived


@dataclass(slots=True)
class DeliveryResult:
    """Outcome of dispatching to one recipient. Failures are data, not exceptions."""

    user_id: str
    success: bool
    record_id: str | None = None
    delivery_id: str | None = None
    error_message: str | None = None
    error_code: str | None = None
    retry_count: int = 0
    # Whether another batch attempt could change the outcome
    retryable: bool = False


# ============================================================================
# Queries
# ============================================================================


class DeliveryRecordFilter(BaseModel):
    """Filters applied to a recipient's delivery records."""

    model_config = ConfigDict(frozen=True)

    type: NotificationType | None = None
    channel: NotificationChannel | None = None
    status: DeliveryStatus | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None

    @model_validator(mode="after")
    def _check_range(self) -> DeliveryRecordFilter:
        if self.start_date and self.end_date and self.start_date > self.end_date:
            msg = "start_date must not be after end_date"
            raise ValueError(msg)
        return self


class HistoryQuery(DeliveryRecordFilter):
    """Paged history request; page/limit are normalized by the query service."""

    page: int = 1
    limit: int = 20
    sort_by: SortField = "created_at"
    sort_order: SortOrder = "desc"

    def cache_filters(self) -> dict[str, Any]:
        """Filter values that distinguish cached history pages."""
        return {
            "type": self.type,
            "channel": self.channel,
            "status": self.status,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "sort_by": self.sort_by,
            "sort_order": self.sort_order,
        }

    def as_filter(self) -> DeliveryRecordFilter:
        return DeliveryRecordFilter(
            type=self.type,
            channel=self.channel,
            status=self.status,
            start_date=self.start_date,
            end_date=self.end_date,
        )


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class HistoryPage(BaseModel):
    notifications: list[DeliveryRecord]
    pagination: Pagination
    cached_at: datetime | None = Field(
        default=None,
        description="When this page was written to the cache (None if built fresh)",
    )


class UnreadCount(BaseModel):
    user_id: str
    count: int = Field(ge=0)
    cached_at: datetime | None = None


class UserStatistics(BaseModel):
    total: int = 0
    unread: int = 0
    read: int = 0
    by_type: dict[str, int] = Field(default_factory=dict)
    by_priority: dict[str, int] = Field(default_factory=dict)


class NotificationDeliveryStats(BaseModel):
    """Per-status counts for one notification across all recipients."""

    total: int = 0
    pending: int = 0
    sent: int = 0
    delivered: int = 0
    failed: int = 0
    read: int = 0
    clicked: int = 0


# ============================================================================
# Commands
# ============================================================================


class MarkAsReadResult(BaseModel):
    notification_id: str
    read_at: datetime
    already_read: bool = False


class BulkUpdateResult(BaseModel):
    updated_count: int
    notification_ids: list[str] = Field(default_factory=list)
    read_at: datetime | None = Field(default=None, description="Timestamp written by read actions; None for archive")


class DeliveryWebhookPayload(BaseModel):
    """Delivery status callback from the workflow provider."""

    delivery_id: str = Field(..., min_length=1, description="Provider transaction ID")
    status: DeliveryStatus = Field(..., description="Delivery outcome reported by the provider")
    error_message: str | None = Field(default=None, description="Provider error detail")

    @field_validator("status")
    @classmethod
    def _outcome_only(cls, value: DeliveryStatus) -> DeliveryStatus:
        if value not in (DeliveryStatus.DELIVERED, DeliveryStatus.FAILED):
            msg = "status must be 'delivered' or 'failed'"
            raise ValueError(msg)
        return value
