"""SQLAlchemy models for the notifications feature."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import JSON, Boolean, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from notification_service.core.database import Base, TimestampMixin, UTCDateTime
from notification_service.features.notifications.enums import DeliveryStatus


def _new_id() -> str:
    return str(uuid4())


class UserNotification(Base, TimestampMixin):
    """Delivery record: one copy of a notification for one recipient on one channel.

    Created at dispatch time whether or not the provider call succeeded,
    then moved through the delivery state machine by provider webhooks and
    read-state commands. Never deleted; ``archived`` hides it from the inbox.

    Indexes:
        - (user_id, created_at) for inbox history
        - (user_id, status, read_at) for unread counts
        - delivery_id for provider webhooks
        - notification_id for per-notification statistics
    """

    __tablename__ = "user_notifications"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=_new_id,
        comment="Delivery record identifier",
    )
    user_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
        comment="Recipient user ID",
    )
    notification_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
        comment="Source notification ID",
    )

    # Denormalized notification content
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[str] = mapped_column(Text(), nullable=False, default="")
    type: Mapped[str] = mapped_column(String(50), nullable=False, comment="NotificationType")
    priority: Mapped[str] = mapped_column(String(20), nullable=False, default="normal")
    channel: Mapped[str] = mapped_column(String(20), nullable=False, comment="NotificationChannel")
    data: Mapped[dict[str, Any]] = mapped_column(
        JSONB().with_variant(JSON(), "sqlite"),
        nullable=False,
        default=dict,
        comment="Payload data",
    )

    # Delivery state
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=DeliveryStatus.PENDING.value,
        comment="DeliveryStatus",
    )
    sent_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    read_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    # Failure information
    error_message: Mapped[str | None] = mapped_column(Text(), nullable=True)
    error_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer(), nullable=False, default=0)

    delivery_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        index=True,
        comment="Provider transaction ID shared by a dispatch batch",
    )
    archived: Mapped[bool] = mapped_column(Boolean(), nullable=False, default=False)

    __table_args__ = (
        Index("idx_user_notifications_user_created", "user_id", "created_at"),
        Index("idx_user_notifications_user_status_read", "user_id", "status", "read_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<UserNotification(id={self.id}, user_id={self.user_id}, "
            f"notification_id={self.notification_id}, status={self.status})>"
        )
