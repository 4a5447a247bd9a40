"""Notification dispatch, delivery state and read model.

Main entry points:
    - DispatchOrchestrator: fan out to recipients via the workflow provider
    - DeliveryRecordStore: persistence and the delivery state machine
    - ReadStateCommandProcessor: mark-as-read, bulk read/archive
    - NotificationQueryService: cache-aside history and unread counts
    - build_notification_engine: wires all of the above
"""

from __future__ import annotations

from notification_service.features.notifications.cache import NotificationCache
from notification_service.features.notifications.commands import ReadStateCommandProcessor
from notification_service.features.notifications.dependencies import (
    NotificationEngine,
    build_notification_engine,
)
from notification_service.features.notifications.dispatcher import DispatchOrchestrator
from notification_service.features.notifications.enums import (
    DeliveryStatus,
    NotificationChannel,
    NotificationLifecycle,
    NotificationPriority,
    NotificationType,
)
from notification_service.features.notifications.queries import NotificationQueryService
from notification_service.features.notifications.schemas import (
    DeliveryRecord,
    DeliveryResult,
    HistoryQuery,
    NotificationAggregate,
)
from notification_service.features.notifications.store import DeliveryRecordStore

__all__ = [
    "DeliveryRecord",
    "DeliveryRecordStore",
    "DeliveryResult",
    "DeliveryStatus",
    "DispatchOrchestrator",
    "HistoryQuery",
    "NotificationAggregate",
    "NotificationCache",
    "NotificationChannel",
    "NotificationEngine",
    "NotificationLifecycle",
    "NotificationPriority",
    "NotificationQueryService",
    "NotificationType",
    "ReadStateCommandProcessor",
    "build_notification_engine",
]
