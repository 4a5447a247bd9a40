"""Read-state commands issued by a recipient against their own delivery records.

All commands are idempotent: repeating one leaves the same end state and
reports nothing changed. Caches of the recipient are invalidated only when
something actually changed.
"""

from __future__ import annotations

from datetime import UTC, datetime
import logging
from typing import TYPE_CHECKING

from notification_service.core.settings import NotificationSettings, get_notification_settings
from notification_service.features.notifications.enums import DeliveryStatus
from notification_service.features.notifications.events import (
    NotificationRead,
    NotificationsBulkUpdated,
)
from notification_service.features.notifications.exceptions import (
    InvalidStatusTransitionError,
    NotificationAccessDeniedException,
    NotificationNotFoundException,
)
from notification_service.features.notifications.metrics import notification_read_state_total
from notification_service.features.notifications.schemas import BulkUpdateResult, MarkAsReadResult
from notification_service.infra.logging import log_context

if TYPE_CHECKING:
    from collections.abc import Sequence

    from notification_service.core.events import DomainEvent, EventBus
    from notification_service.features.notifications.cache import NotificationCache
    from notification_service.features.notifications.schemas import DeliveryRecord
    from notification_service.features.notifications.store import DeliveryRecordStore

logger = logging.getLogger(__name__)


class ReadStateCommandProcessor:
    """Mark-as-read, mark-all, bulk read and bulk archive for one recipient."""

    def __init__(
        self,
        *,
        store: DeliveryRecordStore,
        cache: NotificationCache,
        event_bus: EventBus | None = None,
        settings: NotificationSettings | None = None,
    ) -> None:
        self.store = store
        self.cache = cache
        self.event_bus = event_bus
        self.settings = settings or get_notification_settings()

    async def mark_as_read(self, notification_id: str, user_id: str) -> MarkAsReadResult:
        """Mark one record as read.

        Raises:
            NotificationNotFoundException: No such record.
            NotificationAccessDeniedException: ``user_id`` does not own it.
            InvalidStatusTransitionError: The record was never delivered (pending/failed).
        """
        with log_context(user_id=user_id, notification_id=notification_id):
            record = await self._get_owned(notification_id, user_id)

            if record.read_at is not None:
                logger.debug("Notification already read")
                return MarkAsReadResult(notification_id=record.id, read_at=record.read_at, already_read=True)
            if not record.status.can_transition_to(DeliveryStatus.READ):
                raise InvalidStatusTransitionError(record.id, record.status, DeliveryStatus.READ)

            read_at = datetime.now(UTC)
            if not await self.store.mark_as_read(record.id, read_at):
                # A concurrent caller won; report its timestamp
                current = await self.store.get_user_notification(record.id)
                if current is None or current.read_at is None:
                    raise NotificationNotFoundException(notification_id)
                return MarkAsReadResult(notification_id=current.id, read_at=current.read_at, already_read=True)

            await self.cache.invalidate_all(user_id)
            notification_read_state_total.labels(action="read").inc()
            self._publish(NotificationRead(notification_id=record.id, user_id=user_id, read_at=read_at))
            logger.info("Notification marked as read")
            return MarkAsReadResult(notification_id=record.id, read_at=read_at)

    async def mark_all_as_read(self, user_id: str) -> BulkUpdateResult:
        """Mark up to ``mark_all_batch_size`` unread records of ``user_id`` as read.

        ``read_at`` on the result is the timestamp written, also set when
        nothing was unread.
        """
        read_at = datetime.now(UTC)
        with log_context(user_id=user_id):
            unread = await self.store.list_unread(user_id, self.settings.mark_all_batch_size)
            if not unread:
                return BulkUpdateResult(updated_count=0, read_at=read_at)

            changed = await self.store.mark_many_as_read(
                [record.id for record in unread],
                read_at,
                user_id=user_id,
            )
            return await self._finish_bulk(user_id, changed, action="read_all", read_at=read_at)

    async def bulk_mark_as_read(self, user_id: str, notification_ids: Sequence[str]) -> BulkUpdateResult:
        """Mark the given records as read.

        Unknown ids are ignored. Every found id must belong to ``user_id``;
        the first foreign id aborts the whole batch before anything is written.

        Raises:
            NotificationAccessDeniedException: A found record belongs to someone else.
        """
        with log_context(user_id=user_id):
            owned = await self._validate_ownership(user_id, notification_ids)
            read_at = datetime.now(UTC)
            if not owned:
                return BulkUpdateResult(updated_count=0, read_at=read_at)
            changed = await self.store.mark_many_as_read(
                [record.id for record in owned],
                read_at,
                user_id=user_id,
            )
            return await self._finish_bulk(user_id, changed, action="bulk_read", read_at=read_at)

    async def bulk_archive(self, user_id: str, notification_ids: Sequence[str]) -> BulkUpdateResult:
        """Archive the given records; same ownership rules as :meth:`bulk_mark_as_read`."""
        with log_context(user_id=user_id):
            owned = await self._validate_ownership(user_id, notification_ids)
            if not owned:
                return BulkUpdateResult(updated_count=0)
            changed = await self.store.archive_many([record.id for record in owned], user_id=user_id)
            return await self._finish_bulk(user_id, changed, action="bulk_archive")

    async def _get_owned(self, notification_id: str, user_id: str) -> DeliveryRecord:
        record = await self.store.get_user_notification(notification_id)
        if record is None:
            raise NotificationNotFoundException(notification_id)
        if record.user_id != user_id:
            logger.warning("Access denied to notification", extra={"owner_id": record.user_id})
            raise NotificationAccessDeniedException(notification_id, user_id)
        return record

    async def _validate_ownership(self, user_id: str, notification_ids: Sequence[str]) -> list[DeliveryRecord]:
        ids = list(dict.fromkeys(notification_ids))
        records = await self.store.get_user_notifications_by_ids(ids)
        by_id = {record.id: record for record in records}

        missing = [notification_id for notification_id in ids if notification_id not in by_id]
        if missing:
            logger.info("Ignoring unknown notification ids", extra={"missing": missing})

        owned: list[DeliveryRecord] = []
        for notification_id in ids:
            record = by_id.get(notification_id)
            if record is None:
                continue
            if record.user_id != user_id:
                logger.warning(
                    "Bulk command aborted: notification owned by another user",
                    extra={"notification_id": notification_id},
                )
                raise NotificationAccessDeniedException(notification_id, user_id)
            owned.append(record)
        return owned

    async def _finish_bulk(
        self, user_id: str, changed: list[str], *, action: str, read_at: datetime | None = None
    ) -> BulkUpdateResult:
        if changed:
            await self.cache.invalidate_all(user_id)
            notification_read_state_total.labels(action=action).inc(len(changed))
            self._publish(
                NotificationsBulkUpdated(
                    user_id=user_id,
                    action="archive" if action == "bulk_archive" else "read",
                    notification_ids=changed,
                )
            )
        logger.info(f"{action} updated {len(changed)} notification(s)", extra={"action": action})
        return BulkUpdateResult(updated_count=len(changed), notification_ids=changed, read_at=read_at)

    def _publish(self, event: DomainEvent) -> None:
        if self.event_bus is not None:
            self.event_bus.publish(event)
