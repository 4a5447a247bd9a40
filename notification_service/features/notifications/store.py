"""Delivery record store.

Authoritative persistence for delivery records. Each operation runs in its
own unit of work taken from the session factory, so concurrent callers
(for example the per-recipient writes of one dispatch) never share a
session. The delivery state machine is enforced here: an illegal status
change raises ``InvalidStatusTransitionError`` before anything is written.

Persistence errors always propagate.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import UTC, datetime
import logging
from typing import TYPE_CHECKING, Any

from notification_service.features.notifications.enums import DeliveryStatus
from notification_service.features.notifications.exceptions import (
    InvalidStatusTransitionError,
    NotificationNotFoundException,
)
from notification_service.features.notifications.models import UserNotification
from notification_service.features.notifications.repository import (
    UserNotificationRepository,
    get_user_notification_repository,
)
from notification_service.features.notifications.schemas import (
    DeliveryRecord,
    DeliveryRecordFilter,
    NotificationDeliveryStats,
    UserStatistics,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Sequence

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from notification_service.features.notifications.schemas import (
        SortField,
        SortOrder,
    )

logger = logging.getLogger(__name__)

# Fields that a status update may carry alongside the new status
UPDATABLE_FIELDS = frozenset(
    {
        "sent_at",
        "delivered_at",
        "read_at",
        "error_message",
        "error_code",
        "retry_count",
        "delivery_id",
        "archived",
    }
)
MAX_PAGE_SIZE = 100


def _check_transition(record: UserNotification, target: DeliveryStatus) -> None:
    current = DeliveryStatus(record.status)
    if not current.can_transition_to(target):
        raise InvalidStatusTransitionError(record.id, current, target)


def _apply_extra(record: UserNotification, extra: dict[str, Any] | None) -> None:
    if not extra:
        return
    unknown = set(extra) - UPDATABLE_FIELDS
    if unknown:
        msg = f"Unsupported delivery record fields: {sorted(unknown)}"
        raise ValueError(msg)
    for key, value in extra.items():
        setattr(record, key, value)


class DeliveryRecordStore:
    """Persistence operations over delivery records.

    Example:
        store = DeliveryRecordStore(get_sessionmaker())
        record = await store.get_user_notification(record_id)
        changed = await store.update_status_by_delivery_id(
            "d1", DeliveryStatus.DELIVERED, {"delivered_at": now}
        )
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        repository: UserNotificationRepository | None = None,
        *,
        max_page_size: int = MAX_PAGE_SIZE,
    ) -> None:
        self._session_factory = session_factory
        self._repository = repository or get_user_notification_repository()
        self.max_page_size = max_page_size

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        """Session with a transaction that commits on exit and rolls back on error."""
        async with self._session_factory() as session, session.begin():
            yield session

    @asynccontextmanager
    async def _read_session(self) -> AsyncIterator[AsyncSession]:
        async with self._session_factory() as session:
            yield session

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def save_user_notification(self, record: DeliveryRecord) -> DeliveryRecord:
        """Insert ``record``, or overwrite the stored row with the same id.

        Raises:
            InvalidStatusTransitionError: The stored row cannot move to ``record.status``.
        """
        async with self._transaction() as session:
            existing = await self._repository.get(session, record.id)
            values = record.model_dump(exclude={"id", "created_at", "updated_at"})

            if existing is None:
                instance = UserNotification(id=record.id, **values)
                saved = await self._repository.create(session, instance)
            else:
                _check_transition(existing, record.status)
                for key, value in values.items():
                    setattr(existing, key, value)
                await session.flush()
                await session.refresh(existing)
                saved = existing

            result = DeliveryRecord.model_validate(saved)

        logger.debug(
            "Delivery record saved",
            extra={
                "record_id": result.id,
                "user_id": result.user_id,
                "status": result.status.value,
                "created": existing is None,
            },
        )
        return result

    async def update_user_notification_status(
        self,
        record_id: str,
        status: DeliveryStatus,
        extra: dict[str, Any] | None = None,
    ) -> DeliveryRecord:
        """Move one record to ``status`` and merge ``extra`` fields.

        Raises:
            NotificationNotFoundException: No record with ``record_id``.
            InvalidStatusTransitionError: Illegal status change.
        """
        async with self._transaction() as session:
            record = await self._repository.get(session, record_id)
            if record is None:
                raise NotificationNotFoundException(record_id)
            _check_transition(record, status)

            record.status = status.value
            _apply_extra(record, extra)
            if status is DeliveryStatus.READ and record.read_at is None:
                record.read_at = datetime.now(UTC)
            await session.flush()
            await session.refresh(record)
            return DeliveryRecord.model_validate(record)

    async def update_status_by_delivery_id(
        self,
        delivery_id: str,
        status: DeliveryStatus,
        extra: dict[str, Any] | None = None,
    ) -> list[DeliveryRecord]:
        """Move every record of a provider delivery to ``status``.

        Records that cannot legally make the change (already read, already
        delivered) are left untouched.

        Returns:
            The records that changed.
        """
        changed: list[UserNotification] = []
        skipped = 0
        async with self._transaction() as session:
            records = await self._repository.list_by_delivery_id(session, delivery_id)
            for record in records:
                if not DeliveryStatus(record.status).can_transition_to(status):
                    skipped += 1
                    continue
                record.status = status.value
                _apply_extra(record, extra)
                changed.append(record)
            if changed:
                await session.flush()
                for record in changed:
                    await session.refresh(record)
            results = [DeliveryRecord.model_validate(record) for record in changed]

        logger.info(
            "Delivery status updated",
            extra={
                "delivery_id": delivery_id,
                "status": status.value,
                "updated": len(results),
                "skipped": skipped,
            },
        )
        return results

    async def mark_as_read(self, record_id: str, read_at: datetime) -> bool:
        """Set ``read``/``read_at`` only if the record is still unread.

        Returns:
            True for exactly one of any number of concurrent callers.
        """
        async with self._transaction() as session:
            return await self._repository.mark_read_if_unread(session, record_id, read_at)

    async def mark_many_as_read(
        self,
        ids: Sequence[str],
        read_at: datetime,
        *,
        user_id: str | None = None,
    ) -> list[str]:
        """Mark the unread records among ``ids`` as read in one transaction."""
        async with self._transaction() as session:
            return await self._repository.mark_many_read(session, ids, read_at, user_id=user_id)

    async def archive_many(self, ids: Sequence[str], *, user_id: str | None = None) -> list[str]:
        """Archive the not-yet-archived records among ``ids`` in one transaction."""
        async with self._transaction() as session:
            return await self._repository.archive_many(session, ids, user_id=user_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_user_notification(self, record_id: str) -> DeliveryRecord | None:
        async with self._read_session() as session:
            record = await self._repository.get(session, record_id)
            return DeliveryRecord.model_validate(record) if record else None

    async def get_user_notifications_by_ids(self, ids: Sequence[str]) -> list[DeliveryRecord]:
        async with self._read_session() as session:
            records = await self._repository.get_many(session, ids)
            return [DeliveryRecord.model_validate(record) for record in records]

    async def get_user_notifications(
        self,
        user_id: str,
        filters: DeliveryRecordFilter | None = None,
        *,
        limit: int = 20,
        offset: int = 0,
        sort_by: SortField = "created_at",
        sort_order: SortOrder = "desc",
        include_archived: bool = True,
    ) -> list[DeliveryRecord]:
        """A page of one recipient's records, newest first by default.

        ``limit`` is clamped to ``1..max_page_size``.
        """
        limit = max(1, min(limit, self.max_page_size))
        async with self._read_session() as session:
            page = await self._repository.list_for_user(
                session,
                user_id,
                filters,
                limit=limit,
                offset=max(0, offset),
                sort_by=sort_by,
                sort_order=sort_order,
                include_archived=include_archived,
            )
            return [DeliveryRecord.model_validate(record) for record in page.items]

    async def count_user_notifications(
        self,
        user_id: str,
        filters: DeliveryRecordFilter | None = None,
        *,
        include_archived: bool = True,
    ) -> int:
        async with self._read_session() as session:
            return await self._repository.count_for_user(
                session, user_id, filters, include_archived=include_archived
            )

    async def get_user_notification_count(
        self,
        user_id: str,
        status: DeliveryStatus | None = None,
    ) -> int:
        filters = DeliveryRecordFilter(status=status) if status is not None else None
        return await self.count_user_notifications(user_id, filters)

    async def get_unread_count(self, user_id: str) -> int:
        async with self._read_session() as session:
            return await self._repository.count_unread(session, user_id)

    async def list_unread(self, user_id: str, limit: int) -> list[DeliveryRecord]:
        async with self._read_session() as session:
            records = await self._repository.list_unread(session, user_id, limit)
            return [DeliveryRecord.model_validate(record) for record in records]

    async def get_user_statistics(
        self,
        user_id: str,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> UserStatistics:
        """Totals, read/unread split and per type/priority counts for one recipient."""
        async with self._read_session() as session:
            rows = await self._repository.statistics_rows(session, user_id, start_date, end_date)

        stats = UserStatistics()
        for row in rows:
            count = int(row.count)
            stats.total += count
            if row.is_read:
                stats.read += count
            if row.is_unread:
                stats.unread += count
            stats.by_type[row.type] = stats.by_type.get(row.type, 0) + count
            stats.by_priority[row.priority] = stats.by_priority.get(row.priority, 0) + count
        return stats

    async def get_notification_delivery_stats(self, notification_id: str) -> NotificationDeliveryStats:
        async with self._read_session() as session:
            counts = await self._repository.status_counts(session, notification_id)
        return NotificationDeliveryStats(
            total=sum(counts.values()),
            **{status.value: counts.get(status.value, 0) for status in DeliveryStatus},
        )
