"""Repository for delivery records (``user_notifications``)."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import Select, and_, func, select, update

from notification_service.core.database.repository import BaseRepository, SearchResult
from notification_service.features.notifications.enums import UNREAD_STATUSES, DeliveryStatus
from notification_service.features.notifications.models import UserNotification

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession
    from sqlalchemy.sql.elements import ColumnElement

    from notification_service.features.notifications.schemas import DeliveryRecordFilter

_UNREAD_STATUS_VALUES = tuple(status.value for status in UNREAD_STATUSES)


def unread_clause() -> ColumnElement[bool]:
    """Unread: sent or delivered, never read, not archived."""
    return and_(
        UserNotification.status.in_(_UNREAD_STATUS_VALUES),
        UserNotification.read_at.is_(None),
        UserNotification.archived.is_(False),
    )


class UserNotificationRepository(BaseRepository[UserNotification]):
    """Queries over delivery records.

    Every recipient-scoped method filters on ``user_id``; callers never see
    another recipient's rows through these methods.
    """

    def __init__(self) -> None:
        super().__init__(UserNotification)

    def _user_statement(
        self,
        user_id: str,
        filters: DeliveryRecordFilter | None = None,
    ) -> Select[tuple[UserNotification]]:
        stmt = select(UserNotification).where(UserNotification.user_id == user_id)
        if filters is None:
            return stmt
        if filters.type is not None:
            stmt = stmt.where(UserNotification.type == filters.type.value)
        if filters.channel is not None:
            stmt = stmt.where(UserNotification.channel == filters.channel.value)
        if filters.status is not None:
            stmt = stmt.where(UserNotification.status == filters.status.value)
        if filters.start_date is not None:
            stmt = stmt.where(UserNotification.created_at >= filters.start_date)
        if filters.end_date is not None:
            stmt = stmt.where(UserNotification.created_at <= filters.end_date)
        return stmt

    async def get_many(self, session: AsyncSession, ids: Sequence[str]) -> Sequence[UserNotification]:
        if not ids:
            return []
        result = await session.execute(select(UserNotification).where(UserNotification.id.in_(list(ids))))
        items = result.scalars().all()
        self._lazy.debug(lambda: f"db.get_many: UserNotification({len(ids)} ids) -> {len(items)} found")
        return items

    async def list_for_user(
        self,
        session: AsyncSession,
        user_id: str,
        filters: DeliveryRecordFilter | None = None,
        *,
        limit: int = 20,
        offset: int = 0,
        sort_by: str = "created_at",
        sort_order: str = "desc",
        include_archived: bool = True,
    ) -> SearchResult[UserNotification]:
        """Page through a recipient's records with a total count.

        Records missing the sort timestamp fall back to ``created_at``; the
        primary key breaks ties so pages are stable.
        """
        stmt = self._user_statement(user_id, filters)
        if not include_archived:
            stmt = stmt.where(UserNotification.archived.is_(False))

        sort_column = getattr(UserNotification, sort_by)
        sort_key = func.coalesce(sort_column, UserNotification.created_at) if sort_by != "created_at" else sort_column
        if sort_order == "asc":
            stmt = stmt.order_by(sort_key.asc(), UserNotification.id.asc())
        else:
            stmt = stmt.order_by(sort_key.desc(), UserNotification.id.desc())

        return await self.search(session, stmt, limit=limit, offset=offset)

    async def count_for_user(
        self,
        session: AsyncSession,
        user_id: str,
        filters: DeliveryRecordFilter | None = None,
        *,
        include_archived: bool = True,
    ) -> int:
        stmt = self._user_statement(user_id, filters).with_only_columns(func.count(UserNotification.id))
        if not include_archived:
            stmt = stmt.where(UserNotification.archived.is_(False))
        return int((await session.execute(stmt)).scalar_one())

    async def count_unread(self, session: AsyncSession, user_id: str) -> int:
        stmt = select(func.count(UserNotification.id)).where(
            UserNotification.user_id == user_id,
            unread_clause(),
        )
        count = int((await session.execute(stmt)).scalar_one())
        self._lazy.debug(lambda: f"db.count_unread({user_id=}) -> {count}")
        return count

    async def list_unread(self, session: AsyncSession, user_id: str, limit: int) -> Sequence[UserNotification]:
        stmt = (
            select(UserNotification)
            .where(UserNotification.user_id == user_id, unread_clause())
            .order_by(UserNotification.created_at.asc(), UserNotification.id.asc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        return result.scalars().all()

    async def list_by_delivery_id(self, session: AsyncSession, delivery_id: str) -> Sequence[UserNotification]:
        stmt = (
            select(UserNotification)
            .where(UserNotification.delivery_id == delivery_id)
            .order_by(UserNotification.id)
        )
        result = await session.execute(stmt)
        return result.scalars().all()

    async def statistics_rows(
        self,
        session: AsyncSession,
        user_id: str,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> Sequence[Any]:
        """Counts grouped by (type, priority, is_read, is_unread) in one query."""
        is_read = UserNotification.read_at.is_not(None).label("is_read")
        is_unread = unread_clause().label("is_unread")
        stmt = (
            select(
                UserNotification.type,
                UserNotification.priority,
                is_read,
                is_unread,
                func.count(UserNotification.id).label("count"),
            )
            .where(UserNotification.user_id == user_id)
            .group_by(UserNotification.type, UserNotification.priority, is_read, is_unread)
        )
        if start_date is not None:
            stmt = stmt.where(UserNotification.created_at >= start_date)
        if end_date is not None:
            stmt = stmt.where(UserNotification.created_at <= end_date)
        result = await session.execute(stmt)
        return result.all()

    async def status_counts(self, session: AsyncSession, notification_id: str) -> dict[str, int]:
        stmt = (
            select(UserNotification.status, func.count(UserNotification.id))
            .where(UserNotification.notification_id == notification_id)
            .group_by(UserNotification.status)
        )
        result = await session.execute(stmt)
        return {status: int(count) for status, count in result.all()}

    async def mark_read_if_unread(
        self,
        session: AsyncSession,
        record_id: str,
        read_at: datetime,
    ) -> bool:
        """Conditionally set ``read``; True only for the caller that changed the row."""
        stmt = (
            update(UserNotification)
            .where(
                UserNotification.id == record_id,
                UserNotification.read_at.is_(None),
                UserNotification.status.in_(_UNREAD_STATUS_VALUES),
            )
            .values(status=DeliveryStatus.READ.value, read_at=read_at)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        changed = result.rowcount == 1
        self._lazy.debug(lambda: f"db.mark_read_if_unread({record_id=}) -> {changed}")
        return changed

    async def mark_many_read(
        self,
        session: AsyncSession,
        ids: Sequence[str],
        read_at: datetime,
        *,
        user_id: str | None = None,
    ) -> list[str]:
        """Mark the readable, unread records among ``ids``; returns the changed ids."""
        if not ids:
            return []
        candidates = select(UserNotification.id).where(
            UserNotification.id.in_(list(ids)),
            UserNotification.read_at.is_(None),
            UserNotification.status.in_(_UNREAD_STATUS_VALUES),
        )
        if user_id is not None:
            candidates = candidates.where(UserNotification.user_id == user_id)
        changed = list((await session.execute(candidates)).scalars().all())
        if not changed:
            return []

        await session.execute(
            update(UserNotification)
            .where(UserNotification.id.in_(changed), UserNotification.read_at.is_(None))
            .values(status=DeliveryStatus.READ.value, read_at=read_at)
            .execution_options(synchronize_session=False)
        )
        self._lazy.debug(lambda: f"db.mark_many_read({len(ids)} ids) -> {len(changed)} changed")
        return changed

    async def archive_many(
        self,
        session: AsyncSession,
        ids: Sequence[str],
        *,
        user_id: str | None = None,
    ) -> list[str]:
        """Archive the not-yet-archived records among ``ids``; returns the changed ids."""
        if not ids:
            return []
        candidates = select(UserNotification.id).where(
            UserNotification.id.in_(list(ids)),
            UserNotification.archived.is_(False),
        )
        if user_id is not None:
            candidates = candidates.where(UserNotification.user_id == user_id)
        changed = list((await session.execute(candidates)).scalars().all())
        if not changed:
            return []

        await session.execute(
            update(UserNotification)
            .where(UserNotification.id.in_(changed))
            .values(archived=True)
            .execution_options(synchronize_session=False)
        )
        self._lazy.debug(lambda: f"db.archive_many({len(ids)} ids) -> {len(changed)} changed")
        return changed


_repository: UserNotificationRepository | None = None


def get_user_notification_repository() -> UserNotificationRepository:
    """Return the shared repository instance."""
    global _repository
    if _repository is None:
        _repository = UserNotificationRepository()
    return _repository
