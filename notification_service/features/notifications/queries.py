"""Cache-aside read queries for a recipient's notifications."""

from __future__ import annotations

from datetime import datetime
import logging
import math
from typing import TYPE_CHECKING

from pydantic import ValidationError

from notification_service.core.settings import NotificationSettings, get_notification_settings
from notification_service.features.notifications.exceptions import (
    NotificationAccessDeniedException,
    NotificationNotFoundException,
)
from notification_service.features.notifications.schemas import (
    DeliveryRecord,
    HistoryPage,
    HistoryQuery,
    Pagination,
    UnreadCount,
    UserStatistics,
)

if TYPE_CHECKING:
    from notification_service.features.notifications.cache import NotificationCache
    from notification_service.features.notifications.store import DeliveryRecordStore

logger = logging.getLogger(__name__)


class NotificationQueryService:
    """History, unread count, single notification and statistics reads.

    History pages and unread counts are served from the cache when present
    and written back right after a miss is answered from the store.
    Archived records are excluded from history pages.
    """

    def __init__(
        self,
        *,
        store: DeliveryRecordStore,
        cache: NotificationCache,
        settings: NotificationSettings | None = None,
    ) -> None:
        self.store = store
        self.cache = cache
        self.settings = settings or get_notification_settings()

    def normalize(self, query: HistoryQuery) -> HistoryQuery:
        """Clamp page to >= 1 and limit to ``1..max_page_size``."""
        page = max(1, query.page)
        limit = min(self.settings.max_page_size, max(1, query.limit))
        if page == query.page and limit == query.limit:
            return query
        return query.model_copy(update={"page": page, "limit": limit})

    async def get_notification_history(self, user_id: str, query: HistoryQuery | None = None) -> HistoryPage:
        query = self.normalize(query or HistoryQuery(limit=self.settings.default_page_size))
        cache_filters = query.cache_filters()

        cached = await self.cache.get_cached_history(user_id, query.page, query.limit, cache_filters)
        if cached is not None:
            try:
                return HistoryPage.model_validate(cached)
            except ValidationError:
                logger.warning("Discarding malformed cached history page", extra={"user_id": user_id})

        filters = query.as_filter()
        offset = (query.page - 1) * query.limit
        records = await self.store.get_user_notifications(
            user_id,
            filters,
            limit=query.limit,
            offset=offset,
            sort_by=query.sort_by,
            sort_order=query.sort_order,
            include_archived=False,
        )
        total = await self.store.count_user_notifications(user_id, filters, include_archived=False)
        total_pages = math.ceil(total / query.limit) if total else 0

        page = HistoryPage(
            notifications=records,
            pagination=Pagination(
                page=query.page,
                limit=query.limit,
                total=total,
                total_pages=total_pages,
                has_next=query.page < total_pages,
                has_prev=query.page > 1,
            ),
        )
        await self.cache.cache_history(
            user_id,
            query.page,
            query.limit,
            cache_filters,
            page.model_dump(mode="json", exclude={"cached_at"}),
        )
        return page

    async def get_unread_count(self, user_id: str) -> UnreadCount:
        cached = await self.cache.get_cached_unread_count(user_id)
        if cached is not None:
            try:
                return UnreadCount.model_validate(
                    {"user_id": user_id, "count": cached["count"], "cached_at": cached.get("last_updated")}
                )
            except ValidationError:
                logger.warning("Discarding malformed cached unread count", extra={"user_id": user_id})

        count = await self.store.get_unread_count(user_id)
        await self.cache.cache_unread_count(user_id, count)
        return UnreadCount(user_id=user_id, count=count)

    async def get_notification(self, notification_id: str, user_id: str) -> DeliveryRecord:
        """One delivery record, only for its owner.

        Raises:
            NotificationNotFoundException: No such record.
            NotificationAccessDeniedException: ``user_id`` does not own it.
        """
        record = await self.store.get_user_notification(notification_id)
        if record is None:
            raise NotificationNotFoundException(notification_id)
        if record.user_id != user_id:
            raise NotificationAccessDeniedException(notification_id, user_id)
        return record

    async def get_user_statistics(
        self,
        user_id: str,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> UserStatistics:
        return await self.store.get_user_statistics(user_id, start_date, end_date)
