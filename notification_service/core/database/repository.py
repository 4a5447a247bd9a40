"""Generic repository base with explicit session passing.

Repositories hold queries, never sessions: the caller owns the unit of work
and hands its ``AsyncSession`` to every call.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sqlalchemy import Select, func, select

from notification_service.infra.logging import get_lazy_logger

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sqlalchemy.ext.asyncio import AsyncSession


@dataclass(slots=True, frozen=True)
class SearchResult[T]:
    """One page of rows plus the unpaged total."""

    items: Sequence[T]
    total: int
    limit: int
    offset: int

    @property
    def has_next(self) -> bool:
        return self.offset + len(self.items) < self.total


class BaseRepository[T]:
    __slots__ = ("model", "_lazy")

    def __init__(self, model: type[T]) -> None:
        self.model = model
        self._lazy = get_lazy_logger(f"repository.{model.__name__}")

    async def get(self, session: AsyncSession, id: Any) -> T | None:  # noqa: A002
        instance = await session.get(self.model, id)
        self._lazy.debug(lambda: f"db.get: {self.model.__name__}({id}) -> {'found' if instance else 'missing'}")
        return instance

    async def create(self, session: AsyncSession, instance: T) -> T:
        """Add and flush ``instance``; server defaults are loaded back by refresh."""
        session.add(instance)
        await session.flush()
        await session.refresh(instance)
        self._lazy.debug(lambda: f"db.create: {self.model.__name__}(id={getattr(instance, 'id', None)})")
        return instance

    async def search(
        self,
        session: AsyncSession,
        statement: Select[tuple[T]],
        *,
        limit: int = 50,
        offset: int = 0,
    ) -> SearchResult[T]:
        """Run a filtered, ordered ``statement`` for one page and count the unpaged rows."""
        count_stmt = select(func.count()).select_from(statement.order_by(None).subquery())
        total = (await session.execute(count_stmt)).scalar_one()
        items = (await session.execute(statement.limit(limit).offset(offset))).scalars().all()
        self._lazy.debug(lambda: f"db.search: {self.model.__name__}[{offset}:{offset + limit}] -> {len(items)}/{total}")
        return SearchResult(items=items, total=total, limit=limit, offset=offset)
