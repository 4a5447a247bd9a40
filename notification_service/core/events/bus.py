"""In-process publish/subscribe for domain events.

Handlers run as detached asyncio tasks: the publisher never waits for them
and never sees their errors, which are logged here instead.

Example:
    bus = EventBus()
    bus.subscribe(NotificationRead, update_badge_counter)
    bus.publish(NotificationRead(notification_id="n1", user_id="u1", read_at=now))
    await bus.drain()  # shutdown / tests
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from notification_service.core.events.base import DomainEvent

    EventHandler = Callable[[DomainEvent], Awaitable[None]]

logger = logging.getLogger(__name__)


class EventBus:
    """Routes published events to the handlers subscribed to their type."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)
        self._tasks: set[asyncio.Task[None]] = set()

    def subscribe(self, event_cls: type[DomainEvent], handler: EventHandler) -> None:
        """Register ``handler`` for every event of ``event_cls.event_type``."""
        self._handlers[event_cls.event_type].append(handler)
        logger.debug(
            "Event handler subscribed",
            extra={"event_type": event_cls.event_type, "handler": getattr(handler, "__name__", repr(handler))},
        )

    def unsubscribe(self, event_cls: type[DomainEvent], handler: EventHandler) -> None:
        handlers = self._handlers.get(event_cls.event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, event: DomainEvent) -> int:
        """Schedule every subscribed handler for ``event``.

        Returns:
            Number of handlers scheduled.
        """
        handlers = list(self._handlers.get(event.event_type, ()))
        for handler in handlers:
            task = asyncio.create_task(self._run(handler, event))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        logger.debug(
            "Event published",
            extra={"event_type": event.event_type, "event_id": event.event_id, "handlers": len(handlers)},
        )
        return len(handlers)

    async def _run(self, handler: EventHandler, event: DomainEvent) -> None:
        try:
            await handler(event)
        except Exception:
            logger.exception(
                "Event handler failed",
                extra={
                    "event_type": event.event_type,
                    "event_id": event.event_id,
                    "handler": getattr(handler, "__name__", repr(handler)),
                },
            )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every in-flight handler to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
