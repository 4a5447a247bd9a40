"""Tests for domain events and the in-process event bus."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import ClassVar

from pydantic import ValidationError
import pytest

from notification_service.core.events import DomainEvent, EventBus
from notification_service.features.notifications.events import NotificationRead, NotificationSent


def _read_event() -> NotificationRead:
    return NotificationRead(notification_id="n1", user_id="u1", read_at=datetime.now(UTC))


@pytest.mark.unit
class TestDomainEvent:
    def test_defaults(self) -> None:
        event = _read_event()

        assert event.event_type == "notification.read"
        assert event.event_id
        assert event.timestamp.tzinfo is not None
        assert event.service == "notification-service"
        assert NotificationRead.get_qualified_type() == "notification.read:v1"

    def test_events_are_immutable(self) -> None:
        event = _read_event()
        with pytest.raises(ValidationError):
            event.user_id = "u2"  # type: ignore[misc]

    def test_unknown_fields_rejected(self) -> None:
        with pytest.raises(ValidationError):
            NotificationRead(notification_id="n1", user_id="u1", read_at=datetime.now(UTC), extra_field=1)

    def test_subclass_must_define_event_type(self) -> None:
        with pytest.raises(TypeError, match="event_type"):

            class Unnamed(DomainEvent):
                value: int = 0

    def test_causation_chain(self) -> None:
        cause = _read_event().with_correlation("corr-1")
        effect = NotificationSent(
            notification_id="n1", delivery_id="d1", channel="push", user_ids=["u1"]
        ).with_causation(cause)

        assert effect.causation_id == cause.event_id
        assert effect.correlation_id == "corr-1"


class CounterIncremented(DomainEvent):
    event_type: ClassVar[str] = "test.counter_incremented"

    amount: int = 1


@pytest.mark.unit
class TestEventBus:
    @pytest.mark.asyncio
    async def test_publish_runs_subscribed_handlers(self) -> None:
        bus = EventBus()
        seen: list[int] = []

        async def handler(event: DomainEvent) -> None:
            seen.append(event.amount)  # type: ignore[attr-defined]

        bus.subscribe(CounterIncremented, handler)

        assert bus.publish(CounterIncremented(amount=2)) == 1
        await bus.drain()

        assert seen == [2]
        assert bus.pending == 0

    @pytest.mark.asyncio
    async def test_publish_does_not_wait_for_handlers(self) -> None:
        bus = EventBus()
        release = asyncio.Event()

        async def slow(event: DomainEvent) -> None:
            await release.wait()

        bus.subscribe(CounterIncremented, slow)
        bus.publish(CounterIncremented())

        assert bus.pending == 1
        release.set()
        await bus.drain()
        assert bus.pending == 0

    @pytest.mark.asyncio
    async def test_handler_errors_are_isolated(self, caplog: pytest.LogCaptureFixture) -> None:
        bus = EventBus()
        seen: list[str] = []

        async def broken(event: DomainEvent) -> None:
            msg = "handler bug"
            raise RuntimeError(msg)

        async def healthy(event: DomainEvent) -> None:
            seen.append(event.event_id)

        bus.subscribe(CounterIncremented, broken)
        bus.subscribe(CounterIncremented, healthy)

        bus.publish(CounterIncremented())
        await bus.drain()

        assert len(seen) == 1
        assert "Event handler failed" in caplog.text

    @pytest.mark.asyncio
    async def test_unsubscribe(self) -> None:
        bus = EventBus()

        async def handler(event: DomainEvent) -> None:
            return None

        bus.subscribe(CounterIncremented, handler)
        bus.unsubscribe(CounterIncremented, handler)

        assert bus.publish(CounterIncremented()) == 0
