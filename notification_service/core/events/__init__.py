"""Domain events and the in-process event bus."""

from __future__ import annotations

from notification_service.core.events.base import DomainEvent
from notification_service.core.events.bus import EventBus

__all__ = ["DomainEvent", "EventBus"]
