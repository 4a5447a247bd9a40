"""Immutable domain event records published on the in-process bus."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, ClassVar
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from notification_service.core.settings import get_app_settings


class DomainEvent(BaseModel):
    """Something that happened to a delivery record.

    Concrete events set ``event_type``; the bus routes on it::

        class NotificationRead(DomainEvent):
            event_type: ClassVar[str] = "notification.read"

            notification_id: str
            user_id: str

    ``correlation_id`` ties together the events produced by one dispatch or
    command; ``causation_id`` points at the event that triggered this one.
    """

    event_type: ClassVar[str] = "domain.event"
    event_version: ClassVar[int] = 1

    event_id: str = Field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    correlation_id: str | None = None
    causation_id: str | None = None
    service: str = Field(default_factory=lambda: get_app_settings().service_name)

    model_config = ConfigDict(frozen=True, extra="forbid")

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if cls.event_type == DomainEvent.event_type:
            msg = f"{cls.__name__} must define 'event_type' class variable"
            raise TypeError(msg)

    @classmethod
    def get_qualified_type(cls) -> str:
        """Event type with version, e.g. ``notification.read:v1``."""
        return f"{cls.event_type}:v{cls.event_version}"

    def with_correlation(self, correlation_id: str) -> DomainEvent:
        return self.model_copy(update={"correlation_id": correlation_id})

    def with_causation(self, causing_event: DomainEvent) -> DomainEvent:
        updates: dict[str, Any] = {"causation_id": causing_event.event_id}
        if self.correlation_id is None:
            updates["correlation_id"] = causing_event.correlation_id
        return self.model_copy(update=updates)
