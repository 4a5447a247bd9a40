"""Explicit wiring for the notification engine.

Every collaborator is passed in or built here; nothing is looked up
implicitly at call time.

Example:
    engine = build_notification_engine(
        session_factory=get_sessionmaker(),
        cache_backend=await start_cache(),
    )
    results = await engine.dispatcher.send_notifications(notification, ["u1"], NotificationChannel.PUSH)
    await engine.aclose()
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from notification_service.core.events import EventBus
from notification_service.core.settings import NotificationSettings, get_notification_settings
from notification_service.features.notifications.cache import NotificationCache
from notification_service.features.notifications.commands import ReadStateCommandProcessor
from notification_service.features.notifications.dispatcher import DispatchOrchestrator
from notification_service.features.notifications.queries import NotificationQueryService
from notification_service.features.notifications.store import DeliveryRecordStore
from notification_service.infra.external.workflow_provider import WorkflowProviderClient
from notification_service.infra.resilience import CircuitBreakerRegistry
from notification_service.utils.retry import RetryExecutor, RetryOptions

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from notification_service.features.notifications.cache import CacheBackend
    from notification_service.infra.external.workflow_provider import WorkflowProvider


@dataclass(slots=True)
class NotificationEngine:
    """The wired services that make up the notification engine."""

    settings: NotificationSettings
    store: DeliveryRecordStore
    cache: NotificationCache
    circuit_breakers: CircuitBreakerRegistry
    retry_executor: RetryExecutor
    event_bus: EventBus
    provider: WorkflowProvider
    dispatcher: DispatchOrchestrator
    commands: ReadStateCommandProcessor
    queries: NotificationQueryService

    async def aclose(self) -> None:
        """Let pending event handlers finish and release the provider client."""
        await self.event_bus.drain()
        if isinstance(self.provider, WorkflowProviderClient):
            await self.provider.close()


def build_provider_client(settings: NotificationSettings) -> WorkflowProviderClient:
    return WorkflowProviderClient(
        base_url=settings.provider_base_url,
        api_key=settings.provider_api_key.get_secret_value(),
        timeout=settings.provider_timeout,
    )


def build_notification_engine(
    *,
    session_factory: async_sessionmaker[AsyncSession],
    cache_backend: CacheBackend,
    provider: WorkflowProvider | None = None,
    settings: NotificationSettings | None = None,
    event_bus: EventBus | None = None,
    circuit_breakers: CircuitBreakerRegistry | None = None,
) -> NotificationEngine:
    """Build every service of the engine from its collaborators."""
    settings = settings or get_notification_settings()
    event_bus = event_bus or EventBus()
    circuit_breakers = circuit_breakers or CircuitBreakerRegistry()
    provider = provider or build_provider_client(settings)

    store = DeliveryRecordStore(session_factory, max_page_size=settings.max_page_size)
    cache = NotificationCache(
        cache_backend,
        history_ttl=settings.history_cache_ttl,
        unread_ttl=settings.unread_cache_ttl,
    )
    retry_executor = RetryExecutor(RetryOptions.from_settings(settings))

    return NotificationEngine(
        settings=settings,
        store=store,
        cache=cache,
        circuit_breakers=circuit_breakers,
        retry_executor=retry_executor,
        event_bus=event_bus,
        provider=provider,
        dispatcher=DispatchOrchestrator(
            provider=provider,
            store=store,
            cache=cache,
            circuit_breakers=circuit_breakers,
            retry_executor=retry_executor,
            event_bus=event_bus,
            settings=settings,
        ),
        commands=ReadStateCommandProcessor(store=store, cache=cache, event_bus=event_bus, settings=settings),
        queries=NotificationQueryService(store=store, cache=cache, settings=settings),
    )
