"""Tests for dispatch orchestration against a scripted workflow provider."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import pytest

from notification_service.core.exceptions import CircuitBreakerOpenException
from notification_service.features.notifications.dispatcher import DispatchOrchestrator, workflow_id_for
from notification_service.features.notifications.enums import DeliveryStatus, NotificationChannel
from notification_service.features.notifications.events import (
    DeliveryStatusUpdated,
    NotificationFailed,
    NotificationSent,
)
from notification_service.features.notifications.exceptions import (
    DeliveryPersistenceError,
    InvalidStatusTransitionError,
    RetryLimitExceededError,
)
from notification_service.features.notifications.schemas import DeliveryWebhookPayload
from notification_service.infra.external.workflow_provider import ProviderError
from notification_service.infra.resilience import CircuitBreakerRegistry
from notification_service.utils.retry import RetryExecutor, RetryOptions
from tests.conftest import FakeWorkflowProvider
from tests.features.notifications.factories import make_notification, make_record

if TYPE_CHECKING:
    from notification_service.core.events import DomainEvent, EventBus
    from notification_service.core.settings import NotificationSettings
    from notification_service.features.notifications.cache import NotificationCache
    from notification_service.features.notifications.schemas import DeliveryRecord
    from notification_service.features.notifications.store import DeliveryRecordStore
    from tests.conftest import InMemoryCacheBackend


@pytest.fixture
def events(event_bus: EventBus) -> list[DomainEvent]:
    received: list[DomainEvent] = []

    async def _collect(event: DomainEvent) -> None:
        received.append(event)

    for event_cls in (NotificationSent, NotificationFailed, DeliveryStatusUpdated):
        event_bus.subscribe(event_cls, _collect)
    return received


def build_orchestrator(
    provider: FakeWorkflowProvider,
    store: DeliveryRecordStore,
    cache: NotificationCache,
    settings: NotificationSettings,
    event_bus: EventBus | None = None,
) -> DispatchOrchestrator:
    return DispatchOrchestrator(
        provider=provider,
        store=store,
        cache=cache,
        circuit_breakers=CircuitBreakerRegistry(),
        retry_executor=RetryExecutor(RetryOptions.from_settings(settings)),
        event_bus=event_bus,
        settings=settings,
    )


@pytest.fixture
def orchestrator(
    provider: FakeWorkflowProvider,
    store: DeliveryRecordStore,
    notification_cache: NotificationCache,
    notification_settings: NotificationSettings,
    event_bus: EventBus,
) -> DispatchOrchestrator:
    return build_orchestrator(provider, store, notification_cache, notification_settings, event_bus)


@pytest.mark.asyncio
async def test_successful_dispatch_creates_sent_records(
    orchestrator: DispatchOrchestrator,
    provider: FakeWorkflowProvider,
    store: DeliveryRecordStore,
    event_bus: EventBus,
    events: list[DomainEvent],
) -> None:
    notification = make_notification()

    results = await orchestrator.send_notifications(notification, ["u1", "u2", "u1"], NotificationChannel.PUSH)

    assert [result.user_id for result in results] == ["u1", "u2"]
    assert all(result.success and result.delivery_id == "d1" for result in results)

    workflow_id, recipients, payload = provider.calls[0]
    assert workflow_id == workflow_id_for(notification, NotificationChannel.PUSH) == "payment-push"
    assert recipients == ["u1", "u2"]
    assert payload["notification_id"] == "n1"
    assert payload["priority"] == "high"

    records = [await store.get_user_notification(result.record_id) for result in results]
    assert all(record is not None and record.status is DeliveryStatus.SENT for record in records)
    assert all(record.sent_at is not None and record.delivery_id == "d1" for record in records)

    await event_bus.drain()
    assert [type(event) for event in events] == [NotificationSent]


@pytest.mark.asyncio
async def test_delivery_status_update_applies_to_whole_batch(
    orchestrator: DispatchOrchestrator,
    store: DeliveryRecordStore,
    event_bus: EventBus,
    events: list[DomainEvent],
) -> None:
    results = await orchestrator.send_notifications(make_notification(), ["u1", "u2"], NotificationChannel.PUSH)

    updated = await orchestrator.handle_delivery_webhook(
        DeliveryWebhookPayload(delivery_id="d1", status=DeliveryStatus.DELIVERED)
    )

    assert updated == 2
    records: list[DeliveryRecord] = [await store.get_user_notification(result.record_id) for result in results]
    assert {record.status for record in records} == {DeliveryStatus.DELIVERED}
    assert records[0].delivered_at is not None
    assert records[0].delivered_at == records[1].delivered_at

    await event_bus.drain()
    assert isinstance(events[-1], DeliveryStatusUpdated)
    assert events[-1].updated_count == 2


@pytest.mark.asyncio
async def test_delivery_failure_records_error_message(
    orchestrator: DispatchOrchestrator, store: DeliveryRecordStore
) -> None:
    results = await orchestrator.send_notifications(make_notification(), ["u1"], NotificationChannel.SMS)

    assert await orchestrator.update_delivery_status("d1", DeliveryStatus.FAILED, "carrier rejected") == 1

    record = await store.get_user_notification(results[0].record_id)
    assert record is not None
    assert record.status is DeliveryStatus.FAILED
    assert record.error_message == "carrier rejected"


@pytest.mark.asyncio
async def test_delivery_status_rejects_other_targets(orchestrator: DispatchOrchestrator) -> None:
    with pytest.raises(ValueError, match="delivered"):
        await orchestrator.update_delivery_status("d1", DeliveryStatus.READ)


@pytest.mark.asyncio
async def test_unknown_delivery_id_updates_nothing(orchestrator: DispatchOrchestrator) -> None:
    assert await orchestrator.update_delivery_status("unknown", DeliveryStatus.DELIVERED) == 0


@pytest.mark.asyncio
async def test_provider_failure_is_returned_as_failed_records(
    store: DeliveryRecordStore,
    notification_cache: NotificationCache,
    notification_settings: NotificationSettings,
    event_bus: EventBus,
    events: list[DomainEvent],
) -> None:
    provider = FakeWorkflowProvider(*(ProviderError("boom", status_code=500) for _ in range(3)))
    orchestrator = build_orchestrator(provider, store, notification_cache, notification_settings, event_bus)

    results = await orchestrator.send_notifications(make_notification(), ["u1", "u2", "u3"], NotificationChannel.PUSH)

    # initial call plus retry_max_retries
    assert len(provider.calls) == 3
    assert len(results) == 3
    for result in results:
        assert not result.success
        assert result.error_code == "HTTP_500"
        assert result.retry_count == 0
        assert result.retryable
        record = await store.get_user_notification(result.record_id)
        assert record is not None
        assert record.status is DeliveryStatus.FAILED
        assert record.error_code == "HTTP_500"

    await event_bus.drain()
    assert [type(event) for event in events] == [NotificationFailed]


@pytest.mark.asyncio
async def test_client_error_is_not_retried(
    store: DeliveryRecordStore,
    notification_cache: NotificationCache,
    notification_settings: NotificationSettings,
) -> None:
    provider = FakeWorkflowProvider(ProviderError("bad payload", status_code=400, code="INVALID_PAYLOAD"))
    orchestrator = build_orchestrator(provider, store, notification_cache, notification_settings)

    results = await orchestrator.send_notification_with_retry(make_notification(), ["u1"], NotificationChannel.EMAIL)

    assert len(provider.calls) == 1
    assert results[0].error_code == "INVALID_PAYLOAD"
    assert not results[0].retryable


class SlowWorkflowProvider(FakeWorkflowProvider):
    """Waits ``delay`` seconds before every scripted outcome."""

    def __init__(self, delay: float, *outcomes: str | BaseException) -> None:
        super().__init__(*outcomes)
        self.delay = delay
        self.attempts = 0

    async def trigger_workflow(self, workflow_id: str, recipients: list[str], payload: dict[str, Any]) -> str:
        self.attempts += 1
        await asyncio.sleep(self.delay)
        return await super().trigger_workflow(workflow_id, recipients, payload)


@pytest.mark.asyncio
async def test_timeout_bounds_each_call_not_the_retry_loop(
    store: DeliveryRecordStore,
    notification_cache: NotificationCache,
    notification_settings: NotificationSettings,
) -> None:
    settings = notification_settings.model_copy(update={"circuit_timeout": 0.2, "retry_max_retries": 3})
    provider = SlowWorkflowProvider(0.1, *(ProviderError("boom", status_code=500) for _ in range(4)))
    orchestrator = build_orchestrator(provider, store, notification_cache, settings)

    results = await orchestrator.send_notifications(make_notification(), ["u1"], NotificationChannel.PUSH)

    # four slow calls together exceed the timeout; each one alone does not
    assert len(provider.calls) == 4
    assert results[0].error_code == "HTTP_500"


@pytest.mark.asyncio
async def test_hanging_provider_call_times_out_and_is_retried(
    store: DeliveryRecordStore,
    notification_cache: NotificationCache,
    notification_settings: NotificationSettings,
) -> None:
    settings = notification_settings.model_copy(update={"circuit_timeout": 0.05})
    provider = SlowWorkflowProvider(1.0)
    orchestrator = build_orchestrator(provider, store, notification_cache, settings)

    results = await orchestrator.send_notifications(make_notification(), ["u1"], NotificationChannel.PUSH)

    # initial call plus retry_max_retries, none of which finished
    assert provider.attempts == 3
    assert provider.calls == []
    assert results[0].error_code == "TIMEOUT"
    assert results[0].retryable


@pytest.mark.asyncio
async def test_open_circuit_fails_fast(
    store: DeliveryRecordStore,
    notification_cache: NotificationCache,
    notification_settings: NotificationSettings,
) -> None:
    provider = FakeWorkflowProvider(*(ProviderError("down", status_code=503) for _ in range(9)))
    orchestrator = build_orchestrator(provider, store, notification_cache, notification_settings)

    for _ in range(notification_settings.circuit_failure_threshold):
        await orchestrator.send_notifications(make_notification(), ["u1"], NotificationChannel.PUSH)
    calls_before = len(provider.calls)

    results = await orchestrator.send_notifications(make_notification(), ["u2"], NotificationChannel.PUSH)

    assert len(provider.calls) == calls_before
    assert results[0].error_code == "CIRCUIT_OPEN"
    assert not results[0].retryable
    assert orchestrator.circuit_breakers.is_circuit_open(notification_settings.circuit_key)


@pytest.mark.asyncio
async def test_batch_retry_resends_failed_recipients_only(
    store: DeliveryRecordStore,
    notification_cache: NotificationCache,
    notification_settings: NotificationSettings,
) -> None:
    provider = FakeWorkflowProvider(
        *(ProviderError("unavailable", status_code=503) for _ in range(3)),
        "d2",
    )
    orchestrator = build_orchestrator(provider, store, notification_cache, notification_settings)

    results = await orchestrator.send_notification_with_retry(
        make_notification(), ["u1", "u2"], NotificationChannel.PUSH
    )

    assert [result.user_id for result in results] == ["u1", "u2"]
    assert all(result.success and result.delivery_id == "d2" for result in results)
    assert all(result.retry_count == 1 for result in results)
    # One record per recipient: the failed record was updated in place
    assert await store.count_user_notifications("u1") == 1
    record = await store.get_user_notification(results[0].record_id)
    assert record is not None
    assert record.status is DeliveryStatus.SENT
    assert record.retry_count == 1


@pytest.mark.asyncio
async def test_batch_retry_gives_up_after_max_attempts(
    store: DeliveryRecordStore,
    notification_cache: NotificationCache,
    notification_settings: NotificationSettings,
) -> None:
    settings = notification_settings.model_copy(update={"circuit_failure_threshold": 10})
    provider = FakeWorkflowProvider(*(ProviderError("unavailable", status_code=503) for _ in range(20)))
    orchestrator = build_orchestrator(provider, store, notification_cache, settings)

    results = await orchestrator.send_notification_with_retry(make_notification(), ["u1"], NotificationChannel.PUSH)

    # batch_max_attempts x (1 + retry_max_retries)
    assert len(provider.calls) == 9
    assert not results[0].success
    assert results[0].retry_count == 2


@pytest.mark.asyncio
async def test_persistence_failure_raises_after_all_writes(
    provider: FakeWorkflowProvider,
    store: DeliveryRecordStore,
    notification_cache: NotificationCache,
    cache_backend: InMemoryCacheBackend,
    notification_settings: NotificationSettings,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    original_save = store.save_user_notification

    async def flaky_save(record: DeliveryRecord) -> DeliveryRecord:
        if record.user_id == "u2":
            msg = "disk full"
            raise RuntimeError(msg)
        return await original_save(record)

    monkeypatch.setattr(store, "save_user_notification", flaky_save)
    await notification_cache.cache_unread_count("u1", 5)
    orchestrator = build_orchestrator(provider, store, notification_cache, notification_settings)

    with pytest.raises(DeliveryPersistenceError) as exc_info:
        await orchestrator.send_notifications(make_notification(), ["u1", "u2"], NotificationChannel.PUSH)

    assert exc_info.value.failed_user_ids == ["u2"]
    assert await store.count_user_notifications("u1") == 1
    assert "notification:unread-count:u1" not in cache_backend.data


@pytest.mark.asyncio
async def test_dispatch_invalidates_recipient_caches(
    orchestrator: DispatchOrchestrator,
    notification_cache: NotificationCache,
    cache_backend: InMemoryCacheBackend,
) -> None:
    await notification_cache.cache_unread_count("u1", 0)
    await notification_cache.cache_history("u1", 1, 20, None, {"notifications": []})

    await orchestrator.send_notifications(make_notification(), ["u1"], NotificationChannel.IN_APP)

    assert not cache_backend.data


@pytest.mark.asyncio
async def test_notification_stats(orchestrator: DispatchOrchestrator) -> None:
    await orchestrator.send_notifications(make_notification(), ["u1", "u2"], NotificationChannel.PUSH)
    await orchestrator.update_delivery_status("d1", DeliveryStatus.DELIVERED)

    stats = await orchestrator.get_notification_stats("n1")

    assert stats.total == 2
    assert stats.delivered == 2
    assert stats.sent == 0


@pytest.mark.unit
class TestRetryFailedDelivery:
    @pytest.mark.asyncio
    async def test_retries_failed_record_in_place(
        self, orchestrator: DispatchOrchestrator, store: DeliveryRecordStore
    ) -> None:
        failed = await store.save_user_notification(
            make_record(status=DeliveryStatus.FAILED, sent_at=None, delivery_id=None, error_code="HTTP_500")
        )

        result = await orchestrator.retry_failed_delivery(failed.id)

        assert result.success
        assert result.record_id == failed.id
        record = await store.get_user_notification(failed.id)
        assert record is not None
        assert record.status is DeliveryStatus.SENT
        assert record.retry_count == 1
        assert record.error_code is None

    @pytest.mark.asyncio
    async def test_rejects_records_that_did_not_fail(
        self, orchestrator: DispatchOrchestrator, store: DeliveryRecordStore
    ) -> None:
        sent = await store.save_user_notification(make_record())

        with pytest.raises(InvalidStatusTransitionError):
            await orchestrator.retry_failed_delivery(sent.id)

    @pytest.mark.asyncio
    async def test_enforces_retry_limit(
        self,
        orchestrator: DispatchOrchestrator,
        store: DeliveryRecordStore,
        notification_settings: NotificationSettings,
    ) -> None:
        exhausted = await store.save_user_notification(
            make_record(
                status=DeliveryStatus.FAILED,
                sent_at=None,
                retry_count=notification_settings.max_delivery_retries,
            )
        )

        with pytest.raises(RetryLimitExceededError):
            await orchestrator.retry_failed_delivery(exhausted.id)

    @pytest.mark.asyncio
    async def test_open_circuit_consumes_no_retry(
        self,
        orchestrator: DispatchOrchestrator,
        provider: FakeWorkflowProvider,
        store: DeliveryRecordStore,
        notification_settings: NotificationSettings,
    ) -> None:
        failed = await store.save_user_notification(make_record(status=DeliveryStatus.FAILED, sent_at=None))
        breaker = orchestrator.circuit_breakers.get_breaker(notification_settings.circuit_key, failure_threshold=1)

        async def _fail() -> None:
            msg = "down"
            raise ConnectionError(msg)

        with pytest.raises(ConnectionError):
            await breaker.call(_fail)

        with pytest.raises(CircuitBreakerOpenException):
            await orchestrator.retry_failed_delivery(failed.id)
        assert provider.calls == []
        record = await store.get_user_notification(failed.id)
        assert record is not None
        assert record.retry_count == 0
