"""Unit tests for the retry executor, error classification and @retry."""

from __future__ import annotations

import httpx
import pytest

from notification_service.core.settings import NotificationSettings
from notification_service.infra.external.workflow_provider import ProviderError
from notification_service.infra.resilience import CircuitOpenError
from notification_service.utils.retry import (
    RetryError,
    RetryExecutor,
    RetryOptions,
    classify_error,
    create_non_retryable_error,
    create_retryable_error,
    get_status_code,
    retry,
)


def _status_error(status: int) -> httpx.HTTPStatusError:
    request = httpx.Request("POST", "https://provider.test/v1/events/trigger")
    response = httpx.Response(status, request=request)
    return httpx.HTTPStatusError("error", request=request, response=response)


class Flaky:
    """Async callable that raises the scripted errors before succeeding."""

    def __init__(self, *errors: Exception, result: str = "ok") -> None:
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


@pytest.mark.unit
class TestClassifyError:
    @pytest.mark.parametrize("status", [500, 502, 503, 408, 429])
    def test_transient_statuses(self, status: int) -> None:
        assert classify_error(_status_error(status)).is_retryable

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 409, 422])
    def test_client_errors_are_permanent(self, status: int) -> None:
        assert not classify_error(_status_error(status)).is_retryable

    def test_network_errors(self) -> None:
        assert classify_error(ConnectionResetError()).is_retryable
        assert classify_error(TimeoutError()).is_retryable
        assert classify_error(httpx.ConnectError("refused")).is_retryable

    def test_network_error_codes(self) -> None:
        error = OSError("reset")
        error.code = "ECONNRESET"  # type: ignore[attr-defined]
        assert classify_error(error).is_retryable

    def test_explicit_flag_wins(self) -> None:
        assert not classify_error(create_non_retryable_error("stop", ConnectionError())).is_retryable
        assert classify_error(create_retryable_error("again", ValueError())).is_retryable
        assert not classify_error(CircuitOpenError()).is_retryable

    def test_provider_error_status(self) -> None:
        assert classify_error(ProviderError("x", status_code=503)).is_retryable
        assert not classify_error(ProviderError("x", status_code=400)).is_retryable
        assert get_status_code(ProviderError("x", status_code=429)) == 429

    def test_unknown_errors_default_to_retryable(self) -> None:
        assert classify_error(ValueError("?")).is_retryable


@pytest.mark.unit
class TestRetryOptions:
    def test_delay_grows_and_is_capped(self) -> None:
        options = RetryOptions(base_delay=1.0, max_delay=5.0, backoff_multiplier=2.0)
        assert [options.calculate_delay(n) for n in range(4)] == [1.0, 2.0, 4.0, 5.0]

    def test_third_retry_delay_hits_the_cap(self) -> None:
        options = RetryOptions(base_delay=1, backoff_multiplier=2, max_delay=2)
        assert options.calculate_delay(2) == 2

    def test_merge_skips_none(self) -> None:
        merged = RetryOptions().merge(max_retries=5, base_delay=None)
        assert merged.max_retries == 5
        assert merged.base_delay == 1.0

    def test_negative_retries_rejected(self) -> None:
        with pytest.raises(ValueError, match="max_retries"):
            RetryOptions(max_retries=-1)

    def test_from_settings(self) -> None:
        settings = NotificationSettings(retry_max_retries=4, retry_base_delay=0.5)
        options = RetryOptions.from_settings(settings)
        assert options.max_retries == 4
        assert options.base_delay == 0.5


@pytest.mark.unit
class TestRetryExecutor:
    @pytest.fixture
    def executor(self) -> RetryExecutor:
        return RetryExecutor(RetryOptions(max_retries=2, base_delay=0.0, max_delay=0.0))

    @pytest.mark.asyncio
    async def test_success_needs_one_call(self, executor: RetryExecutor) -> None:
        operation = Flaky()
        assert await executor.execute_with_retry(operation) == "ok"
        assert operation.calls == 1

    @pytest.mark.asyncio
    async def test_recovers_from_transient_errors(self, executor: RetryExecutor) -> None:
        operation = Flaky(_status_error(503), ConnectionError())
        assert await executor.execute_with_retry(operation, operation_name="trigger") == "ok"
        assert operation.calls == 3

    @pytest.mark.asyncio
    async def test_reraises_original_error_when_exhausted(self, executor: RetryExecutor) -> None:
        last = ProviderError("down", status_code=500)
        operation = Flaky(ProviderError("down", status_code=500), ProviderError("down", status_code=500), last)

        with pytest.raises(ProviderError) as exc_info:
            await executor.execute_with_retry(operation)

        assert exc_info.value is last
        assert operation.calls == 3

    @pytest.mark.asyncio
    async def test_three_retries_make_four_calls(self) -> None:
        errors = [ConnectionError(f"reset {n}") for n in range(4)]
        operation = Flaky(*errors)
        executor = RetryExecutor(RetryOptions(max_retries=3, base_delay=0.0, max_delay=0.0))

        with pytest.raises(ConnectionError) as exc_info:
            await executor.execute_with_retry(operation)

        assert operation.calls == 4
        assert exc_info.value is errors[-1]
        assert not isinstance(exc_info.value, RetryError)

    @pytest.mark.asyncio
    async def test_permanent_error_stops_immediately(self, executor: RetryExecutor) -> None:
        operation = Flaky(ProviderError("bad", status_code=400))

        with pytest.raises(ProviderError):
            await executor.execute_with_retry(operation)

        assert operation.calls == 1

    @pytest.mark.asyncio
    async def test_per_call_options_override_defaults(self, executor: RetryExecutor) -> None:
        operation = Flaky(ConnectionError(), ConnectionError())

        with pytest.raises(ConnectionError):
            await executor.execute_with_retry(operation, RetryOptions(max_retries=0))

        assert operation.calls == 1


@pytest.mark.unit
class TestRetryDecorator:
    @pytest.mark.asyncio
    async def test_retries_selected_exceptions(self) -> None:
        operation = Flaky(ConnectionError())

        @retry(max_attempts=3, initial_delay=0.0, jitter=False, exceptions=(ConnectionError,))
        async def call() -> str:
            return await operation()

        assert await call() == "ok"
        assert operation.calls == 2

    @pytest.mark.asyncio
    async def test_wraps_last_error_when_exhausted(self) -> None:
        @retry(max_attempts=2, initial_delay=0.0, jitter=False, exceptions=(ConnectionError,))
        async def call() -> None:
            msg = "nope"
            raise ConnectionError(msg)

        with pytest.raises(RetryError) as exc_info:
            await call()

        assert exc_info.value.attempts == 2
        assert isinstance(exc_info.value.last_exception, ConnectionError)

    @pytest.mark.asyncio
    async def test_other_exceptions_propagate(self) -> None:
        @retry(max_attempts=3, initial_delay=0.0, exceptions=(ConnectionError,))
        async def call() -> None:
            msg = "bad"
            raise ValueError(msg)

        with pytest.raises(ValueError, match="bad"):
            await call()
