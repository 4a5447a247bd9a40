"""Pytest configuration and shared fixtures.

Organization:
    - Settings Fixtures: notification settings tuned for fast tests
    - Database Fixtures: SQLite-backed engine, session factory and store
    - Cache Fixtures: in-memory cache backend and the notification cache
    - Engine Fixtures: fake workflow provider, event bus, wired services
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
import fnmatch
import os
from typing import TYPE_CHECKING, Any

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Ensure tests run without external infrastructure
os.environ.setdefault("APP_ENVIRONMENT", "test")
os.environ.setdefault("DB_DSN", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("LOG_JSON_LOGS", "false")

from notification_service.core.database import Base  # noqa: E402
from notification_service.core.events import EventBus  # noqa: E402
from notification_service.core.settings import NotificationSettings, clear_settings_cache  # noqa: E402
from notification_service.features.notifications import models  # noqa: E402, F401
from notification_service.features.notifications.cache import NotificationCache  # noqa: E402
from notification_service.features.notifications.store import DeliveryRecordStore  # noqa: E402

if TYPE_CHECKING:
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncEngine


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    """Drop cached settings so env overrides in one test never leak into another."""
    clear_settings_cache()
    yield
    clear_settings_cache()


# ============================================================================
# Settings Fixtures
# ============================================================================


@pytest.fixture
def notification_settings() -> NotificationSettings:
    """Settings with zero delays so retry paths run instantly."""
    return NotificationSettings(
        provider_base_url="https://provider.test",
        provider_api_key="test-key",
        circuit_failure_threshold=3,
        circuit_timeout=5.0,
        circuit_reset_timeout=60.0,
        retry_max_retries=2,
        retry_base_delay=0.0,
        retry_max_delay=0.0,
        batch_max_attempts=3,
        batch_retry_delays=[0.0, 0.0, 0.0],
        persistence_max_retries=1,
        max_delivery_retries=3,
    )


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
async def db_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine]:
    """Async engine on a throwaway SQLite file with all tables created.

    A file (not ``:memory:``) so every session of the factory sees the same
    database, the way concurrent per-record writes do in production.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'notifications.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
def store(session_factory: async_sessionmaker[AsyncSession]) -> DeliveryRecordStore:
    return DeliveryRecordStore(session_factory)


# ============================================================================
# Cache Fixtures
# ============================================================================


class InMemoryCacheBackend:
    """Dict-backed stand-in for ``RedisCache``.

    Set ``fail`` to make every operation raise, simulating a Redis outage.
    """

    def __init__(self) -> None:
        self.data: dict[str, Any] = {}
        self.ttls: dict[str, int | None] = {}
        self.fail = False

    def _check(self) -> None:
        if self.fail:
            msg = "cache backend unavailable"
            raise ConnectionError(msg)

    async def get(self, key: str) -> Any | None:
        self._check()
        return self.data.get(key)

    async def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        self._check()
        self.data[key] = value
        self.ttls[key] = ttl
        return True

    async def delete(self, key: str) -> bool:
        self._check()
        self.ttls.pop(key, None)
        return self.data.pop(key, None) is not None

    async def delete_pattern(self, pattern: str) -> int:
        self._check()
        matched = [key for key in self.data if fnmatch.fnmatchcase(key, pattern)]
        for key in matched:
            del self.data[key]
            self.ttls.pop(key, None)
        return len(matched)

    async def ttl(self, key: str) -> int:
        self._check()
        if key not in self.data:
            return -2
        ttl = self.ttls.get(key)
        return -1 if ttl is None else ttl


@pytest.fixture
def cache_backend() -> InMemoryCacheBackend:
    return InMemoryCacheBackend()


@pytest.fixture
def notification_cache(cache_backend: InMemoryCacheBackend) -> NotificationCache:
    return NotificationCache(cache_backend)


# ============================================================================
# Engine Fixtures
# ============================================================================


class FakeWorkflowProvider:
    """Scripted workflow provider.

    ``outcomes`` is consumed one entry per call: a string is returned as the
    delivery id, an exception instance is raised. When exhausted, every call
    returns ``default_delivery_id``.
    """

    def __init__(self, *outcomes: str | BaseException, default_delivery_id: str = "d1") -> None:
        self.outcomes = list(outcomes)
        self.default_delivery_id = default_delivery_id
        self.calls: list[tuple[str, list[str], dict[str, Any]]] = []

    async def trigger_workflow(self, workflow_id: str, recipients: list[str], payload: dict[str, Any]) -> str:
        self.calls.append((workflow_id, list(recipients), payload))
        if not self.outcomes:
            return self.default_delivery_id
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


@pytest.fixture
def provider() -> FakeWorkflowProvider:
    return FakeWorkflowProvider()


@pytest.fixture
async def event_bus() -> AsyncGenerator[EventBus]:
    bus = EventBus()
    yield bus
    await bus.drain()
