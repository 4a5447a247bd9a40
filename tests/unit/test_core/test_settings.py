"""Tests for settings loading and validation."""

from __future__ import annotations

from pydantic import ValidationError
import pytest

from notification_service.core.settings import (
    DatabaseSettings,
    NotificationSettings,
    RedisSettings,
    get_notification_settings,
)


@pytest.mark.unit
class TestNotificationSettings:
    def test_defaults(self) -> None:
        settings = NotificationSettings()

        assert settings.circuit_failure_threshold == 3
        assert settings.batch_max_attempts == 3
        assert settings.max_page_size == 100
        assert settings.history_cache_ttl == 300
        assert settings.unread_cache_ttl == 120

    def test_environment_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("NOTIFICATION_CIRCUIT_FAILURE_THRESHOLD", "7")
        monkeypatch.setenv("NOTIFICATION_BATCH_RETRY_DELAYS", "[0.5, 2]")

        settings = get_notification_settings()

        assert settings.circuit_failure_threshold == 7
        assert settings.batch_retry_delays == [0.5, 2.0]

    def test_loader_is_cached(self) -> None:
        assert get_notification_settings() is get_notification_settings()

    def test_batch_delay_reuses_last_value(self) -> None:
        settings = NotificationSettings(batch_retry_delays=[1.0, 5.0])

        assert settings.batch_delay(0) == 1.0
        assert settings.batch_delay(1) == 5.0
        assert settings.batch_delay(4) == 5.0
        assert NotificationSettings(batch_retry_delays=[]).batch_delay(0) == 0.0

    def test_rejects_invalid_values(self) -> None:
        with pytest.raises(ValidationError):
            NotificationSettings(batch_retry_delays=[-1.0])
        with pytest.raises(ValidationError):
            NotificationSettings(max_page_size=500)

    def test_api_key_is_secret(self) -> None:
        settings = NotificationSettings(provider_api_key="top-secret")

        assert "top-secret" not in repr(settings)
        assert settings.provider_api_key.get_secret_value() == "top-secret"


@pytest.mark.unit
class TestDatabaseSettings:
    def test_dsn_wins(self) -> None:
        settings = DatabaseSettings(dsn="sqlite+aiosqlite:///./test.db")

        assert settings.is_sqlite
        assert settings.engine_kwargs() == {"echo": settings.echo}

    def test_component_url(self) -> None:
        settings = DatabaseSettings(dsn=None, host="db", port=5433, user="svc", password="p@ss", name="notif")

        assert settings.get_sqlalchemy_url() == "postgresql+psycopg://svc:p%40ss@db:5433/notif"
        assert "pool_size" in settings.engine_kwargs()


@pytest.mark.unit
class TestRedisSettings:
    def test_components_come_from_url(self) -> None:
        settings = RedisSettings(url="redis://:secret@cache:6380/2")

        assert (settings.host, settings.port, settings.db) == ("cache", 6380, 2)

    def test_rejects_unknown_scheme(self) -> None:
        with pytest.raises(ValidationError):
            RedisSettings(url="http://cache:6379/0")
