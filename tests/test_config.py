"""Tests for settings and the dependency container."""

from pathlib import Path

import pytest

from trust_ledger.config import DatabaseType, Environment, Settings, get_settings
from trust_ledger.container import Container, get_container, reset_container
from trust_ledger.exceptions import ConfigurationError
from trust_ledger.repositories.sqlite import SQLiteDatabase
from trust_ledger.services.directory import InMemoryLeaseDirectory
from trust_ledger.services.notifications import (
    LoggingNotificationService,
    RecordingNotificationService,
)


class TestSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("TRUST_LEDGER_DATABASE_TYPE", raising=False)

        settings = Settings(_env_file=None)

        assert settings.database_type == DatabaseType.SQLITE
        assert settings.lock_timeout_seconds == 5.0
        assert settings.enable_tenant_notifications

    def test_reads_prefixed_environment(self, monkeypatch):
        monkeypatch.setenv("TRUST_LEDGER_LOCK_TIMEOUT_SECONDS", "2.5")
        monkeypatch.setenv("TRUST_LEDGER_ENVIRONMENT", "testing")

        settings = Settings(_env_file=None)

        assert settings.lock_timeout_seconds == 2.5
        assert settings.environment == Environment.TESTING

    def test_lock_timeout_must_be_positive(self):
        with pytest.raises(ValueError):
            Settings(_env_file=None, lock_timeout_seconds=0)

    def test_effective_database_url(self):
        sqlite = Settings(_env_file=None, sqlite_path=Path("data/trust.db"))
        postgres = Settings(
            _env_file=None,
            database_type=DatabaseType.POSTGRES,
            database_url="postgresql://localhost/trust",
        )

        assert sqlite.effective_database_url == "sqlite:///data/trust.db"
        assert postgres.effective_database_url == "postgresql://localhost/trust"

    def test_production_defaults_to_json_logs(self):
        settings = Settings(
            _env_file=None, environment=Environment.PRODUCTION, log_format=None
        )

        assert settings.log_format == "json"

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()


class TestContainer:
    def test_wires_sqlite(self, tmp_path):
        settings = Settings(_env_file=None, sqlite_path=tmp_path / "c.db")

        with Container(settings=settings) as container:
            assert isinstance(container.database, SQLiteDatabase)
            assert container.ledger_service is container.ledger_service
            assert isinstance(container.notification_service, LoggingNotificationService)
            assert isinstance(container.lease_directory, InMemoryLeaseDirectory)

        assert (tmp_path / "c.db").exists()

    def test_notifications_can_be_disabled(self, tmp_path):
        settings = Settings(
            _env_file=None,
            sqlite_path=tmp_path / "c.db",
            enable_tenant_notifications=False,
        )

        assert Container(settings=settings).notification_service is None

    def test_custom_collaborators(self, tmp_path):
        settings = Settings(_env_file=None, sqlite_path=tmp_path / "c.db")
        notifications = RecordingNotificationService()
        directory = InMemoryLeaseDirectory()

        container = Container(
            settings=settings,
            lease_directory=directory,
            notification_service=notifications,
        )

        assert container.notification_service is notifications
        assert container.lease_directory is directory

    def test_postgres_requires_url(self):
        settings = Settings(_env_file=None, database_type=DatabaseType.POSTGRES)

        with pytest.raises(ConfigurationError):
            Container(settings=settings).database

    def test_close_without_database_is_noop(self, tmp_path):
        settings = Settings(_env_file=None, sqlite_path=tmp_path / "never.db")

        Container(settings=settings).close()

        assert not (tmp_path / "never.db").exists()

    def test_global_container(self, monkeypatch, tmp_path):
        monkeypatch.setenv("TRUST_LEDGER_SQLITE_PATH", str(tmp_path / "global.db"))
        get_settings.cache_clear()
        reset_container()
        try:
            assert get_container() is get_container()
        finally:
            reset_container()
            get_settings.cache_clear()
