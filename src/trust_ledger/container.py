"""Dependency injection container for Trust Ledger.

Wires the database, repositories and services from Settings. Everything is
created lazily on first access and cached for reuse.

Usage:
    from trust_ledger.container import Container, get_container

    container = get_container()
    ledger = container.ledger_service
    ledger.record_deposit(account_id, "500.00", date.today(), tenant_id=tenant)
"""

from functools import cached_property, lru_cache
from typing import TYPE_CHECKING

from trust_ledger.config import DatabaseType, Settings, get_settings
from trust_ledger.exceptions import ConfigurationError
from trust_ledger.logging_config import get_logger

if TYPE_CHECKING:
    from trust_ledger.repositories.interfaces import (
        LedgerDatabase,
        TrustAccountRepository,
        TrustTransactionRepository,
    )
    from trust_ledger.services.accounts import AccountServiceImpl
    from trust_ledger.services.audit_report import AuditReportServiceImpl
    from trust_ledger.services.interest import InterestServiceImpl
    from trust_ledger.services.interfaces import LeaseDirectory, NotificationService
    from trust_ledger.services.ledger import LedgerServiceImpl
    from trust_ledger.services.reconciliation import ReconciliationServiceImpl
    from trust_ledger.services.statements import StatementServiceImpl
    from trust_ledger.services.transfers import TransferServiceImpl

logger = get_logger(__name__)


class Container:
    """Dependency injection container.

    The container can be configured with custom settings for testing:

        test_settings = Settings(sqlite_path=":memory:")
        container = Container(settings=test_settings)

    A lease directory or notification service may be supplied to replace
    the defaults.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        lease_directory: "LeaseDirectory | None" = None,
        notification_service: "NotificationService | None" = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._lease_directory = lease_directory
        self._notification_service = notification_service
        logger.debug(
            "container_created",
            database_type=self._settings.database_type.value,
            environment=self._settings.environment.value,
        )

    @property
    def settings(self) -> Settings:
        return self._settings

    @cached_property
    def database(self) -> "LedgerDatabase":
        """The database, initialized on first access.

        SQLite for development and testing, PostgreSQL for production.
        """
        if self._settings.database_type == DatabaseType.POSTGRES:
            return self._create_postgres_database()
        return self._create_sqlite_database()

    def _create_sqlite_database(self) -> "LedgerDatabase":
        from trust_ledger.repositories.sqlite import SQLiteDatabase

        db_path = str(self._settings.sqlite_path)
        logger.info("initializing_sqlite_database", path=db_path)

        db = SQLiteDatabase(
            db_path,
            check_same_thread=False,
            lock_timeout=self._settings.lock_timeout_seconds,
        )
        db.initialize()
        return db

    def _create_postgres_database(self) -> "LedgerDatabase":
        url = self._settings.database_url
        if not url:
            raise ConfigurationError(
                "database_url must be set when database_type is postgres"
            )

        from trust_ledger.repositories.postgres import PostgresDatabase

        logger.info(
            "initializing_postgres_database",
            # Don't log the full URL as it may contain credentials
            host=url.split("@")[-1].split("/")[0] if "@" in url else "localhost",
        )

        db = PostgresDatabase(url, lock_timeout=self._settings.lock_timeout_seconds)
        db.initialize()
        return db

    @cached_property
    def account_repository(self) -> "TrustAccountRepository":
        if self._settings.database_type == DatabaseType.POSTGRES:
            from trust_ledger.repositories.postgres import (
                PostgresTrustAccountRepository,
            )

            return PostgresTrustAccountRepository(self.database)  # type: ignore[arg-type]
        from trust_ledger.repositories.sqlite import SQLiteTrustAccountRepository

        return SQLiteTrustAccountRepository(self.database)  # type: ignore[arg-type]

    @cached_property
    def transaction_repository(self) -> "TrustTransactionRepository":
        if self._settings.database_type == DatabaseType.POSTGRES:
            from trust_ledger.repositories.postgres import (
                PostgresTrustTransactionRepository,
            )

            return PostgresTrustTransactionRepository(self.database)  # type: ignore[arg-type]
        from trust_ledger.repositories.sqlite import SQLiteTrustTransactionRepository

        return SQLiteTrustTransactionRepository(self.database)  # type: ignore[arg-type]

    @cached_property
    def notification_service(self) -> "NotificationService | None":
        if self._notification_service is not None:
            return self._notification_service
        if not self._settings.enable_tenant_notifications:
            return None
        from trust_ledger.services.notifications import LoggingNotificationService

        return LoggingNotificationService()

    @cached_property
    def lease_directory(self) -> "LeaseDirectory":
        if self._lease_directory is not None:
            return self._lease_directory
        from trust_ledger.services.directory import InMemoryLeaseDirectory

        return InMemoryLeaseDirectory()

    @cached_property
    def account_service(self) -> "AccountServiceImpl":
        from trust_ledger.services.accounts import AccountServiceImpl

        return AccountServiceImpl(self.database, self.account_repository)

    @cached_property
    def ledger_service(self) -> "LedgerServiceImpl":
        """The posting engine; every balance change goes through it."""
        from trust_ledger.services.ledger import LedgerServiceImpl

        return LedgerServiceImpl(
            self.database,
            self.account_repository,
            self.transaction_repository,
            notification_service=self.notification_service,
        )

    @cached_property
    def transfer_service(self) -> "TransferServiceImpl":
        from trust_ledger.services.transfers import TransferServiceImpl

        return TransferServiceImpl(
            self.database, self.account_repository, self.ledger_service
        )

    @cached_property
    def interest_service(self) -> "InterestServiceImpl":
        from trust_ledger.services.interest import InterestServiceImpl

        return InterestServiceImpl(
            self.database,
            self.account_repository,
            self.transaction_repository,
            self.ledger_service,
        )

    @cached_property
    def reconciliation_service(self) -> "ReconciliationServiceImpl":
        from trust_ledger.services.reconciliation import ReconciliationServiceImpl

        return ReconciliationServiceImpl(
            self.database, self.account_repository, self.transaction_repository
        )

    @cached_property
    def statement_service(self) -> "StatementServiceImpl":
        from trust_ledger.services.statements import StatementServiceImpl

        return StatementServiceImpl(
            self.database,
            self.account_repository,
            self.transaction_repository,
            lease_directory=self.lease_directory,
        )

    @cached_property
    def audit_report_service(self) -> "AuditReportServiceImpl":
        from trust_ledger.services.audit_report import AuditReportServiceImpl

        return AuditReportServiceImpl(
            self.database,
            self.account_repository,
            self.transaction_repository,
            lease_directory=self.lease_directory,
        )

    def close(self) -> None:
        """Close the database connection if one was opened."""
        if "database" in self.__dict__:
            logger.info("closing_database_connection")
            self.database.close()

    def __enter__(self) -> "Container":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


_container: Container | None = None


@lru_cache
def get_container() -> Container:
    """Get the global container singleton.

    For testing, create a Container directly with custom settings instead.
    """
    global _container
    if _container is None:
        _container = Container()
    return _container


def reset_container() -> None:
    """Reset the global container, closing its database."""
    global _container
    if _container is not None:
        _container.close()
        _container = None
    get_container.cache_clear()
