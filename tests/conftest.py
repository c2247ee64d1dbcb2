from collections.abc import Iterator
from datetime import date
from uuid import UUID, uuid4

import pytest

from trust_ledger.domain.accounts import TrustAccount
from trust_ledger.domain.value_objects import TrustAccountType
from trust_ledger.repositories.sqlite import (
    SQLiteDatabase,
    SQLiteTrustAccountRepository,
    SQLiteTrustTransactionRepository,
)
from trust_ledger.services.accounts import AccountServiceImpl
from trust_ledger.services.audit_report import AuditReportServiceImpl
from trust_ledger.services.directory import InMemoryLeaseDirectory
from trust_ledger.services.interest import InterestServiceImpl
from trust_ledger.services.ledger import LedgerServiceImpl
from trust_ledger.services.notifications import RecordingNotificationService
from trust_ledger.services.reconciliation import ReconciliationServiceImpl
from trust_ledger.services.statements import StatementServiceImpl
from trust_ledger.services.transfers import TransferServiceImpl

TODAY = date(2025, 6, 15)


@pytest.fixture
def db() -> Iterator[SQLiteDatabase]:
    """Create an in-memory SQLite database for testing."""
    database = SQLiteDatabase(":memory:", check_same_thread=False)
    database.initialize()
    yield database
    database.close()


@pytest.fixture
def account_repo(db: SQLiteDatabase) -> SQLiteTrustAccountRepository:
    return SQLiteTrustAccountRepository(db)


@pytest.fixture
def transaction_repo(db: SQLiteDatabase) -> SQLiteTrustTransactionRepository:
    return SQLiteTrustTransactionRepository(db)


@pytest.fixture
def notifications() -> RecordingNotificationService:
    return RecordingNotificationService()


@pytest.fixture
def lease_directory() -> InMemoryLeaseDirectory:
    return InMemoryLeaseDirectory()


@pytest.fixture
def account_service(db, account_repo) -> AccountServiceImpl:
    return AccountServiceImpl(db, account_repo)


@pytest.fixture
def ledger_service(db, account_repo, transaction_repo, notifications) -> LedgerServiceImpl:
    return LedgerServiceImpl(
        db, account_repo, transaction_repo, notification_service=notifications
    )


@pytest.fixture
def transfer_service(db, account_repo, ledger_service) -> TransferServiceImpl:
    return TransferServiceImpl(db, account_repo, ledger_service)


@pytest.fixture
def interest_service(
    db, account_repo, transaction_repo, ledger_service
) -> InterestServiceImpl:
    return InterestServiceImpl(db, account_repo, transaction_repo, ledger_service)


@pytest.fixture
def reconciliation_service(
    db, account_repo, transaction_repo
) -> ReconciliationServiceImpl:
    return ReconciliationServiceImpl(db, account_repo, transaction_repo)


@pytest.fixture
def statement_service(
    db, account_repo, transaction_repo, lease_directory
) -> StatementServiceImpl:
    return StatementServiceImpl(
        db, account_repo, transaction_repo, today=lambda: TODAY, lease_directory=lease_directory
    )


@pytest.fixture
def audit_report_service(
    db, account_repo, transaction_repo, lease_directory
) -> AuditReportServiceImpl:
    return AuditReportServiceImpl(
        db,
        account_repo,
        transaction_repo,
        lease_directory=lease_directory,
        today=lambda: TODAY,
    )


@pytest.fixture
def property_id() -> UUID:
    return uuid4()


@pytest.fixture
def tenant_id() -> UUID:
    return uuid4()


@pytest.fixture
def user_id() -> UUID:
    return uuid4()


@pytest.fixture
def deposit_account(account_service, property_id) -> TrustAccount:
    return account_service.create_account(
        property_id,
        "Maple Court Security Deposits",
        TrustAccountType.SECURITY_DEPOSIT,
        bank_name="First Community Bank",
        account_number="000123456",
    )


@pytest.fixture
def escrow_account(account_service, property_id) -> TrustAccount:
    return account_service.create_account(
        property_id, "Maple Court Escrow", TrustAccountType.ESCROW
    )


@pytest.fixture
def reserve_account(account_service, property_id) -> TrustAccount:
    return account_service.create_account(
        property_id,
        "Maple Court Reserve",
        TrustAccountType.RESERVE,
        is_interest_bearing=True,
        interest_rate="3.00",
    )
