from trust_ledger.services.accounts import AccountServiceImpl
from trust_ledger.services.audit_report import AuditReportServiceImpl
from trust_ledger.services.directory import InMemoryLeaseDirectory
from trust_ledger.services.interest import InterestServiceImpl, average_daily_balance
from trust_ledger.services.interfaces import (
    AccountService,
    AuditReportService,
    BalanceCheck,
    InterestAccrualResult,
    InterestAccrualStatus,
    InterestBatchResult,
    InterestService,
    LeaseDirectory,
    LedgerService,
    NotificationService,
    ReconciliationResult,
    ReconciliationService,
    StatementService,
    TransferResult,
    TransferService,
)
from trust_ledger.services.ledger import LedgerServiceImpl
from trust_ledger.services.notifications import (
    LoggingNotificationService,
    RecordingNotificationService,
)
from trust_ledger.services.reconciliation import ReconciliationServiceImpl
from trust_ledger.services.statements import StatementServiceImpl
from trust_ledger.services.transfers import TransferServiceImpl

__all__ = [
    "AccountService",
    "AccountServiceImpl",
    "AuditReportService",
    "AuditReportServiceImpl",
    "BalanceCheck",
    "InMemoryLeaseDirectory",
    "InterestAccrualResult",
    "InterestAccrualStatus",
    "InterestBatchResult",
    "InterestService",
    "InterestServiceImpl",
    "LeaseDirectory",
    "LedgerService",
    "LedgerServiceImpl",
    "LoggingNotificationService",
    "NotificationService",
    "ReconciliationResult",
    "ReconciliationService",
    "ReconciliationServiceImpl",
    "RecordingNotificationService",
    "StatementService",
    "StatementServiceImpl",
    "TransferResult",
    "TransferService",
    "TransferServiceImpl",
    "average_daily_balance",
]
