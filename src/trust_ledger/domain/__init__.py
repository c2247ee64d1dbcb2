from trust_ledger.domain.accounts import TrustAccount
from trust_ledger.domain.events import TenantFundsEvent, TenantFundsEventKind
from trust_ledger.domain.reports import (
    AccountAuditSection,
    AuditReport,
    AuditSummary,
    DepositCompliance,
    LeaseDeposit,
    LeaseRecord,
    PeriodTotals,
    Statement,
    StatementFile,
    StatementLine,
    TenantLedger,
)
from trust_ledger.domain.transactions import TrustTransaction
from trust_ledger.domain.value_objects import (
    StatementFormat,
    TransactionType,
    TrustAccountType,
)

__all__ = [
    "AccountAuditSection",
    "AuditReport",
    "AuditSummary",
    "DepositCompliance",
    "LeaseDeposit",
    "LeaseRecord",
    "PeriodTotals",
    "Statement",
    "StatementFile",
    "StatementFormat",
    "StatementLine",
    "TenantFundsEvent",
    "TenantFundsEventKind",
    "TenantLedger",
    "TransactionType",
    "TrustAccount",
    "TrustAccountType",
    "TrustTransaction",
]
