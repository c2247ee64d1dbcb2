from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from trust_ledger.domain.accounts import TrustAccount
from trust_ledger.domain.events import TenantFundsEvent
from trust_ledger.domain.reports import (
    AuditReport,
    LeaseDeposit,
    LeaseRecord,
    Statement,
    StatementFile,
    TenantLedger,
)
from trust_ledger.domain.transactions import TrustTransaction
from trust_ledger.domain.value_objects import (
    ZERO,
    StatementFormat,
    TransactionType,
    TrustAccountType,
)


@dataclass
class BalanceCheck:
    account_id: UUID
    stored_balance: Decimal
    replayed_balance: Decimal
    latest_balance_after: Decimal | None

    @property
    def is_consistent(self) -> bool:
        if self.stored_balance != self.replayed_balance:
            return False
        if self.latest_balance_after is None:
            return self.stored_balance == ZERO
        return self.latest_balance_after == self.stored_balance


@dataclass
class TransferResult:
    withdrawal: TrustTransaction
    deposit: TrustTransaction
    from_previous_balance: Decimal
    from_new_balance: Decimal
    to_previous_balance: Decimal
    to_new_balance: Decimal

    @property
    def amount(self) -> Decimal:
        return self.withdrawal.amount


class InterestAccrualStatus(str, Enum):
    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"
    ZERO_INTEREST = "zero_interest"
    FAILED = "failed"


@dataclass
class InterestAccrualResult:
    account_id: UUID
    status: InterestAccrualStatus
    average_daily_balance: Decimal | None = None
    interest_amount: Decimal = ZERO
    transaction: TrustTransaction | None = None
    error: str | None = None


@dataclass
class InterestBatchResult:
    as_of_date: date
    results: list[InterestAccrualResult] = field(default_factory=list)

    @property
    def total_accounts(self) -> int:
        return len(self.results)

    @property
    def total_interest_applied(self) -> Decimal:
        return sum(
            (
                r.interest_amount
                for r in self.results
                if r.status == InterestAccrualStatus.APPLIED
            ),
            ZERO,
        )

    @property
    def failed(self) -> list[InterestAccrualResult]:
        return [r for r in self.results if r.status == InterestAccrualStatus.FAILED]


@dataclass
class ReconciliationResult:
    account_id: UUID
    transactions: list[TrustTransaction]

    @property
    def reconciled_count(self) -> int:
        return len(self.transactions)


class NotificationService(ABC):
    @abstractmethod
    def notify(self, event: TenantFundsEvent) -> None:
        pass


class LeaseDirectory(ABC):
    @abstractmethod
    def list_active_leases(self, property_id: UUID) -> list[LeaseDeposit]:
        pass

    @abstractmethod
    def find_active_lease(self, tenant_id: UUID) -> LeaseRecord | None:
        """The tenant's active lease, if the tenant has one."""


class AccountService(ABC):
    @abstractmethod
    def create_account(
        self,
        property_id: UUID,
        name: str,
        account_type: TrustAccountType | str,
        *,
        bank_name: str | None = None,
        account_number: str | None = None,
        routing_number: str | None = None,
        is_interest_bearing: bool = False,
        interest_rate: Decimal | str | None = None,
        created_by: UUID | None = None,
    ) -> TrustAccount:
        pass

    @abstractmethod
    def update_account(self, account_id: UUID, **fields: Any) -> TrustAccount:
        pass

    @abstractmethod
    def deactivate_account(self, account_id: UUID) -> TrustAccount:
        pass

    @abstractmethod
    def get_account(self, account_id: UUID) -> TrustAccount:
        pass

    @abstractmethod
    def list_accounts(
        self,
        property_id: UUID,
        *,
        include_inactive: bool = False,
        account_type: TrustAccountType | None = None,
    ) -> list[TrustAccount]:
        pass

    @abstractmethod
    def list_interest_bearing_accounts(self) -> list[TrustAccount]:
        pass


class LedgerService(ABC):
    @abstractmethod
    def post(
        self,
        account_id: UUID,
        transaction_type: TransactionType | str,
        amount: Decimal | int | str,
        transaction_date: date,
        *,
        description: str = "",
        reference_number: str | None = None,
        tenant_id: UUID | None = None,
        lease_id: UUID | None = None,
        related_account_id: UUID | None = None,
        created_by: UUID | None = None,
    ) -> TrustTransaction:
        pass

    @abstractmethod
    def get_transaction(self, transaction_id: UUID) -> TrustTransaction:
        pass

    @abstractmethod
    def list_transactions(
        self,
        account_id: UUID,
        *,
        start_date: date | None = None,
        end_date: date | None = None,
        transaction_type: TransactionType | None = None,
        is_reconciled: bool | None = None,
    ) -> list[TrustTransaction]:
        pass

    @abstractmethod
    def get_balance(self, account_id: UUID) -> Decimal:
        pass

    @abstractmethod
    def verify_balance(self, account_id: UUID) -> BalanceCheck:
        pass


class TransferService(ABC):
    @abstractmethod
    def transfer(
        self,
        from_account_id: UUID,
        to_account_id: UUID,
        amount: Decimal | int | str,
        transaction_date: date,
        description: str,
        *,
        reference_number: str | None = None,
        created_by: UUID | None = None,
    ) -> TransferResult:
        pass


class InterestService(ABC):
    @abstractmethod
    def accrue_interest_for_month(
        self, account_id: UUID, as_of_date: date, *, created_by: UUID | None = None
    ) -> InterestAccrualResult:
        pass

    @abstractmethod
    def apply_monthly_interest(
        self, as_of_date: date, *, created_by: UUID | None = None
    ) -> InterestBatchResult:
        pass


class ReconciliationService(ABC):
    @abstractmethod
    def reconcile(
        self,
        account_id: UUID,
        transaction_ids: list[UUID],
        reconciliation_date: date,
        user_id: UUID,
    ) -> ReconciliationResult:
        pass

    @abstractmethod
    def list_unreconciled(self, account_id: UUID) -> list[TrustTransaction]:
        pass


class StatementService(ABC):
    @abstractmethod
    def generate_statement(
        self,
        account_id: UUID,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> Statement:
        pass

    @abstractmethod
    def render_statement(
        self, statement: Statement, fmt: StatementFormat | str
    ) -> dict[str, Any] | StatementFile:
        pass

    @abstractmethod
    def tenant_deposit_balance(self, account_id: UUID, tenant_id: UUID) -> TenantLedger:
        pass

    @abstractmethod
    def security_deposit_balance(self, tenant_id: UUID) -> TenantLedger:
        pass


class AuditReportService(ABC):
    @abstractmethod
    def generate_audit_report(
        self,
        property_id: UUID,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> AuditReport:
        pass
