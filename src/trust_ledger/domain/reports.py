"""Read-side report models: statements, tenant sub-ledgers and audit reports."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from uuid import UUID

from trust_ledger.domain.accounts import TrustAccount
from trust_ledger.domain.transactions import TrustTransaction, totals_by_type
from trust_ledger.domain.value_objects import ZERO, TransactionType


@dataclass
class PeriodTotals:
    deposits: Decimal = ZERO
    withdrawals: Decimal = ZERO
    interest: Decimal = ZERO
    fees: Decimal = ZERO

    @classmethod
    def from_transactions(cls, transactions: list[TrustTransaction]) -> PeriodTotals:
        totals = totals_by_type(transactions)
        return cls(
            deposits=totals[TransactionType.DEPOSIT],
            withdrawals=totals[TransactionType.WITHDRAWAL],
            interest=totals[TransactionType.INTEREST],
            fees=totals[TransactionType.FEE],
        )

    @property
    def net_change(self) -> Decimal:
        return self.deposits + self.interest - self.withdrawals - self.fees

    def __add__(self, other: PeriodTotals) -> PeriodTotals:
        return PeriodTotals(
            deposits=self.deposits + other.deposits,
            withdrawals=self.withdrawals + other.withdrawals,
            interest=self.interest + other.interest,
            fees=self.fees + other.fees,
        )


@dataclass
class StatementLine:
    transaction: TrustTransaction
    running_balance: Decimal

    @property
    def matches_stored_balance(self) -> bool:
        # Back-dated postings legitimately differ from the chronological replay.
        return self.running_balance == self.transaction.balance_after


@dataclass
class TenantLedger:
    tenant_id: UUID
    transactions: list[TrustTransaction] = field(default_factory=list)
    totals: PeriodTotals = field(default_factory=PeriodTotals)

    @property
    def balance(self) -> Decimal:
        return self.totals.net_change

    @classmethod
    def build(cls, tenant_id: UUID, transactions: list[TrustTransaction]) -> TenantLedger:
        return cls(
            tenant_id=tenant_id,
            transactions=list(transactions),
            totals=PeriodTotals.from_transactions(transactions),
        )


@dataclass
class Statement:
    account: TrustAccount
    start_date: date
    end_date: date
    opening_balance: Decimal
    lines: list[StatementLine]
    totals: PeriodTotals
    tenant_ledgers: list[TenantLedger] | None = None

    @property
    def closing_balance(self) -> Decimal:
        if not self.lines:
            return self.opening_balance
        return self.lines[-1].running_balance

    @property
    def net_change(self) -> Decimal:
        return self.closing_balance - self.opening_balance

    @property
    def transactions(self) -> list[TrustTransaction]:
        return [line.transaction for line in self.lines]

    @property
    def discrepancies(self) -> list[StatementLine]:
        return [line for line in self.lines if not line.matches_stored_balance]


@dataclass(frozen=True)
class StatementFile:
    content: str
    filename: str
    content_type: str


@dataclass(frozen=True)
class LeaseDeposit:
    """An active lease's security deposit obligation, as the lease directory reports it."""

    lease_id: UUID
    tenant_id: UUID
    required_deposit: Decimal
    tenant_name: str = ""
    unit_number: str = ""


@dataclass(frozen=True)
class LeaseRecord:
    """A lease as held by the directory, with the property it belongs to."""

    property_id: UUID
    lease: LeaseDeposit
    is_active: bool = True


@dataclass
class DepositCompliance:
    account_id: UUID
    account_balance: Decimal
    required_total: Decimal
    leases: list[LeaseDeposit]

    @property
    def is_compliant(self) -> bool:
        return self.account_balance >= self.required_total

    @property
    def difference(self) -> Decimal:
        return self.account_balance - self.required_total


@dataclass
class AccountAuditSection:
    account: TrustAccount
    opening_balance: Decimal
    transactions: list[TrustTransaction]
    totals: PeriodTotals

    @property
    def closing_balance(self) -> Decimal:
        return self.opening_balance + self.totals.net_change


@dataclass
class AuditSummary:
    total_accounts: int
    total_transactions: int
    totals: PeriodTotals
    current_balance: Decimal

    @property
    def net_change(self) -> Decimal:
        return self.totals.net_change


@dataclass
class AuditReport:
    property_id: UUID
    start_date: date
    end_date: date
    summary: AuditSummary
    accounts: list[AccountAuditSection]
    unreconciled_transactions: list[TrustTransaction]
    deposit_compliance: DepositCompliance | None = None
