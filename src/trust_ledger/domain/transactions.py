from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from trust_ledger.domain.value_objects import ZERO, TransactionType


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass
class TrustTransaction:
    trust_account_id: UUID
    transaction_type: TransactionType
    amount: Decimal
    transaction_date: date
    balance_after: Decimal
    id: UUID = field(default_factory=uuid4)
    description: str = ""
    reference_number: str | None = None
    tenant_id: UUID | None = None
    lease_id: UUID | None = None
    related_account_id: UUID | None = None
    is_reconciled: bool = False
    reconciled_date: date | None = None
    reconciled_by: UUID | None = None
    created_by: UUID | None = None
    created_at: datetime = field(default_factory=_utc_now)
    updated_at: datetime = field(default_factory=_utc_now)

    @property
    def signed_amount(self) -> Decimal:
        return self.transaction_type.sign * self.amount

    def mark_reconciled(self, reconciled_date: date, reconciled_by: UUID) -> bool:
        """Flag the transaction as reconciled.

        Returns False without touching anything when it already was.
        """
        if self.is_reconciled:
            return False
        self.is_reconciled = True
        self.reconciled_date = reconciled_date
        self.reconciled_by = reconciled_by
        self.updated_at = _utc_now()
        return True


def sum_signed(transactions: Iterable[TrustTransaction]) -> Decimal:
    total = ZERO
    for txn in transactions:
        total += txn.signed_amount
    return total


def totals_by_type(
    transactions: Iterable[TrustTransaction],
) -> dict[TransactionType, Decimal]:
    totals = {txn_type: ZERO for txn_type in TransactionType}
    for txn in transactions:
        totals[txn.transaction_type] += txn.amount
    return totals
