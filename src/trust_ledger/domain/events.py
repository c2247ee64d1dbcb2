from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from trust_ledger.domain.value_objects import TrustAccountType


class TenantFundsEventKind(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"


@dataclass(frozen=True)
class TenantFundsEvent:
    """Emitted after a tenant-linked deposit or withdrawal has been committed."""

    kind: TenantFundsEventKind
    tenant_id: UUID
    amount: Decimal
    account_type: TrustAccountType
    transaction_date: date
    transaction_id: UUID
    account_id: UUID
