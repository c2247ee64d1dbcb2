from trust_ledger.domain.accounts import TrustAccount
from trust_ledger.domain.transactions import TrustTransaction
from trust_ledger.domain.value_objects import (
    StatementFormat,
    TransactionType,
    TrustAccountType,
)

__all__ = [
    "StatementFormat",
    "TransactionType",
    "TrustAccount",
    "TrustAccountType",
    "TrustTransaction",
]

__version__ = "0.1.0"
