from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum

from trust_ledger.exceptions import InvalidAmountError

CENT = Decimal("0.01")
ZERO = Decimal("0")


class TrustAccountType(str, Enum):
    SECURITY_DEPOSIT = "security_deposit"
    ESCROW = "escrow"
    RESERVE = "reserve"


class TransactionType(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    INTEREST = "interest"
    FEE = "fee"

    @property
    def sign(self) -> int:
        if self in (TransactionType.DEPOSIT, TransactionType.INTEREST):
            return 1
        return -1

    @property
    def is_debit(self) -> bool:
        """True for the types that draw funds out of the account."""
        return self.sign < 0

    def apply(self, balance: Decimal, amount: Decimal) -> Decimal:
        return balance + self.sign * amount


class StatementFormat(str, Enum):
    JSON = "json"
    CSV = "csv"


def to_amount(value: Decimal | int | str) -> Decimal:
    """Coerce a caller-supplied amount to Decimal.

    Floats are refused outright; binary floating point has no place in
    ledger arithmetic.
    """
    if isinstance(value, (bool, float)):
        raise InvalidAmountError(value, "amounts must be Decimal, int or str")
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value).strip())
        except InvalidOperation:
            raise InvalidAmountError(value, "not a number") from None
    if not amount.is_finite():
        raise InvalidAmountError(value, "not a finite number")
    return amount


def validate_posting_amount(value: Decimal | int | str) -> Decimal:
    amount = to_amount(value)
    if amount <= ZERO:
        raise InvalidAmountError(value, "amount must be greater than zero")
    if amount != amount.quantize(CENT, rounding=ROUND_HALF_UP):
        raise InvalidAmountError(value, "amount has more than 2 decimal places")
    return amount


def round_cents(value: Decimal) -> Decimal:
    """Round half-up to whole cents."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


__all__ = [
    "CENT",
    "ZERO",
    "StatementFormat",
    "TransactionType",
    "TrustAccountType",
    "round_cents",
    "to_amount",
    "validate_posting_amount",
]
