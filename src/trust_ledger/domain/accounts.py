from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from trust_ledger.domain.value_objects import ZERO, TrustAccountType
from trust_ledger.exceptions import InvalidInterestConfigError


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass
class TrustAccount:
    property_id: UUID
    name: str
    account_type: TrustAccountType
    id: UUID = field(default_factory=uuid4)
    bank_name: str | None = None
    account_number: str | None = None
    routing_number: str | None = None
    is_interest_bearing: bool = False
    interest_rate: Decimal | None = None
    balance: Decimal = ZERO
    is_active: bool = True
    created_by: UUID | None = None
    created_at: datetime = field(default_factory=_utc_now)
    updated_at: datetime = field(default_factory=_utc_now)

    def validate_interest_config(self) -> None:
        if self.is_interest_bearing and (
            self.interest_rate is None or self.interest_rate <= ZERO
        ):
            raise InvalidInterestConfigError(self.interest_rate)

    @property
    def monthly_interest_rate(self) -> Decimal:
        if not self.is_interest_bearing or self.interest_rate is None:
            return ZERO
        return self.interest_rate / Decimal("100") / Decimal("12")

    @property
    def is_security_deposit(self) -> bool:
        return self.account_type == TrustAccountType.SECURITY_DEPOSIT

    def deactivate(self) -> None:
        self.is_active = False
        self.updated_at = _utc_now()

    def touch(self) -> None:
        self.updated_at = _utc_now()
