"""AccountService implementation: trust account lifecycle."""

from __future__ import annotations

from decimal import Decimal
from typing import Any
from uuid import UUID

from trust_ledger.domain.accounts import TrustAccount
from trust_ledger.domain.value_objects import ZERO, TrustAccountType, to_amount
from trust_ledger.exceptions import (
    AccountNotFoundError,
    DuplicateActiveAccountError,
    InactiveAccountError,
    InvalidAccountTypeError,
    NonZeroBalanceError,
    ValidationError,
)
from trust_ledger.logging_config import get_logger
from trust_ledger.repositories.interfaces import (
    LedgerDatabase,
    TrustAccountRepository,
)
from trust_ledger.services.interfaces import AccountService

logger = get_logger(__name__)

UPDATABLE_FIELDS = frozenset(
    {
        "name",
        "bank_name",
        "account_number",
        "routing_number",
        "is_interest_bearing",
        "interest_rate",
    }
)


def parse_account_type(value: TrustAccountType | str) -> TrustAccountType:
    try:
        return TrustAccountType(value)
    except ValueError:
        raise InvalidAccountTypeError(str(value)) from None


def _parse_rate(value: Decimal | int | str | None) -> Decimal | None:
    if value is None or value == "":
        return None
    return to_amount(value)


class AccountServiceImpl(AccountService):
    """Creates, amends and retires trust accounts.

    Balances are never touched here; only the ledger service moves money.
    """

    def __init__(
        self, database: LedgerDatabase, account_repo: TrustAccountRepository
    ) -> None:
        self._db = database
        self._account_repo = account_repo

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
        interest_rate: Decimal | int | str | None = None,
        created_by: UUID | None = None,
    ) -> TrustAccount:
        """Open a new trust account with a zero balance.

        Raises:
            InvalidAccountTypeError: If the type is not a trust account type
            InvalidInterestConfigError: If interest-bearing without a positive rate
            DuplicateActiveAccountError: If the property already has an active
                account of this type
        """
        account_type = parse_account_type(account_type)
        if not name or not name.strip():
            raise ValidationError("Account name is required")

        account = TrustAccount(
            property_id=property_id,
            name=name.strip(),
            account_type=account_type,
            bank_name=bank_name,
            account_number=account_number,
            routing_number=routing_number,
            is_interest_bearing=is_interest_bearing,
            interest_rate=_parse_rate(interest_rate) if is_interest_bearing else None,
            created_by=created_by,
        )
        account.validate_interest_config()

        with self._db.transaction():
            if self._account_repo.get_active_by_type(property_id, account_type):
                raise DuplicateActiveAccountError(property_id, account_type.value)
            self._account_repo.add(account)

        logger.info(
            "trust_account_created",
            account_id=str(account.id),
            property_id=str(property_id),
            account_type=account_type.value,
            is_interest_bearing=account.is_interest_bearing,
        )
        return account

    def update_account(self, account_id: UUID, **fields: Any) -> TrustAccount:
        """Change an account's descriptive and interest settings.

        Only the fields in UPDATABLE_FIELDS may be given. Turning interest off
        clears the rate.
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(
                f"Fields cannot be updated: {', '.join(sorted(unknown))}",
                context={"fields": sorted(unknown)},
            )

        with self._db.transaction():
            account = self._account_repo.get_for_update(account_id)
            if account is None:
                raise AccountNotFoundError(account_id)

            if "name" in fields:
                name = fields["name"]
                if not name or not str(name).strip():
                    raise ValidationError("Account name is required")
                account.name = str(name).strip()
            for attr in ("bank_name", "account_number", "routing_number"):
                if attr in fields:
                    setattr(account, attr, fields[attr])
            if "is_interest_bearing" in fields:
                account.is_interest_bearing = bool(fields["is_interest_bearing"])
            if "interest_rate" in fields:
                account.interest_rate = _parse_rate(fields["interest_rate"])
            if not account.is_interest_bearing:
                account.interest_rate = None
            account.validate_interest_config()

            account.touch()
            self._account_repo.update(account)

        logger.info(
            "trust_account_updated",
            account_id=str(account_id),
            fields=sorted(fields),
        )
        return account

    def deactivate_account(self, account_id: UUID) -> TrustAccount:
        with self._db.transaction():
            account = self._account_repo.get_for_update(account_id)
            if account is None:
                raise AccountNotFoundError(account_id)
            if not account.is_active:
                raise InactiveAccountError(account_id)
            if account.balance != ZERO:
                raise NonZeroBalanceError(account_id, account.balance)
            account.deactivate()
            self._account_repo.update(account)

        logger.info("trust_account_deactivated", account_id=str(account_id))
        return account

    def get_account(self, account_id: UUID) -> TrustAccount:
        with self._db.snapshot():
            account = self._account_repo.get(account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    def list_accounts(
        self,
        property_id: UUID,
        *,
        include_inactive: bool = False,
        account_type: TrustAccountType | None = None,
    ) -> list[TrustAccount]:
        with self._db.snapshot():
            return list(
                self._account_repo.list_by_property(
                    property_id,
                    include_inactive=include_inactive,
                    account_type=account_type,
                )
            )

    def list_interest_bearing_accounts(self) -> list[TrustAccount]:
        with self._db.snapshot():
            return list(self._account_repo.list_interest_bearing())
