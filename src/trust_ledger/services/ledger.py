"""LedgerService implementation: the single write path for trust money."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from trust_ledger.domain.events import TenantFundsEvent, TenantFundsEventKind
from trust_ledger.domain.transactions import TrustTransaction, sum_signed
from trust_ledger.domain.value_objects import TransactionType, validate_posting_amount
from trust_ledger.exceptions import (
    AccountNotFoundError,
    InactiveAccountError,
    InsufficientFundsError,
    NotInterestBearingError,
    TenantRequiredError,
    TransactionNotFoundError,
    ValidationError,
)
from trust_ledger.logging_config import get_logger
from trust_ledger.repositories.interfaces import (
    LedgerDatabase,
    TrustAccountRepository,
    TrustTransactionRepository,
)
from trust_ledger.services.interfaces import (
    BalanceCheck,
    LedgerService,
    NotificationService,
)

logger = get_logger(__name__)

TENANT_EVENT_KINDS = {
    TransactionType.DEPOSIT: TenantFundsEventKind.DEPOSIT,
    TransactionType.WITHDRAWAL: TenantFundsEventKind.WITHDRAWAL,
}


def parse_transaction_type(value: TransactionType | str) -> TransactionType:
    try:
        return TransactionType(value)
    except ValueError:
        raise ValidationError(
            f"Invalid transaction type '{value}'. "
            "Must be one of: deposit, withdrawal, interest, fee",
            context={"transaction_type": str(value)},
        ) from None


class LedgerServiceImpl(LedgerService):
    """Posts deposits, withdrawals, fees and interest against trust accounts.

    Each posting locks the account, checks the balance, inserts the
    transaction with its resulting ``balance_after`` and stores the new
    account balance, all in one unit of work. When called inside an outer
    unit of work (transfers, interest) the posting joins it.
    """

    def __init__(
        self,
        database: LedgerDatabase,
        account_repo: TrustAccountRepository,
        transaction_repo: TrustTransactionRepository,
        notification_service: NotificationService | None = None,
    ) -> None:
        self._db = database
        self._account_repo = account_repo
        self._transaction_repo = transaction_repo
        self._notification_service = notification_service

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
        """Post a single transaction and update the account balance.

        Args:
            account_id: Account to post against
            transaction_type: deposit, withdrawal, interest or fee
            amount: Positive amount with at most two decimal places
            transaction_date: Business date of the transaction
            related_account_id: Counterpart account; set only on transfer legs

        Returns:
            The stored transaction, carrying the new balance in balance_after

        Raises:
            InvalidAmountError: If the amount is not positive
            AccountNotFoundError: If the account doesn't exist
            InactiveAccountError: If the account has been deactivated
            NotInterestBearingError: If interest is posted to a plain account
            TenantRequiredError: If a security deposit posting names no tenant
            InsufficientFundsError: If a withdrawal or fee exceeds the balance
            ConcurrencyConflictError: If the account lock times out
        """
        txn_type = parse_transaction_type(transaction_type)
        value = validate_posting_amount(amount)

        with self._db.transaction():
            account = self._account_repo.get_for_update(account_id)
            if account is None:
                raise AccountNotFoundError(account_id)
            if not account.is_active:
                raise InactiveAccountError(account_id)
            if txn_type == TransactionType.INTEREST and not account.is_interest_bearing:
                raise NotInterestBearingError(account_id)
            if (
                account.is_security_deposit
                and txn_type in TENANT_EVENT_KINDS
                and tenant_id is None
                and related_account_id is None
            ):
                raise TenantRequiredError(account_id)
            if txn_type.is_debit and value > account.balance:
                raise InsufficientFundsError(account_id, value, account.balance)

            new_balance = txn_type.apply(account.balance, value)
            txn = TrustTransaction(
                trust_account_id=account.id,
                transaction_type=txn_type,
                amount=value,
                transaction_date=transaction_date,
                balance_after=new_balance,
                description=description,
                reference_number=reference_number,
                tenant_id=tenant_id,
                lease_id=lease_id,
                related_account_id=related_account_id,
                created_by=created_by,
            )
            self._transaction_repo.add(txn)

            account.balance = new_balance
            account.touch()
            self._account_repo.update(account)

            if tenant_id is not None and txn_type in TENANT_EVENT_KINDS:
                event = TenantFundsEvent(
                    kind=TENANT_EVENT_KINDS[txn_type],
                    tenant_id=tenant_id,
                    amount=value,
                    account_type=account.account_type,
                    transaction_date=transaction_date,
                    transaction_id=txn.id,
                    account_id=account.id,
                )
                self._db.on_commit(lambda: self._dispatch(event))

        logger.info(
            "transaction_posted",
            transaction_id=str(txn.id),
            account_id=str(account_id),
            transaction_type=txn_type.value,
            amount=str(value),
            balance_after=str(new_balance),
        )
        return txn

    def record_deposit(
        self,
        account_id: UUID,
        amount: Decimal | int | str,
        transaction_date: date,
        **kwargs: Any,
    ) -> TrustTransaction:
        return self.post(
            account_id, TransactionType.DEPOSIT, amount, transaction_date, **kwargs
        )

    def record_withdrawal(
        self,
        account_id: UUID,
        amount: Decimal | int | str,
        transaction_date: date,
        **kwargs: Any,
    ) -> TrustTransaction:
        return self.post(
            account_id, TransactionType.WITHDRAWAL, amount, transaction_date, **kwargs
        )

    def record_fee(
        self,
        account_id: UUID,
        amount: Decimal | int | str,
        transaction_date: date,
        **kwargs: Any,
    ) -> TrustTransaction:
        return self.post(
            account_id, TransactionType.FEE, amount, transaction_date, **kwargs
        )

    def record_interest(
        self,
        account_id: UUID,
        amount: Decimal | int | str,
        transaction_date: date,
        **kwargs: Any,
    ) -> TrustTransaction:
        return self.post(
            account_id, TransactionType.INTEREST, amount, transaction_date, **kwargs
        )

    def get_transaction(self, transaction_id: UUID) -> TrustTransaction:
        with self._db.snapshot():
            txn = self._transaction_repo.get(transaction_id)
        if txn is None:
            raise TransactionNotFoundError(transaction_id)
        return txn

    def list_transactions(
        self,
        account_id: UUID,
        *,
        start_date: date | None = None,
        end_date: date | None = None,
        transaction_type: TransactionType | None = None,
        is_reconciled: bool | None = None,
    ) -> list[TrustTransaction]:
        with self._db.snapshot():
            if self._account_repo.get(account_id) is None:
                raise AccountNotFoundError(account_id)
            return self._transaction_repo.list_by_account(
                account_id,
                start_date=start_date,
                end_date=end_date,
                transaction_type=transaction_type,
                is_reconciled=is_reconciled,
            )

    def get_balance(self, account_id: UUID) -> Decimal:
        with self._db.snapshot():
            account = self._account_repo.get(account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        return account.balance

    def verify_balance(self, account_id: UUID) -> BalanceCheck:
        """Compare the stored balance with a replay of every transaction."""
        with self._db.snapshot():
            account = self._account_repo.get(account_id)
            if account is None:
                raise AccountNotFoundError(account_id)
            transactions = self._transaction_repo.list_by_account(account_id)
            latest = self._transaction_repo.get_latest_posted(account_id)

        check = BalanceCheck(
            account_id=account_id,
            stored_balance=account.balance,
            replayed_balance=sum_signed(transactions),
            latest_balance_after=latest.balance_after if latest else None,
        )
        if not check.is_consistent:
            logger.warning(
                "balance_mismatch",
                account_id=str(account_id),
                stored_balance=str(check.stored_balance),
                replayed_balance=str(check.replayed_balance),
                latest_balance_after=str(check.latest_balance_after),
            )
        return check

    def _dispatch(self, event: TenantFundsEvent) -> None:
        if self._notification_service is None:
            return
        try:
            self._notification_service.notify(event)
        except Exception:
            # The posting has already committed.
            logger.exception(
                "tenant_notification_failed",
                tenant_id=str(event.tenant_id),
                transaction_id=str(event.transaction_id),
            )
