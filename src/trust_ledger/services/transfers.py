"""TransferService implementation: paired postings between trust accounts."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from trust_ledger.domain.value_objects import TransactionType, validate_posting_amount
from trust_ledger.exceptions import (
    AccountNotFoundError,
    InactiveAccountError,
    InsufficientFundsError,
    SameAccountTransferError,
)
from trust_ledger.logging_config import get_logger
from trust_ledger.repositories.interfaces import LedgerDatabase, TrustAccountRepository
from trust_ledger.services.interfaces import LedgerService, TransferResult, TransferService

logger = get_logger(__name__)


class TransferServiceImpl(TransferService):
    def __init__(
        self,
        database: LedgerDatabase,
        account_repo: TrustAccountRepository,
        ledger_service: LedgerService,
    ) -> None:
        self._db = database
        self._account_repo = account_repo
        self._ledger = ledger_service

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
        """Move funds between two trust accounts as one unit of work.

        A withdrawal is posted on the source and a deposit on the destination,
        each pointing at the other account through related_account_id. Either
        both legs are stored or neither is.

        Raises:
            InvalidAmountError: If the amount is not positive
            SameAccountTransferError: If source and destination are the same
            AccountNotFoundError: If either account doesn't exist
            InactiveAccountError: If either account has been deactivated
            InsufficientFundsError: If the source balance is below the amount
        """
        value = validate_posting_amount(amount)
        if from_account_id == to_account_id:
            raise SameAccountTransferError(from_account_id)

        with self._db.transaction():
            accounts = self._account_repo.get_many_for_update(
                [from_account_id, to_account_id]
            )
            for account_id in (from_account_id, to_account_id):
                account = accounts.get(account_id)
                if account is None:
                    raise AccountNotFoundError(account_id)
                if not account.is_active:
                    raise InactiveAccountError(account_id)
            source = accounts[from_account_id]
            destination = accounts[to_account_id]
            if source.balance < value:
                raise InsufficientFundsError(from_account_id, value, source.balance)

            withdrawal = self._ledger.post(
                from_account_id,
                TransactionType.WITHDRAWAL,
                value,
                transaction_date,
                description=f"{description} (Transfer to {destination.name})",
                reference_number=reference_number,
                related_account_id=to_account_id,
                created_by=created_by,
            )
            deposit = self._ledger.post(
                to_account_id,
                TransactionType.DEPOSIT,
                value,
                transaction_date,
                description=f"{description} (Transfer from {source.name})",
                reference_number=reference_number,
                related_account_id=from_account_id,
                created_by=created_by,
            )

        result = TransferResult(
            withdrawal=withdrawal,
            deposit=deposit,
            from_previous_balance=source.balance,
            from_new_balance=withdrawal.balance_after,
            to_previous_balance=destination.balance,
            to_new_balance=deposit.balance_after,
        )
        logger.info(
            "transfer_completed",
            from_account_id=str(from_account_id),
            to_account_id=str(to_account_id),
            amount=str(value),
            withdrawal_id=str(withdrawal.id),
            deposit_id=str(deposit.id),
        )
        return result
