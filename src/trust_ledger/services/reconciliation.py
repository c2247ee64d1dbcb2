"""Reconciliation service for marking ledger transactions as bank-confirmed."""

from datetime import date
from uuid import UUID

from trust_ledger.domain.transactions import TrustTransaction
from trust_ledger.exceptions import AccountNotFoundError
from trust_ledger.logging_config import get_logger
from trust_ledger.repositories.interfaces import (
    LedgerDatabase,
    TrustAccountRepository,
    TrustTransactionRepository,
)
from trust_ledger.services.interfaces import (
    ReconciliationResult,
    ReconciliationService,
)

logger = get_logger(__name__)


class ReconciliationServiceImpl(ReconciliationService):
    """Flags transactions as reconciled against a bank statement.

    Only the reconciliation fields change; amounts and balances are never
    touched. Ids that are already reconciled, unknown, or owned by another
    account are skipped, so reconciling the same batch twice is harmless.
    """

    def __init__(
        self,
        database: LedgerDatabase,
        account_repo: TrustAccountRepository,
        transaction_repo: TrustTransactionRepository,
    ) -> None:
        self._db = database
        self._account_repo = account_repo
        self._transaction_repo = transaction_repo

    def reconcile(
        self,
        account_id: UUID,
        transaction_ids: list[UUID],
        reconciliation_date: date,
        user_id: UUID,
    ) -> ReconciliationResult:
        with self._db.transaction():
            if self._account_repo.get(account_id) is None:
                raise AccountNotFoundError(account_id)
            reconciled = self._transaction_repo.mark_reconciled(
                account_id, transaction_ids, reconciliation_date, user_id
            )

        result = ReconciliationResult(account_id=account_id, transactions=reconciled)
        logger.info(
            "transactions_reconciled",
            account_id=str(account_id),
            requested=len(transaction_ids),
            reconciled=result.reconciled_count,
            reconciliation_date=reconciliation_date.isoformat(),
        )
        return result

    def list_unreconciled(self, account_id: UUID) -> list[TrustTransaction]:
        with self._db.snapshot():
            if self._account_repo.get(account_id) is None:
                raise AccountNotFoundError(account_id)
            return self._transaction_repo.list_by_account(
                account_id, is_reconciled=False
            )
