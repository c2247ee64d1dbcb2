"""InterestService implementation: monthly interest on average daily balance."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from dateutil.relativedelta import relativedelta

from trust_ledger.domain.accounts import TrustAccount
from trust_ledger.domain.transactions import TrustTransaction, sum_signed
from trust_ledger.domain.value_objects import ZERO, TransactionType, round_cents
from trust_ledger.exceptions import (
    AccountNotFoundError,
    InactiveAccountError,
    NotInterestBearingError,
    ValidationError,
)
from trust_ledger.logging_config import LogContext, get_logger
from trust_ledger.repositories.interfaces import (
    LedgerDatabase,
    TrustAccountRepository,
    TrustTransactionRepository,
)
from trust_ledger.services.interfaces import (
    InterestAccrualResult,
    InterestAccrualStatus,
    InterestBatchResult,
    InterestService,
    LedgerService,
)

logger = get_logger(__name__)


def month_bounds(as_of_date: date) -> tuple[date, date]:
    start = as_of_date.replace(day=1)
    return start, start + relativedelta(months=1, days=-1)


def average_daily_balance(
    opening_balance: Decimal,
    transactions: Iterable[TrustTransaction],
    month_start: date,
    as_of_date: date,
) -> Decimal:
    """Average of the end-of-day balances from month_start through as_of_date.

    Transactions outside that window are ignored; anything earlier is
    expected to be part of ``opening_balance``.
    """
    if as_of_date < month_start:
        raise ValidationError(
            f"as_of_date {as_of_date} is before month start {month_start}"
        )
    daily_change: dict[date, Decimal] = defaultdict(lambda: ZERO)
    for txn in transactions:
        if month_start <= txn.transaction_date <= as_of_date:
            daily_change[txn.transaction_date] += txn.signed_amount

    balance = opening_balance
    total = ZERO
    days = 0
    day = month_start
    while day <= as_of_date:
        balance += daily_change[day]
        total += balance
        days += 1
        day += timedelta(days=1)
    return total / days


def interest_description(rate: Decimal, as_of_date: date) -> str:
    return f"Monthly interest at {rate.normalize():f}% APR for {as_of_date:%B %Y}"


class InterestServiceImpl(InterestService):
    def __init__(
        self,
        database: LedgerDatabase,
        account_repo: TrustAccountRepository,
        transaction_repo: TrustTransactionRepository,
        ledger_service: LedgerService,
    ) -> None:
        self._db = database
        self._account_repo = account_repo
        self._transaction_repo = transaction_repo
        self._ledger = ledger_service

    def accrue_interest_for_month(
        self, account_id: UUID, as_of_date: date, *, created_by: UUID | None = None
    ) -> InterestAccrualResult:
        """Post one month's interest for an account, at most once per month.

        The month is the calendar month containing ``as_of_date``; the
        average daily balance covers the 1st through ``as_of_date``.
        """
        month_start, month_end = month_bounds(as_of_date)

        with self._db.transaction():
            account = self._account_repo.get_for_update(account_id)
            if account is None:
                raise AccountNotFoundError(account_id)
            if not account.is_active:
                raise InactiveAccountError(account_id)
            if not account.is_interest_bearing:
                raise NotInterestBearingError(account_id)

            existing = self._transaction_repo.list_by_account(
                account_id,
                start_date=month_start,
                end_date=month_end,
                transaction_type=TransactionType.INTEREST,
            )
            if existing:
                logger.info(
                    "interest_already_applied",
                    account_id=str(account_id),
                    month=month_start.isoformat(),
                )
                return InterestAccrualResult(
                    account_id=account_id,
                    status=InterestAccrualStatus.ALREADY_APPLIED,
                    interest_amount=existing[0].amount,
                    transaction=existing[0],
                )

            adb = self._average_daily_balance(account, month_start, as_of_date)
            interest = round_cents(adb * account.monthly_interest_rate)
            if interest <= ZERO:
                logger.info(
                    "interest_not_applied",
                    account_id=str(account_id),
                    average_daily_balance=str(adb),
                )
                return InterestAccrualResult(
                    account_id=account_id,
                    status=InterestAccrualStatus.ZERO_INTEREST,
                    average_daily_balance=adb,
                )

            rate = account.interest_rate or ZERO
            txn = self._ledger.post(
                account_id,
                TransactionType.INTEREST,
                interest,
                as_of_date,
                description=interest_description(rate, as_of_date),
                created_by=created_by,
            )

        logger.info(
            "interest_applied",
            account_id=str(account_id),
            average_daily_balance=str(adb),
            interest=str(interest),
            transaction_id=str(txn.id),
        )
        return InterestAccrualResult(
            account_id=account_id,
            status=InterestAccrualStatus.APPLIED,
            average_daily_balance=adb,
            interest_amount=interest,
            transaction=txn,
        )

    def apply_monthly_interest(
        self, as_of_date: date, *, created_by: UUID | None = None
    ) -> InterestBatchResult:
        """Accrue interest for every active interest-bearing account.

        Each account is its own unit of work; one account failing does not
        stop the others.
        """
        with self._db.snapshot():
            accounts = list(self._account_repo.list_interest_bearing())

        batch = InterestBatchResult(as_of_date=as_of_date)
        with LogContext(interest_batch=as_of_date.strftime("%Y-%m")):
            for account in accounts:
                try:
                    result = self.accrue_interest_for_month(
                        account.id, as_of_date, created_by=created_by
                    )
                except Exception as exc:
                    logger.exception(
                        "interest_accrual_failed",
                        account_id=str(account.id),
                        error=str(exc),
                    )
                    result = InterestAccrualResult(
                        account_id=account.id,
                        status=InterestAccrualStatus.FAILED,
                        error=str(exc),
                    )
                batch.results.append(result)

            logger.info(
                "monthly_interest_batch_completed",
                as_of_date=as_of_date.isoformat(),
                total_accounts=batch.total_accounts,
                total_interest_applied=str(batch.total_interest_applied),
                failed=len(batch.failed),
            )
        return batch

    def _average_daily_balance(
        self, account: TrustAccount, month_start: date, as_of_date: date
    ) -> Decimal:
        opening = sum_signed(
            self._transaction_repo.list_by_account(
                account.id, end_date=month_start - timedelta(days=1)
            )
        )
        in_month = self._transaction_repo.list_by_account(
            account.id, start_date=month_start, end_date=as_of_date
        )
        return average_daily_balance(opening, in_month, month_start, as_of_date)
