"""Statement service: period statements and tenant deposit ledgers."""

from __future__ import annotations

import csv
import io
import re
from collections.abc import Callable
from datetime import date, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID

from dateutil.relativedelta import relativedelta

from trust_ledger.domain.accounts import TrustAccount
from trust_ledger.domain.reports import (
    PeriodTotals,
    Statement,
    StatementFile,
    StatementLine,
    TenantLedger,
)
from trust_ledger.domain.transactions import TrustTransaction, sum_signed
from trust_ledger.domain.value_objects import StatementFormat, TrustAccountType
from trust_ledger.exceptions import (
    AccountNotFoundError,
    ConfigurationError,
    DepositAccountNotFoundError,
    LeaseNotFoundError,
    UnsupportedFormatError,
    ValidationError,
)
from trust_ledger.logging_config import get_logger
from trust_ledger.repositories.interfaces import (
    LedgerDatabase,
    TrustAccountRepository,
    TrustTransactionRepository,
)
from trust_ledger.services.interfaces import LeaseDirectory, StatementService

logger = get_logger(__name__)

CSV_HEADER = [
    "Date",
    "Type",
    "Description",
    "Amount",
    "Balance",
    "Tenant",
    "Reference",
    "Reconciled",
]


def statement_filename(account_name: str, start_date: date, end_date: date) -> str:
    slug = re.sub(r"\s+", "_", account_name).lower()
    return (
        f"trust_account_statement_{slug}_"
        f"{start_date.isoformat()}_{end_date.isoformat()}.csv"
    )


def build_tenant_ledgers(transactions: list[TrustTransaction]) -> list[TenantLedger]:
    """Group tenant-linked transactions by tenant, in order of first appearance."""
    grouped: dict[UUID, list[TrustTransaction]] = {}
    for txn in transactions:
        if txn.tenant_id is not None:
            grouped.setdefault(txn.tenant_id, []).append(txn)
    return [TenantLedger.build(tenant_id, txns) for tenant_id, txns in grouped.items()]


def _serialize(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _serialize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_serialize(item) for item in value]
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    return value


def _totals_dict(totals: PeriodTotals) -> dict[str, Decimal]:
    return {
        "total_deposits": totals.deposits,
        "total_withdrawals": totals.withdrawals,
        "total_interest": totals.interest,
        "total_fees": totals.fees,
    }


class StatementServiceImpl(StatementService):
    """Builds account statements from the transaction history.

    Running balances are recomputed from the opening balance rather than
    read from ``balance_after``; lines where the two differ are reported by
    ``Statement.discrepancies``.
    """

    def __init__(
        self,
        database: LedgerDatabase,
        account_repo: TrustAccountRepository,
        transaction_repo: TrustTransactionRepository,
        today: Callable[[], date] = date.today,
        lease_directory: LeaseDirectory | None = None,
    ) -> None:
        self._db = database
        self._account_repo = account_repo
        self._transaction_repo = transaction_repo
        self._today = today
        self._lease_directory = lease_directory

    def generate_statement(
        self,
        account_id: UUID,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> Statement:
        """Statement for a period, defaulting to the current calendar month.

        A start date on its own runs to the end of its month, and an end
        date on its own starts at the first of its month.
        """
        start = start_date or (end_date or self._today()).replace(day=1)
        end = end_date or start.replace(day=1) + relativedelta(months=1, days=-1)
        if start > end:
            raise ValidationError(
                f"Statement start date {start} is after end date {end}",
                context={"start_date": start.isoformat(), "end_date": end.isoformat()},
            )

        with self._db.snapshot():
            account = self._get_account(account_id)
            opening_balance = sum_signed(
                self._transaction_repo.list_by_account(
                    account_id, end_date=start - timedelta(days=1)
                )
            )
            transactions = self._transaction_repo.list_by_account(
                account_id, start_date=start, end_date=end
            )

        lines: list[StatementLine] = []
        running = opening_balance
        for txn in transactions:
            running += txn.signed_amount
            lines.append(StatementLine(transaction=txn, running_balance=running))

        statement = Statement(
            account=account,
            start_date=start,
            end_date=end,
            opening_balance=opening_balance,
            lines=lines,
            totals=PeriodTotals.from_transactions(transactions),
            tenant_ledgers=(
                build_tenant_ledgers(transactions)
                if account.is_security_deposit
                else None
            ),
        )
        if statement.discrepancies:
            logger.warning(
                "statement_balance_discrepancies",
                account_id=str(account_id),
                count=len(statement.discrepancies),
            )
        logger.info(
            "statement_generated",
            account_id=str(account_id),
            start_date=start.isoformat(),
            end_date=end.isoformat(),
            transactions=len(lines),
        )
        return statement

    def render_statement(
        self, statement: Statement, fmt: StatementFormat | str
    ) -> dict[str, Any] | StatementFile:
        try:
            statement_format = StatementFormat(fmt)
        except ValueError:
            raise UnsupportedFormatError(str(fmt)) from None

        if statement_format == StatementFormat.JSON:
            return self._to_json(statement)
        return self._to_csv(statement)

    def tenant_deposit_balance(self, account_id: UUID, tenant_id: UUID) -> TenantLedger:
        """All-time deposit ledger for one tenant on one account."""
        with self._db.snapshot():
            self._get_account(account_id)
            transactions = self._transaction_repo.list_by_account(
                account_id, tenant_id=tenant_id
            )
        return TenantLedger.build(tenant_id, transactions)

    def security_deposit_balance(self, tenant_id: UUID) -> TenantLedger:
        """Deposit ledger for a tenant, found through the tenant's active lease.

        The lease gives the property, and the property's active security
        deposit account holds the tenant's funds.
        """
        if self._lease_directory is None:
            raise ConfigurationError("No lease directory configured")
        record = self._lease_directory.find_active_lease(tenant_id)
        if record is None:
            raise LeaseNotFoundError(tenant_id)

        with self._db.snapshot():
            account = self._account_repo.get_active_by_type(
                record.property_id, TrustAccountType.SECURITY_DEPOSIT
            )
            if account is None:
                raise DepositAccountNotFoundError(record.property_id)
            transactions = self._transaction_repo.list_by_account(
                account.id, tenant_id=tenant_id
            )
        return TenantLedger.build(tenant_id, transactions)

    def _get_account(self, account_id: UUID) -> TrustAccount:
        account = self._account_repo.get(account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    def _to_json(self, statement: Statement) -> dict[str, Any]:
        account = statement.account
        return _serialize(
            {
                "account": {
                    "id": account.id,
                    "property_id": account.property_id,
                    "name": account.name,
                    "type": account.account_type.value,
                    "bank_name": account.bank_name,
                    "account_number": account.account_number,
                    "is_interest_bearing": account.is_interest_bearing,
                    "interest_rate": account.interest_rate,
                    "is_active": account.is_active,
                },
                "statement_period": {
                    "start_date": statement.start_date,
                    "end_date": statement.end_date,
                },
                "summary": {
                    "opening_balance": statement.opening_balance,
                    "closing_balance": statement.closing_balance,
                    **_totals_dict(statement.totals),
                    "net_change": statement.net_change,
                },
                "tenant_summaries": (
                    None
                    if statement.tenant_ledgers is None
                    else [
                        {
                            "tenant_id": ledger.tenant_id,
                            **_totals_dict(ledger.totals),
                            "balance": ledger.balance,
                            "transaction_ids": [t.id for t in ledger.transactions],
                        }
                        for ledger in statement.tenant_ledgers
                    ]
                ),
                "transactions": [
                    {
                        "id": line.transaction.id,
                        "transaction_date": line.transaction.transaction_date,
                        "transaction_type": line.transaction.transaction_type.value,
                        "description": line.transaction.description,
                        "amount": line.transaction.amount,
                        "running_balance": line.running_balance,
                        "balance_after": line.transaction.balance_after,
                        "tenant_id": line.transaction.tenant_id,
                        "lease_id": line.transaction.lease_id,
                        "related_account_id": line.transaction.related_account_id,
                        "reference_number": line.transaction.reference_number,
                        "is_reconciled": line.transaction.is_reconciled,
                    }
                    for line in statement.lines
                ],
            }
        )

    def _to_csv(self, statement: Statement) -> StatementFile:
        output = io.StringIO()
        writer = csv.writer(output, lineterminator="\n")
        writer.writerow(CSV_HEADER)
        for line in statement.lines:
            txn = line.transaction
            amount = f"-{txn.amount}" if txn.transaction_type.is_debit else str(txn.amount)
            writer.writerow(
                [
                    txn.transaction_date.strftime("%m/%d/%Y"),
                    txn.transaction_type.value,
                    txn.description,
                    amount,
                    str(line.running_balance),
                    str(txn.tenant_id) if txn.tenant_id else "",
                    txn.reference_number or "",
                    "Yes" if txn.is_reconciled else "No",
                ]
            )
        return StatementFile(
            content=output.getvalue(),
            filename=statement_filename(
                statement.account.name, statement.start_date, statement.end_date
            ),
            content_type="text/csv",
        )
