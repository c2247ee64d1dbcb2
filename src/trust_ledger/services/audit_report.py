"""Audit report service: property-wide trust account review."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable
from datetime import date
from uuid import UUID

from trust_ledger.domain.accounts import TrustAccount
from trust_ledger.domain.reports import (
    AccountAuditSection,
    AuditReport,
    AuditSummary,
    DepositCompliance,
    PeriodTotals,
)
from trust_ledger.domain.transactions import TrustTransaction, sum_signed
from trust_ledger.domain.value_objects import ZERO
from trust_ledger.exceptions import PropertyNotFoundError, ValidationError
from trust_ledger.logging_config import get_logger
from trust_ledger.repositories.interfaces import (
    LedgerDatabase,
    TrustAccountRepository,
    TrustTransactionRepository,
)
from trust_ledger.services.interfaces import AuditReportService, LeaseDirectory

logger = get_logger(__name__)


class AuditReportServiceImpl(AuditReportService):
    """Summarizes every trust account of a property over a period.

    Inactive accounts are included so closed accounts still show their
    history. Security deposit compliance compares the active deposit
    account's balance with the deposits required by active leases.
    """

    def __init__(
        self,
        database: LedgerDatabase,
        account_repo: TrustAccountRepository,
        transaction_repo: TrustTransactionRepository,
        lease_directory: LeaseDirectory | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._db = database
        self._account_repo = account_repo
        self._transaction_repo = transaction_repo
        self._lease_directory = lease_directory
        self._today = today

    def generate_audit_report(
        self,
        property_id: UUID,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> AuditReport:
        today = self._today()
        start = start_date or date((end_date or today).year, 1, 1)
        end = end_date or max(today, start)
        if start > end:
            raise ValidationError(
                f"Report start date {start} is after end date {end}",
                context={"start_date": start.isoformat(), "end_date": end.isoformat()},
            )

        with self._db.snapshot():
            accounts = list(
                self._account_repo.list_by_property(property_id, include_inactive=True)
            )
            if not accounts:
                raise PropertyNotFoundError(property_id)
            history = self._transaction_repo.list_by_property(property_id, end_date=end)
        sections = _sections(accounts, history, start)

        totals = PeriodTotals()
        for section in sections:
            totals = totals + section.totals
        summary = AuditSummary(
            total_accounts=len(accounts),
            total_transactions=sum(len(s.transactions) for s in sections),
            totals=totals,
            current_balance=sum((a.balance for a in accounts), ZERO),
        )
        unreconciled = sorted(
            (t for s in sections for t in s.transactions if not t.is_reconciled),
            key=lambda t: (t.transaction_date, t.created_at),
        )

        report = AuditReport(
            property_id=property_id,
            start_date=start,
            end_date=end,
            summary=summary,
            accounts=sections,
            unreconciled_transactions=unreconciled,
            deposit_compliance=self._deposit_compliance(property_id, accounts),
        )
        logger.info(
            "audit_report_generated",
            property_id=str(property_id),
            start_date=start.isoformat(),
            end_date=end.isoformat(),
            accounts=summary.total_accounts,
            transactions=summary.total_transactions,
            unreconciled=len(unreconciled),
        )
        return report

    def _deposit_compliance(
        self, property_id: UUID, accounts: list[TrustAccount]
    ) -> DepositCompliance | None:
        deposit_account = next(
            (a for a in accounts if a.is_security_deposit and a.is_active), None
        )
        if deposit_account is None or self._lease_directory is None:
            return None

        leases = [
            lease
            for lease in self._lease_directory.list_active_leases(property_id)
            if lease.required_deposit > ZERO
        ]
        compliance = DepositCompliance(
            account_id=deposit_account.id,
            account_balance=deposit_account.balance,
            required_total=sum((lease.required_deposit for lease in leases), ZERO),
            leases=leases,
        )
        if not compliance.is_compliant:
            logger.warning(
                "security_deposit_shortfall",
                property_id=str(property_id),
                account_id=str(deposit_account.id),
                balance=str(compliance.account_balance),
                required=str(compliance.required_total),
            )
        return compliance


def _sections(
    accounts: list[TrustAccount],
    history: list[TrustTransaction],
    start: date,
) -> list[AccountAuditSection]:
    """Split a property's chronological history into per-account sections."""
    before: dict[UUID, list[TrustTransaction]] = defaultdict(list)
    during: dict[UUID, list[TrustTransaction]] = defaultdict(list)
    for txn in history:
        bucket = during if txn.transaction_date >= start else before
        bucket[txn.trust_account_id].append(txn)
    return [
        AccountAuditSection(
            account=account,
            opening_balance=sum_signed(before[account.id]),
            transactions=during[account.id],
            totals=PeriodTotals.from_transactions(during[account.id]),
        )
        for account in accounts
    ]
