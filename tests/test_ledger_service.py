"""Tests for LedgerService implementation."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from trust_ledger.domain.events import TenantFundsEventKind
from trust_ledger.domain.value_objects import TransactionType, TrustAccountType
from trust_ledger.exceptions import (
    AccountNotFoundError,
    InactiveAccountError,
    InsufficientFundsError,
    InvalidAmountError,
    NotInterestBearingError,
    TenantRequiredError,
    TransactionNotFoundError,
    ValidationError,
)
from trust_ledger.services.interfaces import NotificationService
from trust_ledger.services.ledger import LedgerServiceImpl


class TestPost:
    def test_deposit_then_fee(self, ledger_service, escrow_account):
        deposit = ledger_service.record_deposit(
            escrow_account.id, "1000.00", date(2025, 1, 5), description="Initial funding"
        )
        fee = ledger_service.record_fee(
            escrow_account.id, "50.00", date(2025, 1, 31), description="Bank fee"
        )

        assert deposit.balance_after == Decimal("1000.00")
        assert fee.balance_after == Decimal("950.00")
        assert ledger_service.get_balance(escrow_account.id) == Decimal("950.00")

    def test_overdraw_is_rejected(self, ledger_service, escrow_account):
        ledger_service.record_deposit(escrow_account.id, "950.00", date(2025, 1, 5))

        with pytest.raises(InsufficientFundsError) as exc_info:
            ledger_service.record_fee(escrow_account.id, "2000.00", date(2025, 1, 6))

        assert exc_info.value.context["available"] == "950.00"
        assert ledger_service.get_balance(escrow_account.id) == Decimal("950.00")
        assert len(ledger_service.list_transactions(escrow_account.id)) == 1

    def test_withdrawal_to_exactly_zero(self, ledger_service, escrow_account):
        ledger_service.record_deposit(escrow_account.id, "300.00", date(2025, 1, 5))

        txn = ledger_service.record_withdrawal(escrow_account.id, "300.00", date(2025, 1, 6))

        assert txn.balance_after == Decimal("0.00")

    def test_post_by_type_name(self, ledger_service, escrow_account):
        txn = ledger_service.post(escrow_account.id, "deposit", "12.34", date(2025, 1, 5))

        assert txn.transaction_type == TransactionType.DEPOSIT

    def test_unknown_type(self, ledger_service, escrow_account):
        with pytest.raises(ValidationError):
            ledger_service.post(escrow_account.id, "refund", "1.00", date(2025, 1, 5))

    @pytest.mark.parametrize("amount", ["0", "-10.00", "1.001"])
    def test_invalid_amount(self, ledger_service, escrow_account, amount):
        with pytest.raises(InvalidAmountError):
            ledger_service.record_deposit(escrow_account.id, amount, date(2025, 1, 5))

    def test_unknown_account(self, ledger_service):
        with pytest.raises(AccountNotFoundError):
            ledger_service.record_deposit(uuid4(), "10.00", date(2025, 1, 5))

    def test_inactive_account(self, ledger_service, account_service, escrow_account):
        account_service.deactivate_account(escrow_account.id)

        with pytest.raises(InactiveAccountError):
            ledger_service.record_deposit(escrow_account.id, "10.00", date(2025, 1, 5))

    def test_interest_requires_interest_bearing_account(
        self, ledger_service, escrow_account
    ):
        with pytest.raises(NotInterestBearingError):
            ledger_service.record_interest(escrow_account.id, "1.00", date(2025, 1, 31))

    def test_interest_on_interest_bearing_account(self, ledger_service, reserve_account):
        txn = ledger_service.record_interest(reserve_account.id, "1.00", date(2025, 1, 31))

        assert txn.balance_after == Decimal("1.00")

    def test_stores_all_fields(self, ledger_service, deposit_account, tenant_id, user_id):
        lease_id = uuid4()
        txn = ledger_service.record_deposit(
            deposit_account.id,
            "1500.00",
            date(2025, 2, 1),
            description="Security deposit, unit 4B",
            reference_number="CHK-1042",
            tenant_id=tenant_id,
            lease_id=lease_id,
            created_by=user_id,
        )

        stored = ledger_service.get_transaction(txn.id)
        assert stored.amount == Decimal("1500.00")
        assert stored.description == "Security deposit, unit 4B"
        assert stored.reference_number == "CHK-1042"
        assert stored.tenant_id == tenant_id
        assert stored.lease_id == lease_id
        assert stored.created_by == user_id
        assert stored.related_account_id is None
        assert not stored.is_reconciled


class TestSecurityDepositRules:
    def test_deposit_requires_tenant(self, ledger_service, deposit_account):
        with pytest.raises(TenantRequiredError):
            ledger_service.record_deposit(deposit_account.id, "1500.00", date(2025, 2, 1))

    def test_withdrawal_requires_tenant(self, ledger_service, deposit_account, tenant_id):
        ledger_service.record_deposit(
            deposit_account.id, "1500.00", date(2025, 2, 1), tenant_id=tenant_id
        )

        with pytest.raises(TenantRequiredError):
            ledger_service.record_withdrawal(deposit_account.id, "100.00", date(2025, 2, 2))

    def test_fee_does_not_require_tenant(self, ledger_service, deposit_account, tenant_id):
        ledger_service.record_deposit(
            deposit_account.id, "1500.00", date(2025, 2, 1), tenant_id=tenant_id
        )

        fee = ledger_service.record_fee(deposit_account.id, "5.00", date(2025, 2, 28))

        assert fee.balance_after == Decimal("1495.00")

    def test_escrow_does_not_require_tenant(self, ledger_service, escrow_account):
        txn = ledger_service.record_deposit(escrow_account.id, "10.00", date(2025, 2, 1))

        assert txn.tenant_id is None


class TestNotifications:
    def test_tenant_deposit_notifies(
        self, ledger_service, deposit_account, tenant_id, notifications
    ):
        txn = ledger_service.record_deposit(
            deposit_account.id, "1500.00", date(2025, 2, 1), tenant_id=tenant_id
        )

        assert len(notifications.events) == 1
        event = notifications.events[0]
        assert event.kind == TenantFundsEventKind.DEPOSIT
        assert event.tenant_id == tenant_id
        assert event.amount == Decimal("1500.00")
        assert event.account_type == TrustAccountType.SECURITY_DEPOSIT
        assert event.transaction_id == txn.id

    def test_tenant_withdrawal_notifies(
        self, ledger_service, deposit_account, tenant_id, notifications
    ):
        ledger_service.record_deposit(
            deposit_account.id, "1500.00", date(2025, 2, 1), tenant_id=tenant_id
        )
        ledger_service.record_withdrawal(
            deposit_account.id, "1500.00", date(2025, 8, 1), tenant_id=tenant_id
        )

        assert [e.kind for e in notifications.events] == [
            TenantFundsEventKind.DEPOSIT,
            TenantFundsEventKind.WITHDRAWAL,
        ]

    def test_no_notification_without_tenant(self, ledger_service, escrow_account, notifications):
        ledger_service.record_deposit(escrow_account.id, "10.00", date(2025, 2, 1))

        assert notifications.events == []

    def test_fee_does_not_notify(
        self, ledger_service, escrow_account, tenant_id, notifications
    ):
        ledger_service.record_deposit(escrow_account.id, "10.00", date(2025, 2, 1))
        ledger_service.record_fee(
            escrow_account.id, "1.00", date(2025, 2, 2), tenant_id=tenant_id
        )

        assert notifications.events == []

    def test_sent_only_after_commit(
        self, db, ledger_service, deposit_account, tenant_id, notifications
    ):
        with db.transaction():
            ledger_service.record_deposit(
                deposit_account.id, "1500.00", date(2025, 2, 1), tenant_id=tenant_id
            )
            assert notifications.events == []

        assert len(notifications.events) == 1

    def test_not_sent_when_rolled_back(
        self, db, ledger_service, deposit_account, tenant_id, notifications
    ):
        with pytest.raises(RuntimeError):
            with db.transaction():
                ledger_service.record_deposit(
                    deposit_account.id, "1500.00", date(2025, 2, 1), tenant_id=tenant_id
                )
                raise RuntimeError("abort")

        assert notifications.events == []
        assert ledger_service.get_balance(deposit_account.id) == Decimal("0")

    def test_notification_failure_does_not_undo_posting(
        self, db, account_repo, transaction_repo, deposit_account, tenant_id
    ):
        class FailingNotificationService(NotificationService):
            def notify(self, event):
                raise ConnectionError("mail server down")

        ledger = LedgerServiceImpl(
            db,
            account_repo,
            transaction_repo,
            notification_service=FailingNotificationService(),
        )

        txn = ledger.record_deposit(
            deposit_account.id, "1500.00", date(2025, 2, 1), tenant_id=tenant_id
        )

        assert ledger.get_transaction(txn.id).amount == Decimal("1500.00")
        assert ledger.get_balance(deposit_account.id) == Decimal("1500.00")


class TestQueries:
    def test_list_transactions_in_date_order(self, ledger_service, escrow_account):
        late = ledger_service.record_deposit(escrow_account.id, "10.00", date(2025, 3, 1))
        early = ledger_service.record_deposit(escrow_account.id, "20.00", date(2025, 1, 1))
        middle = ledger_service.record_fee(escrow_account.id, "5.00", date(2025, 2, 1))

        txns = ledger_service.list_transactions(escrow_account.id)

        assert [t.id for t in txns] == [early.id, middle.id, late.id]

    def test_same_day_ordered_by_posting(self, ledger_service, escrow_account):
        first = ledger_service.record_deposit(escrow_account.id, "10.00", date(2025, 1, 1))
        second = ledger_service.record_deposit(escrow_account.id, "20.00", date(2025, 1, 1))
        third = ledger_service.record_fee(escrow_account.id, "5.00", date(2025, 1, 1))

        txns = ledger_service.list_transactions(escrow_account.id)

        assert [t.id for t in txns] == [first.id, second.id, third.id]

    def test_list_filters(self, ledger_service, escrow_account):
        ledger_service.record_deposit(escrow_account.id, "10.00", date(2025, 1, 1))
        fee = ledger_service.record_fee(escrow_account.id, "5.00", date(2025, 2, 1))
        ledger_service.record_deposit(escrow_account.id, "10.00", date(2025, 3, 1))

        by_type = ledger_service.list_transactions(
            escrow_account.id, transaction_type=TransactionType.FEE
        )
        by_range = ledger_service.list_transactions(
            escrow_account.id, start_date=date(2025, 1, 15), end_date=date(2025, 2, 15)
        )

        assert [t.id for t in by_type] == [fee.id]
        assert [t.id for t in by_range] == [fee.id]

    def test_list_for_unknown_account(self, ledger_service):
        with pytest.raises(AccountNotFoundError):
            ledger_service.list_transactions(uuid4())

    def test_get_unknown_transaction(self, ledger_service):
        with pytest.raises(TransactionNotFoundError):
            ledger_service.get_transaction(uuid4())

    def test_get_balance_unknown_account(self, ledger_service):
        with pytest.raises(AccountNotFoundError):
            ledger_service.get_balance(uuid4())


class TestVerifyBalance:
    def test_consistent_after_postings(self, ledger_service, escrow_account):
        ledger_service.record_deposit(escrow_account.id, "1000.00", date(2025, 1, 5))
        ledger_service.record_fee(escrow_account.id, "50.00", date(2025, 1, 31))

        check = ledger_service.verify_balance(escrow_account.id)

        assert check.is_consistent
        assert check.replayed_balance == Decimal("950.00")
        assert check.latest_balance_after == Decimal("950.00")

    def test_new_account_is_consistent(self, ledger_service, escrow_account):
        check = ledger_service.verify_balance(escrow_account.id)

        assert check.is_consistent
        assert check.latest_balance_after is None

    def test_back_dated_posting_is_consistent(self, ledger_service, escrow_account):
        ledger_service.record_deposit(escrow_account.id, "1000.00", date(2025, 3, 1))
        ledger_service.record_fee(escrow_account.id, "25.00", date(2025, 1, 1))

        assert ledger_service.verify_balance(escrow_account.id).is_consistent

    def test_detects_tampered_balance(self, ledger_service, account_repo, escrow_account):
        ledger_service.record_deposit(escrow_account.id, "1000.00", date(2025, 1, 5))
        account = account_repo.get(escrow_account.id)
        account.balance = Decimal("999.00")
        account_repo.update(account)

        check = ledger_service.verify_balance(escrow_account.id)

        assert not check.is_consistent
        assert check.stored_balance == Decimal("999.00")
