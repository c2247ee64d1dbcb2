"""Tests for the SQLite repositories and unit of work."""

import sqlite3
import threading
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from trust_ledger.domain.accounts import TrustAccount
from trust_ledger.domain.transactions import TrustTransaction
from trust_ledger.domain.value_objects import TransactionType, TrustAccountType
from trust_ledger.exceptions import (
    ConcurrencyConflictError,
    DatabaseError,
    DuplicateActiveAccountError,
)
from trust_ledger.repositories.interfaces import sorted_ids
from trust_ledger.repositories.sqlite import SQLiteDatabase, SQLiteTrustAccountRepository


def _account(property_id=None, account_type=TrustAccountType.ESCROW, **kwargs) -> TrustAccount:
    return TrustAccount(
        property_id=property_id or uuid4(),
        name=kwargs.pop("name", "Escrow"),
        account_type=account_type,
        **kwargs,
    )


def _txn(account: TrustAccount, amount: str, on: date, **kwargs) -> TrustTransaction:
    return TrustTransaction(
        trust_account_id=account.id,
        transaction_type=kwargs.pop("transaction_type", TransactionType.DEPOSIT),
        amount=Decimal(amount),
        transaction_date=on,
        balance_after=kwargs.pop("balance_after", Decimal(amount)),
        **kwargs,
    )


class TestSQLiteTrustAccountRepository:
    def test_add_and_get(self, account_repo):
        account = _account(
            bank_name="First Community Bank",
            is_interest_bearing=True,
            interest_rate=Decimal("2.500"),
            balance=Decimal("10.00"),
            created_by=uuid4(),
        )
        account_repo.add(account)

        stored = account_repo.get(account.id)

        assert stored == account

    def test_get_missing(self, account_repo):
        assert account_repo.get(uuid4()) is None

    def test_partial_unique_index(self, account_repo):
        property_id = uuid4()
        account_repo.add(_account(property_id))

        with pytest.raises(DuplicateActiveAccountError):
            account_repo.add(_account(property_id, name="Second"))

    def test_inactive_accounts_do_not_conflict(self, account_repo):
        property_id = uuid4()
        account_repo.add(_account(property_id, is_active=False))
        account_repo.add(_account(property_id, is_active=False))
        account_repo.add(_account(property_id))

        assert len(list(account_repo.list_by_property(property_id, include_inactive=True))) == 3
        assert len(list(account_repo.list_by_property(property_id))) == 1

    def test_get_active_by_type(self, account_repo):
        property_id = uuid4()
        closed = _account(property_id, is_active=False)
        open_ = _account(property_id)
        account_repo.add(closed)
        account_repo.add(open_)

        assert account_repo.get_active_by_type(property_id, TrustAccountType.ESCROW).id == open_.id
        assert account_repo.get_active_by_type(property_id, TrustAccountType.RESERVE) is None

    def test_get_many_for_update(self, account_repo):
        first, second = _account(), _account()
        account_repo.add(first)
        account_repo.add(second)

        accounts = account_repo.get_many_for_update([second.id, first.id, uuid4()])

        assert set(accounts) == {first.id, second.id}

    def test_update(self, account_repo):
        account = _account()
        account_repo.add(account)
        account.balance = Decimal("123.45")
        account.name = "Renamed"
        account.deactivate()

        account_repo.update(account)

        stored = account_repo.get(account.id)
        assert stored.balance == Decimal("123.45")
        assert stored.name == "Renamed"
        assert not stored.is_active

    def test_list_interest_bearing(self, account_repo):
        earning = _account(is_interest_bearing=True, interest_rate=Decimal("1"))
        closed = _account(is_interest_bearing=True, interest_rate=Decimal("1"), is_active=False)
        account_repo.add(earning)
        account_repo.add(closed)
        account_repo.add(_account())

        assert [a.id for a in account_repo.list_interest_bearing()] == [earning.id]


class TestSQLiteTrustTransactionRepository:
    def test_add_and_get(self, account_repo, transaction_repo):
        account = _account()
        account_repo.add(account)
        txn = _txn(
            account,
            "99.99",
            date(2025, 1, 5),
            description="Escrow funding",
            reference_number="W-1",
            tenant_id=uuid4(),
            lease_id=uuid4(),
        )
        transaction_repo.add(txn)

        assert transaction_repo.get(txn.id) == txn

    def test_foreign_key(self, transaction_repo):
        with pytest.raises(sqlite3.IntegrityError):
            transaction_repo.add(_txn(_account(), "1.00", date(2025, 1, 5)))

    def test_chronological_order(self, account_repo, transaction_repo):
        account = _account()
        account_repo.add(account)
        now = datetime.now(UTC)
        later_date = _txn(account, "1.00", date(2025, 1, 6), created_at=now)
        same_day_late = _txn(account, "2.00", date(2025, 1, 5), created_at=now)
        same_day_early = _txn(
            account, "3.00", date(2025, 1, 5), created_at=now - timedelta(seconds=5)
        )
        for txn in (later_date, same_day_late, same_day_early):
            transaction_repo.add(txn)

        ordered = transaction_repo.list_by_account(account.id)

        assert [t.id for t in ordered] == [same_day_early.id, same_day_late.id, later_date.id]

    def test_insertion_breaks_ties(self, account_repo, transaction_repo):
        account = _account()
        account_repo.add(account)
        created = datetime.now(UTC)
        txns = [_txn(account, f"{i}.00", date(2025, 1, 5), created_at=created) for i in (1, 2, 3)]
        for txn in txns:
            transaction_repo.add(txn)

        assert [t.id for t in transaction_repo.list_by_account(account.id)] == [
            t.id for t in txns
        ]

    def test_get_latest_posted_ignores_transaction_date(self, account_repo, transaction_repo):
        account = _account()
        account_repo.add(account)
        transaction_repo.add(_txn(account, "10.00", date(2025, 3, 1)))
        back_dated = _txn(account, "5.00", date(2025, 1, 1))
        transaction_repo.add(back_dated)

        assert transaction_repo.get_latest_posted(account.id).id == back_dated.id

    def test_list_by_property(self, account_repo, transaction_repo):
        property_id = uuid4()
        escrow = _account(property_id)
        reserve = _account(property_id, TrustAccountType.RESERVE)
        elsewhere = _account()
        for account in (escrow, reserve, elsewhere):
            account_repo.add(account)
        inside = [
            _txn(escrow, "1.00", date(2025, 2, 1)),
            _txn(reserve, "2.00", date(2025, 2, 2)),
        ]
        for txn in inside:
            transaction_repo.add(txn)
        transaction_repo.add(_txn(escrow, "3.00", date(2025, 5, 1)))
        transaction_repo.add(_txn(elsewhere, "4.00", date(2025, 2, 1)))

        txns = transaction_repo.list_by_property(property_id, date(2025, 2, 1), date(2025, 2, 28))

        assert [t.id for t in txns] == [t.id for t in inside]

    def test_list_by_property_open_ended(self, account_repo, transaction_repo):
        property_id = uuid4()
        escrow = _account(property_id)
        account_repo.add(escrow)
        early = _txn(escrow, "1.00", date(2024, 12, 31))
        late = _txn(escrow, "2.00", date(2025, 3, 1))
        transaction_repo.add(late)
        transaction_repo.add(early)

        everything = transaction_repo.list_by_property(property_id)
        through_january = transaction_repo.list_by_property(
            property_id, end_date=date(2025, 1, 31)
        )

        assert [t.id for t in everything] == [early.id, late.id]
        assert [t.id for t in through_january] == [early.id]

    def test_mark_reconciled(self, account_repo, transaction_repo):
        account = _account()
        account_repo.add(account)
        txn = _txn(account, "1.00", date(2025, 2, 1))
        transaction_repo.add(txn)
        user = uuid4()

        changed = transaction_repo.mark_reconciled(
            account.id, [txn.id, txn.id], date(2025, 3, 1), user
        )
        repeated = transaction_repo.mark_reconciled(
            account.id, [txn.id], date(2025, 4, 1), uuid4()
        )

        assert [t.id for t in changed] == [txn.id]
        assert repeated == []
        stored = transaction_repo.get(txn.id)
        assert stored.is_reconciled
        assert stored.reconciled_by == user
        assert stored.reconciled_date == date(2025, 3, 1)


class TestUnitOfWork:
    def test_rollback_discards_writes(self, db, account_repo):
        account = _account()

        with pytest.raises(RuntimeError):
            with db.transaction():
                account_repo.add(account)
                raise RuntimeError("abort")

        assert account_repo.get(account.id) is None
        assert not db.in_transaction

    def test_nested_units_commit_together(self, db, account_repo):
        first, second = _account(), _account()

        with db.transaction():
            account_repo.add(first)
            with db.transaction():
                account_repo.add(second)
            assert db.in_transaction

        assert account_repo.get(first.id) is not None
        assert account_repo.get(second.id) is not None

    def test_inner_failure_rolls_back_outer(self, db, account_repo):
        first, second = _account(), _account()

        with pytest.raises(RuntimeError):
            with db.transaction():
                account_repo.add(first)
                with db.transaction():
                    account_repo.add(second)
                    raise RuntimeError("abort")

        assert account_repo.get(first.id) is None
        assert account_repo.get(second.id) is None

    def test_on_commit_runs_after_commit(self, db):
        calls = []

        with db.transaction():
            db.on_commit(lambda: calls.append("committed"))
            assert calls == []

        assert calls == ["committed"]

    def test_on_commit_dropped_on_rollback(self, db):
        calls = []

        with pytest.raises(RuntimeError):
            with db.transaction():
                db.on_commit(lambda: calls.append("committed"))
                raise RuntimeError("abort")

        with db.transaction():
            pass

        assert calls == []

    def test_on_commit_outside_unit_runs_immediately(self, db):
        calls = []

        db.on_commit(lambda: calls.append("now"))

        assert calls == ["now"]

    def test_write_inside_snapshot_is_refused(self, db):
        with pytest.raises(DatabaseError):
            with db.snapshot():
                with db.transaction():
                    pass

    def test_snapshot_inside_write_joins_it(self, db, account_repo):
        account = _account()

        with db.transaction():
            account_repo.add(account)
            with db.snapshot():
                assert account_repo.get(account.id) is not None

    def test_duplicate_account_error_passes_through_unit(self, db, account_repo):
        property_id = uuid4()
        account_repo.add(_account(property_id))

        with pytest.raises(DuplicateActiveAccountError):
            with db.transaction():
                account_repo.add(_account(property_id))


class TestFileLocking:
    def test_second_writer_times_out(self, tmp_path):
        path = tmp_path / "ledger.db"
        first = SQLiteDatabase(path, lock_timeout=0.1)
        second = SQLiteDatabase(path, lock_timeout=0.1)
        first.initialize()
        second.initialize()

        try:
            with first.transaction():
                with pytest.raises(ConcurrencyConflictError):
                    with second.transaction():
                        pass
            assert not second.in_transaction
        finally:
            first.close()
            second.close()


class TestFileSnapshots:
    @pytest.fixture
    def file_db(self, tmp_path):
        database = SQLiteDatabase(tmp_path / "ledger.db", check_same_thread=False, lock_timeout=0.1)
        database.initialize()
        yield database
        database.close()

    def test_runs_in_wal_mode(self, file_db):
        mode = file_db.get_connection().execute("PRAGMA journal_mode").fetchone()[0]

        assert mode == "wal"
        assert file_db.supports_concurrent_reads

    def test_memory_database_shares_the_write_connection(self, db):
        assert not db.supports_concurrent_reads

    def test_snapshot_sees_committed_state_while_writer_is_open(self, file_db):
        repo = SQLiteTrustAccountRepository(file_db)
        committed, pending = _account(), _account()
        repo.add(committed)
        seen = {}

        def read():
            with file_db.snapshot():
                seen["committed"] = repo.get(committed.id) is not None
                seen["pending"] = repo.get(pending.id) is not None

        with file_db.transaction():
            repo.add(pending)
            reader = threading.Thread(target=read)
            reader.start()
            reader.join(timeout=5)

        assert seen == {"committed": True, "pending": False}
        assert repo.get(pending.id) is not None

    def test_snapshot_uses_its_own_connection(self, file_db):
        primary = file_db.get_connection()

        with file_db.snapshot():
            inside = file_db.get_connection()
            with file_db.snapshot():
                assert file_db.get_connection() is inside

        assert inside is not primary
        assert file_db.get_connection() is primary

    def test_write_inside_snapshot_is_refused(self, file_db):
        with pytest.raises(DatabaseError):
            with file_db.snapshot():
                with file_db.transaction():
                    pass

        with file_db.transaction():
            pass

    def test_snapshot_inside_write_joins_it(self, file_db):
        repo = SQLiteTrustAccountRepository(file_db)
        account = _account()

        with file_db.transaction():
            repo.add(account)
            with file_db.snapshot():
                assert repo.get(account.id) is not None


def test_sorted_ids_is_stable_and_unique():
    a, b = uuid4(), uuid4()

    assert sorted_ids([b, a, b]) == sorted([a, b], key=str)
