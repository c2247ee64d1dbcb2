"""SQLite implementations of repository interfaces."""

from __future__ import annotations

import sqlite3
from collections.abc import Iterable, Sequence
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from uuid import UUID

from trust_ledger.domain.accounts import TrustAccount
from trust_ledger.domain.transactions import TrustTransaction
from trust_ledger.domain.value_objects import TransactionType, TrustAccountType
from trust_ledger.exceptions import (
    ConcurrencyConflictError,
    DatabaseError,
    DuplicateActiveAccountError,
    IntegrityError,
)
from trust_ledger.repositories.interfaces import (
    LedgerDatabase,
    TrustAccountRepository,
    TrustTransactionRepository,
    sorted_ids,
)

SCHEMA = """
-- Trust accounts table
CREATE TABLE IF NOT EXISTS trust_accounts (
    id TEXT PRIMARY KEY,
    property_id TEXT NOT NULL,
    name TEXT NOT NULL,
    account_type TEXT NOT NULL
        CHECK (account_type IN ('security_deposit', 'escrow', 'reserve')),
    bank_name TEXT,
    account_number TEXT,
    routing_number TEXT,
    is_interest_bearing INTEGER NOT NULL DEFAULT 0,
    interest_rate TEXT,
    balance TEXT NOT NULL DEFAULT '0',
    is_active INTEGER NOT NULL DEFAULT 1,
    created_by TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_trust_accounts_property ON trust_accounts(property_id);
CREATE UNIQUE INDEX IF NOT EXISTS uq_trust_accounts_active_type
    ON trust_accounts(property_id, account_type) WHERE is_active = 1;

-- Trust account transactions table
CREATE TABLE IF NOT EXISTS trust_account_transactions (
    id TEXT PRIMARY KEY,
    trust_account_id TEXT NOT NULL,
    transaction_type TEXT NOT NULL
        CHECK (transaction_type IN ('deposit', 'withdrawal', 'interest', 'fee')),
    amount TEXT NOT NULL,
    balance_after TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    reference_number TEXT,
    tenant_id TEXT,
    lease_id TEXT,
    related_account_id TEXT,
    transaction_date TEXT NOT NULL,
    is_reconciled INTEGER NOT NULL DEFAULT 0,
    reconciled_date TEXT,
    reconciled_by TEXT,
    created_by TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY (trust_account_id) REFERENCES trust_accounts(id),
    FOREIGN KEY (related_account_id) REFERENCES trust_accounts(id)
);
CREATE INDEX IF NOT EXISTS idx_trust_txns_account_date
    ON trust_account_transactions(trust_account_id, transaction_date);
CREATE INDEX IF NOT EXISTS idx_trust_txns_tenant ON trust_account_transactions(tenant_id);
CREATE INDEX IF NOT EXISTS idx_trust_txns_reconciled
    ON trust_account_transactions(trust_account_id, is_reconciled);
"""

CHRONOLOGICAL = "ORDER BY t.transaction_date, t.created_at, t.rowid"


def _iso(value: datetime) -> str:
    # Fixed width keeps lexical order equal to chronological order.
    return value.isoformat(timespec="microseconds")


def _opt_str(value: object | None) -> str | None:
    return None if value is None else str(value)


def _opt_uuid(value: str | None) -> UUID | None:
    return None if value is None else UUID(value)


class SQLiteDatabase(LedgerDatabase):
    """SQLite database connection manager.

    Write units of work open with ``BEGIN IMMEDIATE``, which takes the
    database write lock up front. Every account is therefore locked for
    the duration of a write, which is coarser than row locking but gives
    the same serialization guarantees.

    File databases run in WAL mode and serve snapshots from short-lived
    reader connections, so reads see the last committed state while a
    write is in progress. An in-memory database lives on a single
    connection, so its snapshots share the write lock instead.
    """

    def __init__(
        self,
        path: str | Path = ":memory:",
        check_same_thread: bool = True,
        lock_timeout: float = 5.0,
    ) -> None:
        super().__init__(lock_timeout=lock_timeout)
        self._path = str(path)
        self._check_same_thread = check_same_thread
        self._connection: sqlite3.Connection | None = None

    @property
    def path(self) -> str:
        return self._path

    @property
    def is_memory(self) -> bool:
        return self._path == ":memory:" or "mode=memory" in self._path

    @property
    def supports_concurrent_reads(self) -> bool:
        return not self.is_memory

    def _connect(self, check_same_thread: bool) -> sqlite3.Connection:
        conn = sqlite3.connect(
            self._path,
            check_same_thread=check_same_thread,
            timeout=self.lock_timeout,
            isolation_level=None,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def get_connection(self) -> sqlite3.Connection:
        """Get the connection for the current unit of work, creating it if needed."""
        reader = self._current_reader()
        if reader is not None:
            return reader
        if self._connection is None:
            self._connection = self._connect(self._check_same_thread)
        return self._connection

    def initialize(self) -> None:
        """Create all database tables."""
        conn = self.get_connection()
        if not self.is_memory:
            conn.execute("PRAGMA journal_mode = WAL")
        conn.executescript(SCHEMA)

    def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    def _begin(self, read_only: bool) -> None:
        self.get_connection().execute("BEGIN" if read_only else "BEGIN IMMEDIATE")

    def _commit(self) -> None:
        self.get_connection().execute("COMMIT")

    def _rollback(self) -> None:
        conn = self.get_connection()
        if conn.in_transaction:
            conn.execute("ROLLBACK")

    def _open_reader(self) -> sqlite3.Connection:
        conn = self._connect(check_same_thread=False)
        try:
            conn.execute("PRAGMA query_only = ON")
            conn.execute("BEGIN")
            # The read snapshot starts at the first read, not at BEGIN.
            conn.execute("SELECT count(*) FROM sqlite_master").fetchone()
        except Exception:
            conn.close()
            raise
        return conn

    def _release_reader(self, connection: sqlite3.Connection) -> None:
        try:
            if connection.in_transaction:
                connection.execute("ROLLBACK")
        finally:
            connection.close()

    def _translate_error(self, exc: Exception) -> Exception | None:
        if isinstance(exc, sqlite3.OperationalError):
            message = str(exc).lower()
            if "locked" in message or "busy" in message:
                return ConcurrencyConflictError(
                    f"Timed out waiting for database lock: {exc}"
                )
            return DatabaseError(str(exc))
        if isinstance(exc, sqlite3.IntegrityError):
            return IntegrityError(str(exc))
        if isinstance(exc, sqlite3.Error):
            return DatabaseError(str(exc))
        return None


class SQLiteTrustAccountRepository(TrustAccountRepository):
    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def add(self, account: TrustAccount) -> None:
        conn = self._db.get_connection()
        try:
            conn.execute(
                """
                INSERT INTO trust_accounts (id, property_id, name, account_type,
                    bank_name, account_number, routing_number, is_interest_bearing,
                    interest_rate, balance, is_active, created_by, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(account.id),
                    str(account.property_id),
                    account.name,
                    account.account_type.value,
                    account.bank_name,
                    account.account_number,
                    account.routing_number,
                    1 if account.is_interest_bearing else 0,
                    _opt_str(account.interest_rate),
                    str(account.balance),
                    1 if account.is_active else 0,
                    _opt_str(account.created_by),
                    _iso(account.created_at),
                    _iso(account.updated_at),
                ),
            )
        except sqlite3.IntegrityError as exc:
            if "trust_accounts.account_type" in str(exc):
                raise DuplicateActiveAccountError(
                    account.property_id, account.account_type.value
                ) from exc
            raise

    def get(self, account_id: UUID) -> TrustAccount | None:
        conn = self._db.get_connection()
        row = conn.execute(
            "SELECT * FROM trust_accounts WHERE id = ?", (str(account_id),)
        ).fetchone()
        if row is None:
            return None
        return self._row_to_account(row)

    def get_for_update(self, account_id: UUID) -> TrustAccount | None:
        # BEGIN IMMEDIATE already holds the database write lock.
        return self.get(account_id)

    def get_many_for_update(
        self, account_ids: Sequence[UUID]
    ) -> dict[UUID, TrustAccount]:
        accounts: dict[UUID, TrustAccount] = {}
        for account_id in sorted_ids(account_ids):
            account = self.get(account_id)
            if account is not None:
                accounts[account_id] = account
        return accounts

    def get_active_by_type(
        self, property_id: UUID, account_type: TrustAccountType
    ) -> TrustAccount | None:
        conn = self._db.get_connection()
        row = conn.execute(
            """
            SELECT * FROM trust_accounts
            WHERE property_id = ? AND account_type = ? AND is_active = 1
            """,
            (str(property_id), account_type.value),
        ).fetchone()
        if row is None:
            return None
        return self._row_to_account(row)

    def list_by_property(
        self,
        property_id: UUID,
        include_inactive: bool = False,
        account_type: TrustAccountType | None = None,
    ) -> Iterable[TrustAccount]:
        conn = self._db.get_connection()
        query = "SELECT * FROM trust_accounts WHERE property_id = ?"
        params: list[object] = [str(property_id)]
        if not include_inactive:
            query += " AND is_active = 1"
        if account_type is not None:
            query += " AND account_type = ?"
            params.append(account_type.value)
        query += " ORDER BY account_type, created_at"
        rows = conn.execute(query, params).fetchall()
        return [self._row_to_account(row) for row in rows]

    def list_interest_bearing(self) -> Iterable[TrustAccount]:
        conn = self._db.get_connection()
        rows = conn.execute(
            """
            SELECT * FROM trust_accounts
            WHERE is_interest_bearing = 1 AND is_active = 1
            ORDER BY created_at, rowid
            """
        ).fetchall()
        return [self._row_to_account(row) for row in rows]

    def update(self, account: TrustAccount) -> None:
        conn = self._db.get_connection()
        conn.execute(
            """
            UPDATE trust_accounts SET
                name = ?,
                bank_name = ?,
                account_number = ?,
                routing_number = ?,
                is_interest_bearing = ?,
                interest_rate = ?,
                balance = ?,
                is_active = ?,
                updated_at = ?
            WHERE id = ?
            """,
            (
                account.name,
                account.bank_name,
                account.account_number,
                account.routing_number,
                1 if account.is_interest_bearing else 0,
                _opt_str(account.interest_rate),
                str(account.balance),
                1 if account.is_active else 0,
                _iso(account.updated_at),
                str(account.id),
            ),
        )

    def _row_to_account(self, row: sqlite3.Row) -> TrustAccount:
        return TrustAccount(
            id=UUID(row["id"]),
            property_id=UUID(row["property_id"]),
            name=row["name"],
            account_type=TrustAccountType(row["account_type"]),
            bank_name=row["bank_name"],
            account_number=row["account_number"],
            routing_number=row["routing_number"],
            is_interest_bearing=bool(row["is_interest_bearing"]),
            interest_rate=(
                Decimal(row["interest_rate"]) if row["interest_rate"] else None
            ),
            balance=Decimal(row["balance"]),
            is_active=bool(row["is_active"]),
            created_by=_opt_uuid(row["created_by"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )


class SQLiteTrustTransactionRepository(TrustTransactionRepository):
    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def add(self, txn: TrustTransaction) -> None:
        conn = self._db.get_connection()
        conn.execute(
            """
            INSERT INTO trust_account_transactions (id, trust_account_id,
                transaction_type, amount, balance_after, description, reference_number,
                tenant_id, lease_id, related_account_id, transaction_date,
                is_reconciled, reconciled_date, reconciled_by, created_by,
                created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                str(txn.id),
                str(txn.trust_account_id),
                txn.transaction_type.value,
                str(txn.amount),
                str(txn.balance_after),
                txn.description,
                txn.reference_number,
                _opt_str(txn.tenant_id),
                _opt_str(txn.lease_id),
                _opt_str(txn.related_account_id),
                txn.transaction_date.isoformat(),
                1 if txn.is_reconciled else 0,
                txn.reconciled_date.isoformat() if txn.reconciled_date else None,
                _opt_str(txn.reconciled_by),
                _opt_str(txn.created_by),
                _iso(txn.created_at),
                _iso(txn.updated_at),
            ),
        )

    def get(self, txn_id: UUID) -> TrustTransaction | None:
        conn = self._db.get_connection()
        row = conn.execute(
            "SELECT * FROM trust_account_transactions WHERE id = ?", (str(txn_id),)
        ).fetchone()
        if row is None:
            return None
        return self._row_to_transaction(row)

    def list_by_account(
        self,
        account_id: UUID,
        start_date: date | None = None,
        end_date: date | None = None,
        transaction_type: TransactionType | None = None,
        is_reconciled: bool | None = None,
        tenant_id: UUID | None = None,
    ) -> list[TrustTransaction]:
        conn = self._db.get_connection()
        query = "SELECT t.* FROM trust_account_transactions t WHERE t.trust_account_id = ?"
        params: list[object] = [str(account_id)]
        if start_date is not None:
            query += " AND t.transaction_date >= ?"
            params.append(start_date.isoformat())
        if end_date is not None:
            query += " AND t.transaction_date <= ?"
            params.append(end_date.isoformat())
        if transaction_type is not None:
            query += " AND t.transaction_type = ?"
            params.append(transaction_type.value)
        if is_reconciled is not None:
            query += " AND t.is_reconciled = ?"
            params.append(1 if is_reconciled else 0)
        if tenant_id is not None:
            query += " AND t.tenant_id = ?"
            params.append(str(tenant_id))
        query += f" {CHRONOLOGICAL}"
        rows = conn.execute(query, params).fetchall()
        return [self._row_to_transaction(row) for row in rows]

    def list_by_property(
        self,
        property_id: UUID,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[TrustTransaction]:
        conn = self._db.get_connection()
        query = """
            SELECT t.* FROM trust_account_transactions t
            JOIN trust_accounts a ON a.id = t.trust_account_id
            WHERE a.property_id = ?
        """
        params: list[object] = [str(property_id)]
        if start_date is not None:
            query += " AND t.transaction_date >= ?"
            params.append(start_date.isoformat())
        if end_date is not None:
            query += " AND t.transaction_date <= ?"
            params.append(end_date.isoformat())
        query += f" {CHRONOLOGICAL}"
        rows = conn.execute(query, params).fetchall()
        return [self._row_to_transaction(row) for row in rows]

    def get_latest_posted(self, account_id: UUID) -> TrustTransaction | None:
        conn = self._db.get_connection()
        row = conn.execute(
            """
            SELECT * FROM trust_account_transactions
            WHERE trust_account_id = ?
            ORDER BY created_at DESC, rowid DESC
            LIMIT 1
            """,
            (str(account_id),),
        ).fetchone()
        if row is None:
            return None
        return self._row_to_transaction(row)

    def mark_reconciled(
        self,
        account_id: UUID,
        txn_ids: Sequence[UUID],
        reconciled_date: date,
        reconciled_by: UUID,
    ) -> list[TrustTransaction]:
        if not txn_ids:
            return []
        conn = self._db.get_connection()
        ids = [str(txn_id) for txn_id in dict.fromkeys(txn_ids)]
        placeholders = ", ".join("?" for _ in ids)
        eligible = conn.execute(
            f"""
            SELECT t.* FROM trust_account_transactions t
            WHERE t.trust_account_id = ? AND t.is_reconciled = 0
              AND t.id IN ({placeholders})
            {CHRONOLOGICAL}
            """,
            [str(account_id), *ids],
        ).fetchall()
        changed = [self._row_to_transaction(row) for row in eligible]
        for txn in changed:
            txn.mark_reconciled(reconciled_date, reconciled_by)
            conn.execute(
                """
                UPDATE trust_account_transactions SET
                    is_reconciled = 1,
                    reconciled_date = ?,
                    reconciled_by = ?,
                    updated_at = ?
                WHERE id = ? AND is_reconciled = 0
                """,
                (
                    reconciled_date.isoformat(),
                    str(reconciled_by),
                    _iso(txn.updated_at),
                    str(txn.id),
                ),
            )
        return changed

    def _row_to_transaction(self, row: sqlite3.Row) -> TrustTransaction:
        return TrustTransaction(
            id=UUID(row["id"]),
            trust_account_id=UUID(row["trust_account_id"]),
            transaction_type=TransactionType(row["transaction_type"]),
            amount=Decimal(row["amount"]),
            balance_after=Decimal(row["balance_after"]),
            transaction_date=date.fromisoformat(row["transaction_date"]),
            description=row["description"],
            reference_number=row["reference_number"],
            tenant_id=_opt_uuid(row["tenant_id"]),
            lease_id=_opt_uuid(row["lease_id"]),
            related_account_id=_opt_uuid(row["related_account_id"]),
            is_reconciled=bool(row["is_reconciled"]),
            reconciled_date=(
                date.fromisoformat(row["reconciled_date"])
                if row["reconciled_date"]
                else None
            ),
            reconciled_by=_opt_uuid(row["reconciled_by"]),
            created_by=_opt_uuid(row["created_by"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )
