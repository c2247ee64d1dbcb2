"""PostgreSQL implementations of repository interfaces."""

from __future__ import annotations

import threading
from collections.abc import Iterable, Sequence
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

import psycopg2
import psycopg2.errors
import psycopg2.extras
import psycopg2.pool

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

ACTIVE_TYPE_CONSTRAINT = "uq_trust_accounts_active_type"

SCHEMA = """
CREATE TABLE IF NOT EXISTS trust_accounts (
    id TEXT PRIMARY KEY,
    property_id TEXT NOT NULL,
    name TEXT NOT NULL,
    account_type TEXT NOT NULL
        CHECK (account_type IN ('security_deposit', 'escrow', 'reserve')),
    bank_name TEXT,
    account_number TEXT,
    routing_number TEXT,
    is_interest_bearing BOOLEAN NOT NULL DEFAULT FALSE,
    interest_rate NUMERIC(6, 3),
    balance NUMERIC(14, 2) NOT NULL DEFAULT 0,
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    created_by TEXT,
    created_at TIMESTAMPTZ NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_trust_accounts_property ON trust_accounts(property_id);
CREATE UNIQUE INDEX IF NOT EXISTS uq_trust_accounts_active_type
    ON trust_accounts(property_id, account_type) WHERE is_active;

CREATE TABLE IF NOT EXISTS trust_account_transactions (
    id TEXT PRIMARY KEY,
    seq BIGSERIAL NOT NULL,
    trust_account_id TEXT NOT NULL REFERENCES trust_accounts(id),
    transaction_type TEXT NOT NULL
        CHECK (transaction_type IN ('deposit', 'withdrawal', 'interest', 'fee')),
    amount NUMERIC(14, 2) NOT NULL CHECK (amount > 0),
    balance_after NUMERIC(14, 2) NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    reference_number TEXT,
    tenant_id TEXT,
    lease_id TEXT,
    related_account_id TEXT REFERENCES trust_accounts(id),
    transaction_date DATE NOT NULL,
    is_reconciled BOOLEAN NOT NULL DEFAULT FALSE,
    reconciled_date DATE,
    reconciled_by TEXT,
    created_by TEXT,
    created_at TIMESTAMPTZ NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_trust_txns_account_date
    ON trust_account_transactions(trust_account_id, transaction_date);
CREATE INDEX IF NOT EXISTS idx_trust_txns_tenant ON trust_account_transactions(tenant_id);
CREATE INDEX IF NOT EXISTS idx_trust_txns_reconciled
    ON trust_account_transactions(trust_account_id, is_reconciled);
"""

CHRONOLOGICAL = "ORDER BY t.transaction_date, t.created_at, t.seq"

LOCK_ERRORS = (
    psycopg2.errors.LockNotAvailable,
    psycopg2.errors.DeadlockDetected,
    psycopg2.errors.SerializationFailure,
)


def _opt_str(value: object | None) -> str | None:
    return None if value is None else str(value)


def _opt_uuid(value: str | None) -> UUID | None:
    return None if value is None else UUID(value)


class PostgresDatabase(LedgerDatabase):
    """PostgreSQL database connection manager.

    Write units of work lock individual account rows with
    ``SELECT ... FOR UPDATE`` under ``SET LOCAL lock_timeout``. Snapshots
    take a connection from a reader pool and run as REPEATABLE READ READ
    ONLY transactions, so they never wait on row locks or the write lock.
    """

    def __init__(
        self,
        connection_string: str,
        lock_timeout: float = 5.0,
        max_readers: int = 4,
    ) -> None:
        super().__init__(lock_timeout=lock_timeout)
        self._connection_string = connection_string
        self._max_readers = max_readers
        self._connection: psycopg2.extensions.connection | None = None
        self._reader_pool: psycopg2.pool.ThreadedConnectionPool | None = None
        self._pool_lock = threading.Lock()

    def get_connection(self) -> psycopg2.extensions.connection:
        """Get the connection for the current unit of work, creating it if needed."""
        reader = self._current_reader()
        if reader is not None:
            return reader
        if self._connection is None or self._connection.closed:
            self._connection = psycopg2.connect(
                self._connection_string,
                cursor_factory=psycopg2.extras.RealDictCursor,
            )
            # Transactions are opened explicitly by the unit of work.
            self._connection.autocommit = True
        return self._connection

    def initialize(self) -> None:
        """Create all database tables."""
        conn = self.get_connection()
        with conn.cursor() as cur:
            cur.execute(SCHEMA)

    def close(self) -> None:
        """Close the database connections."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None
        with self._pool_lock:
            if self._reader_pool is not None:
                self._reader_pool.closeall()
                self._reader_pool = None

    def _begin(self, read_only: bool) -> None:
        with self.get_connection().cursor() as cur:
            if read_only:
                cur.execute("BEGIN ISOLATION LEVEL REPEATABLE READ READ ONLY")
            else:
                cur.execute("BEGIN")
                cur.execute(
                    "SET LOCAL lock_timeout = %s",
                    (f"{int(self.lock_timeout * 1000)}ms",),
                )

    def _commit(self) -> None:
        with self.get_connection().cursor() as cur:
            cur.execute("COMMIT")

    def _rollback(self) -> None:
        conn = self.get_connection()
        if conn.closed:
            return
        with conn.cursor() as cur:
            cur.execute("ROLLBACK")

    def _get_reader_pool(self) -> psycopg2.pool.ThreadedConnectionPool:
        with self._pool_lock:
            if self._reader_pool is None:
                self._reader_pool = psycopg2.pool.ThreadedConnectionPool(
                    1,
                    self._max_readers,
                    self._connection_string,
                    cursor_factory=psycopg2.extras.RealDictCursor,
                )
            return self._reader_pool

    def _open_reader(self) -> psycopg2.extensions.connection:
        pool = self._get_reader_pool()
        conn = pool.getconn()
        try:
            conn.autocommit = True
            with conn.cursor() as cur:
                cur.execute("BEGIN ISOLATION LEVEL REPEATABLE READ READ ONLY")
        except Exception:
            pool.putconn(conn, close=True)
            raise
        return conn

    def _release_reader(self, connection: psycopg2.extensions.connection) -> None:
        pool = self._get_reader_pool()
        if connection.closed:
            pool.putconn(connection, close=True)
            return
        try:
            with connection.cursor() as cur:
                cur.execute("ROLLBACK")
        except psycopg2.Error:
            pool.putconn(connection, close=True)
            raise
        pool.putconn(connection)

    def _translate_error(self, exc: Exception) -> Exception | None:
        if isinstance(exc, LOCK_ERRORS):
            return ConcurrencyConflictError(f"Could not lock trust account: {exc}")
        if isinstance(exc, psycopg2.IntegrityError):
            return IntegrityError(str(exc))
        if isinstance(exc, psycopg2.Error):
            return DatabaseError(str(exc))
        return None


class PostgresTrustAccountRepository(TrustAccountRepository):
    def __init__(self, database: PostgresDatabase) -> None:
        self._db = database

    def add(self, account: TrustAccount) -> None:
        conn = self._db.get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO trust_accounts (id, property_id, name, account_type,
                        bank_name, account_number, routing_number, is_interest_bearing,
                        interest_rate, balance, is_active, created_by, created_at,
                        updated_at)
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                    """,
                    (
                        str(account.id),
                        str(account.property_id),
                        account.name,
                        account.account_type.value,
                        account.bank_name,
                        account.account_number,
                        account.routing_number,
                        account.is_interest_bearing,
                        account.interest_rate,
                        account.balance,
                        account.is_active,
                        _opt_str(account.created_by),
                        account.created_at,
                        account.updated_at,
                    ),
                )
        except psycopg2.errors.UniqueViolation as exc:
            if exc.diag.constraint_name == ACTIVE_TYPE_CONSTRAINT:
                raise DuplicateActiveAccountError(
                    account.property_id, account.account_type.value
                ) from exc
            raise

    def get(self, account_id: UUID) -> TrustAccount | None:
        return self._fetch_one(
            "SELECT * FROM trust_accounts WHERE id = %s", (str(account_id),)
        )

    def get_for_update(self, account_id: UUID) -> TrustAccount | None:
        return self._fetch_one(
            "SELECT * FROM trust_accounts WHERE id = %s FOR UPDATE",
            (str(account_id),),
        )

    def get_many_for_update(
        self, account_ids: Sequence[UUID]
    ) -> dict[UUID, TrustAccount]:
        accounts: dict[UUID, TrustAccount] = {}
        # One statement per row keeps the lock order deterministic.
        for account_id in sorted_ids(account_ids):
            account = self.get_for_update(account_id)
            if account is not None:
                accounts[account_id] = account
        return accounts

    def get_active_by_type(
        self, property_id: UUID, account_type: TrustAccountType
    ) -> TrustAccount | None:
        return self._fetch_one(
            """
            SELECT * FROM trust_accounts
            WHERE property_id = %s AND account_type = %s AND is_active
            """,
            (str(property_id), account_type.value),
        )

    def list_by_property(
        self,
        property_id: UUID,
        include_inactive: bool = False,
        account_type: TrustAccountType | None = None,
    ) -> Iterable[TrustAccount]:
        query = "SELECT * FROM trust_accounts WHERE property_id = %s"
        params: list[Any] = [str(property_id)]
        if not include_inactive:
            query += " AND is_active"
        if account_type is not None:
            query += " AND account_type = %s"
            params.append(account_type.value)
        query += " ORDER BY account_type, created_at"
        conn = self._db.get_connection()
        with conn.cursor() as cur:
            cur.execute(query, params)
            rows = cur.fetchall()
        return [self._row_to_account(row) for row in rows]

    def list_interest_bearing(self) -> Iterable[TrustAccount]:
        conn = self._db.get_connection()
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT * FROM trust_accounts
                WHERE is_interest_bearing AND is_active
                ORDER BY created_at, id
                """
            )
            rows = cur.fetchall()
        return [self._row_to_account(row) for row in rows]

    def update(self, account: TrustAccount) -> None:
        conn = self._db.get_connection()
        with conn.cursor() as cur:
            cur.execute(
                """
                UPDATE trust_accounts SET
                    name = %s,
                    bank_name = %s,
                    account_number = %s,
                    routing_number = %s,
                    is_interest_bearing = %s,
                    interest_rate = %s,
                    balance = %s,
                    is_active = %s,
                    updated_at = %s
                WHERE id = %s
                """,
                (
                    account.name,
                    account.bank_name,
                    account.account_number,
                    account.routing_number,
                    account.is_interest_bearing,
                    account.interest_rate,
                    account.balance,
                    account.is_active,
                    account.updated_at,
                    str(account.id),
                ),
            )

    def _fetch_one(self, query: str, params: tuple[Any, ...]) -> TrustAccount | None:
        conn = self._db.get_connection()
        with conn.cursor() as cur:
            cur.execute(query, params)
            row = cur.fetchone()
        if row is None:
            return None
        return self._row_to_account(row)

    def _row_to_account(self, row: Any) -> TrustAccount:
        return TrustAccount(
            id=UUID(row["id"]),
            property_id=UUID(row["property_id"]),
            name=row["name"],
            account_type=TrustAccountType(row["account_type"]),
            bank_name=row["bank_name"],
            account_number=row["account_number"],
            routing_number=row["routing_number"],
            is_interest_bearing=row["is_interest_bearing"],
            interest_rate=(
                Decimal(row["interest_rate"])
                if row["interest_rate"] is not None
                else None
            ),
            balance=Decimal(row["balance"]),
            is_active=row["is_active"],
            created_by=_opt_uuid(row["created_by"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


class PostgresTrustTransactionRepository(TrustTransactionRepository):
    def __init__(self, database: PostgresDatabase) -> None:
        self._db = database

    def add(self, txn: TrustTransaction) -> None:
        conn = self._db.get_connection()
        with conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO trust_account_transactions (id, trust_account_id,
                    transaction_type, amount, balance_after, description,
                    reference_number, tenant_id, lease_id, related_account_id,
                    transaction_date, is_reconciled, reconciled_date, reconciled_by,
                    created_by, created_at, updated_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s,
                        %s, %s, %s)
                """,
                (
                    str(txn.id),
                    str(txn.trust_account_id),
                    txn.transaction_type.value,
                    txn.amount,
                    txn.balance_after,
                    txn.description,
                    txn.reference_number,
                    _opt_str(txn.tenant_id),
                    _opt_str(txn.lease_id),
                    _opt_str(txn.related_account_id),
                    txn.transaction_date,
                    txn.is_reconciled,
                    txn.reconciled_date,
                    _opt_str(txn.reconciled_by),
                    _opt_str(txn.created_by),
                    txn.created_at,
                    txn.updated_at,
                ),
            )

    def get(self, txn_id: UUID) -> TrustTransaction | None:
        conn = self._db.get_connection()
        with conn.cursor() as cur:
            cur.execute(
                "SELECT * FROM trust_account_transactions WHERE id = %s",
                (str(txn_id),),
            )
            row = cur.fetchone()
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
        query = (
            "SELECT t.* FROM trust_account_transactions t "
            "WHERE t.trust_account_id = %s"
        )
        params: list[Any] = [str(account_id)]
        if start_date is not None:
            query += " AND t.transaction_date >= %s"
            params.append(start_date)
        if end_date is not None:
            query += " AND t.transaction_date <= %s"
            params.append(end_date)
        if transaction_type is not None:
            query += " AND t.transaction_type = %s"
            params.append(transaction_type.value)
        if is_reconciled is not None:
            query += " AND t.is_reconciled = %s"
            params.append(is_reconciled)
        if tenant_id is not None:
            query += " AND t.tenant_id = %s"
            params.append(str(tenant_id))
        query += f" {CHRONOLOGICAL}"
        return self._fetch_all(query, params)

    def list_by_property(
        self,
        property_id: UUID,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[TrustTransaction]:
        query = """
            SELECT t.* FROM trust_account_transactions t
            JOIN trust_accounts a ON a.id = t.trust_account_id
            WHERE a.property_id = %s
        """
        params: list[Any] = [str(property_id)]
        if start_date is not None:
            query += " AND t.transaction_date >= %s"
            params.append(start_date)
        if end_date is not None:
            query += " AND t.transaction_date <= %s"
            params.append(end_date)
        query += f" {CHRONOLOGICAL}"
        return self._fetch_all(query, params)

    def get_latest_posted(self, account_id: UUID) -> TrustTransaction | None:
        rows = self._fetch_all(
            """
            SELECT * FROM trust_account_transactions
            WHERE trust_account_id = %s
            ORDER BY created_at DESC, seq DESC
            LIMIT 1
            """,
            [str(account_id)],
        )
        return rows[0] if rows else None

    def mark_reconciled(
        self,
        account_id: UUID,
        txn_ids: Sequence[UUID],
        reconciled_date: date,
        reconciled_by: UUID,
    ) -> list[TrustTransaction]:
        if not txn_ids:
            return []
        ids = [str(txn_id) for txn_id in dict.fromkeys(txn_ids)]
        return self._fetch_all(
            """
            UPDATE trust_account_transactions SET
                is_reconciled = TRUE,
                reconciled_date = %s,
                reconciled_by = %s,
                updated_at = now()
            WHERE trust_account_id = %s
              AND NOT is_reconciled
              AND id = ANY(%s)
            RETURNING *
            """,
            [reconciled_date, str(reconciled_by), str(account_id), ids],
        )

    def _fetch_all(self, query: str, params: list[Any]) -> list[TrustTransaction]:
        conn = self._db.get_connection()
        with conn.cursor() as cur:
            cur.execute(query, params)
            rows = cur.fetchall()
        return [self._row_to_transaction(row) for row in rows]

    def _row_to_transaction(self, row: Any) -> TrustTransaction:
        return TrustTransaction(
            id=UUID(row["id"]),
            trust_account_id=UUID(row["trust_account_id"]),
            transaction_type=TransactionType(row["transaction_type"]),
            amount=Decimal(row["amount"]),
            balance_after=Decimal(row["balance_after"]),
            transaction_date=row["transaction_date"],
            description=row["description"],
            reference_number=row["reference_number"],
            tenant_id=_opt_uuid(row["tenant_id"]),
            lease_id=_opt_uuid(row["lease_id"]),
            related_account_id=_opt_uuid(row["related_account_id"]),
            is_reconciled=row["is_reconciled"],
            reconciled_date=row["reconciled_date"],
            reconciled_by=_opt_uuid(row["reconciled_by"]),
            created_by=_opt_uuid(row["created_by"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
