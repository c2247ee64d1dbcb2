from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Iterator, Sequence
from contextlib import AbstractContextManager, contextmanager
from datetime import date
from typing import Any
from uuid import UUID

from trust_ledger.domain.accounts import TrustAccount
from trust_ledger.domain.transactions import TrustTransaction
from trust_ledger.domain.value_objects import TransactionType, TrustAccountType
from trust_ledger.exceptions import ConcurrencyConflictError, DatabaseError
from trust_ledger.logging_config import get_logger

logger = get_logger(__name__)


class LedgerDatabase(ABC):
    """Connection owner and unit-of-work boundary shared by the repositories.

    ``transaction()`` opens an all-or-nothing unit of work. Units are
    re-entrant: a block opened while another is active joins it, so the
    outermost block decides whether everything commits or rolls back.

    Write units share one connection per database object and are serialized
    by an in-process lock. Waiting longer than ``lock_timeout`` raises
    ConcurrencyConflictError.

    ``snapshot()`` is the read-only counterpart used by queries and report
    generation. When the backend supports concurrent readers, a snapshot
    runs on its own reader connection and never waits for the write lock.
    A snapshot opened by the thread that holds a write unit joins that unit
    so it sees the unit's own writes.
    """

    def __init__(self, lock_timeout: float = 5.0) -> None:
        self._lock_timeout = lock_timeout
        self._lock = threading.RLock()
        self._owner: int | None = None
        self._depth = 0
        self._read_only = False
        self._pending_callbacks: list[Callable[[], None]] = []
        self._local = threading.local()

    @property
    def lock_timeout(self) -> float:
        return self._lock_timeout

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    @property
    def supports_concurrent_reads(self) -> bool:
        """Whether snapshots can run on a separate reader connection."""
        return True

    @abstractmethod
    def initialize(self) -> None:
        pass

    @abstractmethod
    def close(self) -> None:
        pass

    @abstractmethod
    def _begin(self, read_only: bool) -> None:
        pass

    @abstractmethod
    def _commit(self) -> None:
        pass

    @abstractmethod
    def _rollback(self) -> None:
        pass

    @abstractmethod
    def _open_reader(self) -> Any:
        """Return a connection already inside a read-only transaction."""

    @abstractmethod
    def _release_reader(self, connection: Any) -> None:
        """End the reader's transaction and give the connection back."""

    @abstractmethod
    def _translate_error(self, exc: Exception) -> Exception | None:
        """Map a driver exception onto the ledger's exception hierarchy."""

    def _current_reader(self) -> Any | None:
        return getattr(self._local, "reader", None)

    def _holds_write_unit(self) -> bool:
        return self._depth > 0 and self._owner == threading.get_ident()

    def transaction(self) -> AbstractContextManager[None]:
        return self._unit_of_work(read_only=False)

    def snapshot(self) -> AbstractContextManager[None]:
        if self._current_reader() is not None:
            return self._reader_unit()
        if self._holds_write_unit() or not self.supports_concurrent_reads:
            return self._unit_of_work(read_only=True)
        return self._reader_unit()

    def on_commit(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` once the outermost unit of work has committed.

        Callbacks registered outside a unit of work run immediately.
        Callbacks of a unit that rolls back are discarded.
        """
        if self._depth == 0:
            callback()
            return
        self._pending_callbacks.append(callback)

    @contextmanager
    def _reader_unit(self) -> Iterator[None]:
        if self._current_reader() is not None:
            yield
            return
        try:
            reader = self._open_reader()
        except Exception as exc:
            translated = self._translate_error(exc)
            if translated is not None:
                raise translated from exc
            raise
        self._local.reader = reader
        try:
            yield
        except Exception as exc:
            translated = self._translate_error(exc)
            if translated is not None:
                raise translated from exc
            raise
        finally:
            self._local.reader = None
            try:
                self._release_reader(reader)
            except Exception:
                logger.exception("reader_release_failed")

    @contextmanager
    def _unit_of_work(self, read_only: bool) -> Iterator[None]:
        if not read_only and self._current_reader() is not None:
            raise DatabaseError("Cannot open a write unit of work inside a read snapshot")
        if not self._lock.acquire(timeout=self._lock_timeout):
            raise ConcurrencyConflictError(
                f"Timed out after {self._lock_timeout}s waiting for the ledger lock"
            )
        callbacks: list[Callable[[], None]] = []
        try:
            if self._depth > 0:
                if self._read_only and not read_only:
                    raise DatabaseError(
                        "Cannot open a write unit of work inside a read snapshot"
                    )
                self._depth += 1
                try:
                    yield
                finally:
                    self._depth -= 1
            else:
                self._run_outermost(read_only)
                try:
                    yield
                except Exception as exc:
                    self._abort()
                    translated = self._translate_error(exc)
                    if translated is not None:
                        raise translated from exc
                    raise
                except BaseException:
                    self._abort()
                    raise
                callbacks = self._finish()
        finally:
            self._lock.release()

        for callback in callbacks:
            callback()

    def _run_outermost(self, read_only: bool) -> None:
        try:
            self._begin(read_only)
        except Exception as exc:
            translated = self._translate_error(exc)
            if translated is not None:
                raise translated from exc
            raise
        self._depth = 1
        self._owner = threading.get_ident()
        self._read_only = read_only
        self._pending_callbacks = []

    def _abort(self) -> None:
        self._depth = 0
        self._owner = None
        self._pending_callbacks = []
        try:
            self._rollback()
        except Exception:
            logger.exception("rollback_failed")

    def _finish(self) -> list[Callable[[], None]]:
        self._depth = 0
        self._owner = None
        callbacks = self._pending_callbacks
        self._pending_callbacks = []
        try:
            self._commit()
        except Exception as exc:
            self._abort()
            translated = self._translate_error(exc)
            if translated is not None:
                raise translated from exc
            raise
        return callbacks




class TrustAccountRepository(ABC):
    @abstractmethod
    def add(self, account: TrustAccount) -> None:
        pass

    @abstractmethod
    def get(self, account_id: UUID) -> TrustAccount | None:
        pass

    @abstractmethod
    def get_for_update(self, account_id: UUID) -> TrustAccount | None:
        """Load an account holding an exclusive lock until the unit of work ends."""

    @abstractmethod
    def get_many_for_update(
        self, account_ids: Sequence[UUID]
    ) -> dict[UUID, TrustAccount]:
        """Lock several accounts, always in ascending id order."""

    @abstractmethod
    def get_active_by_type(
        self, property_id: UUID, account_type: TrustAccountType
    ) -> TrustAccount | None:
        pass

    @abstractmethod
    def list_by_property(
        self,
        property_id: UUID,
        include_inactive: bool = False,
        account_type: TrustAccountType | None = None,
    ) -> Iterable[TrustAccount]:
        pass

    @abstractmethod
    def list_interest_bearing(self) -> Iterable[TrustAccount]:
        """Active interest-bearing accounts."""

    @abstractmethod
    def update(self, account: TrustAccount) -> None:
        pass


class TrustTransactionRepository(ABC):
    @abstractmethod
    def add(self, txn: TrustTransaction) -> None:
        pass

    @abstractmethod
    def get(self, txn_id: UUID) -> TrustTransaction | None:
        pass

    @abstractmethod
    def list_by_account(
        self,
        account_id: UUID,
        start_date: date | None = None,
        end_date: date | None = None,
        transaction_type: TransactionType | None = None,
        is_reconciled: bool | None = None,
        tenant_id: UUID | None = None,
    ) -> list[TrustTransaction]:
        """Transactions in chronological order: date, creation time, insertion."""

    @abstractmethod
    def list_by_property(
        self,
        property_id: UUID,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[TrustTransaction]:
        """Transactions of every account of a property, in chronological order."""

    @abstractmethod
    def get_latest_posted(self, account_id: UUID) -> TrustTransaction | None:
        """The transaction posted last, regardless of its transaction date."""

    @abstractmethod
    def mark_reconciled(
        self,
        account_id: UUID,
        txn_ids: Sequence[UUID],
        reconciled_date: date,
        reconciled_by: UUID,
    ) -> list[TrustTransaction]:
        """Reconcile the unreconciled ids owned by the account; return those changed."""


def sorted_ids(account_ids: Iterable[UUID]) -> list[UUID]:
    """Global lock order for multi-account units of work."""
    return sorted(set(account_ids), key=str)
