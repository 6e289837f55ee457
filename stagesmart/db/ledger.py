"""Owner-keyed credit balances persisted in SQLite.

Every mutation for one owner runs under that owner's lock and inside a
``BEGIN IMMEDIATE`` transaction, so concurrent requests in this process and
other processes sharing the database file cannot lose an update. Owners do
not share locks. The debit itself is a conditional ``UPDATE ... WHERE
balance >= ?`` so the balance can never go negative.
"""

from __future__ import annotations

import sqlite3
import threading
import time
import weakref
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Optional, Sequence

from .interfaces import CreditAccount, CreditLedgerProtocol, LedgerEntry
from .schema import apply_migrations

DEFAULT_STARTING_GRANT = 3


def _check_amount(amount: int) -> int:
    amount = int(amount)
    if amount <= 0:
        raise ValueError(f"Credit amounts must be positive, got {amount}")
    return amount


@dataclass
class SQLiteCreditLedger(CreditLedgerProtocol):
    db_path: Path
    starting_grant: int = DEFAULT_STARTING_GRANT
    busy_timeout_s: float = 30.0
    # Entries vanish once no caller holds the owner's lock.
    _locks: "weakref.WeakValueDictionary[str, threading.Lock]" = field(
        init=False, repr=False, default_factory=weakref.WeakValueDictionary
    )
    _locks_guard: threading.Lock = field(init=False, repr=False, default_factory=threading.Lock)

    def __post_init__(self) -> None:
        if int(self.starting_grant) < 0:
            raise ValueError("starting_grant cannot be negative")
        self.starting_grant = int(self.starting_grant)
        self.db_path = Path(self.db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = self._connect()
        try:
            apply_migrations(conn)
        finally:
            conn.close()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=self.busy_timeout_s, isolation_level=None)
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.execute("COMMIT")
        except Exception:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    @contextmanager
    def _owner_lock(self, owner_id: str) -> Iterator[None]:
        with self._locks_guard:
            lock = self._locks.setdefault(owner_id, threading.Lock())
        with lock:
            yield

    def _ensure_account(self, conn: sqlite3.Connection, owner_id: str, now: int) -> None:
        cursor = conn.execute(
            "INSERT OR IGNORE INTO accounts(owner_id, balance, created_at, updated_at) VALUES(?,?,?,?)",
            (owner_id, self.starting_grant, now, now),
        )
        if cursor.rowcount == 1 and self.starting_grant > 0:
            self._journal(conn, LedgerEntry(owner_id, self.starting_grant, "grant", None, now))

    def _journal(self, conn: sqlite3.Connection, entry: LedgerEntry) -> None:
        conn.execute(
            "INSERT INTO ledger_entries(owner_id, delta, kind, reference, created_at) VALUES(?,?,?,?,?)",
            (entry.owner_id, entry.delta, entry.kind, entry.reference, entry.created_at),
        )

    def _balance(self, conn: sqlite3.Connection, owner_id: str) -> int:
        row = conn.execute("SELECT balance FROM accounts WHERE owner_id=?", (owner_id,)).fetchone()
        return int(row[0]) if row is not None else self.starting_grant

    # ------------------------------------------------------------------
    # Public API
    def check_balance(self, owner_id: str) -> int:
        conn = self._connect()
        try:
            return self._balance(conn, owner_id)
        finally:
            conn.close()

    def account(self, owner_id: str) -> CreditAccount:
        return CreditAccount(owner_id=owner_id, balance=self.check_balance(owner_id))

    def debit_balance(self, owner_id: str, amount: int = 1, *, reference: str | None = None) -> Optional[int]:
        amount = _check_amount(amount)
        now = int(time.time())
        with self._owner_lock(owner_id), self.transaction() as conn:
            self._ensure_account(conn, owner_id, now)
            cursor = conn.execute(
                "UPDATE accounts SET balance = balance - ?, updated_at=? WHERE owner_id=? AND balance >= ?",
                (amount, now, owner_id, amount),
            )
            if cursor.rowcount != 1:
                return None
            self._journal(conn, LedgerEntry(owner_id, -amount, "debit", reference, now))
            return self._balance(conn, owner_id)

    def try_debit(self, owner_id: str, amount: int = 1, *, reference: str | None = None) -> bool:
        return self.debit_balance(owner_id, amount, reference=reference) is not None

    def _increase(self, owner_id: str, amount: int, kind: str, reference: str | None) -> int:
        amount = _check_amount(amount)
        now = int(time.time())
        with self._owner_lock(owner_id), self.transaction() as conn:
            self._ensure_account(conn, owner_id, now)
            conn.execute(
                "UPDATE accounts SET balance = balance + ?, updated_at=? WHERE owner_id=?",
                (amount, now, owner_id),
            )
            self._journal(conn, LedgerEntry(owner_id, amount, kind, reference, now))
            return self._balance(conn, owner_id)

    def credit(self, owner_id: str, amount: int, *, reference: str | None = None) -> int:
        return self._increase(owner_id, amount, "credit", reference)

    def refund(self, owner_id: str, amount: int = 1, *, reference: str | None = None) -> int:
        return self._increase(owner_id, amount, "refund", reference)

    def entries(self, owner_id: str) -> Sequence[LedgerEntry]:
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT owner_id, delta, kind, reference, created_at FROM ledger_entries "
                "WHERE owner_id=? ORDER BY id",
                (owner_id,),
            ).fetchall()
        finally:
            conn.close()
        return [LedgerEntry(row[0], int(row[1]), row[2], row[3], row[4]) for row in rows]


__all__ = ["DEFAULT_STARTING_GRANT", "SQLiteCreditLedger"]
