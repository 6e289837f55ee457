from __future__ import annotations

import sqlite3
from typing import Iterable


MIGRATIONS: list[Iterable[str]] = [
    (
        """
        CREATE TABLE IF NOT EXISTS accounts (
            owner_id TEXT PRIMARY KEY,
            balance INTEGER NOT NULL CHECK (balance >= 0),
            created_at INTEGER NOT NULL DEFAULT (strftime('%s', 'now')),
            updated_at INTEGER NOT NULL DEFAULT (strftime('%s', 'now'))
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS ledger_entries (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            owner_id TEXT NOT NULL,
            delta INTEGER NOT NULL,
            kind TEXT NOT NULL,
            reference TEXT,
            created_at INTEGER NOT NULL DEFAULT (strftime('%s', 'now')),
            FOREIGN KEY(owner_id) REFERENCES accounts(owner_id)
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS generations (
            generation_id TEXT PRIMARY KEY,
            owner_id TEXT NOT NULL,
            prompt TEXT NOT NULL,
            mode TEXT NOT NULL,
            status TEXT NOT NULL,
            primary_engine TEXT,
            engine_errors TEXT,
            created_at INTEGER NOT NULL DEFAULT (strftime('%s', 'now'))
        )
        """,
        """
        CREATE INDEX IF NOT EXISTS idx_ledger_entries_owner ON ledger_entries(owner_id)
        """,
        """
        CREATE INDEX IF NOT EXISTS idx_generations_owner ON generations(owner_id)
        """,
    ),
]


def apply_migrations(conn: sqlite3.Connection) -> None:
    """Apply the static set of DDL statements to the provided connection."""

    cursor = conn.cursor()
    for migration in MIGRATIONS:
        for statement in migration:
            cursor.execute(statement)
    conn.commit()
