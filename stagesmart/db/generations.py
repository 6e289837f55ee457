from __future__ import annotations

import json
import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable

from .interfaces import GenerationLogProtocol, GenerationRecord
from .schema import apply_migrations


def _json_loads(raw: str | None) -> Any:
    if raw is None:
        return None
    return json.loads(raw)


@dataclass
class SQLiteGenerationLog(GenerationLogProtocol):
    """History of staging attempts, one row per orchestration."""

    db_path: Path

    def __post_init__(self) -> None:
        self.db_path = Path(self.db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = self._connect()
        try:
            apply_migrations(conn)
        finally:
            conn.close()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path, timeout=30.0)

    def record(self, record: GenerationRecord) -> None:
        errors_json = json.dumps(dict(record.engine_errors), ensure_ascii=False) if record.engine_errors else None
        created_at = int(record.created_at or time.time())
        conn = self._connect()
        try:
            with conn:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO generations(
                        generation_id, owner_id, prompt, mode, status,
                        primary_engine, engine_errors, created_at
                    ) VALUES(?,?,?,?,?,?,?,?)
                    """,
                    (
                        record.generation_id,
                        record.owner_id,
                        record.prompt,
                        record.mode,
                        record.status,
                        record.primary_engine,
                        errors_json,
                        created_at,
                    ),
                )
        finally:
            conn.close()

    def _row_to_record(self, row: tuple) -> GenerationRecord:
        return GenerationRecord(
            generation_id=row[0],
            owner_id=row[1],
            prompt=row[2],
            mode=row[3],
            status=row[4],
            primary_engine=row[5],
            engine_errors=_json_loads(row[6]),
            created_at=row[7],
        )

    def get(self, generation_id: str) -> GenerationRecord | None:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT generation_id, owner_id, prompt, mode, status, primary_engine, engine_errors, created_at "
                "FROM generations WHERE generation_id=?",
                (generation_id,),
            ).fetchone()
        finally:
            conn.close()
        return self._row_to_record(row) if row is not None else None

    def list_for_owner(self, owner_id: str, *, limit: int = 50) -> Iterable[GenerationRecord]:
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT generation_id, owner_id, prompt, mode, status, primary_engine, engine_errors, created_at "
                "FROM generations WHERE owner_id=? ORDER BY created_at DESC, rowid DESC LIMIT ?",
                (owner_id, int(limit)),
            ).fetchall()
        finally:
            conn.close()
        return [self._row_to_record(row) for row in rows]


__all__ = ["SQLiteGenerationLog"]
