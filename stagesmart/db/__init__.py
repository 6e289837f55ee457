"""SQLite persistence: credit ledger and generation history."""

from .generations import SQLiteGenerationLog
from .interfaces import (
    CreditAccount,
    CreditLedgerProtocol,
    GenerationLogProtocol,
    GenerationRecord,
    LedgerEntry,
)
from .ledger import DEFAULT_STARTING_GRANT, SQLiteCreditLedger

__all__ = [
    "CreditAccount",
    "CreditLedgerProtocol",
    "GenerationLogProtocol",
    "GenerationRecord",
    "LedgerEntry",
    "DEFAULT_STARTING_GRANT",
    "SQLiteCreditLedger",
    "SQLiteGenerationLog",
]
