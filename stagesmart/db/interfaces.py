from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping, Protocol, Sequence


@dataclass(frozen=True)
class CreditAccount:
    owner_id: str
    balance: int


@dataclass(frozen=True)
class LedgerEntry:
    owner_id: str
    delta: int
    kind: str
    reference: str | None = None
    created_at: int | None = None


@dataclass(frozen=True)
class GenerationRecord:
    generation_id: str
    owner_id: str
    prompt: str
    mode: str
    status: str
    primary_engine: str | None = None
    engine_errors: Mapping[str, str] | None = None
    created_at: int | None = None


class CreditLedgerProtocol(Protocol):
    def check_balance(self, owner_id: str) -> int:
        ...

    def try_debit(self, owner_id: str, amount: int = 1, *, reference: str | None = None) -> bool:
        ...

    def debit_balance(self, owner_id: str, amount: int = 1, *, reference: str | None = None) -> int | None:
        """Debit like ``try_debit``; the balance after the debit, or ``None`` when refused."""
        ...

    def credit(self, owner_id: str, amount: int, *, reference: str | None = None) -> int:
        ...

    def refund(self, owner_id: str, amount: int = 1, *, reference: str | None = None) -> int:
        ...

    def entries(self, owner_id: str) -> Sequence[LedgerEntry]:
        ...


class GenerationLogProtocol(Protocol):
    def record(self, record: GenerationRecord) -> None:
        ...

    def get(self, generation_id: str) -> GenerationRecord | None:
        ...

    def list_for_owner(self, owner_id: str, *, limit: int = 50) -> Iterable[GenerationRecord]:
        ...


__all__ = [
    "CreditAccount",
    "LedgerEntry",
    "GenerationRecord",
    "CreditLedgerProtocol",
    "GenerationLogProtocol",
]
