"""Credit packages sold at checkout and the ledger hook a completed purchase calls."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from .db.interfaces import CreditLedgerProtocol
from .errors import UnknownPackageError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CreditPackage:
    package_id: str
    name: str
    credits: int
    amount_cents: int

    def as_dict(self) -> dict[str, object]:
        return {
            "id": self.package_id,
            "name": self.name,
            "credits": self.credits,
            "amount": self.amount_cents,
        }


PACKAGES: Mapping[str, CreditPackage] = MappingProxyType(
    {
        "1pack": CreditPackage("1pack", "1 Photo Staging", 1, 500),
        "5pack": CreditPackage("5pack", "5-Pack Staging", 5, 2500),
        "10pack": CreditPackage("10pack", "10-Pack Credits", 10, 4000),
        "50pack": CreditPackage("50pack", "50-Pack Credits", 50, 15000),
    }
)


def get_package(package_id: str) -> CreditPackage:
    package = PACKAGES.get((package_id or "").strip())
    if package is None:
        raise UnknownPackageError(f"Invalid package: {package_id!r}")
    return package


def apply_purchase(
    ledger: CreditLedgerProtocol,
    owner_id: str,
    package_id: str,
    *,
    reference: str | None = None,
) -> int:
    """Credit ``owner_id`` with the package's credits; returns the new balance."""

    package = get_package(package_id)
    balance = ledger.credit(owner_id, package.credits, reference=reference or f"package:{package.package_id}")
    logger.info("purchase complete owner=%s package=%s credits=%d balance=%d", owner_id, package.package_id, package.credits, balance)
    return balance


__all__ = ["CreditPackage", "PACKAGES", "get_package", "apply_purchase"]
