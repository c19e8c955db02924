from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from src.escrow.core.utils.fixed import to_units


@dataclass(frozen=True, slots=True)
class WalletAccount:
    id: str
    owner_id: str
    currency: str
    custody_domain: str

    balance: int    # available, scaled
    locked: int     # in-order, scaled

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "WalletAccount":
        return cls(
            id=str(row["id"]),
            owner_id=str(row["user_id"]),
            currency=str(row["currency"]),
            custody_domain=str(row["type"]),
            balance=to_units(row.get("balance") or 0),
            locked=to_units(row.get("in_order") or 0),
        )
