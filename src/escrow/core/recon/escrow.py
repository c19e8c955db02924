# src/escrow/core/recon/escrow.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from src.escrow.core.models.enums import OrderSide
from src.escrow.core.models.order import Order, split_symbol
from src.escrow.core.utils.fixed import mul_div

ZERO_OWNER_IDS = frozenset({"0", "00000000-0000-0000-0000-000000000000"})


@dataclass(frozen=True, slots=True)
class EscrowRequirement:
    currency: str
    amount: int


def required_escrow(order: Order) -> EscrowRequirement:
    """
    Amount an open order needs locked in the owner's wallet.

      SELL: remaining, in base currency
      BUY:  cost * remaining / amount, in quote currency

    The BUY rule scales what was spent so far by the unfilled fraction; it is an
    approximation of the reserved quote and drifts under uneven partial fills.
    """
    base, quote = split_symbol(order.symbol)
    if order.side is OrderSide.SELL:
        return EscrowRequirement(currency=base, amount=order.remaining)
    return EscrowRequirement(
        currency=quote,
        amount=mul_div(order.cost, order.remaining, order.amount),
    )


@dataclass(frozen=True)
class OwnerFilter:
    """Decides which orders are backed by a user wallet."""

    bot_owner_ids: frozenset[str] = field(default_factory=frozenset)
    bot_owner_prefixes: tuple[str, ...] = ()

    def is_user_escrowed(self, owner_id: Optional[str]) -> bool:
        if owner_id is None:
            return False
        oid = str(owner_id).strip()
        if not oid or oid in ZERO_OWNER_IDS:
            return False
        if oid in self.bot_owner_ids:
            return False
        return not any(oid.startswith(p) for p in self.bot_owner_prefixes if p)
