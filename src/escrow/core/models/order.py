# src/escrow/core/models/order.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Optional

from src.escrow.core.models.enums import OrderSide, OrderStatus
from src.escrow.core.utils.fixed import FixedPointError, parse_scaled

SYMBOL_DELIMITER = "/"


class SymbolFormatError(ValueError):
    pass


class OrderParseError(ValueError):
    pass


def split_symbol(symbol: str) -> tuple[str, str]:
    """'BTC/USDT' -> ('BTC', 'USDT')"""
    parts = str(symbol or "").split(SYMBOL_DELIMITER)
    if len(parts) != 2 or not parts[0].strip() or not parts[1].strip():
        raise SymbolFormatError(f"cannot split symbol {symbol!r}")
    return parts[0].strip(), parts[1].strip()


@dataclass(frozen=True, slots=True)
class Order:
    """
    Open order as read from the order store.

    Amount fields are 10^18-scaled ints:
      amount     original order amount (base)
      remaining  unfilled part (base)
      cost       cumulative quote spent so far
      price      limit price (quote per base)
    """

    id: str
    owner_id: Optional[str]
    created_at: datetime
    symbol: str
    side: OrderSide
    status: OrderStatus

    amount: int
    remaining: int
    cost: int
    price: int

    updated_at: Optional[datetime] = None

    @property
    def key(self) -> tuple[Optional[str], datetime, str]:
        return (self.owner_id, self.created_at, self.id)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Order":
        order_id = row.get("id")
        if order_id is None or str(order_id) == "":
            raise OrderParseError("id is missing")

        created_at = row.get("created_at")
        if not isinstance(created_at, datetime):
            raise OrderParseError(f"created_at is not a timestamp: {created_at!r}")

        try:
            side = OrderSide(str(row.get("side") or "").upper())
        except ValueError:
            raise OrderParseError(f"unknown side {row.get('side')!r}") from None
        try:
            status = OrderStatus(str(row.get("status") or "").upper())
        except ValueError:
            raise OrderParseError(f"unknown status {row.get('status')!r}") from None

        try:
            amount = parse_scaled(row.get("amount"))
            remaining = parse_scaled(row.get("remaining"))
            cost = parse_scaled(row.get("cost"))
            price = parse_scaled(row.get("price"))
        except FixedPointError as e:
            raise OrderParseError(str(e)) from None

        if remaining < 0 or remaining > amount:
            raise OrderParseError(f"remaining out of range: remaining={remaining} amount={amount}")
        if cost < 0 or price < 0:
            raise OrderParseError("negative cost/price")

        # one normalized owner id for classification, wallet lookup and the cancel key
        owner = row.get("user_id")
        owner = str(owner).strip() if owner is not None else ""
        return cls(
            id=str(order_id),
            owner_id=owner or None,
            created_at=created_at,
            symbol=str(row.get("symbol") or ""),
            side=side,
            status=status,
            amount=amount,
            remaining=remaining,
            cost=cost,
            price=price,
            updated_at=row.get("updated_at"),
        )


@dataclass(frozen=True, slots=True)
class MalformedOrder:
    """Row that could not be read as an Order; it is unreadable, not faulty."""

    order_id: Optional[str]
    owner_id: Optional[str]
    reason: str
