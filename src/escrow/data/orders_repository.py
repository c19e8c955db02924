# src/escrow/data/orders_repository.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterator, Optional, Sequence

from psycopg_pool import ConnectionPool

from src.escrow.core.models.enums import CancelResult, OrderStatus
from src.escrow.core.models.order import MalformedOrder, Order, OrderParseError

logger = logging.getLogger(__name__)


class OrdersRepository:
    """
    Order store: orders keyed by (user_id, created_at, id).

    Amount columns (amount, remaining, cost, price) are NUMERIC scaled by 10^18.
    """

    def __init__(self, pool: ConnectionPool, *, fetch_size: int = 500):
        self.pool = pool
        self.fetch_size = int(fetch_size)

    def ping(self) -> None:
        with self.pool.connection() as conn:
            conn.execute("SELECT 1")

    def list_open_orders(self, symbols: Optional[Sequence[str]] = None) -> Iterator[Order | MalformedOrder]:
        """
        Lazy, single-use iterator over OPEN orders (server-side cursor).
        Rows that do not parse are yielded as MalformedOrder.
        """
        query = """
            SELECT id,
                   user_id,
                   created_at,
                   updated_at,
                   symbol,
                   side,
                   status,
                   amount,
                   remaining,
                   cost,
                   price
            FROM orders
            WHERE status = %s
        """
        params: list = [OrderStatus.OPEN.value]
        if symbols:
            query += " AND symbol = ANY(%s)"
            params.append([str(s) for s in symbols])

        with self.pool.connection() as conn:
            with conn.cursor(name="recon_open_orders") as cur:
                cur.itersize = self.fetch_size
                cur.execute(query, tuple(params))
                cols = [d[0] for d in cur.description]
                for r in cur:
                    row = dict(zip(cols, r))
                    try:
                        yield Order.from_row(row)
                    except OrderParseError as e:
                        yield MalformedOrder(
                            order_id=str(row["id"]) if row.get("id") is not None else None,
                            owner_id=str(row["user_id"]) if row.get("user_id") is not None else None,
                            reason=str(e),
                        )

    def conditional_cancel(self, owner_id: Optional[str], created_at: datetime, order_id: str) -> CancelResult:
        """
        Compare-and-set OPEN -> CANCELLED on the full key.
        A concurrent fill/cancel by the matching engine makes this a NO_MATCH.
        """
        query = """
            UPDATE orders
            SET status     = %s,
                updated_at = NOW()
            WHERE user_id = %s
              AND created_at = %s
              AND id = %s
              AND status = %s
        """
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    query,
                    (
                        OrderStatus.CANCELLED.value,
                        owner_id,
                        created_at,
                        str(order_id),
                        OrderStatus.OPEN.value,
                    ),
                )
                n = int(cur.rowcount or 0)

        if n == 0:
            return CancelResult.NO_MATCH
        return CancelResult.SUCCESS
