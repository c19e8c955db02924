# src/escrow/data/orderbook_repository.py
from __future__ import annotations

from typing import Optional

from psycopg_pool import ConnectionPool

from src.escrow.core.models.enums import BookSide
from src.escrow.core.utils.fixed import from_units, to_units


class OrderBookRepository:
    """
    Depth cache: (symbol, price, side) -> aggregate remaining amount.

    Stored in display units (NUMERIC(38,18)); scaled ints at this boundary.
    Sparse: no row means zero depth.
    """

    def __init__(self, pool: ConnectionPool):
        self.pool = pool

    def get_level(self, symbol: str, price: int, side: BookSide) -> Optional[int]:
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT amount FROM orderbook
                    WHERE symbol = %s AND price = %s AND side = %s
                    """,
                    (symbol, from_units(price), BookSide(side).value),
                )
                row = cur.fetchone()
        if not row or row[0] is None:
            return None
        return to_units(row[0])

    def set_level(self, symbol: str, price: int, side: BookSide, amount: int) -> None:
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO orderbook (symbol, price, side, amount)
                    VALUES (%s, %s, %s, %s)
                    ON CONFLICT (symbol, price, side)
                    DO UPDATE SET amount = EXCLUDED.amount
                    """,
                    (symbol, from_units(price), BookSide(side).value, from_units(amount)),
                )

    def delete_level(self, symbol: str, price: int, side: BookSide) -> None:
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "DELETE FROM orderbook WHERE symbol = %s AND price = %s AND side = %s",
                    (symbol, from_units(price), BookSide(side).value),
                )
