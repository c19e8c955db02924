from __future__ import annotations

from typing import Optional

from psycopg_pool import ConnectionPool

from src.escrow.core.models.wallet import WalletAccount
from src.escrow.core.utils.fixed import from_units


class WalletLedger:
    def __init__(self, pool: ConnectionPool):
        self.pool = pool

    def ping(self) -> None:
        with self.pool.connection() as conn:
            conn.execute("SELECT 1")

    def find_account(self, owner_id: str, currency: str, custody_domain: str) -> Optional[WalletAccount]:
        query = """
            SELECT id, user_id, currency, type, balance, in_order
            FROM wallets
            WHERE user_id = %s
              AND currency = %s
              AND type = %s
            LIMIT 1
        """
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query, (str(owner_id), str(currency), str(custody_domain)))
                row = cur.fetchone()
                if not row:
                    return None
                cols = [d[0] for d in cur.description]
                return WalletAccount.from_row(dict(zip(cols, row)))

    def credit_and_unlock(self, account_id: str, amount: int) -> int:
        """
        balance += amount; in_order = max(0, in_order - amount), one statement.
        """
        if amount < 0:
            raise ValueError(f"credit amount must be >= 0, got {amount}")

        query = """
            UPDATE wallets
            SET balance    = balance + %(amount)s,
                in_order   = GREATEST(0, in_order - %(amount)s),
                updated_at = NOW()
            WHERE id = %(id)s
        """
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query, {"amount": from_units(amount), "id": str(account_id)})
                return int(cur.rowcount or 0)
