# src/escrow/cli/migrate.py
from pathlib import Path
import os

import psycopg
from dotenv import load_dotenv


def _apply(dsn: str, ddl_sql: str) -> None:
    # plain connection: the pool prepares every statement, a multi-statement script can't be prepared
    with psycopg.connect(dsn, autocommit=True) as conn:
        conn.execute(ddl_sql)


def main() -> None:
    load_dotenv()
    pg_dsn = os.getenv("PG_DSN")
    orders_dsn = os.getenv("ORDERS_PG_DSN") or pg_dsn
    ledger_dsn = os.getenv("LEDGER_PG_DSN") or pg_dsn
    if not orders_dsn or not ledger_dsn:
        raise RuntimeError("PG_DSN env var is required")

    ddl_path = (
        Path(__file__).resolve().parents[1]
        / "data"
        / "storage"
        / "postgres"
        / "ddl.sql"
    )

    ddl_sql = ddl_path.read_text(encoding="utf-8")
    _apply(orders_dsn, ddl_sql)
    if ledger_dsn != orders_dsn:
        _apply(ledger_dsn, ddl_sql)


if __name__ == "__main__":
    main()
