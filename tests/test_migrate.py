from __future__ import annotations

import pytest

from src.escrow.cli import migrate


class _Conn:
    def __init__(self, log, dsn):
        self.log = log
        self.dsn = dsn

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, sql):
        self.log.append((self.dsn, sql))


@pytest.fixture
def applied(monkeypatch):
    log: list = []
    monkeypatch.setattr(migrate.psycopg, "connect", lambda dsn, autocommit: _Conn(log, dsn))
    for k in ("PG_DSN", "ORDERS_PG_DSN", "LEDGER_PG_DSN"):
        monkeypatch.delenv(k, raising=False)
    return log


def test_applies_schema_once_for_shared_dsn(applied, monkeypatch):
    monkeypatch.setenv("PG_DSN", "postgresql://one")

    migrate.main()

    [(dsn, sql)] = applied
    assert dsn == "postgresql://one"
    for table in ("orders", "orderbook", "wallets"):
        assert f"CREATE TABLE IF NOT EXISTS {table}" in sql


def test_applies_schema_to_each_store(applied, monkeypatch):
    monkeypatch.setenv("ORDERS_PG_DSN", "postgresql://orders")
    monkeypatch.setenv("LEDGER_PG_DSN", "postgresql://ledger")

    migrate.main()

    assert [dsn for dsn, _ in applied] == ["postgresql://orders", "postgresql://ledger"]


def test_requires_dsn(applied):
    with pytest.raises(RuntimeError):
        migrate.main()
