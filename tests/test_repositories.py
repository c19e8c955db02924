from __future__ import annotations

from decimal import Decimal

import pytest

from src.escrow.core.models.enums import BookSide, CancelResult, OrderStatus
from src.escrow.core.models.order import MalformedOrder, Order
from src.escrow.data.orderbook_repository import OrderBookRepository
from src.escrow.data.orders_repository import OrdersRepository
from src.escrow.data.wallet_ledger import WalletLedger
from tests.fakes import T0, FakePool, Result, u

E18 = 10**18

ORDER_COLS = ("id", "user_id", "created_at", "updated_at", "symbol", "side", "status",
              "amount", "remaining", "cost", "price")


def test_list_open_orders_streams_and_parses_rows():
    rows = [
        ("o1", "u1", T0, None, "BTC/USDT", "SELL", "OPEN", Decimal(2 * E18), Decimal(E18), Decimal(0), Decimal(30000 * E18)),
        ("o2", "u2", T0, None, "BTC/USDT", "BUY", "OPEN", None, Decimal(E18), Decimal(0), Decimal(1)),
    ]
    pool = FakePool([Result(cols=ORDER_COLS, rows=rows)])
    repo = OrdersRepository(pool, fetch_size=100)

    it = repo.list_open_orders(["BTC/USDT"])
    assert pool.conn.executed == []  # lazy

    items = list(it)
    assert isinstance(items[0], Order) and items[0].remaining == E18
    assert isinstance(items[1], MalformedOrder)
    assert items[1].order_id == "o2" and items[1].owner_id == "u2"

    sql, params = pool.conn.executed[0]
    assert "WHERE status = %s AND symbol = ANY(%s)" in sql
    assert params == ("OPEN", ["BTC/USDT"])
    assert pool.conn.cursor_names == ["recon_open_orders"]


def test_list_open_orders_without_filter():
    pool = FakePool([Result(cols=ORDER_COLS, rows=[])])
    assert list(OrdersRepository(pool).list_open_orders()) == []
    sql, params = pool.conn.executed[0]
    assert "ANY" not in sql
    assert params == ("OPEN",)


@pytest.mark.parametrize("rowcount,expected", [(1, CancelResult.SUCCESS), (0, CancelResult.NO_MATCH)])
def test_conditional_cancel_is_compare_and_set(rowcount, expected):
    pool = FakePool([Result(rowcount=rowcount)])

    assert OrdersRepository(pool).conditional_cancel("u1", T0, "o1") is expected

    sql, params = pool.conn.executed[0]
    assert "SET status = %s, updated_at = NOW()" in sql
    assert "WHERE user_id = %s AND created_at = %s AND id = %s AND status = %s" in sql
    assert params == (OrderStatus.CANCELLED.value, "u1", T0, "o1", OrderStatus.OPEN.value)


def test_find_account():
    pool = FakePool([
        Result(
            cols=("id", "user_id", "currency", "type", "balance", "in_order"),
            rows=[("w1", "u1", "BTC", "ECO", Decimal("0.5"), Decimal("1.5"))],
        )
    ])
    acc = WalletLedger(pool).find_account("u1", "BTC", "ECO")
    assert acc.id == "w1"
    assert acc.locked == u("1.5")
    assert pool.conn.executed[0][1] == ("u1", "BTC", "ECO")


def test_find_account_missing():
    pool = FakePool([Result(cols=("id",), rows=[])])
    assert WalletLedger(pool).find_account("u1", "BTC", "ECO") is None


def test_credit_and_unlock_is_one_saturating_statement():
    pool = FakePool([Result(rowcount=1)])

    WalletLedger(pool).credit_and_unlock("w1", u("1.5"))

    [(sql, params)] = pool.conn.executed
    assert "balance = balance + %(amount)s" in sql
    assert "in_order = GREATEST(0, in_order - %(amount)s)" in sql
    assert params == {"amount": Decimal("1.5"), "id": "w1"}


def test_credit_and_unlock_rejects_negative_amount():
    pool = FakePool()
    with pytest.raises(ValueError):
        WalletLedger(pool).credit_and_unlock("w1", -1)
    assert pool.conn.executed == []


def test_orderbook_level_roundtrip_uses_display_units():
    pool = FakePool([Result(cols=("amount",), rows=[(Decimal("2.5"),)]), Result(), Result()])
    book = OrderBookRepository(pool)

    assert book.get_level("BTC/USDT", u("30000"), BookSide.ASKS) == u("2.5")
    book.set_level("BTC/USDT", u("30000"), BookSide.ASKS, u("1.25"))
    book.delete_level("BTC/USDT", u("30000"), BookSide.ASKS)

    (get_sql, get_p), (set_sql, set_p), (del_sql, del_p) = pool.conn.executed
    assert get_p == ("BTC/USDT", Decimal("30000"), "ASKS")
    assert "ON CONFLICT (symbol, price, side)" in set_sql
    assert set_p == ("BTC/USDT", Decimal("30000"), "ASKS", Decimal("1.25"))
    assert del_sql.startswith("DELETE FROM orderbook")
    assert del_p == ("BTC/USDT", Decimal("30000"), "ASKS")


def test_orderbook_missing_level():
    pool = FakePool([Result(cols=("amount",), rows=[])])
    assert OrderBookRepository(pool).get_level("BTC/USDT", u("1"), BookSide.BIDS) is None
