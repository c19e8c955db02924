# src/escrow/cli/repair_escrow.py
from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Optional, Sequence

import psycopg
from dotenv import load_dotenv
from psycopg_pool import ConnectionPool, PoolTimeout

from src.escrow.config import AppConfig, load_config
from src.escrow.core.recon.reconcile import EscrowLedger, EscrowReconciler, OrderBook, OrderStore
from src.escrow.core.recon.report import ReconcileReport
from src.escrow.data.orderbook_repository import OrderBookRepository
from src.escrow.data.orders_repository import OrdersRepository
from src.escrow.data.storage.postgres.pool import create_pool
from src.escrow.data.wallet_ledger import WalletLedger

EXIT_OK = 0
EXIT_STORE_UNAVAILABLE = 2


class StoreUnavailableError(RuntimeError):
    pass


@dataclass
class Stores:
    orders: OrderStore
    ledger: EscrowLedger
    book: OrderBook
    pools: list[ConnectionPool] = field(default_factory=list)

    def close(self) -> None:
        for p in self.pools:
            p.close()


def connect(cfg: AppConfig, *, timeout: float = 10.0) -> Stores:
    """
    Opens the order store and ledger pools and pings both.
    Any failure here is fatal for the run.
    """
    if not cfg.orders_dsn or not cfg.ledger_dsn:
        raise SystemExit("PG_DSN (or ORDERS_PG_DSN and LEDGER_PG_DSN) env var is required")

    pools: list[ConnectionPool] = []
    try:
        orders_pool = create_pool(cfg.orders_dsn)
        pools.append(orders_pool)
        orders_pool.open(wait=True, timeout=timeout)

        if cfg.ledger_dsn == cfg.orders_dsn:
            ledger_pool = orders_pool
        else:
            ledger_pool = create_pool(cfg.ledger_dsn)
            pools.append(ledger_pool)
            ledger_pool.open(wait=True, timeout=timeout)

        orders = OrdersRepository(orders_pool)
        ledger = WalletLedger(ledger_pool)
        orders.ping()
        ledger.ping()
    except (PoolTimeout, psycopg.Error) as e:
        for p in pools:
            p.close()
        raise StoreUnavailableError(str(e) or type(e).__name__) from e

    return Stores(orders=orders, ledger=ledger, book=OrderBookRepository(orders_pool), pools=pools)


def run(
    cfg: AppConfig,
    stores: Stores,
    *,
    symbols: Sequence[str] = (),
    dry_run: bool = False,
    logger: Optional[logging.Logger] = None,
) -> ReconcileReport:
    settings = replace(cfg.settings, dry_run=bool(dry_run))
    reconciler = EscrowReconciler(
        orders=stores.orders,
        ledger=stores.ledger,
        book=stores.book,
        settings=settings,
        logger=logger,
    )
    return reconciler.run_once(symbols=list(symbols or cfg.symbols) or None)


def main(argv: Optional[Sequence[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Repair open orders whose escrow is not covered by the wallet lock.")
    ap.add_argument("--config", type=Path, default=None, help="YAML config (default: $RECON_CONFIG or config/recon.yaml)")
    ap.add_argument("--symbol", action="append", default=[], help="limit to a symbol, e.g. BTC/USDT (repeatable)")
    ap.add_argument("--dry-run", action="store_true", help="classify only, write nothing")
    ap.add_argument("--verbose", "-v", action="store_true")
    ap.add_argument("--connect-timeout", type=float, default=10.0)
    args = ap.parse_args(argv)

    load_dotenv()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    logger = logging.getLogger("escrow.repair")

    cfg = load_config(args.config)

    logger.info("=== ESCROW REPAIR START === dry_run=%s domain=%s", args.dry_run, cfg.settings.custody_domain)

    try:
        stores = connect(cfg, timeout=args.connect_timeout)
    except StoreUnavailableError as e:
        logger.error("store unavailable: %s", e)
        return EXIT_STORE_UNAVAILABLE

    try:
        report = run(cfg, stores, symbols=args.symbol, dry_run=args.dry_run, logger=logger)
    except psycopg.Error as e:
        logger.error("could not read open orders: %s", e)
        return EXIT_STORE_UNAVAILABLE
    finally:
        stores.close()

    for rec in report.faults:
        print(rec.audit_line())
    print(report.summary_line())
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
