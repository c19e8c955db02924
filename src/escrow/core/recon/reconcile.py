# src/escrow/core/recon/reconcile.py
from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Iterable, Optional, Protocol, Sequence

from src.escrow.core.models.enums import BookSide, CancelResult
from src.escrow.core.models.order import MalformedOrder, Order
from src.escrow.core.models.wallet import WalletAccount
from src.escrow.core.recon.escrow import EscrowRequirement, OwnerFilter, required_escrow
from src.escrow.core.recon.report import (
    OUTCOME_ALREADY_CLOSED,
    OUTCOME_BOOK_FAILED,
    OUTCOME_CANCEL_FAILED,
    OUTCOME_DRY_RUN,
    OUTCOME_LEDGER_FAILED,
    OUTCOME_REPAIRED,
    FaultRecord,
    ReconcileReport,
)
from src.escrow.core.utils.fixed import format_units, to_units

log = logging.getLogger(__name__)


class OrderStore(Protocol):
    def list_open_orders(self, symbols: Optional[Sequence[str]] = None) -> Iterable[Order | MalformedOrder]: ...

    def conditional_cancel(self, owner_id: Optional[str], created_at: datetime, order_id: str) -> CancelResult: ...


class EscrowLedger(Protocol):
    def find_account(self, owner_id: str, currency: str, custody_domain: str) -> Optional[WalletAccount]: ...

    def credit_and_unlock(self, account_id: str, amount: int) -> int: ...


class OrderBook(Protocol):
    def get_level(self, symbol: str, price: int, side: BookSide) -> Optional[int]: ...

    def set_level(self, symbol: str, price: int, side: BookSide, amount: int) -> None: ...

    def delete_level(self, symbol: str, price: int, side: BookSide) -> None: ...


@dataclass(frozen=True)
class ReconcileSettings:
    custody_domain: str = "ECO"
    tolerance: int = to_units("0.0001")
    dust: int = to_units("0.00000001")
    owners: OwnerFilter = field(default_factory=OwnerFilter)
    dry_run: bool = False


class EscrowReconciler:
    """
    One pass over OPEN orders:
      - compute the escrow each order requires
      - compare with what the owner's wallet has locked
      - under-escrowed orders are repaired as a saga, in this order:
          1) ledger: return whatever is locked to available
          2) orders: conditional cancel OPEN -> CANCELLED
          3) book:   remove the order's remaining from its price level

    No cross-store transaction. Ledger goes first: a crash between steps leaves
    funds available rather than locked behind a cancelled order.

    Every write is conditional or saturating, so the pass can run next to the
    live matching engine, and an immediate second pass changes nothing.
    """

    def __init__(
        self,
        *,
        orders: OrderStore,
        ledger: EscrowLedger,
        book: OrderBook,
        settings: ReconcileSettings | None = None,
        logger: logging.Logger | None = None,
    ):
        self.orders = orders
        self.ledger = ledger
        self.book = book
        self.settings = settings or ReconcileSettings()
        self.logger = logger or log

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run_once(self, *, symbols: Optional[Sequence[str]] = None) -> ReconcileReport:
        report = ReconcileReport(dry_run=self.settings.dry_run)

        # materialized once; a failure here is fatal for the pass
        items = list(self.orders.list_open_orders(symbols))
        self.logger.info("[RECON] open orders fetched=%d symbols=%s", len(items), list(symbols or []) or "ALL")

        # account id -> orders found consistent against it in this pass
        backed: dict[str, list[Order]] = {}
        queue: deque[Order] = deque()

        for item in items:
            report.stats.fetched += 1

            if isinstance(item, MalformedOrder):
                report.stats.malformed += 1
                self.logger.warning(
                    "[RECON] skip unreadable order id=%s owner=%s: %s",
                    item.order_id, item.owner_id, item.reason,
                )
                continue

            if not self.settings.owners.is_user_escrowed(item.owner_id):
                report.stats.skipped_bot += 1
                continue

            if item.remaining <= 0:
                report.stats.skipped_empty += 1
                continue

            report.stats.scanned += 1
            queue.append(item)

        while queue:
            order = queue.popleft()
            try:
                drained = self._process(order, report, backed)
            except Exception:
                report.stats.failed += 1
                self.logger.exception("[RECON] order failed id=%s owner=%s", order.id, order.owner_id)
                continue

            # siblings that looked fine before the account was drained get another look
            if drained is not None:
                queue.extend(backed.pop(drained, []))

        self.logger.info("[RECON] %s", report.summary_line())
        return report

    # ------------------------------------------------------------------
    # Per order
    # ------------------------------------------------------------------

    def _process(self, order: Order, report: ReconcileReport, backed: dict[str, list[Order]]) -> Optional[str]:
        """Returns the drained account id when a ledger repair happened."""
        try:
            need = required_escrow(order)
        except ValueError as e:
            report.stats.malformed += 1
            self.logger.warning("[RECON] skip order id=%s symbol=%r: %s", order.id, order.symbol, e)
            return None

        account = self.ledger.find_account(str(order.owner_id), need.currency, self.settings.custody_domain)
        if account is None:
            report.stats.missing_account += 1
            self.logger.warning(
                "[RECON] no wallet owner=%s currency=%s domain=%s (order id=%s)",
                order.owner_id, need.currency, self.settings.custody_domain, order.id,
            )
            return None

        if account.locked + self.settings.tolerance >= need.amount:
            backed.setdefault(account.id, []).append(order)
            return None

        return self._repair(order, account, need, report)

    def _repair(
        self,
        order: Order,
        account: WalletAccount,
        need: EscrowRequirement,
        report: ReconcileReport,
    ) -> Optional[str]:
        record = FaultRecord(
            order_id=order.id,
            owner_id=order.owner_id,
            symbol=order.symbol,
            side=order.side.value,
            currency=need.currency,
            locked=account.locked,
            required=need.amount,
            deficit=need.amount - account.locked,
        )
        report.stats.faulty += 1
        self.logger.warning(
            "[RECON][FAULTY] order=%s owner=%s symbol=%s side=%s locked=%s required=%s deficit=%s",
            record.order_id, record.owner_id, record.symbol, record.side,
            format_units(record.locked), format_units(record.required), format_units(record.deficit),
        )

        if self.settings.dry_run:
            report.faults.append(replace(record, outcome=OUTCOME_DRY_RUN))
            return None

        # 1) ledger
        try:
            if account.locked > 0:
                n = self.ledger.credit_and_unlock(account.id, account.locked)
                if not n:
                    self.logger.warning(
                        "[RECON][LEDGER] unlock touched no wallet row account=%s order=%s (wallet removed?)",
                        account.id, order.id,
                    )
        except Exception:
            report.stats.failed += 1
            report.faults.append(replace(record, outcome=OUTCOME_LEDGER_FAILED))
            self.logger.exception("[RECON][LEDGER] unlock failed account=%s order=%s", account.id, order.id)
            return None

        # 2) order
        try:
            result = self.orders.conditional_cancel(order.owner_id, order.created_at, order.id)
        except Exception:
            report.stats.failed += 1
            report.faults.append(replace(record, outcome=OUTCOME_CANCEL_FAILED))
            self.logger.exception("[RECON][ORDER] cancel failed order=%s", order.id)
            return account.id

        outcome = OUTCOME_REPAIRED
        if result is CancelResult.NO_MATCH:
            outcome = OUTCOME_ALREADY_CLOSED
            report.stats.cancel_no_match += 1
            self.logger.info("[RECON][ORDER] order=%s no longer OPEN, cancel skipped", order.id)

        # 3) book, with the last-read remaining even if the order closed meanwhile
        try:
            self._reduce_level(order, report)
        except Exception:
            report.stats.failed += 1
            report.faults.append(replace(record, outcome=OUTCOME_BOOK_FAILED))
            self.logger.exception(
                "[RECON][BOOK] level update failed symbol=%s price=%s order=%s",
                order.symbol, format_units(order.price), order.id,
            )
            return account.id

        report.stats.repaired += 1
        report.faults.append(replace(record, outcome=outcome))
        return account.id

    def _reduce_level(self, order: Order, report: ReconcileReport) -> None:
        side = order.side.book_side
        current = self.book.get_level(order.symbol, order.price, side)
        if current is None:
            self.logger.debug(
                "[RECON][BOOK] no level symbol=%s price=%s side=%s",
                order.symbol, format_units(order.price), side.value,
            )
            return

        left = current - order.remaining
        if left <= self.settings.dust:
            self.book.delete_level(order.symbol, order.price, side)
            report.stats.levels_deleted += 1
        else:
            self.book.set_level(order.symbol, order.price, side, left)
            report.stats.levels_updated += 1
