# src/escrow/core/recon/report.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from src.escrow.core.utils.fixed import format_units


OUTCOME_REPAIRED = "repaired"
OUTCOME_ALREADY_CLOSED = "already_closed"   # cancel was a no-match, ledger/book still fixed
OUTCOME_LEDGER_FAILED = "ledger_failed"
OUTCOME_CANCEL_FAILED = "cancel_failed"
OUTCOME_BOOK_FAILED = "book_failed"
OUTCOME_DRY_RUN = "dry_run"


@dataclass(frozen=True, slots=True)
class FaultRecord:
    """Audit record for one under-escrowed order."""

    order_id: str
    owner_id: Optional[str]
    symbol: str
    side: str
    currency: str
    locked: int
    required: int
    deficit: int
    outcome: str = ""

    def audit_line(self) -> str:
        return (
            f"[AUDIT] order={self.order_id} owner={self.owner_id} symbol={self.symbol} "
            f"side={self.side} currency={self.currency} "
            f"locked={format_units(self.locked)} required={format_units(self.required)} "
            f"deficit={format_units(self.deficit)} outcome={self.outcome}"
        )


@dataclass(slots=True)
class ReconcileStats:
    fetched: int = 0
    scanned: int = 0
    skipped_bot: int = 0
    skipped_empty: int = 0
    malformed: int = 0
    missing_account: int = 0
    faulty: int = 0
    repaired: int = 0
    failed: int = 0
    cancel_no_match: int = 0
    levels_updated: int = 0
    levels_deleted: int = 0


@dataclass(slots=True)
class ReconcileReport:
    stats: ReconcileStats = field(default_factory=ReconcileStats)
    faults: list[FaultRecord] = field(default_factory=list)
    dry_run: bool = False

    def summary_line(self) -> str:
        s = self.stats
        mode = "DRY-RUN" if self.dry_run else "DONE"
        return (
            f"[{mode}] scanned={s.scanned} faulty={s.faulty} repaired={s.repaired} failed={s.failed} "
            f"fetched={s.fetched} skipped_bot={s.skipped_bot} skipped_empty={s.skipped_empty} "
            f"malformed={s.malformed} missing_account={s.missing_account} "
            f"cancel_no_match={s.cancel_no_match} levels_updated={s.levels_updated} "
            f"levels_deleted={s.levels_deleted}"
        )
