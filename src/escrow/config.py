# src/escrow/config.py
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from src.escrow.core.recon.escrow import OwnerFilter
from src.escrow.core.recon.reconcile import ReconcileSettings
from src.escrow.core.utils.fixed import FixedPointError, to_units

DEFAULT_CONFIG_PATH = Path("config") / "recon.yaml"


@dataclass(frozen=True)
class AppConfig:
    orders_dsn: Optional[str]
    ledger_dsn: Optional[str]
    settings: ReconcileSettings = field(default_factory=ReconcileSettings)
    symbols: tuple[str, ...] = ()


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise SystemExit(f"Config file not found: {path}")
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    return data or {}


def _env(env: Mapping[str, str], name: str) -> Optional[str]:
    v = (env.get(name) or "").strip()
    return v or None


def _amount(raw: Any, name: str) -> int:
    # yaml floats (1e-8) go through str() so they never reach arithmetic as floats
    if isinstance(raw, float):
        raw = repr(raw)
    try:
        units = to_units(raw)
    except FixedPointError as e:
        raise SystemExit(f"Invalid {name}: {e}") from None
    if units < 0:
        raise SystemExit(f"Invalid {name}: must be >= 0")
    return units


def load_config(
    path: Optional[Path] = None,
    *,
    env: Optional[Mapping[str, str]] = None,
) -> AppConfig:
    """
    Order of precedence: env > yaml > defaults.

    env:
      ORDERS_PG_DSN / LEDGER_PG_DSN (fallback PG_DSN)
      RECON_CONFIG, RECON_CUSTODY_DOMAIN, RECON_TOLERANCE, RECON_DUST
    """
    env = os.environ if env is None else env

    if path is None:
        raw_path = _env(env, "RECON_CONFIG")
        path = Path(raw_path) if raw_path else DEFAULT_CONFIG_PATH
        # the default file is optional, an explicit one is not
        cfg = _load_yaml(path) if (raw_path or path.exists()) else {}
    else:
        cfg = _load_yaml(path)

    r = cfg.get("recon", {}) or {}

    defaults = ReconcileSettings()
    domain = _env(env, "RECON_CUSTODY_DOMAIN") or str(r.get("custody_domain") or defaults.custody_domain)

    tol_raw = _env(env, "RECON_TOLERANCE") or r.get("tolerance")
    dust_raw = _env(env, "RECON_DUST") or r.get("dust")

    owners = OwnerFilter(
        bot_owner_ids=frozenset(str(x) for x in (r.get("bot_owner_ids") or [])),
        bot_owner_prefixes=tuple(str(x) for x in (r.get("bot_owner_prefixes") or [])),
    )

    settings = ReconcileSettings(
        custody_domain=domain,
        tolerance=_amount(tol_raw, "tolerance") if tol_raw is not None else defaults.tolerance,
        dust=_amount(dust_raw, "dust") if dust_raw is not None else defaults.dust,
        owners=owners,
    )

    pg_dsn = _env(env, "PG_DSN")
    return AppConfig(
        orders_dsn=_env(env, "ORDERS_PG_DSN") or pg_dsn,
        ledger_dsn=_env(env, "LEDGER_PG_DSN") or pg_dsn,
        settings=settings,
        symbols=tuple(str(s) for s in (r.get("symbols") or [])),
    )
