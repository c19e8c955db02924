from __future__ import annotations

import pytest

from src.escrow.config import load_config
from src.escrow.core.recon.reconcile import ReconcileSettings
from tests.fakes import u


def _write(tmp_path, text: str):
    p = tmp_path / "recon.yaml"
    p.write_text(text, encoding="utf-8")
    return p


def test_yaml_values(tmp_path):
    p = _write(
        tmp_path,
        """
recon:
  custody_domain: SPOT
  tolerance: "0.001"
  dust: 1e-8
  symbols: [BTC/USDT, ETH/USDT]
  bot_owner_ids: [mm-1]
  bot_owner_prefixes: ["bot:"]
""",
    )
    cfg = load_config(p, env={"PG_DSN": "postgresql://x"})

    assert cfg.settings.custody_domain == "SPOT"
    assert cfg.settings.tolerance == u("0.001")
    assert cfg.settings.dust == 10**10
    assert cfg.symbols == ("BTC/USDT", "ETH/USDT")
    assert not cfg.settings.owners.is_user_escrowed("mm-1")
    assert not cfg.settings.owners.is_user_escrowed("bot:7")
    assert cfg.orders_dsn == cfg.ledger_dsn == "postgresql://x"


def test_env_overrides_yaml(tmp_path):
    p = _write(tmp_path, "recon:\n  custody_domain: SPOT\n  tolerance: '0.001'\n")
    env = {
        "PG_DSN": "postgresql://both",
        "LEDGER_PG_DSN": "postgresql://ledger",
        "RECON_CUSTODY_DOMAIN": "ECO",
        "RECON_TOLERANCE": "0.01",
        "RECON_DUST": "0.0000001",
    }
    cfg = load_config(p, env=env)

    assert cfg.settings.custody_domain == "ECO"
    assert cfg.settings.tolerance == u("0.01")
    assert cfg.settings.dust == u("0.0000001")
    assert cfg.orders_dsn == "postgresql://both"
    assert cfg.ledger_dsn == "postgresql://ledger"


def test_defaults_without_config_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    cfg = load_config(env={})

    d = ReconcileSettings()
    assert cfg.settings.tolerance == d.tolerance == u("0.0001")
    assert cfg.settings.dust == d.dust == u("0.00000001")
    assert cfg.settings.custody_domain == "ECO"
    assert cfg.orders_dsn is None


def test_explicit_missing_config_is_fatal(tmp_path):
    with pytest.raises(SystemExit):
        load_config(tmp_path / "nope.yaml", env={})
    with pytest.raises(SystemExit):
        load_config(env={"RECON_CONFIG": str(tmp_path / "nope.yaml")})


def test_invalid_tolerance_is_fatal(tmp_path):
    p = _write(tmp_path, "recon:\n  tolerance: lots\n")
    with pytest.raises(SystemExit):
        load_config(p, env={})
