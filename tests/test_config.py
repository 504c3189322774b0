"""Tests for config loader: YAML parsing, schema validation, env var resolution, error cases."""

from pathlib import Path

import pytest

from config import ConfigError, load_config

MINIMAL = """
pairs: [BTCUSDT]
wallet:
  base_coin: usdt
  balances:
    usdt: 1000
"""


def _write(tmp_path: Path, content: str) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(content)
    return path


def test_minimal_config_defaults(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("TRADESIM_WEBHOOK_URL", raising=False)
    cfg = load_config(_write(tmp_path, MINIMAL))
    assert cfg.pairs == ("BTCUSDT",)
    assert cfg.timeframe == "1h"
    assert cfg.wallet.base_coin == "USDT"
    assert cfg.wallet.balances == {"USDT": 1000.0}
    assert cfg.wallet.maker_fee == 0.0
    assert cfg.controller.interval_seconds == 1.0
    assert cfg.storage.orders_path == "data/orders.db"
    assert cfg.data.csv_files == {}
    assert cfg.journal.echo_stdout is False
    assert cfg.alerting.structured_logs is True
    assert cfg.alerting.webhook_url == ""
    assert cfg.backtest.fast_period == 8
    assert cfg.backtest.slow_period == 21


def test_full_config(tmp_path: Path) -> None:
    cfg = load_config(
        _write(
            tmp_path,
            """
pairs: [BTCUSDT, ETHUSDT]
timeframe: "4h"
wallet:
  base_coin: USDT
  balances: {USDT: 5000, BTC: 0.5}
  maker_fee: 0.001
  taker_fee: 0.002
controller: {interval_seconds: 0.5}
storage: {orders_path: o.db}
data:
  bar_store_path: b.db
  csv_files: {BTCUSDT: btc.csv}
  poll_seconds: 2
  backoff_min_seconds: 1
  backoff_max_seconds: 8
journal: {path: j.jsonl, echo_stdout: true}
alerting: {structured_logs: false, webhook_url: "https://hooks.example.com/x"}
backtest: {strategy: cross_ma, fast_period: 3, slow_period: 9}
""",
        )
    )
    assert cfg.pairs == ("BTCUSDT", "ETHUSDT")
    assert cfg.wallet.balances == {"USDT": 5000.0, "BTC": 0.5}
    assert cfg.wallet.taker_fee == 0.002
    assert cfg.controller.interval_seconds == 0.5
    assert cfg.data.csv_files == {"BTCUSDT": "btc.csv"}
    assert cfg.data.backoff_max_seconds == 8.0
    assert cfg.journal.path == "j.jsonl"
    assert cfg.alerting.webhook_url == "https://hooks.example.com/x"
    assert cfg.backtest.slow_period == 9


def test_webhook_from_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TRADESIM_WEBHOOK_URL", "https://hooks.example.com/env")
    cfg = load_config(_write(tmp_path, MINIMAL))
    assert cfg.alerting.webhook_url == "https://hooks.example.com/env"


def test_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="not found"):
        load_config(tmp_path / "nope.yaml")


def test_invalid_yaml(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="Cannot parse"):
        load_config(_write(tmp_path, "pairs: [BTCUSDT\n"))


def test_not_a_mapping(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="mapping"):
        load_config(_write(tmp_path, "- a\n- b\n"))


@pytest.mark.parametrize(
    "content",
    [
        "pairs: [BTCUSDT]\n",
        "pairs: []\nwallet: {base_coin: USDT, balances: {}}\n",
        "pairs: [BTCUSDT]\nwallet: {base_coin: USDT, balances: {USDT: -1}}\n",
        "pairs: [BTCUSDT]\nwallet: {base_coin: USDT, balances: {}}\nunknown: 1\n",
        "pairs: [BTCUSDT]\ntimeframe: hourly\nwallet: {base_coin: USDT, balances: {}}\n",
        "pairs: [BTCUSDT]\nwallet: {base_coin: USDT, balances: {}, maker_fee: 2}\n",
    ],
)
def test_schema_violations(tmp_path: Path, content: str) -> None:
    with pytest.raises(ConfigError, match="validation failed"):
        load_config(_write(tmp_path, content))


def test_backoff_bounds(tmp_path: Path) -> None:
    content = MINIMAL + "data: {backoff_min_seconds: 5, backoff_max_seconds: 1}\n"
    with pytest.raises(ConfigError, match="backoff"):
        load_config(_write(tmp_path, content))


def test_fast_period_must_be_shorter(tmp_path: Path) -> None:
    content = MINIMAL + "backtest: {fast_period: 10, slow_period: 10}\n"
    with pytest.raises(ConfigError, match="fast_period"):
        load_config(_write(tmp_path, content))


def test_missing_schema_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="Schema file not found"):
        load_config(_write(tmp_path, MINIMAL), schema_path=tmp_path / "missing.json")
