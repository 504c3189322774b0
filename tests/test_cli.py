"""Tests for CLI commands using click CliRunner. No network; uses fixture data."""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from cli.main import cli
from data.bar_store import BarStore
from storage.order_store import SQLiteOrderStore

CLOSES = [10, 10, 10, 10, 9, 8, 7, 8, 10, 12, 14, 13, 11, 9, 7]
EPOCH = 1704067200


def _write_csv(path: Path) -> Path:
    rows = ["time,open,high,low,close,volume"]
    for i, c in enumerate(CLOSES):
        rows.append(f"{EPOCH + i * 3600},{c},{c},{c},{c},1000")
    path.write_text("\n".join(rows) + "\n")
    return path


def _write_config(tmp_path: Path, *, with_csv: bool) -> Path:
    csv_block = ""
    if with_csv:
        csv_path = _write_csv(tmp_path / "btc.csv")
        csv_block = f'  csv_files:\n    BTCUSDT: "{csv_path}"\n'
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        f"""
pairs: [BTCUSDT]
timeframe: "1h"
wallet:
  base_coin: USDT
  balances:
    USDT: 10000
controller:
  interval_seconds: 0.05
storage:
  orders_path: "{tmp_path / 'orders.db'}"
data:
  bar_store_path: "{tmp_path / 'bars.db'}"
{csv_block}journal:
  path: "{tmp_path / 'journal.jsonl'}"
alerting:
  structured_logs: false
backtest:
  fast_period: 2
  slow_period: 4
"""
    )
    return config_path


@pytest.fixture
def csv_config(tmp_path: Path) -> Path:
    return _write_config(tmp_path, with_csv=True)


@pytest.fixture
def store_config(tmp_path: Path) -> Path:
    config_path = _write_config(tmp_path, with_csv=False)
    csv_path = _write_csv(tmp_path / "ingest.csv")
    result = CliRunner().invoke(
        cli, ["--config", str(config_path), "ingest", "--pair", "BTCUSDT", "--csv", str(csv_path)]
    )
    assert result.exit_code == 0, result.output
    return config_path


def test_cli_missing_config(tmp_path: Path) -> None:
    result = CliRunner().invoke(cli, ["--config", str(tmp_path / "nope.yaml"), "backtest"])
    assert result.exit_code == 1
    assert "Config file not found" in result.output


def test_cli_ingest(store_config: Path, tmp_path: Path) -> None:
    assert BarStore(tmp_path / "bars.db").count_bars("BTCUSDT", "1h") == len(CLOSES)


def test_cli_backtest_csv(csv_config: Path, tmp_path: Path) -> None:
    result = CliRunner().invoke(cli, ["--config", str(csv_config), "backtest"])
    assert result.exit_code == 0, result.output
    assert "Trades: 1" in result.output
    assert "FINAL WALLET" in result.output
    assert "FINAL PORTFOLIO     = 11000.00 USDT" in result.output
    records = [json.loads(line) for line in (tmp_path / "journal.jsonl").read_text().splitlines()]
    events = [r["event"] for r in records]
    assert events.count("fill") == 2
    assert events[-1] == "summary"
    assert records[-1]["final_value"] == pytest.approx(11_000.0)
    # not persisted without --persist
    assert SQLiteOrderStore(tmp_path / "orders.db").orders() == []


def test_cli_backtest_store_persist_and_orders(store_config: Path) -> None:
    runner = CliRunner()
    result = runner.invoke(cli, ["--config", str(store_config), "backtest", "--source", "store", "--persist"])
    assert result.exit_code == 0, result.output
    assert "11000.00" in result.output

    listed = runner.invoke(cli, ["--config", str(store_config), "orders"])
    assert listed.exit_code == 0, listed.output
    assert listed.output.count("[FILLED]") == 2

    none = runner.invoke(cli, ["--config", str(store_config), "orders", "--status", "NEW"])
    assert "No orders." in none.output


def test_cli_backtest_no_bars(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path, with_csv=False)
    result = CliRunner().invoke(cli, ["--config", str(config_path), "backtest"])
    assert result.exit_code == 0
    assert "No bars to replay" in result.output


def test_cli_paper_once(store_config: Path, tmp_path: Path) -> None:
    result = CliRunner().invoke(cli, ["--config", str(store_config), "paper", "--once"])
    assert result.exit_code == 0, result.output
    assert "FINAL WALLET" in result.output
    assert "=== Account ===" in result.output
    orders = SQLiteOrderStore(tmp_path / "orders.db").orders()
    assert [o.side.value for o in orders] == ["BUY", "SELL"]


def test_cli_health_ok(store_config: Path) -> None:
    result = CliRunner().invoke(cli, ["--config", str(store_config), "health"])
    assert result.exit_code == 0, result.output
    assert "[OK] config" in result.output
    assert "[OK] bars" in result.output
    assert "HEALTHY" in result.output


def test_cli_health_without_bars(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path, with_csv=False)
    result = CliRunner().invoke(cli, ["--config", str(config_path), "health"])
    assert result.exit_code == 1
    assert "[FAIL] bars" in result.output
    assert "UNHEALTHY" in result.output


def test_cli_health_bad_config(tmp_path: Path) -> None:
    result = CliRunner().invoke(cli, ["--config", str(tmp_path / "nope.yaml"), "health"])
    assert result.exit_code == 1
    assert "[FAIL] config" in result.output
