"""
Config loader: YAML file -> frozen dataclass tree, validated against JSON Schema.

Schema: config.schema.json next to this module.
The alert webhook URL may come from the TRADESIM_WEBHOOK_URL environment
variable (e.g. set in .env) instead of the config file.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema
import yaml

logger = logging.getLogger("tradesim.config")

DEFAULT_SCHEMA_PATH = Path(__file__).resolve().parent / "config.schema.json"
WEBHOOK_ENV = "TRADESIM_WEBHOOK_URL"


class ConfigError(Exception):
    """Raised when the config file is missing, unparseable or fails schema validation."""


@dataclass(frozen=True)
class WalletConfig:
    base_coin: str
    balances: dict[str, float] = field(default_factory=dict)
    maker_fee: float = 0.0
    taker_fee: float = 0.0


@dataclass(frozen=True)
class ControllerConfig:
    interval_seconds: float = 1.0


@dataclass(frozen=True)
class StorageConfig:
    orders_path: str = "data/orders.db"


@dataclass(frozen=True)
class DataConfig:
    bar_store_path: str = "data/bars.db"
    csv_files: dict[str, str] = field(default_factory=dict)
    poll_seconds: float = 5.0
    backoff_min_seconds: float = 0.1
    backoff_max_seconds: float = 30.0


@dataclass(frozen=True)
class JournalConfig:
    path: str = "data/journal.jsonl"
    echo_stdout: bool = False


@dataclass(frozen=True)
class AlertingConfig:
    structured_logs: bool = True
    webhook_url: str = ""


@dataclass(frozen=True)
class BacktestConfig:
    strategy: str = "cross_ma"
    fast_period: int = 8
    slow_period: int = 21


@dataclass(frozen=True)
class AppConfig:
    pairs: tuple[str, ...]
    timeframe: str
    wallet: WalletConfig
    controller: ControllerConfig = ControllerConfig()
    storage: StorageConfig = StorageConfig()
    data: DataConfig = DataConfig()
    journal: JournalConfig = JournalConfig()
    alerting: AlertingConfig = AlertingConfig()
    backtest: BacktestConfig = BacktestConfig()


def _validate_schema(data: dict[str, Any], schema_path: Path) -> None:
    """Validate *data* against the JSON Schema at *schema_path*."""
    if not schema_path.exists():
        raise ConfigError(f"Schema file not found: {schema_path}")
    with open(schema_path) as f:
        schema = json.load(f)
    try:
        jsonschema.validate(instance=data, schema=schema)
    except jsonschema.ValidationError as exc:
        location = "/".join(str(p) for p in exc.absolute_path) or "<root>"
        raise ConfigError(f"Config validation failed at {location}: {exc.message}") from exc


def load_config(path: str | Path = "config.yaml", *, schema_path: str | Path | None = None) -> AppConfig:
    """
    Load configuration from a YAML file.

    Parameters
    ----------
    path:
        YAML config file.
    schema_path:
        JSON Schema to validate against. Defaults to the bundled schema.

    Raises
    ------
    ConfigError
        If the file is missing, not a mapping, or fails schema validation.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_path) as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Cannot parse {config_path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigError(f"Config file must be a YAML mapping, got {type(raw).__name__}")

    _validate_schema(raw, Path(schema_path) if schema_path else DEFAULT_SCHEMA_PATH)

    w_raw = raw["wallet"]
    wallet = WalletConfig(
        base_coin=str(w_raw["base_coin"]).upper(),
        balances={str(k).upper(): float(v) for k, v in w_raw["balances"].items()},
        maker_fee=float(w_raw.get("maker_fee", 0.0)),
        taker_fee=float(w_raw.get("taker_fee", 0.0)),
    )

    c_raw = raw.get("controller", {})
    controller = ControllerConfig(interval_seconds=float(c_raw.get("interval_seconds", 1.0)))

    s_raw = raw.get("storage", {})
    storage = StorageConfig(orders_path=s_raw.get("orders_path", "data/orders.db"))

    d_raw = raw.get("data", {})
    data = DataConfig(
        bar_store_path=d_raw.get("bar_store_path", "data/bars.db"),
        csv_files={str(k): str(v) for k, v in d_raw.get("csv_files", {}).items()},
        poll_seconds=float(d_raw.get("poll_seconds", 5.0)),
        backoff_min_seconds=float(d_raw.get("backoff_min_seconds", 0.1)),
        backoff_max_seconds=float(d_raw.get("backoff_max_seconds", 30.0)),
    )
    if data.backoff_max_seconds < data.backoff_min_seconds:
        raise ConfigError("data.backoff_max_seconds must be >= data.backoff_min_seconds")

    j_raw = raw.get("journal", {})
    journal = JournalConfig(
        path=j_raw.get("path", "data/journal.jsonl"),
        echo_stdout=bool(j_raw.get("echo_stdout", False)),
    )

    a_raw = raw.get("alerting", {})
    alerting = AlertingConfig(
        structured_logs=bool(a_raw.get("structured_logs", True)),
        webhook_url=str(a_raw.get("webhook_url", "")) or os.environ.get(WEBHOOK_ENV, ""),
    )

    b_raw = raw.get("backtest", {})
    backtest = BacktestConfig(
        strategy=b_raw.get("strategy", "cross_ma"),
        fast_period=int(b_raw.get("fast_period", 8)),
        slow_period=int(b_raw.get("slow_period", 21)),
    )
    if backtest.fast_period >= backtest.slow_period:
        raise ConfigError("backtest.fast_period must be shorter than backtest.slow_period")

    cfg = AppConfig(
        pairs=tuple(raw["pairs"]),
        timeframe=raw.get("timeframe", "1h"),
        wallet=wallet,
        controller=controller,
        storage=storage,
        data=data,
        journal=journal,
        alerting=alerting,
        backtest=backtest,
    )
    logger.debug("loaded config from %s: pairs=%s", config_path, ",".join(cfg.pairs))
    return cfg
