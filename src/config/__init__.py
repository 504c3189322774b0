"""
Configuration loader: reads config.yaml, validates it against the bundled
JSON Schema, resolves the alert webhook from the environment.
"""

from config.loader import (
    AlertingConfig,
    AppConfig,
    BacktestConfig,
    ConfigError,
    ControllerConfig,
    DataConfig,
    JournalConfig,
    StorageConfig,
    WalletConfig,
    load_config,
)

__all__ = [
    "AlertingConfig",
    "AppConfig",
    "BacktestConfig",
    "ConfigError",
    "ControllerConfig",
    "DataConfig",
    "JournalConfig",
    "StorageConfig",
    "WalletConfig",
    "load_config",
]
