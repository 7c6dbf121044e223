"""Configuration management module."""

from .schema import (
    StrategyConfig,
    AccountSettings,
    DataConfig,
    BacktestConfig,
    load_config,
    validate_strategy_config,
    validate_backtest_config,
    load_and_validate_backtest_config,
    load_defaults,
)
from .config_loader import deep_merge, load_config_with_profile, resolve_config_path, save_config_profile

__all__ = [
    "StrategyConfig",
    "AccountSettings",
    "DataConfig",
    "BacktestConfig",
    "load_config",
    "validate_strategy_config",
    "validate_backtest_config",
    "load_and_validate_backtest_config",
    "load_defaults",
    "deep_merge",
    "load_config_with_profile",
    "resolve_config_path",
    "save_config_profile",
]
