"""Configuration validation schemas using Pydantic."""

from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from config.config_loader import deep_merge


class StrategyConfig(BaseModel):
    """Strategy configuration.

    ``contract_size``, ``max_consecutive_losses`` and
    ``pause_days_after_losses`` are read by the engine; everything else is
    read by the pin bar strategy and the indicator preprocessor.
    """
    strategy_name: str = "PinBar"
    symbol: str = ""
    csv_filter: str = Field(default="", description="Substring the data file name must contain")
    contract_size: Decimal = Field(default=Decimal("100"), gt=0, description="Units per lot (e.g. 100 for XAUUSD)")

    # Risk ladder
    max_consecutive_losses: int = Field(
        default=0,
        ge=0,
        description="Consecutive losses that halve the risk per trade. 0 disables the ladder."
    )
    pause_days_after_losses: int = Field(
        default=5,
        ge=0,
        description="Legacy: days to pause new entries after a losing streak (dormant)."
    )

    # Pin bar shape
    threshold: Decimal = Field(default=Decimal("0"), ge=0, description="Minimum bar range in price units")
    max_body_percentage: Decimal = Field(default=Decimal("30"), ge=0, le=100)
    min_longer_wick_percentage: Decimal = Field(default=Decimal("60"), ge=0, le=100)
    max_shorter_wick_percentage: Decimal = Field(default=Decimal("20"), ge=0, le=100)
    min_lower_wick_atr_ratio: Decimal = Field(default=Decimal("0"), ge=0, description="Longer wick must be >= ratio x ATR")
    require_pin_bar_direction_match: bool = False

    # Moving averages
    base_ema: int = Field(default=200, gt=0, description="Trend filter EMA period")
    ema_list: List[int] = Field(default_factory=lambda: [20, 60, 80, 100, 200])
    near_ema_threshold: Decimal = Field(default=Decimal("1"), ge=0, description="Max distance from an EMA in price units")

    # Exits
    risk_reward_ratio: Decimal = Field(default=Decimal("1.5"), gt=0)
    stop_loss_atr_ratio: Decimal = Field(default=Decimal("0"), ge=0)
    stop_loss_strategy: Literal["pinbar_end_plus_atr"] = "pinbar_end_plus_atr"

    # Trading hours (UTC)
    start_trading_hour: int = Field(default=0, ge=0, le=23)
    end_trading_hour: int = Field(default=23, ge=0, le=23)
    no_trading_hours_limit: bool = False
    no_trade_hours: List[int] = Field(default_factory=list)

    # Indicators
    atr_period: int = Field(default=14, gt=0)
    min_adx: Decimal = Field(default=Decimal("0"), ge=0, description="0 disables the ADX filter")
    adx_period: int = Field(default=14, gt=0)
    adx_timeframe: Literal["current", "h1", "h4", "daily"] = Field(
        default="current",
        description="Bar length the ADX is computed on; higher timeframes aggregate the candles"
    )
    low_adx_risk_reward_ratio: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="Reward ratio used when ADX < min_adx. 0 uses risk_reward_ratio."
    )

    @field_validator('ema_list')
    @classmethod
    def validate_ema_list(cls, v: List[int]) -> List[int]:
        """EMA periods must be positive."""
        for period in v:
            if period <= 0:
                raise ValueError(f"EMA period must be positive, got {period}")
        return v

    @field_validator('no_trade_hours')
    @classmethod
    def validate_no_trade_hours(cls, v: List[int]) -> List[int]:
        for hour in v:
            if not 0 <= hour <= 23:
                raise ValueError(f"no_trade_hours entries must be in 0-23, got {hour}")
        return v

    @model_validator(mode='after')
    def validate_trading_window(self):
        if not self.no_trading_hours_limit and self.start_trading_hour > self.end_trading_hour:
            raise ValueError(
                f"start_trading_hour ({self.start_trading_hour}) must not be after "
                f"end_trading_hour ({self.end_trading_hour})"
            )
        return self

    def indicator_periods(self) -> List[int]:
        """All EMA periods the strategy reads, base EMA included."""
        periods = list(dict.fromkeys(self.ema_list))
        if self.base_ema not in periods:
            periods.append(self.base_ema)
        return periods


class AccountSettings(BaseModel):
    """Account settings shared by backtests."""
    initial_capital: Decimal = Field(default=Decimal("10000"), gt=0, description="Starting capital in account currency")
    max_loss_per_trade_percent: Decimal = Field(
        default=Decimal("1"),
        gt=0,
        le=100,
        description="Base risk per trade as % of equity, before any ladder reduction"
    )


class DataConfig(BaseModel):
    """Where candles come from and which window to test."""
    directory: str = "data"
    file: Optional[str] = Field(default=None, description="Explicit CSV path; overrides directory lookup")
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @model_validator(mode='after')
    def validate_date_range(self):
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError(f"start_date {self.start_date} is after end_date {self.end_date}")
        return self


class BacktestConfig(BaseModel):
    """Complete backtest run configuration (one YAML file)."""
    strategy: StrategyConfig = Field(default_factory=StrategyConfig)
    account: AccountSettings = Field(default_factory=AccountSettings)
    data: DataConfig = Field(default_factory=DataConfig)


def load_config(config_path: Path) -> Dict[str, Any]:
    """Load YAML configuration file."""
    with open(config_path, 'r') as f:
        return yaml.safe_load(f) or {}


def validate_strategy_config(config_dict: Dict[str, Any]) -> StrategyConfig:
    """Validate and return StrategyConfig object."""
    return StrategyConfig(**config_dict)


def validate_backtest_config(config_dict: Dict[str, Any]) -> BacktestConfig:
    """Validate and return BacktestConfig object."""
    return BacktestConfig(**config_dict)


def load_defaults() -> Dict[str, Any]:
    """Load default configuration values."""
    defaults_path = Path(__file__).parent / "defaults.yml"
    return load_config(defaults_path)


def load_and_validate_backtest_config(config_path: Path) -> BacktestConfig:
    """Load a backtest config file on top of the defaults and validate it."""
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")
    merged = deep_merge(load_defaults(), load_config(config_path))
    return validate_backtest_config(merged)
