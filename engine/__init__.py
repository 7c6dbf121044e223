"""Core backtesting engine module.

BacktestEngine lives in engine.backtest_engine and is imported from there;
this package exports the data model and its leaf components only, so that
metrics and strategies can import the model without pulling in the engine.
"""

from engine.models import (
    Candle,
    Trade,
    TradeDirection,
    TradeCloseReason,
    PeriodType,
    EquityPoint,
    StreakStats,
    OverallMetrics,
    PeriodMetrics,
    BacktestResult,
)
from engine.risk_manager import RiskManager, MIN_RISK_AMOUNT, MIN_LOT_SIZE
from engine.indicators import IndicatorCalculator, NullPreprocessor

__all__ = [
    'Candle',
    'Trade',
    'TradeDirection',
    'TradeCloseReason',
    'PeriodType',
    'EquityPoint',
    'StreakStats',
    'OverallMetrics',
    'PeriodMetrics',
    'BacktestResult',
    'RiskManager',
    'MIN_RISK_AMOUNT',
    'MIN_LOT_SIZE',
    'IndicatorCalculator',
    'NullPreprocessor',
]
