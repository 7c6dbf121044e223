"""Strategy base classes."""

from strategies.base.strategy_base import StrategyBase

__all__ = ['StrategyBase']
