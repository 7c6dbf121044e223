"""Trading strategies."""

from strategies.base import StrategyBase
from strategies.pin_bar import PinBarStrategy

__all__ = ['StrategyBase', 'PinBarStrategy']
