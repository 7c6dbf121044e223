"""Base strategy interface that all strategies must implement."""

from abc import ABC, abstractmethod
from decimal import Decimal

from config.schema import StrategyConfig
from engine.models import Candle, TradeDirection


class StrategyBase(ABC):
    """Abstract base class for all trading strategies.

    The engine treats a strategy as an oracle with four queries. It never
    looks at strategy state, and any exception raised by a query aborts the
    backtest run.
    """

    def __init__(self, config: StrategyConfig):
        """
        Initialize strategy with configuration.

        Args:
            config: Validated strategy configuration
        """
        self.config = config
        self.name = config.strategy_name

    @abstractmethod
    def can_open_long(self, current: Candle, previous: Candle, has_open_position: bool) -> bool:
        """
        Whether a long position may be opened at the close of ``current``.

        Args:
            current: Bar being evaluated
            previous: Bar before it (the reference bar, e.g. a pin bar)
            has_open_position: Whether a position is already open
        """

    @abstractmethod
    def can_open_short(self, current: Candle, previous: Candle, has_open_position: bool) -> bool:
        """Mirror of can_open_long for short positions."""

    @abstractmethod
    def calculate_stop_loss(self, reference_bar: Candle, direction: TradeDirection) -> Decimal:
        """
        Stop-loss price anchored on the reference bar.

        Args:
            reference_bar: Bar that produced the signal
            direction: Side of the position being opened
        """

    @abstractmethod
    def calculate_take_profit(
        self,
        entry_price: Decimal,
        stop_loss: Decimal,
        direction: TradeDirection,
        reference_bar: Candle
    ) -> Decimal:
        """
        Take-profit price.

        Args:
            entry_price: Entry price (close of the signal bar)
            stop_loss: Stop-loss price from calculate_stop_loss
            direction: Side of the position being opened
            reference_bar: Bar that produced the signal
        """

    def validate_config(self) -> bool:
        """
        Validate strategy configuration.

        Returns:
            True if config is valid, raises exception otherwise
        """
        if not self.config.strategy_name:
            raise ValueError("Strategy name is required")
        return True
