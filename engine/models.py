"""Data models for the backtesting engine.

All prices, profits and equity values are ``Decimal`` so that sums over
thousands of simulated trades do not drift.

Lifecycle of a Trade:
- created open (all close-time fields are None)
- closed exactly once by the engine
- appended to ``BacktestResult.trades`` and never touched again
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional


class TradeDirection(str, Enum):
    """Side of a position."""
    LONG = "long"
    SHORT = "short"


class TradeCloseReason(str, Enum):
    """Why a trade was closed.

    MANUAL is only used for the forced liquidation at the end of the
    backtest window.
    """
    STOP_LOSS = "stop_loss"
    TAKE_PROFIT = "take_profit"
    MANUAL = "manual"


class PeriodType(str, Enum):
    """Grouping granularity for period metrics."""
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


@dataclass(frozen=True)
class Candle:
    """OHLC price bar.

    Prices are fixed once created. ``indicators`` is filled in place by the
    indicator preprocessor before the simulation starts; the engine itself
    never reads it.

    Attributes:
        time: Bar timestamp
        open: Open price
        high: High price
        low: Low price
        close: Close price
        volume: Tick volume (optional)
        indicators: Indicator values keyed by name (e.g. 'atr', 'ema_200')
    """
    time: datetime
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: int = 0
    indicators: Dict[str, Decimal] = field(default_factory=dict, compare=False, repr=False)

    @property
    def total_range(self) -> Decimal:
        return self.high - self.low

    @property
    def body_size(self) -> Decimal:
        return abs(self.close - self.open)

    @property
    def upper_wick(self) -> Decimal:
        return self.high - max(self.open, self.close)

    @property
    def lower_wick(self) -> Decimal:
        return min(self.open, self.close) - self.low

    @property
    def is_bullish(self) -> bool:
        return self.close > self.open

    @property
    def is_bearish(self) -> bool:
        return self.close < self.open

    @property
    def atr(self) -> Decimal:
        return self.indicators.get("atr", Decimal("0"))

    @property
    def adx(self) -> Decimal:
        return self.indicators.get("adx", Decimal("0"))

    def ema(self, period: int) -> Decimal:
        """EMA value for ``period``; zero means not available yet."""
        return self.indicators.get(f"ema_{period}", Decimal("0"))


@dataclass
class Trade:
    """Simulated position from open to close.

    Attributes:
        trade_id: Sequential id within one run (starts at 1)
        direction: Long or short
        open_time: Entry bar timestamp
        open_price: Entry price (close of the signal bar)
        stop_loss: Stop-loss price
        take_profit: Take-profit price
        close_time: Exit bar timestamp (None while open)
        close_price: Exit price (None while open)
        close_reason: Exit reason (None while open)
        profit_loss: Realized P&L in account currency (None while open)
        return_rate_percent: P&L as % of initial capital (None while open)
        lot_size: Position size used to settle the trade (None while open)
    """
    trade_id: int
    direction: TradeDirection
    open_time: datetime
    open_price: Decimal
    stop_loss: Decimal
    take_profit: Decimal
    close_time: Optional[datetime] = None
    close_price: Optional[Decimal] = None
    close_reason: Optional[TradeCloseReason] = None
    profit_loss: Optional[Decimal] = None
    return_rate_percent: Optional[Decimal] = None
    lot_size: Optional[Decimal] = None

    @property
    def is_closed(self) -> bool:
        return self.close_time is not None

    @property
    def is_winning(self) -> Optional[bool]:
        """True for a profit, False for a loss or break-even, None while open."""
        if self.profit_loss is None:
            return None
        return self.profit_loss > 0

    @property
    def holding_duration(self) -> Optional[timedelta]:
        if self.close_time is None:
            return None
        return self.close_time - self.open_time

    @property
    def stop_loss_distance(self) -> Decimal:
        return abs(self.open_price - self.stop_loss)


@dataclass
class EquityPoint:
    """One point of the equity curve (one per closed trade)."""
    time: datetime
    cumulative_profit: Decimal
    cumulative_return_rate_percent: Decimal
    trade_id: int


@dataclass
class StreakStats:
    """Longest winning/losing runs and the timestamps bounding them.

    Start is the open time of the first trade of the run, end is the close
    time of its last trade.
    """
    max_consecutive_wins: int = 0
    max_consecutive_wins_start_time: Optional[datetime] = None
    max_consecutive_wins_end_time: Optional[datetime] = None
    max_consecutive_losses: int = 0
    max_consecutive_losses_start_time: Optional[datetime] = None
    max_consecutive_losses_end_time: Optional[datetime] = None


@dataclass
class OverallMetrics:
    """Whole-run performance statistics."""
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    total_profit: Decimal = Decimal("0")
    total_return_rate: Decimal = Decimal("0")
    average_holding_time: timedelta = timedelta(0)
    streaks: StreakStats = field(default_factory=StreakStats)
    max_drawdown: Decimal = Decimal("0")
    max_drawdown_start_time: Optional[datetime] = None
    max_drawdown_end_time: Optional[datetime] = None
    average_trades_per_month: Decimal = Decimal("0")
    profit_factor: Decimal = Decimal("0")

    @property
    def win_rate(self) -> Decimal:
        """Winning trades as a percentage of all trades."""
        if self.total_trades == 0:
            return Decimal("0")
        return Decimal(self.winning_trades) / Decimal(self.total_trades) * 100

    @property
    def max_consecutive_wins(self) -> int:
        return self.streaks.max_consecutive_wins

    @property
    def max_consecutive_losses(self) -> int:
        return self.streaks.max_consecutive_losses


@dataclass
class PeriodMetrics:
    """Statistics for the trades opened in one week, month or year."""
    period: str
    period_type: PeriodType
    start_date: datetime
    end_date: datetime
    trade_count: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    profit_loss: Decimal = Decimal("0")
    return_rate: Decimal = Decimal("0")
    average_holding_time: timedelta = timedelta(0)
    streaks: StreakStats = field(default_factory=StreakStats)

    @property
    def win_rate(self) -> Decimal:
        if self.trade_count == 0:
            return Decimal("0")
        return Decimal(self.winning_trades) / Decimal(self.trade_count) * 100

    @property
    def max_consecutive_wins(self) -> int:
        return self.streaks.max_consecutive_wins

    @property
    def max_consecutive_losses(self) -> int:
        return self.streaks.max_consecutive_losses


@dataclass
class BacktestResult:
    """Backtest results container.

    Attributes:
        start_time: Timestamp of the first candle
        end_time: Timestamp of the last candle
        trades: Closed trades in open (== close) order
        overall_metrics: Whole-run statistics
        weekly_metrics: Per ISO week statistics, ordered by period key
        monthly_metrics: Per calendar month statistics
        yearly_metrics: Per calendar year statistics
        equity_curve: One point per closed trade, ordered by close time
        strategy_name: Strategy name
        symbol: Trading symbol
        initial_capital: Starting capital
        final_equity: Equity after the last closed trade
    """
    start_time: datetime
    end_time: datetime
    trades: List[Trade] = field(default_factory=list)
    overall_metrics: OverallMetrics = field(default_factory=OverallMetrics)
    weekly_metrics: List[PeriodMetrics] = field(default_factory=list)
    monthly_metrics: List[PeriodMetrics] = field(default_factory=list)
    yearly_metrics: List[PeriodMetrics] = field(default_factory=list)
    equity_curve: List[EquityPoint] = field(default_factory=list)
    strategy_name: str = ""
    symbol: str = ""
    initial_capital: Decimal = Decimal("0")
    final_equity: Decimal = Decimal("0")
