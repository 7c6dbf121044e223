"""Performance metrics calculation for backtest results.

Every function takes closed trades (as produced by BacktestEngine) and is
pure. calculate_backtest_metrics fills a BacktestResult in one call.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from itertools import groupby
from typing import Dict, List, Optional, Tuple

from engine.models import (
    BacktestResult,
    EquityPoint,
    OverallMetrics,
    PeriodMetrics,
    PeriodType,
    StreakStats,
    Trade,
)

ZERO = Decimal("0")


def _by_close_time(trades: List[Trade]) -> List[Trade]:
    return sorted(trades, key=lambda t: t.close_time or t.open_time)


def calculate_consecutive_streaks(trades: List[Trade]) -> StreakStats:
    """
    Longest winning and losing runs in a single forward scan.

    A win resets the losing counter and vice versa. A trade with no outcome
    (still open) resets both. Ties keep the earliest run.

    Args:
        trades: Trades in open-time order

    Returns:
        StreakStats with lengths and bounding timestamps
    """
    stats = StreakStats()
    current_wins = 0
    current_losses = 0
    wins_start: Optional[datetime] = None
    losses_start: Optional[datetime] = None

    for trade in trades:
        outcome = trade.is_winning
        if outcome is True:
            if current_wins == 0:
                wins_start = trade.open_time
            current_wins += 1
            current_losses = 0
            if current_wins > stats.max_consecutive_wins:
                stats.max_consecutive_wins = current_wins
                stats.max_consecutive_wins_start_time = wins_start
                stats.max_consecutive_wins_end_time = trade.close_time
        elif outcome is False:
            if current_losses == 0:
                losses_start = trade.open_time
            current_losses += 1
            current_wins = 0
            if current_losses > stats.max_consecutive_losses:
                stats.max_consecutive_losses = current_losses
                stats.max_consecutive_losses_start_time = losses_start
                stats.max_consecutive_losses_end_time = trade.close_time
        else:
            current_wins = 0
            current_losses = 0

    return stats


def calculate_max_drawdown(
    trades: List[Trade],
    start_time: Optional[datetime] = None
) -> Tuple[Decimal, Optional[datetime], Optional[datetime]]:
    """
    Maximum peak-to-trough decline of cumulative profit.

    Cumulative profit starts at zero at start_time. The peak only moves up;
    drawdown at each trade is peak - cumulative.

    Args:
        trades: Closed trades (scanned in close-time order)
        start_time: Backtest start, used as the timestamp of the initial zero peak

    Returns:
        (max_drawdown, peak_time, trough_time); times are None when there is no drawdown
    """
    max_drawdown = ZERO
    max_dd_start: Optional[datetime] = None
    max_dd_end: Optional[datetime] = None

    peak = ZERO
    peak_time = start_time
    cumulative = ZERO

    for trade in _by_close_time(trades):
        cumulative += trade.profit_loss or ZERO

        if cumulative > peak:
            peak = cumulative
            peak_time = trade.close_time

        drawdown = peak - cumulative
        if drawdown > max_drawdown:
            max_drawdown = drawdown
            max_dd_start = peak_time if peak_time is not None else trade.open_time
            max_dd_end = trade.close_time

    return max_drawdown, max_dd_start, max_dd_end


def calculate_profit_factor(trades: List[Trade]) -> Decimal:
    """
    Gross profit of winners divided by absolute gross loss of losers.

    Returns:
        Profit factor, or 0 when there is no losing total
    """
    total_win = sum((t.profit_loss for t in trades if t.is_winning is True), ZERO)
    total_loss = abs(sum((t.profit_loss for t in trades if t.is_winning is False), ZERO))
    if total_loss == 0:
        return ZERO
    return total_win / total_loss


def calculate_months_spanned(start_time: datetime, end_time: datetime) -> int:
    """Calendar months touched by [start_time, end_time], both ends inclusive."""
    return (end_time.year - start_time.year) * 12 + end_time.month - start_time.month + 1


def calculate_average_trades_per_month(
    trade_count: int,
    start_time: datetime,
    end_time: datetime
) -> Decimal:
    months = calculate_months_spanned(start_time, end_time)
    if months <= 0:
        return ZERO
    return Decimal(trade_count) / Decimal(months)


def calculate_average_holding_time(trades: List[Trade]) -> timedelta:
    """Mean of close - open over the trades; zero for no trades."""
    if not trades:
        return timedelta(0)
    total = sum((t.holding_duration or timedelta(0) for t in trades), timedelta(0))
    return total / len(trades)


def get_period_key(moment: datetime, period_type: PeriodType) -> str:
    """
    Period key used for grouping and ordering.

    Week keys use the ISO year and week ('2024-W01'), so a trade opened on
    2024-12-30 belongs to '2025-W01'. This differs from reports that pair
    the calendar year with the ISO week number, which would label the same
    trade '2024-W01'.
    """
    if period_type == PeriodType.WEEK:
        iso_year, iso_week, _ = moment.isocalendar()
        return f"{iso_year}-W{iso_week:02d}"
    if period_type == PeriodType.MONTH:
        return f"{moment.year}-{moment.month:02d}"
    if period_type == PeriodType.YEAR:
        return f"{moment.year}"
    raise ValueError(f"Unknown period type: {period_type}")


def calculate_period_metrics(trades: List[Trade], period_type: PeriodType) -> List[PeriodMetrics]:
    """
    Group trades by open-time period and summarize each group.

    Args:
        trades: Closed trades in open-time order
        period_type: Week, month or year

    Returns:
        PeriodMetrics ordered by period key
    """
    keyed = sorted(
        ((get_period_key(t.open_time, period_type), t) for t in trades),
        key=lambda item: (item[0], item[1].open_time),
    )

    metrics = []
    for key, group in groupby(keyed, key=lambda item: item[0]):
        period_trades = [t for _, t in group]
        winning = sum(1 for t in period_trades if t.is_winning is True)
        losing = sum(1 for t in period_trades if t.is_winning is False)

        metrics.append(PeriodMetrics(
            period=key,
            period_type=period_type,
            start_date=min(t.open_time for t in period_trades),
            end_date=max(t.close_time or t.open_time for t in period_trades),
            trade_count=len(period_trades),
            winning_trades=winning,
            losing_trades=losing,
            profit_loss=sum((t.profit_loss or ZERO for t in period_trades), ZERO),
            return_rate=sum((t.return_rate_percent or ZERO for t in period_trades), ZERO),
            average_holding_time=calculate_average_holding_time(period_trades),
            streaks=calculate_consecutive_streaks(period_trades),
        ))

    return metrics


def calculate_equity_curve(trades: List[Trade], initial_capital: Decimal) -> List[EquityPoint]:
    """
    Cumulative realized profit after each closed trade, in close-time order.

    Args:
        trades: Closed trades
        initial_capital: Base for the cumulative return rate

    Returns:
        One EquityPoint per trade
    """
    curve = []
    cumulative = ZERO
    initial_capital = Decimal(initial_capital)

    for trade in _by_close_time(trades):
        if not trade.is_closed:
            continue
        cumulative += trade.profit_loss or ZERO
        return_rate = cumulative / initial_capital * Decimal(100) if initial_capital else ZERO
        curve.append(EquityPoint(
            time=trade.close_time,
            cumulative_profit=cumulative,
            cumulative_return_rate_percent=return_rate,
            trade_id=trade.trade_id,
        ))

    return curve


def calculate_overall_metrics(
    trades: List[Trade],
    start_time: datetime,
    end_time: datetime
) -> OverallMetrics:
    """
    Whole-run statistics.

    Args:
        trades: Closed trades in open-time order
        start_time: First candle timestamp
        end_time: Last candle timestamp

    Returns:
        OverallMetrics (all zero when there are no trades)
    """
    if not trades:
        return OverallMetrics()

    max_drawdown, dd_start, dd_end = calculate_max_drawdown(trades, start_time)

    return OverallMetrics(
        total_trades=len(trades),
        winning_trades=sum(1 for t in trades if t.is_winning is True),
        losing_trades=sum(1 for t in trades if t.is_winning is False),
        total_profit=sum((t.profit_loss or ZERO for t in trades), ZERO),
        total_return_rate=sum((t.return_rate_percent or ZERO for t in trades), ZERO),
        average_holding_time=calculate_average_holding_time(trades),
        streaks=calculate_consecutive_streaks(trades),
        max_drawdown=max_drawdown,
        max_drawdown_start_time=dd_start,
        max_drawdown_end_time=dd_end,
        average_trades_per_month=calculate_average_trades_per_month(len(trades), start_time, end_time),
        profit_factor=calculate_profit_factor(trades),
    )


def calculate_backtest_metrics(result: BacktestResult) -> BacktestResult:
    """Fill overall, period and equity-curve fields of a result in place."""
    trades = result.trades
    result.overall_metrics = calculate_overall_metrics(trades, result.start_time, result.end_time)
    result.weekly_metrics = calculate_period_metrics(trades, PeriodType.WEEK)
    result.monthly_metrics = calculate_period_metrics(trades, PeriodType.MONTH)
    result.yearly_metrics = calculate_period_metrics(trades, PeriodType.YEAR)
    result.equity_curve = calculate_equity_curve(trades, result.initial_capital)
    return result


def summarize_periods(metrics: List[PeriodMetrics]) -> Dict[str, Decimal]:
    """Best, worst and average period P&L, plus the share of profitable periods (%)."""
    if not metrics:
        return {'best': ZERO, 'worst': ZERO, 'average': ZERO, 'profitable_pct': ZERO}
    values = [m.profit_loss for m in metrics]
    profitable = sum(1 for v in values if v > 0)
    return {
        'best': max(values),
        'worst': min(values),
        'average': sum(values, ZERO) / len(values),
        'profitable_pct': Decimal(profitable) / Decimal(len(values)) * 100,
    }
