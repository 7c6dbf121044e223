"""Text summaries and DataFrame exports of backtest results."""

from pathlib import Path
from typing import Dict, List
import logging

import pandas as pd

from engine.models import BacktestResult, EquityPoint, PeriodMetrics, Trade
from metrics.metrics import summarize_periods

logger = logging.getLogger(__name__)


def _fmt_time(value) -> str:
    return value.strftime('%Y-%m-%d %H:%M') if value is not None else '-'


def format_summary(result: BacktestResult) -> str:
    """
    Human-readable summary of a backtest.

    Args:
        result: Result with metrics already calculated

    Returns:
        Multi-line string with an overall block followed by one line per year
    """
    m = result.overall_metrics
    lines = [
        "=" * 60,
        "BACKTEST RESULTS",
        "=" * 60,
        f"Strategy: {result.strategy_name}",
        f"Symbol: {result.symbol or '-'}",
        f"Period: {_fmt_time(result.start_time)} -> {_fmt_time(result.end_time)}",
        f"Initial Capital: ${result.initial_capital:,.2f}",
        f"Final Equity: ${result.final_equity:,.2f}",
        "-" * 60,
        f"Total Trades: {m.total_trades}",
        f"Winning Trades: {m.winning_trades}",
        f"Losing Trades: {m.losing_trades}",
        f"Win Rate: {m.win_rate:.2f}%",
        f"Total P&L: ${m.total_profit:,.2f}",
        f"Total Return: {m.total_return_rate:.2f}%",
        f"Profit Factor: {m.profit_factor:.2f}",
        f"Max Drawdown: ${m.max_drawdown:,.2f} "
        f"({_fmt_time(m.max_drawdown_start_time)} -> {_fmt_time(m.max_drawdown_end_time)})",
        f"Max Consecutive Wins: {m.max_consecutive_wins}",
        f"Max Consecutive Losses: {m.max_consecutive_losses}",
        f"Average Holding Time: {m.average_holding_time}",
        f"Average Trades / Month: {m.average_trades_per_month:.2f}",
    ]

    if result.yearly_metrics:
        lines += [
            "-" * 60,
            f"{'Year':<6} {'Trades':>7} {'Win %':>8} {'P&L':>14} {'Return %':>10}",
        ]
        for year in result.yearly_metrics:
            lines.append(
                f"{year.period:<6} {year.trade_count:>7} {year.win_rate:>8.2f} "
                f"{year.profit_loss:>14,.2f} {year.return_rate:>10.2f}"
            )

    if result.monthly_metrics:
        stats = summarize_periods(result.monthly_metrics)
        lines += [
            "-" * 60,
            f"Best Month: ${stats['best']:,.2f}",
            f"Worst Month: ${stats['worst']:,.2f}",
            f"Average Month: ${stats['average']:,.2f}",
            f"Profitable Months: {stats['profitable_pct']:.2f}%",
        ]

    lines.append("=" * 60)
    return "\n".join(lines)


def trades_to_dataframe(trades: List[Trade]) -> pd.DataFrame:
    """One row per trade; Decimal values are kept as-is (object dtype)."""
    columns = [
        'trade_id', 'direction', 'open_time', 'open_price', 'stop_loss', 'take_profit',
        'close_time', 'close_price', 'close_reason', 'lot_size', 'profit_loss',
        'return_rate_percent',
    ]
    rows = [
        {
            'trade_id': t.trade_id,
            'direction': t.direction.value,
            'open_time': t.open_time,
            'open_price': t.open_price,
            'stop_loss': t.stop_loss,
            'take_profit': t.take_profit,
            'close_time': t.close_time,
            'close_price': t.close_price,
            'close_reason': t.close_reason.value if t.close_reason else None,
            'lot_size': t.lot_size,
            'profit_loss': t.profit_loss,
            'return_rate_percent': t.return_rate_percent,
        }
        for t in trades
    ]
    return pd.DataFrame(rows, columns=columns)


def equity_curve_to_dataframe(curve: List[EquityPoint]) -> pd.DataFrame:
    columns = ['time', 'trade_id', 'cumulative_profit', 'cumulative_return_rate_percent']
    rows = [
        {
            'time': p.time,
            'trade_id': p.trade_id,
            'cumulative_profit': p.cumulative_profit,
            'cumulative_return_rate_percent': p.cumulative_return_rate_percent,
        }
        for p in curve
    ]
    return pd.DataFrame(rows, columns=columns)


def period_metrics_to_dataframe(metrics: List[PeriodMetrics]) -> pd.DataFrame:
    columns = [
        'period', 'start_date', 'end_date', 'trade_count', 'winning_trades', 'losing_trades',
        'win_rate', 'profit_loss', 'return_rate', 'average_holding_time',
        'max_consecutive_wins', 'max_consecutive_losses',
    ]
    rows = [
        {
            'period': m.period,
            'start_date': m.start_date,
            'end_date': m.end_date,
            'trade_count': m.trade_count,
            'winning_trades': m.winning_trades,
            'losing_trades': m.losing_trades,
            'win_rate': m.win_rate,
            'profit_loss': m.profit_loss,
            'return_rate': m.return_rate,
            'average_holding_time': m.average_holding_time,
            'max_consecutive_wins': m.max_consecutive_wins,
            'max_consecutive_losses': m.max_consecutive_losses,
        }
        for m in metrics
    ]
    return pd.DataFrame(rows, columns=columns)


def export_result_csv(result: BacktestResult, output_dir: Path) -> Dict[str, Path]:
    """
    Write trades, equity curve and period metrics as CSV files.

    Args:
        result: Backtest result
        output_dir: Target directory (created if missing)

    Returns:
        Mapping of table name to written file path
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    tables = {
        'trades': trades_to_dataframe(result.trades),
        'equity_curve': equity_curve_to_dataframe(result.equity_curve),
        'weekly': period_metrics_to_dataframe(result.weekly_metrics),
        'monthly': period_metrics_to_dataframe(result.monthly_metrics),
        'yearly': period_metrics_to_dataframe(result.yearly_metrics),
    }

    paths = {}
    for name, df in tables.items():
        path = output_dir / f"{name}.csv"
        df.to_csv(path, index=False)
        paths[name] = path
        logger.info(f"Wrote {len(df)} rows to {path}")

    return paths
