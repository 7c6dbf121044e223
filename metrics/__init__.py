"""Performance metrics calculation."""

from metrics.metrics import (
    calculate_consecutive_streaks,
    calculate_max_drawdown,
    calculate_profit_factor,
    calculate_months_spanned,
    calculate_average_trades_per_month,
    calculate_average_holding_time,
    get_period_key,
    calculate_period_metrics,
    calculate_equity_curve,
    calculate_overall_metrics,
    calculate_backtest_metrics,
    summarize_periods,
)
from metrics.time_slots import (
    TimeSlotResult,
    analyze_by_hour_slots,
    get_top_profitable_slots,
    get_top_loss_slots,
    generate_time_slot_report,
)

__all__ = [
    'calculate_consecutive_streaks',
    'calculate_max_drawdown',
    'calculate_profit_factor',
    'calculate_months_spanned',
    'calculate_average_trades_per_month',
    'calculate_average_holding_time',
    'get_period_key',
    'calculate_period_metrics',
    'calculate_equity_curve',
    'calculate_overall_metrics',
    'calculate_backtest_metrics',
    'summarize_periods',
    'TimeSlotResult',
    'analyze_by_hour_slots',
    'get_top_profitable_slots',
    'get_top_loss_slots',
    'generate_time_slot_report',
]
