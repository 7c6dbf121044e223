"""Tests for hour-slot analysis and result reporting."""

from datetime import datetime, timedelta
from decimal import Decimal

from engine.models import BacktestResult, Trade, TradeCloseReason, TradeDirection
from metrics.metrics import calculate_backtest_metrics
from metrics.report import (
    equity_curve_to_dataframe,
    export_result_csv,
    format_summary,
    period_metrics_to_dataframe,
    trades_to_dataframe,
)
from metrics.time_slots import (
    analyze_by_hour_slots,
    generate_time_slot_report,
    get_top_loss_slots,
    get_top_profitable_slots,
)

D = Decimal


def closed_trade(trade_id, open_time, pnl):
    return Trade(
        trade_id=trade_id,
        direction=TradeDirection.SHORT if trade_id % 2 else TradeDirection.LONG,
        open_time=open_time,
        open_price=D("2000"),
        stop_loss=D("1995"),
        take_profit=D("2010"),
        close_time=open_time + timedelta(minutes=45),
        close_price=D("2000"),
        close_reason=TradeCloseReason.MANUAL,
        profit_loss=D(pnl),
        return_rate_percent=D(pnl) / 100,
        lot_size=D("0.2"),
    )


def sample_trades():
    day = datetime(2024, 2, 5)
    return [
        closed_trade(1, day.replace(hour=8, minute=15), "120"),
        closed_trade(2, day.replace(hour=8, minute=45), "-40"),
        closed_trade(3, day.replace(hour=14), "-90"),
        closed_trade(4, day.replace(hour=23, minute=30), "15"),
        closed_trade(5, (day + timedelta(days=40)).replace(hour=14), "-10"),
    ]


def sample_result():
    trades = sample_trades()
    result = BacktestResult(
        start_time=datetime(2024, 2, 1),
        end_time=datetime(2024, 3, 31),
        trades=trades,
        strategy_name="PinBar",
        symbol="XAUUSD",
        initial_capital=D("10000"),
        final_equity=D("10000") + sum(t.profit_loss for t in trades),
    )
    return calculate_backtest_metrics(result)


def test_slots_grouped_by_open_hour():
    slots = analyze_by_hour_slots(sample_trades())

    assert [s.hour for s in slots] == [8, 14, 23]
    eight = slots[0]
    assert eight.time_slot == "08:00-09:00"
    assert eight.trade_count == 2
    assert eight.total_profit_loss == D("80")
    assert eight.average_profit_loss == D("40")
    assert eight.win_rate == D("50")
    assert slots[2].time_slot == "23:00-00:00"


def test_open_trades_ignored():
    open_trade = Trade(trade_id=9, direction=TradeDirection.LONG, open_time=datetime(2024, 2, 5, 3),
                       open_price=D("1"), stop_loss=D("0.5"), take_profit=D("2"))
    assert analyze_by_hour_slots([open_trade]) == []


def test_top_slots():
    trades = sample_trades()
    assert [s.hour for s in get_top_profitable_slots(trades, top=2)] == [8, 23]
    assert [s.hour for s in get_top_loss_slots(trades, top=1)] == [14]
    assert get_top_loss_slots(trades, top=1)[0].total_profit_loss == D("-100")


def test_time_slot_report_text():
    report = generate_time_slot_report(sample_trades(), top=2)
    assert "Most profitable slots (top 2)" in report
    assert "Most losing slots (top 2)" in report
    assert "08:00-09:00" in report
    assert "-100.00" in report


def test_summary_contains_overall_and_yearly_blocks():
    text = format_summary(sample_result())

    assert "Strategy: PinBar" in text
    assert "Symbol: XAUUSD" in text
    assert "Total Trades: 5" in text
    assert "Win Rate: 40.00%" in text
    assert "Total P&L: $-5.00" in text
    assert "Final Equity: $9,995.00" in text
    assert "2024" in text
    assert "Profitable Months: 50.00%" in text


def test_summary_without_trades():
    result = calculate_backtest_metrics(
        BacktestResult(start_time=datetime(2024, 1, 1), end_time=datetime(2024, 1, 2),
                       initial_capital=D("1000"), final_equity=D("1000"))
    )
    text = format_summary(result)
    assert "Total Trades: 0" in text
    assert "Best Month" not in text


def test_dataframes():
    result = sample_result()

    trades_df = trades_to_dataframe(result.trades)
    assert len(trades_df) == 5
    assert trades_df.loc[0, 'direction'] == "short"
    assert trades_df.loc[0, 'close_reason'] == "manual"
    assert trades_df['profit_loss'].sum() == D("-5")

    curve_df = equity_curve_to_dataframe(result.equity_curve)
    assert curve_df['cumulative_profit'].iloc[-1] == D("-5")

    months_df = period_metrics_to_dataframe(result.monthly_metrics)
    assert months_df['period'].tolist() == ["2024-02", "2024-03"]
    assert months_df['trade_count'].tolist() == [4, 1]


def test_empty_dataframes_keep_columns():
    assert 'profit_loss' in trades_to_dataframe([]).columns
    assert equity_curve_to_dataframe([]).empty


def test_export_result_csv(tmp_path):
    paths = export_result_csv(sample_result(), tmp_path / "out")

    assert set(paths) == {'trades', 'equity_curve', 'weekly', 'monthly', 'yearly'}
    assert all(p.exists() for p in paths.values())
    header = paths['trades'].read_text().splitlines()[0]
    assert header.startswith("trade_id,direction,open_time")
