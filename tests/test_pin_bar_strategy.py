"""Tests for the pin bar strategy rules."""

from datetime import datetime
from decimal import Decimal

import pytest

from config.schema import StrategyConfig
from engine.models import Candle, TradeDirection
from strategies.pin_bar import PinBarStrategy

D = Decimal


def bar(hour, o, h, l, c, **indicators):
    return Candle(
        time=datetime(2024, 5, 6, hour, 0),
        open=D(o), high=D(h), low=D(l), close=D(c),
        indicators={k: D(str(v)) for k, v in indicators.items()},
    )


def make_strategy(**overrides):
    params = dict(ema_list=[20], base_ema=50, near_ema_threshold=1, risk_reward_ratio="1.5")
    params.update(overrides)
    return PinBarStrategy(StrategyConfig(**params))


def bullish_setup(hour=10, current_close="101.5", **indicators):
    values = dict(ema_20="98.5", ema_50="95", atr="2")
    values.update(indicators)
    previous = bar(hour - 1, "100.8", "101.2", "98", "101", **values)
    current = bar(hour, "101", "101.8", "100.9", current_close)
    return current, previous


def bearish_setup(hour=10, current_close="98.5"):
    previous = bar(hour - 1, "99.2", "102", "98.8", "99", ema_20="101.5", ema_50="105", atr="2")
    current = bar(hour, "99", "99.1", "98.2", current_close)
    return current, previous


def test_bullish_pin_bar_breakout_opens_long():
    strategy = make_strategy()
    current, previous = bullish_setup()
    assert strategy.can_open_long(current, previous, False)
    assert not strategy.can_open_short(current, previous, False)


def test_bearish_pin_bar_breakout_opens_short():
    strategy = make_strategy()
    current, previous = bearish_setup()
    assert strategy.can_open_short(current, previous, False)
    assert not strategy.can_open_long(current, previous, False)


def test_no_entry_with_open_position():
    current, previous = bullish_setup()
    assert not make_strategy().can_open_long(current, previous, True)


def test_no_entry_without_breakout():
    current, previous = bullish_setup(current_close="101.1")
    assert not make_strategy().can_open_long(current, previous, False)


def test_no_entry_before_base_ema_is_ready():
    current, previous = bullish_setup(ema_50="0")
    assert not make_strategy().can_open_long(current, previous, False)


def test_no_entry_against_trend():
    current, previous = bullish_setup(ema_50="102")
    assert not make_strategy().can_open_long(current, previous, False)


def test_no_entry_far_from_emas():
    """Wick must reach within near_ema_threshold of an EMA."""
    current, previous = bullish_setup(ema_20="96")
    assert not make_strategy().can_open_long(current, previous, False)
    assert make_strategy(near_ema_threshold=3).can_open_long(current, previous, False)


def test_trading_hours():
    current, previous = bullish_setup(hour=10)
    assert not make_strategy(start_trading_hour=12, end_trading_hour=20).can_open_long(current, previous, False)
    assert not make_strategy(no_trade_hours=[10]).can_open_long(current, previous, False)
    assert make_strategy(
        start_trading_hour=12, end_trading_hour=20, no_trading_hours_limit=True
    ).can_open_long(current, previous, False)


@pytest.mark.parametrize("o, h, l, c", [
    ("99", "101.2", "98", "101"),       # body too large
    ("100.8", "101.8", "98", "101"),    # upper wick too long
    ("100.55", "101", "100", "100.8"),  # lower wick too short
])
def test_shape_rejections(o, h, l, c):
    assert not make_strategy().is_pin_bar(bar(9, o, h, l, c), bullish=True)


def test_minimum_range_threshold():
    _, previous = bullish_setup()
    assert make_strategy(threshold=3).is_pin_bar(previous, bullish=True)
    assert not make_strategy(threshold=4).is_pin_bar(previous, bullish=True)


def test_wick_atr_ratio():
    _, previous = bullish_setup()
    # lower wick 2.8 against ATR 2
    assert make_strategy(min_lower_wick_atr_ratio="1.4").is_pin_bar(previous, bullish=True)
    assert not make_strategy(min_lower_wick_atr_ratio="1.5").is_pin_bar(previous, bullish=True)


def test_direction_match():
    bearish_body = bar(9, "101", "101.2", "98", "100.8")
    assert make_strategy().is_pin_bar(bearish_body, bullish=True)
    assert not make_strategy(require_pin_bar_direction_match=True).is_pin_bar(bearish_body, bullish=True)


def test_stop_loss_beyond_pin_bar_with_atr_offset():
    strategy = make_strategy(stop_loss_atr_ratio="0.5")
    _, long_ref = bullish_setup()
    _, short_ref = bearish_setup()
    assert strategy.calculate_stop_loss(long_ref, TradeDirection.LONG) == D("97")
    assert strategy.calculate_stop_loss(short_ref, TradeDirection.SHORT) == D("103")


def test_take_profit_from_reward_ratio():
    strategy = make_strategy()
    _, previous = bullish_setup()
    assert strategy.calculate_take_profit(D("101.5"), D("97"), TradeDirection.LONG, previous) == D("108.25")
    assert strategy.calculate_take_profit(D("98.5"), D("103"), TradeDirection.SHORT, previous) == D("91.75")


def test_adx_filter_blocks_weak_trends():
    current, previous = bullish_setup(adx=20)
    assert not make_strategy(min_adx=25).can_open_long(current, previous, False)
    assert make_strategy(min_adx=15).can_open_long(current, previous, False)


def test_low_adx_uses_reduced_reward_ratio():
    """With a low-ADX ratio configured, weak trends trade with the smaller target."""
    current, previous = bullish_setup(adx=20)
    strategy = make_strategy(min_adx=25, low_adx_risk_reward_ratio=1)

    assert strategy.can_open_long(current, previous, False)
    assert strategy.get_risk_reward_ratio(previous) == D("1")
    assert strategy.calculate_take_profit(D("101.5"), D("97"), TradeDirection.LONG, previous) == D("106")


def test_empty_strategy_name_rejected():
    with pytest.raises(ValueError):
        make_strategy(strategy_name="")
