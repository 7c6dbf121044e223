"""Tests for indicator preprocessing."""

from dataclasses import replace
from datetime import datetime, timedelta
from decimal import Decimal

import numpy as np
import pandas as pd
import pytest

from config.schema import StrategyConfig
from engine.indicators import (
    IndicatorCalculator,
    NullPreprocessor,
    aggregate_ohlc,
    calculate_adx,
    calculate_atr,
    calculate_ema,
    calculate_higher_timeframe_adx,
    candles_to_frame,
    true_range,
)
from engine.models import Candle, TradeDirection
from strategies.pin_bar import PinBarStrategy

D = Decimal


def make_candles(closes, spread=1):
    start = datetime(2024, 1, 1)
    return [
        Candle(time=start + timedelta(hours=i), open=D(str(c)), high=D(str(c + spread)),
               low=D(str(c - spread)), close=D(str(c)))
        for i, c in enumerate(closes)
    ]


def test_true_range_uses_previous_close():
    df = pd.DataFrame({'high': [11.0, 15.0, 12.0], 'low': [9.0, 13.0, 7.0], 'close': [10.0, 14.0, 8.0]})
    assert true_range(df).tolist() == [2.0, 5.0, 7.0]


def test_ema_seeded_with_sma():
    close = pd.Series([1.0, 2.0, 3.0, 4.0, 5.0])
    ema = calculate_ema(close, 3)

    assert ema.iloc[0] == 0 and ema.iloc[1] == 0
    assert ema.iloc[2] == pytest.approx(2.0)
    # alpha = 0.5
    assert ema.iloc[3] == pytest.approx(3.0)
    assert ema.iloc[4] == pytest.approx(4.0)


def test_atr_constant_range():
    """Constant bars give an ATR equal to their range."""
    df = candles_to_frame(make_candles([100] * 20, spread=2))
    atr = calculate_atr(df, 5)
    assert atr.iloc[5:].tolist() == pytest.approx([4.0] * 15)


def test_atr_zero_until_seeded():
    df = candles_to_frame(make_candles([100] * 30, spread=2))
    atr = calculate_atr(df, 14)
    assert (atr.iloc[:14] == 0).all()
    assert atr.iloc[14] == pytest.approx(4.0)


def test_stop_loss_has_no_atr_offset_during_warmup():
    candles = make_candles([100] * 30, spread=2)
    config = StrategyConfig(atr_period=14, stop_loss_atr_ratio=1, ema_list=[5], base_ema=10)
    IndicatorCalculator().calculate_indicators(candles, config)

    assert all(c.atr == 0 for c in candles[:14])
    strategy = PinBarStrategy(config)
    assert strategy.calculate_stop_loss(candles[6], TradeDirection.LONG) == D("98")
    assert strategy.calculate_stop_loss(candles[20], TradeDirection.LONG) == D("94")


def test_atr_wilder_smoothing():
    df = pd.DataFrame({
        'high': [2.0, 3.0, 4.0, 10.0],
        'low': [1.0, 2.0, 3.0, 4.0],
        'close': [1.5, 2.5, 3.5, 9.0],
    })
    atr = calculate_atr(df, 2)
    # seed: mean(tr[1], tr[2]) = 1.5; next: (1.5 * 1 + 6.5) / 2
    assert atr.iloc[2] == pytest.approx(1.5)
    assert atr.iloc[3] == pytest.approx(4.0)


def test_adx_zero_during_warmup_then_strong_in_trend():
    closes = list(np.arange(100.0, 160.0, 1.0))
    df = candles_to_frame(make_candles(closes))
    adx = calculate_adx(df, 5)

    assert (adx.iloc[:9] == 0).all()
    assert adx.iloc[9] > 0
    assert adx.iloc[-1] > 50


def test_calculator_annotates_candles():
    candles = make_candles([100 + i for i in range(40)])
    config = StrategyConfig(atr_period=14, adx_period=10, ema_list=[5, 20], base_ema=30)
    IndicatorCalculator().calculate_indicators(candles, config)

    last = candles[-1]
    assert last.atr > 0
    assert last.adx > 0
    assert last.ema(5) > last.ema(20) > last.ema(30) > 0
    assert candles[3].ema(5) == 0
    assert candles[4].ema(5) == D("102")
    assert isinstance(last.atr, Decimal)
    assert last.atr.as_tuple().exponent == -8


def test_calculator_skips_indicators_longer_than_data():
    candles = make_candles([100 + i for i in range(10)])
    IndicatorCalculator().calculate_indicators(candles, StrategyConfig())

    assert 'atr' not in candles[-1].indicators
    assert 'adx' not in candles[-1].indicators
    assert candles[-1].ema(200) == 0


def test_null_preprocessor_leaves_candles_untouched():
    candles = make_candles([100, 101])
    NullPreprocessor().calculate_indicators(candles, StrategyConfig())
    assert candles[0].indicators == {}


def trending_hours(count):
    return make_candles([100 + i + (i % 3) * 2 for i in range(count)])


def test_aggregate_ohlc_to_four_hour_bars():
    candles = trending_hours(10)
    higher = aggregate_ohlc(candles_to_frame(candles), [c.time for c in candles], timedelta(hours=4))

    assert list(higher.index) == [datetime(2024, 1, 1, h) for h in (0, 4, 8)]
    # first bucket closes 100, 103, 106, 103 with spread 1
    assert higher['high'].iloc[0] == 107.0
    assert higher['low'].iloc[0] == 99.0
    assert higher['close'].iloc[0] == 103.0
    assert higher['close'].iloc[2] == 109.0


def test_higher_timeframe_adx_uses_last_closed_bar():
    candles = trending_hours(40)
    config = StrategyConfig(adx_period=3, adx_timeframe='h4', ema_list=[5], base_ema=10)
    IndicatorCalculator().calculate_indicators(candles, config)

    df = candles_to_frame(candles)
    higher = pd.DataFrame({
        'high': [df['high'].iloc[k:k + 4].max() for k in range(0, 40, 4)],
        'low': [df['low'].iloc[k:k + 4].min() for k in range(0, 40, 4)],
        'close': [df['close'].iloc[k + 3] for k in range(0, 40, 4)],
    })
    expected = calculate_adx(higher, 3)

    assert all(c.adx == 0 for c in candles[:4])
    for i, candle in enumerate(candles[4:], start=4):
        assert candle.adx == D(f"{expected.iloc[i // 4 - 1]:.8f}")
    assert candles[-1].adx > 0


def test_higher_timeframe_adx_ignores_bar_in_progress():
    base = trending_hours(40)
    spiked = base[:36] + [
        replace(c, high=c.high + 50, low=c.low - 50, indicators={}) for c in base[36:]
    ]

    config = StrategyConfig(adx_period=3, adx_timeframe='h4', ema_list=[5], base_ema=10)
    IndicatorCalculator().calculate_indicators(base, config)
    expected = [c.adx for c in base]
    IndicatorCalculator().calculate_indicators(spiked, config)

    assert [c.adx for c in spiked] == expected


def test_higher_timeframe_adx_needs_enough_aggregated_bars():
    candles = trending_hours(20)
    df = candles_to_frame(candles)
    assert calculate_higher_timeframe_adx(df, [c.time for c in candles], 3, timedelta(days=1)) is None

    IndicatorCalculator().calculate_indicators(
        candles, StrategyConfig(adx_period=3, adx_timeframe='daily', ema_list=[5], base_ema=10)
    )
    assert 'adx' not in candles[-1].indicators
