"""Indicator preprocessing for candle sequences.

The engine calls a preprocessor once per run, before the simulation loop.
A preprocessor only has to provide::

    calculate_indicators(candles: List[Candle], config: StrategyConfig) -> None

and annotate ``candle.indicators`` in place. IndicatorCalculator is the
default and computes what PinBarStrategy reads:

- 'atr'           Average True Range (atr_period)
- 'ema_{period}'  EMA for every period in ema_list plus base_ema
- 'adx'           Average Directional Index (adx_period), on the candles
                  themselves or on aggregated bars (adx_timeframe)

Calculations run on float arrays (pandas/numpy) and are stored back as
Decimal with 8 decimal places. A value of zero means "not ready yet".
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional
import logging

import numpy as np
import pandas as pd

from config.schema import StrategyConfig
from engine.models import Candle

logger = logging.getLogger(__name__)


def _to_decimal(value: float) -> Decimal:
    if value is None or not np.isfinite(value):
        return Decimal("0")
    return Decimal(f"{value:.8f}")


def candles_to_frame(candles: List[Candle]) -> pd.DataFrame:
    """OHLC float frame indexed like the candle list."""
    return pd.DataFrame(
        {
            'high': [float(c.high) for c in candles],
            'low': [float(c.low) for c in candles],
            'close': [float(c.close) for c in candles],
        }
    )


def true_range(df: pd.DataFrame) -> pd.Series:
    """True range; the first bar uses high - low."""
    prev_close = df['close'].shift(1)
    tr = pd.concat(
        [
            df['high'] - df['low'],
            (df['high'] - prev_close).abs(),
            (df['low'] - prev_close).abs(),
        ],
        axis=1,
    ).max(axis=1)
    tr.iloc[0] = df['high'].iloc[0] - df['low'].iloc[0]
    return tr


def calculate_atr(df: pd.DataFrame, period: int) -> pd.Series:
    """ATR seeded with the mean of the first `period` true ranges, then Wilder smoothing.

    The seed lands on bar `period`; earlier bars are zero.
    """
    tr = true_range(df)
    atr = pd.Series(0.0, index=df.index)
    if len(df) <= period:
        return atr

    atr.iloc[period] = tr.iloc[1:period + 1].mean()
    values = atr.to_numpy(copy=True)
    tr_values = tr.to_numpy()
    for i in range(period + 1, len(values)):
        values[i] = (values[i - 1] * (period - 1) + tr_values[i]) / period
    return pd.Series(values, index=df.index)


def calculate_ema(close: pd.Series, period: int) -> pd.Series:
    """EMA seeded with the SMA of the first `period` closes; zero before the seed."""
    seeded = close.astype(float).copy()
    seeded.iloc[:period - 1] = np.nan
    seeded.iloc[period - 1] = close.iloc[:period].mean()
    ema = seeded.ewm(alpha=2.0 / (period + 1), adjust=False).mean()
    return ema.fillna(0.0)


def calculate_adx(df: pd.DataFrame, period: int) -> pd.Series:
    """Wilder ADX; the first value lands on bar 2 * period - 1, earlier bars are zero."""
    up_move = df['high'].diff()
    down_move = -df['low'].diff()

    plus_dm = np.where((up_move > down_move) & (up_move > 0), up_move, 0.0)
    minus_dm = np.where((down_move > up_move) & (down_move > 0), down_move, 0.0)

    alpha = 1.0 / period
    tr_smooth = true_range(df).ewm(alpha=alpha, adjust=False).mean()
    plus_di = 100.0 * pd.Series(plus_dm, index=df.index).ewm(alpha=alpha, adjust=False).mean() / tr_smooth
    minus_di = 100.0 * pd.Series(minus_dm, index=df.index).ewm(alpha=alpha, adjust=False).mean() / tr_smooth

    di_sum = (plus_di + minus_di).replace(0.0, np.nan)
    dx = 100.0 * (plus_di - minus_di).abs() / di_sum
    adx = dx.fillna(0.0).ewm(alpha=alpha, adjust=False).mean()
    adx.iloc[:2 * period - 1] = 0.0
    return adx.fillna(0.0)


ADX_TIMEFRAMES = {
    'h1': timedelta(hours=1),
    'h4': timedelta(hours=4),
    'daily': timedelta(days=1),
}


def aggregate_ohlc(df: pd.DataFrame, times: List[datetime], bar_length: timedelta) -> pd.DataFrame:
    """Aggregate bars into higher timeframe bars indexed by their start time.

    Buckets are aligned to midnight; buckets without any source bar are dropped.
    """
    frame = df.set_axis(pd.DatetimeIndex(times), axis=0)
    higher = frame.resample(pd.Timedelta(bar_length), origin='start_day', label='left', closed='left').agg(
        {'high': 'max', 'low': 'min', 'close': 'last'}
    )
    return higher.dropna(subset=['close'])


def calculate_higher_timeframe_adx(
    df: pd.DataFrame,
    times: List[datetime],
    period: int,
    bar_length: timedelta
) -> Optional[pd.Series]:
    """ADX computed on aggregated bars and mapped back onto the source bars.

    A source bar gets the ADX of the latest higher timeframe bar that had
    already closed when the source bar opened, so values never come from
    bars still in progress. Returns None when there are fewer than
    2 * period higher timeframe bars.
    """
    higher = aggregate_ohlc(df, times, bar_length)
    if len(higher) < period * 2:
        return None

    adx = calculate_adx(higher.reset_index(drop=True), period)
    closed_at = pd.Series(adx.to_numpy(), index=higher.index + bar_length)
    mapped = closed_at.reindex(pd.DatetimeIndex(times), method='ffill')
    return pd.Series(mapped.fillna(0.0).to_numpy(), index=df.index)


class IndicatorCalculator:
    """Default indicator preprocessor (ATR, EMAs, ADX)."""

    def calculate_indicators(self, candles: List[Candle], config: StrategyConfig) -> None:
        """Annotate candles in place.

        Sequences shorter than an indicator's period leave that indicator
        absent on every candle.
        """
        if not candles:
            return

        df = candles_to_frame(candles)
        columns = {}

        if len(candles) >= config.atr_period:
            columns['atr'] = calculate_atr(df, config.atr_period)

        for period in config.indicator_periods():
            if len(candles) >= period:
                columns[f'ema_{period}'] = calculate_ema(df['close'], period)

        if len(candles) >= config.adx_period * 2:
            if config.adx_timeframe == 'current':
                columns['adx'] = calculate_adx(df, config.adx_period)
            else:
                adx = calculate_higher_timeframe_adx(
                    df,
                    [c.time for c in candles],
                    config.adx_period,
                    ADX_TIMEFRAMES[config.adx_timeframe],
                )
                if adx is not None:
                    columns['adx'] = adx

        for name, series in columns.items():
            for candle, value in zip(candles, series.to_numpy()):
                candle.indicators[name] = _to_decimal(value)

        logger.debug(f"Computed indicators {sorted(columns)} for {len(candles)} candles")


class NullPreprocessor:
    """Preprocessor for candles that are already annotated."""

    def calculate_indicators(self, candles: List[Candle], config: StrategyConfig) -> None:
        return None
