"""CSV candle loader.

Reads OHLC bars into a DataFrame indexed by timestamp and converts them to
engine Candles. Prices are read as strings and converted straight to Decimal
so no float rounding enters the simulation.

Supported layouts:
- a single timestamp column (time / timestamp / datetime / date)
- MetaTrader exports with separate <DATE> and <TIME> columns
  (tab separated, dates like 2024.01.02)
"""

from datetime import date, datetime, time, timedelta
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import List, Optional
import logging

import pandas as pd

from engine.models import Candle

logger = logging.getLogger(__name__)

OHLC_COLUMNS = ['open', 'high', 'low', 'close']
TIMESTAMP_COLUMNS = ['time', 'timestamp', 'datetime', 'date']
VOLUME_COLUMNS = ['volume', 'tickvol', 'tick_volume', 'vol']


class DataFormatError(ValueError):
    """Raised when a data file lacks required columns or has unparseable values."""


def _clean(column) -> str:
    return str(column).strip().strip('<>').lower()


def _sniff_separator(file_path: Path) -> str:
    with open(file_path, 'r', encoding='utf-8') as f:
        first_line = f.readline()
    # Tab is common in forex exports
    if '\t' in first_line:
        return '\t'
    if ';' in first_line:
        return ';'
    return ','


class CSVDataLoader:
    """Loads OHLC(V) data from CSV files."""

    def load(self, file_path: Path, **kwargs) -> pd.DataFrame:
        """
        Load candles from a CSV file.

        Args:
            file_path: Path to the CSV file
            **kwargs: Additional arguments passed to pandas.read_csv

        Returns:
            DataFrame with a DatetimeIndex named 'time' and string columns
            open, high, low, close plus an integer volume column

        Raises:
            FileNotFoundError: file does not exist
            DataFormatError: timestamp or OHLC columns are missing
        """
        file_path = Path(file_path)
        if not file_path.exists():
            raise FileNotFoundError(f"Data file not found: {file_path}")

        if 'sep' not in kwargs and 'delimiter' not in kwargs:
            kwargs['sep'] = _sniff_separator(file_path)

        raw = pd.read_csv(file_path, dtype=str, keep_default_na=False, **kwargs)
        logger.debug(f"Loaded {file_path}: shape {raw.shape}, columns {raw.columns.tolist()}")

        columns = {_clean(col): col for col in raw.columns}

        missing = [name for name in OHLC_COLUMNS if name not in columns]
        if missing:
            raise DataFormatError(
                f"{file_path}: missing column(s) {missing}. Available: {raw.columns.tolist()}"
            )

        index = self._parse_index(raw, columns, file_path)

        df = pd.DataFrame(
            {name: raw[columns[name]].str.strip().to_numpy() for name in OHLC_COLUMNS},
            index=index,
        )
        volume_col = next((columns[name] for name in VOLUME_COLUMNS if name in columns), None)
        if volume_col is not None:
            volume = pd.to_numeric(raw[volume_col], errors='coerce').fillna(0)
            df['volume'] = volume.astype('int64').to_numpy()
        else:
            df['volume'] = 0

        df = df[df.index.notna()]
        df = df.sort_index(kind='mergesort')
        duplicates = df.index.duplicated(keep='first')
        if duplicates.any():
            logger.warning(f"{file_path}: dropping {int(duplicates.sum())} duplicate timestamp(s)")
            df = df[~duplicates]

        logger.info(
            f"Loaded {len(df)} bars from {file_path.name}"
            + (f" ({df.index[0]} -> {df.index[-1]})" if len(df) else "")
        )
        return df

    @staticmethod
    def _parse_index(raw: pd.DataFrame, columns: dict, file_path: Path) -> pd.DatetimeIndex:
        if 'date' in columns and 'time' in columns:
            text = raw[columns['date']].str.strip() + ' ' + raw[columns['time']].str.strip()
            # MetaTrader writes dates as 2024.01.02
            text = text.str.replace('.', '-', n=2, regex=False)
            parsed = pd.to_datetime(text, errors='coerce')
        else:
            timestamp_col = next((columns[name] for name in TIMESTAMP_COLUMNS if name in columns), None)
            if timestamp_col is None:
                raise DataFormatError(
                    f"{file_path}: no timestamp column (expected one of {TIMESTAMP_COLUMNS})"
                )
            parsed = pd.to_datetime(raw[timestamp_col].str.strip(), errors='coerce')

        bad = int(parsed.isna().sum())
        if bad:
            logger.warning(f"{file_path}: {bad} row(s) with unparseable timestamps skipped")
        return pd.DatetimeIndex(parsed, name='time')


def find_data_file(directory: Path, symbol: str, csv_filter: str = "") -> Path:
    """
    Find a CSV file for a symbol, e.g. XAUUSD_M15_2020.csv.

    Args:
        directory: Directory to search
        symbol: File name prefix
        csv_filter: Optional case-insensitive substring the file name must contain

    Returns:
        First matching path in name order

    Raises:
        FileNotFoundError: no file matches
    """
    directory = Path(directory)
    candidates = sorted(directory.glob(f"{symbol}*.csv"))
    for path in candidates:
        if not csv_filter or csv_filter.lower() in path.name.lower():
            return path
    raise FileNotFoundError(
        f"No CSV file for {symbol!r} in {directory}" + (f" matching {csv_filter!r}" if csv_filter else "")
    )


def _to_decimal(value, column: str, timestamp) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise DataFormatError(f"Invalid {column} value {value!r} at {timestamp}") from e


def dataframe_to_candles(df: pd.DataFrame) -> List[Candle]:
    """Convert a loaded DataFrame to Candles in index order."""
    has_volume = 'volume' in df.columns
    candles = []
    for timestamp, row in df.iterrows():
        candles.append(Candle(
            time=pd.Timestamp(timestamp).to_pydatetime(),
            open=_to_decimal(row['open'], 'open', timestamp),
            high=_to_decimal(row['high'], 'high', timestamp),
            low=_to_decimal(row['low'], 'low', timestamp),
            close=_to_decimal(row['close'], 'close', timestamp),
            volume=int(row['volume']) if has_volume else 0,
        ))
    return candles


def filter_candles_by_date(
    candles: List[Candle],
    start: Optional[date] = None,
    end: Optional[date] = None
) -> List[Candle]:
    """
    Keep candles within [start, end]. The end date includes the whole day.
    """
    start_dt = datetime.combine(start, time.min) if start else None
    end_dt = datetime.combine(end, time.min) + timedelta(days=1) if end else None
    return [
        c for c in candles
        if (start_dt is None or c.time >= start_dt) and (end_dt is None or c.time < end_dt)
    ]
