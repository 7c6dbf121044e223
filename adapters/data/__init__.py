"""Data adapters."""

from .csv_loader import (
    CSVDataLoader,
    DataFormatError,
    find_data_file,
    dataframe_to_candles,
    filter_candles_by_date,
)

__all__ = [
    "CSVDataLoader",
    "DataFormatError",
    "find_data_file",
    "dataframe_to_candles",
    "filter_candles_by_date",
]
