"""
CSV bar loader.

This module loads historical futures candles from CSV files laid out as
``{csv_dir}/{PAIR}/_{interval}.csv`` with the schema::

    openTime,closeTime,open,high,low,close,volume

Timestamps may be ISO strings or UNIX epochs in milliseconds and are
converted to UTC.  Files are often written newest first; bars are always
returned oldest first.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional
import pandas as pd

from ..execution.models import Bar


REQUIRED_COLUMNS = ['openTime', 'closeTime', 'open', 'high', 'low', 'close', 'volume']


def _to_utc(values: pd.Series) -> pd.Series:
    if pd.api.types.is_numeric_dtype(values):
        return pd.to_datetime(values, unit="ms", utc=True)
    return pd.to_datetime(values, utc=True, errors="raise")


def _bound(value: Optional[str]) -> Optional[pd.Timestamp]:
    if value is None:
        return None
    ts = pd.Timestamp(value)
    return ts.tz_localize("UTC") if ts.tzinfo is None else ts.tz_convert("UTC")


class CSVDataLoader:
    """Load candles from CSV files for backtesting.

    Parameters
    ----------
    csv_dir : str
        Directory containing one sub-directory per pair.
    """

    def __init__(self, csv_dir: str) -> None:
        self.csv_dir = Path(csv_dir)

    def path_for(self, pair: str, interval: str) -> Path:
        return self.csv_dir / pair / f"_{interval}.csv"

    def load_frame(
        self,
        pair: str,
        interval: str,
        start: Optional[str] = None,
        end: Optional[str] = None,
    ) -> pd.DataFrame:
        """Read the candles of `pair` strictly between `start` and `end`."""
        file_path = self.path_for(pair, interval)
        if not file_path.exists():
            raise FileNotFoundError(f"CSV file not found for {pair} {interval}: {file_path}")

        df = pd.read_csv(file_path)
        df.columns = [c.strip() for c in df.columns]
        missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
        if missing:
            raise ValueError(
                f"Unrecognized CSV format for {pair}. Missing columns: {missing}. "
                f"Found columns: {list(df.columns)}"
            )

        df['openTime'] = _to_utc(df['openTime'])
        df['closeTime'] = _to_utc(df['closeTime'])
        for column in ('open', 'high', 'low', 'close', 'volume'):
            df[column] = df[column].astype(float)

        start_ts, end_ts = _bound(start), _bound(end)
        if start_ts is not None:
            df = df[df['openTime'] > start_ts]
        if end_ts is not None:
            df = df[df['closeTime'] < end_ts]
        return df.sort_values('openTime').reset_index(drop=True)

    def load(
        self,
        pair: str,
        interval: str,
        start: Optional[str] = None,
        end: Optional[str] = None,
    ) -> List[Bar]:
        """Read the candles of `pair` as immutable `Bar` records."""
        df = self.load_frame(pair, interval, start, end)
        return [
            Bar(
                symbol=pair,
                interval=interval,
                open=row.open,
                high=row.high,
                low=row.low,
                close=row.close,
                volume=row.volume,
                open_time=row.openTime,
                close_time=row.closeTime,
            )
            for row in df.itertuples(index=False)
        ]
