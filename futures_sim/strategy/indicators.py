"""
Indicator inputs for the decision module.

The simulation computes its indicators once, up front, over the whole bar
series so each bar only has to pick a row.  Values are normalised so they
can be fed directly into a decision module's vision vector.
"""

from __future__ import annotations

from typing import List, Sequence
import numpy as np
import pandas as pd

from ..execution.models import Bar


INDICATOR_COLUMNS = ['rsi', 'ema_distance', 'price_change']


def rsi(close: pd.Series, period: int = 14) -> pd.Series:
    """Wilder's relative strength index, 0 to 100."""
    delta = close.diff()
    gain = delta.clip(lower=0.0)
    loss = -delta.clip(upper=0.0)
    avg_gain = gain.ewm(alpha=1 / period, min_periods=period, adjust=False).mean()
    avg_loss = loss.ewm(alpha=1 / period, min_periods=period, adjust=False).mean()
    rs = avg_gain / avg_loss
    out = 100 - 100 / (1 + rs)
    # No losses over the window
    return out.where(avg_loss != 0, 100.0)


def compute_indicators(bars: Sequence[Bar], rsi_period: int = 14, ema_period: int = 50) -> pd.DataFrame:
    """Indicator frame aligned with `bars`.

    Columns
    -------
    rsi : RSI scaled to 0..1
    ema_distance : relative distance of the close to its EMA
    price_change : relative change of the close since the previous bar

    Rows before the indicators are defined hold NaN.
    """
    close = pd.Series([b.close for b in bars], dtype=float)
    ema = close.ewm(span=ema_period, adjust=False, min_periods=ema_period).mean()
    frame = pd.DataFrame(
        {
            'rsi': rsi(close, rsi_period) / 100,
            'ema_distance': (close - ema) / ema,
            'price_change': close.pct_change(),
        }
    )
    return frame[INDICATOR_COLUMNS]


def vision_at(indicators: pd.DataFrame, index: int, holding: bool) -> List[float]:
    """Vision vector for bar `index`: the holding flag then the indicators."""
    values = indicators.iloc[index].to_numpy(dtype=float)
    return [1.0 if holding else 0.0] + [float(v) for v in np.nan_to_num(values, nan=0.0)]
