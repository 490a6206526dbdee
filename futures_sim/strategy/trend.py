"""Trend filters restricting which side may be opened."""

from __future__ import annotations

from typing import Optional, Sequence
import pandas as pd

from ..config.schema import TrendFilterConfig
from ..execution.models import Bar
from .ports import Trend, TrendFilter


class EmaTrendFilter:
    """Up when the last close is above its EMA, down when below."""

    def __init__(self, period: int = 200) -> None:
        self.period = period

    def trend(self, bars: Sequence[Bar]) -> Trend:
        if len(bars) < self.period:
            return Trend.NEUTRAL
        closes = pd.Series([b.close for b in bars])
        ema = closes.ewm(span=self.period, adjust=False).mean().iloc[-1]
        last = closes.iloc[-1]
        if last > ema:
            return Trend.UP
        if last < ema:
            return Trend.DOWN
        return Trend.NEUTRAL


def build_trend_filter(config: TrendFilterConfig) -> Optional[TrendFilter]:
    """Create the trend filter named by `config.kind`, or `None`."""
    if config.kind == 'none':
        return None
    if config.kind == 'ema':
        return EmaTrendFilter(config.period)
    raise ValueError(f"Unknown trend filter kind: {config.kind}")
