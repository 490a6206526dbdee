"""
Take profit, stop loss and trailing stop placement.

The exit strategies compute target prices for a new position from its
entry price and the recent bars, floored to the pair's price precision.
"""

from __future__ import annotations

from typing import Optional, Sequence
import pandas as pd

from ..config.schema import ExitConfig, TrailingStopConfig
from ..execution.models import Bar, OrderSide, PositionSide
from ..utils.precision import decimal_floor
from .ports import ExitStrategy, ExitTargets


class BasicExitStrategy:
    """Take profit and stop loss at fixed fractions of the entry price."""

    def __init__(self, profit_target: float, loss_tolerance: float) -> None:
        self.profit_target = profit_target
        self.loss_tolerance = loss_tolerance

    def compute_targets(
        self,
        entry_price: float,
        bars: Sequence[Bar],
        price_precision: int,
        side: OrderSide,
    ) -> ExitTargets:
        if side is OrderSide.BUY:
            take_profit = entry_price * (1 + self.profit_target)
            stop_loss = entry_price * (1 - self.loss_tolerance)
        else:
            take_profit = entry_price * (1 - self.profit_target)
            stop_loss = entry_price * (1 + self.loss_tolerance)
        return ExitTargets(
            take_profit=decimal_floor(take_profit, price_precision),
            stop_loss=decimal_floor(stop_loss, price_precision),
        )


def average_true_range(bars: Sequence[Bar], period: int) -> float:
    """Wilder's average true range of the last bars, NaN if too few."""
    frame = pd.DataFrame(
        {
            'high': [b.high for b in bars],
            'low': [b.low for b in bars],
            'close': [b.close for b in bars],
        }
    )
    if len(frame) <= period:
        return float('nan')
    prev_close = frame['close'].shift(1)
    true_range = pd.concat(
        [
            frame['high'] - frame['low'],
            (frame['high'] - prev_close).abs(),
            (frame['low'] - prev_close).abs(),
        ],
        axis=1,
    ).max(axis=1)
    atr = true_range.iloc[1:].ewm(alpha=1 / period, adjust=False).mean()
    return float(atr.iloc[-1])


class AtrExitStrategy:
    """Take profit and stop loss at multiples of the average true range."""

    def __init__(
        self,
        atr_period: int = 10,
        atr_multiplier: float = 2.0,
        take_profit_atr_ratio: float = 2.0,
        stop_loss_atr_ratio: float = 1.0,
    ) -> None:
        self.atr_period = atr_period
        self.atr_multiplier = atr_multiplier
        self.take_profit_atr_ratio = take_profit_atr_ratio
        self.stop_loss_atr_ratio = stop_loss_atr_ratio

    def compute_targets(
        self,
        entry_price: float,
        bars: Sequence[Bar],
        price_precision: int,
        side: OrderSide,
    ) -> ExitTargets:
        atr = average_true_range(list(bars)[-self.atr_period * 2:], self.atr_period)
        if pd.isna(atr):
            return ExitTargets()
        tp_distance = self.take_profit_atr_ratio * atr * self.atr_multiplier
        sl_distance = self.stop_loss_atr_ratio * atr * self.atr_multiplier
        if side is OrderSide.BUY:
            take_profit, stop_loss = entry_price + tp_distance, entry_price - sl_distance
        else:
            take_profit, stop_loss = entry_price - tp_distance, entry_price + sl_distance
        return ExitTargets(
            take_profit=decimal_floor(take_profit, price_precision),
            stop_loss=decimal_floor(stop_loss, price_precision),
        )


def build_exit_strategy(config: ExitConfig) -> Optional[ExitStrategy]:
    """Create the exit strategy named by `config.kind`, or `None`."""
    if config.kind == 'none':
        return None
    if config.kind == 'basic':
        return BasicExitStrategy(config.profit_target, config.loss_tolerance)
    if config.kind == 'atr':
        return AtrExitStrategy(
            atr_period=config.atr_period,
            atr_multiplier=config.atr_multiplier,
            take_profit_atr_ratio=config.take_profit_atr_ratio,
            stop_loss_atr_ratio=config.stop_loss_atr_ratio,
        )
    raise ValueError(f"Unknown exit strategy kind: {config.kind}")


def calculate_activation_price(
    config: TrailingStopConfig,
    current_price: float,
    price_precision: int,
    position_side: PositionSide,
    take_profit: Optional[float] = None,
) -> float:
    """Activation price of a trailing stop protecting `position_side`.

    With `percentage_to_tp` the stop activates after that fraction of the
    way to the take profit; with `change_percentage` after that relative
    move.  Both are measured in the favourable direction of the position.
    Without either, the stop is active from the current price.
    """
    direction = 1 if position_side is PositionSide.LONG else -1
    if config.percentage_to_tp and take_profit is not None:
        delta = abs(take_profit - current_price)
        return decimal_floor(current_price + direction * delta * config.percentage_to_tp, price_precision)
    if config.change_percentage:
        return decimal_floor(current_price * (1 + direction * config.change_percentage), price_precision)
    return current_price
