"""
Decision gate and maximum trade duration.

`DecisionGate` combines the strategy module's scores with the trend
filter, the trading session, the position and its resting orders into a
single action per bar.  `HoldDurationCounter` forces a position closed
after a maximum number of bars.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional, Sequence

from ..config.schema import DecisionConfig
from ..execution.models import Position, PositionSide
from .ports import Trend


DECISION_MODES = ('buy_sell_close', 'buy_sell_wait')


class Action(str, Enum):
    OPEN_LONG = "OPEN_LONG"
    OPEN_SHORT = "OPEN_SHORT"
    CLOSE = "CLOSE"
    NONE = "NONE"


class HoldDurationCounter:
    """Count down the bars a position has been open.

    The counter starts at `max_duration`, loses one per bar while a
    position is held and resets whenever the position is flat.  Reaching
    zero means the position must be closed; the counter resets then too.
    Without a maximum duration it never expires.
    """

    def __init__(self, max_duration: Optional[int]) -> None:
        self.max_duration = max_duration
        self.value = max_duration

    def reset(self) -> None:
        self.value = self.max_duration

    def tick(self, holding: bool) -> bool:
        """Advance one bar.  Returns `True` when the position expired."""
        if not self.max_duration:
            return False
        if not holding:
            self.reset()
            return False
        self.value -= 1
        if self.value <= 0:
            self.reset()
            return True
        return False


def winning_index(scores: Sequence[float], threshold: Optional[float]) -> Optional[int]:
    """Index of the strictly highest score above `threshold`, if any."""
    if not scores:
        return None
    best = max(scores)
    if sum(1 for s in scores if s == best) > 1:
        return None
    if threshold is not None and not best > threshold:
        return None
    return list(scores).index(best)


class DecisionGate:
    """Turn a score vector into one `Action` for the current bar."""

    def __init__(self, config: DecisionConfig, can_open_new_position_to_close_last: bool = False) -> None:
        if config.mode not in DECISION_MODES:
            raise ValueError(f"Unknown decision mode {config.mode!r}, expected one of {DECISION_MODES}")
        self.config = config
        self.allow_reversal = can_open_new_position_to_close_last

    def decide(
        self,
        scores: Sequence[float],
        position: Position,
        price: float,
        trend: Optional[Trend] = None,
        session_active: bool = True,
        duration_expired: bool = False,
        has_open_orders: bool = False,
    ) -> Action:
        """Choose the action of this bar.

        Parameters
        ----------
        scores : sequence of float
            Buy, sell and close (or wait) scores from the strategy module.
        position : Position
            The current position.
        price : float
            Current price, used for the minimum move before a close.
        trend : Trend, optional
            Verdict of the trend filter; `None` when no filter is used.
        session_active : bool
            Whether the bar is inside a trading session.
        duration_expired : bool
            The hold-duration counter reached zero on this bar.
        has_open_orders : bool
            Exit orders are resting in the order book.
        """
        holding = not position.is_flat
        if duration_expired and holding:
            return Action.CLOSE

        index = winning_index(scores, self.config.threshold)
        if index is None:
            return Action.NONE

        if index == 2:
            if self.config.mode == 'buy_sell_close' and holding and self._moved_enough(position, price):
                return Action.CLOSE
            return Action.NONE

        wanted = PositionSide.LONG if index == 0 else PositionSide.SHORT
        if not self._trend_allows(trend, wanted):
            return Action.NONE
        if has_open_orders:
            return Action.NONE
        if holding:
            if position.position_side is wanted or not self.allow_reversal:
                return Action.NONE
        elif not session_active:
            return Action.NONE
        return Action.OPEN_LONG if wanted is PositionSide.LONG else Action.OPEN_SHORT

    def _moved_enough(self, position: Position, price: float) -> bool:
        return abs(price - position.entry_price) >= position.entry_price * self.config.min_close_move

    @staticmethod
    def _trend_allows(trend: Optional[Trend], side: PositionSide) -> bool:
        if trend is None:
            return True
        return trend is (Trend.UP if side is PositionSide.LONG else Trend.DOWN)
