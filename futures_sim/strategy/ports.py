"""
Capabilities the simulation consumes from its collaborators.

The simulation loop never hard-wires how decisions are taken, how big a
position is or where its exits go.  It talks to objects implementing the
protocols below, injected when the `BacktestEngine` is built.  Concrete
implementations live in `risk_management`, `exit_strategy`, `trend` and
`modules`.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol, Sequence

from ..data.exchange_info import PrecisionInfo
from ..execution.models import Bar, OrderSide


class Trend(int, Enum):
    DOWN = -1
    NEUTRAL = 0
    UP = 1


@dataclass(frozen=True)
class ExitTargets:
    """Take profit and stop loss prices of a new position, if any."""
    take_profit: Optional[float] = None
    stop_loss: Optional[float] = None


class RiskSizer(Protocol):
    def size_position(
        self,
        balance: float,
        risk: float,
        entry_price: float,
        stop_loss_price: Optional[float],
        precision: PrecisionInfo,
    ) -> float:
        """Quantity to trade, already rounded to the quantity precision."""
        ...


class ExitStrategy(Protocol):
    def compute_targets(
        self,
        entry_price: float,
        bars: Sequence[Bar],
        price_precision: int,
        side: OrderSide,
    ) -> ExitTargets:
        """Exit prices for a position opened at `entry_price`."""
        ...


class TrendFilter(Protocol):
    def trend(self, bars: Sequence[Bar]) -> Trend:
        ...


class DecisionModule(Protocol):
    def decide(self, vision: Sequence[float]) -> Sequence[float]:
        """Scores for buy, sell and close (or wait), in that order."""
        ...
