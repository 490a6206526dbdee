"""
Position and wallet ledger.

The ledger owns the wallet of one pair and derives the unrealized profit
of its position.  It never moves capital: margin, fees and realized
profit are booked by the execution engine.
"""

from __future__ import annotations

from .models import Position, PositionSide, Wallet


def unrealized_pnl(position: Position, mark_price: float) -> float:
    """Unrealized profit of `position` if it were closed at `mark_price`.

    Returns ``0.0`` for a flat position or one without margin or entry
    price.
    """
    if position.size == 0 or position.margin <= 0 or position.entry_price <= 0:
        return 0.0
    delta = (mark_price - position.entry_price) / position.entry_price
    sign = 1.0 if position.position_side is PositionSide.LONG else -1.0
    return sign * delta * position.margin * position.leverage


class Ledger:
    """Wallet and position state for a single pair."""

    def __init__(self, pair: str, initial_capital: float, leverage: int = 1) -> None:
        self.wallet = Wallet.open(pair, initial_capital, leverage)

    @property
    def position(self) -> Position:
        return self.wallet.position

    @property
    def pair(self) -> str:
        return self.wallet.position.pair

    def unrealized_pnl(self, mark_price: float) -> float:
        return unrealized_pnl(self.position, mark_price)

    def mark_to_market(self, mark_price: float) -> float:
        """Recompute the position's unrealized profit at `mark_price`."""
        pnl = unrealized_pnl(self.position, mark_price)
        self.position.unrealized_profit = pnl
        self.wallet.total_unrealized_profit = pnl
        return pnl

    def is_margin_call(self) -> bool:
        """True when the position's margin no longer covers its loss."""
        position = self.position
        return position.size != 0 and position.margin + position.unrealized_profit <= 0
