"""
Resting exit orders of the open position.

The order book holds the limit and trailing-stop orders attached to the
position of one pair and matches them against each new bar.  Matching is
done in two phases per side: every resting order that closes a long
(sell orders, highest price first) or a short (buy orders, lowest price
first) is evaluated against the bar's range, then at most one fill is
applied.  The other side is only evaluated if the position is still open,
and once the position is flat the whole book is cancelled, so a single bar
can never be credited with more than one exit.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from .engine import ExecutionEngine
from .models import Bar, Fill, OrderKind, PendingOrder, PositionSide, TrailingState


logger = logging.getLogger(__name__)


def limit_crossed(order: PendingOrder, bar: Bar) -> bool:
    """A limit fills when the bar's range strictly crosses its price."""
    return bar.low < order.price < bar.high


def trailing_stop_level(order: PendingOrder, bar: Bar) -> float:
    """Stop level of an active trailing stop, trailed from the bar open."""
    if order.position_side is PositionSide.LONG:
        return bar.open * (1 - order.callback_rate)
    return bar.open * (1 + order.callback_rate)


def trailing_activated(order: PendingOrder, bar: Bar) -> bool:
    """A trailing stop activates once the favourable extreme reaches its price."""
    if order.position_side is PositionSide.LONG:
        return bar.high >= order.price
    return bar.low <= order.price


def trailing_triggered(order: PendingOrder, bar: Bar) -> Optional[float]:
    """Fill price of an active trailing stop on `bar`, or `None`."""
    stop = trailing_stop_level(order, bar)
    if order.position_side is PositionSide.LONG:
        return stop if bar.low <= stop else None
    return stop if bar.high >= stop else None


def effective_price(order: PendingOrder, bar: Bar) -> float:
    """Price the order would fill at on `bar`.

    Active trailing stops fill at their trailed level, every other order
    is ranked by its own price.
    """
    if order.kind is OrderKind.TRAILING_STOP and order.state is TrailingState.ACTIVE:
        return trailing_stop_level(order, bar)
    return order.price


class OrderBook:
    """Pending exit orders for one pair."""

    def __init__(self, pair: str) -> None:
        self.pair = pair
        self._orders: List[PendingOrder] = []
        self._next_id = 1

    def __len__(self) -> int:
        return len(self._orders)

    @property
    def orders(self) -> List[PendingOrder]:
        return list(self._orders)

    def _new_id(self) -> int:
        order_id = self._next_id
        self._next_id += 1
        return order_id

    def place_limit(self, position_side: PositionSide, price: float, quantity: float) -> PendingOrder:
        """Rest a limit order that closes a `position_side` position at `price`."""
        order = PendingOrder(
            id=self._new_id(),
            pair=self.pair,
            kind=OrderKind.LIMIT,
            position_side=position_side,
            price=price,
            quantity=quantity,
        )
        self._orders.append(order)
        logger.debug("Place %s limit order #%s on %s at %s", order.side.value, order.id, self.pair, price)
        return order

    def place_trailing_stop(
        self,
        position_side: PositionSide,
        activation_price: float,
        quantity: float,
        callback_rate: float,
    ) -> PendingOrder:
        """Rest a trailing stop protecting a `position_side` position."""
        order = PendingOrder(
            id=self._new_id(),
            pair=self.pair,
            kind=OrderKind.TRAILING_STOP,
            position_side=position_side,
            price=activation_price,
            quantity=quantity,
            callback_rate=callback_rate,
            state=TrailingState.PENDING,
        )
        self._orders.append(order)
        logger.debug(
            "Place %s trailing stop #%s on %s, activation %s, callback %s",
            order.side.value,
            order.id,
            self.pair,
            activation_price,
            callback_rate,
        )
        return order

    def cancel(self, order_id: int) -> bool:
        """Remove one order.  Returns `False` if it was not resting."""
        for order in self._orders:
            if order.id == order_id:
                self._orders.remove(order)
                return True
        return False

    def clear(self) -> None:
        """Cancel every resting order."""
        if self._orders:
            logger.debug("Cancel %s open orders on %s", len(self._orders), self.pair)
        self._orders = []

    def _side_orders(self, position_side: PositionSide, bar: Bar) -> List[PendingOrder]:
        # Sell orders closing a long: highest price first.  Buy orders closing a short: lowest first.
        return sorted(
            (o for o in self._orders if o.position_side is position_side),
            key=lambda o: effective_price(o, bar),
            reverse=position_side is PositionSide.LONG,
        )

    def _evaluate(self, position_side: PositionSide, bar: Bar) -> Optional[Tuple[PendingOrder, float]]:
        """Find the first order of a side that fills on `bar`.

        Trailing stops that were already active are tested for a fill;
        pending ones are activated and can fill from the next bar on.
        """
        triggered: Optional[Tuple[PendingOrder, float]] = None
        for order in self._side_orders(position_side, bar):
            if order.kind is OrderKind.LIMIT:
                if triggered is None and limit_crossed(order, bar):
                    triggered = (order, order.price)
            elif order.state is TrailingState.ACTIVE:
                price = trailing_triggered(order, bar)
                if triggered is None and price is not None:
                    triggered = (order, price)
            elif trailing_activated(order, bar):
                order.state = TrailingState.ACTIVE
                logger.debug("Trailing stop #%s on %s is active", order.id, self.pair)
        return triggered

    def process_bar(self, bar: Bar, engine: ExecutionEngine) -> List[Fill]:
        """Match the resting orders against `bar` and apply their fills."""
        fills: List[Fill] = []
        for position_side in (PositionSide.LONG, PositionSide.SHORT):
            position = engine.ledger.position
            if position.is_flat:
                break
            if position.position_side is not position_side:
                continue

            triggered = self._evaluate(position_side, bar)
            if triggered is None:
                continue
            order, price = triggered
            self._orders.remove(order)
            if order.kind is OrderKind.LIMIT:
                fill = engine.fill_limit(order, bar.close_time)
            else:
                fill = engine.fill_trailing_stop(order, price, bar.close_time)
            if fill is not None:
                fills.append(fill)

        if engine.ledger.position.is_flat:
            self.clear()
        return fills

    def to_dict(self) -> Dict[str, Any]:
        return {
            'pair': self.pair,
            'next_id': self._next_id,
            'orders': [o.to_dict() for o in self._orders],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OrderBook":
        book = cls(data['pair'])
        book._next_id = int(data['next_id'])
        book._orders = [PendingOrder.from_dict(o) for o in data['orders']]
        return book
