"""
Futures order execution against the simulated ledger.

`ExecutionEngine` books market, limit and trailing-stop fills into the
wallet: margin lock and release, size-weighted entry price, realized
profit, fee debit, reversal of the position side and forced liquidation.
Every realized profit is reported once to the strategy statistics; a
trade is counted as won or lost only when its position is fully closed.

Malformed requests (negative quantity, insufficient available balance,
wrong pair) never raise.  They leave the ledger untouched, are logged and
recorded in `ExecutionEngine.rejections`, and the fill method returns
`None`.  Inputs are expected to be already rounded to the exchange
precision; no rounding happens here.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional
import pandas as pd

from ..config.schema import FeesConfig
from ..reporting.metrics import StrategyStatistics
from .ledger import Ledger, unrealized_pnl
from .models import Fill, OrderSide, PendingOrder, PositionSide, Rejection


logger = logging.getLogger(__name__)


class ExecutionEngine:
    """Apply fills to a `Ledger` and report them to `StrategyStatistics`."""

    def __init__(self, ledger: Ledger, stats: StrategyStatistics, fees: FeesConfig) -> None:
        self.ledger = ledger
        self.stats = stats
        self.fees = fees
        self.fills: List[Fill] = []
        self.rejections: List[Rejection] = []

    def fill_market(
        self,
        pair: str,
        price: float,
        quantity: float,
        side: OrderSide,
        time: Optional[pd.Timestamp] = None,
        reason: str = "market",
    ) -> Optional[Fill]:
        """Execute a market order at `price` with the taker fee."""
        return self._fill(pair, price, quantity, side, self.fees.taker_rate, reason, time)

    def fill_limit(self, order: PendingOrder, time: Optional[pd.Timestamp] = None) -> Optional[Fill]:
        """Execute a resting limit order at its price with the maker fee."""
        return self._fill(order.pair, order.price, order.quantity, order.side, self.fees.maker_rate, "limit", time)

    def fill_trailing_stop(
        self,
        order: PendingOrder,
        price: float,
        time: Optional[pd.Timestamp] = None,
    ) -> Optional[Fill]:
        """Execute a triggered trailing stop at `price` with the maker fee."""
        return self._fill(order.pair, price, order.quantity, order.side, self.fees.maker_rate, "trailing_stop", time)

    def close_position(
        self,
        price: float,
        time: Optional[pd.Timestamp] = None,
        reason: str = "close",
    ) -> Optional[Fill]:
        """Close the whole position with a market order."""
        position = self.ledger.position
        if position.is_flat:
            return None
        return self.fill_market(position.pair, price, abs(position.size), position.position_side.closing_side, time, reason)

    def check_margin_call(self, price: float, time: Optional[pd.Timestamp] = None) -> Optional[Fill]:
        """Liquidate the position if its margin no longer covers the loss.

        The unrealized profit must already be marked at `price`.
        """
        if not self.ledger.is_margin_call():
            return None
        position = self.ledger.position
        logger.info(
            "The position on %s has reached the liquidation price (margin=%s, unrealized=%s)",
            position.pair,
            position.margin,
            position.unrealized_profit,
        )
        return self._fill(
            position.pair,
            price,
            abs(position.size),
            position.position_side.closing_side,
            self.fees.taker_rate,
            "liquidation",
            time,
            liquidation=True,
        )

    def _reject(
        self,
        pair: str,
        price: float,
        quantity: float,
        side: OrderSide,
        reason: str,
        time: Optional[pd.Timestamp],
        **details: Any,
    ) -> None:
        logger.warning(
            "Cannot execute the %s order of %s %s at %s: %s",
            side.value,
            quantity,
            pair,
            price,
            reason,
        )
        self.rejections.append(Rejection(time, pair, side, price, quantity, reason, details))

    def _fill(
        self,
        pair: str,
        price: float,
        quantity: float,
        side: OrderSide,
        fee_rate: float,
        reason: str,
        time: Optional[pd.Timestamp],
        liquidation: bool = False,
    ) -> Optional[Fill]:
        position = self.ledger.position
        if pair != position.pair:
            self._reject(pair, price, quantity, side, f"unknown pair, the wallet trades {position.pair}", time)
            return None
        if quantity < 0:
            self._reject(pair, price, quantity, side, "the quantity is malformed", time)
            return None
        if quantity == 0:
            self._reject(pair, price, quantity, side, "the quantity is zero", time)
            return None

        fee = price * quantity * fee_rate
        order_side = PositionSide.LONG if side is OrderSide.BUY else PositionSide.SHORT
        if position.is_flat or position.position_side is order_side:
            pnl = self._increase(pair, price, quantity, side, fee, order_side, time)
        else:
            pnl = self._reduce(pair, price, quantity, side, fee, time, liquidation)
        if pnl is None:
            return None

        self.ledger.mark_to_market(price)
        fill = Fill(time, pair, side, price, quantity, fee, pnl, reason)
        self.fills.append(fill)
        logger.debug(
            "%s %s %s at %s (%s). Fees: %s, pnl: %s",
            side.value,
            quantity,
            pair,
            price,
            reason,
            fee,
            pnl,
        )
        return fill

    def _increase(
        self,
        pair: str,
        price: float,
        quantity: float,
        side: OrderSide,
        fee: float,
        order_side: PositionSide,
        time: Optional[pd.Timestamp],
    ) -> Optional[float]:
        wallet = self.ledger.wallet
        position = wallet.position
        was_flat = position.is_flat
        margin_delta = price * quantity / position.leverage
        if wallet.available_balance < margin_delta + fee:
            self._reject(
                pair,
                price,
                quantity,
                side,
                "insufficient available balance",
                time,
                required=margin_delta + fee,
                available=wallet.available_balance,
            )
            return None

        old_size = abs(position.size)
        position.entry_price = (price * quantity + position.entry_price * old_size) / (quantity + old_size)
        position.margin += margin_delta
        position.size += quantity if side is OrderSide.BUY else -quantity
        position.position_side = order_side

        wallet.available_balance -= margin_delta + fee
        wallet.total_wallet_balance -= fee

        self.stats.record_fee(fee)
        if was_flat:
            self.stats.record_open(order_side)
            logger.info("Open a %s position on %s with a size of %s at %s", order_side.value.lower(), pair, quantity, price)
        return 0.0

    def _reduce(
        self,
        pair: str,
        price: float,
        quantity: float,
        side: OrderSide,
        fee: float,
        time: Optional[pd.Timestamp],
        liquidation: bool,
    ) -> Optional[float]:
        wallet = self.ledger.wallet
        position = wallet.position
        closing_side = position.position_side
        entry_price = position.entry_price
        held = abs(position.size)

        closed = min(quantity, held)
        fraction = closed / held
        pnl = unrealized_pnl(position, price) * fraction
        released = position.margin * fraction
        residual = quantity - closed
        new_margin = price * residual / position.leverage

        if residual > 0 and wallet.available_balance + released + pnl - fee < new_margin:
            self._reject(
                pair,
                price,
                quantity,
                side,
                "insufficient available balance to reverse the position",
                time,
                required=new_margin,
                available=wallet.available_balance + released + pnl - fee,
            )
            return None

        wallet.available_balance += released + pnl - fee
        wallet.total_wallet_balance += pnl - fee

        self.stats.record_fee(fee)
        self.stats.record_pnl(pnl)

        remaining = held - closed
        # A trade is won or lost once, when it is fully closed
        if remaining == 0:
            if liquidation:
                won = False
            elif closing_side is PositionSide.LONG:
                won = entry_price <= price
            else:
                won = entry_price >= price
            self.stats.record_outcome(closing_side, won)
            position.reset()
            logger.info("Close the %s position on %s at %s, pnl: %s", closing_side.value.lower(), pair, price, pnl)
        else:
            position.size = remaining if closing_side is PositionSide.LONG else -remaining
            position.margin -= released

        if residual > 0:
            new_side = closing_side.opposite
            position.size = residual if new_side is PositionSide.LONG else -residual
            position.entry_price = price
            position.margin = new_margin
            position.position_side = new_side
            wallet.available_balance -= new_margin
            self.stats.record_open(new_side)
            logger.info("Reverse to a %s position on %s with a size of %s at %s", new_side.value.lower(), pair, residual, price)
        return pnl
