"""
Position sizing.

Both sizers return a quantity rounded to the pair's quantity precision,
which the execution engine then uses as is.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..config.schema import RiskManagementConfig
from ..data.exchange_info import PrecisionInfo
from ..utils.precision import decimal_ceil, decimal_floor
from .ports import RiskSizer


logger = logging.getLogger(__name__)


class PercentRiskSizer:
    """Allocate a fraction of the balance to the position.

    The quantity is `balance * risk / entry_price`, raised to the
    exchange minimum when smaller, and ceiled to the quantity precision.
    """

    def size_position(
        self,
        balance: float,
        risk: float,
        entry_price: float,
        stop_loss_price: Optional[float],
        precision: PrecisionInfo,
    ) -> float:
        quantity = balance * risk / entry_price
        if quantity < precision.min_quantity:
            quantity = precision.min_quantity
        return decimal_ceil(quantity, precision.quantity_precision)


class StopLossRiskSizer:
    """Lose at most `risk` of the balance if the stop loss is hit.

    The quantity is `balance * risk / |entry_price - stop_loss_price|`,
    floored to the quantity precision.  Without a stop loss it falls back
    to percent sizing.
    """

    def __init__(self) -> None:
        self._fallback = PercentRiskSizer()

    def size_position(
        self,
        balance: float,
        risk: float,
        entry_price: float,
        stop_loss_price: Optional[float],
        precision: PrecisionInfo,
    ) -> float:
        if stop_loss_price is None or stop_loss_price == entry_price:
            return self._fallback.size_position(balance, risk, entry_price, None, precision)
        quantity = balance * risk / abs(entry_price - stop_loss_price)
        quantity = decimal_floor(quantity, precision.quantity_precision)
        if quantity < precision.min_quantity:
            logger.debug("Risk based size %s is below the minimum quantity %s", quantity, precision.min_quantity)
            quantity = decimal_ceil(precision.min_quantity, precision.quantity_precision)
        return quantity


def build_risk_sizer(config: RiskManagementConfig) -> RiskSizer:
    """Create the sizer named by `config.kind`."""
    if config.kind == 'percent':
        return PercentRiskSizer()
    if config.kind == 'stop_loss':
        return StopLossRiskSizer()
    raise ValueError(f"Unknown risk management kind: {config.kind}")
