"""
Rounding helpers for exchange precision.

Prices and quantities sent to the exchange must respect the tick and lot
size of the pair.  All flooring and ceiling to a number of decimals is
done here, at the boundary between the sizing/exit helpers and the
execution engine.  The engine itself never rounds.
"""

from __future__ import annotations

import math


def decimal_floor(value: float, decimals: int) -> float:
    """Round `value` down to `decimals` decimal places."""
    factor = 10 ** decimals
    return math.floor(round(value * factor, 9)) / factor


def decimal_ceil(value: float, decimals: int) -> float:
    """Round `value` up to `decimals` decimal places."""
    factor = 10 ** decimals
    return math.ceil(round(value * factor, 9)) / factor
