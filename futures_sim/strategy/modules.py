"""
Concrete decision modules.

A decision module turns the vision vector (holding flag followed by the
indicator values) into scores for buy, sell and close.  Any object with a
`decide()` method can be used instead, such as a trained neural network.
"""

from __future__ import annotations

from typing import List, Sequence


class RsiDecisionModule:
    """Mean-reversion scores from the RSI input.

    Buys when the RSI is oversold, sells when it is overbought and asks to
    close a held position once the RSI is back in the neutral band.
    The module is stateless, so replaying the same bars gives the same
    decisions.
    """

    def __init__(self, oversold: float = 30.0, overbought: float = 70.0, neutral_band: float = 5.0) -> None:
        if not 0 < oversold < overbought < 100:
            raise ValueError("RSI levels must satisfy 0 < oversold < overbought < 100")
        self.oversold = oversold
        self.overbought = overbought
        self.neutral_band = neutral_band

    def decide(self, vision: Sequence[float]) -> List[float]:
        if len(vision) < 2 or vision[1] == 0:
            return [0.0, 0.0, 0.0]
        holding = vision[0] > 0
        value = vision[1] * 100
        buy = 1 - value / 100 if value < self.oversold else 0.0
        sell = value / 100 if value > self.overbought else 0.0
        close = 0.0
        if holding and abs(value - 50) <= self.neutral_band:
            close = 0.7
        return [buy, sell, close]
