import os
import sys

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from futures_sim.config.schema import DecisionConfig
from futures_sim.execution.models import Position, PositionSide
from futures_sim.strategy.decision import Action, DecisionGate, HoldDurationCounter, winning_index
from futures_sim.strategy.ports import Trend

import unittest


def long_position(entry: float = 100.0) -> Position:
    return Position(pair="BTCUSDT", size=1.0, margin=entry, entry_price=entry)


def short_position(entry: float = 100.0) -> Position:
    return Position(pair="BTCUSDT", size=-1.0, margin=entry, entry_price=entry, position_side=PositionSide.SHORT)


FLAT = Position(pair="BTCUSDT")


class TestWinningIndex(unittest.TestCase):
    def test_strict_maximum_above_threshold(self) -> None:
        self.assertEqual(winning_index([0.7, 0.2, 0.1], 0.6), 0)
        self.assertEqual(winning_index([0.1, 0.2, 0.9], 0.6), 2)

    def test_tie_or_threshold_gives_no_winner(self) -> None:
        self.assertIsNone(winning_index([0.8, 0.8, 0.1], 0.6))
        self.assertIsNone(winning_index([0.6, 0.2, 0.1], 0.6))
        self.assertIsNone(winning_index([], 0.6))


class TestDecisionGate(unittest.TestCase):
    def setUp(self) -> None:
        self.gate = DecisionGate(DecisionConfig(mode="buy_sell_close", threshold=0.6, min_close_move=0.01))

    def test_open_from_flat(self) -> None:
        self.assertIs(self.gate.decide([0.9, 0.1, 0.0], FLAT, 100.0), Action.OPEN_LONG)
        self.assertIs(self.gate.decide([0.1, 0.9, 0.0], FLAT, 100.0), Action.OPEN_SHORT)
        self.assertIs(self.gate.decide([0.5, 0.4, 0.0], FLAT, 100.0), Action.NONE)

    def test_no_open_while_holding_the_same_side(self) -> None:
        self.assertIs(self.gate.decide([0.9, 0.1, 0.0], long_position(), 100.0), Action.NONE)

    def test_no_reversal_unless_allowed(self) -> None:
        self.assertIs(self.gate.decide([0.1, 0.9, 0.0], long_position(), 100.0), Action.NONE)
        gate = DecisionGate(DecisionConfig(), can_open_new_position_to_close_last=True)
        self.assertIs(gate.decide([0.1, 0.9, 0.0], long_position(), 100.0), Action.OPEN_SHORT)
        self.assertIs(gate.decide([0.9, 0.1, 0.0], short_position(), 100.0), Action.OPEN_LONG)

    def test_reversal_blocked_while_orders_rest(self) -> None:
        gate = DecisionGate(DecisionConfig(), can_open_new_position_to_close_last=True)
        self.assertIs(gate.decide([0.1, 0.9, 0.0], long_position(), 100.0, has_open_orders=True), Action.NONE)

    def test_close_requires_a_minimum_move(self) -> None:
        scores = [0.0, 0.1, 0.9]
        self.assertIs(self.gate.decide(scores, long_position(), 100.5), Action.NONE)
        self.assertIs(self.gate.decide(scores, long_position(), 101.0), Action.CLOSE)
        self.assertIs(self.gate.decide(scores, long_position(), 98.0), Action.CLOSE)
        self.assertIs(self.gate.decide(scores, FLAT, 120.0), Action.NONE)

    def test_wait_mode_never_closes(self) -> None:
        gate = DecisionGate(DecisionConfig(mode="buy_sell_wait"))
        self.assertIs(gate.decide([0.0, 0.1, 0.9], long_position(), 150.0), Action.NONE)

    def test_trend_filter(self) -> None:
        self.assertIs(self.gate.decide([0.9, 0.1, 0.0], FLAT, 100.0, trend=Trend.DOWN), Action.NONE)
        self.assertIs(self.gate.decide([0.9, 0.1, 0.0], FLAT, 100.0, trend=Trend.NEUTRAL), Action.NONE)
        self.assertIs(self.gate.decide([0.9, 0.1, 0.0], FLAT, 100.0, trend=Trend.UP), Action.OPEN_LONG)
        self.assertIs(self.gate.decide([0.1, 0.9, 0.0], FLAT, 100.0, trend=Trend.DOWN), Action.OPEN_SHORT)

    def test_no_new_position_outside_session(self) -> None:
        self.assertIs(self.gate.decide([0.9, 0.1, 0.0], FLAT, 100.0, session_active=False), Action.NONE)
        # Closing is still allowed outside the session
        self.assertIs(
            self.gate.decide([0.0, 0.1, 0.9], long_position(), 110.0, session_active=False),
            Action.CLOSE,
        )

    def test_expired_duration_forces_close(self) -> None:
        self.assertIs(
            self.gate.decide([0.9, 0.1, 0.0], long_position(), 100.0, duration_expired=True),
            Action.CLOSE,
        )

    def test_unknown_mode(self) -> None:
        with self.assertRaises(ValueError):
            DecisionGate(DecisionConfig(mode="buy_only"))


class TestHoldDurationCounter(unittest.TestCase):
    def test_expires_after_max_duration(self) -> None:
        counter = HoldDurationCounter(3)
        self.assertFalse(counter.tick(True))
        self.assertFalse(counter.tick(True))
        self.assertTrue(counter.tick(True))
        # Reset after expiry
        self.assertEqual(counter.value, 3)

    def test_flat_resets(self) -> None:
        counter = HoldDurationCounter(2)
        self.assertFalse(counter.tick(True))
        self.assertFalse(counter.tick(False))
        self.assertFalse(counter.tick(True))
        self.assertTrue(counter.tick(True))

    def test_without_maximum_never_expires(self) -> None:
        counter = HoldDurationCounter(None)
        self.assertFalse(any(counter.tick(True) for _ in range(1000)))


if __name__ == '__main__':
    unittest.main()
