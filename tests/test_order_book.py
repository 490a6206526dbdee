import os
import sys
import pandas as pd

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from futures_sim.config.schema import FeesConfig
from futures_sim.execution.engine import ExecutionEngine
from futures_sim.execution.ledger import Ledger
from futures_sim.execution.models import Bar, OrderSide, PositionSide, TrailingState
from futures_sim.execution.order_book import OrderBook
from futures_sim.reporting.metrics import StrategyStatistics

import unittest


PAIR = "BTCUSDT"
START = pd.Timestamp("2024-01-01 00:00", tz="UTC")


def make_bar(open_: float, high: float, low: float, close: float, index: int = 0) -> Bar:
    open_time = START + pd.Timedelta(minutes=15 * index)
    return Bar(PAIR, "15m", open_, high, low, close, 1.0, open_time, open_time + pd.Timedelta(minutes=15))


def make_engine() -> ExecutionEngine:
    return ExecutionEngine(Ledger(PAIR, 1000.0), StrategyStatistics(1000.0), FeesConfig(taker_pct=0.0, maker_pct=0.02))


class TestLimitOrders(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = make_engine()
        self.engine.fill_market(PAIR, 100.0, 1.0, OrderSide.BUY)
        self.book = OrderBook(PAIR)

    def test_limit_not_filled_when_bar_stays_above(self) -> None:
        self.book.place_limit(PositionSide.LONG, 120.0, 1.0)
        fills = self.book.process_bar(make_bar(122.0, 130.0, 121.0, 125.0), self.engine)
        self.assertEqual(fills, [])
        self.assertEqual(len(self.book), 1)
        self.assertFalse(self.engine.ledger.position.is_flat)

    def test_limit_filled_when_bar_crosses_price(self) -> None:
        self.book.place_limit(PositionSide.LONG, 120.0, 1.0)
        fills = self.book.process_bar(make_bar(116.0, 125.0, 115.0, 118.0), self.engine)
        self.assertEqual(len(fills), 1)
        self.assertEqual(fills[0].side, OrderSide.SELL)
        self.assertEqual(fills[0].price, 120.0)
        self.assertEqual(fills[0].reason, "limit")
        # Maker fee 0.02 %
        self.assertAlmostEqual(fills[0].fee, 120.0 * 0.0002)
        self.assertTrue(self.engine.ledger.position.is_flat)

    def test_only_one_exit_per_bar_and_book_cancelled_when_flat(self) -> None:
        self.book.place_limit(PositionSide.LONG, 120.0, 1.0)
        self.book.place_limit(PositionSide.LONG, 90.0, 1.0)
        fills = self.book.process_bar(make_bar(100.0, 125.0, 85.0, 100.0), self.engine)
        self.assertEqual(len(fills), 1)
        # Sell orders are evaluated highest price first
        self.assertEqual(fills[0].price, 120.0)
        self.assertEqual(len(self.book), 0)
        self.assertEqual(len(self.engine.fills), 2)

    def test_cancel(self) -> None:
        order = self.book.place_limit(PositionSide.LONG, 120.0, 1.0)
        self.assertTrue(self.book.cancel(order.id))
        self.assertFalse(self.book.cancel(order.id))
        self.assertEqual(len(self.book), 0)

    def test_orders_of_the_other_side_are_ignored(self) -> None:
        self.book.place_limit(PositionSide.SHORT, 95.0, 1.0)
        fills = self.book.process_bar(make_bar(100.0, 101.0, 90.0, 96.0), self.engine)
        self.assertEqual(fills, [])
        self.assertEqual(len(self.book), 1)


class TestTrailingStop(unittest.TestCase):
    def test_long_trailing_stop_activates_then_fills_next_bar(self) -> None:
        engine = make_engine()
        engine.fill_market(PAIR, 100.0, 1.0, OrderSide.BUY)
        book = OrderBook(PAIR)
        order = book.place_trailing_stop(PositionSide.LONG, 105.0, 1.0, 0.01)
        self.assertEqual(order.state, TrailingState.PENDING)

        # Activation bar: the range would also reach the stop, but no fill yet
        fills = book.process_bar(make_bar(101.0, 106.0, 99.0, 105.0, 1), engine)
        self.assertEqual(fills, [])
        self.assertEqual(book.orders[0].state, TrailingState.ACTIVE)

        # Stop trails 1 % below the open: 107 * 0.99 = 105.93
        fills = book.process_bar(make_bar(107.0, 108.0, 105.0, 106.0, 2), engine)
        self.assertEqual(len(fills), 1)
        self.assertAlmostEqual(fills[0].price, 105.93)
        self.assertEqual(fills[0].reason, "trailing_stop")
        self.assertTrue(engine.ledger.position.is_flat)
        self.assertEqual(len(book), 0)

    def test_short_trailing_stop(self) -> None:
        engine = make_engine()
        engine.fill_market(PAIR, 100.0, 1.0, OrderSide.SELL)
        book = OrderBook(PAIR)
        book.place_trailing_stop(PositionSide.SHORT, 95.0, 1.0, 0.01)

        # Not reached yet
        book.process_bar(make_bar(99.0, 100.0, 96.0, 97.0, 1), engine)
        self.assertEqual(book.orders[0].state, TrailingState.PENDING)

        book.process_bar(make_bar(96.0, 97.0, 94.0, 94.5, 2), engine)
        self.assertEqual(book.orders[0].state, TrailingState.ACTIVE)

        # Stop trails 1 % above the open: 93 * 1.01 = 93.93
        fills = book.process_bar(make_bar(93.0, 94.0, 92.5, 93.5, 3), engine)
        self.assertEqual(len(fills), 1)
        self.assertEqual(fills[0].side, OrderSide.BUY)
        self.assertAlmostEqual(fills[0].price, 93.93)
        self.assertGreater(fills[0].pnl, 0)

    def test_active_trailing_stop_ranked_by_its_stop_level(self) -> None:
        engine = make_engine()
        engine.fill_market(PAIR, 100.0, 1.0, OrderSide.BUY)
        book = OrderBook(PAIR)
        trailing = book.place_trailing_stop(PositionSide.LONG, 110.0, 1.0, 0.01)
        trailing.state = TrailingState.ACTIVE
        book.place_limit(PositionSide.LONG, 107.5, 1.0)

        # Both cross: the limit at 107.5 is above the trailed level 107 * 0.99 = 105.93
        fills = book.process_bar(make_bar(107.0, 108.0, 105.0, 106.0, 1), engine)
        self.assertEqual(len(fills), 1)
        self.assertEqual(fills[0].reason, "limit")
        self.assertEqual(fills[0].price, 107.5)

    def test_book_state_survives_serialisation(self) -> None:
        book = OrderBook(PAIR)
        book.place_limit(PositionSide.LONG, 120.0, 1.0)
        book.place_trailing_stop(PositionSide.LONG, 105.0, 1.0, 0.02)
        restored = OrderBook.from_dict(book.to_dict())
        self.assertEqual(restored.orders, book.orders)
        # Ids keep increasing after a restore
        self.assertEqual(restored.place_limit(PositionSide.LONG, 90.0, 1.0).id, 3)


if __name__ == '__main__':
    unittest.main()
