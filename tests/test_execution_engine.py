import os
import sys

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from futures_sim.config.schema import FeesConfig
from futures_sim.execution.engine import ExecutionEngine
from futures_sim.execution.ledger import Ledger
from futures_sim.execution.models import OrderSide, PositionSide
from futures_sim.reporting.metrics import StrategyStatistics

import unittest


PAIR = "BTCUSDT"


def make_engine(capital: float = 1000.0, leverage: int = 1, taker: float = 0.1, maker: float = 0.02) -> ExecutionEngine:
    ledger = Ledger(PAIR, capital, leverage)
    return ExecutionEngine(ledger, StrategyStatistics(capital), FeesConfig(taker_pct=taker, maker_pct=maker))


class TestOpenAndClose(unittest.TestCase):
    def test_round_trip_long(self) -> None:
        """Buy 1 @ 100 then sell 1 @ 110 with a 0.1 % taker fee."""
        engine = make_engine()
        wallet = engine.ledger.wallet

        engine.fill_market(PAIR, 100.0, 1.0, OrderSide.BUY)
        self.assertAlmostEqual(wallet.position.margin, 100.0)
        self.assertAlmostEqual(wallet.position.entry_price, 100.0)
        self.assertAlmostEqual(wallet.available_balance, 899.9)

        fill = engine.fill_market(PAIR, 110.0, 1.0, OrderSide.SELL)
        self.assertIsNotNone(fill)
        self.assertAlmostEqual(fill.pnl, 10.0)
        self.assertAlmostEqual(fill.fee, 0.11)
        self.assertAlmostEqual(wallet.available_balance, 1009.79)
        self.assertAlmostEqual(wallet.total_wallet_balance, 1009.79)
        self.assertTrue(wallet.position.is_flat)
        self.assertEqual(engine.stats.long_winning_trades, 1)

    def test_margin_uses_leverage(self) -> None:
        engine = make_engine(leverage=5)
        engine.fill_market(PAIR, 100.0, 2.0, OrderSide.BUY)
        position = engine.ledger.position
        self.assertAlmostEqual(position.margin, 40.0)
        self.assertAlmostEqual(position.entry_price, 100.0)
        self.assertEqual(position.position_side, PositionSide.LONG)

    def test_adding_to_a_position_averages_the_entry(self) -> None:
        engine = make_engine(taker=0.0)
        engine.fill_market(PAIR, 100.0, 1.0, OrderSide.BUY)
        engine.fill_market(PAIR, 110.0, 1.0, OrderSide.BUY)
        position = engine.ledger.position
        self.assertAlmostEqual(position.entry_price, 105.0)
        self.assertAlmostEqual(position.margin, 210.0)
        self.assertAlmostEqual(position.size, 2.0)
        # Only one trade was opened
        self.assertEqual(engine.stats.total_trades, 1)

    def test_short_round_trip(self) -> None:
        engine = make_engine(taker=0.0)
        engine.fill_market(PAIR, 100.0, 1.0, OrderSide.SELL)
        self.assertEqual(engine.ledger.position.position_side, PositionSide.SHORT)
        self.assertAlmostEqual(engine.ledger.position.size, -1.0)
        fill = engine.fill_market(PAIR, 90.0, 1.0, OrderSide.BUY)
        self.assertAlmostEqual(fill.pnl, 10.0)
        self.assertEqual(engine.stats.short_winning_trades, 1)
        self.assertAlmostEqual(engine.ledger.wallet.total_wallet_balance, 1010.0)

    def test_partial_close_realizes_a_share_of_the_pnl(self) -> None:
        engine = make_engine(taker=0.0)
        engine.fill_market(PAIR, 100.0, 2.0, OrderSide.BUY)
        fill = engine.fill_market(PAIR, 110.0, 1.0, OrderSide.SELL)
        position = engine.ledger.position
        self.assertAlmostEqual(fill.pnl, 10.0)
        self.assertAlmostEqual(position.size, 1.0)
        self.assertAlmostEqual(position.margin, 100.0)
        self.assertAlmostEqual(position.entry_price, 100.0)

    def test_partial_closes_count_one_outcome_per_trade(self) -> None:
        engine = make_engine(taker=0.0)
        engine.fill_market(PAIR, 100.0, 2.0, OrderSide.BUY)
        engine.fill_market(PAIR, 110.0, 1.0, OrderSide.SELL)
        self.assertEqual(engine.stats.winning_trades, 0)
        self.assertEqual(engine.stats.lost_trades, 0)

        engine.fill_market(PAIR, 110.0, 1.0, OrderSide.SELL)
        self.assertTrue(engine.ledger.position.is_flat)
        self.assertEqual(engine.stats.total_trades, 1)
        self.assertEqual(engine.stats.long_winning_trades, 1)
        self.assertAlmostEqual(engine.stats.win_rate(), 1.0)
        self.assertAlmostEqual(engine.stats.total_profit, 20.0)

    def test_flattening_resets_the_position(self) -> None:
        engine = make_engine(leverage=3)
        engine.fill_market(PAIR, 100.0, 1.5, OrderSide.BUY)
        engine.close_position(95.0)
        position = engine.ledger.position
        self.assertEqual(position.size, 0)
        self.assertEqual(position.entry_price, 0)
        self.assertEqual(position.margin, 0)
        self.assertEqual(position.unrealized_profit, 0)
        self.assertEqual(engine.stats.long_lost_trades, 1)

    def test_close_position_when_flat_does_nothing(self) -> None:
        engine = make_engine()
        self.assertIsNone(engine.close_position(100.0))
        self.assertEqual(engine.fills, [])
        self.assertEqual(engine.rejections, [])


class TestReversal(unittest.TestCase):
    def test_oversized_opposite_order_reverses_the_position(self) -> None:
        engine = make_engine()
        wallet = engine.ledger.wallet
        engine.fill_market(PAIR, 100.0, 1.0, OrderSide.BUY)
        fill = engine.fill_market(PAIR, 110.0, 3.0, OrderSide.SELL)

        self.assertAlmostEqual(fill.pnl, 10.0)
        self.assertAlmostEqual(fill.fee, 0.33)
        position = wallet.position
        self.assertEqual(position.position_side, PositionSide.SHORT)
        self.assertAlmostEqual(position.size, -2.0)
        self.assertAlmostEqual(position.entry_price, 110.0)
        self.assertAlmostEqual(position.margin, 220.0)
        self.assertAlmostEqual(wallet.available_balance, 789.57)
        self.assertAlmostEqual(wallet.total_wallet_balance, 1009.57)
        self.assertEqual(engine.stats.long_winning_trades, 1)
        self.assertEqual(engine.stats.total_trades, 2)
        self.assertEqual(engine.stats.short_trades, 1)

    def test_reversal_rejected_without_enough_balance(self) -> None:
        engine = make_engine()
        engine.fill_market(PAIR, 100.0, 5.0, OrderSide.BUY)
        before = engine.ledger.wallet.to_dict()

        self.assertIsNone(engine.fill_market(PAIR, 100.0, 15.0, OrderSide.SELL))
        self.assertEqual(engine.ledger.wallet.to_dict(), before)
        self.assertEqual(len(engine.rejections), 1)
        self.assertEqual(len(engine.fills), 1)


class TestRejections(unittest.TestCase):
    def test_negative_quantity_is_rejected(self) -> None:
        engine = make_engine()
        engine.fill_market(PAIR, 100.0, 1.0, OrderSide.BUY)
        before = engine.ledger.wallet.to_dict()
        stats_before = engine.stats.to_dict()

        self.assertIsNone(engine.fill_market(PAIR, 100.0, -1.0, OrderSide.SELL))
        self.assertEqual(engine.ledger.wallet.to_dict(), before)
        self.assertEqual(engine.stats.to_dict(), stats_before)
        self.assertEqual(len(engine.rejections), 1)
        self.assertEqual(engine.rejections[0].reason, "the quantity is malformed")

    def test_zero_quantity_is_rejected(self) -> None:
        engine = make_engine()
        self.assertIsNone(engine.fill_market(PAIR, 100.0, 0.0, OrderSide.BUY))
        self.assertEqual(engine.stats.total_trades, 0)
        self.assertEqual(len(engine.rejections), 1)

    def test_insufficient_balance_is_rejected(self) -> None:
        engine = make_engine()
        self.assertIsNone(engine.fill_market(PAIR, 100.0, 20.0, OrderSide.BUY))
        self.assertTrue(engine.ledger.position.is_flat)
        self.assertEqual(engine.ledger.wallet.available_balance, 1000.0)
        self.assertEqual(engine.rejections[0].reason, "insufficient available balance")

    def test_other_pair_is_rejected(self) -> None:
        engine = make_engine()
        self.assertIsNone(engine.fill_market("ETHUSDT", 100.0, 1.0, OrderSide.BUY))
        self.assertTrue(engine.ledger.position.is_flat)
        self.assertEqual(len(engine.rejections), 1)


class TestBalanceIdentity(unittest.TestCase):
    def test_total_balance_is_capital_plus_pnl_minus_fees(self) -> None:
        engine = make_engine(leverage=2)
        engine.fill_market(PAIR, 100.0, 2.0, OrderSide.BUY)
        engine.fill_market(PAIR, 104.0, 1.0, OrderSide.SELL)
        engine.fill_market(PAIR, 98.0, 3.0, OrderSide.SELL)
        engine.fill_market(PAIR, 101.0, 0.5, OrderSide.SELL)
        engine.close_position(97.0)

        pnl = sum(f.pnl for f in engine.fills)
        fees = sum(f.fee for f in engine.fills)
        self.assertAlmostEqual(engine.ledger.wallet.total_wallet_balance, 1000.0 + pnl - fees)
        self.assertAlmostEqual(engine.ledger.wallet.available_balance, 1000.0 + pnl - fees)
        self.assertAlmostEqual(engine.stats.total_fees, fees)


class TestLiquidation(unittest.TestCase):
    def test_margin_call_liquidates_as_a_single_loss(self) -> None:
        engine = make_engine(leverage=10, taker=0.0)
        engine.fill_market(PAIR, 100.0, 1.0, OrderSide.BUY)
        self.assertIsNone(engine.check_margin_call(95.0))

        engine.ledger.mark_to_market(90.0)
        fill = engine.check_margin_call(90.0)
        self.assertIsNotNone(fill)
        self.assertEqual(fill.reason, "liquidation")
        self.assertAlmostEqual(fill.pnl, -10.0)
        self.assertTrue(engine.ledger.position.is_flat)
        self.assertEqual(engine.stats.long_lost_trades, 1)
        self.assertEqual(engine.stats.lost_trades, 1)
        self.assertAlmostEqual(engine.stats.total_loss, 10.0)


if __name__ == '__main__':
    unittest.main()
