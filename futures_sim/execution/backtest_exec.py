"""
Backtest simulation loop.

This module contains the `BacktestEngine` class which replays a series of
bars for one futures pair.  For every bar after the warm-up it marks the
position to market, liquidates it on a margin call, matches the resting
exit orders, asks the decision gate for an action, executes it and
records the drawdown and the equity.  Bars are processed strictly in
order and an engine instance shares no mutable state with any other, so
many strategies can be evaluated side by side.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence
import pandas as pd

from ..config.schema import Config
from ..data.exchange_info import PrecisionInfo
from ..reporting.metrics import StrategyStatistics, build_report
from ..strategy.decision import Action, DecisionGate, HoldDurationCounter
from ..strategy.exit_strategy import build_exit_strategy, calculate_activation_price
from ..strategy.indicators import compute_indicators, vision_at
from ..strategy.ports import DecisionModule, ExitStrategy, ExitTargets, RiskSizer, TrendFilter
from ..strategy.risk_management import build_risk_sizer
from ..strategy.trend import build_trend_filter
from ..utils.persistence import HistoryRecorder
from ..utils.timeutils import is_trading_session_active
from .engine import ExecutionEngine
from .ledger import Ledger
from .models import Bar, Fill, OrderSide, PositionSide, Wallet
from .order_book import OrderBook


logger = logging.getLogger(__name__)


@dataclass
class EquityPoint:
    """Represents the wallet balance at a given timestamp."""
    timestamp: pd.Timestamp
    equity: float


@dataclass
class BacktestResult:
    """Outcome of a run: the report and the series it was built from."""
    report: Dict[str, Any]
    statistics: StrategyStatistics
    fills: List[Fill]
    equity_curve: List[EquityPoint]
    dead: bool


class BacktestEngine:
    """Simulate a leveraged futures account over historical bars.

    Parameters
    ----------
    config : Config
        Run configuration.  Never mutated.
    bars : sequence of Bar
        Ordered, gap-free candles of the configured pair.
    precision : PrecisionInfo
        Exchange precision of the pair, handed to the sizing and exit
        helpers.
    decision_module : DecisionModule
        Produces the buy/sell/close scores from the vision vector.
    risk_sizer : RiskSizer
        Computes the quantity of new positions.
    exit_strategy : ExitStrategy, optional
        Computes take profit and stop loss of new positions.
    trend_filter : TrendFilter, optional
        Restricts which side may be opened.
    history : HistoryRecorder, optional
        Receives a wallet snapshot after every bar.
    """

    def __init__(
        self,
        config: Config,
        bars: Sequence[Bar],
        precision: PrecisionInfo,
        decision_module: DecisionModule,
        risk_sizer: RiskSizer,
        exit_strategy: Optional[ExitStrategy] = None,
        trend_filter: Optional[TrendFilter] = None,
        history: Optional[HistoryRecorder] = None,
    ) -> None:
        self.config = config
        self.bars = list(bars)
        self.precision = precision
        self.decision_module = decision_module
        self.risk_sizer = risk_sizer
        self.exit_strategy = exit_strategy
        self.trend_filter = trend_filter
        self.history = history

        self.ledger = Ledger(config.pair, config.initial_capital, config.leverage)
        self.stats = StrategyStatistics(config.initial_capital)
        self.execution = ExecutionEngine(self.ledger, self.stats, config.fees)
        self.order_book = OrderBook(config.pair)
        self.gate = DecisionGate(config.decision, config.can_open_new_position_to_close_last)
        self.counter = HoldDurationCounter(config.max_trade_duration)
        self.indicators = compute_indicators(self.bars)
        self.equity_curve: List[EquityPoint] = []
        self.next_index = config.warmup_bars
        self.dead = False

    @classmethod
    def from_config(
        cls,
        config: Config,
        bars: Sequence[Bar],
        precision: PrecisionInfo,
        decision_module: DecisionModule,
        history: Optional[HistoryRecorder] = None,
    ) -> "BacktestEngine":
        """Build an engine whose sizing, exit and trend helpers come from `config`."""
        return cls(
            config,
            bars,
            precision,
            decision_module,
            risk_sizer=build_risk_sizer(config.risk_management),
            exit_strategy=build_exit_strategy(config.exit),
            trend_filter=build_trend_filter(config.trend_filter),
            history=history,
        )

    @property
    def wallet(self) -> Wallet:
        return self.ledger.wallet

    def run(self, stop: Optional[int] = None) -> BacktestResult:
        """Process the bars up to index `stop` (exclusive, default: all).

        The run can be continued later with another call, or from a
        restored snapshot.
        """
        end = len(self.bars) if stop is None else min(stop, len(self.bars))
        while self.next_index < end and not self.dead:
            self.step(self.next_index)
            self.next_index += 1
        if self.history is not None and (self.dead or self.next_index >= len(self.bars)):
            try:
                self.history.flush()
            except OSError:
                # The history is an audit trail only, the run result stands
                logger.exception("Cannot write the wallet history to %s", self.history.path)
        return self.result()

    def step(self, index: int) -> None:
        """Process bar `index`."""
        bar = self.bars[index]
        price = bar.close
        time = bar.close_time
        window = self.bars[max(0, index - self.config.window_bars + 1):index + 1]

        self.ledger.mark_to_market(price)
        if self.execution.check_margin_call(price, time) is not None:
            self._position_closed()

        self.order_book.process_bar(bar, self.execution)

        position = self.ledger.position
        expired = self.counter.tick(not position.is_flat)
        if expired:
            logger.info(
                "The position on %s is longer than the maximum authorized duration. Position has been closed.",
                position.pair,
            )
        scores = self.decision_module.decide(vision_at(self.indicators, index, not position.is_flat))
        action = self.gate.decide(
            scores,
            position,
            price,
            trend=self.trend_filter.trend(window) if self.trend_filter is not None else None,
            session_active=is_trading_session_active(time, self.config.sessions, self.config.data.timezone),
            duration_expired=expired,
            has_open_orders=len(self.order_book) > 0,
        )

        if action is Action.CLOSE:
            self.execution.close_position(price, time, reason="timeout" if expired else "close")
            if self.ledger.position.is_flat:
                self._position_closed()
        elif action in (Action.OPEN_LONG, Action.OPEN_SHORT):
            self._open(action, price, time, window)

        self.ledger.mark_to_market(price)
        balance = self.wallet.total_wallet_balance
        self.stats.update_drawdown(balance)
        self.equity_curve.append(EquityPoint(timestamp=time, equity=balance))
        if self.history is not None:
            self.history.record(time, self.wallet.to_dict())

        logger.debug(
            "%s wallet: available %.2f | total %.2f | unrealized %.2f | position %s @ %s",
            time,
            self.wallet.available_balance,
            balance,
            self.wallet.total_unrealized_profit,
            position.size,
            position.entry_price,
        )
        if balance <= 0:
            logger.info("The wallet on %s is empty, the simulation stops at %s", self.config.pair, time)
            self.dead = True

    def _position_closed(self) -> None:
        self.order_book.clear()
        self.counter.reset()

    def _open(self, action: Action, price: float, time: pd.Timestamp, window: Sequence[Bar]) -> None:
        side = OrderSide.BUY if action is Action.OPEN_LONG else OrderSide.SELL
        position_side = PositionSide.LONG if side is OrderSide.BUY else PositionSide.SHORT
        position = self.ledger.position

        targets = ExitTargets()
        if self.exit_strategy is not None:
            targets = self.exit_strategy.compute_targets(price, window, self.precision.price_precision, side)
        quantity = self.risk_sizer.size_position(
            self.wallet.available_balance,
            self.config.risk,
            price,
            targets.stop_loss,
            self.precision,
        )
        # Reversal: the order first closes the current position
        if not position.is_flat:
            quantity += abs(position.size)

        if self.execution.fill_market(self.config.pair, price, quantity, side, time) is None:
            return
        self.counter.reset()
        self._place_exit_orders(position_side, price, targets)

    def _place_exit_orders(self, position_side: PositionSide, price: float, targets: ExitTargets) -> None:
        quantity = abs(self.ledger.position.size)
        trailing = self.config.trailing_stop
        if trailing is not None:
            activation = calculate_activation_price(
                trailing,
                price,
                self.precision.price_precision,
                position_side,
                targets.take_profit,
            )
            self.order_book.place_trailing_stop(position_side, activation, quantity, trailing.callback_rate)
        elif targets.take_profit is not None:
            self.order_book.place_limit(position_side, targets.take_profit, quantity)
        if targets.stop_loss is not None:
            self.order_book.place_limit(position_side, targets.stop_loss, quantity)

    def test_period(self) -> str:
        start = min(self.config.warmup_bars, len(self.bars) - 1)
        if start < 0:
            return ""
        fmt = "%Y-%m-%d %H:%M:%S"
        return f"{self.bars[start].open_time.strftime(fmt)} to {self.bars[-1].close_time.strftime(fmt)}"

    def result(self) -> BacktestResult:
        """Report of the bars processed so far."""
        report = build_report(
            self.stats,
            self.wallet.total_wallet_balance,
            total_bars=len(self.equity_curve),
            test_period=self.test_period(),
        )
        return BacktestResult(
            report=report,
            statistics=self.stats,
            fills=list(self.execution.fills),
            equity_curve=list(self.equity_curve),
            dead=self.dead,
        )

    def snapshot(self) -> Dict[str, Any]:
        """JSON-serialisable state to resume the run from `next_index`."""
        return {
            'pair': self.config.pair,
            'next_index': self.next_index,
            'dead': self.dead,
            'wallet': self.wallet.to_dict(),
            'order_book': self.order_book.to_dict(),
            'statistics': self.stats.to_dict(),
            'hold_counter': self.counter.value,
            'equity_curve': [{'timestamp': p.timestamp.isoformat(), 'equity': p.equity} for p in self.equity_curve],
            'fills': [f.to_dict() for f in self.execution.fills],
        }

    def restore(self, state: Dict[str, Any]) -> None:
        """Load a state produced by `snapshot()`.

        Raises
        ------
        ValueError
            If the state belongs to another pair.
        """
        if state['pair'] != self.config.pair:
            raise ValueError(f"Snapshot of {state['pair']} cannot be restored into a {self.config.pair} engine")
        self.next_index = int(state['next_index'])
        self.dead = bool(state['dead'])
        self.ledger.wallet = Wallet.from_dict(state['wallet'])
        self.order_book = OrderBook.from_dict(state['order_book'])
        self.stats = StrategyStatistics.from_dict(state['statistics'])
        self.execution.stats = self.stats
        self.execution.fills = [Fill.from_dict(f) for f in state['fills']]
        self.counter.value = state['hold_counter']
        self.equity_curve = [
            EquityPoint(timestamp=pd.Timestamp(p['timestamp']), equity=float(p['equity']))
            for p in state['equity_curve']
        ]
