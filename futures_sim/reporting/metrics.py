"""
Strategy statistics and performance report.

`StrategyStatistics` accumulates trade counts, profit and loss sums,
fees, drawdown watermarks and consecutive win/loss streaks while the
simulation runs.  `build_report()` turns the final statistics into the
strategy report; ratios whose denominator is zero are reported as NaN
rather than raising, so callers scoring a strategy must treat non-finite
values as "goal not met".
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional
import math

from ..config.schema import GoalsConfig
from ..execution.models import PositionSide
from ..utils.precision import decimal_ceil, decimal_floor


def _ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator else float('nan')


def _floor2(value: float) -> float:
    return decimal_floor(value, 2) if math.isfinite(value) else value


@dataclass
class StrategyStatistics:
    """Running statistics of one simulated strategy.

    `total_loss` and `max_loss` are stored as positive magnitudes.  The
    `consecutive_*` fields hold the live streak, the `max_consecutive_*`
    fields the best streak already closed by an opposite result.
    """
    initial_capital: float
    total_trades: int = 0
    long_trades: int = 0
    short_trades: int = 0
    long_winning_trades: int = 0
    long_lost_trades: int = 0
    short_winning_trades: int = 0
    short_lost_trades: int = 0
    total_profit: float = 0.0
    total_loss: float = 0.0
    total_fees: float = 0.0
    max_profit: float = 0.0
    max_loss: float = 0.0
    max_balance: Optional[float] = None
    max_absolute_drawdown: float = 1.0
    max_relative_drawdown: float = 0.0
    consecutive_wins_count: int = 0
    consecutive_losses_count: int = 0
    consecutive_profit: float = 0.0
    consecutive_loss: float = 0.0
    max_consecutive_wins_count: int = 0
    max_consecutive_losses_count: int = 0
    max_consecutive_profit: float = 0.0
    max_consecutive_loss: float = 0.0

    def __post_init__(self) -> None:
        if self.max_balance is None:
            self.max_balance = self.initial_capital

    @property
    def winning_trades(self) -> int:
        return self.long_winning_trades + self.short_winning_trades

    @property
    def lost_trades(self) -> int:
        return self.long_lost_trades + self.short_lost_trades

    def record_open(self, side: PositionSide) -> None:
        """Count a new trade, i.e. a position opened from flat."""
        self.total_trades += 1
        if side is PositionSide.LONG:
            self.long_trades += 1
        else:
            self.short_trades += 1

    def record_fee(self, fee: float) -> None:
        self.total_fees += fee

    def record_outcome(self, side: PositionSide, won: bool) -> None:
        """Attribute a closing fill of a `side` position as won or lost."""
        if side is PositionSide.LONG:
            if won:
                self.long_winning_trades += 1
            else:
                self.long_lost_trades += 1
        elif won:
            self.short_winning_trades += 1
        else:
            self.short_lost_trades += 1

    def record_pnl(self, pnl: float) -> None:
        """Update the profit/loss sums and streaks with a realized pnl."""
        if pnl > 0:
            self.total_profit += pnl
            self.consecutive_wins_count += 1
            self.consecutive_profit += pnl
            self.max_consecutive_losses_count = max(self.max_consecutive_losses_count, self.consecutive_losses_count)
            self.max_consecutive_loss = max(self.max_consecutive_loss, self.consecutive_loss)
            self.consecutive_losses_count = 0
            self.consecutive_loss = 0.0
            self.max_profit = max(self.max_profit, pnl)
        elif pnl < 0:
            self.total_loss += -pnl
            self.consecutive_losses_count += 1
            self.consecutive_loss += -pnl
            self.max_consecutive_wins_count = max(self.max_consecutive_wins_count, self.consecutive_wins_count)
            self.max_consecutive_profit = max(self.max_consecutive_profit, self.consecutive_profit)
            self.consecutive_wins_count = 0
            self.consecutive_profit = 0.0
            self.max_loss = max(self.max_loss, -pnl)

    def update_drawdown(self, balance: float) -> None:
        """Update the balance peak and the worst drawdowns seen so far."""
        if balance > self.max_balance:
            self.max_balance = balance
        absolute = balance / self.max_balance
        if absolute < self.max_absolute_drawdown:
            self.max_absolute_drawdown = absolute
        relative = (balance - self.max_balance) / self.max_balance
        if relative < self.max_relative_drawdown:
            self.max_relative_drawdown = relative

    def win_rate(self) -> float:
        return _ratio(self.winning_trades, self.total_trades)

    def profit_ratio(self) -> float:
        return _ratio(self.total_profit, self.total_loss + self.total_fees)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StrategyStatistics":
        return cls(**data)


def build_report(
    stats: StrategyStatistics,
    final_balance: float,
    total_bars: int,
    test_period: str = "",
) -> Dict[str, Any]:
    """Compute the final strategy report.

    Monetary values are floored to cents, drawdowns and win rates are in
    percent.  Undefined ratios are NaN.

    Parameters
    ----------
    stats : StrategyStatistics
        Statistics at the end of the run.  They are not modified.
    final_balance : float
        Total wallet balance at the end of the run.
    total_bars : int
        Number of bars the strategy was evaluated on.
    test_period : str
        Human readable description of the period.

    Returns
    -------
    dict
        Dictionary of report fields.
    """
    max_wins_count = max(stats.max_consecutive_wins_count, stats.consecutive_wins_count)
    max_losses_count = max(stats.max_consecutive_losses_count, stats.consecutive_losses_count)
    max_consecutive_profit = max(stats.max_consecutive_profit, stats.consecutive_profit)
    max_consecutive_loss = max(stats.max_consecutive_loss, stats.consecutive_loss)

    return {
        'test_period': test_period,
        'total_bars': total_bars,
        'initial_capital': stats.initial_capital,
        'final_capital': _floor2(final_balance),
        'total_net_profit': _floor2(final_balance - stats.initial_capital),
        'total_profit': _floor2(stats.total_profit),
        'total_loss': -_floor2(stats.total_loss),
        'total_fees': -_floor2(stats.total_fees),
        'profit_factor': _floor2(stats.profit_ratio()),
        'max_absolute_drawdown': -_floor2((1 - stats.max_absolute_drawdown) * 100),
        'max_relative_drawdown': decimal_ceil(stats.max_relative_drawdown * 100, 2),
        'total_trades': stats.total_trades,
        'total_long_trades': stats.long_trades,
        'total_short_trades': stats.short_trades,
        'long_winning_trades': stats.long_winning_trades,
        'long_lost_trades': stats.long_lost_trades,
        'short_winning_trades': stats.short_winning_trades,
        'short_lost_trades': stats.short_lost_trades,
        'total_win_rate': _floor2(stats.win_rate() * 100),
        'long_win_rate': _floor2(_ratio(stats.long_winning_trades, stats.long_trades) * 100),
        'short_win_rate': _floor2(_ratio(stats.short_winning_trades, stats.short_trades) * 100),
        'max_profit': _floor2(stats.max_profit),
        'max_loss': -_floor2(stats.max_loss),
        'avg_profit': _floor2(_ratio(stats.total_profit, stats.winning_trades)),
        'avg_loss': -_floor2(_ratio(stats.total_loss, stats.lost_trades)),
        'max_consecutive_profit': _floor2(max_consecutive_profit),
        'max_consecutive_loss': -_floor2(max_consecutive_loss),
        'max_consecutive_wins_count': max_wins_count,
        'max_consecutive_losses_count': max_losses_count,
    }


def meets_goals(stats: StrategyStatistics, goals: GoalsConfig) -> bool:
    """Check the statistics against the configured goals.

    Win rate and profit ratio are fractions (``0.5`` = 50 %); the max
    relative drawdown goal is a negative fraction (``-0.3`` = -30 %).  A
    ratio that cannot be computed never meets its goal.
    """
    if goals.win_rate is not None:
        win_rate = stats.win_rate()
        if not math.isfinite(win_rate) or win_rate < goals.win_rate:
            return False
    if goals.profit_ratio is not None:
        profit_ratio = stats.profit_ratio()
        if not math.isfinite(profit_ratio) or profit_ratio < goals.profit_ratio:
            return False
    if goals.max_relative_drawdown is not None and stats.max_relative_drawdown < goals.max_relative_drawdown:
        return False
    return True
