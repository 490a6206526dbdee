"""
Configuration schema and loader.

This module defines dataclasses that mirror the expected structure of
the YAML configuration file (`config.yaml`).  A helper function
`load_config()` reads a YAML file from disk and returns an instance
of `Config` populated with reasonable defaults for any missing
fields.

The dataclasses are frozen: a configuration is built once before the
run and handed to the engine, which never mutates it or reads settings
from anywhere else.  Use `dataclasses.replace()` to derive variants.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple
import yaml

from ..utils.timeutils import parse_time_str


@dataclass(frozen=True)
class SessionConfig:
    """Defines one trading session window.

    Attributes
    ----------
    start : str
        Start time in `HH:MM` 24-hour format, interpreted in the timezone
        specified by `data.timezone`.
    end : str
        End time in `HH:MM` format.  The end is exclusive.
    day : int, optional
        Day of week the window applies to (0 = Sunday ... 6 = Saturday).
        `None` means every day.
    """

    start: str = "00:00"
    end: str = "23:59"
    day: Optional[int] = None


@dataclass(frozen=True)
class FeesConfig:
    """Exchange fee schedule.

    Attributes
    ----------
    taker_pct : float
        Fee rate in percent applied to market fills (``0.04`` = 0.04 %).
    maker_pct : float
        Fee rate in percent applied to resting limit and trailing fills.
    """

    taker_pct: float = 0.04
    maker_pct: float = 0.02

    @property
    def taker_rate(self) -> float:
        return self.taker_pct / 100

    @property
    def maker_rate(self) -> float:
        return self.maker_pct / 100


@dataclass(frozen=True)
class DecisionConfig:
    """How the strategy module's score vector is turned into an action.

    Attributes
    ----------
    mode : str
        ``buy_sell_close`` (third score closes the position) or
        ``buy_sell_wait`` (third score means do nothing).
    threshold : float
        A winning score must be strictly greater than this value.
    min_close_move : float
        Minimum relative distance between the price and the entry price
        before a close signal is honoured (``0.01`` = 1 %).
    """

    mode: str = "buy_sell_close"
    threshold: float = 0.6
    min_close_move: float = 0.01


@dataclass(frozen=True)
class ExitConfig:
    """Placement of take profit and stop loss on new positions.

    `kind` is one of ``none``, ``basic`` (fixed fractions of the entry
    price) or ``atr`` (multiples of the average true range).
    """

    kind: str = "none"
    profit_target: float = 0.02
    loss_tolerance: float = 0.01
    atr_period: int = 10
    atr_multiplier: float = 2.0
    take_profit_atr_ratio: float = 2.0
    stop_loss_atr_ratio: float = 1.0


@dataclass(frozen=True)
class RiskManagementConfig:
    """Position sizing method: ``percent`` or ``stop_loss``."""

    kind: str = "percent"


@dataclass(frozen=True)
class TrailingStopConfig:
    """Trailing stop placed instead of the take profit limit order.

    Attributes
    ----------
    percentage_to_tp : float, optional
        The stop activates once price has covered this fraction (0 to 1)
        of the distance to the take profit.
    change_percentage : float, optional
        The stop activates once price has moved this fraction in the
        favourable direction.  Used when `percentage_to_tp` is not set.
    callback_rate : float
        Retrace (0 to 1) from the bar open that triggers the stop once
        active.
    """

    percentage_to_tp: Optional[float] = None
    change_percentage: Optional[float] = None
    callback_rate: float = 0.01


@dataclass(frozen=True)
class TrendFilterConfig:
    """Trend filter: ``none`` or ``ema`` over `period` closes."""

    kind: str = "none"
    period: int = 200


@dataclass(frozen=True)
class GoalsConfig:
    """Thresholds a strategy must meet to be considered acceptable."""

    win_rate: Optional[float] = None
    profit_ratio: Optional[float] = None
    max_relative_drawdown: Optional[float] = None


@dataclass(frozen=True)
class DataConfig:
    """Data source configuration.

    Attributes
    ----------
    csv_dir : str
        Directory containing one sub-directory per pair with
        ``_{interval}.csv`` files.
    exchange_info : str
        YAML or JSON file with price/quantity precision per pair.
    timezone : str
        IANA timezone used for the trading sessions.
    start, end : str, optional
        Bounds of the backtest period (ISO timestamps, exclusive).
    """

    csv_dir: str = "data"
    exchange_info: str = "exchange_info.yaml"
    timezone: str = "UTC"
    start: Optional[str] = None
    end: Optional[str] = None


@dataclass(frozen=True)
class ReportConfig:
    """Where the run artefacts and the optional history go."""

    out_dir: str = "results"
    save_history: bool = False
    history_path: str = "temp/history.json"


@dataclass(frozen=True)
class Config:
    """Root configuration for one simulated pair.

    Attributes
    ----------
    asset, base : str
        The traded pair is ``asset + base`` (e.g. ``BTCUSDT``).
    interval : str
        Bar timeframe (e.g. ``15m``).
    leverage : int
        Leverage applied to the position for the whole run.
    risk : float
        Fraction of the available balance handed to the risk sizing.
    initial_capital : float
        Starting wallet balance in the base currency.
    max_trade_duration : int, optional
        Maximum number of bars a position may stay open.
    warmup_bars : int
        Bars skipped at the start of the series so indicators are ready.
    window_bars : int
        Number of recent bars handed to the trend filter and exit
        strategy.
    can_open_new_position_to_close_last : bool
        Allow an opposite signal to reverse an open position.
    sessions : tuple of SessionConfig
        Trading session windows.  Empty means always active.
    """

    asset: str = "BTC"
    base: str = "USDT"
    interval: str = "15m"
    leverage: int = 1
    risk: float = 0.01
    initial_capital: float = 1000.0
    max_trade_duration: Optional[int] = None
    warmup_bars: int = 150
    window_bars: int = 150
    can_open_new_position_to_close_last: bool = False
    sessions: Tuple[SessionConfig, ...] = ()
    fees: FeesConfig = field(default_factory=FeesConfig)
    decision: DecisionConfig = field(default_factory=DecisionConfig)
    exit: ExitConfig = field(default_factory=ExitConfig)
    risk_management: RiskManagementConfig = field(default_factory=RiskManagementConfig)
    trailing_stop: Optional[TrailingStopConfig] = None
    trend_filter: TrendFilterConfig = field(default_factory=TrendFilterConfig)
    goals: GoalsConfig = field(default_factory=GoalsConfig)
    data: DataConfig = field(default_factory=DataConfig)
    report: ReportConfig = field(default_factory=ReportConfig)

    @property
    def pair(self) -> str:
        return self.asset + self.base


def _merge_dict(defaults: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge two dictionaries.

    The values in `override` take precedence over those in `defaults`.
    This helper is used when loading YAML into nested dataclasses.
    """
    result: Dict[str, Any] = defaults.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _merge_dict(result[key], value)
        else:
            result[key] = value
    return result


def _build_trailing_stop(raw: Optional[Dict[str, Any]]) -> Optional[TrailingStopConfig]:
    if not raw:
        return None
    activation = raw.get('activation') or {}
    return TrailingStopConfig(
        percentage_to_tp=activation.get('percentage_to_tp'),
        change_percentage=activation.get('change_percentage'),
        callback_rate=float(raw.get('callback_rate', 0.01)),
    )


def config_from_dict(raw: Dict[str, Any]) -> Config:
    """Build a `Config` from a plain dictionary (e.g. parsed YAML)."""
    defaults: Dict[str, Any] = {
        'asset': "BTC",
        'base': "USDT",
        'interval': "15m",
        'leverage': 1,
        'risk': 0.01,
        'initial_capital': 1000.0,
        'max_trade_duration': None,
        'warmup_bars': 150,
        'window_bars': 150,
        'can_open_new_position_to_close_last': False,
        'sessions': [],
        'fees': {
            'taker_pct': 0.04,
            'maker_pct': 0.02,
        },
        'decision': {
            'mode': 'buy_sell_close',
            'threshold': 0.6,
            'min_close_move': 0.01,
        },
        'exit': {
            'kind': 'none',
        },
        'risk_management': {
            'kind': 'percent',
        },
        'trailing_stop': None,
        'trend_filter': {
            'kind': 'none',
            'period': 200,
        },
        'goals': {},
        'data': {
            'csv_dir': 'data',
            'exchange_info': 'exchange_info.yaml',
            'timezone': 'UTC',
        },
        'report': {
            'out_dir': 'results',
            'save_history': False,
            'history_path': 'temp/history.json',
        },
    }

    merged = _merge_dict(defaults, raw)

    sessions = tuple(SessionConfig(**s) for s in merged['sessions'] or [])
    for session in sessions:
        parse_time_str(session.start)
        parse_time_str(session.end)

    max_duration = merged.get('max_trade_duration')
    cfg = Config(
        asset=str(merged['asset']).upper(),
        base=str(merged['base']).upper(),
        interval=str(merged['interval']),
        leverage=int(merged['leverage']),
        risk=float(merged['risk']),
        initial_capital=float(merged['initial_capital']),
        max_trade_duration=int(max_duration) if max_duration else None,
        warmup_bars=int(merged['warmup_bars']),
        window_bars=int(merged['window_bars']),
        can_open_new_position_to_close_last=bool(merged['can_open_new_position_to_close_last']),
        sessions=sessions,
        fees=FeesConfig(**merged['fees']),
        decision=DecisionConfig(**merged['decision']),
        exit=ExitConfig(**merged['exit']),
        risk_management=RiskManagementConfig(**merged['risk_management']),
        trailing_stop=_build_trailing_stop(merged['trailing_stop']),
        trend_filter=TrendFilterConfig(**merged['trend_filter']),
        goals=GoalsConfig(**merged['goals']),
        data=DataConfig(**merged['data']),
        report=ReportConfig(**merged['report']),
    )
    return cfg


def load_config(path: str) -> Config:
    """Load a configuration file from the given YAML path.

    Parameters
    ----------
    path : str
        Path to the YAML file.

    Returns
    -------
    Config
        A populated configuration object.  Missing fields are filled with
        sensible defaults defined in the dataclasses.
    """
    with open(path, "r", encoding="utf-8") as fh:
        raw: Dict[str, Any] = yaml.safe_load(fh) or {}
    return config_from_dict(raw)
