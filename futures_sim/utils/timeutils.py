"""
Timezone and trading session utilities.

This module centralises all timezone handling and session calculations.
The simulation uses these helpers to decide whether the current bar falls
within one of the permitted trading sessions.
"""

from __future__ import annotations

from datetime import time
from typing import Optional, Sequence
import pandas as pd


def parse_time_str(ts: str) -> time:
    """Parse a `HH:MM` string into a `datetime.time` object.

    Parameters
    ----------
    ts : str
        A string in 24-hour format such as ``"06:30"``.

    Returns
    -------
    datetime.time
        The corresponding time.

    Raises
    ------
    ValueError
        If the string is not a valid `HH:MM` time.
    """
    try:
        hour, minute = map(int, ts.split(":"))
        return time(hour=hour, minute=minute)
    except (AttributeError, ValueError) as exc:
        raise ValueError(f"Invalid session time {ts!r}, expected HH:MM") from exc


def to_timezone(ts: pd.Timestamp, tz_name: str) -> pd.Timestamp:
    """Convert a `pandas.Timestamp` to the specified timezone.

    If the timestamp is naive, it is assumed to be in UTC before
    conversion.  If it already has a timezone, it will be converted.
    """
    if not isinstance(ts, pd.Timestamp):
        ts = pd.Timestamp(ts)
    if ts.tzinfo is None:
        ts = ts.tz_localize("UTC")
    return ts.tz_convert(tz_name)


def sunday_based_weekday(ts: pd.Timestamp) -> int:
    """Day of week with 0 for Sunday and 6 for Saturday."""
    return (ts.weekday() + 1) % 7


def is_in_session(
    ts: pd.Timestamp,
    session_start: time,
    session_end: time,
    tz_name: str,
    day: Optional[int] = None,
) -> bool:
    """Check whether `ts` is within a single trading session.

    The timestamp is converted to the given timezone and its time
    component is compared to the start and end times.  The end time
    is exclusive: the bar whose close time equals the session end is
    considered outside the session.  When `day` is given the session only
    applies to that day of week (0 = Sunday).
    """
    local_ts = to_timezone(ts, tz_name)
    if day is not None and sunday_based_weekday(local_ts) != day:
        return False
    current_time = local_ts.time()
    return session_start <= current_time < session_end


def is_trading_session_active(ts: pd.Timestamp, sessions: Sequence, tz_name: str) -> bool:
    """Return `True` when `ts` falls into any of `sessions`.

    Each session exposes `start`, `end` (``HH:MM`` strings) and an
    optional `day`.  An empty sequence means trading is always allowed.
    """
    if not sessions:
        return True
    return any(
        is_in_session(ts, parse_time_str(s.start), parse_time_str(s.end), tz_name, s.day)
        for s in sessions
    )
