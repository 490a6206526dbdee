"""
State persistence utilities.

A simulation can be paused and resumed: its state (wallet, position,
resting orders, statistics) is a plain dictionary written to and read
from JSON with `save_state` / `load_state`.  `HistoryRecorder` keeps an
optional per-bar audit trail of the wallet keyed by bar time.
"""

from __future__ import annotations

import copy
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional
import pandas as pd


logger = logging.getLogger(__name__)


def load_state(path: str) -> Optional[Dict[str, Any]]:
    """Load a JSON state file.

    Parameters
    ----------
    path : str
        Path to the JSON file.

    Returns
    -------
    dict or None
        The state dictionary if the file exists, otherwise `None`.
    """
    file_path = Path(path)
    if not file_path.exists():
        return None
    with file_path.open("r", encoding="utf-8") as fh:
        return json.load(fh)


def save_state(path: str, state: Dict[str, Any]) -> None:
    """Write a JSON state file to disk.

    Parameters
    ----------
    path : str
        Path to the output file.
    state : dict
        Arbitrary state dictionary.  Must be serialisable to JSON.
    """
    file_path = Path(path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    with file_path.open("w", encoding="utf-8") as fh:
        json.dump(state, fh, ensure_ascii=False, indent=2, sort_keys=True)


class HistoryRecorder:
    """Collect wallet snapshots keyed by bar time.

    Recording copies the snapshot, so later mutations of the wallet do not
    leak into the history.  Nothing is written until `flush()`.
    """

    def __init__(self, path: str) -> None:
        self.path = path
        self.history: Dict[str, Dict[str, Any]] = {}

    def record(self, ts: pd.Timestamp, wallet: Dict[str, Any]) -> None:
        self.history[ts.strftime("%Y-%m-%d %H:%M")] = {'futures_wallet': copy.deepcopy(wallet)}

    def flush(self) -> None:
        save_state(self.path, self.history)
        logger.info("Saved %s history entries to %s", len(self.history), self.path)
