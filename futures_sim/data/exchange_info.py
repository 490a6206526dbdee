"""
Exchange precision metadata.

The exchange publishes, for every pair, how many decimals its prices and
quantities may have and the minimum order quantity.  The simulation reads
these values once from a YAML (or JSON) file shaped like::

    BTCUSDT:
      price_precision: 2
      quantity_precision: 3
      min_quantity: 0.001

They are only used by the risk sizing and exit helpers to round their
outputs; the execution engine never looks at them.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict
import yaml


@dataclass(frozen=True)
class PrecisionInfo:
    """Tick and lot size of one pair, expressed as decimal places."""
    price_precision: int = 2
    quantity_precision: int = 3
    min_quantity: float = 0.0


def load_exchange_info(path: str) -> Dict[str, PrecisionInfo]:
    """Load the precision metadata of every pair listed in `path`.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    ValueError
        If the file is not a mapping of pair to precision fields.
    """
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"Exchange info file not found: {file_path}")
    with file_path.open("r", encoding="utf-8") as fh:
        raw: Any = yaml.safe_load(fh) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Exchange info must map pairs to precision fields, got {type(raw).__name__}")

    info: Dict[str, PrecisionInfo] = {}
    for pair, fields in raw.items():
        fields = fields or {}
        info[str(pair).upper()] = PrecisionInfo(
            price_precision=int(fields.get('price_precision', 2)),
            quantity_precision=int(fields.get('quantity_precision', 3)),
            min_quantity=float(fields.get('min_quantity', 0.0)),
        )
    return info


def get_precision(info: Dict[str, PrecisionInfo], pair: str) -> PrecisionInfo:
    """Return the metadata of `pair`.

    Raises
    ------
    KeyError
        If the pair is not listed.
    """
    try:
        return info[pair.upper()]
    except KeyError:
        raise KeyError(f"No exchange precision information for {pair}") from None
