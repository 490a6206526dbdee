"""
Report generation utilities.

This module turns backtest results into human-readable artefacts:
CSV files of fills and equity curve, a JSON summary of the strategy
report and a PNG chart of the equity curve.
"""

from __future__ import annotations

import os
import json
import math
from typing import Any, Dict
import pandas as pd
import matplotlib

# Use non-interactive backend for environments without display
matplotlib.use("Agg")
import matplotlib.pyplot as plt

from ..execution.backtest_exec import BacktestResult


def _json_safe(report: Dict[str, Any]) -> Dict[str, Any]:
    # NaN is not valid JSON
    return {
        key: None if isinstance(value, float) and not math.isfinite(value) else value
        for key, value in report.items()
    }


def format_report(report: Dict[str, Any]) -> str:
    """Render the report as aligned ``key: value`` lines for the console."""
    width = max((len(key) for key in report), default=0)
    return "\n".join(f"{key.replace('_', ' '):<{width}} : {value}" for key, value in report.items())


def generate_backtest_report(result: BacktestResult, out_dir: str = "results") -> None:
    """Generate report files for a backtest run.

    Creates the output directory if it does not exist and writes the
    following files:

    - `fills.csv` - every executed order
    - `equity_curve.csv` - wallet balance after each bar
    - `summary.json` - strategy report, undefined ratios as null
    - `equity_curve.png` - line chart of the equity curve
    """
    os.makedirs(out_dir, exist_ok=True)

    # Fills CSV
    df_fills = pd.DataFrame(
        [f.to_dict() for f in result.fills],
        columns=['time', 'pair', 'side', 'price', 'quantity', 'fee', 'pnl', 'reason'],
    )
    df_fills.to_csv(os.path.join(out_dir, 'fills.csv'), index=False)

    # Equity curve CSV
    df_eq = pd.DataFrame(
        [{'timestamp': pt.timestamp.isoformat(), 'equity': pt.equity} for pt in result.equity_curve],
        columns=['timestamp', 'equity'],
    )
    df_eq.to_csv(os.path.join(out_dir, 'equity_curve.csv'), index=False)

    # Summary JSON
    summary_path = os.path.join(out_dir, 'summary.json')
    with open(summary_path, 'w', encoding='utf-8') as fh:
        json.dump(_json_safe(result.report), fh, indent=2, ensure_ascii=False)

    # Equity curve plot
    fig, ax = plt.subplots(figsize=(10, 4))
    if not df_eq.empty:
        ax.plot(pd.to_datetime(df_eq['timestamp']), df_eq['equity'], linewidth=1.5)
        ax.set_title('Equity Curve')
        ax.set_xlabel('Time')
        ax.set_ylabel('Wallet balance')
        fig.autofmt_xdate()
    fig.tight_layout()
    fig.savefig(os.path.join(out_dir, 'equity_curve.png'))
    plt.close(fig)
