"""
Application entry point.

This module defines a simple command-line interface for running a
backtest of the configured futures pair.  It loads the configuration,
the candles and the exchange precision metadata, runs the simulation and
generates the report artefacts.
"""

from __future__ import annotations

import argparse
import logging
from typing import List, Optional

from .config.schema import load_config
from .data.csv_data import CSVDataLoader
from .data.exchange_info import get_precision, load_exchange_info
from .execution.backtest_exec import BacktestEngine
from .reporting.metrics import meets_goals
from .reporting.report import format_report, generate_backtest_report
from .strategy.modules import RsiDecisionModule
from .utils.persistence import HistoryRecorder, load_state, save_state


def _setup_logging(verbose: bool) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )


def main(argv: Optional[List[str]] = None) -> None:
    """Parse command-line arguments and run the backtest."""
    parser = argparse.ArgumentParser(description="Leveraged futures backtest simulator")
    parser.add_argument('mode', choices=['backtest'], help="Operating mode")
    parser.add_argument('--config', default='config.yaml', help="Path to configuration YAML file")
    parser.add_argument('-v', '--verbose', action='store_true', help="Enable debug logging")
    parser.add_argument('--out', default=None, help="Output directory (overrides report.out_dir)")
    parser.add_argument('--resume', default=None, help="Engine state JSON to resume from")
    parser.add_argument('--save-state', default=None, help="Write the final engine state to this JSON file")
    args = parser.parse_args(argv)

    _setup_logging(args.verbose)

    config = load_config(args.config)
    out_dir = args.out or config.report.out_dir

    logging.info("Loading %s %s candles from %s", config.pair, config.interval, config.data.csv_dir)
    bars = CSVDataLoader(config.data.csv_dir).load(
        config.pair,
        config.interval,
        start=config.data.start,
        end=config.data.end,
    )
    precision = get_precision(load_exchange_info(config.data.exchange_info), config.pair)
    history = HistoryRecorder(config.report.history_path) if config.report.save_history else None

    engine = BacktestEngine.from_config(config, bars, precision, RsiDecisionModule(), history=history)
    if args.resume:
        state = load_state(args.resume)
        if state is None:
            raise FileNotFoundError(f"State file not found: {args.resume}")
        engine.restore(state)
        logging.info("Resuming %s from bar %s", config.pair, engine.next_index)

    logging.info("Running backtest on %s bars...", len(bars))
    result = engine.run()
    generate_backtest_report(result, out_dir=out_dir)
    if args.save_state:
        save_state(args.save_state, engine.snapshot())

    logging.info("Strategy report:\n%s", format_report(result.report))
    if meets_goals(result.statistics, config.goals):
        logging.info("The strategy meets the configured goals.")
    else:
        logging.info("The strategy does not meet the configured goals.")
    logging.info("Backtest complete. Results saved to the '%s' directory.", out_dir)


if __name__ == '__main__':
    main()
