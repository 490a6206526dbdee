"""
Evaluate many strategies over the same bars.

Every `BacktestEngine` owns its ledger, statistics, order book and
counters, so a population of engines can be run concurrently in a thread
pool without any locking.  Results come back in the order of the input
engines regardless of completion order.

The engines are pure Python, so under the GIL the threads interleave
rather than run in parallel.  The pool only shortens wall time when the
decision modules spend their time in native code that releases the GIL
(numpy, an inference runtime); otherwise it is a convenience, not a
speedup.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import List, Optional, Sequence

from ..config.schema import GoalsConfig
from ..reporting.metrics import meets_goals
from .backtest_exec import BacktestEngine, BacktestResult


logger = logging.getLogger(__name__)


def evaluate_population(
    engines: Sequence[BacktestEngine],
    max_workers: Optional[int] = None,
) -> List[BacktestResult]:
    """Run every engine to the end of its bars.

    An exception raised by one engine (for example by its decision
    module) is re-raised once the pool has shut down.
    """
    results: List[Optional[BacktestResult]] = [None] * len(engines)
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = {executor.submit(engine.run): i for i, engine in enumerate(engines)}
        for future in as_completed(futures):
            index = futures[future]
            results[index] = future.result()
            logger.debug("Strategy %s finished: final capital %s", index, results[index].report['final_capital'])
    logger.info("Evaluated %s strategies", len(engines))
    return results


def select_successful(results: Sequence[BacktestResult], goals: GoalsConfig) -> List[int]:
    """Indexes of the results whose statistics meet `goals`."""
    return [i for i, result in enumerate(results) if meets_goals(result.statistics, goals)]
