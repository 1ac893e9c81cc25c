"""Parameter sweep harness: one independent engine per parameter combination"""
import itertools
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from replay_core.config.params_loader import ParamsLoader, dotted_to_nested
from replay_core.data.bars import BarSeries
from replay_core.engine import BacktestEngine
from replay_core.strategies.registry import strategy_from_params


@dataclass(frozen=True)
class SweepResult:
    items: List[Dict[str, Any]]  # {'params': combo, 'report': RunReport}, grid order

    def best(self, metric: str = 'total_profit') -> Optional[Dict[str, Any]]:
        if not self.items:
            return None
        return max(self.items, key=lambda item: getattr(item['report'], metric))


def expand_grid(grid: Mapping[str, Sequence[Any]]) -> List[Dict[str, Any]]:
    """{'a': [1, 2], 'b': [3]} -> [{'a': 1, 'b': 3}, {'a': 2, 'b': 3}]"""
    keys = list(grid.keys())
    return [dict(zip(keys, values)) for values in itertools.product(*(grid[k] for k in keys))]


def run_sweep(
    bars: BarSeries,
    grid: Mapping[str, Sequence[Any]],
    params: Optional[ParamsLoader] = None,
    strategy_factory: Optional[Callable[[ParamsLoader], Any]] = None,
    max_workers: Optional[int] = None,
) -> SweepResult:
    """
    Run one backtest per combination of dotted-path overrides, e.g.
    {'execution.risk_fraction': [0.01, 0.05], 'strategy.period': [10, 20]}.

    Each run gets its own params, strategy instance, ledger and tracker; the
    bar series is read-only and shared.
    """
    base = params if params is not None else ParamsLoader()
    combos = expand_grid(grid)

    def run_one(combo: Dict[str, Any]) -> Dict[str, Any]:
        run_params = base.with_overrides(dotted_to_nested(combo))
        if strategy_factory is not None:
            strategy = strategy_factory(run_params)
        else:
            strategy = strategy_from_params(run_params, bars.symbol, last_ts=bars.end)
        engine = BacktestEngine(bars, strategy, params=run_params)
        return {'params': combo, 'report': engine.run()}

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        items = list(executor.map(run_one, combos))
    return SweepResult(items=items)
