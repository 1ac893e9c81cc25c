"""ORACLE strategies: deterministic test-only strategies for validation and baselines"""
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from replay_core.data.bars import Bar, BarSeries, parse_bar_timestamp
from replay_core.portfolio.state import PortfolioSnapshot
from replay_core.strategies.base import BUY, SELL, SIDES, Signal

ORACLE_MODES = ('always_long', 'flat', 'random', 'scripted')


class OracleStrategy:
    """
    Validation strategies that bypass any market logic.

    Modes:
    - always_long: buy on the first bar seen, sell on `last_ts` (Buy & Hold)
    - flat: never trade
    - random: seeded coin flips; 10% chance per bar to enter when flat or to
      exit when holding
    - scripted: emit the side mapped to the bar timestamp in `script`
    """

    def __init__(
        self,
        mode: str,
        symbol: str,
        seed: int = 42,
        last_ts: Optional[pd.Timestamp] = None,
        script: Optional[Dict] = None,
        entry_probability: float = 0.1,
    ):
        if mode not in ORACLE_MODES:
            raise ValueError(f"Unknown oracle mode {mode!r}; expected one of {ORACLE_MODES}")
        self.mode = mode
        self.symbol = symbol
        self.last_ts = parse_bar_timestamp(last_ts) if last_ts is not None else None
        self.entry_probability = entry_probability
        # Per-instance generator so parallel runs stay independent
        self._rng = np.random.default_rng(seed)
        self._entered = False
        self._script: Dict[pd.Timestamp, str] = {}
        for ts, side in (script or {}).items():
            if side not in SIDES:
                raise ValueError(f"Scripted side must be one of {SIDES}, got {side!r}")
            self._script[parse_bar_timestamp(ts)] = side

    def generate_signals(self, current_bar: Bar, history: BarSeries, portfolio: PortfolioSnapshot) -> List[Signal]:
        if self.mode == 'flat':
            return []
        if self.mode == 'always_long':
            return self._always_long(current_bar)
        if self.mode == 'random':
            return self._random(current_bar, portfolio)
        side = self._script.get(current_bar.ts)
        return [Signal(self.symbol, side, current_bar.close)] if side else []

    def _always_long(self, bar: Bar) -> List[Signal]:
        if not self._entered:
            self._entered = True
            return [Signal(self.symbol, BUY, bar.close)]
        if self.last_ts is not None and bar.ts >= self.last_ts:
            return [Signal(self.symbol, SELL, bar.close)]
        return []

    def _random(self, bar: Bar, portfolio: PortfolioSnapshot) -> List[Signal]:
        if self._rng.random() >= self.entry_probability:
            return []
        side = SELL if portfolio.has_position(self.symbol) else BUY
        return [Signal(self.symbol, side, bar.close)]
