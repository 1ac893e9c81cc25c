"""Running peak equity and maximum drawdown"""
from typing import Dict, List, Optional

import pandas as pd


class PerformanceTracker:
    """
    Observes cash-only equity after every processed signal.

    Equity excludes open positions, so drawdown only moves when
    cash does. The equity curve can carry a marked-to-close value alongside,
    for information only.
    """

    def __init__(self, initial_equity: float):
        self.initial_equity = initial_equity
        self.max_equity = initial_equity
        self.max_drawdown = 0.0  # percent
        self.last_drawdown = 0.0
        self.equity_curve: List[Dict] = []

    def observe(self, equity: float, ts: Optional[pd.Timestamp] = None, marked_equity: Optional[float] = None) -> float:
        """Update trackers with a new equity value; returns the current drawdown %"""
        if equity > self.max_equity:
            self.max_equity = equity

        if self.max_equity > 0:
            drawdown = (self.max_equity - equity) / self.max_equity * 100
        else:
            drawdown = 0.0

        if drawdown > self.max_drawdown:
            self.max_drawdown = drawdown
        self.last_drawdown = drawdown

        self.equity_curve.append({
            'ts': ts,
            'equity': equity,
            'max_equity': self.max_equity,
            'drawdown_pct': drawdown,
            'marked_equity': marked_equity,
        })
        return drawdown

    def equity_frame(self) -> pd.DataFrame:
        if not self.equity_curve:
            return pd.DataFrame(columns=['ts', 'equity', 'max_equity', 'drawdown_pct', 'marked_equity'])
        return pd.DataFrame(self.equity_curve)
