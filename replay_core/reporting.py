"""Run summary statistics and report artifacts (JSON/CSV/JSONL)"""
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from replay_core.execution.simulator import TradeRecord
from replay_core.strategies.base import SELL

TRADE_COLUMNS = [
    'symbol', 'side', 'quantity', 'open_price', 'open_ts',
    'close_price', 'close_ts', 'profit', 'position_id'
]


def risk_ratio(profits: Sequence[float], risk_free_rate: float = 0.02) -> float:
    """
    Sharpe-style ratio over raw per-fill profits: (mean - rf) / sample std.

    Works in currency units per trade and is not annualized, so it only
    compares runs against each other. Returns 0.0 with fewer than two
    observations or zero dispersion.
    """
    values = np.asarray(profits, dtype=float)
    if values.size < 2:
        return 0.0
    std = float(values.std(ddof=1))
    if std == 0.0 or not np.isfinite(std):
        return 0.0
    return (float(values.mean()) - risk_free_rate) / std


@dataclass(frozen=True)
class RunReport:
    """Summary of one replay. average_profit is None when there were no fills."""
    total_trades: int
    profitable_trades: int
    unprofitable_trades: int
    total_profit: float
    average_profit: Optional[float]
    max_drawdown: float  # percent
    risk_ratio: float
    start_date: Optional[pd.Timestamp]
    end_date: Optional[pd.Timestamp]
    trade_log: Tuple[TradeRecord, ...]
    interval: str = '1d'
    initial_capital: float = 0.0
    final_cash: float = 0.0
    open_positions: int = 0
    bars_processed: int = 0
    skipped_bars: int = 0
    rejected_signals: Mapping[str, int] = field(default_factory=dict)
    stopped_early: bool = False

    @property
    def has_trades(self) -> bool:
        return self.total_trades > 0

    @property
    def win_rate(self) -> Optional[float]:
        closed = self.profitable_trades + self.unprofitable_trades
        if closed == 0:
            return None
        return self.profitable_trades / closed

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready dict; timestamps as ISO strings"""
        return {
            'total_trades': self.total_trades,
            'profitable_trades': self.profitable_trades,
            'unprofitable_trades': self.unprofitable_trades,
            'total_profit': self.total_profit,
            'average_profit': self.average_profit,
            'win_rate': self.win_rate,
            'max_drawdown': self.max_drawdown,
            'risk_ratio': self.risk_ratio,
            'start_date': _iso(self.start_date),
            'end_date': _iso(self.end_date),
            'interval': self.interval,
            'initial_capital': self.initial_capital,
            'final_cash': self.final_cash,
            'open_positions': self.open_positions,
            'bars_processed': self.bars_processed,
            'skipped_bars': self.skipped_bars,
            'rejected_signals': dict(self.rejected_signals),
            'stopped_early': self.stopped_early,
            'trade_log': [record.to_dict() for record in self.trade_log],
        }


class ResultAggregator:
    """Builds a RunReport from the trade log. Pure: same inputs, same report."""

    def __init__(self, risk_free_rate: float = 0.02):
        self.risk_free_rate = risk_free_rate

    def aggregate(
        self,
        trade_log: Sequence[TradeRecord],
        max_drawdown: float,
        start_date: Optional[pd.Timestamp],
        end_date: Optional[pd.Timestamp],
        **run_info: Any,
    ) -> RunReport:
        """run_info carries the optional RunReport fields (interval, final_cash, counters)"""
        trade_log = tuple(trade_log)
        realized = [r.profit for r in trade_log if r.side == SELL and r.profit is not None]
        # Every fill is one observation; a buy leg has realized nothing yet
        observations = [r.profit if r.profit is not None else 0.0 for r in trade_log]

        total_trades = len(trade_log)
        total_profit = float(sum(realized))
        average_profit = total_profit / total_trades if total_trades else None

        return RunReport(
            total_trades=total_trades,
            profitable_trades=sum(1 for p in realized if p > 0),
            unprofitable_trades=sum(1 for p in realized if p <= 0),
            total_profit=total_profit,
            average_profit=average_profit,
            max_drawdown=max_drawdown,
            risk_ratio=risk_ratio(observations, self.risk_free_rate),
            start_date=start_date,
            end_date=end_date,
            trade_log=trade_log,
            **run_info,
        )


class ReportGenerator:
    """Write report artifacts for a finished run"""

    def __init__(self, output_dir: str = "reports"):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def generate_report_json(self, report: RunReport) -> Path:
        path = self.output_dir / 'report.json'
        with open(path, 'w') as f:
            json.dump(report.to_dict(), f, indent=2, default=str)
        return path

    def generate_trades_csv(self, trade_log: Sequence[TradeRecord]) -> Path:
        path = self.output_dir / 'trades.csv'
        if not trade_log:
            df = pd.DataFrame(columns=TRADE_COLUMNS)
        else:
            df = pd.DataFrame([record.to_dict() for record in trade_log], columns=TRADE_COLUMNS)
        df.to_csv(path, index=False)
        return path

    def generate_equity_curve_csv(self, equity_curve: pd.DataFrame) -> Path:
        path = self.output_dir / 'equity_curve.csv'
        equity_curve.to_csv(path, index=False)
        return path

    def generate_event_log_jsonl(self, event_log: List[Dict]) -> Path:
        path = self.output_dir / 'log_events.jsonl'
        with open(path, 'w') as f:
            for entry in event_log:
                f.write(json.dumps(entry, default=str) + '\n')
        return path

    def save_params_snapshot(self, params: Dict) -> Path:
        path = self.output_dir / 'params_used.json'
        with open(path, 'w') as f:
            json.dump(params, f, indent=2, default=str)
        return path


def load_report(path: str) -> Dict[str, Any]:
    """Read a report.json back as a plain dict"""
    with open(path, 'r') as f:
        return json.load(f)


def _iso(ts: Optional[pd.Timestamp]) -> Optional[str]:
    return ts.isoformat() if ts is not None else None
