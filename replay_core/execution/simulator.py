"""Signal execution against the ledger: sizing, affordability, round trips"""
import math
from collections import Counter
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional

import pandas as pd

from replay_core.errors import ConfigError
from replay_core.logging import log_engine_event
from replay_core.portfolio.state import PortfolioLedger
from replay_core.strategies.base import BUY, SELL, Signal

# Soft rejection reasons (never raised, counted in the report)
INSUFFICIENT_FUNDS = 'insufficient_funds'
NO_OPEN_POSITION = 'no_open_position'
POSITION_ALREADY_OPEN = 'position_already_open'


@dataclass(frozen=True)
class TradeRecord:
    """One fill. Buy legs carry no close fields and no realized profit."""
    symbol: str
    side: str
    quantity: int
    open_price: float
    open_ts: pd.Timestamp
    close_price: Optional[float] = None
    close_ts: Optional[pd.Timestamp] = None
    profit: Optional[float] = None
    position_id: str = ""

    def to_dict(self) -> Dict[str, Any]:
        record = asdict(self)
        for key in ('open_ts', 'close_ts'):
            if record[key] is not None:
                record[key] = record[key].isoformat()
        return record


@dataclass(frozen=True)
class FillResult:
    """Outcome of one signal"""
    signal: Signal
    accepted: bool
    reason: Optional[str] = None
    quantity: int = 0
    record: Optional[TradeRecord] = None


class ExecutionSimulator:
    """Translate one signal into at most one ledger mutation"""

    def __init__(
        self,
        ledger: PortfolioLedger,
        risk_fraction: float = 0.01,
        one_position_per_symbol: bool = True,
        event_log: Optional[List[Dict]] = None,
        verbose: bool = False,
    ):
        if isinstance(risk_fraction, bool) or not isinstance(risk_fraction, (int, float)) or not 0 < risk_fraction <= 1:
            raise ConfigError(f"risk_fraction must be in (0, 1], got {risk_fraction!r}")
        self.ledger = ledger
        self.risk_fraction = risk_fraction
        self.one_position_per_symbol = one_position_per_symbol
        self.event_log = event_log if event_log is not None else []
        self.verbose = verbose

        self.trade_log: List[TradeRecord] = []
        self.total_trades = 0
        self.profitable_trades = 0
        self.unprofitable_trades = 0
        self.total_profit = 0.0
        self.rejections: Counter = Counter()

    def lot_size(self, price: float) -> int:
        """floor(available * risk_fraction / price)"""
        return int(math.floor(self.ledger.cash * self.risk_fraction / price))

    def execute(self, signal: Signal, ts: pd.Timestamp, bar: Optional[int] = None) -> FillResult:
        """Fill or reject one signal; `bar` tags the logged event"""
        if signal.side == BUY:
            return self._buy(signal, ts, bar)
        if signal.side == SELL:
            return self._sell(signal, ts, bar)
        raise ValueError(f"Unknown signal side {signal.side!r}")

    def _buy(self, signal: Signal, ts: pd.Timestamp, bar: Optional[int]) -> FillResult:
        if self.one_position_per_symbol and self.ledger.has_position(signal.symbol):
            return self._reject(signal, ts, bar, POSITION_ALREADY_OPEN)

        lots = self.lot_size(signal.price)
        if lots == 0:
            return self._reject(signal, ts, bar, INSUFFICIENT_FUNDS, available=self.ledger.cash)
        cost = signal.price * lots
        if cost > self.ledger.cash:
            return self._reject(signal, ts, bar, INSUFFICIENT_FUNDS, available=self.ledger.cash, cost=cost)

        position = self.ledger.open_position(signal.symbol, lots, signal.price, ts)
        record = TradeRecord(
            symbol=signal.symbol,
            side=BUY,
            quantity=lots,
            open_price=signal.price,
            open_ts=ts,
            position_id=position.position_id,
        )
        return self._fill(signal, ts, bar, record)

    def _sell(self, signal: Signal, ts: pd.Timestamp, bar: Optional[int]) -> FillResult:
        position = self.ledger.find_open_position(signal.symbol)
        if position is None:
            return self._reject(signal, ts, bar, NO_OPEN_POSITION)

        profit = self.ledger.close_position(position, signal.price)
        self.total_profit += profit
        if profit > 0:
            self.profitable_trades += 1
        else:
            self.unprofitable_trades += 1

        record = TradeRecord(
            symbol=signal.symbol,
            side=SELL,
            quantity=position.quantity,
            open_price=position.average_price,
            open_ts=position.open_ts,
            close_price=signal.price,
            close_ts=ts,
            profit=profit,
            position_id=position.position_id,
        )
        return self._fill(signal, ts, bar, record)

    def _fill(self, signal: Signal, ts: pd.Timestamp, bar: Optional[int], record: TradeRecord) -> FillResult:
        self.total_trades += 1
        self.trade_log.append(record)
        log_engine_event('fill', {
            'symbol': signal.symbol,
            'side': signal.side,
            'price': signal.price,
            'quantity': record.quantity,
            'profit': record.profit,
            'cash_after': self.ledger.cash,
        }, logger=self.event_log, timestamp=ts, bar=bar, echo=self.verbose)
        return FillResult(signal=signal, accepted=True, quantity=record.quantity, record=record)

    def _reject(self, signal: Signal, ts: pd.Timestamp, bar: Optional[int], reason: str, **details: Any) -> FillResult:
        self.rejections[reason] += 1
        log_engine_event('signal_rejected', {
            'symbol': signal.symbol,
            'side': signal.side,
            'price': signal.price,
            'reason': reason,
            **details,
        }, logger=self.event_log, timestamp=ts, bar=bar, echo=self.verbose or reason == INSUFFICIENT_FUNDS)
        return FillResult(signal=signal, accepted=False, reason=reason)
