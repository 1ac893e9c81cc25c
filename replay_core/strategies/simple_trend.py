"""Simple trend strategy: close against the SMA of the preceding closes"""
from typing import List, Optional

from replay_core.data.bars import Bar, BarSeries
from replay_core.errors import StrategyError
from replay_core.indicators.technical import last_sma
from replay_core.portfolio.state import PortfolioSnapshot
from replay_core.strategies.base import BUY, SELL, Signal


class SimpleTrendStrategy:
    """
    Buy when the close is above the SMA of the last `period` history closes,
    sell when it is below.

    Optional stop-loss / take-profit percentages close an open position once
    the close moves that far from its entry price, regardless of the SMA.
    """

    def __init__(
        self,
        symbol: str,
        period: int = 14,
        stop_loss_pct: Optional[float] = None,
        take_profit_pct: Optional[float] = None,
    ):
        if period <= 0:
            raise ValueError(f"period must be positive, got {period}")
        self.symbol = symbol
        self.period = period
        self.stop_loss_pct = stop_loss_pct
        self.take_profit_pct = take_profit_pct

    def generate_signals(self, current_bar: Bar, history: BarSeries, portfolio: PortfolioSnapshot) -> List[Signal]:
        if len(history) < self.period:
            raise StrategyError(f"insufficient history: need {self.period}, have {len(history)}")

        price = current_bar.close
        exit_signal = self._risk_exit(price, portfolio)
        if exit_signal is not None:
            return [exit_signal]

        average = last_sma(history.closes, self.period)
        if price > average:
            return [Signal(self.symbol, BUY, price)]
        if price < average:
            return [Signal(self.symbol, SELL, price)]
        return []

    def _risk_exit(self, price: float, portfolio: PortfolioSnapshot) -> Optional[Signal]:
        if self.stop_loss_pct is None and self.take_profit_pct is None:
            return None
        for position in portfolio.positions_for(self.symbol):
            entry = position.average_price
            if self.stop_loss_pct is not None and price <= entry * (1 - self.stop_loss_pct / 100):
                return Signal(self.symbol, SELL, price)
            if self.take_profit_pct is not None and price >= entry * (1 + self.take_profit_pct / 100):
                return Signal(self.symbol, SELL, price)
        return None
