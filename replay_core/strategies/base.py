"""Strategy contract.

A strategy looks at the current bar, the bars strictly before it, and a
read-only portfolio snapshot, and returns zero or more signals for the
current bar. It never touches the ledger.

Any object with a matching ``generate_signals`` method satisfies the
contract; there is no base class to inherit from. Plain functions can be
wrapped with ``FunctionStrategy``.
"""
import math
from dataclasses import dataclass
from typing import Callable, List, Protocol, runtime_checkable

from replay_core.data.bars import Bar, BarSeries
from replay_core.portfolio.state import PortfolioSnapshot

BUY = 'buy'
SELL = 'sell'
SIDES = (BUY, SELL)


@dataclass(frozen=True)
class Signal:
    """Trading signal for the current bar"""
    symbol: str
    side: str  # 'buy' or 'sell'
    price: float

    def __post_init__(self):
        if self.side not in SIDES:
            raise ValueError(f"Signal side must be one of {SIDES}, got {self.side!r}")
        if not isinstance(self.price, (int, float)) or not math.isfinite(self.price) or self.price <= 0:
            raise ValueError(f"Signal price must be a positive finite number, got {self.price!r}")


@runtime_checkable
class Strategy(Protocol):
    def generate_signals(
        self,
        current_bar: Bar,
        history: BarSeries,
        portfolio: PortfolioSnapshot,
    ) -> List[Signal]:
        """Raise StrategyError when no decision can be made for this bar."""
        ...


SignalFn = Callable[[Bar, BarSeries, PortfolioSnapshot], List[Signal]]


class FunctionStrategy:
    """Adapt a plain callable to the strategy contract"""

    def __init__(self, fn: SignalFn, name: str = None):
        self.fn = fn
        self.name = name or getattr(fn, '__name__', 'function')

    def generate_signals(self, current_bar: Bar, history: BarSeries, portfolio: PortfolioSnapshot) -> List[Signal]:
        return list(self.fn(current_bar, history, portfolio) or [])
