"""Portfolio ledger: cash balances and open positions"""
import uuid
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

import pandas as pd


@dataclass(frozen=True)
class Balance:
    """Cash balance for one currency. Only `available` moves during a replay."""
    available: float
    blocked: float = 0.0
    total: float = 0.0


@dataclass(frozen=True)
class Position:
    """Open position"""
    symbol: str
    quantity: int  # lots, > 0 while open
    average_price: float
    open_ts: pd.Timestamp
    position_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def cost(self) -> float:
        return self.average_price * self.quantity


@dataclass(frozen=True)
class PortfolioSnapshot:
    """Read-only view of the ledger handed to strategies"""
    balances: Mapping[str, Balance]
    positions: Tuple[Position, ...]
    currency: str

    @property
    def cash(self) -> float:
        balance = self.balances.get(self.currency)
        return balance.available if balance is not None else 0.0

    def positions_for(self, symbol: str) -> Tuple[Position, ...]:
        return tuple(p for p in self.positions if p.symbol == symbol)

    def has_position(self, symbol: str) -> bool:
        return any(p.symbol == symbol and p.quantity > 0 for p in self.positions)


class PortfolioLedger:
    """Owns balances and open positions. Only the ExecutionSimulator mutates it."""

    def __init__(self, initial_capital: float, currency: str = "RUB"):
        if initial_capital < 0:
            raise ValueError(f"Initial capital must be >= 0, got {initial_capital}")
        self.initial_capital = initial_capital
        self.currency = currency
        self.balances: Dict[str, Balance] = {currency: Balance(available=initial_capital)}
        self.positions: List[Position] = []
        self.closed_positions: List[Position] = []

    @property
    def cash(self) -> float:
        """Available cash in the ledger currency"""
        return self.balances[self.currency].available

    def _set_available(self, available: float):
        self.balances[self.currency] = replace(self.balances[self.currency], available=available)

    def debit(self, amount: float):
        """Remove cash; never lets `available` go negative"""
        if amount < 0:
            raise ValueError(f"Debit amount must be >= 0, got {amount}")
        new_available = self.cash - amount
        if new_available < 0:
            raise ValueError(f"Debit of {amount} exceeds available cash {self.cash}")
        self._set_available(new_available)

    def credit(self, amount: float):
        if amount < 0:
            raise ValueError(f"Credit amount must be >= 0, got {amount}")
        self._set_available(self.cash + amount)

    def open_position(self, symbol: str, quantity: int, price: float, ts: pd.Timestamp) -> Position:
        """Debit price * quantity and append a new position"""
        if quantity <= 0:
            raise ValueError(f"Position quantity must be positive, got {quantity}")
        self.debit(price * quantity)
        position = Position(symbol=symbol, quantity=quantity, average_price=price, open_ts=ts)
        self.positions.append(position)
        return position

    def find_open_position(self, symbol: str) -> Optional[Position]:
        """First open position for symbol in ledger order (linear scan, first found wins)"""
        for position in self.positions:
            if position.symbol == symbol and position.quantity > 0:
                return position
        return None

    def close_position(self, position: Position, price: float) -> float:
        """Credit price * quantity, drop the position and return realized profit"""
        for i, candidate in enumerate(self.positions):
            if candidate.position_id == position.position_id:
                break
        else:
            raise KeyError(f"Position {position.position_id} is not open")

        self.credit(price * position.quantity)
        del self.positions[i]
        self.closed_positions.append(position)
        return (price - position.average_price) * position.quantity

    def has_position(self, symbol: str) -> bool:
        return self.find_open_position(symbol) is not None

    def get_position_count(self) -> int:
        return len(self.positions)

    def marked_equity(self, prices: Mapping[str, float]) -> float:
        """Cash plus open positions at the given prices (entry price when a symbol has none)"""
        held = sum(p.quantity * prices.get(p.symbol, p.average_price) for p in self.positions)
        return self.cash + held

    def snapshot(self) -> PortfolioSnapshot:
        return PortfolioSnapshot(
            balances=MappingProxyType(dict(self.balances)),
            positions=tuple(self.positions),
            currency=self.currency,
        )
