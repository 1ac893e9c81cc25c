"""Tests for ExecutionSimulator sizing, affordability and round trips"""
import pytest
import pandas as pd

from replay_core.errors import ConfigError
from replay_core.execution.simulator import (
    INSUFFICIENT_FUNDS,
    NO_OPEN_POSITION,
    POSITION_ALREADY_OPEN,
    ExecutionSimulator,
)
from replay_core.portfolio.state import PortfolioLedger
from replay_core.strategies.base import BUY, SELL, Signal


T0 = pd.Timestamp('2024-01-01', tz='UTC')
T1 = pd.Timestamp('2024-01-02', tz='UTC')
T2 = pd.Timestamp('2024-01-03', tz='UTC')


def make_simulator(capital=100000.0, **kwargs):
    ledger = PortfolioLedger(capital)
    return ledger, ExecutionSimulator(ledger, **kwargs)


class TestExecutionSimulator:
    def test_buy_sizing(self):
        """100,000 cash, buy at 100, risk 1% -> 10 lots, 99,000 left"""
        ledger, sim = make_simulator()
        result = sim.execute(Signal('SBER', BUY, 100.0), T0)

        assert result.accepted
        assert result.quantity == 10
        assert ledger.cash == 99000.0
        assert sim.total_trades == 1
        assert len(sim.trade_log) == 1
        record = sim.trade_log[0]
        assert record.side == BUY
        assert record.profit is None
        assert record.close_price is None

    def test_round_trip(self):
        """Sell the 10 lots at 110 -> profit 100, 100,100 cash, 2 trades, 1 profitable"""
        ledger, sim = make_simulator()
        sim.execute(Signal('SBER', BUY, 100.0), T0)
        result = sim.execute(Signal('SBER', SELL, 110.0), T1)

        assert result.accepted
        assert result.record.profit == pytest.approx(100.0)
        assert result.record.open_price == 100.0
        assert result.record.open_ts == T0
        assert result.record.close_ts == T1
        assert ledger.cash == pytest.approx(100100.0)
        assert sim.total_trades == 2
        assert sim.profitable_trades == 1
        assert sim.unprofitable_trades == 0
        assert sim.total_profit == pytest.approx(100.0)
        assert sim.trade_log[0].position_id == sim.trade_log[1].position_id

    def test_zero_lots_rejected(self):
        """500 cash, buy at 1000 -> floor(5 / 1000) = 0 lots, rejected"""
        ledger, sim = make_simulator(capital=500.0)
        result = sim.execute(Signal('SBER', BUY, 1000.0), T0)

        assert not result.accepted
        assert result.reason == INSUFFICIENT_FUNDS
        assert ledger.cash == 500.0
        assert sim.trade_log == []
        assert sim.total_trades == 0
        assert sim.rejections[INSUFFICIENT_FUNDS] == 1

    def test_losing_round_trip(self):
        ledger, sim = make_simulator()
        sim.execute(Signal('SBER', BUY, 100.0), T0)
        sim.execute(Signal('SBER', SELL, 90.0), T1)
        assert sim.unprofitable_trades == 1
        assert sim.total_profit == pytest.approx(-100.0)
        assert ledger.cash == pytest.approx(99900.0)

    def test_break_even_counts_as_unprofitable(self):
        _, sim = make_simulator()
        sim.execute(Signal('SBER', BUY, 100.0), T0)
        sim.execute(Signal('SBER', SELL, 100.0), T1)
        assert sim.profitable_trades == 0
        assert sim.unprofitable_trades == 1

    def test_sell_without_position(self):
        ledger, sim = make_simulator()
        result = sim.execute(Signal('SBER', SELL, 100.0), T0)

        assert not result.accepted
        assert result.reason == NO_OPEN_POSITION
        assert ledger.cash == 100000.0
        assert sim.trade_log == []
        assert sim.rejections[NO_OPEN_POSITION] == 1

    def test_one_position_per_symbol(self):
        ledger, sim = make_simulator()
        sim.execute(Signal('SBER', BUY, 100.0), T0)
        result = sim.execute(Signal('SBER', BUY, 100.0), T1)

        assert not result.accepted
        assert result.reason == POSITION_ALREADY_OPEN
        assert ledger.get_position_count() == 1
        assert ledger.cash == 99000.0

    def test_other_symbol_unaffected_by_position_limit(self):
        ledger, sim = make_simulator()
        sim.execute(Signal('SBER', BUY, 100.0), T0)
        assert sim.execute(Signal('GAZP', BUY, 100.0), T0).accepted
        assert ledger.get_position_count() == 2

    def test_stacking_allowed_when_flag_off(self):
        ledger, sim = make_simulator(one_position_per_symbol=False)
        sim.execute(Signal('SBER', BUY, 100.0), T0)
        second = sim.execute(Signal('SBER', BUY, 100.0), T1)

        assert second.accepted
        # Sized against the reduced cash: floor(99000 * 0.01 / 100)
        assert second.quantity == 9
        assert ledger.get_position_count() == 2

    def test_sell_closes_first_opened_position(self):
        ledger, sim = make_simulator(one_position_per_symbol=False)
        sim.execute(Signal('SBER', BUY, 100.0), T0)
        sim.execute(Signal('SBER', BUY, 120.0), T1)
        result = sim.execute(Signal('SBER', SELL, 130.0), T2)

        assert result.record.open_price == 100.0
        assert result.record.quantity == 10
        assert result.record.profit == pytest.approx(300.0)
        assert ledger.get_position_count() == 1
        assert ledger.find_open_position('SBER').average_price == 120.0

    def test_lot_size(self):
        _, sim = make_simulator(risk_fraction=0.05)
        assert sim.lot_size(100.0) == 50
        assert sim.lot_size(333.0) == 15

    @pytest.mark.parametrize('fraction', [0, -0.5, 1.01, 'x'])
    def test_bad_risk_fraction(self, fraction):
        with pytest.raises(ConfigError):
            make_simulator(risk_fraction=fraction)

    def test_cash_never_negative(self):
        ledger, sim = make_simulator(capital=1000.0, risk_fraction=1.0, one_position_per_symbol=False)
        for price in (10.0, 7.0, 3.0, 250.0, 1.0):
            sim.execute(Signal('SBER', BUY, price), T0)
            assert ledger.cash >= 0

    def test_events_logged(self):
        events = []
        ledger = PortfolioLedger(100000.0)
        sim = ExecutionSimulator(ledger, event_log=events)
        sim.execute(Signal('SBER', BUY, 100.0), T0, bar=3)
        sim.execute(Signal('GAZP', SELL, 100.0), T0, bar=4)
        sim.execute(Signal('SBER', SELL, 100.0), T1)

        assert [e['event_type'] for e in events] == ['fill', 'signal_rejected', 'fill']
        assert [e['bar'] for e in events] == [3, 4, None]
        assert events[0]['quantity'] == 10
        assert events[0]['timestamp'] == T0.isoformat()
        assert events[1]['reason'] == NO_OPEN_POSITION

    def test_rejection_echo(self, capsys):
        _, sim = make_simulator(capital=500.0)
        sim.execute(Signal('SBER', SELL, 1000.0), T0)
        assert capsys.readouterr().out == ""
        sim.execute(Signal('SBER', BUY, 1000.0), T0)
        assert "insufficient_funds" in capsys.readouterr().out

    def test_trade_record_to_dict(self):
        _, sim = make_simulator()
        sim.execute(Signal('SBER', BUY, 100.0), T0)
        sim.execute(Signal('SBER', SELL, 110.0), T1)
        record = sim.trade_log[1].to_dict()
        assert record['open_ts'] == T0.isoformat()
        assert record['close_ts'] == T1.isoformat()
        assert record['side'] == 'sell'
        assert sim.trade_log[0].to_dict()['close_ts'] is None


class TestSignal:
    @pytest.mark.parametrize('side,price', [('hold', 100.0), (BUY, 0.0), (BUY, -5.0), (SELL, float('nan'))])
    def test_invalid_signal(self, side, price):
        with pytest.raises(ValueError):
            Signal('SBER', side, price)
