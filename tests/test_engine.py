"""Tests for the bar-replay loop"""
import json

import pytest
import pandas as pd

from replay_core.config.params_loader import ParamsLoader
from replay_core.engine import BacktestEngine
from replay_core.errors import ConfigError, InsufficientDataError, StrategyError
from replay_core.strategies.base import BUY, SELL, FunctionStrategy, Signal
from replay_core.strategies.oracle import OracleStrategy
from replay_core.strategies.simple_trend import SimpleTrendStrategy
from tests.fixtures.toy_markets import bars_from_closes, toy_series


def params_with(**general):
    return ParamsLoader(overrides={'general': general}) if general else ParamsLoader()


class TestReplayLoop:
    @pytest.fixture
    def series(self):
        return bars_from_closes([100.0 + (i % 7) for i in range(30)], symbol='SBER')

    def test_history_excludes_current_bar(self, series):
        seen = []

        def record(bar, history, portfolio):
            seen.append((bar.ts, len(history), history.end))
            return []

        engine = BacktestEngine(series, FunctionStrategy(record))
        engine.run()

        assert len(seen) == len(series) - 10
        for offset, (ts, history_len, history_end) in enumerate(seen):
            i = 10 + offset
            assert ts == series.at(i).ts
            assert history_len == i
            assert history_end < ts

    def test_bars_processed_counts(self, series):
        report = BacktestEngine(series, OracleStrategy('flat', 'SBER')).run()
        assert report.bars_processed == 20
        assert report.total_trades == 0
        assert report.average_profit is None
        assert report.final_cash == 100000.0
        assert report.max_drawdown == 0.0

    def test_zero_warmup(self, series):
        engine = BacktestEngine(series, OracleStrategy('flat', 'SBER'), params=params_with(warmup_period=0))
        assert engine.run().bars_processed == 30

    def test_warmup_equal_to_length(self):
        series = bars_from_closes([100.0] * 10)
        report = BacktestEngine(series, OracleStrategy('flat', 'TEST')).run()
        assert report.bars_processed == 0
        assert report.total_trades == 0

    def test_warmup_longer_than_series(self):
        series = bars_from_closes([100.0] * 5)
        engine = BacktestEngine(series, OracleStrategy('flat', 'TEST'))
        with pytest.raises(InsufficientDataError, match="need 10, have 5"):
            engine.run()

    def test_strategy_error_skips_bar(self, series):
        # period 14 with warmup 10: bars 10..13 have too little history
        engine = BacktestEngine(series, SimpleTrendStrategy('SBER', period=14))
        report = engine.run()

        assert report.skipped_bars == 4
        assert report.bars_processed == 20
        errors = [e for e in engine.event_log if e['event_type'] == 'strategy_error']
        assert len(errors) == 4
        assert "need 14, have 10" in errors[0]['error']
        assert [e['bar'] for e in errors] == [10, 11, 12, 13]

    def test_strategy_error_does_not_stop_run(self, series):
        def flaky(bar, history, portfolio):
            if len(history) % 2:
                raise StrategyError("odd bar")
            return [Signal(bar.symbol, BUY, bar.close)]

        report = BacktestEngine(series, FunctionStrategy(flaky)).run()
        assert report.skipped_bars == 10
        assert report.total_trades == 1
        assert report.rejected_signals == {'position_already_open': 9}

    def test_insufficient_data_aborts(self, series):
        def greedy(bar, history, portfolio):
            history.window(len(history) + 1)
            return []

        with pytest.raises(InsufficientDataError):
            BacktestEngine(series, FunctionStrategy(greedy)).run()

    def test_runs_once(self, series):
        engine = BacktestEngine(series, OracleStrategy('flat', 'SBER'))
        engine.run()
        with pytest.raises(RuntimeError):
            engine.run()

    def test_request_stop(self, series):
        holder = {}

        def stop_after_three(bar, history, portfolio):
            if len(history) == 12:
                holder['engine'].request_stop()
            return []

        engine = BacktestEngine(series, FunctionStrategy(stop_after_three))
        holder['engine'] = engine
        report = engine.run()

        assert report.stopped_early
        assert report.bars_processed == 3
        assert engine.event_log[-2]['event_type'] == 'run_stopped'
        assert engine.event_log[-2]['bar'] == 13
        assert engine.event_log[-1]['event_type'] == 'run_end'

    def test_invalid_params_rejected_up_front(self, series):
        params = ParamsLoader(overrides={'execution': {'risk_fraction': 2.0}})
        with pytest.raises(ConfigError):
            BacktestEngine(series, OracleStrategy('flat', 'SBER'), params=params)

    def test_initial_capital_override(self, series):
        report = BacktestEngine(series, OracleStrategy('flat', 'SBER'), initial_capital=500.0).run()
        assert report.initial_capital == 500.0
        assert report.final_cash == 500.0

    def test_dates_default_to_series_bounds(self, series):
        report = BacktestEngine(series, OracleStrategy('flat', 'SBER')).run()
        assert report.start_date == series.start
        assert report.end_date == series.end

    def test_event_log_uses_bar_time(self, series):
        script = {series.at(12).ts: 'buy', series.at(15).ts: 'sell'}
        engine = BacktestEngine(series, OracleStrategy('scripted', 'SBER', script=script))
        engine.run()

        fills = [e for e in engine.event_log if e['event_type'] == 'fill']
        assert [f['timestamp'] for f in fills] == [series.at(12).ts.isoformat(), series.at(15).ts.isoformat()]
        assert engine.event_log[0]['event_type'] == 'run_start'

    def test_event_log_carries_bar_index(self, series):
        script = {series.at(12).ts: 'buy', series.at(14).ts: 'buy', series.at(15).ts: 'sell'}
        engine = BacktestEngine(series, OracleStrategy('scripted', 'SBER', script=script))
        engine.run()

        per_bar = [(e['event_type'], e['bar']) for e in engine.event_log if e['bar'] is not None]
        assert per_bar == [('fill', 12), ('signal_rejected', 14), ('fill', 15)]
        # Run-level entries still carry the field
        assert engine.event_log[0]['bar'] is None
        assert engine.event_log[-1]['event_type'] == 'run_end'
        assert engine.event_log[-1]['bar'] is None


class TestAccountingInvariants:
    @pytest.mark.parametrize('market_type', ['UP', 'DOWN', 'CHOP', 'GAP_SHOCK'])
    def test_cash_conservation(self, market_type):
        series = toy_series(market_type, symbol='SBER', num_bars=150)
        engine = BacktestEngine(series, SimpleTrendStrategy('SBER', period=5))
        report = engine.run()

        open_cost = sum(p.cost for p in engine.ledger.positions)
        assert report.final_cash + open_cost == pytest.approx(report.initial_capital + report.total_profit)
        assert report.open_positions == len(engine.ledger.positions)

    @pytest.mark.parametrize('market_type', ['UP', 'DOWN', 'CHOP', 'GAP_SHOCK'])
    def test_cash_never_negative(self, market_type):
        series = toy_series(market_type, symbol='SBER', num_bars=150)
        params = ParamsLoader(overrides={'execution': {'risk_fraction': 1.0, 'one_position_per_symbol': False}})
        engine = BacktestEngine(series, SimpleTrendStrategy('SBER', period=5), params=params)
        engine.run()

        curve = engine.tracker.equity_frame()
        assert (curve['equity'] >= 0).all()

    def test_max_drawdown_matches_curve(self):
        series = toy_series('CHOP', symbol='SBER', num_bars=200)
        engine = BacktestEngine(series, SimpleTrendStrategy('SBER', period=5))
        report = engine.run()

        curve = engine.tracker.equity_frame()
        assert report.max_drawdown == pytest.approx(curve['drawdown_pct'].max())
        assert curve['drawdown_pct'].cummax().iloc[-1] == pytest.approx(report.max_drawdown)

    def test_deterministic(self):
        series = toy_series('CHOP', symbol='SBER', num_bars=120)
        first = BacktestEngine(series, SimpleTrendStrategy('SBER', period=5)).run()
        second = BacktestEngine(series, SimpleTrendStrategy('SBER', period=5)).run()
        assert first.to_dict()['total_profit'] == second.to_dict()['total_profit']
        assert [r.profit for r in first.trade_log] == [r.profit for r in second.trade_log]


class TestToyOracles:
    def test_always_long_on_up_market(self):
        series = toy_series('UP', symbol='SBER', num_bars=100)
        report = BacktestEngine(series, OracleStrategy('always_long', 'SBER', last_ts=series.end)).run()

        assert report.total_trades == 2
        assert report.total_profit > 0
        assert report.open_positions == 0
        assert [r.side for r in report.trade_log] == [BUY, SELL]

    def test_always_long_on_down_market(self):
        series = toy_series('DOWN', symbol='SBER', num_bars=100)
        report = BacktestEngine(series, OracleStrategy('always_long', 'SBER', last_ts=series.end)).run()

        assert report.total_profit < 0
        assert report.unprofitable_trades == 1
        assert report.max_drawdown > 0

    def test_flat_never_trades(self):
        series = toy_series('GAP_SHOCK', symbol='SBER', num_bars=100)
        report = BacktestEngine(series, OracleStrategy('flat', 'SBER')).run()
        assert report.total_trades == 0
        assert report.final_cash == report.initial_capital


class TestGenerateReports:
    def test_artifacts_written(self, tmp_path):
        series = toy_series('UP', symbol='SBER', num_bars=60)
        engine = BacktestEngine(series, OracleStrategy('always_long', 'SBER', last_ts=series.end))
        report = engine.run()
        engine.generate_reports(str(tmp_path / "reports"))

        out = tmp_path / "reports"
        for name in ('report.json', 'trades.csv', 'equity_curve.csv', 'log_events.jsonl', 'params_used.json'):
            assert (out / name).exists(), name

        data = json.loads((out / 'report.json').read_text())
        assert data['total_trades'] == report.total_trades
        assert len(pd.read_csv(out / 'trades.csv')) == 2
        events = [json.loads(line) for line in (out / 'log_events.jsonl').read_text().splitlines()]
        assert events[0]['event_type'] == 'run_start'
        assert events[-1]['event_type'] == 'run_end'

    def test_reports_require_run(self, tmp_path):
        series = toy_series('UP', symbol='SBER', num_bars=30)
        engine = BacktestEngine(series, OracleStrategy('flat', 'SBER'))
        with pytest.raises(RuntimeError):
            engine.generate_reports(str(tmp_path))
