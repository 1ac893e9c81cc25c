"""Bar-replay backtest engine"""
from typing import Dict, List, Optional

import pandas as pd

from replay_core.config.params_loader import ParamsLoader
from replay_core.data.bars import BarSeries, parse_bar_timestamp
from replay_core.errors import InsufficientDataError, StrategyError
from replay_core.execution.simulator import ExecutionSimulator
from replay_core.logging import log_engine_event
from replay_core.performance.tracker import PerformanceTracker
from replay_core.portfolio.state import PortfolioLedger
from replay_core.reporting import ReportGenerator, ResultAggregator, RunReport
from replay_core.strategies.base import Strategy


class BacktestEngine:
    """
    Replays bars through a strategy and simulates fills.

    One engine is one run: it owns its ledger, simulator, tracker and event
    log. Parallel runs need separate engines.
    """

    def __init__(
        self,
        bars: BarSeries,
        strategy: Strategy,
        params: Optional[ParamsLoader] = None,
        initial_capital: Optional[float] = None,
        start_date: Optional[pd.Timestamp] = None,
        end_date: Optional[pd.Timestamp] = None,
        interval: Optional[str] = None,
    ):
        self.params = params if params is not None else ParamsLoader()
        self.params.validate()

        self.bars = bars
        self.strategy = strategy
        self.initial_capital = (
            initial_capital if initial_capital is not None
            else self.params.get('general', 'initial_capital')
        )
        self.warmup_period = self.params.get('general', 'warmup_period')
        self.interval = interval or self.params.get('general', 'interval', default='1d')
        self.verbose = bool(self.params.get('general', 'verbose', default=False))
        # Informational only: bars are not checked against the requested range
        self.start_date = parse_bar_timestamp(start_date) if start_date is not None else bars.start
        self.end_date = parse_bar_timestamp(end_date) if end_date is not None else bars.end

        self.event_log: List[Dict] = []
        self.ledger = PortfolioLedger(
            self.initial_capital,
            currency=self.params.get('general', 'currency', default='RUB'),
        )
        self.simulator = ExecutionSimulator(
            self.ledger,
            risk_fraction=self.params.get('execution', 'risk_fraction'),
            one_position_per_symbol=self.params.get('execution', 'one_position_per_symbol', default=True),
            event_log=self.event_log,
            verbose=self.verbose,
        )
        self.tracker = PerformanceTracker(self.initial_capital)
        self.aggregator = ResultAggregator(
            risk_free_rate=self.params.get('analytics', 'risk_free_rate', default=0.02)
        )

        self.bars_processed = 0
        self.skipped_bars = 0
        self.report: Optional[RunReport] = None
        self._stop_requested = False
        self._stopped_early = False

    def request_stop(self):
        """Cooperative stop, honoured at the next bar boundary"""
        self._stop_requested = True

    def run(self) -> RunReport:
        """Replay bars [warmup_period, len(bars)) and return the RunReport"""
        if self.report is not None:
            raise RuntimeError("BacktestEngine instances run once; build a new engine for another run")
        if self.warmup_period > len(self.bars):
            raise InsufficientDataError(self.warmup_period, len(self.bars), context="bars for warmup")

        log_engine_event('run_start', {
            'symbol': self.bars.symbol,
            'bars': len(self.bars),
            'warmup_period': self.warmup_period,
            'initial_capital': self.initial_capital,
            'interval': self.interval,
        }, logger=self.event_log, echo=self.verbose)

        for i in range(self.warmup_period, len(self.bars)):
            if self._stop_requested:
                self._stopped_early = True
                log_engine_event('run_stopped', {}, logger=self.event_log, bar=i)
                break
            self.process_bar(i)

        self.report = self.aggregator.aggregate(
            self.simulator.trade_log,
            max_drawdown=self.tracker.max_drawdown,
            start_date=self.start_date,
            end_date=self.end_date,
            interval=self.interval,
            initial_capital=self.initial_capital,
            final_cash=self.ledger.cash,
            open_positions=self.ledger.get_position_count(),
            bars_processed=self.bars_processed,
            skipped_bars=self.skipped_bars,
            rejected_signals=dict(self.simulator.rejections),
            stopped_early=self._stopped_early,
        )

        log_engine_event('run_end', {
            'total_trades': self.report.total_trades,
            'total_profit': self.report.total_profit,
            'max_drawdown': self.report.max_drawdown,
            'skipped_bars': self.skipped_bars,
        }, logger=self.event_log, echo=self.verbose)
        return self.report

    def process_bar(self, i: int):
        """Signal generation and execution for bar i"""
        current_bar = self.bars.at(i)
        # History stops before bar i; the current bar is passed on its own
        history = self.bars.slice(0, i)
        self.bars_processed += 1

        try:
            signals = self.strategy.generate_signals(current_bar, history, self.ledger.snapshot())
        except StrategyError as exc:
            self.skipped_bars += 1
            log_engine_event('strategy_error', {
                'symbol': self.bars.symbol,
                'error': str(exc),
            }, logger=self.event_log, timestamp=current_bar.ts, bar=i)
            return

        for signal in signals or []:
            self.simulator.execute(signal, current_bar.ts, bar=i)
            self.tracker.observe(
                self.ledger.cash,
                ts=current_bar.ts,
                marked_equity=self.ledger.marked_equity({current_bar.symbol: current_bar.close}),
            )

    def generate_reports(self, output_dir: str = "reports") -> ReportGenerator:
        """Write report.json, trades.csv, equity_curve.csv, log_events.jsonl, params_used.json"""
        if self.report is None:
            raise RuntimeError("run() must complete before reports can be generated")
        generator = ReportGenerator(output_dir)
        generator.generate_report_json(self.report)
        generator.generate_trades_csv(self.report.trade_log)
        generator.generate_equity_curve_csv(self.tracker.equity_frame())
        generator.generate_event_log_jsonl(self.event_log)
        generator.save_params_snapshot(self.params.snapshot())
        return generator
