"""
Backtest Runner
Loads one symbol's bar file, replays it through the configured strategy and
writes report artifacts.
"""
import argparse
import sys
from pathlib import Path

import pandas as pd

from replay_core.config.params_loader import ParamsLoader
from replay_core.data.loader import BarLoader
from replay_core.engine import BacktestEngine
from replay_core.errors import ReplayError
from replay_core.strategies.registry import STRATEGY_NAMES, strategy_from_params


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description='Replay historical bars through a strategy')
    parser.add_argument('--data-path', type=str, required=True, help='Directory with <SYMBOL>_<interval>.csv|parquet files')
    parser.add_argument('--symbol', type=str, required=True, help='Instrument symbol, e.g. SBER')
    parser.add_argument('--interval', type=str, default=None, help='Bar interval label (default: general.interval)')
    parser.add_argument('--start-date', type=str, default=None, help='Start date (YYYY-MM-DD)')
    parser.add_argument('--end-date', type=str, default=None, help='End date (YYYY-MM-DD)')
    parser.add_argument('--strategy', type=str, default=None, choices=STRATEGY_NAMES, help='Strategy (default: strategy.name)')
    parser.add_argument('--params', type=str, default=None, help='Overrides JSON file merged onto base params')
    parser.add_argument('--initial-capital', type=float, default=None, help='Starting cash')
    parser.add_argument('--output-dir', type=str, default='reports', help='Output directory')
    args = parser.parse_args(argv)

    start_ts = pd.Timestamp(args.start_date, tz='UTC') if args.start_date else None
    end_ts = pd.Timestamp(args.end_date, tz='UTC') if args.end_date else None
    # A bare end date covers the whole day
    if end_ts is not None and end_ts.hour == 0 and end_ts.minute == 0 and end_ts.second == 0:
        end_ts = end_ts.replace(hour=23, minute=59, second=59)

    try:
        params = ParamsLoader(overrides_path=args.params)
        if args.strategy:
            params = params.with_overrides({'strategy': {'name': args.strategy}})
    except (FileNotFoundError, ValueError, KeyError, TypeError) as e:
        print(f"ERROR: bad params: {e}", file=sys.stderr)
        return 1
    interval = args.interval or params.get('general', 'interval')

    try:
        loader = BarLoader(args.data_path, start_ts=start_ts, end_ts=end_ts)
        bars = loader.load_symbol(args.symbol, interval=interval)
        print(f"Loaded {len(bars)} {interval} bars for {args.symbol}: {bars.start} .. {bars.end}")

        name = params.get('strategy', 'name')
        strategy = strategy_from_params(params, args.symbol, last_ts=bars.end)

        engine = BacktestEngine(
            bars,
            strategy,
            params=params,
            initial_capital=args.initial_capital,
            start_date=start_ts,
            end_date=end_ts,
            interval=interval,
        )
        report = engine.run()
    except (ReplayError, FileNotFoundError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    output_dir = Path(args.output_dir)
    engine.generate_reports(str(output_dir))

    print(f"Strategy: {name}")
    print(f"Trades: {report.total_trades} ({report.profitable_trades} profitable, {report.unprofitable_trades} unprofitable)")
    print(f"Total profit: {report.total_profit:,.2f}")
    if report.average_profit is None:
        print("Average profit: n/a (no trades)")
    else:
        print(f"Average profit: {report.average_profit:,.2f}")
    print(f"Max drawdown: {report.max_drawdown:.2f}%")
    print(f"Risk ratio: {report.risk_ratio:.4f}")
    print(f"Skipped bars: {report.skipped_bars}")
    print(f"Final cash: {report.final_cash:,.2f}")
    print(f"Reports written to {output_dir}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
