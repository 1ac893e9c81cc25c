"""
Baseline Benchmark Runner
Runs simple baseline strategies (Buy & Hold, Flat, Random) through the engine using ORACLE strategies.
"""
import argparse
import sys
from pathlib import Path

import pandas as pd

from replay_core.config.params_loader import ParamsLoader
from replay_core.data.bars import BarSeries
from replay_core.data.loader import BarLoader
from replay_core.engine import BacktestEngine
from replay_core.strategies.oracle import OracleStrategy


def run_baseline(bars: BarSeries, mode: str, params: ParamsLoader, output_dir: Path, seed: int = 42) -> BacktestEngine:
    """Run one ORACLE baseline and write its reports under output_dir/<mode>"""
    strategy = OracleStrategy(mode, bars.symbol, seed=seed, last_ts=bars.end)
    engine = BacktestEngine(bars, strategy, params=params)
    engine.run()
    engine.generate_reports(str(output_dir / mode))
    return engine


def calculate_naive_return(bars: BarSeries, warmup_period: int) -> float:
    """Naive Buy & Hold return over the replayed bars: (last_close / first_close) - 1"""
    if len(bars) <= warmup_period:
        return 0.0
    closes = bars.closes
    return (closes.iloc[-1] / closes.iloc[warmup_period]) - 1.0


def generate_summary(baselines: dict, output_dir: Path) -> pd.DataFrame:
    """Generate baseline summary CSV"""
    rows = []
    for name, engine in baselines.items():
        report = engine.report
        rows.append({
            'strategy': name,
            'initial_capital': report.initial_capital,
            'final_cash': report.final_cash,
            'open_positions': report.open_positions,
            'num_trades': report.total_trades,
            'total_profit': report.total_profit,
            'max_drawdown_pct': report.max_drawdown,
            'risk_ratio': report.risk_ratio,
        })

    df = pd.DataFrame(rows)
    summary_path = output_dir / "baselines_summary.csv"
    df.to_csv(summary_path, index=False)
    print(f"Baseline summary saved to {summary_path}")
    return df


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description='Run baseline benchmark strategies using ORACLE strategies')
    parser.add_argument('--data-path', type=str, required=True, help='Path to data directory')
    parser.add_argument('--symbol', type=str, required=True, help='Instrument symbol')
    parser.add_argument('--interval', type=str, default='1d', help='Bar interval label')
    parser.add_argument('--output-dir', type=str, default='artifacts/baselines', help='Output directory')
    parser.add_argument('--seed', type=int, default=42, help='Random seed for random strategy')
    args = parser.parse_args(argv)

    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    bars = BarLoader(args.data_path).load_symbol(args.symbol, interval=args.interval)
    params = ParamsLoader()
    print(f"Loaded {len(bars)} bars for {args.symbol}")

    baselines = {}
    for mode in ('always_long', 'flat', 'random'):
        print(f"Running {mode}...")
        baselines[mode] = run_baseline(bars, mode, params, output_dir, seed=args.seed)
        print(f"  Trades: {baselines[mode].report.total_trades}")
        print(f"  Final cash: {baselines[mode].report.final_cash:,.2f}")

    summary_df = generate_summary(baselines, output_dir)
    print("\nBaseline Summary:")
    print(summary_df.to_string(index=False))

    naive = calculate_naive_return(bars, params.get('general', 'warmup_period'))
    print(f"\nNaive Buy & Hold price return: {naive * 100:.2f}%")
    return 0


if __name__ == '__main__':
    sys.exit(main())
