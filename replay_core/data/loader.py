"""Bar file loader for deterministic backtesting"""
from pathlib import Path
from typing import Dict, Optional, List
import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq

from replay_core.data.bars import BarSeries
from replay_core.errors import DataFormatError


class BarLoader:
    """Loads and validates bar files (CSV/Parquet) named <SYMBOL>_<interval>.<ext>"""

    def __init__(self, data_path: str, start_ts: Optional[pd.Timestamp] = None, end_ts: Optional[pd.Timestamp] = None):
        self.data_path = Path(data_path)
        if not self.data_path.exists():
            raise FileNotFoundError(f"Data path does not exist: {data_path}")

        self._date_filter = (start_ts, end_ts)
        self._bars: Dict[str, BarSeries] = {}

    def bar_path(self, symbol: str, interval: str) -> Optional[Path]:
        """CSV wins over Parquet when both exist"""
        for suffix in ('.csv', '.parquet'):
            path = self.data_path / f"{symbol}_{interval}{suffix}"
            if path.exists():
                return path
        return None

    def load_symbol(self, symbol: str, interval: str = '1d') -> BarSeries:
        """
        Load bars for a symbol.

        Raises FileNotFoundError when no file exists and DataFormatError when
        the file content is malformed. Nothing is cached for a failed load.
        """
        path = self.bar_path(symbol, interval)
        if path is None:
            raise FileNotFoundError(f"{symbol}: no {interval} bar file in {self.data_path}")

        if path.suffix == '.csv':
            try:
                df = pd.read_csv(path)
            except (pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
                raise DataFormatError(f"{symbol}: cannot parse {path.name}: {exc}") from exc
        else:
            try:
                df = pq.read_table(path).to_pandas()
            except pa.ArrowInvalid as exc:
                raise DataFormatError(f"{symbol}: cannot parse {path.name}: {exc}") from exc

        series = BarSeries.from_frame(symbol, df)
        start_ts, end_ts = self._date_filter
        if start_ts is not None or end_ts is not None:
            series = series.between(start_ts, end_ts)

        self._bars[symbol] = series
        return series

    def get_bars(self, symbol: str) -> Optional[BarSeries]:
        return self._bars.get(symbol)

    def get_symbols(self) -> List[str]:
        return list(self._bars.keys())

    def get_time_range(self) -> tuple:
        """Get (start_ts, end_ts) across all loaded symbols"""
        starts = [s.start for s in self._bars.values() if len(s)]
        ends = [s.end for s in self._bars.values() if len(s)]
        if not starts:
            return None, None
        return min(starts), max(ends)


def save_bars(series: BarSeries, data_path: Path, interval: str = '1d', fmt: str = 'csv') -> Path:
    """Write a series in the layout BarLoader reads"""
    data_path = Path(data_path)
    data_path.mkdir(parents=True, exist_ok=True)
    df = series.to_frame()
    if fmt == 'csv':
        path = data_path / f"{series.symbol}_{interval}.csv"
        df.to_csv(path, index=False)
    elif fmt == 'parquet':
        path = data_path / f"{series.symbol}_{interval}.parquet"
        pq.write_table(pa.Table.from_pandas(df, preserve_index=False), path)
    else:
        raise ValueError(f"Unknown bar file format: {fmt}")
    return path
