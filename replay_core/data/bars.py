"""Bars and the read-only BarSeries the replay loop walks through"""
from dataclasses import dataclass
from datetime import datetime
from numbers import Number
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from replay_core.data.schema import BarSchema
from replay_core.errors import DataFormatError, InsufficientDataError


# Integer timestamps in this range are calendar dates (YYYYMMDD), anything else is unix seconds
_YYYYMMDD_MIN = 19000101
_YYYYMMDD_MAX = 29991231


@dataclass(frozen=True)
class Bar:
    """One OHLCV sample"""
    ts: pd.Timestamp
    open: float
    high: float
    low: float
    close: float
    volume: float
    symbol: str = ""


def parse_bar_timestamp(value: Any) -> pd.Timestamp:
    """
    Convert a raw bar timestamp to a UTC pd.Timestamp.

    Accepts datetimes, ISO strings, unix seconds and YYYYMMDD integers.
    Raises DataFormatError for anything else.
    """
    if isinstance(value, bool) or value is None:
        raise DataFormatError(f"malformed timestamp {value!r}")

    try:
        if isinstance(value, (pd.Timestamp, datetime, np.datetime64)):
            ts = pd.Timestamp(value)
        elif isinstance(value, Number):
            if not np.isfinite(value) or float(value) != int(value):
                raise DataFormatError(f"malformed timestamp {value!r}")
            ts = _timestamp_from_int(int(value))
        elif isinstance(value, str):
            text = value.strip()
            if text.isdigit():
                ts = _timestamp_from_int(int(text))
            else:
                ts = pd.Timestamp(text)
        else:
            raise DataFormatError(f"malformed timestamp {value!r}")
    except (ValueError, OverflowError) as exc:
        raise DataFormatError(f"malformed timestamp {value!r}: {exc}") from exc

    if pd.isna(ts):
        raise DataFormatError(f"malformed timestamp {value!r}")
    if ts.tzinfo is None:
        return ts.tz_localize('UTC')
    return ts.tz_convert('UTC')


def _timestamp_from_int(value: int) -> pd.Timestamp:
    if _YYYYMMDD_MIN <= value <= _YYYYMMDD_MAX:
        return pd.Timestamp(pd.to_datetime(str(value), format='%Y%m%d'))
    return pd.Timestamp(value, unit='s', tz='UTC')


class BarSeries:
    """
    Ordered, read-only OHLCV bars for one instrument.

    Backed by a private DataFrame that is never handed out; accessors return
    Bars, copies, or new BarSeries.
    """

    def __init__(self, symbol: str, frame: pd.DataFrame):
        # Trusted constructor: frame must already be validated and typed.
        # Use from_frame / from_records / from_candles for raw input.
        self.symbol = symbol
        self._df = frame.reset_index(drop=True)

    @classmethod
    def from_frame(cls, symbol: str, df: pd.DataFrame) -> 'BarSeries':
        """Validate a DataFrame with ts/open/high/low/close/volume columns"""
        missing = BarSchema.validate_columns(df, symbol)
        if missing:
            raise DataFormatError("; ".join(missing))

        raw = df[BarSchema.REQUIRED_FIELDS].reset_index(drop=True)
        errors: List[str] = []

        coerced = pd.DataFrame({
            field: pd.to_numeric(raw[field], errors='coerce').astype(float)
            for field in BarSchema.NUMERIC_FIELDS
        })
        errors.extend(BarSchema.validate_numeric(raw, coerced, symbol))

        ts, ts_errors = _coerce_timestamps(raw['ts'], symbol)
        errors.extend(ts_errors)
        if not ts_errors:
            errors.extend(BarSchema.validate_ordering(ts, symbol))

        if errors:
            raise DataFormatError("; ".join(errors))

        frame = coerced
        frame.insert(0, 'ts', ts)
        return cls(symbol, frame)

    @classmethod
    def from_records(cls, symbol: str, records: Sequence[Sequence[Any]]) -> 'BarSeries':
        """
        Load flat per-bar records in candle order: [open, close, high, low, volume, ts].
        """
        for row, record in enumerate(records):
            if len(record) != len(BarSchema.RECORD_FIELDS):
                raise DataFormatError(
                    f"{symbol}: row {row}: expected {len(BarSchema.RECORD_FIELDS)} fields, got {len(record)}"
                )
        df = pd.DataFrame(list(records), columns=BarSchema.RECORD_FIELDS, dtype=object)
        return cls.from_frame(symbol, df)

    @classmethod
    def from_candles(cls, symbol: str, payload: Dict[str, Any]) -> 'BarSeries':
        """Load a candle API payload: {"c": [{"o", "c", "h", "l", "v", "t"}, ...], "s": status}"""
        candles = payload.get('c')
        if candles is None:
            raise DataFormatError(f"{symbol}: candle payload has no 'c' list (status={payload.get('s')!r})")

        records = []
        for row, candle in enumerate(candles):
            try:
                records.append([candle['o'], candle['c'], candle['h'], candle['l'], candle['v'], candle['t']])
            except (KeyError, TypeError) as exc:
                raise DataFormatError(f"{symbol}: row {row}: malformed candle {candle!r}") from exc
        return cls.from_records(symbol, records)

    def __len__(self) -> int:
        return len(self._df)

    def __iter__(self) -> Iterator[Bar]:
        for i in range(len(self._df)):
            yield self.at(i)

    def __repr__(self) -> str:
        return f"BarSeries(symbol={self.symbol!r}, bars={len(self)}, start={self.start}, end={self.end})"

    def length(self) -> int:
        return len(self)

    def at(self, i: int) -> Bar:
        """Bar at position i (0-based, no negative indexing)"""
        if not 0 <= i < len(self._df):
            raise IndexError(f"bar index {i} out of range for {len(self._df)} bars")
        row = self._df.iloc[i]
        return Bar(
            ts=row['ts'],
            open=float(row['open']),
            high=float(row['high']),
            low=float(row['low']),
            close=float(row['close']),
            volume=float(row['volume']),
            symbol=self.symbol,
        )

    def slice(self, start: int, stop: int) -> 'BarSeries':
        """Bars [start, stop) as an independent series"""
        if start < 0 or stop < 0:
            raise IndexError(f"negative slice bounds ({start}, {stop})")
        return BarSeries(self.symbol, self._df.iloc[start:stop].copy())

    def window(self, n: int) -> 'BarSeries':
        """Last n bars; raises InsufficientDataError when fewer are available"""
        if n < 0:
            raise ValueError(f"window size must be >= 0, got {n}")
        if n > len(self._df):
            raise InsufficientDataError(n, len(self._df))
        return self.slice(len(self._df) - n, len(self._df))

    def between(self, start: Optional[pd.Timestamp] = None, end: Optional[pd.Timestamp] = None) -> 'BarSeries':
        """Bars with start <= ts <= end (either bound optional)"""
        mask = pd.Series(True, index=self._df.index)
        if start is not None:
            mask &= self._df['ts'] >= parse_bar_timestamp(start)
        if end is not None:
            mask &= self._df['ts'] <= parse_bar_timestamp(end)
        return BarSeries(self.symbol, self._df[mask].copy())

    @property
    def closes(self) -> pd.Series:
        return self._df['close'].copy()

    @property
    def start(self) -> Optional[pd.Timestamp]:
        return self._df['ts'].iloc[0] if len(self._df) else None

    @property
    def end(self) -> Optional[pd.Timestamp]:
        return self._df['ts'].iloc[-1] if len(self._df) else None

    def to_frame(self) -> pd.DataFrame:
        return self._df.copy()


def _coerce_timestamps(raw: pd.Series, symbol: str) -> Tuple[pd.Series, List[str]]:
    if pd.api.types.is_datetime64_any_dtype(raw):
        ts = pd.to_datetime(raw, utc=True)
        errors = [f"{symbol}: row {row}: malformed 'ts'" for row in np.flatnonzero(ts.isna().to_numpy())]
        return ts, errors

    parsed = []
    errors = []
    for row, value in enumerate(raw):
        try:
            parsed.append(parse_bar_timestamp(value))
        except DataFormatError as exc:
            errors.append(f"{symbol}: row {row}: {exc}")
            parsed.append(pd.NaT)
    return pd.Series(pd.to_datetime(parsed, utc=True), name='ts'), errors
