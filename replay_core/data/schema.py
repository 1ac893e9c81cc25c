"""Data schema validation for bar inputs"""
from typing import List
import numpy as np
import pandas as pd


class BarSchema:
    """Validates OHLCV bar frames before they become a BarSeries"""

    REQUIRED_FIELDS = ['ts', 'open', 'high', 'low', 'close', 'volume']
    PRICE_FIELDS = ['open', 'high', 'low', 'close']
    NUMERIC_FIELDS = PRICE_FIELDS + ['volume']

    # Candle record order used by the historical candle API: o, c, h, l, v, t
    RECORD_FIELDS = ['open', 'close', 'high', 'low', 'volume', 'ts']

    @staticmethod
    def validate_columns(df: pd.DataFrame, symbol: str) -> List[str]:
        """Return list of missing required fields"""
        return [
            f"{symbol}: Missing required field '{field}'"
            for field in BarSchema.REQUIRED_FIELDS
            if field not in df.columns
        ]

    @staticmethod
    def validate_numeric(raw: pd.DataFrame, coerced: pd.DataFrame, symbol: str) -> List[str]:
        """
        Compare raw values with their numeric coercion.

        A field that fails to parse, or parses to NaN/inf, is malformed.
        Prices must be > 0, volume >= 0, and high >= low.
        """
        errors = []
        for field in BarSchema.NUMERIC_FIELDS:
            values = coerced[field].to_numpy(dtype=float)
            bad = ~np.isfinite(values)
            for row in np.flatnonzero(bad):
                errors.append(f"{symbol}: row {row}: malformed '{field}' value {raw[field].iloc[row]!r}")

        for field in BarSchema.PRICE_FIELDS:
            for row in np.flatnonzero(coerced[field].to_numpy(dtype=float) <= 0):
                errors.append(f"{symbol}: row {row}: '{field}' must be > 0, got {coerced[field].iloc[row]}")

        for row in np.flatnonzero(coerced['volume'].to_numpy(dtype=float) < 0):
            errors.append(f"{symbol}: row {row}: 'volume' must be >= 0, got {coerced['volume'].iloc[row]}")

        for row in np.flatnonzero((coerced['high'] < coerced['low']).to_numpy()):
            errors.append(
                f"{symbol}: row {row}: high {coerced['high'].iloc[row]} below low {coerced['low'].iloc[row]}"
            )
        return errors

    @staticmethod
    def validate_ordering(ts: pd.Series, symbol: str) -> List[str]:
        """Timestamps must be present and strictly increasing"""
        errors = []
        for row in np.flatnonzero(ts.isna().to_numpy()):
            errors.append(f"{symbol}: row {row}: malformed 'ts'")
        if errors:
            return errors

        diffs = ts.diff().iloc[1:]
        for pos in np.flatnonzero((diffs <= pd.Timedelta(0)).to_numpy()):
            row = pos + 1
            kind = 'duplicate' if ts.iloc[row] == ts.iloc[row - 1] else 'out-of-order'
            errors.append(f"{symbol}: row {row}: {kind} timestamp {ts.iloc[row]}")
        return errors
