"""Technical indicators used by the bundled strategies: SMA, EMA, ATR, ATR channels"""
import pandas as pd
import numpy as np

from replay_core.errors import DataFormatError


def ema(series: pd.Series, period: int) -> pd.Series:
    """Exponential Moving Average"""
    return series.ewm(span=period, adjust=False).mean()


def sma(series: pd.Series, period: int) -> pd.Series:
    """Simple Moving Average"""
    return series.rolling(window=period).mean()


def true_range(high: pd.Series, low: pd.Series, close: pd.Series) -> pd.Series:
    """True range; the first bar has no previous close and uses high - low"""
    tr1 = high - low
    tr2 = abs(high - close.shift(1))
    tr3 = abs(low - close.shift(1))
    return pd.concat([tr1, tr2, tr3], axis=1).max(axis=1)


def atr(high: pd.Series, low: pd.Series, close: pd.Series, period: int = 14) -> pd.Series:
    """Average True Range (exponential smoothing)"""
    return true_range(high, low, close).ewm(span=period, adjust=False).mean()


def atr_channels(df: pd.DataFrame, period: int = 14, multiplier: float = 2.0) -> pd.DataFrame:
    """
    ATR channels around the close.

    ATR here is the simple average of true range over `period` bars and is 0
    until `period` bars are available. Returns a copy of df with ATR,
    UpperChannel and LowerChannel columns.
    """
    missing = [col for col in ('high', 'low', 'close') if col not in df.columns]
    if missing:
        raise DataFormatError(f"ATR channels need columns high, low, close; missing {missing}")
    if period <= 0:
        raise ValueError(f"period must be positive, got {period}")

    result = df.copy()
    tr = true_range(result['high'], result['low'], result['close'])
    result['ATR'] = tr.rolling(window=period).mean().fillna(0.0)
    result['UpperChannel'] = result['close'] + result['ATR'] * multiplier
    result['LowerChannel'] = result['close'] - result['ATR'] * multiplier
    return result


def last_sma(closes: pd.Series, period: int) -> float:
    """SMA of the last `period` closes as a plain float (NaN if too short)"""
    if len(closes) < period:
        return np.nan
    return float(closes.iloc[-period:].mean())
