from __future__ import annotations

from typing import Dict, Sequence

import numpy as np
import pandas as pd
from ta.momentum import RSIIndicator
from ta.trend import MACD, SMAIndicator

from ..schemas.market import Bar


def bars_to_df(bars: Sequence[Bar]) -> pd.DataFrame:
    df = pd.DataFrame(
        [(b.t, b.open, b.high, b.low, b.close, b.volume) for b in bars],
        columns=["t", "open", "high", "low", "close", "volume"],
    )
    for c in ["open", "high", "low", "close", "volume"]:
        df[c] = df[c].astype(float)
    return df


def sma(series: pd.Series, period: int) -> pd.Series:
    return SMAIndicator(close=series, window=period, fillna=False).sma_indicator()


def ema_seeded(series: pd.Series, period: int) -> pd.Series:
    """EMA seeded with the SMA of the first ``period`` values, then
    ``ema = (x - ema) * 2/(period+1) + ema``. NaN until the seed exists."""
    vals = series.to_numpy(dtype=float)
    out = np.full(len(vals), np.nan)
    if period <= 0 or len(vals) < period:
        return pd.Series(out, index=series.index)
    k = 2.0 / (period + 1)
    e = float(vals[:period].mean())
    out[period - 1] = e
    for i in range(period, len(vals)):
        e = (vals[i] - e) * k + e
        out[i] = e
    return pd.Series(out, index=series.index)


def ema_from_bars(bars: Sequence[Bar], period: int) -> float:
    if len(bars) < period:
        return 0.0
    closes = pd.Series([b.close for b in bars], dtype=float)
    return float(ema_seeded(closes, period).iloc[-1])


def rsi(series: pd.Series, period: int = 14) -> pd.Series:
    return RSIIndicator(close=series, window=period, fillna=False).rsi()


def macd(series: pd.Series, fast: int = 12, slow: int = 26, signal: int = 9) -> Dict[str, pd.Series]:
    m = MACD(close=series, window_slow=slow, window_fast=fast, window_sign=signal)
    return {"macd": m.macd(), "signal": m.macd_signal(), "histogram": m.macd_diff()}


def true_range(df: pd.DataFrame) -> pd.Series:
    high, low, close = df["high"], df["low"], df["close"]
    prev_close = close.shift(1)
    return pd.concat(
        [
            (high - low),
            (high - prev_close).abs(),
            (low - prev_close).abs(),
        ],
        axis=1,
    ).max(axis=1)


def mean_true_range(df: pd.DataFrame) -> float:
    """Plain mean of the true range over rows 1..n (row 0 has no previous close)."""
    if len(df) < 2:
        return 0.0
    return float(true_range(df).iloc[1:].mean())
