import math

import pandas as pd

from ltpcore.indicators import technical as ti

from conftest import make_bar


def test_ema_seeded_starts_with_sma():
    s = pd.Series([1.0, 2.0, 3.0, 4.0, 5.0])
    e = ti.ema_seeded(s, 3)
    assert math.isnan(e.iloc[0]) and math.isnan(e.iloc[1])
    assert e.iloc[2] == 2.0
    # (4 - 2) * 0.5 + 2
    assert e.iloc[3] == 3.0
    assert e.iloc[4] == 4.0


def test_ema_from_bars_needs_period_bars():
    bars = [make_bar(i, 1, 1, 1, 1) for i in range(5)]
    assert ti.ema_from_bars(bars, 9) == 0.0
    assert ti.ema_from_bars(bars, 5) == 1.0


def test_sma_and_rsi_shapes():
    s = pd.Series([float(x) for x in range(1, 41)])
    assert ti.sma(s, 20).iloc[-1] == sum(range(21, 41)) / 20
    r = ti.rsi(s, 14)
    assert r.iloc[-1] > 95
    m = ti.macd(s)
    assert set(m) == {"macd", "signal", "histogram"}
    assert m["macd"].iloc[-1] > 0


def test_mean_true_range_skips_first_row():
    bars = [make_bar(0, 10, 11, 9, 10), make_bar(1, 10, 12, 10, 11), make_bar(2, 11, 11, 8, 9)]
    df = ti.bars_to_df(bars)
    # TR rows 1..2: max(2, 2, 0) = 2 and max(3, 0, 3) = 3
    assert ti.mean_true_range(df) == 2.5
    assert ti.mean_true_range(df.iloc[:1]) == 0.0
