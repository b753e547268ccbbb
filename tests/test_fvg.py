from ltpcore.features.fvg import analyze_fvgs, detect_fvgs, fill_percent, gap_strength, history_start_ms

from conftest import make_bar


def _bullish_triple(t0=0):
    return [
        make_bar(t0 + 1, 9.2, 10.0, 9.0, 9.8),
        make_bar(t0 + 2, 9.8, 10.6, 9.7, 10.3),
        make_bar(t0 + 3, 10.6, 11.0, 10.5, 10.9),
    ]


def _bearish_triple(t0=0):
    return [
        make_bar(t0 + 1, 20.5, 21.0, 20.0, 20.2),
        make_bar(t0 + 2, 20.2, 20.3, 19.2, 19.5),
        make_bar(t0 + 3, 19.0, 19.0, 18.0, 18.4),
    ]


def test_bullish_gap_geometry():
    gaps = detect_fvgs(_bullish_triple(), "5m", current_price=12.0)
    assert len(gaps) == 1
    g = gaps[0]
    assert g.type == "bullish"
    assert g.top_price == 10.5 and g.bottom_price == 10.0
    assert g.gap_size == 0.5
    assert g.mid_price == 10.25
    assert g.fill_percent == 0.0 and not g.filled
    assert g.id == "fvg_bullish_5m_2"
    assert g.start_time == 1 and g.end_time == 3
    assert g.formation_candles.candle2.close == 10.3


def test_bearish_gap_geometry():
    gaps = detect_fvgs(_bearish_triple(), "1h", current_price=15.0)
    assert len(gaps) == 1
    g = gaps[0]
    assert g.type == "bearish"
    assert g.top_price == 20.0 and g.bottom_price == 19.0


def test_partial_fill_and_filled_gaps_dropped():
    g = detect_fvgs(_bullish_triple(), "5m", current_price=10.25)[0]
    assert g.fill_percent == 50.0
    assert detect_fvgs(_bullish_triple(), "5m", current_price=9.0) == []


def test_fill_percent_is_clamped():
    for price in (0.0, 9.99, 10.0, 10.2, 10.5, 11.0, 1e9):
        for kind in ("bullish", "bearish"):
            assert 0.0 <= fill_percent(kind, 10.5, 10.0, price) <= 100.0


def test_tiny_gap_ignored():
    bars = [
        make_bar(1, 100, 100.0, 99, 100),
        make_bar(2, 100, 100.1, 99.9, 100),
        make_bar(3, 100, 100.2, 100.04, 100.1),
    ]
    assert detect_fvgs(bars, "5m", 101.0, min_gap_percent=0.05) == []


def test_needs_three_bars_and_sorts_input():
    assert detect_fvgs(_bullish_triple()[:2], "5m", 12.0) == []
    shuffled = list(reversed(_bullish_triple()))
    assert len(detect_fvgs(shuffled, "5m", 12.0)) == 1


def test_at_most_ten_nearest_first():
    bars = [make_bar(i, 10 + i, 10.5 + i, 10 + i, 10.25 + i) for i in range(30)]
    gaps = detect_fvgs(bars, "5m", current_price=100.0, min_gap_percent=0.05)
    assert len(gaps) == 10
    assert gaps[0].end_time == 29
    assert all(g.type == "bullish" for g in gaps)


def test_gap_strength_scoring():
    assert gap_strength(2.0, 1.0, 2000, 1000) == "strong"
    assert gap_strength(1.0, 1.0, 1000, 1000) == "medium"
    assert gap_strength(5.0, 0.0, 1000, 1000) == "weak"
    assert gap_strength(1.0, 1.0, 1000, 0) == "weak"


def test_history_start():
    assert history_start_ms(10_000_000, "minute", 5, 100) == 10_000_000 - 100 * 5 * 60_000
    assert history_start_ms(0, "day", 1, 30) == -30 * 86_400_000


def test_analyze_fvgs_summary():
    a = analyze_fvgs("SPY", 12.0, {"5m": _bullish_triple()})
    assert set(a.fvgs) == {"5m", "15m", "1h", "4h", "daily"}
    assert a.nearest_bullish_fvg.mid_price == 10.25
    assert a.nearest_bearish_fvg is None
    assert a.trading_context.bearish_targets == [10.25]
    assert a.trading_context.support_zones[0].top == 10.5
    assert a.trading_context.summary == (
        "Found 1 unfilled FVGs (1 bullish, 0 bearish). Nearest bullish FVG at $10.25 (12.50% below)."
    )


def test_analyze_fvgs_nothing_found():
    a = analyze_fvgs("SPY", 12.0, {})
    assert a.trading_context.summary == "No significant Fair Value Gaps detected near current price for SPY."
    assert a.nearest_bullish_fvg is None and a.trading_context.bullish_targets == []
