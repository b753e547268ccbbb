import pytest

from ltpcore.analysis import ltp
from ltpcore.analysis.mtf import aggregate_mtf
from ltpcore.features.patience import detect_patience_candle
from ltpcore.schemas.analysis import PatienceCandle, TimeframeTrend
from ltpcore.schemas.market import KeyLevel

from conftest import make_bar, make_quote


def _patience_bars(last_close=100.1, last_volume=100.0):
    return [
        make_bar(1, 100, 102.5, 99.5, 102, 1000),
        make_bar(2, 102, 102.5, 99.5, 100, 1000),
        make_bar(3, 100, 100.5, 99.5, last_close, last_volume),
    ]


def test_patience_candle_confirmed_after_opposite_bar():
    c = detect_patience_candle(_patience_bars(), "5m")
    assert c.forming and c.confirmed
    assert c.direction == "bullish"
    assert c.timeframe == "5m"


def test_patience_candle_not_forming_on_big_volume():
    c = detect_patience_candle(_patience_bars(last_volume=5000), "15m")
    assert not c.forming and not c.confirmed


def test_patience_needs_three_bars():
    assert detect_patience_candle(_patience_bars()[:2]) is None


@pytest.mark.parametrize(
    "score,grade",
    [(100, "A+"), (90, "A+"), (89, "A"), (80, "A"), (79, "B"), (70, "B"), (69, "C"), (60, "C"), (59, "D"), (50, "D"), (49, "F"), (0, "F")],
)
def test_grade_boundaries(score, grade):
    assert ltp.grade_for(score) == grade


def test_setup_quality_mapping():
    assert ltp.setup_quality("A+") == "Strong"
    assert ltp.setup_quality("C") == "Moderate"
    assert ltp.setup_quality("D") == "Weak"
    assert ltp.setup_quality("F") == "No Setup"


def _level(type, distance, strength=80, price=100.0):
    return KeyLevel(type=type, price=price, strength=strength, distance=distance)


def test_level_proximity_and_score():
    assert ltp.level_proximity([]) == "between_levels"
    assert ltp.level_proximity([_level("pdh", 0.0)]) == "at_level"
    assert ltp.level_proximity([_level("pdh", -0.5)]) == "near_level"
    assert ltp.level_proximity([_level("pdh", 0.8)]) == "between_levels"
    assert ltp.level_score("at_level", [_level("sma200", 0.1, strength=95)]) == 95
    assert ltp.level_score("at_level", [_level("ema9", 0.1, strength=70)]) == 80
    assert ltp.level_score("near_level", []) == 65
    assert ltp.level_score("between_levels", []) == 50


def test_trend_scores():
    assert ltp.trend_alignment("bullish", "bearish") == "conflicting"
    assert ltp.trend_alignment("neutral", "bearish") == "aligned"
    assert ltp.trend_score(100, "aligned", "bullish") == 100
    assert ltp.trend_score(50, "aligned", "bullish") == 60
    assert ltp.trend_score(40, "conflicting", "bullish") == 30
    assert ltp.trend_score(50, "aligned", "neutral") == 50


def test_patience_score_caps_and_weights():
    confirmed = PatienceCandle(forming=True, confirmed=True, direction="bullish")
    forming = PatienceCandle(forming=True, confirmed=False, direction="bullish")
    assert ltp.patience_score(None, None, None) == 40
    assert ltp.patience_score(confirmed, confirmed, confirmed) == 100
    assert ltp.patience_score(forming, forming, forming) == 70


def test_confluence_weighting():
    assert ltp.confluence_score(100, 100, 100) == 100
    assert ltp.confluence_score(50, 50, 40) == 48


def test_confluence_rounds_halves_up():
    # 17.5 + 20 + 13 = 50.5
    assert ltp.confluence_score(50, 50, 52) == 51
    assert ltp.grade_for(ltp.confluence_score(50, 50, 52)) == "D"
    assert ltp.confluence_score(50, 50, 50) == 50


def test_price_position_and_sma200():
    assert ltp.price_position(100.0, None) == "at_vwap"
    assert ltp.price_position(100.2, 100.0) == "above_vwap"
    assert ltp.price_position(99.8, 100.0) == "below_vwap"
    assert ltp.price_vs_sma200(100.0, None) is None
    assert ltp.price_vs_sma200(100.0, 99.9) == "at"


def test_recommendation_texts():
    c15 = PatienceCandle(forming=True, confirmed=True, direction="bullish")
    assert (
        ltp.recommendation("Strong", "bullish", "at_level", "aligned", None, c15)
        == "BULLISH setup at key level. MTF aligned. Patience confirmed."
    )
    assert (
        ltp.recommendation("Moderate", "bearish", "between_levels", "conflicting", None, None)
        == "Potential bearish setup forming. Caution: MTF conflict. Not at a key level yet. Wait for better confluence."
    )
    assert (
        ltp.recommendation("Weak", "neutral", "between_levels", "aligned", None, None)
        == "Weak setup conditions. Price between levels. No trade recommended."
    )
    assert ltp.recommendation("No Setup", "neutral", "at_level", "aligned", None, None).startswith("No clear setup.")


def _tt(tf, trend):
    return TimeframeTrend(
        timeframe=tf,
        trend=trend,
        ema9=1.0,
        ema21=1.0,
        price_vs_ema9="above",
        price_vs_ema21="above",
        ema_alignment="bullish",
    )


def test_build_ltp_analysis_strong_setup():
    mtf = aggregate_mtf("SPY", 100.0, [_tt("5m", "bullish"), _tt("15m", "bullish"), _tt("daily", "bullish")])
    levels = [
        KeyLevel(type="sma200", price=100.1, strength=95, distance=-0.1),
        KeyLevel(type="pdh", price=101.0, strength=85, distance=-1.0),
    ]
    bars = _patience_bars()
    a = ltp.build_ltp_analysis("SPY", make_quote(price=100.0, vwap=99.0), levels, mtf, bars, bars, bars)

    assert a.levels.level_proximity == "at_level"
    assert a.levels.level_score == 95
    assert a.levels.vwap == 99.0
    assert a.levels.price_position == "above_vwap"
    assert a.levels.pdh == 101.0
    assert a.trend.daily_trend == "bullish"
    assert a.trend.trend_score == 100
    assert a.patience.patience_score == 100
    # 95 * .35 + 100 * .40 + 100 * .25
    assert a.confluence_score == 98
    assert a.grade == "A+"
    assert a.setup_quality == "Strong"
    assert a.recommendation == "BULLISH setup at key level. MTF aligned. Patience confirmed."
