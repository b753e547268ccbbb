import random

from ltpcore.rules.voice import (
    AFFIRMATIONS,
    DUMB_SHIT_CLOSER,
    DUMB_SHIT_PREFIXES,
    NUDGE_PREFIXES,
    WARNING_PREFIXES,
    VoiceSynthesizer,
    pick,
)
from ltpcore.schemas.context import MarketBreadth


def test_pick_wraps_selector():
    assert pick(["a", "b", "c"], 4) == "b"


def test_synthesize_by_severity():
    v = VoiceSynthesizer()
    assert v.synthesize("Hold on.", "nudge", "timing", selector=1) == f"{NUDGE_PREFIXES[1]} Hold on."
    assert v.synthesize("Careful.", "warning", "timing", selector=0) == f"{WARNING_PREFIXES['timing'][0]}\n\nCareful."
    ds = v.synthesize("No.", "dumb_shit", "risk_violation", selector=3)
    assert ds == f"{DUMB_SHIT_PREFIXES['risk_violation'][1]}\n\nNo.\n\n{DUMB_SHIT_CLOSER}"


def test_unknown_type_uses_trade_validation_phrasing():
    v = VoiceSynthesizer()
    out = v.synthesize("x", "warning", "not_a_type", selector=0)
    assert out.startswith(WARNING_PREFIXES["trade_validation"][0])


def test_default_selection_is_deterministic():
    v = VoiceSynthesizer()
    assert v.generate_affirmation("Waiting") == AFFIRMATIONS[0].format(b="Waiting")
    seeded = [VoiceSynthesizer(rng=random.Random(7)).generate_affirmation("x") for _ in range(2)]
    assert seeded[0] == seeded[1]


def test_market_commentary_buckets():
    v = VoiceSynthesizer()
    assert v.generate_market_commentary(MarketBreadth(trading_bias="favor_shorts", health_score=20)).startswith(
        "🔴 Market's weak."
    )
    assert v.generate_market_commentary(MarketBreadth(trading_bias="caution")).startswith("🟡 Mixed signals.")
    # favor_longs without health falls through to neutral
    assert v.generate_market_commentary(MarketBreadth(trading_bias="favor_longs", health_score=60)).startswith(
        "Market's neutral."
    )
