from datetime import datetime, timezone

import pytest

from ltpcore.rules.coaching import RULES, CoachingInterventionEngine, InterventionRule
from ltpcore.rules.voice import DUMB_SHIT_CLOSER, DUMB_SHIT_PREFIXES, WARNING_PREFIXES
from ltpcore.schemas.coaching import InterventionContext, TradeIntent, UserProfileContext
from ltpcore.schemas.context import MarketBreadth, MarketHotContext


def _intent(direction="long", stop_loss=99.0):
    return TradeIntent(symbol="SPY", direction=direction, price=100.0, size=10, stop_loss=stop_loss)


def _ctx(**kw):
    kw.setdefault("trade_intent", _intent())
    return InterventionContext(**kw)


@pytest.fixture
def engine():
    return CoachingInterventionEngine()


def test_rules_run_in_priority_order(engine):
    prios = [r.priority for r in engine.rules]
    assert prios == sorted(prios, reverse=True)
    assert engine.rules[0].id == "mental_capital_critical"
    # equal priority keeps table order
    ids = [r.id for r in engine.rules]
    assert ids.index("breadth_vs_long") < ids.index("breadth_vs_short")


def test_depleted_mental_capital_blocks(engine):
    r = engine.evaluate_trade(_ctx(user_profile=UserProfileContext(mental_capital=25)), selector=0)
    assert not r.approved
    assert r.severity == "dumb_shit"
    assert r.type == "mental_capital"
    assert r.message.startswith(DUMB_SHIT_PREFIXES["mental_capital"][0])
    assert r.message.endswith(DUMB_SHIT_CLOSER)
    assert "25/100" in r.message


def test_strong_bearish_breadth_blocks_longs(engine):
    breadth = MarketBreadth.model_validate({"add": {"value": -1500, "trend": "strong_bearish"}})
    r = engine.evaluate_trade(_ctx(breadth=breadth), selector=1)
    assert not r.approved
    assert r.type == "market_breadth"
    assert r.title == "DON'T FIGHT THE RIVER"
    assert "ADD is -1500." in r.message
    assert r.related_lesson.lesson == "market-structure"

    short = engine.evaluate_trade(_ctx(breadth=breadth, trade_intent=_intent("short")))
    assert short.approved


def test_imminent_event_blocks_only_while_upcoming(engine):
    def hot(minutes):
        return MarketHotContext.model_validate(
            {
                "calendar": {
                    "isEventImminent": True,
                    "imminentEvent": {"event": "FOMC", "impact": "high", "minutesUntilEvent": minutes},
                }
            }
        )

    r = engine.evaluate_trade(_ctx(hot_context=hot(10)))
    assert not r.approved and r.title == "FOMC IN 10 MINUTES"
    assert engine.evaluate_trade(_ctx(hot_context=hot(0))).approved


def test_clean_trade_is_affirmed(engine):
    r = engine.evaluate_trade(_ctx(user_profile=UserProfileContext()), selector=0)
    assert r.approved
    assert r.title == "TRADE APPROVED"
    assert r.message == "✅ Good discipline. Sticking to your rules. This is how winners trade."
    assert r.warnings == []


def test_nudges_collect_warnings(engine):
    breadth = MarketBreadth(trading_bias="caution", health_score=45)
    r = engine.evaluate_trade(_ctx(breadth=breadth, trade_intent=_intent(stop_loss=None)), selector=0)
    assert r.approved
    assert r.title == "WHERE IS YOUR STOP?"
    assert r.severity == "nudge"
    assert r.message.startswith("💭 Quick thought - No stop loss set.")
    assert r.warnings == ["Trade submitted without stop loss", "Market conditions favor smaller size or patience"]


def test_warning_outranks_earlier_nudge(engine):
    ctx = _ctx(user_profile=UserProfileContext(), today_trade_count=3, trade_intent=_intent(stop_loss=None))
    r = engine.evaluate_trade(ctx, selector=0)
    assert r.approved
    assert r.title == "OVERTRADING ALERT"
    assert r.message.startswith(WARNING_PREFIXES["user_weakness"][0] + "\n\n")
    assert r.warnings == ["Trade submitted without stop loss", "Daily trade limit reached"]


def test_escalating_limits_block(engine):
    assert not engine.evaluate_trade(_ctx(user_profile=UserProfileContext(), today_trade_count=5)).approved
    assert not engine.evaluate_trade(
        _ctx(user_profile=UserProfileContext(consecutive_losses=3, weaknesses=["revenge_trading"]))
    ).approved

    warn = engine.evaluate_trade(_ctx(user_profile=UserProfileContext(), today_pnl=-3.0))
    assert warn.approved and warn.title == "DAILY LOSS LIMIT"
    assert "You're down 3.00% today. Your max daily loss is 3%." in warn.message

    blocked = engine.evaluate_trade(_ctx(user_profile=UserProfileContext(), today_pnl=-4.5))
    assert not blocked.approved and blocked.blocked_reason == "Daily loss limit exceeded"


def test_custom_rule_table():
    def always(ctx):
        return None

    engine = CoachingInterventionEngine(rules=[InterventionRule("noop", "Noop", 1, always)])
    assert engine.evaluate_trade(_ctx(user_profile=UserProfileContext(mental_capital=0))).approved
    assert len(RULES) == 11


def test_check_weakness(engine):
    ctx = _ctx(user_profile=UserProfileContext(consecutive_losses=2, weaknesses=["revenge_trading"]))
    r = engine.check_weakness("revenge_trading", ctx, selector=0)
    assert r.approved and r.severity == "warning"
    assert r.warnings == ["Proceed with extreme caution and reduced size"]

    no_stop = engine.check_weakness("no_stop_loss", _ctx(trade_intent=_intent(stop_loss=None)))
    assert no_stop.title == "WHERE IS YOUR STOP?"
    assert engine.check_weakness("fomo", ctx) is None


def test_active_warnings(engine):
    now = datetime(2025, 1, 2, 15, 0, tzinfo=timezone.utc)
    ms = int(now.timestamp() * 1000)
    hot = MarketHotContext.model_validate(
        {
            "activeWarnings": [
                {"id": "vix", "timestamp": "t", "severity": "info", "type": "volatility", "title": "VIX", "message": "m"}
            ]
        }
    )
    ctx = InterventionContext(user_profile=UserProfileContext(mental_capital=40, consecutive_losses=3), hot_context=hot)
    warnings = engine.get_active_warnings(ctx, now=now)
    assert [w.id for w in warnings] == [f"mental_{ms}", f"losses_{ms}", "vix"]
    assert warnings[0].severity == "warning" and not warnings[0].action_required
    assert warnings[1].severity == "critical"
    assert warnings[1].title == "3 Consecutive Losses"

    assert engine.get_active_warnings(InterventionContext()) == []


def test_market_commentary(engine):
    assert engine.get_market_commentary(None) == "Market data unavailable. Trade with normal caution."
    bull = MarketBreadth(trading_bias="favor_longs", health_score=80)
    assert engine.get_market_commentary(bull).startswith("🟢 Market's healthy.")
