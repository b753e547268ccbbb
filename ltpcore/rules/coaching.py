from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional

from loguru import logger

from ..schemas.coaching import InterventionContext, InterventionResult, RelatedLesson
from ..schemas.context import MarketBreadth, ProactiveWarning
from .voice import VoiceSynthesizer

DEFAULT_MAX_DAILY_TRADES = 3
DEFAULT_MAX_DAILY_LOSS_PCT = 3.0


def _num(v: float) -> str:
    return format(v, "g")


@dataclass(frozen=True)
class InterventionRule:
    id: str
    name: str
    priority: int  # higher runs first
    check: Callable[[InterventionContext], Optional[InterventionResult]]


def _mental_capital_critical(ctx: InterventionContext) -> Optional[InterventionResult]:
    up = ctx.user_profile
    if up is None or up.mental_capital > 30:
        return None
    mc = up.mental_capital
    return InterventionResult(
        approved=False,
        severity="dumb_shit",
        type="mental_capital",
        title="MENTAL CAPITAL DEPLETED",
        message=(
            f"Your mental capital is at {mc}/100. You're not in the right headspace to trade. "
            "The market will be here tomorrow. You won't if you blow up today."
        ),
        blocked_reason="Mental capital below safe threshold",
        technical_reason=f"Mental capital: {mc}",
        suggested_action="Step away from the screen. Journal what happened. Reset for tomorrow.",
    )


def _imminent_event(ctx: InterventionContext) -> Optional[InterventionResult]:
    cal = ctx.hot_context.calendar if ctx.hot_context else None
    if cal is None or not cal.is_event_imminent:
        return None
    ev = cal.imminent_event
    if ev is None or ev.impact != "high" or ev.minutes_until_event <= 0:
        return None
    m = _num(ev.minutes_until_event)
    return InterventionResult(
        approved=False,
        severity="dumb_shit",
        type="economic_event",
        title=f"{ev.event} IN {m} MINUTES",
        message=(
            f"{ev.event} drops in {m} minutes. This can MOVE the market 1-2% in seconds. "
            "Flatten positions or stay flat. Don't gamble."
        ),
        blocked_reason=f"High-impact event imminent: {ev.event}",
        technical_reason=f"Event: {ev.event}, Minutes: {m}",
        suggested_action="Flatten all positions. Wait for the dust to settle.",
    )


def _breadth_vs_long(ctx: InterventionContext) -> Optional[InterventionResult]:
    b, intent = ctx.breadth, ctx.trade_intent
    if b is None or intent is None or intent.direction != "long" or b.add.trend != "strong_bearish":
        return None
    return InterventionResult(
        approved=False,
        severity="dumb_shit",
        type="market_breadth",
        title="DON'T FIGHT THE RIVER",
        message=(
            f"ADD is {_num(b.add.value)}. The market is TANKING. Every stock is getting sold. "
            f"You want to go LONG on {intent.symbol}? That's swimming upstream in a flood. The river will drown you."
        ),
        blocked_reason="Strong bearish breadth against long trade",
        technical_reason=f"ADD: {_num(b.add.value)}, VOLD: {_num(b.vold.value)}",
        suggested_action="Wait for ADD to turn or find a short setup instead.",
        related_lesson=RelatedLesson(
            module="analysis", lesson="market-structure", url="/curriculum/analysis/market-structure"
        ),
    )


def _breadth_vs_short(ctx: InterventionContext) -> Optional[InterventionResult]:
    b, intent = ctx.breadth, ctx.trade_intent
    if b is None or intent is None or intent.direction != "short" or b.add.trend != "strong_bullish":
        return None
    return InterventionResult(
        approved=False,
        severity="dumb_shit",
        type="market_breadth",
        title="BULLS ARE STAMPEDING",
        message=(
            f"ADD is +{_num(b.add.value)}. Everything is getting bid. You want to SHORT {intent.symbol}? "
            "You'll get your face ripped off. Don't short into strength."
        ),
        blocked_reason="Strong bullish breadth against short trade",
        technical_reason=f"ADD: {_num(b.add.value)}, VOLD: {_num(b.vold.value)}",
        suggested_action="Wait for ADD to turn or find a long setup instead.",
    )


def _revenge_trading(ctx: InterventionContext) -> Optional[InterventionResult]:
    up = ctx.user_profile
    if up is None or up.consecutive_losses < 2 or "revenge_trading" not in up.weaknesses:
        return None
    n = up.consecutive_losses
    block = n >= 3
    return InterventionResult(
        approved=not block,
        severity="dumb_shit" if block else "warning",
        type="user_weakness",
        title="REVENGE TRADING ALERT",
        message=(
            f"You've had {n} losses in a row. I know what you're thinking - "
            "\"I'll make it back with this next trade.\" That's REVENGE TRADING. "
            "That's how accounts blow up. The market took your money. Don't let it take MORE."
        ),
        technical_reason=f"Consecutive losses: {n}, Known weakness: revenge_trading",
        suggested_action="Step away. Come back fresh tomorrow. The market will be here.",
        warnings=(
            ["This trade is being blocked due to high revenge trading risk"]
            if block
            else ["Proceed with extreme caution and reduced size"]
        ),
        related_lesson=RelatedLesson(
            module="psychology", lesson="revenge-trading", url="/curriculum/psychology/revenge-trading"
        ),
    )


def _chasing_detection(ctx: InterventionContext) -> Optional[InterventionResult]:
    up = ctx.user_profile
    if up is None or "chasing_entries" not in up.weaknesses:
        return None
    # flags the known weakness only; entry-vs-level price context is not checked
    return InterventionResult(
        approved=True,
        severity="nudge",
        type="user_weakness",
        title="CHASE CHECK",
        message=(
            "I know you have a tendency to chase. Ask yourself: Am I entering at MY level, "
            "or am I chasing because it's moving? Missed trades are NOT losses. There's always another play."
        ),
        technical_reason="Known weakness: chasing_entries",
        warnings=["Review your entry - is this YOUR setup or FOMO?"],
        related_lesson=RelatedLesson(
            module="entries", lesson="patience-candles", url="/curriculum/entries/patience-candles"
        ),
    )


def _no_stop_loss(ctx: InterventionContext) -> Optional[InterventionResult]:
    intent = ctx.trade_intent
    if intent is None or intent.stop_loss:
        return None
    weak = ctx.user_profile is not None and "no_stop_loss" in ctx.user_profile.weaknesses
    return InterventionResult(
        approved=True,
        severity="warning" if weak else "nudge",
        type="trade_validation",
        title="WHERE IS YOUR STOP?",
        message=(
            "No stop loss set. Every trade MUST have a defined exit. Hope is not a strategy. "
            "Set your stop BEFORE entry - that's non-negotiable."
        ),
        technical_reason="Trade intent missing stop loss",
        suggested_action="Define your stop loss based on the setup structure",
        warnings=["Trade submitted without stop loss"],
        related_lesson=RelatedLesson(module="risk", lesson="stop-discipline", url="/curriculum/risk/stop-discipline"),
    )


def _overtrading(ctx: InterventionContext) -> Optional[InterventionResult]:
    up = ctx.user_profile
    if up is None:
        return None
    max_trades = up.max_daily_trades or DEFAULT_MAX_DAILY_TRADES
    n = ctx.today_trade_count
    if n < max_trades:
        return None
    block = n >= max_trades + 2
    return InterventionResult(
        approved=not block,
        severity="dumb_shit" if block else "warning",
        type="user_weakness",
        title="OVERTRADING ALERT",
        message=(
            f"You've already made {n} trades today. Your limit is {max_trades}. Quality over quantity. "
            "One good trade a day is all you need. That's the Rule of Ones."
        ),
        technical_reason=f"Trades today: {n}, Limit: {max_trades}",
        suggested_action="You're done for today. Journal what you've done and prep for tomorrow.",
        warnings=["Daily trade limit reached"],
    )


def _event_upcoming(ctx: InterventionContext) -> Optional[InterventionResult]:
    ev = ctx.hot_context.calendar.next_event if ctx.hot_context else None
    if ev is None or ev.impact != "high":
        return None
    if ev.minutes_until_event > 30 or ev.minutes_until_event <= 0:
        return None
    m = _num(ev.minutes_until_event)
    return InterventionResult(
        approved=True,
        severity="warning",
        type="economic_event",
        title=f"{ev.event} in {m} mins",
        message=(
            f"{ev.event} drops in {m} minutes. High-impact event. If you enter now, you're gambling "
            "through the event OR you need to be out before it hits. Make sure you have a plan."
        ),
        technical_reason=f"Event: {ev.event}, Minutes: {m}",
        suggested_action="Plan your exit before the event or wait for it to pass",
        warnings=["High-impact event approaching"],
    )


def _market_caution(ctx: InterventionContext) -> Optional[InterventionResult]:
    b = ctx.breadth
    if b is None or b.trading_bias != "caution":
        return None
    return InterventionResult(
        approved=True,
        severity="nudge",
        type="market_breadth",
        title="CHOPPY WATERS",
        message=(
            "Market breadth is mixed. ADD and VOLD are sending conflicting signals. This is chop. "
            "Size down or sit on your hands. Don't force trades in unclear conditions."
        ),
        technical_reason=f"Trading bias: caution, Health: {_num(b.health_score)}",
        suggested_action="Reduce position size by 50% or wait for clearer direction",
        warnings=["Market conditions favor smaller size or patience"],
    )


def _daily_loss(ctx: InterventionContext) -> Optional[InterventionResult]:
    up = ctx.user_profile
    if up is None:
        return None
    max_loss = up.max_daily_loss_percent or DEFAULT_MAX_DAILY_LOSS_PCT
    pnl = ctx.today_pnl  # percent
    if pnl > -max_loss:
        return None
    block = pnl <= -max_loss * 1.5
    return InterventionResult(
        approved=not block,
        severity="dumb_shit" if block else "warning",
        type="risk_violation",
        title="DAILY LOSS LIMIT",
        message=(
            f"You're down {abs(pnl):.2f}% today. Your max daily loss is {_num(max_loss)}%. "
            "You've hit your limit. The market beat you today. Come back fresh tomorrow."
        ),
        blocked_reason="Daily loss limit exceeded" if block else None,
        technical_reason=f"Daily P&L: {_num(pnl)}%, Limit: -{_num(max_loss)}%",
        suggested_action="Stop trading for the day. Review what went wrong.",
        warnings=["Daily loss limit reached"],
    )


RULES: List[InterventionRule] = [
    InterventionRule("mental_capital_critical", "Critical Mental Capital", 100, _mental_capital_critical),
    InterventionRule("imminent_event", "Imminent High-Impact Event", 95, _imminent_event),
    InterventionRule("breadth_vs_long", "Bearish Breadth vs Long Trade", 90, _breadth_vs_long),
    InterventionRule("breadth_vs_short", "Bullish Breadth vs Short Trade", 90, _breadth_vs_short),
    InterventionRule("revenge_trading", "Revenge Trading Detection", 85, _revenge_trading),
    InterventionRule("chasing_detection", "Chase Entry Detection", 80, _chasing_detection),
    InterventionRule("no_stop_loss", "No Stop Loss Check", 75, _no_stop_loss),
    InterventionRule("overtrading", "Overtrading Check", 70, _overtrading),
    InterventionRule("event_upcoming", "Upcoming Economic Event", 60, _event_upcoming),
    InterventionRule("market_caution", "Market Caution Mode", 50, _market_caution),
    InterventionRule("daily_loss_warning", "Daily Loss Check", 40, _daily_loss),
]


class CoachingInterventionEngine:
    """Priority-ordered rule table.

    The first blocking result wins outright. Otherwise the highest-severity
    non-blocking result is returned carrying every collected warning string,
    or an approval affirmation when nothing fired.
    """

    def __init__(self, rules: Optional[List[InterventionRule]] = None, voice: Optional[VoiceSynthesizer] = None):
        # sorted() is stable, so equal priorities keep table order
        self.rules = sorted(rules if rules is not None else RULES, key=lambda r: -r.priority)
        self.voice = voice or VoiceSynthesizer()

    def _voiced(self, result: InterventionResult, selector: Optional[int], **update) -> InterventionResult:
        message = self.voice.synthesize(result.message, result.severity, result.type, selector)
        return result.model_copy(update={"message": message, **update})

    def evaluate_trade(self, context: InterventionContext, selector: Optional[int] = None) -> InterventionResult:
        for rule in self.rules:
            result = rule.check(context)
            if result is not None and not result.approved:
                logger.info(f"[Coach] blocked by {rule.id}: {result.title}")
                return self._voiced(result, selector)

        warnings: List[str] = []
        primary: Optional[InterventionResult] = None
        for rule in self.rules:
            result = rule.check(context)
            if result is None or not result.approved or not result.warnings:
                continue
            warnings.extend(result.warnings)
            if primary is None or (result.severity == "warning" and primary.severity != "warning"):
                primary = result

        if primary is not None:
            return self._voiced(primary, selector, approved=True, warnings=warnings)

        return InterventionResult(
            approved=True,
            severity="nudge",
            type="trade_validation",
            title="TRADE APPROVED",
            message=self.voice.generate_affirmation("Sticking to your rules", selector),
            warnings=[],
        )

    def get_market_commentary(self, breadth: Optional[MarketBreadth]) -> str:
        if breadth is None:
            return "Market data unavailable. Trade with normal caution."
        return self.voice.generate_market_commentary(breadth)

    def get_active_warnings(self, context: InterventionContext, now: Optional[datetime] = None) -> List[ProactiveWarning]:
        now = now or datetime.now(timezone.utc)
        stamp = now.isoformat()
        ms = int(now.timestamp() * 1000)
        out: List[ProactiveWarning] = []

        up = context.user_profile
        if up is not None and up.mental_capital <= 50:
            depleted = up.mental_capital <= 30
            out.append(
                ProactiveWarning(
                    id=f"mental_{ms}",
                    timestamp=stamp,
                    severity="critical" if depleted else "warning",
                    type="pattern",
                    title="Mental Capital Low",
                    message=(
                        "Your mental capital is depleted. You shouldn't be trading today."
                        if depleted
                        else "Mental capital below optimal. Consider reduced size or sitting out."
                    ),
                    action_required=depleted,
                    suggested_action="Step away and reset",
                )
            )
        if up is not None and up.consecutive_losses >= 2:
            n = up.consecutive_losses
            out.append(
                ProactiveWarning(
                    id=f"losses_{ms}",
                    timestamp=stamp,
                    severity="critical" if n >= 3 else "warning",
                    type="pattern",
                    title=f"{n} Consecutive Losses",
                    message=f"You've had {n} losses in a row. Watch for revenge trading. The market will be here tomorrow.",
                    action_required=False,
                )
            )
        if context.hot_context is not None:
            out.extend(context.hot_context.active_warnings)
        return out

    def check_weakness(
        self,
        weakness: str,
        context: InterventionContext,
        selector: Optional[int] = None,
    ) -> Optional[InterventionResult]:
        """First firing rule whose id or name refers to ``weakness``."""
        phrase = weakness.replace("_", " ", 1)
        for rule in self.rules:
            if weakness not in rule.id and phrase not in rule.name.lower():
                continue
            result = rule.check(context)
            if result is not None:
                return self._voiced(result, selector)
        return None
