"""Coach voice: wraps rule messages in severity/type specific phrasing.

Every choice is ``options[selector % len(options)]`` so output is pure given the
selector. Callers that want variety pass a random selector.
"""
from __future__ import annotations

import random
from typing import Dict, List, Optional, Sequence

from ..schemas.coaching import InterventionSeverity, InterventionType
from ..schemas.context import MarketBreadth

DUMB_SHIT_PREFIXES: Dict[str, List[str]] = {
    "market_breadth": [
        "🚨 DUMB SHIT ALERT. You're fighting the river.",
        "🛑 The market is telling you NO. Why aren't you listening?",
        "💀 This is how accounts blow up.",
    ],
    "economic_event": [
        "🚨 WHAT ARE YOU DOING? Fed speaks in minutes!",
        "💀 You want to hold through this? That's gambling, not trading.",
    ],
    "user_weakness": [
        "🚨 Here we go again. Same mistake, different day.",
        "💀 I've warned you about this before. STOP.",
        "🛑 This is YOUR pattern. Break it or it breaks you.",
    ],
    "mental_capital": [
        "🛑 STOP. Your head isn't right. Step away.",
        "💀 You're tilted. Every trade from here is revenge trading.",
        "🚨 Mental capital depleted. You're done for today.",
    ],
    "trade_validation": [
        "🛑 This trade has no edge. It's DUMB SHIT.",
        "💀 Where's your level? Where's your stop? This is gambling.",
    ],
    "pattern_detection": [
        "🚨 I see what you're doing. Don't.",
        "💀 Pattern recognized: You're about to do something stupid.",
    ],
    "risk_violation": [
        "🛑 POSITION TOO BIG. Size kills accounts.",
        "💀 You're risking your month on one trade. Don't be a hero.",
    ],
    "timing": [
        "🚨 Why are you trading right now? This is amateur hour.",
        "💀 Bad timing. Wait for the setup.",
    ],
}

WARNING_PREFIXES: Dict[str, List[str]] = {
    "market_breadth": [
        "⚠️ The river's flowing the other way.",
        "⚠️ Market breadth says be careful here.",
        "⚠️ ADD/VOLD not supporting this direction.",
    ],
    "economic_event": [
        "⚠️ High-impact event approaching.",
        "⚠️ Economic data dropping soon.",
        "⚠️ Calendar check - heads up.",
    ],
    "user_weakness": [
        "⚠️ Watch yourself here. This is a trigger for you.",
        "⚠️ Careful - this looks like one of your patterns.",
        "⚠️ Remember what we talked about?",
    ],
    "mental_capital": [
        "⚠️ Check your mental state.",
        "⚠️ You've had some losses. Size down.",
        "⚠️ Mental capital running low.",
    ],
    "trade_validation": [
        "⚠️ This setup needs work.",
        "⚠️ Something's off here. Double-check.",
        "⚠️ Not your best setup.",
    ],
    "pattern_detection": [
        "⚠️ I'm seeing a pattern forming.",
        "⚠️ Watch out - behavioral pattern detected.",
    ],
    "risk_violation": [
        "⚠️ Size check - you sure about this?",
        "⚠️ Risk is getting elevated.",
    ],
    "timing": [
        "⚠️ Timing isn't ideal.",
        "⚠️ Market session consideration.",
    ],
}

NUDGE_PREFIXES = [
    "💭 Quick thought -",
    "💡 Reminder:",
    "📝 Note to self:",
    "👀 Just checking -",
]

AFFIRMATIONS = [
    "✅ Good discipline. {b}. This is how winners trade.",
    "💪 That's the way. {b}. Patience pays.",
    "🎯 Sniper mentality. {b}. Keep it up.",
    "👑 This is the way. {b}. Consistency over excitement.",
]

DUMB_SHIT_CLOSER = "Don't be a statistic. Close this and walk away."


def pick(options: Sequence[str], selector: int) -> str:
    return options[selector % len(options)]


class VoiceSynthesizer:
    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng

    def _sel(self, selector: Optional[int]) -> int:
        if selector is not None:
            return selector
        # no selector: deterministic first option unless an rng was injected
        return self._rng.randrange(1 << 16) if self._rng is not None else 0

    def synthesize(
        self,
        message: str,
        severity: InterventionSeverity,
        type: InterventionType,
        selector: Optional[int] = None,
    ) -> str:
        sel = self._sel(selector)
        if severity == "dumb_shit":
            prefix = pick(DUMB_SHIT_PREFIXES.get(type) or DUMB_SHIT_PREFIXES["trade_validation"], sel)
            return f"{prefix}\n\n{message}\n\n{DUMB_SHIT_CLOSER}"
        if severity == "warning":
            prefix = pick(WARNING_PREFIXES.get(type) or WARNING_PREFIXES["trade_validation"], sel)
            return f"{prefix}\n\n{message}"
        return f"{pick(NUDGE_PREFIXES, sel)} {message}"

    def generate_affirmation(self, behavior: str, selector: Optional[int] = None) -> str:
        return pick(AFFIRMATIONS, self._sel(selector)).format(b=behavior)

    def generate_market_commentary(self, breadth: MarketBreadth) -> str:
        if breadth.trading_bias == "favor_longs" and breadth.health_score > 70:
            return (
                "🟢 Market's healthy. ADD is positive, VOLD is buying. The river's flowing UP. "
                "Favor longs, but still wait for YOUR setup."
            )
        if breadth.trading_bias == "favor_shorts" and breadth.health_score < 30:
            return (
                "🔴 Market's weak. ADD is tanking, selling pressure heavy. The river's flowing DOWN. "
                "Favor shorts or stay flat."
            )
        if breadth.trading_bias == "caution":
            return "🟡 Mixed signals. ADD and VOLD are fighting. Choppy water ahead. Size down or sit on your hands."
        return "Market's neutral. No strong bias. Wait for your setup. Patience pays the patient hand."
