from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from .context import EnhancedEconomicEvent, MarketBreadth, MarketHotContext

InterventionSeverity = Literal["nudge", "warning", "dumb_shit"]

InterventionType = Literal[
    "market_breadth",
    "economic_event",
    "user_weakness",
    "mental_capital",
    "trade_validation",
    "pattern_detection",
    "risk_violation",
    "timing",
]

TradingWeakness = Literal[
    "revenge_trading",
    "chasing_entries",
    "no_stop_loss",
    "overtrading",
    "fomo",
    "early_exit",
    "oversizing",
]


class UserProfileContext(BaseModel):
    mental_capital: int = Field(default=100, ge=0, le=100)
    consecutive_losses: int = 0
    weaknesses: List[str] = []
    max_daily_trades: Optional[int] = None
    max_daily_loss_percent: Optional[float] = None


class TradeIntent(BaseModel):
    symbol: str
    direction: Literal["long", "short"]
    price: float
    size: float
    stop_loss: Optional[float] = None
    target: Optional[float] = None
    reasoning: Optional[str] = None
    timestamp: Optional[str] = None


class InterventionContext(BaseModel):
    breadth: Optional[MarketBreadth] = None
    hot_context: Optional[MarketHotContext] = None
    current_event: Optional[EnhancedEconomicEvent] = None
    user_profile: Optional[UserProfileContext] = None
    today_trade_count: int = 0
    today_pnl: float = 0.0  # percent
    is_in_trade: bool = False
    trade_intent: Optional[TradeIntent] = None


class RelatedLesson(BaseModel):
    module: str
    lesson: str
    url: str


class InterventionResult(BaseModel):
    approved: bool
    severity: InterventionSeverity
    type: InterventionType
    title: str
    message: str
    technical_reason: Optional[str] = None
    suggested_action: Optional[str] = None
    blocked_reason: Optional[str] = None
    warnings: List[str] = []
    related_lesson: Optional[RelatedLesson] = None
