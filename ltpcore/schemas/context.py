"""Context objects published by the breadth/calendar worker.

The worker writes camelCase JSON into the shared cache (``context:breadth``,
``context:hot``, ``context:calendar``). The models accept both camelCase and
snake_case and are treated as read-only by the core.
"""
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _ContextModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore", frozen=True)


class AddReading(_ContextModel):
    value: float = 0.0
    change: float = 0.0
    trend: Literal["strong_bullish", "bullish", "neutral", "bearish", "strong_bearish"] = "neutral"
    divergence: Optional[Literal["bullish", "bearish"]] = None


class VoldReading(_ContextModel):
    value: float = 0.0
    change: float = 0.0
    trend: Literal["buying_pressure", "neutral", "selling_pressure"] = "neutral"
    intensity: Literal["extreme", "strong", "moderate", "weak"] = "weak"


class TickReading(_ContextModel):
    current: float = 0.0
    high: float = 0.0
    low: float = 0.0
    extreme_reading: bool = False
    signal: Literal["buy_signal", "sell_signal", "neutral"] = "neutral"


class MarketBreadth(_ContextModel):
    timestamp: Optional[str] = None
    add: AddReading = AddReading()
    vold: VoldReading = VoldReading()
    tick: TickReading = TickReading()
    health_score: float = 50.0
    trading_bias: Literal["favor_longs", "favor_shorts", "neutral", "caution"] = "neutral"
    coaching_message: Optional[str] = None


class EnhancedEconomicEvent(_ContextModel):
    id: str = ""
    date: str = ""
    time: str = ""
    timezone: str = "America/New_York"
    event: str
    impact: Literal["high", "medium", "low"] = "low"
    forecast: Optional[str] = None
    previous: Optional[str] = None
    actual: Optional[str] = None
    event_timestamp: Optional[int] = None
    minutes_until_event: float = 0.0  # negative once the event has passed
    is_imminent: bool = False
    is_past: bool = False
    trading_guidance: Literal["flatten_positions", "reduce_size", "avoid_new_trades", "normal"] = "normal"
    warning_level: Literal["critical", "warning", "info"] = "info"
    coaching_message: str = ""


class ProactiveWarning(_ContextModel):
    id: str
    timestamp: str
    severity: Literal["critical", "warning", "info"]
    type: Literal["market_breadth", "economic_event", "volatility", "order_flow", "pattern"]
    title: str
    message: str
    coach_style: str = "somesh"
    action_required: bool = False
    suggested_action: Optional[str] = None
    expires_at: Optional[str] = None


class CalendarContext(_ContextModel):
    today_events: List[EnhancedEconomicEvent] = []
    next_event: Optional[EnhancedEconomicEvent] = None
    has_high_impact_today: bool = False
    is_event_imminent: bool = False
    imminent_event: Optional[EnhancedEconomicEvent] = None


class TradingConditions(_ContextModel):
    status: Literal["green", "yellow", "red"] = "green"
    message: str = ""
    restrictions: List[str] = []


class MarketHotContext(_ContextModel):
    timestamp: Optional[str] = None
    breadth: Optional[MarketBreadth] = None
    order_flow: Optional[Dict[str, Any]] = None
    calendar: CalendarContext = CalendarContext()
    trading_conditions: TradingConditions = TradingConditions()
    active_warnings: List[ProactiveWarning] = []
