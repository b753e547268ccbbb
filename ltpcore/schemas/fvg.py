from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from .market import Bar


class FormationCandles(BaseModel):
    candle1: Bar
    candle2: Bar
    candle3: Bar


class FVGContext(BaseModel):
    trend_direction: Literal["up", "down", "sideways"]
    volume_profile: Literal["high", "normal", "low"]
    near_level: bool = False


class FairValueGap(BaseModel):
    id: str
    type: Literal["bullish", "bearish"]
    timeframe: str
    start_time: int
    end_time: int
    top_price: float
    bottom_price: float
    mid_price: float
    gap_size: float
    gap_size_percent: float
    filled: bool
    fill_percent: float = Field(ge=0, le=100)
    strength: Literal["strong", "medium", "weak"]
    formation_candles: FormationCandles
    context: FVGContext


class FVGZone(BaseModel):
    top: float
    bottom: float
    strength: str


class FVGTradingContext(BaseModel):
    bullish_targets: List[float] = []
    bearish_targets: List[float] = []
    support_zones: List[FVGZone] = []
    resistance_zones: List[FVGZone] = []
    summary: str


class FVGAnalysis(BaseModel):
    symbol: str
    timestamp: str
    current_price: float
    fvgs: Dict[str, List[FairValueGap]]
    nearest_bullish_fvg: Optional[FairValueGap] = None
    nearest_bearish_fvg: Optional[FairValueGap] = None
    trading_context: FVGTradingContext
