from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel

from .market import KeyLevel, Quote

Trend = Literal["bullish", "bearish", "neutral"]
PriceVsEma = Literal["above", "below", "at"]
Grade = Literal["A+", "A", "B", "C", "D", "F"]
SetupQuality = Literal["Strong", "Moderate", "Weak", "No Setup"]


class TimeframeTrend(BaseModel):
    timeframe: str
    trend: Trend
    ema9: float
    ema21: float
    price_vs_ema9: PriceVsEma
    price_vs_ema21: PriceVsEma
    ema_alignment: Literal["bullish", "bearish", "mixed"]


class MTFAnalysis(BaseModel):
    symbol: str
    current_price: float
    timeframes: List[TimeframeTrend]
    overall_bias: Trend
    alignment_score: int
    conflicting_timeframes: List[str] = []


class PatienceCandle(BaseModel):
    forming: bool
    confirmed: bool
    direction: Literal["bullish", "bearish"]
    timeframe: Optional[str] = None


class MarketSnapshot(BaseModel):
    symbol: str
    quote: Quote
    key_levels: List[KeyLevel]
    trend: Trend
    vwap: float
    patience_candle: Optional[PatienceCandle] = None


class LTPLevels(BaseModel):
    nearest: List[KeyLevel]
    pdh: Optional[float] = None
    pdl: Optional[float] = None
    vwap: Optional[float] = None
    orb_high: Optional[float] = None
    orb_low: Optional[float] = None
    ema9: Optional[float] = None
    ema21: Optional[float] = None
    sma200: Optional[float] = None
    pmh: Optional[float] = None
    pml: Optional[float] = None
    price_vs_sma200: Optional[PriceVsEma] = None
    price_position: Literal["above_vwap", "below_vwap", "at_vwap"]
    level_proximity: Literal["at_level", "near_level", "between_levels"]
    level_score: int


class LTPTrend(BaseModel):
    mtf: MTFAnalysis
    daily_trend: Trend
    intraday_trend: Trend
    trend_alignment: Literal["aligned", "conflicting"]
    trend_score: int


class LTPPatience(BaseModel):
    candle_5m: Optional[PatienceCandle] = None
    candle_15m: Optional[PatienceCandle] = None
    candle_1h: Optional[PatienceCandle] = None
    patience_score: int


class LTPAnalysis(BaseModel):
    symbol: str
    timestamp: str
    levels: LTPLevels
    trend: LTPTrend
    patience: LTPPatience
    confluence_score: int
    grade: Grade
    setup_quality: SetupQuality
    recommendation: str
