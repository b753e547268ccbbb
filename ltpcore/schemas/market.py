from __future__ import annotations

import math
from typing import List, Literal, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field


class Quote(BaseModel):
    # 0 means "unknown"; negative prices and volumes are rejected
    symbol: str
    last: float = Field(default=0.0, ge=0)
    price: float = Field(default=0.0, ge=0)
    change: float = 0.0
    change_percent: float = 0.0
    open: float = Field(default=0.0, ge=0)
    high: float = Field(default=0.0, ge=0)
    low: float = Field(default=0.0, ge=0)
    close: float = Field(default=0.0, ge=0)
    volume: float = Field(default=0.0, ge=0)
    vwap: float = Field(default=0.0, ge=0)
    prev_close: float = Field(default=0.0, ge=0)
    prev_high: float = Field(default=0.0, ge=0)
    prev_low: float = Field(default=0.0, ge=0)
    timestamp: str


class Bar(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    t: int  # ms epoch, bar open
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0
    vwap: Optional[float] = None


def is_valid_bar_sequence(bars: Sequence[Bar]) -> bool:
    """Non-decreasing timestamps and finite OHLC on every bar."""
    prev = None
    for b in bars:
        if not all(math.isfinite(x) for x in (b.open, b.high, b.low, b.close)):
            return False
        if prev is not None and b.t < prev:
            return False
        prev = b.t
    return True


LevelType = Literal[
    "support",
    "resistance",
    "pdh",
    "pdl",
    "vwap",
    "orb_high",
    "orb_low",
    "ema9",
    "ema21",
    "sma200",
    "pmh",
    "pml",
    "swing_high_1h",
    "swing_low_1h",
    "swing_high_4h",
    "swing_low_4h",
]


class KeyLevel(BaseModel):
    type: LevelType
    price: float = Field(gt=0)
    strength: int = Field(ge=0, le=100)
    distance: float = 0.0  # percent, (current - price) / current * 100
    touch_count: Optional[int] = None
    timeframe: Optional[str] = None


class IndexQuote(BaseModel):
    symbol: str
    value: float = 0.0
    open: float = 0.0
    high: float = 0.0
    low: float = 0.0
    change: float = 0.0
    change_percent: float = 0.0
    timestamp: str


class MarketStatus(BaseModel):
    market: Literal["open", "closed", "extended-hours", "unknown"] = "unknown"
    after_hours: bool = False
    early_hours: bool = False
    server_time: Optional[str] = None


class IndicatorValue(BaseModel):
    timestamp: int
    value: float


class SMAResult(BaseModel):
    period: int
    values: List[IndicatorValue] = []


class EMAResult(SMAResult):
    pass


class RSIResult(SMAResult):
    pass


class MACDValue(BaseModel):
    timestamp: int
    macd: float
    signal: float
    histogram: float


class MACDResult(BaseModel):
    values: List[MACDValue] = []


class OptionContract(BaseModel):
    ticker: str
    underlying: str
    type: Literal["call", "put"]
    strike: float
    expiration: str
    bid: float = 0.0
    ask: float = 0.0
    last: float = 0.0
    volume: float = 0.0
    open_interest: float = 0.0
    implied_volatility: float = 0.0
    delta: float = 0.0
    gamma: float = 0.0
    theta: float = 0.0
    vega: float = 0.0


class OptionsChain(BaseModel):
    underlying: str
    expiration_date: str
    calls: List[OptionContract] = []
    puts: List[OptionContract] = []


class EconomicEvent(BaseModel):
    date: str
    time: str
    event: str
    impact: Literal["high", "medium", "low"]


class EarningsEvent(BaseModel):
    symbol: str
    date: str
    # bmo = before market open, amc = after market close
    time: Literal["bmo", "amc", "unknown"] = "unknown"
    eps_estimate: Optional[float] = None
    revenue_estimate: Optional[float] = None
