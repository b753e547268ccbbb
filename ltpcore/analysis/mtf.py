from __future__ import annotations

from typing import Dict, List, Optional, Sequence, Tuple

from ..indicators.technical import ema_from_bars
from ..schemas.analysis import MTFAnalysis, PriceVsEma, TimeframeTrend, Trend
from ..schemas.market import Bar

MIN_BARS = 21
AT_BAND = 0.001

# timeframe -> (aggregates timespan, limit)
TIMEFRAME_MAP: Dict[str, Tuple[str, int]] = {
    "5m": ("5", 50),
    "15m": ("15", 50),
    "1h": ("60", 50),
    "4h": ("240", 50),
    "daily": ("day", 50),
}
MTF_TIMEFRAMES = ["5m", "15m", "1h", "daily"]


def price_vs(price: float, ref: float, band: float = AT_BAND) -> PriceVsEma:
    th = price * band
    if price > ref + th:
        return "above"
    if price < ref - th:
        return "below"
    return "at"


def timeframe_trend(bars: Sequence[Bar], timeframe: str) -> Optional[TimeframeTrend]:
    """EMA9/EMA21 trend of one series; None with fewer than 21 bars."""
    if len(bars) < MIN_BARS:
        return None
    price = bars[-1].close
    ema9 = ema_from_bars(bars, 9)
    ema21 = ema_from_bars(bars, 21)

    vs9 = price_vs(price, ema9)
    vs21 = price_vs(price, ema21)
    alignment = "bullish" if ema9 > ema21 else "bearish" if ema9 < ema21 else "mixed"

    trend: Trend = "neutral"
    if vs9 == "above" and vs21 == "above" and alignment == "bullish":
        trend = "bullish"
    elif vs9 == "below" and vs21 == "below" and alignment == "bearish":
        trend = "bearish"

    return TimeframeTrend(
        timeframe=timeframe,
        trend=trend,
        ema9=ema9,
        ema21=ema21,
        price_vs_ema9=vs9,
        price_vs_ema21=vs21,
        ema_alignment=alignment,
    )


def aggregate_mtf(symbol: str, current_price: float, trends: Sequence[Optional[TimeframeTrend]]) -> Optional[MTFAnalysis]:
    frames: List[TimeframeTrend] = [t for t in trends if t is not None]
    if not frames:
        return None
    total = len(frames)
    bulls = sum(1 for t in frames if t.trend == "bullish")
    bears = sum(1 for t in frames if t.trend == "bearish")

    bias: Trend = "neutral"
    if bulls == total:
        bias, score = "bullish", 100
    elif bears == total:
        bias, score = "bearish", 100
    elif bulls > bears:
        bias, score = "bullish", round(bulls / total * 100)
    elif bears > bulls:
        bias, score = "bearish", round(bears / total * 100)
    else:
        score = 50

    return MTFAnalysis(
        symbol=symbol,
        current_price=current_price,
        timeframes=frames,
        overall_bias=bias,
        alignment_score=score,
        conflicting_timeframes=[t.timeframe for t in frames if t.trend != bias and t.trend != "neutral"],
    )
