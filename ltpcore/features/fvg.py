from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional, Sequence

from ..indicators.technical import bars_to_df, mean_true_range
from ..schemas.fvg import FairValueGap, FormationCandles, FVGAnalysis, FVGContext, FVGTradingContext, FVGZone
from ..schemas.market import Bar

MAX_ACTIVE = 10

# key -> (vendor span, multiplier, bars)
FVG_TIMEFRAMES = [
    ("5m", "minute", 5, 100),
    ("15m", "minute", 15, 100),
    ("1h", "hour", 1, 100),
    ("4h", "hour", 4, 50),
    ("daily", "day", 1, 30),
]


def min_gap_for_span(span: str) -> float:
    return 0.05 if span == "minute" else 0.1


def gap_strength(gap_size: float, atr: float, gap_volume: float, avg_volume: float) -> Literal["strong", "medium", "weak"]:
    size_score = gap_size / atr if atr > 0 else 0.0
    volume_score = gap_volume / avg_volume if avg_volume > 0 else 0.0
    total = size_score * 0.6 + volume_score * 0.4
    if total > 1.5:
        return "strong"
    if total > 0.8:
        return "medium"
    return "weak"


def local_trend(bars: Sequence[Bar]) -> Literal["up", "down", "sideways"]:
    if len(bars) < 3:
        return "sideways"
    first, last = bars[0].close, bars[-1].close
    if first == 0:
        return "sideways"
    change = (last - first) / first
    if change > 0.01:
        return "up"
    if change < -0.01:
        return "down"
    return "sideways"


def volume_profile(volume: float, avg_volume: float) -> Literal["high", "normal", "low"]:
    if volume > avg_volume * 1.5:
        return "high"
    if volume < avg_volume * 0.5:
        return "low"
    return "normal"


def fill_percent(kind: str, top: float, bottom: float, price: float) -> float:
    size = top - bottom
    if kind == "bullish":
        if price <= bottom:
            return 100.0
        if price < top:
            return (top - price) / size * 100
        return 0.0
    if price >= top:
        return 100.0
    if price > bottom:
        return (price - bottom) / size * 100
    return 0.0


def _distance(g: FairValueGap, price: float) -> float:
    return min(abs(price - g.top_price), abs(price - g.bottom_price))


def detect_fvgs(
    bars: Sequence[Bar],
    timeframe: str,
    current_price: float,
    min_gap_percent: float = 0.1,
) -> List[FairValueGap]:
    """Scan every consecutive triple for a three-candle imbalance.

    Returns unfilled gaps only, nearest to ``current_price`` first, at most 10.
    """
    if len(bars) < 3:
        return []
    candles = sorted(bars, key=lambda b: b.t)
    df = bars_to_df(candles)
    avg_volume = float(df["volume"].mean())
    atr = mean_true_range(df)

    found: List[FairValueGap] = []
    for i in range(2, len(candles)):
        c1, c2, c3 = candles[i - 2], candles[i - 1], candles[i]
        if c3.low > c1.high:
            kind, top, bottom = "bullish", c3.low, c1.high
        elif c3.high < c1.low:
            kind, top, bottom = "bearish", c1.low, c3.high
        else:
            continue
        size = top - bottom
        size_pct = size / c2.close * 100 if c2.close else 0.0
        if size_pct < min_gap_percent:
            continue
        fill = min(100.0, max(0.0, fill_percent(kind, top, bottom, current_price)))
        found.append(
            FairValueGap(
                id=f"fvg_{kind}_{timeframe}_{c2.t}",
                type=kind,
                timeframe=timeframe,
                start_time=c1.t,
                end_time=c3.t,
                top_price=top,
                bottom_price=bottom,
                mid_price=(top + bottom) / 2,
                gap_size=size,
                gap_size_percent=size_pct,
                filled=fill >= 100,
                fill_percent=fill,
                strength=gap_strength(size, atr, c2.volume, avg_volume),
                formation_candles=FormationCandles(candle1=c1, candle2=c2, candle3=c3),
                context=FVGContext(
                    trend_direction=local_trend(candles[max(0, i - 10):i]),
                    volume_profile=volume_profile(c2.volume, avg_volume),
                    near_level=False,
                ),
            )
        )

    active = [g for g in found if not g.filled]
    active.sort(key=lambda g: _distance(g, current_price))
    return active[:MAX_ACTIVE]


def history_start_ms(now_ms: int, span: str, multiplier: int, bars: int) -> int:
    if span == "minute":
        return now_ms - bars * multiplier * 60_000
    if span == "hour":
        return now_ms - bars * multiplier * 3_600_000
    return now_ms - bars * 86_400_000


def analyze_fvgs(symbol: str, current_price: float, bars_by_timeframe: Dict[str, Sequence[Bar]]) -> FVGAnalysis:
    fvgs = {
        key: detect_fvgs(bars_by_timeframe.get(key, ()), key, current_price, min_gap_for_span(span))
        for key, span, *_ in FVG_TIMEFRAMES
    }
    return summarize_fvgs(symbol, current_price, fvgs)


def summarize_fvgs(symbol: str, current_price: float, fvgs_by_timeframe: Dict[str, List[FairValueGap]]) -> FVGAnalysis:
    """Aggregate per-timeframe gaps into targets, zones and a readable summary."""
    all_gaps = [g for key, *_ in FVG_TIMEFRAMES for g in fvgs_by_timeframe.get(key, [])]
    below = [g for g in all_gaps if g.type == "bullish" and g.top_price < current_price]
    above = [g for g in all_gaps if g.type == "bearish" and g.bottom_price > current_price]

    nearest_bull: Optional[FairValueGap] = min(below, key=lambda g: current_price - g.top_price, default=None)
    nearest_bear: Optional[FairValueGap] = min(above, key=lambda g: g.bottom_price - current_price, default=None)

    bullish_targets = [g.mid_price for g in sorted(above, key=lambda g: g.bottom_price)[:3]]
    bearish_targets = [g.mid_price for g in sorted(below, key=lambda g: -g.top_price)[:3]]
    support = [FVGZone(top=g.top_price, bottom=g.bottom_price, strength=g.strength) for g in below[:3]]
    resistance = [FVGZone(top=g.top_price, bottom=g.bottom_price, strength=g.strength) for g in above[:3]]

    if not all_gaps:
        summary = f"No significant Fair Value Gaps detected near current price for {symbol}."
    else:
        n_bull = sum(1 for g in all_gaps if g.type == "bullish")
        n_bear = len(all_gaps) - n_bull
        parts = [f"Found {len(all_gaps)} unfilled FVGs ({n_bull} bullish, {n_bear} bearish)."]
        if nearest_bull is not None and current_price > 0:
            pct = (current_price - nearest_bull.top_price) / current_price * 100
            parts.append(f"Nearest bullish FVG at ${nearest_bull.mid_price:.2f} ({pct:.2f}% below).")
        if nearest_bear is not None and current_price > 0:
            pct = (nearest_bear.bottom_price - current_price) / current_price * 100
            parts.append(f"Nearest bearish FVG at ${nearest_bear.mid_price:.2f} ({pct:.2f}% above).")
        summary = " ".join(parts)

    return FVGAnalysis(
        symbol=symbol,
        timestamp=datetime.now(timezone.utc).isoformat(),
        current_price=current_price,
        fvgs={key: list(fvgs_by_timeframe.get(key, [])) for key, *_ in FVG_TIMEFRAMES},
        nearest_bullish_fvg=nearest_bull,
        nearest_bearish_fvg=nearest_bear,
        trading_context=FVGTradingContext(
            bullish_targets=bullish_targets,
            bearish_targets=bearish_targets,
            support_zones=support,
            resistance_zones=resistance,
            summary=summary,
        ),
    )
