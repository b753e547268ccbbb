from __future__ import annotations

from typing import Iterable, List, Optional, Sequence

from ..schemas.market import Bar, KeyLevel, Quote
from ..utils.time import EXCHANGE_TZ, ORB_END, PREMARKET_OPEN, SESSION_OPEN, minute_of_day, ms_to_exchange
from .swing import detect_swing_points, filter_nearby_levels, merge_mtf_levels

# strength weights
STRENGTH = {
    "pdh": 85,
    "pdl": 85,
    "vwap": 90,
    "ema9": 70,
    "ema21": 75,
    "sma200": 95,
    "orb_high": 80,
    "orb_low": 80,
    "pmh": 75,
    "pml": 75,
}


def level_distance(current: float, price: float) -> float:
    return (current - price) / current * 100


def make_level(type: str, price: Optional[float], strength: int, current: float, **extra) -> Optional[KeyLevel]:
    # non-positive prices are never valid levels
    if price is None or price <= 0 or current <= 0:
        return None
    return KeyLevel(type=type, price=price, strength=strength, distance=level_distance(current, price), **extra)


def sort_levels(levels: Iterable[KeyLevel]) -> List[KeyLevel]:
    return sorted(levels, key=lambda l: abs(l.distance))


def reprice_levels(levels: Sequence[KeyLevel], current: float) -> List[KeyLevel]:
    """Recompute distances against a new current price and re-sort."""
    if current <= 0:
        return list(levels)
    return sort_levels(l.model_copy(update={"distance": level_distance(current, l.price)}) for l in levels)


def quote_levels(quote: Quote) -> List[KeyLevel]:
    cur = quote.price
    out = [
        make_level("pdh", quote.prev_high, STRENGTH["pdh"], cur),
        make_level("pdl", quote.prev_low, STRENGTH["pdl"], cur),
        make_level("vwap", quote.vwap, STRENGTH["vwap"], cur),
    ]
    return [l for l in out if l]


def indicator_levels(current: float, ema9: Optional[float], ema21: Optional[float], sma200: Optional[float]) -> List[KeyLevel]:
    out = [
        make_level("ema9", ema9, STRENGTH["ema9"], current),
        make_level("ema21", ema21, STRENGTH["ema21"], current),
        make_level("sma200", sma200, STRENGTH["sma200"], current),
    ]
    return [l for l in out if l]


def session_levels(bars: Sequence[Bar], current: float, tz_str: str = EXCHANGE_TZ) -> List[KeyLevel]:
    """ORB (09:30-10:00) and premarket (04:00-09:30) high/low from the most recent
    exchange-local date present in ``bars``."""
    if not bars:
        return []
    last_day = ms_to_exchange(bars[-1].t, tz_str).date()
    orb: List[Bar] = []
    pm: List[Bar] = []
    for b in bars:
        dt = ms_to_exchange(b.t, tz_str)
        if dt.date() != last_day:
            continue
        m = minute_of_day(dt)
        if SESSION_OPEN <= m < ORB_END:
            orb.append(b)
        elif PREMARKET_OPEN <= m < SESSION_OPEN:
            pm.append(b)

    out: List[Optional[KeyLevel]] = []
    if orb:
        out.append(make_level("orb_high", max(b.high for b in orb), STRENGTH["orb_high"], current))
        out.append(make_level("orb_low", min(b.low for b in orb), STRENGTH["orb_low"], current))
    if pm:
        out.append(make_level("pmh", max(b.high for b in pm), STRENGTH["pmh"], current))
        out.append(make_level("pml", min(b.low for b in pm), STRENGTH["pml"], current))
    return [l for l in out if l]


def swing_levels(
    bars_4h: Sequence[Bar],
    bars_1h: Sequence[Bar],
    current: float,
    max_distance_pct: float = 5,
    limit: int = 4,
) -> List[KeyLevel]:
    merged = merge_mtf_levels(detect_swing_points(bars_4h, "4H"), detect_swing_points(bars_1h, "1H"))
    out: List[KeyLevel] = []
    for s in filter_nearby_levels(merged, current, max_distance_pct)[:limit]:
        suffix = "4h" if s.timeframe == "4H" else "1h"
        lvl = make_level(
            f"swing_{s.type}_{suffix}",
            s.price,
            s.strength,
            current,
            touch_count=s.touch_count,
            timeframe=s.timeframe,
        )
        if lvl:
            out.append(lvl)
    return out


def build_key_levels(
    quote: Quote,
    ema9: Optional[float] = None,
    ema21: Optional[float] = None,
    sma200: Optional[float] = None,
    intraday_bars: Sequence[Bar] = (),
    bars_4h: Sequence[Bar] = (),
    bars_1h: Sequence[Bar] = (),
) -> List[KeyLevel]:
    cur = quote.price
    if cur <= 0:
        return []
    levels = quote_levels(quote)
    levels += indicator_levels(cur, ema9, ema21, sma200)
    levels += session_levels(intraday_bars, cur)
    levels += swing_levels(bars_4h, bars_1h, cur)
    return sort_levels(levels)
