"""Swing highs/lows with touch counting, clustered into support/resistance levels."""
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Dict, List, Literal, Sequence

from ..schemas.market import Bar

SwingTimeframe = Literal["1H", "4H", "D"]


@dataclass(frozen=True)
class SwingConfig:
    lookback: int = 5  # bars on each side
    tolerance: float = 0.3  # percent
    min_touches: int = 2


@dataclass(frozen=True)
class SwingPoint:
    price: float
    type: Literal["high", "low"]
    timestamp: int
    touch_count: int
    timeframe: SwingTimeframe
    strength: int


DEFAULT_CONFIG = SwingConfig()

TIMEFRAME_CONFIGS: Dict[str, SwingConfig] = {
    "1H": SwingConfig(lookback=5, tolerance=0.3, min_touches=2),
    "4H": SwingConfig(lookback=3, tolerance=0.5, min_touches=2),
    "D": SwingConfig(lookback=3, tolerance=0.8, min_touches=2),
}


def detect_swing_points(
    bars: Sequence[Bar],
    timeframe: SwingTimeframe = "1H",
    config: SwingConfig | None = None,
) -> List[SwingPoint]:
    cfg = config or TIMEFRAME_CONFIGS.get(timeframe, DEFAULT_CONFIG)
    lb = cfg.lookback
    if len(bars) < lb * 2 + 1:
        return []

    raw: List[SwingPoint] = []
    for i in range(lb, len(bars) - lb):
        cur = bars[i]
        around = list(bars[i - lb:i]) + list(bars[i + 1:i + lb + 1])
        if all(b.high <= cur.high for b in around):
            raw.append(SwingPoint(cur.high, "high", cur.t, 1, timeframe, 60))
        if all(b.low >= cur.low for b in around):
            raw.append(SwingPoint(cur.low, "low", cur.t, 1, timeframe, 60))

    return cluster_swing_points(raw, cfg.tolerance, cfg.min_touches)


def cluster_swing_points(swings: Sequence[SwingPoint], tolerance_pct: float, min_touches: int) -> List[SwingPoint]:
    ordered = sorted(swings, key=lambda s: s.price)
    used: set[int] = set()
    clustered: List[SwingPoint] = []

    for i, seed in enumerate(ordered):
        if i in used or seed.price <= 0:
            continue
        members = [
            j
            for j, s in enumerate(ordered)
            if j not in used and s.type == seed.type and abs(s.price - seed.price) / seed.price * 100 <= tolerance_pct
        ]
        if len(members) < min_touches:
            continue
        prices = [ordered[j].price for j in members]
        clustered.append(
            SwingPoint(
                price=round(sum(prices) / len(prices), 2),
                type=seed.type,
                timestamp=max(ordered[j].timestamp for j in members),
                touch_count=len(members),
                timeframe=seed.timeframe,
                strength=min(100, 60 + len(members) * 10),
            )
        )
        used.update(members)

    clustered.sort(key=lambda s: (-s.strength, -s.timestamp))
    return clustered


def count_touches_at_level(
    bars: Sequence[Bar],
    level: float,
    type: Literal["high", "low"],
    tolerance_pct: float = 0.2,
    start_index: int = 0,
) -> int:
    tol = level * (tolerance_pct / 100)
    touches = 0
    for b in bars[start_index:]:
        probe = b.high if type == "high" else b.low
        if level - tol <= probe <= level + tol:
            touches += 1
    return touches


def filter_nearby_levels(swings: Sequence[SwingPoint], current_price: float, max_distance_pct: float = 5) -> List[SwingPoint]:
    if current_price <= 0:
        return []
    return [s for s in swings if abs(s.price - current_price) / current_price * 100 <= max_distance_pct]


def merge_mtf_levels(
    levels_4h: Sequence[SwingPoint],
    levels_1h: Sequence[SwingPoint],
    tolerance_pct: float = 0.3,
) -> List[SwingPoint]:
    """4H levels take priority; a matching 1H level is folded in as confluence."""
    merged: List[SwingPoint] = []
    used_1h: set[int] = set()

    for l4 in levels_4h:
        match = next(
            (
                idx
                for idx, l1 in enumerate(levels_1h)
                if idx not in used_1h and l1.type == l4.type and abs(l1.price - l4.price) / l4.price * 100 <= tolerance_pct
            ),
            None,
        )
        if match is None:
            merged.append(l4)
            continue
        used_1h.add(match)
        l1 = levels_1h[match]
        merged.append(
            replace(
                l4,
                price=round((l4.price + l1.price) / 2, 2),
                touch_count=l4.touch_count + l1.touch_count,
                strength=min(100, l4.strength + 15),
                timeframe="4H",
            )
        )

    merged.extend(l for idx, l in enumerate(levels_1h) if idx not in used_1h)
    merged.sort(key=lambda s: (-s.strength, -s.touch_count))
    return merged
