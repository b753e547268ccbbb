from __future__ import annotations

from typing import Optional, Sequence

from ..schemas.analysis import PatienceCandle
from ..schemas.market import Bar

BODY_RATIO = 0.5
VOLUME_RATIO = 0.7


def detect_patience_candle(bars: Sequence[Bar], timeframe: Optional[str] = None) -> Optional[PatienceCandle]:
    """Small-bodied, low-volume last bar (forming); confirmed when the bar before
    it moved the other way."""
    if len(bars) < 3:
        return None
    b1, b2, b3 = bars[-3:]
    avg_body = sum(abs(b.close - b.open) for b in (b1, b2, b3)) / 3
    avg_vol = sum(b.volume for b in (b1, b2, b3)) / 3

    forming = abs(b3.close - b3.open) < avg_body * BODY_RATIO and b3.volume < avg_vol * VOLUME_RATIO
    direction = "bullish" if b3.close > b3.open else "bearish"
    confirmed = forming and (
        (direction == "bullish" and b2.close < b2.open) or (direction == "bearish" and b2.close > b2.open)
    )
    return PatienceCandle(forming=forming, confirmed=confirmed, direction=direction, timeframe=timeframe)
