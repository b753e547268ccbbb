"""Levels / Trend / Patience confluence scoring.

Everything here is pure: the service gathers the inputs concurrently and
hands them to ``build_ltp_analysis``.
"""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional, Sequence

from ..features.patience import detect_patience_candle
from ..schemas.analysis import (
    Grade,
    LTPAnalysis,
    LTPLevels,
    LTPPatience,
    LTPTrend,
    MTFAnalysis,
    PatienceCandle,
    PriceVsEma,
    SetupQuality,
    Trend,
)
from ..schemas.market import Bar, KeyLevel, Quote
from .mtf import price_vs

WEIGHTS = {"level": 0.35, "trend": 0.40, "patience": 0.25}


def level_price(levels: Sequence[KeyLevel], type: str) -> Optional[float]:
    return next((l.price for l in levels if l.type == type), None)


def price_vs_sma200(price: float, sma200: Optional[float]) -> Optional[PriceVsEma]:
    if sma200 is None:
        return None
    return price_vs(price, sma200, band=0.002)


def price_position(price: float, vwap: Optional[float]) -> str:
    if not vwap:
        return "at_vwap"
    if price > vwap * 1.001:
        return "above_vwap"
    if price < vwap * 0.999:
        return "below_vwap"
    return "at_vwap"


def level_proximity(levels: Sequence[KeyLevel]) -> str:
    if not levels:
        return "between_levels"
    nearest = min(abs(l.distance) for l in levels)
    if nearest < 0.3:
        return "at_level"
    if nearest < 0.8:
        return "near_level"
    return "between_levels"


def level_score(proximity: str, levels: Sequence[KeyLevel]) -> int:
    if proximity == "at_level":
        return min(95, levels[0].strength + 10) if levels else 70
    if proximity == "near_level":
        return 65
    return 50


def trend_alignment(daily: Trend, intraday: Trend) -> str:
    if daily == intraday or daily == "neutral" or intraday == "neutral":
        return "aligned"
    return "conflicting"


def trend_score(alignment_score: int, alignment: str, daily: Trend) -> int:
    if alignment == "aligned" and daily != "neutral":
        return min(100, alignment_score + 10)
    if alignment == "conflicting":
        return max(30, alignment_score - 20)
    return alignment_score


def patience_score(
    c5: Optional[PatienceCandle],
    c15: Optional[PatienceCandle],
    c1h: Optional[PatienceCandle],
) -> int:
    score = 40
    for candle, confirmed_pts, forming_pts in ((c5, 20, 10), (c15, 25, 12), (c1h, 15, 8)):
        if candle is None:
            continue
        if candle.confirmed:
            score += confirmed_pts
        elif candle.forming:
            score += forming_pts
    return min(100, score)


def confluence_score(level: int, trend: int, patience: int) -> int:
    # halves round up (50.5 -> 51); decimal weights keep .5 exact
    raw = sum(Decimal(str(WEIGHTS[k])) * v for k, v in (("level", level), ("trend", trend), ("patience", patience)))
    return int(raw.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def grade_for(score: int) -> Grade:
    if score >= 90:
        return "A+"
    if score >= 80:
        return "A"
    if score >= 70:
        return "B"
    if score >= 60:
        return "C"
    if score >= 50:
        return "D"
    return "F"


def setup_quality(grade: Grade) -> SetupQuality:
    if grade in ("A+", "A"):
        return "Strong"
    if grade in ("B", "C"):
        return "Moderate"
    if grade == "D":
        return "Weak"
    return "No Setup"


def recommendation(
    quality: SetupQuality,
    intraday: Trend,
    proximity: str,
    alignment: str,
    c5: Optional[PatienceCandle],
    c15: Optional[PatienceCandle],
) -> str:
    conflicting = alignment == "conflicting"
    between = proximity == "between_levels"
    if quality == "Strong":
        where = "key level" if proximity == "at_level" else "level zone"
        if c15 is not None and c15.confirmed:
            patience = "Patience confirmed."
        elif c5 is not None and c5.forming:
            patience = "Watch for patience confirmation."
        else:
            patience = "Wait for patience candle."
        return f"{intraday.upper()} setup at {where}. MTF aligned. {patience}"
    if quality == "Moderate":
        return (
            f"Potential {intraday} setup forming. "
            f"{'Caution: MTF conflict. ' if conflicting else ''}"
            f"{'Not at a key level yet.' if between else ''} Wait for better confluence."
        )
    if quality == "Weak":
        return (
            "Weak setup conditions. "
            f"{'Timeframes conflicting. ' if conflicting else ''}"
            f"{'Price between levels. ' if between else ''}No trade recommended."
        )
    return "No clear setup. Wait for price to reach a key level with trend alignment."


def build_ltp_analysis(
    symbol: str,
    quote: Quote,
    key_levels: List[KeyLevel],
    mtf: MTFAnalysis,
    bars_5m: Sequence[Bar] = (),
    bars_15m: Sequence[Bar] = (),
    bars_1h: Sequence[Bar] = (),
) -> LTPAnalysis:
    price = quote.price

    vwap = level_price(key_levels, "vwap") or quote.vwap or None
    sma200 = level_price(key_levels, "sma200")
    proximity = level_proximity(key_levels)
    lvl_score = level_score(proximity, key_levels)

    daily = next((t.trend for t in mtf.timeframes if t.timeframe == "daily"), "neutral")
    intraday = mtf.overall_bias
    alignment = trend_alignment(daily, intraday)
    t_score = trend_score(mtf.alignment_score, alignment, daily)

    c5 = detect_patience_candle(bars_5m, "5m")
    c15 = detect_patience_candle(bars_15m, "15m")
    c1h = detect_patience_candle(bars_1h, "1h")
    p_score = patience_score(c5, c15, c1h)

    score = confluence_score(lvl_score, t_score, p_score)
    grade = grade_for(score)
    quality = setup_quality(grade)

    return LTPAnalysis(
        symbol=symbol,
        timestamp=datetime.now(timezone.utc).isoformat(),
        levels=LTPLevels(
            nearest=list(key_levels[:4]),
            pdh=level_price(key_levels, "pdh"),
            pdl=level_price(key_levels, "pdl"),
            vwap=vwap,
            orb_high=level_price(key_levels, "orb_high"),
            orb_low=level_price(key_levels, "orb_low"),
            ema9=level_price(key_levels, "ema9"),
            ema21=level_price(key_levels, "ema21"),
            sma200=sma200,
            pmh=level_price(key_levels, "pmh"),
            pml=level_price(key_levels, "pml"),
            price_vs_sma200=price_vs_sma200(price, sma200),
            price_position=price_position(price, vwap),
            level_proximity=proximity,
            level_score=lvl_score,
        ),
        trend=LTPTrend(
            mtf=mtf,
            daily_trend=daily,
            intraday_trend=intraday,
            trend_alignment=alignment,
            trend_score=t_score,
        ),
        patience=LTPPatience(candle_5m=c5, candle_15m=c15, candle_1h=c1h, patience_score=p_score),
        confluence_score=score,
        grade=grade,
        setup_quality=quality,
        recommendation=recommendation(quality, intraday, proximity, alignment, c5, c15),
    )
