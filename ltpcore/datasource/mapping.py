from __future__ import annotations

import math
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..schemas.market import Bar, IndexQuote, MarketStatus, OptionContract, Quote

INDEX_ALIASES = {
    "VIX": "I:VIX",
    "SPX": "I:SPX",
    "NDX": "I:NDX",
    "DJI": "I:DJI",
    "RUT": "I:RUT",
    "DJIA": "I:DJI",
    "SP500": "I:SPX",
    "NASDAQ": "I:NDX",
    "RUSSELL": "I:RUT",
}

_CONTRACT_RE = re.compile(r"^O?:?([A-Z]+)(\d{6})([CP])(\d+)$")


def _first(*vals: Any) -> float:
    """First present, finite, non-zero number; 0.0 otherwise."""
    for v in vals:
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            continue
        if math.isfinite(v) and v != 0:
            return float(v)
    return 0.0


def _nonneg(*vals: Any) -> float:
    return max(0.0, _first(*vals))


def _finite(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v)


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def ms_to_iso(ms: float) -> str:
    return datetime.fromtimestamp(ms / 1000.0, tz=timezone.utc).isoformat()


def bars_from_results(rows: Optional[Iterable[Dict[str, Any]]]) -> List[Bar]:
    out: List[Bar] = []
    for row in rows or []:
        if not all(_finite(row.get(k)) for k in ("t", "o", "h", "l", "c")):
            continue
        vw = row.get("vw")
        out.append(
            Bar(
                t=int(row["t"]),
                open=float(row["o"]),
                high=float(row["h"]),
                low=float(row["l"]),
                close=float(row["c"]),
                volume=float(row["v"]) if _finite(row.get("v")) else 0.0,
                vwap=float(vw) if _finite(vw) else None,
            )
        )
    return out


def quote_from_snapshot(t: Dict[str, Any]) -> Quote:
    last_trade = t.get("lastTrade") or {}
    day = t.get("day") or {}
    prev = t.get("prevDay") or {}
    price = _nonneg(last_trade.get("p"), prev.get("c"))
    return Quote(
        symbol=t.get("ticker", ""),
        last=price,
        price=price,
        change=_first(t.get("todaysChange")),
        change_percent=_first(t.get("todaysChangePerc")),
        open=_nonneg(day.get("o")),
        high=_nonneg(day.get("h")),
        low=_nonneg(day.get("l")),
        close=_nonneg(prev.get("c")),
        volume=_nonneg(day.get("v")),
        vwap=_nonneg(day.get("vw")),
        prev_close=_nonneg(prev.get("c")),
        prev_high=_nonneg(prev.get("h")),
        prev_low=_nonneg(prev.get("l")),
        timestamp=now_iso(),
    )


def quote_from_hot(entry: Dict[str, Any]) -> Quote:
    """Hot entries carry only price + intraday OHLCV; change and previous-day fields are unknown (0)."""
    data = entry.get("data") or {}
    price = _nonneg(entry.get("price"))
    ts = entry.get("timestamp")
    return Quote(
        symbol=str(entry.get("symbol", "")).upper(),
        last=price,
        price=price,
        open=_nonneg(data.get("open")),
        high=_nonneg(data.get("high")),
        low=_nonneg(data.get("low")),
        close=_nonneg(data.get("close")),
        volume=_nonneg(data.get("volume")),
        vwap=_nonneg(data.get("vwap")),
        timestamp=ms_to_iso(ts) if _finite(ts) else str(ts or now_iso()),
    )


def index_ticker(symbol: str) -> str:
    s = symbol.upper()
    if s in INDEX_ALIASES:
        return INDEX_ALIASES[s]
    return s if s.startswith("I:") else f"I:{s}"


def index_from_snapshot(r: Dict[str, Any], symbol: str) -> IndexQuote:
    session = r.get("session") or {}
    updated = r.get("last_updated")
    return IndexQuote(
        symbol=symbol,
        value=_first(r.get("value"), session.get("close")),
        open=_first(session.get("open")),
        high=_first(session.get("high")),
        low=_first(session.get("low")),
        change=_first(session.get("change")),
        change_percent=_first(session.get("change_percent")),
        # last_updated is in nanoseconds
        timestamp=ms_to_iso(updated / 1_000_000) if _finite(updated) and updated else now_iso(),
    )


def index_from_prev(r: Dict[str, Any], symbol: str) -> IndexQuote:
    o = _first(r.get("o"))
    c = _first(r.get("c"))
    t = r.get("t")
    return IndexQuote(
        symbol=symbol,
        value=c,
        open=o,
        high=_first(r.get("h")),
        low=_first(r.get("l")),
        change=c - o,
        change_percent=((c - o) / o) * 100 if o else 0.0,
        timestamp=ms_to_iso(t) if _finite(t) and t else now_iso(),
    )


def contract_from_snapshot(opt: Dict[str, Any], underlying: str) -> OptionContract:
    details = opt["details"]
    quote = opt.get("last_quote") or {}
    trade = opt.get("last_trade") or {}
    day = opt.get("day") or {}
    greeks = opt.get("greeks") or {}
    return OptionContract(
        ticker=details["ticker"],
        underlying=(opt.get("underlying_asset") or {}).get("ticker") or underlying,
        type=details["contract_type"],
        strike=float(details["strike_price"]),
        expiration=details["expiration_date"],
        bid=_first(quote.get("bid")),
        ask=_first(quote.get("ask")),
        last=_first(trade.get("price"), day.get("close")),
        volume=_first(day.get("volume")),
        open_interest=_first(opt.get("open_interest")),
        implied_volatility=_first(opt.get("implied_volatility")),
        delta=_first(greeks.get("delta")),
        gamma=_first(greeks.get("gamma")),
        theta=_first(greeks.get("theta")),
        vega=_first(greeks.get("vega")),
    )


def parse_contract_ticker(ticker: str) -> Dict[str, Any]:
    """``O:SPY250117C00450000`` -> underlying SPY, expiry 2025-01-17, call, strike 450.

    Raises ValueError on anything that is not an OCC-style contract ticker.
    """
    m = _CONTRACT_RE.match(ticker.upper())
    if not m:
        raise ValueError(f"invalid options contract ticker: {ticker}")
    underlying, date_s, cp, strike_raw = m.groups()
    return {
        "underlying": underlying,
        "expiration": f"{2000 + int(date_s[0:2])}-{date_s[2:4]}-{date_s[4:6]}",
        "contract_type": "call" if cp == "C" else "put",
        "strike": int(strike_raw) / 1000,
    }


def timespan_params(timespan: str) -> Tuple[str, int]:
    """Caller-facing timespan -> (vendor span, multiplier)."""
    if timespan in ("day", "daily"):
        return "day", 1
    if timespan in ("week", "weekly"):
        return "week", 1
    if timespan in ("hour", "60"):
        return "hour", 1
    if timespan == "240":
        return "hour", 4
    if timespan.isdigit():
        return "minute", int(timespan)
    return timespan, 1


def days_back(span: str, limit: int) -> int:
    if span == "week":
        return limit * 7
    if span == "day":
        return limit
    if span == "hour":
        return math.ceil(limit / 7)
    return math.ceil(limit / 78)


def index_from_hot(entry: Dict[str, Any], symbol: str) -> IndexQuote:
    ts = entry.get("timestamp")
    return IndexQuote(
        symbol=symbol,
        value=_first(entry.get("value")),
        open=_first(entry.get("open")),
        high=_first(entry.get("high")),
        low=_first(entry.get("low")),
        change=_first(entry.get("change")),
        change_percent=_first(entry.get("changePercent"), entry.get("change_percent")),
        timestamp=ms_to_iso(ts) if _finite(ts) else str(ts or now_iso()),
    )


def indicator_values(data: Optional[Dict[str, Any]]) -> Optional[List[Dict[str, Any]]]:
    values = ((data or {}).get("results") or {}).get("values")
    return values if isinstance(values, list) else None


def market_status_from(data: Optional[Dict[str, Any]]) -> MarketStatus:
    if not data:
        return MarketStatus()
    market = data.get("market")
    return MarketStatus(
        market=market if market in ("open", "closed", "extended-hours") else "unknown",
        after_hours=bool(data.get("afterHours")),
        early_hours=bool(data.get("earlyHours")),
        server_time=data.get("serverTime"),
    )
