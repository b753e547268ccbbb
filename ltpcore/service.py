"""Market data service: every read operation over the injected cache and gateway."""
from __future__ import annotations

import asyncio
import math
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from loguru import logger
from pydantic import TypeAdapter, ValidationError
from redis.asyncio import Redis

from .analysis.ltp import build_ltp_analysis
from .analysis.mtf import MTF_TIMEFRAMES, TIMEFRAME_MAP, aggregate_mtf, timeframe_trend
from .cache.tiered import CACHE_TTL, HISTORICAL_TTL, TieredCache, build_cache
from .config import Settings, settings
from .datasource import mapping
from .datasource.massive import MassiveGateway
from .errors import NotConfiguredError
from .features.calendar import high_impact_today, upcoming_economic_events, volatility_level
from .features.fvg import FVG_TIMEFRAMES, analyze_fvgs, history_start_ms
from .features.levels import build_key_levels
from .features.patience import detect_patience_candle
from .indicators import technical as ti
from .schemas.analysis import LTPAnalysis, MarketSnapshot, MTFAnalysis, TimeframeTrend
from .schemas.context import EnhancedEconomicEvent, MarketBreadth, MarketHotContext, ProactiveWarning
from .schemas.fvg import FVGAnalysis
from .schemas.market import (
    Bar,
    EarningsEvent,
    EconomicEvent,
    EMAResult,
    IndexQuote,
    IndicatorValue,
    KeyLevel,
    MACDResult,
    MACDValue,
    MarketStatus,
    OptionContract,
    OptionsChain,
    Quote,
    RSIResult,
    SMAResult,
)
from .utils.time import PREMARKET_OPEN, SESSION_OPEN, date_string, minute_of_day, ms_to_exchange, next_friday, now_tz

_bars = TypeAdapter(List[Bar])
_levels = TypeAdapter(List[KeyLevel])
_events = TypeAdapter(List[EconomicEvent])
_earnings = TypeAdapter(List[EarningsEvent])
_enhanced = TypeAdapter(List[EnhancedEconomicEvent])


class MarketDataService:
    def __init__(
        self,
        gateway: MassiveGateway,
        cache: Optional[TieredCache] = None,
        clock: Callable[[], datetime] = now_tz,
    ):
        self.gateway = gateway
        self.cache = cache if cache is not None else TieredCache()
        self._clock = clock

    @classmethod
    def from_settings(cls, cfg: Settings = settings, redis_client: Optional["Redis"] = None) -> "MarketDataService":
        return cls(MassiveGateway.from_settings(cfg), build_cache(cfg, redis_client))

    def is_configured(self) -> bool:
        return self.gateway.is_configured()

    def require_configured(self) -> None:
        if not self.is_configured():
            raise NotConfiguredError()

    def _today(self) -> date:
        return self._clock().date()

    # ------------------------------------------------------------------
    # Quotes
    # ------------------------------------------------------------------

    async def get_quote(self, symbol: str) -> Optional[Quote]:
        sym = symbol.upper()
        if self.cache.hot is not None:
            hot = await self.cache.hot.get_quote(sym)
            if hot is not None:
                logger.debug(f"cache hit (hot): quote:{sym}")
                return mapping.quote_from_hot(hot)

        async def fetch() -> Optional[Quote]:
            data = await self.gateway.fetch(f"/v2/snapshot/locale/us/markets/stocks/tickers/{sym}")
            if not data or not data.get("ticker"):
                return None
            return mapping.quote_from_snapshot(data["ticker"])

        return await self.cache.get_cached(f"quote:{sym}", CACHE_TTL["quote"], fetch, Quote.model_validate)

    async def get_quotes(self, symbols: List[str]) -> Dict[str, Quote]:
        syms = [s.upper() for s in symbols]
        quotes = await asyncio.gather(*(self.get_quote(s) for s in syms))
        return {s: q for s, q in zip(syms, quotes) if q is not None}

    # ------------------------------------------------------------------
    # Bars
    # ------------------------------------------------------------------

    async def get_aggregates(self, symbol: str, timespan: str = "day", limit: int = 50) -> List[Bar]:
        sym = symbol.upper()
        span, mult = mapping.timespan_params(timespan)

        async def fetch() -> Optional[List[Bar]]:
            today = self._today()
            start = date_string(-mapping.days_back(span, limit), today)
            end = date_string(0, today)
            data = await self.gateway.fetch(
                f"/v2/aggs/ticker/{sym}/range/{mult}/{span}/{start}/{end}",
                {"limit": limit, "sort": "asc"},
            )
            if not data or data.get("results") is None:
                return None
            return mapping.bars_from_results(data["results"])

        bars = await self.cache.get_cached(
            f"aggs:{sym}:{span}:{mult}:{limit}", CACHE_TTL["aggregates"], fetch, _bars.validate_python
        )
        return bars or []

    async def get_intraday_bars(self, symbol: str, interval: int = 5) -> List[Bar]:
        return await self.get_aggregates(symbol, str(interval), 500)

    async def get_premarket_bars(self, symbol: str) -> List[Bar]:
        """Today's 1-minute bars between 04:00 and 09:30 exchange time."""
        sym = symbol.upper()
        today = self._today()
        ds = today.isoformat()

        async def fetch() -> Optional[List[Bar]]:
            data = await self.gateway.fetch(
                f"/v2/aggs/ticker/{sym}/range/1/minute/{ds}/{ds}",
                {"limit": 500, "sort": "asc"},
            )
            if not data or data.get("results") is None:
                return None
            out = []
            for b in mapping.bars_from_results(data["results"]):
                dt = ms_to_exchange(b.t)
                if dt.date() == today and PREMARKET_OPEN <= minute_of_day(dt) < SESSION_OPEN:
                    out.append(b)
            return out

        bars = await self.cache.get_cached(f"premarket:{sym}:{ds}", CACHE_TTL["aggregates"], fetch, _bars.validate_python)
        return bars or []

    async def get_weekly_bars(self, symbol: str, limit: int = 52) -> List[Bar]:
        return await self.get_aggregates(symbol, "week", limit)

    async def get_historical_bars(
        self,
        symbol: str,
        from_date: str,
        to_date: str,
        timespan: str = "minute",
        multiplier: int = 5,
    ) -> List[Bar]:
        sym = symbol.upper()

        async def fetch() -> Optional[List[Bar]]:
            data = await self.gateway.fetch(
                f"/v2/aggs/ticker/{sym}/range/{multiplier}/{timespan}/{from_date}/{to_date}",
                {"limit": 50000, "sort": "asc"},
            )
            if not data or data.get("results") is None:
                return None
            return mapping.bars_from_results(data["results"])

        bars = await self.cache.get_cached(
            f"hist:{sym}:{from_date}:{to_date}:{timespan}:{multiplier}", HISTORICAL_TTL, fetch, _bars.validate_python
        )
        return bars or []

    async def get_event_bars(
        self,
        symbol: str,
        event_date: str,
        days_before: int = 2,
        days_after: int = 2,
        timespan: str = "minute",
        multiplier: int = 5,
    ) -> List[Bar]:
        event = date.fromisoformat(event_date[:10])
        return await self.get_historical_bars(
            symbol,
            (event - timedelta(days=days_before)).isoformat(),
            (event + timedelta(days=days_after)).isoformat(),
            timespan,
            multiplier,
        )

    # ------------------------------------------------------------------
    # Market status & indices
    # ------------------------------------------------------------------

    async def get_market_status(self) -> MarketStatus:
        async def fetch() -> Optional[MarketStatus]:
            data = await self.gateway.fetch("/v1/marketstatus/now")
            return mapping.market_status_from(data) if data else None

        status = await self.cache.get_cached(
            "market:status", CACHE_TTL["market_status"], fetch, MarketStatus.model_validate
        )
        return status or MarketStatus()

    async def is_market_open(self) -> bool:
        return (await self.get_market_status()).market == "open"

    async def get_index_quote(self, index: str) -> Optional[IndexQuote]:
        sym = index.upper()
        ticker = mapping.index_ticker(sym)
        if self.cache.hot is not None:
            hot = await self.cache.hot.get_index(ticker)
            if hot is not None:
                logger.debug(f"cache hit (hot): index:{ticker}")
                return mapping.index_from_hot(hot, sym)

        async def fetch() -> Optional[IndexQuote]:
            snap = await self.gateway.fetch(
                "/v3/snapshot/indices", {"ticker.gte": ticker, "ticker.lte": ticker, "limit": 1}
            )
            results = (snap or {}).get("results") or []
            if results:
                return mapping.index_from_snapshot(results[0], sym)
            prev = await self.gateway.fetch(f"/v2/aggs/ticker/{ticker}/prev")
            results = (prev or {}).get("results") or []
            if results:
                return mapping.index_from_prev(results[0], sym)
            return None

        return await self.cache.get_cached(f"index:{sym}", CACHE_TTL["index"], fetch, IndexQuote.model_validate)

    async def get_vix(self) -> float:
        vix = await self.get_index_quote("VIX")
        return vix.value if vix else 0.0

    # ------------------------------------------------------------------
    # Vendor indicators
    # ------------------------------------------------------------------

    async def _indicator(self, kind: str, symbol: str, period: int, timespan: str, limit: int, model):
        sym = symbol.upper()

        async def fetch():
            values = mapping.indicator_values(
                await self.gateway.fetch(
                    f"/v1/indicators/{kind}/{sym}",
                    {"timespan": timespan, "window": period, "limit": limit, "series_type": "close"},
                )
            )
            if values is None:
                return None
            return model(
                period=period,
                values=[IndicatorValue(timestamp=v["timestamp"], value=v["value"]) for v in values],
            )

        return await self.cache.get_cached(
            f"{kind}:{sym}:{period}:{timespan}:{limit}", CACHE_TTL["indicators"], fetch, model.model_validate
        )

    async def get_sma(self, symbol: str, period: int = 20, timespan: str = "day", limit: int = 50) -> Optional[SMAResult]:
        return await self._indicator("sma", symbol, period, timespan, limit, SMAResult)

    async def get_ema(self, symbol: str, period: int = 9, timespan: str = "day", limit: int = 50) -> Optional[EMAResult]:
        return await self._indicator("ema", symbol, period, timespan, limit, EMAResult)

    async def get_rsi(self, symbol: str, period: int = 14, timespan: str = "day", limit: int = 50) -> Optional[RSIResult]:
        return await self._indicator("rsi", symbol, period, timespan, limit, RSIResult)

    async def get_macd(
        self,
        symbol: str,
        timespan: str = "day",
        short_window: int = 12,
        long_window: int = 26,
        signal_window: int = 9,
        limit: int = 50,
    ) -> Optional[MACDResult]:
        sym = symbol.upper()

        async def fetch() -> Optional[MACDResult]:
            values = mapping.indicator_values(
                await self.gateway.fetch(
                    f"/v1/indicators/macd/{sym}",
                    {
                        "timespan": timespan,
                        "short_window": short_window,
                        "long_window": long_window,
                        "signal_window": signal_window,
                        "limit": limit,
                        "series_type": "close",
                    },
                )
            )
            if values is None:
                return None
            return MACDResult(
                values=[
                    MACDValue(timestamp=v["timestamp"], macd=v["value"], signal=v["signal"], histogram=v["histogram"])
                    for v in values
                ]
            )

        return await self.cache.get_cached(
            f"macd:{sym}:{timespan}:{short_window}:{long_window}:{signal_window}",
            CACHE_TTL["indicators"],
            fetch,
            MACDResult.model_validate,
        )

    async def compute_indicator_snapshot(self, symbol: str, timespan: str = "day", limit: int = 250) -> Optional[Dict[str, Any]]:
        """Latest locally computed SMA/EMA/RSI/MACD over the symbol's own bars."""
        bars = await self.get_aggregates(symbol, timespan, limit)
        if not bars:
            return None
        close = ti.bars_to_df(bars)["close"]
        m = ti.macd(close)

        def last(series) -> Optional[float]:
            v = float(series.iloc[-1])
            return None if math.isnan(v) else v

        return {
            "symbol": symbol.upper(),
            "timespan": timespan,
            "bars": len(bars),
            "close": float(close.iloc[-1]),
            "sma20": last(ti.sma(close, 20)),
            "sma200": last(ti.sma(close, 200)),
            "ema9": last(ti.ema_seeded(close, 9)),
            "ema21": last(ti.ema_seeded(close, 21)),
            "rsi14": last(ti.rsi(close, 14)),
            "macd": last(m["macd"]),
            "macd_signal": last(m["signal"]),
            "macd_histogram": last(m["histogram"]),
        }

    # ------------------------------------------------------------------
    # Options
    # ------------------------------------------------------------------

    async def get_options_chain(self, symbol: str, expiration: Optional[str] = None) -> Optional[OptionsChain]:
        sym = symbol.upper()
        exp = expiration or next_friday(self._today())

        async def fetch() -> Optional[OptionsChain]:
            data = await self.gateway.fetch(f"/v3/snapshot/options/{sym}", {"expiration_date": exp, "limit": 250})
            results = (data or {}).get("results") or []
            if not results:
                return None
            calls: List[OptionContract] = []
            puts: List[OptionContract] = []
            for opt in results:
                details = opt.get("details")
                if not details or details.get("contract_type") not in ("call", "put"):
                    continue
                c = mapping.contract_from_snapshot(opt, sym)
                (calls if c.type == "call" else puts).append(c)
            calls.sort(key=lambda c: c.strike)
            puts.sort(key=lambda c: c.strike)
            return OptionsChain(underlying=sym, expiration_date=exp, calls=calls, puts=puts)

        return await self.cache.get_cached(f"options:{sym}:{exp}", CACHE_TTL["options"], fetch, OptionsChain.model_validate)

    async def get_options_contract(self, contract_ticker: str) -> Optional[OptionContract]:
        ticker = contract_ticker.upper()
        parsed = mapping.parse_contract_ticker(ticker)

        async def fetch() -> Optional[OptionContract]:
            data = await self.gateway.fetch(
                f"/v3/snapshot/options/{parsed['underlying']}",
                {
                    "strike_price": parsed["strike"],
                    "expiration_date": parsed["expiration"],
                    "contract_type": parsed["contract_type"],
                    "limit": 1,
                },
            )
            results = (data or {}).get("results") or []
            if not results or not results[0].get("details"):
                return None
            return mapping.contract_from_snapshot(results[0], parsed["underlying"])

        return await self.cache.get_cached(f"option:{ticker}", CACHE_TTL["options"], fetch, OptionContract.model_validate)

    async def get_options_near_money(
        self,
        symbol: str,
        expiration: Optional[str] = None,
        strike_range: float = 5,
    ) -> List[OptionContract]:
        quote = await self.get_quote(symbol)
        if quote is None:
            return []
        chain = await self.get_options_chain(symbol, expiration)
        if chain is None:
            return []
        price = quote.price
        lo = price * (1 - strike_range / 100)
        hi = price * (1 + strike_range / 100)
        near = [c for c in chain.calls + chain.puts if lo <= c.strike <= hi]
        near.sort(key=lambda c: abs(c.strike - price))
        return near

    # ------------------------------------------------------------------
    # Levels & analysis
    # ------------------------------------------------------------------

    async def get_key_levels(self, symbol: str) -> List[KeyLevel]:
        sym = symbol.upper()

        async def fetch() -> Optional[List[KeyLevel]]:
            quote = await self.get_quote(sym)
            if quote is None:
                return None
            ema9, ema21, sma200, intraday, bars_4h, bars_1h = await asyncio.gather(
                self.get_ema(sym, 9, "day", 1),
                self.get_ema(sym, 21, "day", 1),
                self.get_sma(sym, 200, "day", 1),
                self.get_intraday_bars(sym, 1),
                self.get_aggregates(sym, "240", 50),
                self.get_aggregates(sym, "60", 50),
            )

            def first(res) -> Optional[float]:
                return res.values[0].value if res is not None and res.values else None

            return build_key_levels(
                quote,
                ema9=first(ema9),
                ema21=first(ema21),
                sma200=first(sma200),
                intraday_bars=intraday,
                bars_4h=bars_4h,
                bars_1h=bars_1h,
            )

        levels = await self.cache.get_cached(f"levels:{sym}", CACHE_TTL["levels"], fetch, _levels.validate_python)
        return levels or []

    async def get_market_snapshot(self, symbol: str) -> Optional[MarketSnapshot]:
        sym = symbol.upper()
        quote, levels, bars = await asyncio.gather(
            self.get_quote(sym), self.get_key_levels(sym), self.get_intraday_bars(sym, 5)
        )
        if quote is None:
            return None
        ema9 = next((l.price for l in levels if l.type == "ema9"), None)
        ema21 = next((l.price for l in levels if l.type == "ema21"), None)

        trend = "neutral"
        if ema9 is not None and ema21 is not None:
            if quote.price > ema9 > ema21:
                trend = "bullish"
            elif quote.price < ema9 < ema21:
                trend = "bearish"
        elif quote.change_percent > 0.5:
            trend = "bullish"
        elif quote.change_percent < -0.5:
            trend = "bearish"

        return MarketSnapshot(
            symbol=sym,
            quote=quote,
            key_levels=levels,
            trend=trend,
            vwap=quote.vwap,
            patience_candle=detect_patience_candle(bars, "5m"),
        )

    async def get_market_snapshots(self, symbols: List[str]) -> Dict[str, MarketSnapshot]:
        syms = [s.upper() for s in symbols]
        snaps = await asyncio.gather(*(self.get_market_snapshot(s) for s in syms))
        return {s: snap for s, snap in zip(syms, snaps) if snap is not None}

    async def get_timeframe_trend(self, symbol: str, timeframe: str) -> Optional[TimeframeTrend]:
        cfg = TIMEFRAME_MAP.get(timeframe)
        if cfg is None:
            return None
        bars = await self.get_aggregates(symbol, *cfg)
        return timeframe_trend(bars, timeframe)

    async def get_mtf_analysis(self, symbol: str) -> Optional[MTFAnalysis]:
        sym = symbol.upper()

        async def fetch() -> Optional[MTFAnalysis]:
            quote = await self.get_quote(sym)
            if quote is None:
                return None
            trends = await asyncio.gather(*(self.get_timeframe_trend(sym, tf) for tf in MTF_TIMEFRAMES))
            return aggregate_mtf(sym, quote.price, trends)

        return await self.cache.get_cached(f"mtf:{sym}", CACHE_TTL["indicators"], fetch, MTFAnalysis.model_validate)

    async def get_ltp_analysis(self, symbol: str) -> Optional[LTPAnalysis]:
        sym = symbol.upper()

        async def fetch() -> Optional[LTPAnalysis]:
            quote, levels, mtf, bars_5m, bars_15m, bars_1h = await asyncio.gather(
                self.get_quote(sym),
                self.get_key_levels(sym),
                self.get_mtf_analysis(sym),
                self.get_aggregates(sym, "5", 50),
                self.get_aggregates(sym, "15", 50),
                self.get_aggregates(sym, "60", 50),
            )
            if quote is None or mtf is None:
                return None
            return build_ltp_analysis(sym, quote, levels, mtf, bars_5m, bars_15m, bars_1h)

        try:
            return await self.cache.get_cached(f"ltp:{sym}", CACHE_TTL["snapshot"], fetch, LTPAnalysis.model_validate)
        except Exception as e:
            logger.error(f"[MarketData] LTP analysis error for {sym}: {e}")
            return None

    async def get_fvg_analysis(self, symbol: str) -> FVGAnalysis:
        sym = symbol.upper()
        quote = await self.get_quote(sym)
        price = quote.price if quote else 0.0

        now = self._clock()
        now_ms = int(now.timestamp() * 1000)
        end = now.astimezone(timezone.utc).date().isoformat()
        bars_by_tf: Dict[str, List[Bar]] = {}
        for key, span, mult, n in FVG_TIMEFRAMES:
            start_ms = history_start_ms(now_ms, span, mult, n)
            start = datetime.fromtimestamp(start_ms / 1000, tz=timezone.utc).date().isoformat()
            try:
                bars_by_tf[key] = await self.get_historical_bars(sym, start, end, span, mult)
            except Exception as e:
                logger.error(f"[FVG] error fetching {key} data for {sym}: {e}")
        return analyze_fvgs(sym, price, bars_by_tf)

    # ------------------------------------------------------------------
    # Economic calendar & market context
    # ------------------------------------------------------------------

    async def get_upcoming_economic_events(self, days_ahead: int = 7) -> List[EconomicEvent]:
        async def fetch() -> List[EconomicEvent]:
            return upcoming_economic_events(self._today(), days_ahead)

        events = await self.cache.get_cached(
            f"econ:upcoming:{days_ahead}", CACHE_TTL["levels"], fetch, _events.validate_python
        )
        return events or []

    async def has_high_impact_event_today(self) -> Dict[str, Any]:
        events = high_impact_today(await self.get_upcoming_economic_events(1), self._today())
        return {"has_event": bool(events), "events": events}

    async def get_upcoming_earnings(self, tickers: List[str], days_ahead: int = 7) -> List[EarningsEvent]:
        """Next earnings dates from ticker reference data, inside ``[today, today + days_ahead]``, soonest first."""
        syms = [t.upper() for t in tickers]
        if not syms:
            return []

        async def fetch() -> Optional[List[EarningsEvent]]:
            today = self._today()
            end = today + timedelta(days=days_ahead)
            details = await asyncio.gather(*(self.gateway.fetch(f"/v3/reference/tickers/{s}") for s in syms))
            if all(d is None for d in details):
                return None
            found = []
            for sym, data in zip(syms, details):
                results = (data or {}).get("results")
                raw = results.get("next_earnings_date") if isinstance(results, dict) else None
                if not raw:
                    continue
                try:
                    when = date.fromisoformat(str(raw)[:10])
                except ValueError:
                    logger.warning(f"[MarketData] bad next_earnings_date for {sym}: {raw!r}")
                    continue
                if today <= when <= end:
                    found.append((when, EarningsEvent(symbol=sym, date=str(raw))))
            found.sort(key=lambda pair: pair[0])
            return [ev for _, ev in found]

        events = await self.cache.get_cached(
            f"earnings:{','.join(syms)}:{days_ahead}", CACHE_TTL["levels"], fetch, _earnings.validate_python
        )
        return events or []

    async def get_market_context(self) -> Dict[str, Any]:
        status, vix, events, today = await asyncio.gather(
            self.get_market_status(),
            self.get_vix(),
            self.get_upcoming_economic_events(7),
            self.has_high_impact_event_today(),
        )
        return {
            "market_status": status,
            "vix": vix,
            "volatility_level": volatility_level(vix),
            "upcoming_events": events,
            "high_impact_today": today["has_event"],
        }

    # ------------------------------------------------------------------
    # Worker-published coaching context (read-only)
    # ------------------------------------------------------------------

    async def _context(self, key: str, decode):
        if self.cache.hot is None:
            return None
        raw = await self.cache.hot.read_json(key)
        if raw is None:
            return None
        try:
            return decode(raw)
        except ValidationError as e:
            logger.warning(f"[MarketData] malformed {key}: {e.error_count()} errors")
            return None

    async def get_market_breadth(self) -> Optional[MarketBreadth]:
        return await self._context("context:breadth", MarketBreadth.model_validate)

    async def get_hot_context(self) -> Optional[MarketHotContext]:
        return await self._context("context:hot", MarketHotContext.model_validate)

    async def get_active_warnings(self) -> List[ProactiveWarning]:
        hot = await self.get_hot_context()
        return list(hot.active_warnings) if hot else []

    async def get_enhanced_calendar(self) -> List[EnhancedEconomicEvent]:
        return await self._context("context:calendar", _enhanced.validate_python) or []

    async def check_imminent_event(self) -> Dict[str, Any]:
        hot = await self.get_hot_context()
        if hot is None or not hot.calendar.is_event_imminent or hot.calendar.imminent_event is None:
            return {"is_imminent": False, "event": None, "minutes_away": -1}
        ev = hot.calendar.imminent_event
        return {"is_imminent": True, "event": ev, "minutes_away": ev.minutes_until_event}

    async def get_trading_conditions(self) -> Dict[str, Any]:
        hot = await self.get_hot_context()
        if hot is None:
            return {
                "status": "green",
                "message": "Market data unavailable. Trade with normal caution.",
                "restrictions": [],
                "breadth_bias": None,
            }
        tc = hot.trading_conditions
        return {
            "status": tc.status,
            "message": tc.message,
            "restrictions": list(tc.restrictions),
            "breadth_bias": hot.breadth.trading_bias if hot.breadth else None,
        }

    async def should_avoid_longs(self) -> Dict[str, Any]:
        b = await self.get_market_breadth()
        if b is None:
            return {"avoid": False, "reason": None, "severity": "low"}
        if b.add.trend == "strong_bearish":
            return {
                "avoid": True,
                "reason": f"ADD is {b.add.value:g}. The river is flowing DOWN hard. Don't swim upstream.",
                "severity": "high",
            }
        if b.add.trend == "bearish" and b.vold.trend == "selling_pressure":
            return {
                "avoid": True,
                "reason": "Bearish breadth with selling pressure. Favor shorts or stay flat.",
                "severity": "medium",
            }
        if b.trading_bias == "favor_shorts":
            return {"avoid": True, "reason": b.coaching_message or "Market breadth favoring shorts.", "severity": "medium"}
        return {"avoid": False, "reason": None, "severity": "low"}

    async def should_avoid_shorts(self) -> Dict[str, Any]:
        b = await self.get_market_breadth()
        if b is None:
            return {"avoid": False, "reason": None, "severity": "low"}
        if b.add.trend == "strong_bullish":
            return {
                "avoid": True,
                "reason": f"ADD is +{b.add.value:g}. Bulls are RIPPING. Don't fight it.",
                "severity": "high",
            }
        if b.add.trend == "bullish" and b.vold.trend == "buying_pressure":
            return {
                "avoid": True,
                "reason": "Bullish breadth with buying pressure. Favor longs or stay flat.",
                "severity": "medium",
            }
        if b.trading_bias == "favor_longs":
            return {"avoid": True, "reason": b.coaching_message or "Market breadth favoring longs.", "severity": "medium"}
        return {"avoid": False, "reason": None, "severity": "low"}

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    async def clear_cache(self, symbol: Optional[str] = None) -> int:
        return await self.cache.clear(symbol.upper() if symbol else None)

    async def aclose(self) -> None:
        await self.gateway.aclose()
        try:
            await self.cache.aclose()
        except Exception as e:
            logger.warning(f"[MarketData] error closing cache: {e}")
