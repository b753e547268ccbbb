"""Push client for live prices with reconnect, backoff and REST polling fallback.

States::

    disconnected -> connecting -> connected
    connected    -> connecting   (transport error or close)
    connecting   -> fallback     (reconnect attempts exhausted; poll + keep retrying)
    any          -> disconnected (stop)

Inbound ticks are buffered and delivered to listeners once per ``throttle``
interval. ``prices()`` hands out read-only snapshots; the live map is owned
by the client.
"""
from __future__ import annotations

import asyncio
import contextlib
import random
from enum import Enum
from types import MappingProxyType
from typing import Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Set

from loguru import logger

from ..config import Settings, settings
from ..errors import RateLimitedError
from .backoff import backoff_delay
from .messages import TICK_TYPES, PriceTick, parse_message, tick_from_message
from .transport import RestQuoteFetcher, StreamTransport, StreamTransportError, websocket_factory

TransportFactory = Callable[[], Awaitable[StreamTransport]]
QuoteFetcher = Callable[[str], Awaitable[Optional[PriceTick]]]
Listener = Callable[[Mapping[str, PriceTick]], None]


class StreamState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FALLBACK = "fallback"


class MarketStreamClient:
    def __init__(
        self,
        url: Optional[str] = None,
        transport_factory: Optional[TransportFactory] = None,
        quote_fetcher: Optional[QuoteFetcher] = None,
        *,
        max_reconnect_attempts: int = 10,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        throttle: float = 0.2,
        poll_interval: float = 5.0,
        poll_concurrency: int = 3,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if transport_factory is None:
            if not url:
                raise ValueError("url or transport_factory is required")
            transport_factory = websocket_factory(url)
        self.url = url
        self._factory = transport_factory
        self._fetch_quote = quote_fetcher
        self.max_reconnect_attempts = max_reconnect_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.throttle = throttle
        self.poll_interval = poll_interval
        self.poll_concurrency = max(1, poll_concurrency)
        self._rng = rng or random.Random()
        self._sleep = sleep

        self.state = StreamState.DISCONNECTED
        self._stopped = True
        self._attempts = 0
        self._symbols: Set[str] = set()
        self._prices: Dict[str, PriceTick] = {}
        self._pending: Dict[str, PriceTick] = {}
        self._listeners: List[Listener] = []
        self._transport: Optional[StreamTransport] = None
        self._run_task: Optional[asyncio.Task] = None
        self._flush_task: Optional[asyncio.Task] = None

    @classmethod
    def from_settings(cls, cfg: Settings = settings) -> "MarketStreamClient":
        return cls(
            cfg.STREAM_URL,
            quote_fetcher=RestQuoteFetcher(cfg.QUOTE_REST_URL, timeout=cfg.HTTP_TIMEOUT_S),
            max_reconnect_attempts=cfg.STREAM_MAX_RECONNECT_ATTEMPTS,
            base_delay=cfg.STREAM_BASE_DELAY_S,
            max_delay=cfg.STREAM_MAX_DELAY_S,
            throttle=cfg.STREAM_THROTTLE_S,
            poll_interval=cfg.STREAM_POLL_INTERVAL_S,
        )

    # -- public API ---------------------------------------------------

    @property
    def symbols(self) -> frozenset:
        return frozenset(self._symbols)

    @property
    def stopped(self) -> bool:
        return self._stopped

    def prices(self) -> Mapping[str, PriceTick]:
        return MappingProxyType(dict(self._prices))

    def add_listener(self, fn: Listener) -> Callable[[], None]:
        self._listeners.append(fn)

        def remove() -> None:
            if fn in self._listeners:
                self._listeners.remove(fn)

        return remove

    async def subscribe(self, symbols: Iterable[str]) -> List[str]:
        new = sorted({s.upper() for s in symbols} - self._symbols)
        if not new:
            return []
        self._symbols.update(new)
        await self._send({"type": "subscribe", "symbols": new})
        return new

    async def unsubscribe(self, symbols: Iterable[str]) -> List[str]:
        gone = sorted({s.upper() for s in symbols} & self._symbols)
        if not gone:
            return []
        for s in gone:
            self._symbols.discard(s)
            self._prices.pop(s, None)
            self._pending.pop(s, None)
        await self._send({"type": "unsubscribe", "symbols": gone})
        return gone

    def start(self) -> None:
        if not self._stopped:
            return
        self._stopped = False
        self._attempts = 0
        self._run_task = asyncio.create_task(self._run())
        self._flush_task = asyncio.create_task(self._flush_loop())

    async def stop(self) -> None:
        self._stopped = True
        tasks = [t for t in (self._run_task, self._flush_task) if t is not None]
        for t in tasks:
            t.cancel()
        for t in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await t
        self._run_task = self._flush_task = None
        if self._transport is not None:
            await self._close_transport(self._transport)
            self._transport = None
        self._pending.clear()
        self.state = StreamState.DISCONNECTED
        logger.info("[Stream] stopped")

    # -- internals ----------------------------------------------------

    def _set_state(self, state: StreamState) -> None:
        if self._stopped or self.state == state:
            return
        logger.info(f"[Stream] {self.state.value} -> {state.value}")
        self.state = state

    async def _send(self, payload: dict) -> None:
        t = self._transport
        if t is None or self.state != StreamState.CONNECTED:
            return
        try:
            await t.send_json(payload)
        except StreamTransportError as e:
            logger.warning(f"[Stream] control message not sent: {e}")

    async def _open(self) -> Optional[StreamTransport]:
        try:
            return await self._factory()
        except (StreamTransportError, OSError) as e:
            logger.warning(f"[Stream] connect failed (attempt {self._attempts + 1}): {e}")
            return None

    async def _close_transport(self, t: StreamTransport) -> None:
        try:
            await t.close()
        except Exception as e:
            logger.warning(f"[Stream] error closing transport: {e}")

    async def _run(self) -> None:
        while not self._stopped:
            self._set_state(StreamState.CONNECTING)
            transport = await self._open()
            if transport is None and self._attempts >= self.max_reconnect_attempts:
                transport = await self._fallback()
            if transport is not None:
                await self._serve(transport)
            if self._stopped:
                break
            delay = backoff_delay(self._attempts, self.base_delay, self.max_delay, self._rng)
            self._attempts += 1
            logger.info(f"[Stream] reconnecting in {delay:.2f}s (attempt {self._attempts})")
            await self._sleep(delay)

    async def _serve(self, transport: StreamTransport) -> None:
        if self._stopped:
            await self._close_transport(transport)
            return
        self._transport = transport
        self._attempts = 0
        self._set_state(StreamState.CONNECTED)
        try:
            if self._symbols:
                await transport.send_json({"type": "subscribe", "symbols": sorted(self._symbols)})
            while not self._stopped:
                raw = await transport.receive()
                if raw is None:
                    logger.info("[Stream] connection closed by peer")
                    break
                self._handle(raw)
        except (StreamTransportError, OSError) as e:
            logger.warning(f"[Stream] transport error: {e}")
        finally:
            if self._transport is transport:
                self._transport = None
                await self._close_transport(transport)

    def _handle(self, raw) -> None:
        try:
            msg = parse_message(raw)
        except ValueError as e:
            logger.warning(f"[Stream] dropped malformed message: {e}")
            return
        if msg.type in TICK_TYPES:
            tick = tick_from_message(msg)
            if tick.symbol in self._symbols:
                self._enqueue(tick)
        elif msg.type == "error":
            logger.warning(f"[Stream] server error: {msg.message or 'Stream error'}")
        elif msg.type in ("connected", "subscribed"):
            logger.debug(f"[Stream] {msg.type}")

    def _enqueue(self, tick: PriceTick) -> None:
        if self._stopped:
            return
        self._pending[tick.symbol] = tick

    async def _flush_loop(self) -> None:
        while not self._stopped:
            await self._sleep(self.throttle)
            self.flush()

    def flush(self) -> None:
        if self._stopped or not self._pending:
            return
        self._prices.update(self._pending)
        self._pending = {}
        snapshot = self.prices()
        for fn in list(self._listeners):
            try:
                fn(snapshot)
            except Exception as e:
                logger.error(f"[Stream] listener failed: {e}")

    async def _fallback(self) -> Optional[StreamTransport]:
        self._set_state(StreamState.FALLBACK)
        interval = self.poll_interval
        while not self._stopped:
            limited = await self._poll_once()
            # rate limiting stretches the next wait; a clean round restores it
            interval = min(interval * 2, self.max_delay) if limited else self.poll_interval
            await self._sleep(interval)
            if self._stopped:
                return None
            transport = await self._open()
            if transport is not None:
                logger.info("[Stream] push connection restored, polling stopped")
                return transport
        return None

    async def _poll_once(self) -> bool:
        if self._fetch_quote is None or not self._symbols:
            return False
        limited = False
        syms = sorted(self._symbols)
        for i in range(0, len(syms), self.poll_concurrency):
            batch = syms[i:i + self.poll_concurrency]
            results = await asyncio.gather(*(self._fetch_quote(s) for s in batch), return_exceptions=True)
            for sym, res in zip(batch, results):
                if isinstance(res, RateLimitedError):
                    limited = True
                elif isinstance(res, Exception):
                    logger.warning(f"[Stream] poll failed for {sym}: {res}")
                elif res is not None and res.symbol in self._symbols:
                    self._enqueue(res)
        return limited
