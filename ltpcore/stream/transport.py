from __future__ import annotations

import json
import time
from typing import Any, Dict, Optional

import aiohttp
import httpx
from loguru import logger

from ..errors import MarketDataError, RateLimitedError
from .messages import PriceTick


class StreamTransportError(MarketDataError):
    """Push connection could not be opened or broke while in use."""


class StreamTransport:
    """One open push connection. ``receive`` returns None once the peer closed."""

    async def send_json(self, payload: Dict[str, Any]) -> None:
        raise NotImplementedError

    async def receive(self) -> Optional[str]:
        raise NotImplementedError

    async def close(self) -> None:
        raise NotImplementedError


class WebSocketTransport(StreamTransport):
    def __init__(self, session: aiohttp.ClientSession, ws: aiohttp.ClientWebSocketResponse, owns_session: bool):
        self._session = session
        self._ws = ws
        self._owns_session = owns_session

    @classmethod
    async def connect(
        cls,
        url: str,
        session: Optional[aiohttp.ClientSession] = None,
        heartbeat: float = 30.0,
    ) -> "WebSocketTransport":
        owns = session is None
        sess = session or aiohttp.ClientSession()
        try:
            ws = await sess.ws_connect(url, heartbeat=heartbeat)
        except (aiohttp.ClientError, OSError) as e:
            if owns:
                await sess.close()
            raise StreamTransportError(f"connect to {url} failed: {e}") from e
        return cls(sess, ws, owns)

    async def send_json(self, payload: Dict[str, Any]) -> None:
        try:
            await self._ws.send_str(json.dumps(payload))
        except (aiohttp.ClientError, ConnectionError) as e:
            raise StreamTransportError(f"send failed: {e}") from e

    async def receive(self) -> Optional[str]:
        msg = await self._ws.receive()
        if msg.type == aiohttp.WSMsgType.TEXT:
            return msg.data
        if msg.type == aiohttp.WSMsgType.BINARY:
            return msg.data.decode("utf-8", errors="replace")
        if msg.type == aiohttp.WSMsgType.ERROR:
            raise StreamTransportError(f"websocket error: {self._ws.exception()}")
        # CLOSE / CLOSING / CLOSED
        return None

    async def close(self) -> None:
        try:
            await self._ws.close()
        finally:
            if self._owns_session:
                await self._session.close()


def websocket_factory(url: str):
    async def factory() -> StreamTransport:
        return await WebSocketTransport.connect(url)

    return factory


class RestQuoteFetcher:
    """Fallback poller source: GET ``<base_url>/<SYMBOL>`` returning a quote body."""

    def __init__(self, base_url: str, client: Optional[httpx.AsyncClient] = None, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self._cli = client
        self.timeout = timeout

    def _client(self) -> httpx.AsyncClient:
        if self._cli is None:
            self._cli = httpx.AsyncClient(timeout=self.timeout)
        return self._cli

    async def __call__(self, symbol: str) -> Optional[PriceTick]:
        sym = symbol.upper()
        try:
            r = await self._client().get(f"{self.base_url}/{sym}")
        except httpx.HTTPError as e:
            logger.warning(f"[Stream] quote poll failed for {sym}: {e}")
            return None
        if r.status_code == 429:
            raw = r.headers.get("Retry-After")
            try:
                retry_after = float(raw) if raw else None
            except ValueError:
                retry_after = None
            raise RateLimitedError(f"quote poll rate limited for {sym}", retry_after=retry_after)
        if not r.is_success:
            logger.warning(f"[Stream] quote poll for {sym} returned {r.status_code}")
            return None
        try:
            body = r.json()
        except ValueError:
            logger.warning(f"[Stream] quote poll for {sym} returned non-JSON body")
            return None
        if not isinstance(body, dict):
            return None
        price = body.get("price") or body.get("last") or 0
        if not isinstance(price, (int, float)) or price <= 0:
            return None
        return PriceTick(
            symbol=sym,
            price=float(price),
            open=body.get("open") or None,
            high=body.get("high") or None,
            low=body.get("low") or None,
            volume=float(body.get("volume") or 0),
            timestamp=int(body.get("t") or 0) or int(time.time() * 1000),
        )

    async def aclose(self) -> None:
        if self._cli is not None:
            await self._cli.aclose()
            self._cli = None
