"""Read-only view over the hot key space.

An out-of-process market worker publishes real-time quotes into Redis as
``quote:<SYMBOL>`` and index values as ``index:<TICKER>``. Each value is a
JSON object carrying a ``timestamp`` (ms epoch, ISO strings are accepted
too). The core only reads these keys and validates freshness: an entry is
usable while ``0 <= now_ms - timestamp < freshness_ms``. Nothing in this package
writes to the hot namespace.

The breadth/calendar worker publishes ``context:breadth``, ``context:hot`` and
``context:calendar`` into the same key space. Those are read through
``read_json`` without a freshness check.
"""
from __future__ import annotations

import json
import time
from typing import Any, Callable, Dict, Optional

from dateutil import parser as dtparser
from loguru import logger
from redis.asyncio import Redis


def _now_ms() -> int:
    return int(time.time() * 1000)


def timestamp_ms(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str) and value:
        try:
            return int(dtparser.isoparse(value).timestamp() * 1000)
        except ValueError:
            return None
    return None


class HotCache:
    def __init__(
        self,
        redis_client: Optional["Redis"],
        freshness_ms: int = 5000,
        clock_ms: Callable[[], int] = _now_ms,
    ):
        self.r = redis_client
        self.freshness_ms = freshness_ms
        self._clock_ms = clock_ms

    def is_fresh(self, ts_ms: int, now_ms: Optional[int] = None) -> bool:
        now = self._clock_ms() if now_ms is None else now_ms
        # a timestamp ahead of our clock is a skewed writer, never fresh
        return 0 <= now - ts_ms < self.freshness_ms

    async def read_json(self, key: str) -> Any | None:
        """Raw worker-published JSON, no freshness check (context:* keys)."""
        if self.r is None:
            return None
        try:
            raw = await self.r.get(key)
        except Exception as e:
            logger.debug(f"hot cache unreachable for {key}: {e}")
            return None
        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.debug(f"hot cache entry {key} is not JSON")
            return None

    async def read(self, key: str) -> Dict[str, Any] | None:
        data = await self.read_json(key)
        if not isinstance(data, dict):
            return None
        ts = timestamp_ms(data.get("timestamp"))
        if ts is None or not self.is_fresh(ts):
            return None
        return data

    async def get_quote(self, symbol: str) -> Dict[str, Any] | None:
        return await self.read(f"quote:{symbol.upper()}")

    async def get_index(self, ticker: str) -> Dict[str, Any] | None:
        return await self.read(f"index:{ticker.upper()}")
