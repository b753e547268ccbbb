from __future__ import annotations

import json
import time
from typing import Any, Callable, Dict, Optional, Tuple

from redis.asyncio import Redis


class CacheBackend:
    """Key/value store with per-key TTL. Values must be JSON-serializable."""

    name = "backend"

    async def get(self, key: str) -> Any | None:
        raise NotImplementedError

    async def set(self, key: str, value: Any, ttl: float) -> None:
        raise NotImplementedError

    async def clear(self, fragment: Optional[str] = None) -> int:
        raise NotImplementedError


class MemoryBackend(CacheBackend):
    name = "memory"

    def __init__(self, clock: Callable[[], float] = time.time):
        self._m: Dict[str, Tuple[float, Any]] = {}
        self._clock = clock

    async def get(self, key: str) -> Any | None:
        expires_at, val = self._m.get(key, (0.0, None))
        if val is None:
            return None
        if self._clock() >= expires_at:
            self._m.pop(key, None)
            return None
        return val

    async def set(self, key: str, value: Any, ttl: float) -> None:
        self._m[key] = (self._clock() + ttl, value)

    async def clear(self, fragment: Optional[str] = None) -> int:
        if fragment is None:
            n = len(self._m)
            self._m.clear()
            return n
        frag = fragment.upper()
        doomed = [k for k in self._m if frag in k.upper()]
        for k in doomed:
            self._m.pop(k, None)
        return len(doomed)

    def __len__(self) -> int:
        return len(self._m)


class RedisBackend(CacheBackend):
    """Shared tier. Keys live under ``<namespace>:`` so they never collide with the
    worker-owned hot keys (``quote:<SYM>``, ``index:<TICKER>``)."""

    name = "redis"

    def __init__(self, redis_client: Optional["Redis"], namespace: str = "market"):
        self.r = redis_client
        self.ns = namespace

    def _k(self, key: str) -> str:
        return f"{self.ns}:{key}"

    async def get(self, key: str) -> Any | None:
        raw = await self.r.get(self._k(key))
        if raw is None:
            return None
        return json.loads(raw)

    async def set(self, key: str, value: Any, ttl: float) -> None:
        await self.r.set(self._k(key), json.dumps(value), ex=max(1, int(ttl)))

    async def clear(self, fragment: Optional[str] = None) -> int:
        pattern = f"{self.ns}:*{fragment.upper()}*" if fragment else f"{self.ns}:*"
        n = 0
        async for k in self.r.scan_iter(match=pattern):
            await self.r.delete(k)
            n += 1
        return n

    async def aclose(self) -> None:
        if self.r is not None:
            await self.r.aclose()
