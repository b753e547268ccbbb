from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional, TypeVar

from loguru import logger
from pydantic_core import to_jsonable_python
from redis.asyncio import Redis

from ..config import Settings, settings
from .backends import CacheBackend, MemoryBackend, RedisBackend
from .hot import HotCache

T = TypeVar("T")

# seconds
CACHE_TTL = {
    "quote": 5,
    "snapshot": 10,
    "aggregates": 60,
    "levels": 30,
    "market_status": 30,
    "indicators": 60,
    "options": 30,
    "index": 10,
}
HISTORICAL_TTL = CACHE_TTL["aggregates"] * 10


class TieredCache:
    """hot (read-only) -> shared -> process-local -> origin.

    ``get``/``set`` cover the two writable tiers. The hot tier is exposed as
    ``self.hot`` and is consulted explicitly by quote/index reads before any
    of this. A tier that raises is skipped for the current call, never retried.
    """

    def __init__(
        self,
        shared: Optional[CacheBackend] = None,
        local: Optional[MemoryBackend] = None,
        hot: Optional[HotCache] = None,
    ):
        self.shared = shared
        self.local = local if local is not None else MemoryBackend()
        self.hot = hot

    async def get(self, key: str) -> Any | None:
        if self.shared is not None:
            try:
                val = await self.shared.get(key)
                if val is not None:
                    logger.debug(f"cache hit ({self.shared.name}): {key}")
                    return val
            except Exception as e:
                logger.debug(f"shared cache unavailable, skipping for {key}: {e}")
        val = await self.local.get(key)
        if val is not None:
            logger.debug(f"cache hit (local): {key}")
        return val

    async def set(self, key: str, value: Any, ttl: float) -> None:
        payload = to_jsonable_python(value)
        if self.shared is not None:
            try:
                await self.shared.set(key, payload, ttl)
            except Exception as e:
                logger.debug(f"shared cache write skipped for {key}: {e}")
        await self.local.set(key, payload, ttl)

    async def get_cached(
        self,
        key: str,
        ttl: float,
        fetch: Callable[[], Awaitable[Optional[T]]],
        decode: Optional[Callable[[Any], T]] = None,
    ) -> Optional[T]:
        cached = await self.get(key)
        if cached is not None:
            return decode(cached) if decode else cached
        logger.debug(f"cache miss: {key}")
        value = await fetch()
        if value is None:
            return None
        # concurrent misses may both reach here; last writer wins
        await self.set(key, value, ttl)
        return value

    async def clear(self, symbol: Optional[str] = None) -> int:
        return await self.local.clear(symbol)

    async def aclose(self) -> None:
        # hot and shared tiers share one Redis client
        if isinstance(self.shared, RedisBackend):
            await self.shared.aclose()


def build_cache(cfg: Settings = settings, redis_client: Optional["Redis"] = None) -> TieredCache:
    """Pick the cache backend once, at startup."""
    backend = cfg.CACHE_BACKEND.strip().lower()
    if backend == "memory":
        return TieredCache(shared=None, local=MemoryBackend(), hot=None)
    if backend == "redis":
        client = redis_client if redis_client is not None else Redis.from_url(cfg.REDIS_URL)
        return TieredCache(
            shared=RedisBackend(client, namespace=cfg.CACHE_NAMESPACE),
            local=MemoryBackend(),
            hot=HotCache(client, freshness_ms=cfg.HOT_CACHE_FRESHNESS_MS),
        )
    raise ValueError(f"unknown CACHE_BACKEND: {cfg.CACHE_BACKEND}")
