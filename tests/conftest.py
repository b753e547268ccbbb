import fnmatch
import json
from datetime import datetime

import pytest
from dateutil import tz

from ltpcore.cache.backends import MemoryBackend, RedisBackend
from ltpcore.cache.hot import HotCache
from ltpcore.cache.tiered import TieredCache
from ltpcore.schemas.market import Bar, Quote
from ltpcore.service import MarketDataService

ET = tz.gettz("America/New_York")


def make_bar(t, o, h, l, c, v=1000.0):
    return Bar(t=int(t), open=o, high=h, low=l, close=c, volume=v)


def et_ms(y, mo, d, hh, mm):
    return int(datetime(y, mo, d, hh, mm, tzinfo=ET).timestamp() * 1000)


def trending_bars(n=30, start=100.0, step=1.0, t0=1_700_000_000_000, dt=60_000):
    """Monotonic closes; step > 0 trends up, step < 0 trends down."""
    out = []
    for i in range(n):
        c = start + step * i
        out.append(make_bar(t0 + i * dt, c - step / 2, max(c, c - step / 2) + 0.1, min(c, c - step / 2) - 0.1, c))
    return out


def make_quote(symbol="SPY", price=100.0, **kw):
    return Quote(symbol=symbol, last=price, price=price, timestamp="2025-01-02T15:00:00+00:00", **kw)


class FakeGateway:
    """Records every call and answers from a prefix -> payload table."""

    def __init__(self, routes=None, configured=True):
        self.routes = dict(routes or {})
        self.configured = configured
        self.calls = []
        self.closed = False

    def is_configured(self):
        return self.configured

    async def fetch(self, endpoint, params=None):
        self.calls.append((endpoint, dict(params or {})))
        if not self.configured:
            return None
        # longest matching prefix wins
        for prefix in sorted(self.routes, key=len, reverse=True):
            if endpoint.startswith(prefix):
                payload = self.routes[prefix]
                return payload(endpoint, params) if callable(payload) else payload
        return None

    def count(self, prefix):
        return sum(1 for e, _ in self.calls if e.startswith(prefix))

    async def aclose(self):
        self.closed = True


class FakeRedis:
    def __init__(self):
        self.store = {}
        self.closed = False
        self.fail = False

    async def get(self, key):
        if self.fail:
            raise ConnectionError("redis down")
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        if self.fail:
            raise ConnectionError("redis down")
        self.store[key] = value

    async def delete(self, key):
        self.store.pop(key, None)

    async def scan_iter(self, match="*"):
        for k in list(self.store):
            if fnmatch.fnmatch(k, match):
                yield k

    async def aclose(self):
        self.closed = True

    def put_json(self, key, value):
        self.store[key] = json.dumps(value)


def fixed_clock(dt):
    return lambda: dt


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def make_service(fake_redis):
    def build(gateway, now=None, hot_now_ms=None, with_redis=True):
        clock = fixed_clock(now or datetime(2025, 1, 2, 10, 30, tzinfo=ET))
        if with_redis:
            hot_clock = (lambda: hot_now_ms) if hot_now_ms is not None else (lambda: int(clock().timestamp() * 1000))
            cache = TieredCache(
                shared=RedisBackend(fake_redis, namespace="market"),
                local=MemoryBackend(),
                hot=HotCache(fake_redis, freshness_ms=5000, clock_ms=hot_clock),
            )
        else:
            cache = TieredCache()
        return MarketDataService(gateway, cache, clock=clock)

    return build
