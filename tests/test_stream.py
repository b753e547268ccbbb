import asyncio
import json

import httpx
import pytest

from ltpcore.errors import RateLimitedError
from ltpcore.stream.backoff import backoff_delay
from ltpcore.stream.client import MarketStreamClient, StreamState
from ltpcore.stream.messages import PriceTick, parse_message, tick_from_message
from ltpcore.stream.transport import RestQuoteFetcher, StreamTransport, StreamTransportError


class FixedRng:
    def __init__(self, value):
        self.value = value

    def random(self):
        return self.value


class ScriptedTransport(StreamTransport):
    def __init__(self):
        self.inbox = asyncio.Queue()
        self.sent = []
        self.closed = False

    def push(self, **msg):
        self.inbox.put_nowait(json.dumps(msg))

    def hang_up(self):
        self.inbox.put_nowait(None)

    async def send_json(self, payload):
        self.sent.append(payload)

    async def receive(self):
        return await self.inbox.get()

    async def close(self):
        self.closed = True


def factory_of(*items):
    """Hands out the scripted items in order; exceptions are raised, the last item repeats."""
    queue = list(items)

    async def factory():
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        return item

    return factory


async def eventually(cond, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not cond():
        assert loop.time() < deadline, "condition not reached in time"
        await asyncio.sleep(0.005)


def test_backoff_is_exponential_with_bounded_jitter():
    assert backoff_delay(0, rng=FixedRng(0.0)) == 1.0
    assert backoff_delay(3, rng=FixedRng(0.0)) == 8.0
    assert backoff_delay(3, rng=FixedRng(1.0)) == 10.0
    assert backoff_delay(10, rng=FixedRng(0.5)) == 30.0
    for attempt in range(5):
        d = backoff_delay(attempt)
        assert 2 ** attempt <= d <= min(30.0, 2 ** attempt * 1.25)


def test_parse_tick_messages():
    msg = parse_message('{"type": "trade", "symbol": "spy", "data": {"close": 101.5, "size": 7}}')
    tick = tick_from_message(msg)
    assert tick.symbol == "SPY" and tick.price == 101.5 and tick.volume == 7
    assert tick.timestamp > 0

    assert parse_message('{"type": "heartbeat"}').type == "heartbeat"
    assert parse_message('{"type": "error", "message": "bad key"}').message == "bad key"


@pytest.mark.parametrize(
    "raw",
    [
        "{not json",
        '{"type": "trade", "data": {"price": 1}}',
        '{"type": "quote", "symbol": "SPY", "data": {"price": 0}}',
        '{"type": "bar", "symbol": "SPY"}',
        '{"type": "mystery"}',
    ],
)
def test_parse_rejects_malformed(raw):
    with pytest.raises(ValueError):
        parse_message(raw)


@pytest.mark.asyncio
async def test_rest_quote_fetcher():
    def handler(request):
        sym = request.url.path.rsplit("/", 1)[-1]
        if sym == "LIMIT":
            return httpx.Response(429, headers={"Retry-After": "3"})
        if sym == "DOWN":
            return httpx.Response(503)
        if sym == "LIST":
            return httpx.Response(200, json=[1, 2])
        return httpx.Response(200, json={"symbol": sym, "price": 101.5, "volume": 10, "high": 102})

    fetch = RestQuoteFetcher("http://api.test/quote/", client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    tick = await fetch("spy")
    assert tick.symbol == "SPY" and tick.price == 101.5 and tick.high == 102 and tick.volume == 10
    with pytest.raises(RateLimitedError) as e:
        await fetch("LIMIT")
    assert e.value.retry_after == 3.0
    assert await fetch("DOWN") is None
    assert await fetch("LIST") is None
    await fetch.aclose()


def test_client_needs_a_transport():
    with pytest.raises(ValueError):
        MarketStreamClient()


@pytest.mark.asyncio
async def test_subscribe_and_deliver_throttled_ticks():
    t = ScriptedTransport()
    client = MarketStreamClient(transport_factory=factory_of(t), throttle=0.05)
    seen = []
    client.add_listener(seen.append)

    assert await client.subscribe(["spy"]) == ["SPY"]
    client.start()
    await eventually(lambda: client.state == StreamState.CONNECTED and t.sent)
    assert t.sent[0] == {"type": "subscribe", "symbols": ["SPY"]}

    assert await client.subscribe(["SPY", "qqq"]) == ["QQQ"]
    assert t.sent[-1] == {"type": "subscribe", "symbols": ["QQQ"]}

    t.push(type="connected")
    t.push(type="trade", symbol="SPY", data={"price": 101.0})
    t.push(type="trade", symbol="SPY", data={"price": 102.0})
    t.push(type="trade", symbol="TSLA", data={"price": 250.0})
    t.inbox.put_nowait("{garbage")
    t.push(type="error", message="slow down")
    await eventually(lambda: seen)

    prices = client.prices()
    assert set(prices) == {"SPY"}
    assert prices["SPY"].price == 102.0
    with pytest.raises(TypeError):
        prices["X"] = None

    assert await client.unsubscribe(["spy"]) == ["SPY"]
    assert t.sent[-1] == {"type": "unsubscribe", "symbols": ["SPY"]}
    assert "SPY" not in client.prices()

    await client.stop()
    assert client.state == StreamState.DISCONNECTED
    assert t.closed

    calls = len(seen)
    t.push(type="trade", symbol="QQQ", data={"price": 400.0})
    await asyncio.sleep(0.1)
    assert len(seen) == calls


@pytest.mark.asyncio
async def test_reconnects_and_resubscribes():
    first, second = ScriptedTransport(), ScriptedTransport()
    client = MarketStreamClient(
        transport_factory=factory_of(first, StreamTransportError("refused"), second),
        base_delay=0.001,
        max_delay=0.01,
        throttle=0.01,
    )
    await client.subscribe(["SPY", "AAPL"])
    client.start()
    await eventually(lambda: first.sent)
    first.hang_up()

    await eventually(lambda: second.sent)
    assert second.sent[0] == {"type": "subscribe", "symbols": ["AAPL", "SPY"]}
    assert first.closed
    assert client.state == StreamState.CONNECTED

    second.push(type="quote", symbol="AAPL", data={"price": 190.0})
    await eventually(lambda: "AAPL" in client.prices())
    await client.stop()


@pytest.mark.asyncio
async def test_falls_back_to_polling_then_recovers():
    live = ScriptedTransport()
    attempts = []

    async def factory():
        attempts.append(1)
        if len(attempts) < 5:
            raise StreamTransportError("down")
        return live

    async def fetch(symbol):
        return PriceTick(symbol=symbol, price=50.0, timestamp=1)

    client = MarketStreamClient(
        transport_factory=factory,
        quote_fetcher=fetch,
        max_reconnect_attempts=2,
        base_delay=0.001,
        max_delay=0.01,
        throttle=0.005,
        poll_interval=0.01,
    )
    states = []
    await client.subscribe(["MSFT"])
    client.add_listener(lambda p: states.append(client.state))
    client.start()

    await eventually(lambda: StreamState.FALLBACK in states)
    assert client.prices()["MSFT"].price == 50.0

    await eventually(lambda: client.state == StreamState.CONNECTED)
    assert live.sent[0] == {"type": "subscribe", "symbols": ["MSFT"]}
    await client.stop()


@pytest.mark.asyncio
async def test_rate_limited_polling_backs_off():
    delays = []

    async def sleep(d):
        delays.append(d)
        await asyncio.sleep(0)

    async def fetch(symbol):
        raise RateLimitedError("429")

    client = MarketStreamClient(
        transport_factory=factory_of(StreamTransportError("down")),
        quote_fetcher=fetch,
        max_reconnect_attempts=0,
        max_delay=5.0,
        throttle=0.123,
        poll_interval=1.0,
        sleep=sleep,
    )
    await client.subscribe(["SPY"])
    client.start()
    await eventually(lambda: len([d for d in delays if d != 0.123]) >= 4)
    await client.stop()

    poll = [d for d in delays if d != 0.123]
    assert poll[:4] == [2.0, 4.0, 5.0, 5.0]
    assert client.state == StreamState.DISCONNECTED
