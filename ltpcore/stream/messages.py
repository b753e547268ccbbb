from __future__ import annotations

import time
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict

MessageType = Literal["connected", "heartbeat", "subscribed", "trade", "bar", "quote", "error"]
TICK_TYPES = ("trade", "bar", "quote")


class TickData(BaseModel):
    model_config = ConfigDict(extra="ignore", allow_inf_nan=False)

    price: Optional[float] = None
    close: Optional[float] = None
    open: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None
    volume: Optional[float] = None
    size: Optional[float] = None
    timestamp: Optional[int] = None


class StreamMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: MessageType
    symbol: Optional[str] = None
    symbols: Optional[list[str]] = None
    data: Optional[TickData] = None
    message: Optional[str] = None


class PriceTick(BaseModel):
    model_config = ConfigDict(frozen=True)

    symbol: str
    price: float
    open: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None
    volume: float = 0.0
    timestamp: int


def parse_message(raw: Union[str, bytes]) -> StreamMessage:
    """Decode one inbound frame. Raises ValueError (pydantic ValidationError) when malformed.

    Price-bearing messages must carry a symbol and a positive price or close.
    """
    msg = StreamMessage.model_validate_json(raw)
    if msg.type in TICK_TYPES:
        d = msg.data
        if not msg.symbol or d is None or not ((d.price or 0) > 0 or (d.close or 0) > 0):
            raise ValueError(f"{msg.type} message without symbol or price")
    return msg


def tick_from_message(msg: StreamMessage) -> PriceTick:
    d = msg.data
    return PriceTick(
        symbol=msg.symbol.upper(),
        price=d.price if (d.price or 0) > 0 else d.close,
        open=d.open,
        high=d.high,
        low=d.low,
        volume=d.volume or d.size or 0.0,
        timestamp=d.timestamp or int(time.time() * 1000),
    )
