from __future__ import annotations

from typing import Optional


class MarketDataError(Exception):
    """Base class for the few conditions that are raised instead of returned as None."""


class NotConfiguredError(MarketDataError):
    def __init__(self, message: str = "Market data service not configured"):
        super().__init__(message)


class RateLimitedError(MarketDataError):
    """Upstream answered 429. Pollers back off instead of treating it as a failure."""

    def __init__(self, message: str = "rate limited", retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after
