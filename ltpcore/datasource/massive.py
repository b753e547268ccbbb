from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
from loguru import logger

from ..config import Settings, settings

BASE = "https://api.massive.com"


@dataclass
class VendorResponse:
    status: int
    data: Optional[Dict[str, Any]] = None
    rate_limited: bool = False
    retry_after: Optional[float] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300 and self.data is not None


def _retry_after(r: httpx.Response) -> Optional[float]:
    raw = r.headers.get("Retry-After")
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


class MassiveGateway:
    """Authenticated REST client for the market-data vendor.

    Without an API key the gateway is "unconfigured": every call returns None
    and callers surface that as a distinct condition. Non-2xx responses are
    soft failures. No retries happen here.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = BASE,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key or ""
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._cli = client
        self.last_response: Optional[VendorResponse] = None

    @classmethod
    def from_settings(cls, cfg: Settings = settings) -> "MassiveGateway":
        return cls(cfg.MASSIVE_API_KEY, base_url=cfg.MARKET_BASE_URL, timeout=cfg.HTTP_TIMEOUT_S)

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _client(self) -> httpx.AsyncClient:
        if self._cli is None:
            self._cli = httpx.AsyncClient(timeout=self.timeout)
        return self._cli

    async def request(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> VendorResponse:
        if not self.api_key:
            logger.warning("[MarketData] API key not configured")
            resp = VendorResponse(status=0)
            self.last_response = resp
            return resp

        query: Dict[str, Any] = {"apiKey": self.api_key}
        for k, v in (params or {}).items():
            if v is not None:
                query[k] = v
        headers = {"Accept": "application/json", "Authorization": f"Bearer {self.api_key}"}

        try:
            r = await self._client().get(f"{self.base_url}{endpoint}", params=query, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"[MarketData] fetch error for {endpoint}: {e}")
            resp = VendorResponse(status=0)
            self.last_response = resp
            return resp

        if r.status_code == 429:
            resp = VendorResponse(status=429, rate_limited=True, retry_after=_retry_after(r))
            logger.warning(f"[MarketData] rate limited on {endpoint} (retry_after={resp.retry_after})")
        elif not r.is_success:
            logger.error(f"[MarketData] API error for {endpoint}: {r.status_code} - {r.text[:200]}")
            resp = VendorResponse(status=r.status_code)
        else:
            try:
                resp = VendorResponse(status=r.status_code, data=r.json())
            except ValueError:
                logger.error(f"[MarketData] non-JSON body from {endpoint}")
                resp = VendorResponse(status=r.status_code)
        self.last_response = resp
        return resp

    async def fetch(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any] | None:
        resp = await self.request(endpoint, params)
        return resp.data if resp.ok else None

    async def aclose(self) -> None:
        if self._cli is not None:
            await self._cli.aclose()
            self._cli = None
