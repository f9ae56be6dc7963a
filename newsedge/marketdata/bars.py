"""Daily OHLC bars from Tiingo, cached per symbol and reference date.

Cache key: ``mkt:v1:TIINGO:daily:<SYMBOL>:<YYYY-MM-DD>`` with a 7-day TTL; only
outcome lookups go through the cache, market stats always fetch fresh.
Cache failures never block a fetch; fetch failures raise ``MarketDataError``.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any

import httpx

from newsedge import keys
from newsedge.config import get_settings
from newsedge.errors import MarketDataError
from newsedge.store import KVStore
from newsedge.utils import retry, utc_date_str, utc_now

logger = logging.getLogger(__name__)

_TIINGO_DAILY_URL = "https://api.tiingo.com/tiingo/daily"

PROVIDER = "TIINGO"
LOOKBACK_DAYS = 35


def normalize_bar(raw: dict[str, Any]) -> dict[str, Any]:
    return {
        "date": str(raw["date"]).split("T")[0],
        "open": float(raw["open"]),
        "high": float(raw["high"]),
        "low": float(raw["low"]),
        "close": float(raw["close"]),
    }


def has_forward_bar(bars: list[dict[str, Any]], ref_date: str) -> bool:
    return any(str(b.get("date", "")) > ref_date for b in bars)


class TiingoClient:
    def __init__(self, api_key: str | None = None, transport: httpx.AsyncBaseTransport | None = None) -> None:
        key = api_key if api_key is not None else get_settings().tiingo_api_key
        self._api_key = (key or "").strip()
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    @retry(max_attempts=2, base_delay=0.5, exceptions=(httpx.TransportError,))
    async def _get(self, url: str, params: dict[str, str]) -> httpx.Response:
        async with httpx.AsyncClient(timeout=15, transport=self._transport) as client:
            return await client.get(url, params=params, headers={"Content-Type": "application/json"})

    async def fetch_daily_bars(self, symbol: str, start: str, end: str) -> list[dict[str, Any]]:
        """Bars for *symbol* between *start* and *end* (``YYYY-MM-DD``), ascending."""
        if not self.configured:
            raise MarketDataError("not_configured", "TIINGO_API_KEY not configured")
        sym = symbol.upper()
        try:
            resp = await self._get(
                f"{_TIINGO_DAILY_URL}/{sym}/prices",
                {"startDate": start, "endDate": end, "token": self._api_key},
            )
        except httpx.HTTPError as exc:
            raise MarketDataError("http", f"Tiingo request failed: {exc}") from exc

        if resp.status_code == 404:
            raise MarketDataError("not_found", f"Symbol {sym} not found")
        if resp.status_code == 429:
            raise MarketDataError("rate_limited", "Tiingo rate limit exceeded")
        if not resp.is_success:
            raise MarketDataError("http", f"Tiingo HTTP {resp.status_code}")

        try:
            data = resp.json()
        except ValueError as exc:
            raise MarketDataError("http", "Tiingo returned invalid JSON") from exc
        if not isinstance(data, list) or not data:
            raise MarketDataError("no_data", f"No data for {sym}")

        bars = []
        for raw in data:
            try:
                bars.append(normalize_bar(raw))
            except (KeyError, TypeError, ValueError):
                logger.debug("[tiingo] dropping malformed bar for %s: %r", sym, raw)
        if not bars:
            raise MarketDataError("no_data", f"No usable bars for {sym}")
        bars.sort(key=lambda b: b["date"])
        return bars


class BarCache:
    """Fetch-and-cache wrapper keyed by the signal's reference date.

    A series is cached only once it holds a bar after the reference date;
    anything shorter is refetched so forward bars show up when they exist.
    With ``store=None`` every call goes straight to Tiingo.
    """

    def __init__(self, store: KVStore | None, client: TiingoClient) -> None:
        self._store = store
        self._client = client

    async def get_daily_bars(self, symbol: str, reference_ts: str) -> list[dict[str, Any]]:
        if not symbol:
            raise MarketDataError("not_found", "Symbol is required")
        ref_date = utc_date_str(reference_ts)
        key = keys.daily_bars(PROVIDER, symbol, ref_date)

        if self._store is not None:
            try:
                cached = await self._store.get(key)
                if isinstance(cached, list) and has_forward_bar(cached, ref_date):
                    return cached
            except Exception as exc:
                logger.warning("[bars] cache read failed for %s: %s", key, exc)

        start = (date.fromisoformat(ref_date) - timedelta(days=LOOKBACK_DAYS)).isoformat()
        end = utc_now().date().isoformat()
        bars = await self._client.fetch_daily_bars(symbol, start, end)

        if self._store is not None and has_forward_bar(bars, ref_date):
            try:
                await self._store.set(key, bars, keys.BARS_TTL)
            except Exception as exc:
                logger.warning("[bars] cache write failed for %s: %s", key, exc)
        return bars
