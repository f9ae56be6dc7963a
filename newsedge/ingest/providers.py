"""News providers with a uniform fetch contract.

Each provider returns a ``FetchResult`` and never raises: transport errors,
non-2xx responses and missing API keys all land in ``status``/``error`` so
the gateway can decide whether to walk to the next provider.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx

from newsedge.utils import parse_iso, utc_now

logger = logging.getLogger(__name__)

_FINNHUB_NEWS_URL = "https://finnhub.io/api/v1/news"
_NEWSAPI_URL = "https://newsapi.org/v2/top-headlines"

_TRACKING_PARAMS = {"gclid", "fbclid", "ref", "source"}


def canonicalize_url(url: str | None) -> str | None:
    """Strip tracking query parameters (``utm_*``, gclid, fbclid, ref, source)."""
    if not url:
        return url
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    if not parts.scheme or not parts.netloc:
        return url
    kept = [
        (k, v)
        for k, v in parse_qsl(parts.query, keep_blank_values=True)
        if not (k.lower().startswith("utm_") or k.lower() in _TRACKING_PARAMS)
    ]
    path = parts.path or "/"
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, urlencode(kept), parts.fragment))


@dataclass
class NewsItem:
    id: int | str
    headline: str
    url: str | None
    source: str = "Unknown"
    body: str | None = None
    published_at: str | None = None
    provider: str = "unknown"

    @property
    def numeric_id(self) -> int | None:
        """Provider IDs that are monotonically increasing integers (Finnhub)."""
        if isinstance(self.id, bool):
            return None
        return self.id if isinstance(self.id, int) else None

    def published_dt(self) -> datetime | None:
        if not self.published_at:
            return None
        try:
            return parse_iso(self.published_at)
        except ValueError:
            return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "headline": self.headline,
            "body": self.body,
            "source": self.source,
            "url": self.url,
            "publishedAt": self.published_at,
            "provider": self.provider,
        }


@dataclass
class FetchResult:
    provider: str
    items: list[NewsItem] = field(default_factory=list)
    status: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        """A provider call counts as failed only when it is non-2xx *and* empty."""
        return self.status == 200 or bool(self.items)


class NewsProvider:
    """Base class: subclasses implement ``_fetch`` and set ``name``."""

    name = "unknown"

    def __init__(self, api_key: str = "", transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._api_key = (api_key or "").strip()
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=15, transport=self._transport)

    async def fetch(self) -> FetchResult:
        if not self.configured:
            return FetchResult(provider=self.name, error=f"{self.name} API key not configured")
        try:
            return await self._fetch()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("[%s] fetch failed: %s", self.name, exc)
            return FetchResult(provider=self.name, error=str(exc))

    async def _fetch(self) -> FetchResult:
        raise NotImplementedError


class FinnhubProvider(NewsProvider):
    """Finnhub general news. IDs are increasing integers, timestamps epoch seconds."""

    name = "finnhub"

    async def _fetch(self) -> FetchResult:
        async with self._client() as client:
            resp = await client.get(
                _FINNHUB_NEWS_URL,
                params={"category": "general", "token": self._api_key},
            )
        if resp.status_code != 200:
            logger.warning("[finnhub] news returned %d", resp.status_code)
            return FetchResult(provider=self.name, status=resp.status_code,
                               error=f"Finnhub returned {resp.status_code}")

        items: list[NewsItem] = []
        for raw in resp.json() or []:
            if not isinstance(raw, dict) or not raw.get("headline"):
                continue
            ts = raw.get("datetime")
            published = (
                datetime.fromtimestamp(int(ts), tz=timezone.utc).isoformat()
                if ts else utc_now().isoformat()
            )
            items.append(
                NewsItem(
                    id=raw.get("id"),
                    headline=str(raw["headline"]),
                    body=raw.get("summary") or None,
                    source=raw.get("source") or "Unknown",
                    url=canonicalize_url(raw.get("url")),
                    published_at=published,
                    provider=self.name,
                )
            )
        return FetchResult(provider=self.name, items=items, status=resp.status_code)


class NewsAPIProvider(NewsProvider):
    """NewsAPI.org top headlines, used as the secondary source."""

    name = "newsapi"

    async def _fetch(self) -> FetchResult:
        async with self._client() as client:
            resp = await client.get(
                _NEWSAPI_URL,
                params={"category": "general", "language": "en", "pageSize": 100},
                headers={"X-Api-Key": self._api_key},
            )
        if resp.status_code != 200:
            logger.warning("[newsapi] top-headlines returned %d", resp.status_code)
            return FetchResult(provider=self.name, status=resp.status_code,
                               error=f"NewsAPI returned {resp.status_code}")

        data = resp.json() or {}
        if data.get("status") != "ok":
            return FetchResult(provider=self.name, status=resp.status_code,
                               error=data.get("message") or "NewsAPI error")

        stamp = int(utc_now().timestamp() * 1000)
        items: list[NewsItem] = []
        for idx, article in enumerate(data.get("articles") or []):
            if not isinstance(article, dict) or not article.get("title"):
                continue
            items.append(
                NewsItem(
                    id=f"newsapi_{stamp}_{idx}",
                    headline=str(article["title"]),
                    body=article.get("description") or article.get("content") or None,
                    source=(article.get("source") or {}).get("name") or "NewsAPI",
                    url=canonicalize_url(article.get("url")),
                    published_at=article.get("publishedAt") or utc_now().isoformat(),
                    provider=self.name,
                )
            )
        return FetchResult(provider=self.name, items=items, status=resp.status_code)
