from __future__ import annotations

import httpx
import pytest

from newsedge.ingest.providers import FetchResult, FinnhubProvider, NewsAPIProvider, NewsItem, canonicalize_url


@pytest.mark.parametrize(
    "url,expected",
    [
        ("https://Ex.com/a?id=1&utm_medium=x&fbclid=y", "https://ex.com/a?id=1"),
        ("https://ex.com/a?utm_source=feed&ref=home&source=rss&gclid=z", "https://ex.com/a"),
        ("https://ex.com", "https://ex.com/"),
        ("https://ex.com/a#top", "https://ex.com/a#top"),
        ("not a url", "not a url"),
        (None, None),
    ],
)
def test_canonicalize_url(url, expected) -> None:
    assert canonicalize_url(url) == expected


def test_fetch_result_ok_semantics() -> None:
    assert FetchResult("x", status=200).ok is True
    assert FetchResult("x", status=500).ok is False
    assert FetchResult("x", [NewsItem(id=1, headline="h", url=None)], status=500).ok is True


def test_numeric_id_only_for_ints() -> None:
    assert NewsItem(id=7, headline="h", url=None).numeric_id == 7
    assert NewsItem(id="7", headline="h", url=None).numeric_id is None
    assert NewsItem(id=True, headline="h", url=None).numeric_id is None


@pytest.mark.asyncio
async def test_finnhub_parses_articles() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[
            {"id": 501, "headline": "Oil jumps", "summary": "Brent up", "source": "Reuters",
             "url": "https://ex.com/oil?utm_campaign=x", "datetime": 1767614400},
            {"id": 502, "headline": "", "url": "https://ex.com/empty"},
            "garbage",
        ])

    provider = FinnhubProvider("fh-key", transport=httpx.MockTransport(handler))
    result = await provider.fetch()

    assert result.ok
    assert seen[0].url.params["token"] == "fh-key"
    assert seen[0].url.params["category"] == "general"
    assert len(result.items) == 1
    item = result.items[0]
    assert item.id == 501
    assert item.url == "https://ex.com/oil"
    assert item.body == "Brent up"
    assert item.published_at == "2026-01-05T12:00:00+00:00"
    assert item.provider == "finnhub"


@pytest.mark.asyncio
async def test_finnhub_non_200_is_a_failed_result() -> None:
    provider = FinnhubProvider("fh-key", transport=httpx.MockTransport(lambda r: httpx.Response(429)))
    result = await provider.fetch()
    assert result.ok is False
    assert result.status == 429
    assert result.error == "Finnhub returned 429"


@pytest.mark.asyncio
async def test_unconfigured_provider_does_not_call_out() -> None:
    calls = []
    provider = FinnhubProvider("", transport=httpx.MockTransport(lambda r: calls.append(r) or httpx.Response(200, json=[])))
    result = await provider.fetch()
    assert result.ok is False
    assert result.error == "finnhub API key not configured"
    assert calls == []


@pytest.mark.asyncio
async def test_transport_errors_are_captured() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("dns failure", request=request)

    result = await NewsAPIProvider("na-key", transport=httpx.MockTransport(handler)).fetch()
    assert result.ok is False
    assert "dns failure" in result.error


@pytest.mark.asyncio
async def test_newsapi_parses_articles() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={
            "status": "ok",
            "articles": [
                {"title": "Markets rally", "description": "Stocks up", "source": {"name": "AP"},
                 "url": "https://ex.com/rally?fbclid=1", "publishedAt": "2026-01-05T11:30:00Z"},
                {"title": None, "url": "https://ex.com/none"},
            ],
        })

    result = await NewsAPIProvider("na-key", transport=httpx.MockTransport(handler)).fetch()

    assert seen[0].headers["X-Api-Key"] == "na-key"
    assert len(result.items) == 1
    item = result.items[0]
    assert str(item.id).startswith("newsapi_")
    assert item.source == "AP"
    assert item.url == "https://ex.com/rally"
    assert item.published_at == "2026-01-05T11:30:00Z"
    assert item.numeric_id is None


@pytest.mark.asyncio
async def test_newsapi_error_body() -> None:
    transport = httpx.MockTransport(
        lambda r: httpx.Response(200, json={"status": "error", "message": "apiKeyInvalid"})
    )
    result = await NewsAPIProvider("na-key", transport=transport).fetch()
    assert result.items == []
    assert result.error == "apiKeyInvalid"
