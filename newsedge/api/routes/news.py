"""News endpoints: ingestion trigger, stored events, debug views."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from newsedge import keys
from newsedge.api.deps import get_gateway, get_store
from newsedge.ingest.debug_log import NewsDebugLog
from newsedge.ingest.events import EventStore
from newsedge.ingest.gateway import IngestionGateway
from newsedge.ingest.providers import NewsItem, canonicalize_url
from newsedge.store import KVStore
from newsedge.utils import utc_now

router = APIRouter(tags=["news"])

_DEBUG_VIEWS = ("metrics", "raw", "decisions", "snapshot", "health")


class ManualItem(BaseModel):
    headline: str
    body: str | None = None
    url: str | None = None
    source: str = "manual"
    publishedAt: str | None = None


class InjectRequest(BaseModel):
    items: list[ManualItem] = Field(default_factory=list)


class AnalyzeRequest(BaseModel):
    headline: str
    summary: str | None = None
    url: str | None = None


@router.get("/news-watchdog")
async def news_watchdog(gateway: IngestionGateway = Depends(get_gateway)):
    result = await gateway.ingest()
    return result.to_dict()


@router.post("/news-watchdog")
async def news_watchdog_inject(body: InjectRequest, gateway: IngestionGateway = Depends(get_gateway)):
    """Run the pipeline over caller-supplied items instead of the providers."""
    if not body.items:
        raise HTTPException(status_code=400, detail="items must be a non-empty list")
    stamp = int(utc_now().timestamp() * 1000)
    items = [
        NewsItem(
            id=f"manual_{stamp}_{idx}",
            headline=it.headline,
            body=it.body,
            url=canonicalize_url(it.url),
            source=it.source,
            published_at=it.publishedAt or utc_now().isoformat(),
            provider="manual",
        )
        for idx, it in enumerate(body.items)
    ]
    result = await gateway.ingest(manual_items=items)
    return result.to_dict()


@router.get("/major-events")
async def major_events(limit: int = Query(10, ge=1, le=100), store: KVStore = Depends(get_store)):
    events = await EventStore(store).recent(limit)
    return {"ok": True, "count": len(events), "events": events}


@router.get("/news-debug")
async def news_debug(
    view: str = Query("metrics"),
    limit: int = Query(50, ge=1, le=300),
    store: KVStore = Depends(get_store),
) -> dict[str, Any]:
    if view not in _DEBUG_VIEWS:
        raise HTTPException(status_code=400, detail=f"view must be one of {', '.join(_DEBUG_VIEWS)}")
    debug = NewsDebugLog(store)
    if view == "metrics":
        return {"ok": True, "metrics": await debug.metrics()}
    if view == "raw":
        items = await debug.raw_items(limit)
        return {"ok": True, "count": len(items), "items": items}
    if view == "decisions":
        items = await debug.decisions(limit)
        return {"ok": True, "count": len(items), "decisions": items}
    if view == "snapshot":
        return {"ok": True, "snapshot": await store.get(keys.RAW_SNAPSHOT)}
    return {"ok": True, "health": await store.get(keys.HEALTH_LAST)}


@router.post("/news-debug/analyze")
async def news_debug_analyze(body: AnalyzeRequest, gateway: IngestionGateway = Depends(get_gateway)):
    """Classify a single headline for inspection; nothing is stored as an event."""
    headline = body.headline.strip()
    if not headline:
        raise HTTPException(status_code=400, detail="headline is required")
    summary = (body.summary or "").strip() or None
    url = canonicalize_url((body.url or "").strip() or None)
    return await gateway.analyze(headline, summary, url)
