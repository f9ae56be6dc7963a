"""System endpoints: health."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from newsedge import __version__, keys
from newsedge.api.deps import get_store
from newsedge.config import get_settings
from newsedge.store import KVStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["system"])


@router.get("/health")
async def health(store: KVStore = Depends(get_store)):
    from newsedge.api.app import get_uptime
    settings = get_settings()

    kv_ok = False
    news_health = None
    try:
        kv_ok = await store.ping()
        news_health = await store.get(keys.HEALTH_LAST)
    except Exception as exc:
        logger.warning("[health] KV check failed: %s", exc)

    return {
        "status": "ok" if kv_ok else "degraded",
        "version": __version__,
        "uptime_seconds": round(get_uptime(), 1),
        "components": {
            "kv": kv_ok,
            "classifier": settings.classifier_configured,
            "thesis": settings.thesis_configured,
            **settings.provider_keys,
        },
        "news_provider_health": news_health,
    }
