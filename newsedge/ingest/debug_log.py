"""KV-backed observability for the ingestion pipeline.

Keeps capped newest-first lists of raw items and triage decisions plus a
small metrics dict. All writes are best-effort: a failure here is logged and
never interrupts ingestion.
"""

from __future__ import annotations

import logging
from typing import Any

from newsedge import keys
from newsedge.store import KVStore
from newsedge.utils import utc_now

logger = logging.getLogger(__name__)

RAW_LIMIT = 300
DECISION_LIMIT = 300


class Decision:
    ANALYZED = "ANALYZED"
    SKIPPED_ALREADY_PROCESSED = "SKIPPED_ALREADY_PROCESSED"
    SKIPPED_DAILY_CAP = "SKIPPED_DAILY_CAP"
    ERROR = "ERROR"


DEFAULT_METRICS: dict[str, Any] = {
    "rawFetchedLastRun": 0,
    "rawLoggedCount": 0,
    "decisionsLoggedCount": 0,
    "analyzedCount": 0,
    "skippedDailyCapCount": 0,
    "skippedProcessedCount": 0,
    "errorsCount": 0,
    "lastRunAt": None,
}


class NewsDebugLog:
    def __init__(self, store: KVStore) -> None:
        self._store = store

    async def _prepend(self, key: str, entry: dict[str, Any], limit: int) -> None:
        items = await self._store.get(key) or []
        items.insert(0, entry)
        await self._store.set(key, items[:limit], keys.DEBUG_TTL)

    async def log_raw_item(self, item: dict[str, Any], item_hash: str) -> None:
        entry = {
            "ts": utc_now().isoformat(),
            "provider": item.get("provider") or "unknown",
            "providerId": item.get("id"),
            "publishedAt": item.get("publishedAt"),
            "source": item.get("source"),
            "headline": item.get("headline") or "",
            "summary": item.get("body"),
            "url": item.get("url"),
            "hash": item_hash,
        }
        try:
            await self._prepend(keys.DEBUG_RAW, entry, RAW_LIMIT)
        except Exception:
            logger.warning("[debug-log] failed to log raw item", exc_info=True)

    async def log_decision(self, record: dict[str, Any]) -> None:
        entry = {"ts": utc_now().isoformat(), **record}
        try:
            await self._prepend(keys.DEBUG_DECISIONS, entry, DECISION_LIMIT)
        except Exception:
            logger.warning("[debug-log] failed to log decision", exc_info=True)

    async def bump(self, **deltas: int) -> None:
        """Increment one or more counters in a single read-modify-write."""
        try:
            metrics = await self._store.get(keys.DEBUG_METRICS) or dict(DEFAULT_METRICS)
            for name, delta in deltas.items():
                metrics[name] = int(metrics.get(name) or 0) + delta
            metrics["lastUpdatedAt"] = utc_now().isoformat()
            await self._store.set(keys.DEBUG_METRICS, metrics, keys.DEBUG_TTL)
        except Exception:
            logger.warning("[debug-log] failed to update metrics", exc_info=True)

    async def set_metric(self, name: str, value: Any) -> None:
        try:
            metrics = await self._store.get(keys.DEBUG_METRICS) or dict(DEFAULT_METRICS)
            metrics[name] = value
            metrics["lastUpdatedAt"] = utc_now().isoformat()
            await self._store.set(keys.DEBUG_METRICS, metrics, keys.DEBUG_TTL)
        except Exception:
            logger.warning("[debug-log] failed to set metric %s", name, exc_info=True)

    # ── reads ──────────────────────────────────────────────────────────

    async def raw_items(self, limit: int = 200) -> list[dict[str, Any]]:
        items = await self._store.get(keys.DEBUG_RAW) or []
        return items[: min(max(1, limit), RAW_LIMIT)]

    async def decisions(self, limit: int = 200) -> list[dict[str, Any]]:
        items = await self._store.get(keys.DEBUG_DECISIONS) or []
        return items[: min(max(1, limit), DECISION_LIMIT)]

    async def metrics(self) -> dict[str, Any]:
        return await self._store.get(keys.DEBUG_METRICS) or dict(DEFAULT_METRICS)
