"""Immutable per-signal logs plus a per-UTC-day sorted-set index of signal IDs.

The daily index is what makes the outcome cron resumable: it walks
``tsidx:v1:signals:<date>`` and looks each log up by ``signalId``.
Writes report failure in the return value and never raise.
"""

from __future__ import annotations

import logging
from typing import Any

from newsedge import keys
from newsedge.store import KVStore
from newsedge.utils import epoch_ms, utc_date_str

logger = logging.getLogger(__name__)

_EMPTY_COMPONENTS = {"echoEdge": 0, "eventClarity": 0, "regimeVol": 0, "gapRisk": 0, "freshness": 0}


def build_signal_id(model_version: int | None, event_id: str, symbol: str | None) -> str:
    mv = model_version if model_version is not None else 1
    return f"{mv}:{event_id}:{(symbol or 'UNKNOWN').upper()}"


def build_telemetry_log(
    *,
    signal_id: str,
    ts: str,
    event_id: str,
    signal: dict[str, Any],
    llm_output: dict[str, Any] | None = None,
    market_stats: dict[str, Any] | None = None,
    symbol: str | None = None,
    theme: str | None = None,
    source: str | None = None,
    cached: bool = False,
    latency_ms: int = 0,
) -> dict[str, Any]:
    """Flatten a scored signal into the write-once log shape."""
    llm_output = llm_output or {}
    market_stats = market_stats or {}
    confidence = signal.get("confidence") or {}
    sizing = signal.get("sizingHint") or {}
    meta = signal.get("meta") or {}
    entry = llm_output.get("entry") or {}
    invalidation = llm_output.get("invalidation") or {}
    return {
        "signalId": signal_id,
        "ts": ts,
        "eventId": event_id,
        "symbol": symbol or None,
        "theme": theme or None,
        "source": source or None,
        "signal": signal.get("signal"),
        "direction": llm_output.get("direction") or "NONE",
        "overall": confidence.get("overall", 0),
        "grade": confidence.get("grade") or "D",
        "components": confidence.get("components") or dict(_EMPTY_COMPONENTS),
        "echoUsed": bool(meta.get("echoUsed")),
        "marketStatsUsed": bool(meta.get("marketStatsUsed")),
        "atrPct": market_stats.get("atrPct"),
        "gapPct": market_stats.get("gapPct"),
        "ambiguity": llm_output.get("ambiguity"),
        "entryType": entry.get("type") or None,
        "entryLevel": entry.get("level") or 0,
        "invalidationLevel": invalidation.get("level") or 0,
        "stopDistancePct": sizing.get("stopDistancePct"),
        "riskPerTradePct": sizing.get("riskPerTradePct"),
        "suggestedPositionPct": sizing.get("suggestedPositionPct"),
        "cached": bool(cached),
        "latencyMs": latency_ms or 0,
        "modelVersion": meta.get("modelVersion", 1),
        "avoidCode": meta.get("avoidCode") or None,
    }


class TelemetryStore:
    def __init__(self, store: KVStore) -> None:
        self._store = store

    async def write(self, log: dict[str, Any]) -> dict[str, Any]:
        if not log or not log.get("signalId") or not log.get("ts"):
            return {"ok": False, "signalId": None, "error": "Invalid log object"}

        signal_id = log["signalId"]
        try:
            index_key = keys.tsidx(utc_date_str(log["ts"]))
            await self._store.set(keys.tslog(signal_id), log, keys.TSLOG_TTL)
            await self._store.zadd(index_key, score=epoch_ms(log["ts"]), member=signal_id)
            await self._store.expire(index_key, keys.TSIDX_TTL)
        except Exception as exc:
            logger.error("[telemetry] write failed for %s: %s", signal_id, exc)
            return {"ok": False, "signalId": signal_id, "error": str(exc)}
        return {"ok": True, "signalId": signal_id}

    async def read(self, signal_id: str) -> dict[str, Any] | None:
        if not signal_id:
            return None
        return await self._store.get(keys.tslog(signal_id))

    async def read_by_date(self, date_str: str) -> list[str]:
        if not date_str:
            return []
        return await self._store.zrange(keys.tsidx(date_str), 0, -1)
