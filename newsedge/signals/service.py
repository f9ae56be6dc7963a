"""SignalService — event → thesis → scored signal, cached per model version."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

from newsedge import keys
from newsedge.engine import confidence
from newsedge.engine.echo import EchoContextBuilder
from newsedge.engine.thesis import ThesisGenerator
from newsedge.errors import ThesisError
from newsedge.ingest.events import EventStore
from newsedge.marketdata.stats import MarketStatsService
from newsedge.store import KVStore
from newsedge.telemetry.telemetry import TelemetryStore, build_signal_id, build_telemetry_log
from newsedge.utils import utc_now

logger = logging.getLogger(__name__)


class SignalService:
    def __init__(
        self,
        store: KVStore,
        thesis: ThesisGenerator,
        echo: EchoContextBuilder | None = None,
        market_stats: MarketStatsService | None = None,
        model_version: int = 1,
    ) -> None:
        self._store = store
        self._thesis = thesis
        self._echo = echo
        self._market_stats = market_stats
        self._model_version = model_version
        self._events = EventStore(store)
        self._telemetry = TelemetryStore(store)
        self._pending: set[asyncio.Task] = set()

    async def generate(self, event_id: str) -> dict[str, Any]:
        """Always returns a dict with ``ok``; only store failures propagate."""
        started = time.monotonic()
        event_id = (event_id or "").strip()
        if not event_id:
            return {"ok": False, "error": {"code": "INVALID_INPUT", "message": "eventId is required"}}

        cache_key = keys.signal(self._model_version, event_id)
        cached = await self._store.get(cache_key)
        if cached:
            logger.info("[signal] cache hit for %s", event_id)
            return {**cached, "cached": True}

        event = await self._events.find(event_id)
        if event is None:
            return {"ok": False, "error": {"code": "EVENT_NOT_FOUND", "message": f"Event {event_id} not found"}}
        if not event.get("headline"):
            return {"ok": False, "error": {"code": "INVALID_EVENT", "message": "Event is missing required headline"}}

        try:
            llm_output = await self._thesis.generate(event)
        except ThesisError as exc:
            logger.warning("[signal] thesis failed for %s: %s %s", event_id, exc.code, exc.message)
            return {"ok": False, "eventId": event_id, "error": exc.to_dict()}

        echo_context = None
        if self._echo is not None:
            try:
                echo_context = self._echo.build(event)
            except Exception:
                logger.warning("[signal] echo context failed for %s", event_id, exc_info=True)

        stats = None
        if self._market_stats is not None:
            try:
                stats = await self._market_stats.for_event(event)
            except Exception:
                logger.warning("[signal] market stats failed for %s", event_id, exc_info=True)

        scored = confidence.score(event, echo_context, llm_output, stats, model_version=self._model_version)

        symbol = llm_output.get("instrument") or (llm_output.get("tickers") or [None])[0] or (stats or {}).get("symbol")
        signal_id = build_signal_id(self._model_version, event_id, symbol)
        ts = utc_now().isoformat()
        latency_ms = int((time.monotonic() - started) * 1000)

        result = {
            "ok": True,
            "eventId": event_id,
            "signalId": signal_id,
            "symbol": symbol,
            "createdAt": ts,
            **scored,
            "thesis": llm_output,
            "echoContext": echo_context,
            "marketStats": stats,
            "latencyMs": latency_ms,
        }
        await self._store.set(cache_key, result, keys.SIGNAL_TTL)

        log = build_telemetry_log(
            signal_id=signal_id,
            ts=ts,
            event_id=event_id,
            signal=scored,
            llm_output=llm_output,
            market_stats=stats,
            symbol=symbol,
            theme=(event.get("analysis") or {}).get("importanceCategory"),
            source=event.get("source"),
            cached=False,
            latency_ms=latency_ms,
        )
        self._dispatch_telemetry(log)

        logger.info(
            "[signal] %s → %s (overall=%d grade=%s)",
            signal_id, scored["signal"], scored["confidence"]["overall"], scored["confidence"]["grade"],
        )
        return {**result, "cached": False}

    # ── fire-and-forget telemetry ──────────────────────────────────────

    def _dispatch_telemetry(self, log: dict[str, Any]) -> None:
        task = asyncio.create_task(self._telemetry.write(log))
        self._pending.add(task)
        task.add_done_callback(self._on_telemetry_done)

    def _on_telemetry_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("[telemetry] background write raised: %s", exc)
            return
        result = task.result()
        if not result.get("ok"):
            logger.warning("[telemetry] write failed for %s: %s", result.get("signalId"), result.get("error"))

    async def drain(self) -> None:
        """Wait for in-flight telemetry writes (shutdown and tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
