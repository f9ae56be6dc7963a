"""Outcome cron: walk one day's signal index and persist realized outcomes.

Per signal: existing outcome → skipped; lock held by another run → skipped;
otherwise lock, load the telemetry log, fetch bars, build and store the
record. A failure on one signal lands in ``details`` and the batch continues.
"""

from __future__ import annotations

import logging
from typing import Any

from newsedge import keys
from newsedge.engine.outcome import build_outcome_record
from newsedge.errors import MarketDataError
from newsedge.marketdata.bars import BarCache
from newsedge.store import KVStore
from newsedge.telemetry.telemetry import TelemetryStore
from newsedge.utils import is_valid_date_str, yesterday_utc

logger = logging.getLogger(__name__)

MIN_BARS = 6


class OutcomeCron:
    def __init__(self, store: KVStore, bars: BarCache) -> None:
        self._store = store
        self._bars = bars
        self._telemetry = TelemetryStore(store)

    async def run_for_date(self, date: str | None = None) -> dict[str, Any]:
        """Compute outcomes for every signal indexed on *date* (default: yesterday UTC).

        Raises ``ValueError`` for a malformed date.
        """
        date = date or yesterday_utc()
        if not is_valid_date_str(date):
            raise ValueError("Invalid date format. Use YYYY-MM-DD")

        results: dict[str, Any] = {"ok": True, "date": date, "processed": 0, "skipped": 0, "errors": 0, "details": []}
        signal_ids = await self._telemetry.read_by_date(date)
        if not signal_ids:
            logger.info("[outcome-cron] no signals for %s", date)
            results["message"] = "No signals found for date"
            return results

        logger.info("[outcome-cron] %d signals for %s", len(signal_ids), date)
        for signal_id in signal_ids:
            try:
                status, detail = await self._process(signal_id)
            except Exception as exc:
                logger.error("[outcome-cron] error processing %s: %s", signal_id, exc)
                status, detail = "error", {"signalId": signal_id, "error": str(exc)}

            if status == "skipped":
                results["skipped"] += 1
            elif status == "error":
                results["errors"] += 1
                results["details"].append(detail)
            else:
                results["processed"] += 1
                results["details"].append(detail)

        logger.info(
            "[outcome-cron] %s done: processed=%d skipped=%d errors=%d",
            date, results["processed"], results["skipped"], results["errors"],
        )
        return results

    async def _process(self, signal_id: str) -> tuple[str, dict[str, Any] | None]:
        outcome_key = keys.outcome(signal_id)
        if await self._store.exists(outcome_key):
            logger.debug("[outcome-cron] %s already has an outcome", signal_id)
            return "skipped", None

        lock_key = keys.outcome_lock(signal_id)
        if not await self._store.setnx(lock_key, "1", ttl_seconds=keys.OUTCOME_LOCK_TTL):
            logger.info("[outcome-cron] %s locked by another run", signal_id)
            return "skipped", None

        log = await self._telemetry.read(signal_id)
        if not log:
            return "error", {"signalId": signal_id, "error": "No telemetry log"}
        symbol = log.get("symbol")
        if not symbol:
            return "error", {"signalId": signal_id, "error": "No symbol"}

        try:
            bars = await self._bars.get_daily_bars(symbol, log["ts"])
        except MarketDataError as exc:
            logger.warning("[outcome-cron] bars for %s failed: %s", symbol, exc.message)
            return "error", {"signalId": signal_id, "error": f"Bar fetch failed: {exc.message}"}
        if not bars or len(bars) < MIN_BARS:
            return "error", {"signalId": signal_id, "error": "Insufficient price data"}

        record = build_outcome_record(
            signal_id=signal_id,
            symbol=symbol,
            ts=log["ts"],
            direction=log.get("direction") or "NONE",
            stop_distance_pct=log.get("stopDistancePct"),
            bars=bars,
        )
        if not record["ok"]:
            return "error", {"signalId": signal_id, "error": record["reason"]}

        await self._store.set(outcome_key, record, keys.OUTCOME_TTL)
        logger.info("[outcome-cron] stored outcome for %s", signal_id)
        return "stored", {"signalId": signal_id, "ok": True}
