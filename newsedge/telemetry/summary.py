"""Aggregate telemetry logs (and any stored outcomes) over a date range."""

from __future__ import annotations

import logging
from typing import Any

from newsedge import keys
from newsedge.store import KVStore
from newsedge.telemetry.telemetry import TelemetryStore
from newsedge.utils import date_minus_days

logger = logging.getLogger(__name__)

MAX_DAYS = 14


def clamp_days(days: Any) -> int:
    try:
        n = int(days)
    except (TypeError, ValueError):
        return 1
    return max(1, min(MAX_DAYS, n))


async def signal_summary(store: KVStore, end_date: str, days: int = 1) -> dict[str, Any]:
    days = clamp_days(days)
    telemetry = TelemetryStore(store)

    date_range = [date_minus_days(end_date, i) for i in range(days)]
    signal_ids: list[str] = []
    for day in date_range:
        signal_ids.extend(await telemetry.read_by_date(day))
    date_range.reverse()

    if not signal_ids:
        return {
            "ok": True, "endDate": end_date, "days": days, "dateRange": date_range,
            "totalSignals": 0, "message": "No signals found in date range",
        }

    by_signal = {"BUY": 0, "SELL": 0, "WAIT": 0, "AVOID": 0}
    by_grade = {"A": 0, "B": 0, "C": 0, "D": 0}
    loaded = 0
    sum_overall = 0.0
    sum_latency = 0.0
    echo_used = 0
    stats_used = 0
    stopped = {"3": 0, "5": 0}
    outcomes = {"3": 0, "5": 0}

    for signal_id in signal_ids:
        log = await telemetry.read(signal_id)
        if not log:
            continue
        loaded += 1
        sig = log.get("signal") or "AVOID"
        if sig in by_signal:
            by_signal[sig] += 1
        grade = log.get("grade") or "D"
        if grade in by_grade:
            by_grade[grade] += 1
        sum_overall += log.get("overall") or 0
        sum_latency += log.get("latencyMs") or 0
        echo_used += 1 if log.get("echoUsed") else 0
        stats_used += 1 if log.get("marketStatsUsed") else 0

        try:
            outcome = await store.get(keys.outcome(signal_id))
        except Exception as exc:
            logger.debug("[summary] outcome read failed for %s: %s", signal_id, exc)
            continue
        if not outcome or not outcome.get("ok"):
            continue
        flags = outcome.get("stoppedOut") or {}
        for h in ("3", "5"):
            if h in flags:
                outcomes[h] += 1
                stopped[h] += 1 if flags[h] else 0

    result: dict[str, Any] = {
        "ok": True,
        "endDate": end_date,
        "days": days,
        "dateRange": date_range,
        "totalSignals": len(signal_ids),
        "loadedLogs": loaded,
        "countBySignal": by_signal,
        "countByGrade": by_grade,
        "avgOverall": round(sum_overall / loaded, 1) if loaded else 0,
        "avgLatencyMs": round(sum_latency / loaded) if loaded else 0,
        "echoUsedRatio": round(echo_used / loaded, 2) if loaded else 0,
        "marketStatsUsedRatio": round(stats_used / loaded, 2) if loaded else 0,
    }
    for h in ("3", "5"):
        if outcomes[h]:
            result[f"stoppedOutRate_{h}d"] = round(stopped[h] / outcomes[h], 2)
            result[f"outcomesLoaded_{h}d"] = outcomes[h]
    return result
