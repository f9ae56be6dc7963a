"""Versioned KV key builders and TTLs.

Bumping a ``v1`` segment (or the confidence model version) partitions the
keyspace, so old entries simply age out.
"""

from __future__ import annotations

SECONDS_PER_DAY = 24 * 60 * 60

BARS_TTL = 7 * SECONDS_PER_DAY
SIGNAL_TTL = 7 * SECONDS_PER_DAY
TSLOG_TTL = 90 * SECONDS_PER_DAY
TSIDX_TTL = 90 * SECONDS_PER_DAY
OUTCOME_TTL = 180 * SECONDS_PER_DAY
OUTCOME_LOCK_TTL = 60 * 60

DAILY_COUNT_TTL = 2 * SECONDS_PER_DAY
HEALTH_TTL = 3 * SECONDS_PER_DAY
SNAPSHOT_TTL = SECONDS_PER_DAY
DEBUG_TTL = 72 * 60 * 60

MAJOR_EVENTS = "major_events"
PROCESSED_URLS = "news:processedUrls"
LAST_MIN_ID = "news:lastMinId"
HEALTH_LAST = "news:health:last"
RAW_SNAPSHOT = "news:lastRawSnapshot"
DEBUG_RAW = "news:debug:raw"
DEBUG_DECISIONS = "news:debug:decisions"
DEBUG_METRICS = "news:debug:metrics"


def daily_bars(provider: str, symbol: str, date_str: str) -> str:
    return f"mkt:v1:{provider.upper()}:daily:{symbol.upper()}:{date_str}"


def signal(model_version: int, event_id: str) -> str:
    return f"signal:v{model_version}:{event_id}"


def tslog(signal_id: str) -> str:
    return f"tslog:v1:{signal_id}"


def tsidx(date_str: str) -> str:
    return f"tsidx:v1:signals:{date_str}"


def outcome(signal_id: str) -> str:
    return f"outcome:v1:{signal_id}"


def outcome_lock(signal_id: str) -> str:
    return f"outcome:lock:v1:{signal_id}"


def daily_count(date_str: str) -> str:
    return f"news:dailyCount:{date_str}"
