"""IngestionGateway — fetch, dedupe, triage and classify news into events.

One ``ingest()`` call is one stateless run. Cursors, the seen-URL set and
the daily classification counter all live in the KV store and are re-read
at the start of every run. New items are classified oldest numeric id first
(string-id items last), one at a time, because the daily cap is checked
against the counter before each paid call.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Protocol

from newsedge import keys
from newsedge.config import Settings, get_settings
from newsedge.ingest.debug_log import Decision, NewsDebugLog
from newsedge.ingest.events import EventStore
from newsedge.ingest.prefilter import check_macro_match, compute_prefilter_score, hash_headline, score_headline
from newsedge.ingest.providers import FetchResult, NewsItem, NewsProvider
from newsedge.store import KVStore
from newsedge.utils import utc_date_str, utc_now

logger = logging.getLogger(__name__)

_SNAPSHOT_ITEM_LIMIT = 50


class Classifier(Protocol):
    async def classify(self, headline: str, body: str | None = None) -> dict[str, Any]: ...


@dataclass
class _Candidate:
    item: NewsItem
    hash: str
    prefilter_score: int
    prefilter_reasons: list[str]
    macro_match: bool
    matched_keywords: list[str]
    headline_score: int = 0

    @property
    def tier(self) -> int | None:
        return 0 if self.macro_match else None


@dataclass
class IngestResult:
    kept: list[dict[str, Any]] = field(default_factory=list)
    decisions: list[dict[str, Any]] = field(default_factory=list)
    diagnostics: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": True,
            "majorEvents": len(self.kept),
            "events": [
                {
                    "id": e["id"],
                    "headline": e["headline"],
                    "importanceScore": e["analysis"].get("importanceScore"),
                    "importanceCategory": e["analysis"].get("importanceCategory"),
                    "macroMatch": e.get("macroMatch", False),
                }
                for e in self.kept
            ],
            "diagnostics": self.diagnostics,
        }


class IngestionGateway:
    """Primary/secondary provider fetch followed by cost-capped classification."""

    def __init__(
        self,
        store: KVStore,
        classifier: Classifier,
        providers: list[NewsProvider],
        settings: Settings | None = None,
    ) -> None:
        self._store = store
        self._classifier = classifier
        self._providers = providers
        self._settings = settings or get_settings()
        self._debug = NewsDebugLog(store)
        self._events = EventStore(store, self._settings.max_stored_events)

    # ── KV-backed state ────────────────────────────────────────────────

    async def _daily_count(self, now: datetime) -> int:
        return int(await self._store.get(keys.daily_count(utc_date_str(now))) or 0)

    async def _increment_daily_count(self, now: datetime) -> int:
        # read-then-write: concurrent runs may undercount by the overlap
        key = keys.daily_count(utc_date_str(now))
        count = int(await self._store.get(key) or 0) + 1
        await self._store.set(key, count, keys.DAILY_COUNT_TTL)
        return count

    async def _mark_url_processed(self, url: str | None) -> None:
        if not url:
            return
        urls = await self._store.get(keys.PROCESSED_URLS) or []
        if url in urls:
            return
        urls.insert(0, url)
        await self._store.set(keys.PROCESSED_URLS, urls[: self._settings.processed_urls_limit])

    async def _store_health(self, level: str, provider: str, status: int, message: str, error: str | None) -> None:
        await self._store.set(
            keys.HEALTH_LAST,
            {
                "ts": utc_now().isoformat(),
                "level": level,
                "provider": provider,
                "status": status,
                "message": message,
                "error": error,
            },
            keys.HEALTH_TTL,
        )

    # ── fetch with fallback ────────────────────────────────────────────

    async def _fetch(self) -> tuple[list[NewsItem], bool, list[FetchResult]]:
        """Walk the provider list until supply is healthy.

        The first provider always runs. Later providers run only while the
        primary has failed or the merged supply is below the healthy minimum.
        Merging dedupes by canonical URL.
        """
        merged: list[NewsItem] = []
        seen: set[str] = set()
        attempts: list[FetchResult] = []
        primary_ok = False
        fallback_used = False

        for idx, provider in enumerate(self._providers):
            if idx > 0:
                if primary_ok and len(merged) >= self._settings.min_fetch_for_healthy:
                    break
                if not provider.configured:
                    attempts.append(FetchResult(provider=provider.name, error="not configured"))
                    continue
                logger.info(
                    "[ingest] %s %s (%d items), trying %s",
                    self._providers[0].name,
                    "failed" if not primary_ok else "returned low count",
                    len(merged),
                    provider.name,
                )

            result = await provider.fetch()
            attempts.append(result)
            if idx == 0:
                primary_ok = result.ok

            added = 0
            for item in result.items:
                if item.url:
                    if item.url in seen:
                        continue
                    seen.add(item.url)
                merged.append(item)
                added += 1
            if idx > 0 and result.items:
                fallback_used = True
                logger.info("[ingest] %s added %d unique items", provider.name, added)

        if attempts and not primary_ok:
            primary = attempts[0]
            if fallback_used:
                await self._store_health("warn", primary.provider, primary.status,
                                         f"{primary.provider} failed, using fallback", primary.error)
            else:
                names = "+".join(a.provider for a in attempts)
                await self._store_health("error", names, primary.status,
                                         "All news providers failed", primary.error)
        return merged, fallback_used, attempts

    # ── decisions ──────────────────────────────────────────────────────

    def _decision(
        self,
        cand: _Candidate,
        *,
        decision: str,
        reason: str,
        threshold: int,
        dedupe_hit: bool = False,
        analysis: dict[str, Any] | None = None,
        event_id: str | None = None,
        error: str | None = None,
    ) -> dict[str, Any]:
        sectors = (analysis or {}).get("sectors") or []
        return {
            "provider": cand.item.provider,
            "providerId": cand.item.id,
            "headline": cand.item.headline,
            "url": cand.item.url,
            "hash": cand.hash,
            "prefilterScore": cand.prefilter_score,
            "prefilterReasons": cand.prefilter_reasons,
            "headlineScore": cand.headline_score,
            "macroMatch": cand.macro_match,
            "matchedKeywords": cand.matched_keywords,
            "threshold": threshold,
            "dailyCap": self._settings.daily_classify_cap,
            "dedupeHit": dedupe_hit,
            "decision": decision,
            "decisionReason": reason,
            "classifier": {
                "used": analysis is not None,
                "importanceScore": (analysis or {}).get("importanceScore"),
                "importanceCategory": (analysis or {}).get("importanceCategory"),
                "marketRelevance": sectors[0].get("confidence") if sectors else None,
                "summary": (analysis or {}).get("summary"),
            },
            "majorEventId": event_id,
            "error": error,
        }

    async def _record(self, result: IngestResult, record: dict[str, Any], **metric_deltas: int) -> None:
        result.decisions.append(record)
        await self._debug.log_decision(record)
        await self._debug.bump(decisionsLoggedCount=1, **metric_deltas)

    # ── main entrypoint ────────────────────────────────────────────────

    async def ingest(
        self,
        manual_items: list[NewsItem] | None = None,
        now: datetime | None = None,
    ) -> IngestResult:
        now = now or utc_now()
        s = self._settings
        result = IngestResult()

        daily_before = await self._daily_count(now)
        processed_urls = set(await self._store.get(keys.PROCESSED_URLS) or [])
        last_min_id = int(await self._store.get(keys.LAST_MIN_ID) or 0)

        diag = result.diagnostics
        diag.update(
            dailyCountBefore=daily_before,
            dailyCap=s.daily_classify_cap,
            thresholdHigh=s.importance_threshold_high,
            thresholdLow=s.importance_threshold_low,
            thresholdMacro=s.importance_threshold_macro,
            providersConfigured={p.name: p.configured for p in self._providers},
            processedUrlsCount=len(processed_urls),
            lastMinId=last_min_id,
        )
        await self._debug.set_metric("lastRunAt", now.isoformat())

        if manual_items is not None:
            fetched, fallback_used, attempts = list(manual_items), False, []
        else:
            fetched, fallback_used, attempts = await self._fetch()

        diag["rawNewsCount"] = len(fetched)
        diag["fallbackUsed"] = fallback_used
        diag["providers"] = [
            {"provider": a.provider, "status": a.status, "fetchedCount": len(a.items), "error": a.error}
            for a in attempts
        ]
        await self._debug.set_metric("rawFetchedLastRun", len(fetched))

        cutoff = now - timedelta(hours=s.lookback_hours)
        recent = [i for i in fetched if (i.published_dt() is None or i.published_dt() >= cutoff)]
        diag["filteredByLookback"] = len(fetched) - len(recent)

        adaptive = fallback_used or len(fetched) < s.min_fetch_for_healthy
        active_threshold = s.importance_threshold_low if adaptive else s.importance_threshold_high
        diag["activeThreshold"] = active_threshold
        diag["adaptiveTriggered"] = adaptive

        for item in recent[: s.max_raw_log_per_run]:
            await self._debug.log_raw_item(item.to_dict(), hash_headline(item.headline, item.url))
        await self._debug.bump(rawLoggedCount=min(len(recent), s.max_raw_log_per_run))

        # ── dedup ──
        candidates: list[_Candidate] = []
        batch_urls: set[str] = set()
        for item in recent:
            score, reasons = compute_prefilter_score(item.headline, item.body)
            macro, matched = check_macro_match(item.headline, item.body)
            cand = _Candidate(
                item, hash_headline(item.headline, item.url), score, reasons, macro, matched,
                score_headline(item.headline, item.body),
            )

            if item.url and (item.url in processed_urls or item.url in batch_urls):
                await self._record(result, self._decision(
                    cand, decision=Decision.SKIPPED_ALREADY_PROCESSED, dedupe_hit=True,
                    threshold=active_threshold, reason=f"URL already processed: {item.url}",
                ), skippedProcessedCount=1)
                continue
            if item.numeric_id is not None and item.numeric_id <= last_min_id:
                await self._record(result, self._decision(
                    cand, decision=Decision.SKIPPED_ALREADY_PROCESSED, dedupe_hit=True,
                    threshold=active_threshold, reason=f"ID {item.numeric_id} <= lastMinId {last_min_id}",
                ), skippedProcessedCount=1)
                continue
            if item.url:
                batch_urls.add(item.url)
            candidates.append(cand)

        # oldest first: capped items always stay above the cursor
        candidates.sort(key=lambda c: (c.item.numeric_id is None, c.item.numeric_id or 0))
        diag["newItemsCount"] = len(candidates)
        diag["skippedDuplicates"] = len(recent) - len(candidates)

        # ── classification under the daily cap ──
        processed = 0
        errors = 0
        snapshot_items: list[dict[str, Any]] = []
        classified_ids: list[int] = []
        cap_reached = False

        for idx, cand in enumerate(candidates):
            current = daily_before if idx == 0 else await self._daily_count(now)
            if current >= s.daily_classify_cap:
                cap_reached = True
                phase = "before run" if idx == 0 else "mid-run"
                logger.info("[ingest] daily classification cap reached %s (%d/%d)", phase, current, s.daily_classify_cap)
                for rest in candidates[idx:]:
                    await self._record(result, self._decision(
                        rest, decision=Decision.SKIPPED_DAILY_CAP, threshold=active_threshold,
                        reason=f"Daily classification cap reached {phase} ({current}/{s.daily_classify_cap})",
                    ), skippedDailyCapCount=1)
                break

            processed += 1
            if cand.item.numeric_id is not None:
                classified_ids.append(cand.item.numeric_id)
            await self._increment_daily_count(now)
            threshold = s.importance_threshold_macro if cand.macro_match else active_threshold

            try:
                analysis = await self._classifier.classify(cand.item.headline, cand.item.body)
            except Exception as exc:
                errors += 1
                logger.warning("[ingest] classification failed for %r: %s", cand.item.headline[:80], exc)
                await self._mark_url_processed(cand.item.url)
                snapshot_items.append({**cand.item.to_dict(), "tier": cand.tier, "error": str(exc), "kept": False})
                await self._record(result, self._decision(
                    cand, decision=Decision.ERROR, threshold=active_threshold,
                    reason=f"Error during analysis: {exc}", error=str(exc),
                ), errorsCount=1)
                continue

            await self._mark_url_processed(cand.item.url)
            importance = float(analysis.get("importanceScore") or 0)
            event_id: str | None = None
            if importance >= threshold:
                event_id = f"evt_{int(time.time() * 1000)}_{cand.hash[:8]}"
                event = {
                    **cand.item.to_dict(),
                    "id": event_id,
                    "providerId": cand.item.id,
                    "macroMatch": cand.macro_match,
                    "matchedKeywords": cand.matched_keywords,
                    "tier": cand.tier,
                    "prefilterScore": cand.prefilter_score,
                    "analysis": analysis,
                }
                if await self._events.append(event):
                    result.kept.append(event)
                else:
                    event_id = None

            snapshot_items.append({
                **cand.item.to_dict(), "tier": cand.tier, "macroMatch": cand.macro_match,
                "importanceScore": importance, "kept": event_id is not None,
            })
            tier_note = ", Tier-0 macro" if cand.macro_match else ""
            reason = (
                f"Stored as major event (score {importance:g} >= {threshold}{tier_note})"
                if importance >= threshold
                else f"Below threshold (score {importance:g} < {threshold})"
            )
            await self._record(result, self._decision(
                cand, decision=Decision.ANALYZED, threshold=threshold, reason=reason,
                analysis=analysis, event_id=event_id,
            ), analyzedCount=1)

        if classified_ids and max(classified_ids) > last_min_id:
            await self._store.set(keys.LAST_MIN_ID, max(classified_ids))
            diag["newLastMinId"] = max(classified_ids)

        diag.update(
            processed=processed,
            majorEvents=len(result.kept),
            errors=errors,
            capReached=cap_reached,
            dailyCountAfter=await self._daily_count(now),
        )
        await self._store.set(
            keys.RAW_SNAPSHOT,
            {
                "ts": now.isoformat(),
                "ok": bool(fetched) or not attempts,
                "providers": diag["providers"],
                "fallbackUsed": fallback_used,
                "keptCount": len(result.kept),
                "droppedCount": len(recent) - len(result.kept),
                "items": snapshot_items[:_SNAPSHOT_ITEM_LIMIT],
            },
            keys.SNAPSHOT_TTL,
        )
        logger.info(
            "[ingest] run: %d fetched, %d new, %d classified, %d kept, %d errors (threshold=%d, fallback=%s)",
            len(fetched), len(candidates), processed, len(result.kept), errors, active_threshold, fallback_used,
        )
        return result

    async def analyze(self, headline: str, body: str | None = None, url: str | None = None) -> dict[str, Any]:
        """Classify one headline the way a run would, without storing an event.

        The decision still lands in the debug log under provider ``manual_report``.
        The daily cap is neither checked nor incremented.
        """
        s = self._settings
        item = NewsItem(
            id=f"manual_{int(time.time() * 1000)}",
            headline=headline,
            body=body,
            url=url,
            source="manual",
            published_at=utc_now().isoformat(),
            provider="manual_report",
        )
        score, reasons = compute_prefilter_score(headline, body)
        macro, matched = check_macro_match(headline, body)
        cand = _Candidate(
            item, hash_headline(headline, url), score, reasons, macro, matched,
            score_headline(headline, body),
        )
        threshold = s.importance_threshold_macro if macro else s.importance_threshold_high

        analysis: dict[str, Any] | None = None
        error: str | None = None
        try:
            analysis = await self._classifier.classify(headline, body)
        except Exception as exc:
            error = str(exc)
            logger.warning("[ingest] manual analysis failed for %r: %s", headline[:80], exc)

        importance = float((analysis or {}).get("importanceScore") or 0)
        if analysis is None:
            record = self._decision(cand, decision=Decision.ERROR, threshold=threshold,
                                    reason=f"Manual analysis error: {error}", error=error)
        else:
            record = self._decision(cand, decision=Decision.ANALYZED, threshold=threshold,
                                    reason=f"Manual analysis: score {importance:g}", analysis=analysis)
        await self._debug.log_decision(record)
        await self._debug.bump(decisionsLoggedCount=1)

        return {
            "ok": True,
            "headline": headline,
            "hash": cand.hash,
            "prefilter": {"score": score, "reasons": reasons, "headlineScore": cand.headline_score},
            "macroMatch": macro,
            "matchedKeywords": matched,
            "threshold": threshold,
            "analysis": analysis,
            "error": error,
            "wouldBeStored": analysis is not None and importance >= threshold,
        }

    # ── maintenance ────────────────────────────────────────────────────

    async def reset_cursor(self, clear_events: bool = False) -> list[str]:
        """Reset the numeric-ID cursor; optionally clear events and today's counter."""
        actions: list[str] = []
        await self._store.set(keys.LAST_MIN_ID, 0)
        actions.append(f"Reset {keys.LAST_MIN_ID} to 0")
        if clear_events:
            await self._events.clear()
            actions.append(f"Cleared {keys.MAJOR_EVENTS}")
            count_key = keys.daily_count(utc_date_str(utc_now()))
            await self._store.delete(count_key)
            actions.append(f"Deleted {count_key}")
        logger.info("[ingest] %s", "; ".join(actions))
        return actions

    @property
    def debug_log(self) -> NewsDebugLog:
        return self._debug

    @property
    def events(self) -> EventStore:
        return self._events
