"""Capped most-recent-N store of classified events."""

from __future__ import annotations

import logging
from typing import Any

from newsedge import keys
from newsedge.store import KVStore
from newsedge.utils import utc_now

logger = logging.getLogger(__name__)


class EventStore:
    def __init__(self, store: KVStore, max_events: int = 100) -> None:
        self._store = store
        self._max_events = max_events

    async def append(self, event: dict[str, Any]) -> bool:
        """Prepend *event*, trimming the oldest beyond the cap. Returns False on store failure."""
        try:
            events = await self._store.get(keys.MAJOR_EVENTS) or []
            events.insert(0, {**event, "storedAt": utc_now().isoformat()})
            await self._store.set(keys.MAJOR_EVENTS, events[: self._max_events])
            return True
        except Exception:
            logger.warning("[events] failed to store event %s", event.get("id"), exc_info=True)
            return False

    async def recent(self, limit: int = 10) -> list[dict[str, Any]]:
        events = await self._store.get(keys.MAJOR_EVENTS) or []
        return events[: max(1, limit)]

    async def find(self, event_id: str) -> dict[str, Any] | None:
        for event in await self._store.get(keys.MAJOR_EVENTS) or []:
            if isinstance(event, dict) and event.get("id") == event_id:
                return event
        return None

    async def clear(self) -> None:
        await self._store.set(keys.MAJOR_EVENTS, [])
