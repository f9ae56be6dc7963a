"""Redis-backed KV store exposing the narrow operation set the pipeline uses.

Every piece of shared mutable state (cursors, seen-sets, counters, locks,
outcome flags) lives behind this interface. Nothing is cached in process
memory across invocations.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import redis.asyncio as aioredis

from newsedge.config import get_settings

logger = logging.getLogger(__name__)


class KVStore:
    """JSON-valued async wrapper around a Redis connection."""

    def __init__(
        self,
        redis_url: str | None = None,
        redis_client: aioredis.Redis | None = None,
    ) -> None:
        if redis_client is not None:
            self._redis = redis_client
        else:
            url = redis_url or get_settings().redis_url
            self._redis = aioredis.from_url(url, decode_responses=True)

    # ── plain values ───────────────────────────────────────────────────

    async def get(self, key: str) -> Any:
        raw = await self._redis.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            return raw

    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        payload = json.dumps(value, default=str)
        if ttl_seconds:
            await self._redis.set(key, payload, ex=int(ttl_seconds))
        else:
            await self._redis.set(key, payload)

    async def setnx(self, key: str, value: Any, ttl_seconds: int | None = None) -> bool:
        """SET if not exists. True when this caller created the key.

        With *ttl_seconds* the key and its expiry are written in one ``SET NX EX``.
        """
        payload = json.dumps(value, default=str)
        if ttl_seconds:
            return bool(await self._redis.set(key, payload, nx=True, ex=int(ttl_seconds)))
        return bool(await self._redis.setnx(key, payload))

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        return bool(await self._redis.expire(key, int(ttl_seconds)))

    async def exists(self, key: str) -> bool:
        return bool(await self._redis.exists(key))

    async def delete(self, key: str) -> int:
        return int(await self._redis.delete(key))

    # ── sorted sets ────────────────────────────────────────────────────

    async def zadd(self, key: str, *, score: float, member: str) -> int:
        """Add or re-score *member*. Re-adding an existing member only updates its score."""
        return int(await self._redis.zadd(key, {member: score}))

    async def zrange(self, key: str, start: int = 0, stop: int = -1) -> list[str]:
        members = await self._redis.zrange(key, start, stop)
        return [m.decode() if isinstance(m, bytes) else str(m) for m in members or []]

    # ── lifecycle ──────────────────────────────────────────────────────

    async def ping(self) -> bool:
        return bool(await self._redis.ping())

    async def close(self) -> None:
        await self._redis.aclose()
