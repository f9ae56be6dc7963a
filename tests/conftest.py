from __future__ import annotations

import json
from typing import Any

import pytest

from newsedge.config import Settings


class MemoryStore:
    """In-memory stand-in for ``KVStore`` with the same JSON round-trip semantics."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.zsets: dict[str, dict[str, float]] = {}
        self.ttls: dict[str, int] = {}
        self.fail_on: set[str] = set()

    def _check(self, op: str) -> None:
        if op in self.fail_on:
            raise ConnectionError(f"{op} unavailable")

    async def get(self, key: str) -> Any:
        self._check("get")
        raw = self.data.get(key)
        return None if raw is None else json.loads(raw)

    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        self._check("set")
        self.data[key] = json.dumps(value, default=str)
        if ttl_seconds:
            self.ttls[key] = int(ttl_seconds)

    async def setnx(self, key: str, value: Any, ttl_seconds: int | None = None) -> bool:
        self._check("setnx")
        if key in self.data:
            return False
        self.data[key] = json.dumps(value, default=str)
        if ttl_seconds:
            self.ttls[key] = int(ttl_seconds)
        return True

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        self._check("expire")
        if key not in self.data and key not in self.zsets:
            return False
        self.ttls[key] = int(ttl_seconds)
        return True

    async def exists(self, key: str) -> bool:
        self._check("exists")
        return key in self.data or key in self.zsets

    async def delete(self, key: str) -> int:
        self._check("delete")
        removed = int(self.data.pop(key, None) is not None) + int(self.zsets.pop(key, None) is not None)
        self.ttls.pop(key, None)
        return removed

    async def zadd(self, key: str, *, score: float, member: str) -> int:
        self._check("zadd")
        zset = self.zsets.setdefault(key, {})
        added = member not in zset
        zset[member] = score
        return int(added)

    async def zrange(self, key: str, start: int = 0, stop: int = -1) -> list[str]:
        self._check("zrange")
        members = sorted(self.zsets.get(key, {}).items(), key=lambda kv: (kv[1], kv[0]))
        names = [m for m, _ in members]
        return names[start:] if stop == -1 else names[start:stop + 1]

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        pass


class FakeLLM:
    def __init__(self, response: str | None = None, exc: Exception | None = None) -> None:
        self.response = response
        self.exc = exc
        self.calls: list[tuple[str, str, bool]] = []

    async def complete(self, system_prompt: str, user_prompt: str, json_mode: bool = False) -> str:
        self.calls.append((system_prompt, user_prompt, json_mode))
        if self.exc is not None:
            raise self.exc
        return self.response or ""


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, classifier_api_key="test", thesis_api_key="test")


@pytest.fixture
def fake_llm():
    return FakeLLM


@pytest.fixture
def daily_bars() -> list[dict[str, Any]]:
    return [
        {"date": "2026-01-05", "open": 100, "high": 101, "low": 99, "close": 100},
        {"date": "2026-01-06", "open": 100, "high": 103, "low": 98, "close": 102},
        {"date": "2026-01-07", "open": 102, "high": 104, "low": 97, "close": 101},
        {"date": "2026-01-08", "open": 101, "high": 106, "low": 100, "close": 105},
        {"date": "2026-01-09", "open": 105, "high": 107, "low": 103, "close": 104},
        {"date": "2026-01-12", "open": 104, "high": 108, "low": 102, "close": 106},
    ]
