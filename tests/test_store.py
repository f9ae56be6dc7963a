from __future__ import annotations

import pytest

from newsedge.store import KVStore


class RecordingRedis:
    def __init__(self) -> None:
        self.values: dict[str, str] = {}
        self.calls: list[tuple] = []

    async def get(self, key):
        return self.values.get(key)

    async def set(self, key, value, ex=None, nx=False):
        self.calls.append(("set", key, ex, nx))
        if nx and key in self.values:
            return None
        self.values[key] = value
        return True

    async def setnx(self, key, value):
        self.calls.append(("setnx", key))
        if key in self.values:
            return False
        self.values[key] = value
        return True


@pytest.mark.asyncio
async def test_values_are_json_encoded() -> None:
    redis = RecordingRedis()
    kv = KVStore(redis_client=redis)
    await kv.set("k", {"a": 1}, ttl_seconds=60)
    assert redis.values["k"] == '{"a": 1}'
    assert redis.calls == [("set", "k", 60, False)]
    assert await kv.get("k") == {"a": 1}
    assert await kv.get("missing") is None


@pytest.mark.asyncio
async def test_setnx_with_ttl_is_a_single_set_nx_ex() -> None:
    redis = RecordingRedis()
    kv = KVStore(redis_client=redis)

    assert await kv.setnx("lock", "1", ttl_seconds=3600) is True
    assert await kv.setnx("lock", "1", ttl_seconds=3600) is False
    assert redis.calls == [("set", "lock", 3600, True), ("set", "lock", 3600, True)]


@pytest.mark.asyncio
async def test_setnx_without_ttl() -> None:
    redis = RecordingRedis()
    kv = KVStore(redis_client=redis)
    assert await kv.setnx("seen", "1") is True
    assert await kv.setnx("seen", "1") is False
    assert redis.calls == [("setnx", "seen"), ("setnx", "seen")]
