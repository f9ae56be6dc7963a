from __future__ import annotations

import json

import httpx
import pytest

from newsedge.config import Settings
from newsedge.llm_client import LLMClient, client_for_role


def _completion(content: str | None) -> dict:
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "created": 0,
        "model": "test-model",
        "choices": [{"index": 0, "message": {"role": "assistant", "content": content}, "finish_reason": "stop"}],
        "usage": {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15},
    }


def _client(responses: list[httpx.Response], seen: list[httpx.Request], max_retries: int = 3) -> LLMClient:
    queue = list(responses)

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return queue.pop(0)

    return LLMClient(
        role="thesis",
        api_key="sk-test",
        base_url="https://llm.test/v1",
        model="test-model",
        max_retries=max_retries,
        backoff_base=0,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


@pytest.mark.asyncio
async def test_json_mode_request_and_content() -> None:
    seen: list[httpx.Request] = []
    client = _client([httpx.Response(200, json=_completion('{"direction": "LONG"}'))], seen)

    text = await client.complete("system", "user", json_mode=True)

    assert text == '{"direction": "LONG"}'
    body = json.loads(seen[0].content)
    assert seen[0].url.path == "/v1/chat/completions"
    assert body["model"] == "test-model"
    assert body["response_format"] == {"type": "json_object"}
    assert [m["role"] for m in body["messages"]] == ["system", "user"]


@pytest.mark.asyncio
async def test_missing_content_is_empty_string() -> None:
    client = _client([httpx.Response(200, json=_completion(None))], [])
    assert await client.complete("system", "user") == ""


@pytest.mark.asyncio
async def test_transient_errors_are_retried() -> None:
    seen: list[httpx.Request] = []
    client = _client(
        [
            httpx.Response(503, json={"error": {"message": "overloaded"}}),
            httpx.Response(429, json={"error": {"message": "slow down"}}),
            httpx.Response(200, json=_completion("ok")),
        ],
        seen,
    )
    assert await client.complete("system", "user") == "ok"
    assert len(seen) == 3


@pytest.mark.asyncio
async def test_retries_exhausted_raise_runtime_error() -> None:
    seen: list[httpx.Request] = []
    client = _client([httpx.Response(500, json={"error": {"message": "boom"}})] * 2, seen, max_retries=2)
    with pytest.raises(RuntimeError, match="after 2 attempts"):
        await client.complete("system", "user")
    assert len(seen) == 2


@pytest.mark.asyncio
async def test_client_errors_are_not_retried() -> None:
    seen: list[httpx.Request] = []
    client = _client([httpx.Response(401, json={"error": {"message": "bad key"}})], seen)
    with pytest.raises(RuntimeError, match="request failed"):
        await client.complete("system", "user")
    assert len(seen) == 1


def test_role_selects_settings() -> None:
    settings = Settings(
        _env_file=None,
        classifier_api_key="k1", classifier_model="small",
        thesis_api_key="k2", thesis_model="large",
    )
    assert client_for_role("classifier", settings).model == "small"
    thesis = client_for_role("thesis", settings)
    assert (thesis.role, thesis.model) == ("thesis", "large")
