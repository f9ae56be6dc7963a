"""Chat-completions client shared by the news classifier and the thesis generator.

Both roles talk to an OpenAI-compatible endpoint; each role has its own
key, base URL and model in settings. Transient failures (timeouts,
connection resets, 429s, 5xx) are retried with exponential backoff; anything
else fails on the first attempt. Every failure surfaces as ``RuntimeError``
so callers can map it to their own ``LLM_ERROR`` code.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx
import openai
from openai import AsyncOpenAI

from newsedge.config import Settings, get_settings

logger = logging.getLogger(__name__)

CLASSIFIER = "classifier"
THESIS = "thesis"

_TRANSIENT = (
    openai.APITimeoutError,
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
)


class LLMClient:
    def __init__(
        self,
        role: str,
        api_key: str,
        base_url: str,
        model: str,
        max_retries: int = 3,
        backoff_base: float = 2.0,
        timeout: float = 60.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.role = role
        self.model = model
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        # retries are ours; the SDK's own retry loop stays off
        self._client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=0,
            http_client=http_client,
        )

    async def complete(self, system_prompt: str, user_prompt: str, json_mode: bool = False) -> str:
        """One chat completion. Returns the message text ("" when the model sent none)."""
        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        for attempt in range(1, self.max_retries + 1):
            try:
                response = await self._client.chat.completions.create(**kwargs)
            except _TRANSIENT as exc:
                if attempt >= self.max_retries:
                    raise RuntimeError(f"{self.role} model unavailable after {attempt} attempts: {exc}") from exc
                wait = self.backoff_base ** attempt
                logger.warning(
                    "[llm:%s] attempt %d/%d failed: %s, retrying in %.1fs",
                    self.role, attempt, self.max_retries, exc, wait,
                )
                await asyncio.sleep(wait)
                continue
            except openai.OpenAIError as exc:
                logger.error("[llm:%s] request rejected: %s", self.role, exc)
                raise RuntimeError(f"{self.role} model request failed: {exc}") from exc

            if response.usage:
                logger.debug(
                    "[llm:%s] %s prompt=%d completion=%d",
                    self.role, self.model, response.usage.prompt_tokens, response.usage.completion_tokens,
                )
            if not response.choices:
                return ""
            return response.choices[0].message.content or ""
        raise RuntimeError(f"{self.role} model was never called (max_retries={self.max_retries})")


def client_for_role(role: str, settings: Settings | None = None) -> LLMClient:
    s = settings or get_settings()
    return LLMClient(
        role=role,
        api_key=getattr(s, f"{role}_api_key"),
        base_url=getattr(s, f"{role}_base_url"),
        model=getattr(s, f"{role}_model"),
    )


_clients: dict[str, LLMClient] = {}


def get_llm_client(role: str) -> LLMClient:
    """Process-wide client for *role* (``classifier`` or ``thesis``)."""
    if role not in _clients:
        _clients[role] = client_for_role(role)
    return _clients[role]
