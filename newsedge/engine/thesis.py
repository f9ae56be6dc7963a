"""Trade thesis generation and validation.

The thesis LLM returns free-form JSON; ``LLMOutput`` normalizes it into the
shape the confidence engine consumes. Missing optional fields default,
out-of-range numbers clamp, but an unusable direction or unparseable body is
fatal: no default thesis is ever substituted.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError, field_validator

from newsedge.errors import ThesisError
from newsedge.llm_client import LLMClient

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a fast macro trading analyst for a professional trading assistant.
Given a major news event and its analysis, produce ONE concise trade thesis.

Rules:
- direction is LONG (buy exposure that benefits), SHORT (sell exposure that is hurt)
  or NONE (too uncertain, noisy, or already priced in).
- instrument is a single large, liquid US-listed ticker or major ETF
  (SPY, QQQ, XLE, XLF, XLK, GLD, TLT, AAPL, MSFT, NVDA, JPM, XOM ...).
- entry.type is "market" to enter now or "wait" to wait for a level;
  entry.level / invalidation.level are prices, 0 when unknown.
- ambiguity is 0-1: how open to interpretation the event is.
- hedged is true when your own thesis relies on heavy qualifiers.
- Never invent obscure or illiquid tickers.
- Output MUST be valid JSON following the requested structure."""

OUTPUT_SCHEMA = {
    "thesis": "string (one sentence)",
    "direction": "LONG | SHORT | NONE",
    "instrument": "string (ticker)",
    "timeHorizon": "very_short | short | medium",
    "entry": {"type": "market | wait", "level": "number"},
    "invalidation": {"level": "number", "reason": "string"},
    "targets": ["number"],
    "ambiguity": "number (0-1)",
    "hedged": "boolean",
    "tickers": ["string"],
    "keyRisks": ["string"],
}

_DIRECTION_ALIASES = {
    "LONG": "LONG", "BUY": "LONG", "BULLISH": "LONG",
    "SHORT": "SHORT", "SELL": "SHORT", "BEARISH": "SHORT",
    "NONE": "NONE", "AVOID": "NONE", "NEUTRAL": "NONE",
}


def _non_negative(v: Any) -> float:
    try:
        return max(0.0, float(v or 0))
    except (TypeError, ValueError):
        return 0.0


class Entry(BaseModel):
    type: Literal["market", "wait"] = "market"
    level: float = 0.0

    @field_validator("type", mode="before")
    @classmethod
    def _type(cls, v: Any) -> Any:
        return str(v).lower() if v else "market"

    @field_validator("level", mode="before")
    @classmethod
    def _level(cls, v: Any) -> float:
        return _non_negative(v)


class Invalidation(BaseModel):
    level: float = 0.0
    reason: str = ""

    @field_validator("level", mode="before")
    @classmethod
    def _level(cls, v: Any) -> float:
        return _non_negative(v)


class LLMOutput(BaseModel):
    thesis: str = ""
    direction: Literal["LONG", "SHORT", "NONE"]
    instrument: str = ""
    timeHorizon: str = "short"
    entry: Entry = Field(default_factory=Entry)
    invalidation: Invalidation = Field(default_factory=Invalidation)
    targets: list[float] = Field(default_factory=list)
    ambiguity: float = 0.3
    hedged: bool = False
    tickers: list[str] = Field(default_factory=list)
    keyRisks: list[str] = Field(default_factory=list)

    @field_validator("direction", mode="before")
    @classmethod
    def _direction(cls, v: Any) -> Any:
        return _DIRECTION_ALIASES.get(str(v).strip().upper(), v) if v is not None else v

    @field_validator("ambiguity", mode="before")
    @classmethod
    def _ambiguity(cls, v: Any) -> float:
        if v is None:
            return 0.3
        return max(0.0, min(1.0, float(v)))

    @field_validator("instrument", mode="before")
    @classmethod
    def _instrument(cls, v: Any) -> str:
        return str(v or "").strip().upper()

    @field_validator("tickers", mode="before")
    @classmethod
    def _tickers(cls, v: Any) -> list[str]:
        return [str(t).strip().upper() for t in v or [] if str(t).strip()]

    @field_validator("targets", mode="before")
    @classmethod
    def _targets(cls, v: Any) -> list[float]:
        return [_non_negative(t) for t in v or []]

    @field_validator("keyRisks", mode="before")
    @classmethod
    def _risks(cls, v: Any) -> list[str]:
        return [str(r)[:120] for r in v or []]

    @field_validator("entry", "invalidation", mode="before")
    @classmethod
    def _objects(cls, v: Any) -> Any:
        return v or {}


def parse_thesis(raw: str | None) -> dict[str, Any]:
    if not raw or not raw.strip():
        raise ThesisError("EMPTY_RESPONSE", "Empty response from model")
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        logger.error("[thesis] unparseable model output: %.300s", raw)
        raise ThesisError("PARSE_ERROR", "Failed to parse model response") from exc
    if not isinstance(data, dict):
        raise ThesisError("INVALID_RESPONSE", "Invalid thesis structure from model")
    try:
        return LLMOutput.model_validate(data).model_dump()
    except (ValidationError, TypeError, ValueError) as exc:
        logger.error("[thesis] invalid thesis structure: %s", exc)
        raise ThesisError("INVALID_RESPONSE", "Invalid thesis structure from model") from exc


class ThesisGenerator:
    def __init__(self, llm: LLMClient | None, configured: bool = True) -> None:
        self._llm = llm
        self._configured = configured

    async def generate(self, event: dict[str, Any]) -> dict[str, Any]:
        if self._llm is None or not self._configured:
            raise ThesisError("API_KEY_MISSING", "Thesis model API key is not configured")
        analysis = event.get("analysis") or {}
        user_prompt = json.dumps(
            {
                "event": {
                    "headline": event.get("headline"),
                    "body": event.get("body"),
                    "publishedAt": event.get("publishedAt"),
                },
                "analysis": {
                    "summary": analysis.get("summary"),
                    "importanceScore": analysis.get("importanceScore"),
                    "importanceCategory": analysis.get("importanceCategory"),
                    "impactHorizon": analysis.get("impactHorizon"),
                    "sectors": analysis.get("sectors") or [],
                    "riskNotes": analysis.get("riskNotes") or [],
                },
                "instructions": "Generate a trade thesis for this event. Be conservative and specific.",
                "outputSchema": OUTPUT_SCHEMA,
            },
            default=str,
        )
        try:
            raw = await self._llm.complete(SYSTEM_PROMPT, user_prompt, json_mode=True)
        except RuntimeError as exc:
            raise ThesisError("LLM_ERROR", str(exc)) from exc
        return parse_thesis(raw)
