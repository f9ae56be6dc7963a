"""News classifier: one LLM call per headline, validated into an ``Analysis``."""

from __future__ import annotations

import json
import logging
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError, field_validator

from newsedge.errors import ClassifierError
from newsedge.llm_client import LLMClient

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are an ultra-fast macro and cross-asset analyst for a trading assistant.
Read a major news event and output a structured JSON object describing:

- How important the event is (0-100),
- Whether it is a macro shock, sector shock, or just noise,
- Which sectors are likely bullish or bearish,
- Example large, liquid, publicly traded US or global tickers that could be impacted,
- How long the impact might matter (very_short, short, medium, long),
- Key risks and caveats.

Constraints:
- Never invent obscure or illiquid tickers. Prefer large, well-known names.
- If unsure about specific tickers, return an empty array for exampleTickers.
- importanceScore should be higher for events that affect multiple countries,
  critical infrastructure (energy, payments, shipping lanes), or carry
  regulatory, geopolitical or systemic implications.
- Minor or very localized events are "noise" with importanceScore < 40.
- Output MUST be valid JSON following the requested structure."""

OUTPUT_SCHEMA = {
    "summary": "string",
    "importanceScore": "number (0-100)",
    "importanceCategory": "macro_shock | sector_shock | noise",
    "impactHorizon": "very_short | short | medium | long",
    "sectors": [
        {
            "name": "string",
            "direction": "bullish | bearish | neutral | unclear",
            "rationale": "string",
            "exampleTickers": ["string"],
            "confidence": "number (0-1)",
        }
    ],
    "riskNotes": ["string"],
}


class Sector(BaseModel):
    name: str
    direction: Literal["bullish", "bearish", "neutral", "unclear"]
    rationale: str
    exampleTickers: list[str]
    confidence: float

    @field_validator("exampleTickers")
    @classmethod
    def _upper(cls, v: list[str]) -> list[str]:
        return [str(t).upper() for t in v]

    @field_validator("confidence")
    @classmethod
    def _clamp(cls, v: float) -> float:
        return max(0.0, min(1.0, v))


class Analysis(BaseModel):
    summary: str
    importanceScore: float
    importanceCategory: Literal["macro_shock", "sector_shock", "noise"]
    impactHorizon: Literal["very_short", "short", "medium", "long"]
    sectors: list[Sector]
    riskNotes: list[str] = Field(default_factory=list)

    @field_validator("importanceScore")
    @classmethod
    def _clamp(cls, v: float) -> float:
        return max(0.0, min(100.0, v))

    @field_validator("riskNotes", mode="before")
    @classmethod
    def _stringify(cls, v: Any) -> Any:
        if isinstance(v, list):
            return [str(n) for n in v]
        return v


def parse_analysis(raw: str) -> dict[str, Any]:
    """Validate raw model text into a normalized analysis dict."""
    if not raw or not raw.strip():
        raise ClassifierError("EMPTY_RESPONSE", "Empty response from model")
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        logger.error("[classifier] unparseable model output: %.300s", raw)
        raise ClassifierError("PARSE_ERROR", "Failed to parse model response") from exc
    try:
        return Analysis.model_validate(data).model_dump()
    except ValidationError as exc:
        logger.error("[classifier] invalid analysis structure: %s", exc.errors()[:3])
        raise ClassifierError("INVALID_RESPONSE", "Invalid response structure from model") from exc


class NewsClassifier:
    """Importance/category/sector classification for a single news item."""

    def __init__(self, llm: LLMClient | None) -> None:
        self._llm = llm

    async def classify(self, headline: str, body: str | None = None) -> dict[str, Any]:
        if self._llm is None:
            raise ClassifierError("API_KEY_MISSING", "Classifier API key is not configured")
        if not headline or not headline.strip():
            raise ClassifierError("INVALID_INPUT", "headline is required")
        user_prompt = json.dumps(
            {
                "headline": headline.strip(),
                "body": body.strip() if isinstance(body, str) else None,
                "instructions": "Analyze the economic and market impact of this news.",
                "outputSchema": OUTPUT_SCHEMA,
            }
        )
        try:
            raw = await self._llm.complete(SYSTEM_PROMPT, user_prompt, json_mode=True)
        except RuntimeError as exc:
            raise ClassifierError("LLM_ERROR", str(exc)) from exc
        return parse_analysis(raw)
