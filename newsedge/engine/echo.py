"""Historical echo context: does a correlated trigger/echo pair back the event?

Pattern history is a JSON file keyed by pair id, each entry carrying
``priceEcho.stats`` (accuracy, correlation, avgEchoMove, sampleSize) and
``fundamentalEcho.stats`` (directionAgreement, avgGapDays). It is produced
offline; a missing or empty file simply means no echo context.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

CANONICAL_PAIRS: dict[str, dict[str, str]] = {
    "AMD_NVDA": {"trigger": "AMD", "echo": "NVDA"},
    "JPM_BAC": {"trigger": "JPM", "echo": "BAC"},
    "TSLA_F": {"trigger": "TSLA", "echo": "F"},
    "AAPL_MSFT": {"trigger": "AAPL", "echo": "MSFT"},
    "XOM_CVX": {"trigger": "XOM", "echo": "CVX"},
}


def load_pattern_history(path: str | Path) -> dict[str, Any]:
    p = Path(path)
    if not p.exists():
        logger.info("[echo] pattern history not found at %s", p)
        return {}
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.warning("[echo] failed to read pattern history %s: %s", p, exc)
        return {}
    return data if isinstance(data, dict) else {}


def extract_event_tickers(event: dict[str, Any]) -> set[str]:
    tickers: set[str] = set()
    for sector in (event.get("analysis") or {}).get("sectors") or []:
        for ticker in sector.get("exampleTickers") or []:
            normalized = str(ticker).strip().upper()
            if normalized:
                tickers.add(normalized)
    return tickers


def find_matching_pair(tickers: set[str], history: dict[str, Any]) -> dict[str, Any] | None:
    """Best pair touching any event ticker: highest accuracy, then largest sample."""
    matches = []
    for pair_id, pair in CANONICAL_PAIRS.items():
        if not ({pair["trigger"], pair["echo"]} & tickers) or pair_id not in history:
            continue
        entry = history[pair_id] or {}
        price = (entry.get("priceEcho") or {}).get("stats") or {}
        fundamental = (entry.get("fundamentalEcho") or {}).get("stats") or {}
        matches.append({
            "pairId": pair_id,
            "trigger": pair["trigger"],
            "echo": pair["echo"],
            "priceStats": price,
            "fundamentalStats": fundamental,
        })
    if not matches:
        return None
    matches.sort(
        key=lambda m: (m["priceStats"].get("accuracy") or 0, m["priceStats"].get("sampleSize") or 0),
        reverse=True,
    )
    return matches[0]


def determine_alignment(event: dict[str, Any], trigger: str, echo: str) -> str:
    for sector in (event.get("analysis") or {}).get("sectors") or []:
        tickers = {str(t).upper() for t in sector.get("exampleTickers") or []}
        if trigger not in tickers and echo not in tickers:
            continue
        direction = str(sector.get("direction") or "").lower()
        if direction == "bullish":
            return "tailwind"
        if direction == "bearish":
            return "headwind"
    return "neutral"


def calibrated_confidence(base: float, price: dict[str, Any], fundamental: dict[str, Any]) -> int:
    adjustment = 0
    accuracy = price.get("accuracy") or 0
    if accuracy >= 80:
        adjustment += 10
    elif accuracy >= 70:
        adjustment += 5
    move = price.get("avgEchoMove")
    if move is not None and abs(move) >= 1.0:
        adjustment += 5
    if (fundamental.get("directionAgreement") or 0) >= 70:
        adjustment += 5
    corr = price.get("correlation")
    if corr is not None and abs(corr) >= 0.3:
        adjustment += 5
    if (price.get("sampleSize") or 0) < 6:
        adjustment -= 10
    return max(0, min(100, round(base + adjustment)))


def context_note(trigger: str, echo: str, price: dict[str, Any], fundamental: dict[str, Any]) -> str:
    accuracy = price.get("accuracy") or 0
    sample = price.get("sampleSize") or 0
    if accuracy >= 70:
        note = f"{trigger} earnings historically signal {echo} direction with {accuracy}% accuracy"
    elif accuracy >= 50:
        note = f"{trigger}/{echo} pair shows moderate correlation in earnings outcomes"
    else:
        note = f"{trigger}/{echo} pair has weak historical correlation - use caution"
    gap_days = fundamental.get("avgGapDays")
    if gap_days:
        note += f" (~{gap_days}d lag)"
    if sample < 6:
        note += f". Limited sample (n={sample})"
    return note


class EchoContextBuilder:
    def __init__(self, history_path: str | Path | None = None, history: dict[str, Any] | None = None) -> None:
        if history is not None:
            self._history = history
        else:
            self._history = load_pattern_history(history_path) if history_path else {}

    def build(self, event: dict[str, Any], base_confidence: float = 50) -> dict[str, Any] | None:
        if not self._history:
            return None
        tickers = extract_event_tickers(event)
        if not tickers:
            return None
        match = find_matching_pair(tickers, self._history)
        if match is None:
            return None

        price, fundamental = match["priceStats"], match["fundamentalStats"]
        alignment = determine_alignment(event, match["trigger"], match["echo"])
        logger.info("[echo] matched pair %s (alignment=%s)", match["pairId"], alignment)
        return {
            "pairId": match["pairId"],
            "trigger": match["trigger"],
            "echo": match["echo"],
            "alignment": alignment,
            "stats": {
                "accuracy": price.get("accuracy"),
                "correlation": price.get("correlation"),
                "avgEchoMove": price.get("avgEchoMove"),
                "sampleSize": price.get("sampleSize"),
                "directionAgreement": fundamental.get("directionAgreement"),
                "avgGapDays": fundamental.get("avgGapDays"),
            },
            "note": context_note(match["trigger"], match["echo"], price, fundamental),
            "calibratedConfidence": calibrated_confidence(base_confidence, price, fundamental),
        }
