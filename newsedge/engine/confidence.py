"""Confidence engine: deterministic, explainable scoring of a trade thesis.

Five component scorers (0-100 each) are blended into an ``overall`` score
with one of two weight regimes, graded A-D, then run through an ordered
AVOID/WAIT rule list where the first matching rule wins. A sizing hint
is derived from the grade and a stop distance resolved through a priority
chain (explicit levels, then ATR%, then a fixed default).

Everything here is pure: no I/O, ``now`` is injectable for freshness.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from newsedge.config import get_settings
from newsedge.utils import parse_iso, utc_now

WEIGHTS_ECHO = {"echoEdge": 0.40, "eventClarity": 0.20, "regimeVol": 0.15, "gapRisk": 0.15, "freshness": 0.10}
WEIGHTS_NO_ECHO = {"echoEdge": 0.15, "eventClarity": 0.30, "regimeVol": 0.20, "gapRisk": 0.20, "freshness": 0.15}

GRADE_TABLE = ((85, "A"), (70, "B"), (55, "C"))
RISK_BY_GRADE = {"A": 1.0, "B": 0.5, "C": 0.25, "D": 0.0}

MAX_POSITION_PCT = 15.0
MIN_POSITION_PCT = 1.0
DEFAULT_STOP_PCT = 3.0


def clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def ramp(value: float, lo: float, hi: float) -> float:
    """Linear 0-100 ramp from *lo* to *hi*, clamped."""
    return clamp01((value - lo) / (hi - lo)) * 100


def _num(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        out = float(value)
    except (TypeError, ValueError):
        return None
    return out if math.isfinite(out) else None


def _round(value: float) -> int:
    # half-up, matching the JS Math.round the stored signals were produced with
    return int(math.floor(value + 0.5))


@dataclass
class ComponentScore:
    score: int
    notes: list[str] = field(default_factory=list)


# ── component scorers ─────────────────────────────────────────────────

def _echo_stats(echo_context: dict[str, Any] | None) -> dict[str, Any] | None:
    if not echo_context or not isinstance(echo_context.get("stats"), dict):
        return None
    return echo_context["stats"]


def echo_edge(echo_context: dict[str, Any] | None) -> tuple[ComponentScore, bool]:
    """Returns the component score and whether echo data was usable."""
    stats = _echo_stats(echo_context)
    if stats is None:
        return ComponentScore(50, ["No echo edge data available"]), False

    accuracy = _num(stats.get("accuracy"))
    accuracy = 50.0 if accuracy is None else accuracy
    correlation = _num(stats.get("correlation")) or 0.0
    sample = _num(stats.get("sampleSize")) or 0.0
    move = _num(stats.get("avgEchoMove")) or 0.0

    score = (
        0.45 * ramp(accuracy / 100, 0.5, 0.8)
        + 0.25 * ramp(abs(correlation), 0.0, 0.6)
        + 0.20 * ramp(sample, 10, 50)
        + 0.10 * ramp(abs(move), 0.5, 3.5)
    )
    notes: list[str] = []
    if 10 <= sample < 20:
        score = max(0.0, score - 8)
        notes.append(f"Echo sampleSize={sample:g} → -8 penalty")
    elif sample < 10:
        score = max(0.0, score - 15)
        notes.append(f"Echo sampleSize={sample:g} (very small) → -15 penalty")
    return ComponentScore(_round(score), notes), True


def event_clarity(llm_output: dict[str, Any]) -> ComponentScore:
    ambiguity = _num(llm_output.get("ambiguity"))
    ambiguity = 0.3 if ambiguity is None else clamp01(ambiguity)
    score = (1 - ambiguity) * 100
    notes: list[str] = []
    if llm_output.get("hedged"):
        score = max(0.0, score - 10)
        notes.append("LLM used hedged language → -10 penalty")
    if ambiguity >= 0.6:
        notes.append("High ambiguity detected in event analysis")
    return ComponentScore(_round(score), notes)


def regime_vol(market_stats: dict[str, Any] | None) -> tuple[ComponentScore, bool]:
    atr_pct = _num((market_stats or {}).get("atrPct"))
    if atr_pct is None:
        return ComponentScore(60, ["Market stats unavailable"]), False
    notes = [f"ATR% elevated ({atr_pct:.1f}%) → size scaled down"] if atr_pct >= 5 else []
    return ComponentScore(_round(100 - ramp(atr_pct, 2, 8)), notes), True


def gap_risk(market_stats: dict[str, Any] | None) -> ComponentScore:
    gap_pct = _num((market_stats or {}).get("gapPct"))
    if gap_pct is None:
        return ComponentScore(65, ["Gap data unavailable"])
    notes = [f"Large gap detected ({gap_pct:.1f}%) → increased risk"] if gap_pct >= 3 else []
    return ComponentScore(_round(100 - ramp(gap_pct, 1, 7)), notes)


def freshness(event: dict[str, Any], now: datetime | None = None) -> ComponentScore:
    score = 60
    updates = _num(event.get("independentUpdatesCount"))
    updates = 1 if updates is None else updates
    if updates >= 4:
        score += 20
    elif updates >= 2:
        score += 10
    score = min(90, score)

    notes: list[str] = []
    published = event.get("publishedAt")
    if published:
        try:
            published_dt = parse_iso(str(published))
        except ValueError:
            published_dt = None
        if published_dt is not None:
            hours = ((now or utc_now()) - published_dt).total_seconds() / 3600
            if hours > 24:
                penalty = min(20, math.floor((hours - 24) / 12) * 5)
                score = max(30, score - penalty)
                notes.append(f"News is {_round(hours)}h old → -{penalty} freshness penalty")
    return ComponentScore(score, notes)


# ── aggregation ───────────────────────────────────────────────────────

def overall_score(components: dict[str, int], echo_used: bool) -> int:
    weights = WEIGHTS_ECHO if echo_used else WEIGHTS_NO_ECHO
    return _round(sum(weights[name] * components[name] for name in weights))


def grade_for(overall: int) -> str:
    for floor, grade in GRADE_TABLE:
        if overall >= floor:
            return grade
    return "D"


# ── signal rules ──────────────────────────────────────────────────────

@dataclass
class RuleContext:
    components: dict[str, int]
    overall: int
    echo_context: dict[str, Any] | None
    llm_output: dict[str, Any]

    @property
    def echo_stats(self) -> dict[str, Any] | None:
        return _echo_stats(self.echo_context)

    @property
    def echo_direction(self) -> str | None:
        alignment = (self.echo_context or {}).get("alignment")
        return {"tailwind": "LONG", "headwind": "SHORT"}.get(alignment)

    @property
    def entry(self) -> dict[str, Any]:
        return self.llm_output.get("entry") or {}


@dataclass(frozen=True)
class Rule:
    code: str
    signal: str
    predicate: Callable[[RuleContext], bool]
    explain: Callable[[RuleContext], list[str]]


def _sample_too_small(ctx: RuleContext) -> bool:
    stats = ctx.echo_stats
    if stats is None:
        return False
    sample = _num(stats.get("sampleSize"))
    return bool(sample) and sample < 10


def _accuracy_too_low(ctx: RuleContext) -> bool:
    stats = ctx.echo_stats
    if stats is None:
        return False
    return (_num(stats.get("accuracy")) or 0.0) / 100 < 0.55


def _conflict(ctx: RuleContext) -> bool:
    echo_dir = ctx.echo_direction
    llm_dir = ctx.llm_output.get("direction")
    if not echo_dir or not llm_dir or llm_dir == "NONE" or echo_dir == llm_dir:
        return False
    return ctx.components["echoEdge"] > 75 and ctx.components["eventClarity"] > 75


def _marginal_with_level(ctx: RuleContext) -> bool:
    if not 55 <= ctx.overall < 70:
        return False
    level = _num(ctx.entry.get("level")) or 0.0
    return ctx.entry.get("type") == "wait" or level > 0


RULES: tuple[Rule, ...] = (
    Rule(
        "AVOID_LOW_CONFIDENCE", "AVOID",
        lambda c: c.overall < 55,
        lambda c: [f"Overall confidence ({c.overall}%) below threshold", "Multiple weak component scores"],
    ),
    Rule(
        "AVOID_NO_EDGE", "AVOID",
        _sample_too_small,
        lambda c: [f"Echo sample size too small (n={c.echo_stats['sampleSize']})",
                   "Insufficient historical data for reliable signal"],
    ),
    Rule(
        "AVOID_NO_EDGE", "AVOID",
        _accuracy_too_low,
        lambda c: [f"Echo accuracy too low ({c.echo_stats.get('accuracy')}%)", "Historical pattern unreliable"],
    ),
    Rule(
        "AVOID_CONFLICT", "AVOID",
        _conflict,
        lambda c: ["Echo pattern conflicts with event analysis",
                   f"Echo suggests {c.echo_direction}, analysis suggests {c.llm_output.get('direction')}",
                   "Strong conviction on both sides - avoid position"],
    ),
    Rule(
        "AVOID_TOO_VOLATILE", "AVOID",
        lambda c: c.components["regimeVol"] < 35,
        lambda c: [f"Volatility too high (regime score: {c.components['regimeVol']})",
                   "Market conditions unfavorable for position"],
    ),
    Rule(
        "AVOID_GAP_RISK", "AVOID",
        lambda c: c.components["gapRisk"] < 35,
        lambda c: [f"Gap risk too high (score: {c.components['gapRisk']})",
                   "Recent price gaps indicate excessive overnight risk"],
    ),
    Rule(
        "WAIT_FOR_LEVEL", "WAIT",
        _marginal_with_level,
        lambda c: [f"Marginal confidence ({c.overall}%) - wait for better entry",
                   f"Target entry level: {c.entry.get('level') or 'pullback'}"],
    ),
    Rule(
        "WAIT_FOR_LEVEL", "WAIT",
        lambda c: c.components["gapRisk"] < 50 and c.components["eventClarity"] > 70,
        lambda c: ["Strong thesis but elevated gap risk", "Wait for price to stabilize before entry"],
    ),
)


def evaluate_rules(ctx: RuleContext, rules: tuple[Rule, ...] = RULES) -> tuple[str | None, str | None, list[str]]:
    """First matching rule wins. Returns (signal, code, explain); (None, None, []) if none fire."""
    for rule in rules:
        if rule.predicate(ctx):
            return rule.signal, rule.code, rule.explain(ctx)
    return None, None, []


# ── sizing ────────────────────────────────────────────────────────────

def _stop_from_levels(llm_output: dict[str, Any], market_stats: dict[str, Any] | None) -> tuple[float | None, str | None]:
    entry = _num((llm_output.get("entry") or {}).get("level")) or 0.0
    invalidation = _num((llm_output.get("invalidation") or {}).get("level")) or 0.0
    if entry > 0 and invalidation > 0:
        return abs(invalidation - entry) / entry * 100, None
    return None, None


def _stop_from_atr(llm_output: dict[str, Any], market_stats: dict[str, Any] | None) -> tuple[float | None, str | None]:
    atr_pct = _num((market_stats or {}).get("atrPct"))
    if atr_pct:
        return atr_pct, "Stop distance based on ATR"
    return None, None


def _stop_default(llm_output: dict[str, Any], market_stats: dict[str, Any] | None) -> tuple[float | None, str | None]:
    return DEFAULT_STOP_PCT, "Stop distance defaulted (no price levels)"


STOP_DISTANCE_CHAIN = (_stop_from_levels, _stop_from_atr, _stop_default)


def resolve_stop_distance(llm_output: dict[str, Any], market_stats: dict[str, Any] | None) -> tuple[float, list[str]]:
    for strategy in STOP_DISTANCE_CHAIN:
        value, note = strategy(llm_output, market_stats)
        if value:
            return value, [note] if note else []
    return DEFAULT_STOP_PCT, []


def sizing_hint(
    grade: str,
    signal: str,
    llm_output: dict[str, Any],
    market_stats: dict[str, Any] | None,
) -> tuple[dict[str, Any], list[str]]:
    risk = RISK_BY_GRADE.get(grade, 0.25)
    stop, notes = resolve_stop_distance(llm_output, market_stats)
    if signal in ("AVOID", "WAIT"):
        position = 0.0
    else:
        position = max(MIN_POSITION_PCT, min(MAX_POSITION_PCT, risk / stop * 10))
    hint = {
        "riskPerTradePct": round(risk, 2),
        "suggestedPositionPct": round(position, 1),
        "stopDistancePct": round(stop, 1),
        "caps": {"maxPositionPct": MAX_POSITION_PCT},
    }
    return hint, notes


# ── entrypoint ────────────────────────────────────────────────────────

def score(
    event: dict[str, Any],
    echo_context: dict[str, Any] | None,
    llm_output: dict[str, Any],
    market_stats: dict[str, Any] | None,
    now: datetime | None = None,
    model_version: int | None = None,
) -> dict[str, Any]:
    """Build the full signal: confidence breakdown, sizing hint, explain, meta."""
    llm_output = llm_output or {}
    event = event or {}

    echo, echo_used = echo_edge(echo_context)
    clarity = event_clarity(llm_output)
    regime, stats_used = regime_vol(market_stats)
    gap = gap_risk(market_stats)
    fresh = freshness(event, now)

    components = {
        "echoEdge": echo.score,
        "eventClarity": clarity.score,
        "regimeVol": regime.score,
        "gapRisk": gap.score,
        "freshness": fresh.score,
    }
    notes = echo.notes + clarity.notes + regime.notes + gap.notes + fresh.notes

    overall = overall_score(components, echo_used)
    grade = grade_for(overall)

    signal, code, explain = evaluate_rules(RuleContext(components, overall, echo_context, llm_output))
    if signal is None:
        direction = llm_output.get("direction")
        if direction == "LONG":
            signal = "BUY"
        elif direction == "SHORT":
            signal = "SELL"
        else:
            signal, code = "AVOID", "AVOID_NO_DIRECTION"
            explain = ["LLM returned NONE direction"]

    hint, sizing_notes = sizing_hint(grade, signal, llm_output, market_stats)
    notes.extend(sizing_notes)

    return {
        "signal": signal,
        "confidence": {
            "overall": overall,
            "grade": grade,
            "components": components,
            "notes": notes,
        },
        "sizingHint": hint,
        "explain": explain,
        "meta": {
            "modelVersion": model_version if model_version is not None else get_settings().confidence_model_version,
            "echoUsed": echo_used,
            "marketStatsUsed": stats_used,
            "avoidCode": code,
        },
    }
