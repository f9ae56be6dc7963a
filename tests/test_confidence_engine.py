from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone

import pytest

from newsedge.engine import confidence
from newsedge.engine.confidence import RuleContext, evaluate_rules, grade_for, score

ECHO = {
    "alignment": "tailwind",
    "stats": {"accuracy": 82, "correlation": 0.7, "avgEchoMove": 2.1, "sampleSize": 30},
}
THESIS = {"direction": "LONG", "ambiguity": 0.1, "hedged": False, "entry": {"type": "market", "level": 0}}
STATS = {"atrPct": 3, "gapPct": 1}


def _score(event=None, echo=ECHO, llm=THESIS, stats=STATS, **kw):
    return score(event or {}, echo, llm, stats, model_version=1, **kw)


def test_weight_regimes_sum_to_one() -> None:
    assert math.isclose(sum(confidence.WEIGHTS_ECHO.values()), 1.0)
    assert math.isclose(sum(confidence.WEIGHTS_NO_ECHO.values()), 1.0)


@pytest.mark.parametrize(
    "overall,grade",
    [(100, "A"), (85, "A"), (84, "B"), (70, "B"), (69, "C"), (55, "C"), (54, "D"), (0, "D")],
)
def test_grade_boundaries(overall: int, grade: str) -> None:
    assert grade_for(overall) == grade


@pytest.mark.parametrize(
    "stats",
    [
        {"accuracy": 500, "correlation": -5, "avgEchoMove": -100, "sampleSize": 10_000},
        {"accuracy": -100, "correlation": 0, "avgEchoMove": 0, "sampleSize": 0},
        {"accuracy": None, "correlation": None, "avgEchoMove": None, "sampleSize": None},
    ],
)
def test_echo_edge_stays_in_bounds(stats: dict) -> None:
    result, used = confidence.echo_edge({"stats": stats})
    assert used is True
    assert 0 <= result.score <= 100


def test_other_components_clamp_out_of_range_inputs() -> None:
    assert confidence.event_clarity({"ambiguity": 7}).score == 0
    assert confidence.event_clarity({"ambiguity": -3}).score == 100
    assert confidence.regime_vol({"atrPct": 120})[0].score == 0
    assert confidence.regime_vol({"atrPct": -4})[0].score == 100
    assert confidence.gap_risk({"gapPct": 50}).score == 0
    assert confidence.gap_risk({"gapPct": -1}).score == 100

    now = datetime(2026, 1, 10, tzinfo=timezone.utc)
    ancient = {"publishedAt": (now - timedelta(days=400)).isoformat()}
    assert confidence.freshness(ancient, now).score == 40
    assert confidence.freshness({"publishedAt": "not a date"}, now).score == 60


def test_missing_inputs_fall_back_to_neutral_defaults() -> None:
    echo, used = confidence.echo_edge(None)
    assert (echo.score, used) == (50, False)
    assert confidence.event_clarity({}).score == 70
    regime, stats_used = confidence.regime_vol(None)
    assert (regime.score, stats_used) == (60, False)
    assert confidence.gap_risk({"atrPct": 2}).score == 65
    assert "Market stats unavailable" in regime.notes


def test_hedged_and_ambiguous_thesis_notes() -> None:
    result = confidence.event_clarity({"ambiguity": 0.6, "hedged": True})
    assert result.score == 30
    assert any("hedged" in n for n in result.notes)
    assert any("High ambiguity" in n for n in result.notes)


def test_small_echo_sample_penalties() -> None:
    base = {"accuracy": 80, "correlation": 0.6, "avgEchoMove": 3.5}
    mid, _ = confidence.echo_edge({"stats": {**base, "sampleSize": 15}})
    tiny, _ = confidence.echo_edge({"stats": {**base, "sampleSize": 5}})
    # 45 + 25 + 0.2 * 12.5 + 10 = 82.5 before the penalty
    assert mid.score == 75
    assert tiny.score == 65


def test_freshness_counts_updates_and_age() -> None:
    now = datetime(2026, 1, 10, 12, tzinfo=timezone.utc)
    assert confidence.freshness({"independentUpdatesCount": 2}, now).score == 70
    assert confidence.freshness({"independentUpdatesCount": 4}, now).score == 80
    sixty_hours = {"independentUpdatesCount": 4, "publishedAt": (now - timedelta(hours=60)).isoformat()}
    result = confidence.freshness(sixty_hours, now)
    assert result.score == 65
    assert result.notes == ["News is 60h old → -15 freshness penalty"]


def test_end_to_end_strong_echo_long_thesis() -> None:
    signal = _score()
    conf = signal["confidence"]
    assert conf["components"] == {
        "echoEdge": 85, "eventClarity": 90, "regimeVol": 83, "gapRisk": 100, "freshness": 60,
    }
    assert conf["overall"] == 85
    assert conf["grade"] == "A"
    assert signal["signal"] == "BUY"
    assert signal["explain"] == []
    assert signal["sizingHint"] == {
        "riskPerTradePct": 1.0,
        "suggestedPositionPct": 3.3,
        "stopDistancePct": 3.0,
        "caps": {"maxPositionPct": 15.0},
    }
    assert signal["meta"] == {"modelVersion": 1, "echoUsed": True, "marketStatsUsed": True, "avoidCode": None}
    assert "Stop distance based on ATR" in conf["notes"]


def test_short_thesis_maps_to_sell() -> None:
    echo = {**ECHO, "alignment": "headwind"}
    signal = _score(echo=echo, llm={**THESIS, "direction": "SHORT"})
    assert signal["signal"] == "SELL"


def test_waterfall_first_match_wins() -> None:
    ctx = RuleContext(
        components={"echoEdge": 50, "eventClarity": 40, "regimeVol": 60, "gapRisk": 10, "freshness": 60},
        overall=40,
        echo_context=None,
        llm_output={"direction": "LONG"},
    )
    signal, code, explain = evaluate_rules(ctx)
    assert (signal, code) == ("AVOID", "AVOID_LOW_CONFIDENCE")
    assert explain[0] == "Overall confidence (40%) below threshold"


def test_low_echo_accuracy_is_no_edge() -> None:
    echo = {**ECHO, "stats": {**ECHO["stats"], "accuracy": 50}}
    signal = _score(echo=echo)
    assert signal["confidence"]["overall"] == 67
    assert signal["meta"]["avoidCode"] == "AVOID_NO_EDGE"
    assert signal["sizingHint"]["suggestedPositionPct"] == 0


def test_tiny_echo_sample_is_no_edge() -> None:
    echo = {**ECHO, "stats": {**ECHO["stats"], "sampleSize": 5}}
    signal = _score(echo=echo)
    assert signal["signal"] == "AVOID"
    assert signal["meta"]["avoidCode"] == "AVOID_NO_EDGE"
    assert signal["explain"][0] == "Echo sample size too small (n=5)"


def test_conflicting_echo_and_thesis_avoid() -> None:
    signal = _score(echo={**ECHO, "alignment": "headwind"})
    assert signal["meta"]["avoidCode"] == "AVOID_CONFLICT"
    assert "Echo suggests SHORT, analysis suggests LONG" in signal["explain"]


def test_neutral_alignment_never_conflicts() -> None:
    signal = _score(echo={**ECHO, "alignment": "neutral"})
    assert signal["signal"] == "BUY"


def test_high_volatility_avoid() -> None:
    signal = _score(echo=None, stats={"atrPct": 8, "gapPct": 1})
    assert signal["confidence"]["components"]["regimeVol"] == 0
    assert signal["meta"]["avoidCode"] == "AVOID_TOO_VOLATILE"


def test_gap_risk_avoid() -> None:
    signal = _score(stats={"atrPct": 2, "gapPct": 6})
    assert signal["confidence"]["components"]["gapRisk"] == 17
    assert signal["meta"]["avoidCode"] == "AVOID_GAP_RISK"


def test_marginal_confidence_with_wait_entry() -> None:
    llm = {**THESIS, "entry": {"type": "wait", "level": 0}}
    signal = _score(echo=None, llm=llm, stats={"atrPct": 5, "gapPct": 3})
    overall = signal["confidence"]["overall"]
    assert 55 <= overall < 70
    assert signal["signal"] == "WAIT"
    assert signal["meta"]["avoidCode"] == "WAIT_FOR_LEVEL"
    assert signal["explain"][1] == "Target entry level: pullback"
    assert signal["sizingHint"]["suggestedPositionPct"] == 0


def test_elevated_gap_with_clear_thesis_waits() -> None:
    signal = _score(stats={"atrPct": 2, "gapPct": 3.5})
    assert signal["confidence"]["components"]["gapRisk"] == 58
    assert signal["signal"] == "BUY"

    signal = _score(stats={"atrPct": 2, "gapPct": 4.5})
    assert signal["confidence"]["components"]["gapRisk"] == 42
    assert signal["signal"] == "WAIT"
    assert signal["explain"][0] == "Strong thesis but elevated gap risk"


def test_none_direction_avoids() -> None:
    signal = _score(echo={**ECHO, "alignment": "neutral"}, llm={**THESIS, "direction": "NONE"})
    assert signal["signal"] == "AVOID"
    assert signal["meta"]["avoidCode"] == "AVOID_NO_DIRECTION"
    assert signal["explain"] == ["LLM returned NONE direction"]


def test_stop_distance_prefers_explicit_levels() -> None:
    llm = {**THESIS, "entry": {"type": "market", "level": 100}, "invalidation": {"level": 95}}
    signal = _score(llm=llm)
    assert signal["sizingHint"]["stopDistancePct"] == 5.0
    assert signal["sizingHint"]["suggestedPositionPct"] == 2.0
    assert "Stop distance based on ATR" not in signal["confidence"]["notes"]


def test_stop_distance_defaults_without_levels_or_atr() -> None:
    stop, notes = confidence.resolve_stop_distance({}, None)
    assert stop == 3.0
    assert notes == ["Stop distance defaulted (no price levels)"]


def test_position_is_clamped() -> None:
    llm = {**THESIS, "entry": {"level": 100}, "invalidation": {"level": 99.9}}
    hint, _ = confidence.sizing_hint("A", "BUY", llm, None)
    assert hint["suggestedPositionPct"] == 15.0
    hint, _ = confidence.sizing_hint("C", "BUY", {}, {"atrPct": 9})
    assert hint["suggestedPositionPct"] == 1.0
