from __future__ import annotations

import json

import pytest

from newsedge.errors import ClassifierError
from newsedge.ingest.classifier import NewsClassifier, parse_analysis
from newsedge.ingest.prefilter import check_macro_match, compute_prefilter_score, hash_headline, score_headline

ANALYSIS = {
    "summary": "Supply shock",
    "importanceScore": 130,
    "importanceCategory": "macro_shock",
    "impactHorizon": "short",
    "sectors": [
        {"name": "Energy", "direction": "bullish", "rationale": "supply", "exampleTickers": ["xom", "cvx"],
         "confidence": 1.4},
    ],
    "riskNotes": ["could reverse", 42],
}


def test_prefilter_counts_one_hit_per_family_plus_bonus() -> None:
    score, reasons = compute_prefilter_score("War and oil crash")
    assert score == 75
    assert reasons == [
        "keyword:geopolitical:war", "keyword:energy:oil", "keyword:crisis:crash", "bonus:multi_family",
    ]


def test_prefilter_no_hits() -> None:
    assert compute_prefilter_score("Local bakery opens") == (0, [])


def test_macro_match_uses_body_too() -> None:
    assert check_macro_match("Troops seen", "a coup attempt in the capital") == (True, ["coup"])
    assert check_macro_match("Local bakery opens") == (False, [])


def test_hash_ignores_case_punctuation_and_path() -> None:
    a = hash_headline("Hello, World!", "https://ex.com/a")
    b = hash_headline("hello   world", "https://ex.com/b")
    assert a == b
    assert len(a) == 16
    assert a != hash_headline("hello world", "https://other.com/a")


def test_headline_rules_are_capped() -> None:
    assert score_headline("War and blockade in Hormuz strait") == 100
    assert score_headline("Company announces merger") == 15


def test_parse_analysis_normalizes() -> None:
    result = parse_analysis(json.dumps(ANALYSIS))
    assert result["importanceScore"] == 100.0
    assert result["sectors"][0]["exampleTickers"] == ["XOM", "CVX"]
    assert result["sectors"][0]["confidence"] == 1.0
    assert result["riskNotes"] == ["could reverse", "42"]


@pytest.mark.parametrize(
    "raw,code",
    [
        ("", "EMPTY_RESPONSE"),
        ("{not json", "PARSE_ERROR"),
        (json.dumps({**ANALYSIS, "importanceCategory": "huge"}), "INVALID_RESPONSE"),
        (json.dumps({"summary": "x"}), "INVALID_RESPONSE"),
    ],
)
def test_parse_analysis_errors(raw: str, code: str) -> None:
    with pytest.raises(ClassifierError) as excinfo:
        parse_analysis(raw)
    assert excinfo.value.code == code


@pytest.mark.asyncio
async def test_classifier_calls_llm_in_json_mode(fake_llm) -> None:
    llm = fake_llm(json.dumps(ANALYSIS))
    result = await NewsClassifier(llm).classify("  Refinery fire  ", "Output cut")
    assert result["importanceCategory"] == "macro_shock"
    _, user_prompt, json_mode = llm.calls[0]
    assert json_mode is True
    payload = json.loads(user_prompt)
    assert payload["headline"] == "Refinery fire"
    assert payload["body"] == "Output cut"


@pytest.mark.asyncio
async def test_classifier_error_codes(fake_llm) -> None:
    with pytest.raises(ClassifierError) as excinfo:
        await NewsClassifier(None).classify("headline")
    assert excinfo.value.code == "API_KEY_MISSING"

    with pytest.raises(ClassifierError) as excinfo:
        await NewsClassifier(fake_llm("{}")).classify("   ")
    assert excinfo.value.code == "INVALID_INPUT"

    with pytest.raises(ClassifierError) as excinfo:
        await NewsClassifier(fake_llm(exc=RuntimeError("rate limited"))).classify("headline")
    assert excinfo.value.code == "LLM_ERROR"
