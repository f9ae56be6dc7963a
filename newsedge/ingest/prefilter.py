"""Cheap, deterministic text heuristics run before any paid classification.

Nothing here gates classification on its own; the scores and keyword hits
are recorded on every decision so the triage can be audited later.
"""

from __future__ import annotations

import hashlib
import re
from urllib.parse import urlsplit

# Tier-0 macro keywords: a hit lowers the admission threshold.
MACRO_KEYWORDS = (
    "coup", "assassination", "sanctions", "venezuela", "opec", "earthquake",
    "missile", "default", "imf", "central bank", "election", "protests",
    "invasion", "hostage", "pipeline", "strike", "bankruptcy", "war",
    "nuclear", "fed", "interest rate", "tariff", "embargo", "martial law",
    "arrested", "captured", "president", "raid", "extradition", "indictment",
    "terror", "attack", "explosion", "ceasefire",
)

KEYWORD_FAMILIES: dict[str, tuple[int, tuple[str, ...]]] = {
    "geopolitical": (20, (
        "war", "invasion", "military", "troops", "army", "navy", "airforce",
        "sanctions", "embargo", "blockade", "coup", "overthrow", "regime",
        "president", "prime minister", "leader", "dictator", "assassination",
        "arrested", "captured", "detained", "extradited", "extradition",
        "raid", "operation", "strike", "airstrike", "bombing", "missile",
        "nuclear", "nato", "un security", "summit", "treaty", "alliance",
        "tariff", "trade war", "retaliation", "diplomatic", "ambassador",
        "election", "referendum", "protest", "uprising", "revolution",
    )),
    "macro": (18, (
        "fed", "federal reserve", "interest rate", "rate hike", "rate cut",
        "inflation", "cpi", "ppi", "gdp", "recession", "depression",
        "unemployment", "jobs report", "nonfarm", "payroll",
        "treasury", "bond", "yield", "debt ceiling", "default",
        "central bank", "ecb", "boj", "pboc", "quantitative",
        "stimulus", "bailout", "rescue", "emergency", "liquidity",
        "currency", "forex", "dollar", "euro", "yuan", "yen",
    )),
    "energy": (15, (
        "oil", "crude", "brent", "wti", "opec", "pipeline", "refinery",
        "natural gas", "lng", "petroleum", "gasoline", "diesel",
        "energy crisis", "blackout", "grid", "power outage",
        "solar", "wind", "renewable", "nuclear plant",
        "coal", "mining", "commodity", "metal", "gold", "silver", "copper",
    )),
    "crisis": (25, (
        "crash", "collapse", "bankrupt", "bankruptcy", "insolvency",
        "bank run", "panic", "meltdown", "contagion", "systemic",
        "fraud", "scandal", "investigation", "sec", "doj",
        "margin call", "liquidation", "default", "failure",
        "circuit breaker", "halt", "suspended", "delisted",
    )),
    "tech": (12, (
        "cyber", "hack", "breach", "ransomware", "malware",
        "ai", "artificial intelligence", "chatgpt", "openai",
        "chip", "semiconductor", "nvidia", "tsmc", "intel",
        "antitrust", "monopoly", "regulation", "ban",
        "data", "privacy", "security", "outage", "down",
    )),
    "disaster": (14, (
        "earthquake", "tsunami", "hurricane", "typhoon", "cyclone",
        "flood", "wildfire", "volcano", "eruption", "disaster",
        "pandemic", "epidemic", "outbreak", "virus", "covid",
        "emergency", "evacuation", "casualties", "fatalities",
        "explosion", "fire", "accident", "derailment",
    )),
    "market": (10, (
        "earnings", "revenue", "profit", "loss", "guidance",
        "merger", "acquisition", "buyout", "takeover", "ipo",
        "dividend", "buyback", "split", "offering",
        "downgrade", "upgrade", "rating", "outlook",
        "beat", "miss", "surprise", "forecast",
    )),
}

_MULTI_FAMILY_BONUS = 15

# Rule-based headline importance (pattern, points). Capped at 100.
_HEADLINE_RULES: tuple[tuple[re.Pattern[str], int], ...] = tuple(
    (re.compile(p, re.IGNORECASE), s)
    for p, s in (
        (r"\bblockade\b", 45), (r"\bstrait\b", 40), (r"\bhormuz\b", 50),
        (r"\bsanctions?\b", 35), (r"\bwar\b", 50), (r"\bmissile\b", 45),
        (r"\battack\b", 35), (r"\bcoup\b", 50), (r"\bdefault\b", 40),
        (r"\bbank run\b", 50), (r"\btrading halt\b", 45), (r"\bearthquake\b", 35),
        (r"\bblackout\b", 40), (r"\bpower outage\b", 40), (r"\bgrid failure\b", 45),
        (r"\bcyberattack\b", 45), (r"\bpipeline\b", 30), (r"\bopec\b", 35),
        (r"\brate decision\b", 40), (r"\binterest rate\b", 30),
        (r"\bfed\s+(raises?|cuts?|hikes?)\b", 45), (r"\bcentral bank\b", 30),
        (r"\bnuclear\b", 45), (r"\binvasion\b", 50), (r"\bterror(ist|ism)?\b", 45),
        (r"\bpandemic\b", 45), (r"\bcrash(es|ed|ing)?\b", 35), (r"\bcollapse[sd]?\b", 40),
        (r"\bbankrupt(cy)?\b", 40), (r"\brecession\b", 35), (r"\binfla(tion|tionary)\b", 30),
        (r"\bsuez\b", 45), (r"\bpanama canal\b", 40), (r"\bsupply chain\b", 25),
        (r"\btariff\b", 30), (r"\btrade war\b", 40),
        (r"\bshutdown\b", 20), (r"\bstrike\b", 15), (r"\bevacuation\b", 20),
        (r"\bexplosion\b", 25), (r"\bmajor outage\b", 25), (r"\bborder\b", 10),
        (r"\bsurge[sd]?\b", 15), (r"\bplunge[sd]?\b", 20), (r"\bsoar(s|ed|ing)?\b", 15),
        (r"\btumble[sd]?\b", 15), (r"\bcrisis\b", 20), (r"\bemergency\b", 20),
        (r"\bshortage\b", 15), (r"\bflood(s|ed|ing)?\b", 15), (r"\bhurricane\b", 20),
        (r"\btsunami\b", 25), (r"\bwildfire\b", 15), (r"\bdrought\b", 15),
        (r"\bprotest(s|ers?)?\b", 10), (r"\briot(s|ing)?\b", 20), (r"\brecall(s|ed)?\b", 10),
        (r"\bIPO\b", 10), (r"\bmerger\b", 15), (r"\bacquisition\b", 15),
        (r"\bspinoff\b", 10), (r"\blayoff(s)?\b", 15), (r"\bjob cuts?\b", 15),
        (r"\bCEO (resign|step|leave|fired|out)\b", 20), (r"\bSEC\b", 15),
        (r"\bFDA\b", 15), (r"\bFTC\b", 15), (r"\bantitrust\b", 20),
        (r"\bregulat(ion|ory|or)\b", 10),
    )
)


def _text(headline: str | None, body: str | None) -> str:
    return f"{headline or ''} {body or ''}".lower()


def hash_headline(headline: str | None, url: str | None = None) -> str:
    """Stable 16-hex-char fingerprint of a normalized headline plus URL host."""
    normalized = re.sub(r"[^\w\s]", "", (headline or "").lower())
    normalized = re.sub(r"\s+", " ", normalized).strip()
    if url:
        host = urlsplit(url).hostname
        if host:
            normalized += f"|{host}"
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()[:16]


def compute_prefilter_score(headline: str | None, body: str | None = None) -> tuple[int, list[str]]:
    """Keyword-family score. Only the first hit per family counts."""
    text = _text(headline, body)
    score = 0
    reasons: list[str] = []
    families_hit = 0
    for family, (weight, keywords) in KEYWORD_FAMILIES.items():
        for keyword in keywords:
            if keyword in text:
                score += weight
                reasons.append(f"keyword:{family}:{keyword}")
                families_hit += 1
                break
    if families_hit >= 3:
        score += _MULTI_FAMILY_BONUS
        reasons.append("bonus:multi_family")
    return score, reasons


def check_macro_match(headline: str | None, body: str | None = None) -> tuple[bool, list[str]]:
    """Tier-0 check: substring match against the macro keyword list."""
    text = _text(headline, body)
    matched = [kw for kw in MACRO_KEYWORDS if kw in text]
    return bool(matched), matched


def score_headline(headline: str | None, body: str | None = None) -> int:
    """Rule-based 0-100 importance estimate for a headline."""
    text = _text(headline, body)
    score = sum(points for pattern, points in _HEADLINE_RULES if pattern.search(text))
    return min(100, score)
