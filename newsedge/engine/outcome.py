"""Outcome engine: forward returns, adverse excursion and stop-outs from daily bars.

Horizons are trading-day offsets from the t0 bar's index, not calendar days.
Signed returns are positive when the trade made money, whichever the direction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from newsedge.utils import utc_date_str, utc_now

HORIZONS = (1, 3, 5)

SAME_DAY_CLOSE = "same_day_close"
PREV_AVAILABLE = "prev_available"
NOT_FOUND = "not_found"

NO_T0_BAR = "no_t0_bar"
INSUFFICIENT_FORWARD_BARS = "insufficient_forward_bars"

REASON_NO_T0 = "No t0 bar found for signal date"
REASON_NO_FORWARD = "Insufficient future bars for outcome computation"


@dataclass
class Resolution:
    t0_bar: dict[str, Any] | None
    t0_index: int
    t0_rule: str
    horizon_bars: dict[int, dict[str, Any] | None] = field(default_factory=dict)
    window_bars: dict[int, list[dict[str, Any]] | None] = field(default_factory=dict)


def resolve_closes(
    bars: list[dict[str, Any]],
    reference_ts: str,
    horizons: tuple[int, ...] = HORIZONS,
) -> Resolution:
    """Locate t0 (same-day bar, else latest bar on or before that day) and horizon bars.

    *bars* must be sorted ascending by ``date`` (``YYYY-MM-DD``).
    """
    day = utc_date_str(reference_ts)

    t0_index, rule = -1, SAME_DAY_CLOSE
    for i, bar in enumerate(bars):
        if bar.get("date") == day:
            t0_index = i
            break
    if t0_index == -1:
        for i in range(len(bars) - 1, -1, -1):
            if str(bars[i].get("date")) <= day:
                t0_index, rule = i, PREV_AVAILABLE
                break
    if t0_index == -1:
        return Resolution(None, -1, NOT_FOUND)

    res = Resolution(bars[t0_index], t0_index, rule)
    for h in horizons:
        target = t0_index + h
        if target < len(bars):
            res.horizon_bars[h] = bars[target]
            res.window_bars[h] = bars[t0_index:target + 1]
        else:
            res.horizon_bars[h] = None
            res.window_bars[h] = None
    return res


def raw_return(t0_close: float, close: float) -> float:
    if not t0_close:
        return 0.0
    return (close - t0_close) / t0_close * 100


def signed_return(raw: float, direction: str) -> float:
    if direction == "LONG":
        return raw
    if direction == "SHORT":
        return -raw
    return 0.0


def worst_adverse(window: list[dict[str, Any]] | None, t0_close: float, direction: str) -> float:
    """Most unfavorable excursion over *window*, as a percent (<= 0 when adverse)."""
    if not window or not t0_close:
        return 0.0
    if direction == "LONG":
        return (min(float(b["low"]) for b in window) - t0_close) / t0_close * 100
    if direction == "SHORT":
        return (t0_close - max(float(b["high"]) for b in window)) / t0_close * 100
    return 0.0


def stopped_out(adverse_pct: float, stop_distance_pct: float | None) -> bool:
    if not stop_distance_pct or stop_distance_pct <= 0:
        return False
    return adverse_pct <= -stop_distance_pct


def compute_outcome(
    t0_close: float,
    direction: str,
    stop_distance_pct: float | None,
    horizon_bars: dict[int, dict[str, Any] | None],
    window_bars: dict[int, list[dict[str, Any]] | None],
    horizons: tuple[int, ...] = HORIZONS,
) -> dict[str, dict[str, Any]]:
    """Per-horizon series keyed by ``"1"``, ``"3"``, ``"5"``.

    Missing horizon data yields ``None`` returns and ``stoppedOut`` False.
    """
    out: dict[str, dict[str, Any]] = {
        "rawReturnPct": {}, "signedReturnPct": {}, "worstAdversePct": {}, "stoppedOut": {},
    }
    for h in horizons:
        key = str(h)
        bar = horizon_bars.get(h)
        if bar is None:
            out["rawReturnPct"][key] = None
            out["signedReturnPct"][key] = None
            out["worstAdversePct"][key] = None
            out["stoppedOut"][key] = False
            continue
        raw = raw_return(t0_close, float(bar["close"]))
        out["rawReturnPct"][key] = round(raw, 2)
        out["signedReturnPct"][key] = round(signed_return(raw, direction), 2)
        window = window_bars.get(h)
        if window:
            adverse = worst_adverse(window, t0_close, direction)
            out["worstAdversePct"][key] = round(adverse, 2)
            out["stoppedOut"][key] = stopped_out(adverse, stop_distance_pct)
        else:
            out["worstAdversePct"][key] = None
            out["stoppedOut"][key] = False
    return out


def build_outcome_record(
    signal_id: str,
    symbol: str,
    ts: str,
    direction: str,
    stop_distance_pct: float | None,
    bars: list[dict[str, Any]],
) -> dict[str, Any]:
    """Full outcome record, or ``{"ok": False, "signalId", "code", "reason"}`` on failure."""
    res = resolve_closes(bars, ts)
    if res.t0_bar is None:
        return {"ok": False, "signalId": signal_id, "code": NO_T0_BAR, "reason": REASON_NO_T0}
    if all(b is None for b in res.horizon_bars.values()):
        return {"ok": False, "signalId": signal_id, "code": INSUFFICIENT_FORWARD_BARS, "reason": REASON_NO_FORWARD}

    t0_close = float(res.t0_bar["close"])
    series = compute_outcome(t0_close, direction, stop_distance_pct, res.horizon_bars, res.window_bars)
    return {
        "ok": True,
        "signalId": signal_id,
        "symbol": symbol,
        "ts": ts,
        "t0Close": t0_close,
        **series,
        "stopDistancePctUsed": stop_distance_pct,
        "t0Rule": res.t0_rule,
        "computedAt": utc_now().isoformat(),
    }
