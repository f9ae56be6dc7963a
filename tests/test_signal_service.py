from __future__ import annotations

import pytest
import pytest_asyncio

from newsedge import keys
from newsedge.engine.echo import EchoContextBuilder
from newsedge.errors import ThesisError
from newsedge.signals.service import SignalService
from newsedge.telemetry.telemetry import TelemetryStore
from newsedge.utils import utc_date_str, utc_now

EVENT = {
    "id": "evt_1",
    "headline": "Refinery outage hits Gulf Coast",
    "source": "Reuters",
    "analysis": {
        "importanceCategory": "sector_shock",
        "sectors": [{"name": "Energy", "direction": "bullish", "exampleTickers": ["XOM", "CVX"]}],
    },
}

THESIS = {
    "direction": "LONG",
    "instrument": "XLE",
    "ambiguity": 0.1,
    "hedged": False,
    "entry": {"type": "market", "level": 0},
    "invalidation": {"level": 0, "reason": ""},
    "tickers": ["XOM"],
}


class FakeThesis:
    def __init__(self, output=None, error: ThesisError | None = None) -> None:
        self.output = output or THESIS
        self.error = error
        self.calls = 0

    async def generate(self, event: dict) -> dict:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return dict(self.output)


class FakeStats:
    def __init__(self, result=None, exc: Exception | None = None) -> None:
        self.result = result
        self.exc = exc

    async def for_event(self, event: dict):
        if self.exc is not None:
            raise self.exc
        return self.result


@pytest_asyncio.fixture
async def seeded(store):
    await store.set(keys.MAJOR_EVENTS, [EVENT, {"id": "evt_blank", "headline": ""}])
    return store


@pytest.mark.asyncio
async def test_generates_caches_and_logs_telemetry(seeded) -> None:
    thesis = FakeThesis()
    service = SignalService(seeded, thesis, market_stats=FakeStats({"symbol": "XLE", "atrPct": 3, "gapPct": 1}))

    first = await service.generate("evt_1")
    await service.drain()

    assert first["ok"] is True
    assert first["cached"] is False
    assert first["signalId"] == "1:evt_1:XLE"
    assert first["symbol"] == "XLE"
    assert first["signal"] == "BUY"
    assert first["meta"]["marketStatsUsed"] is True
    assert first["thesis"]["instrument"] == "XLE"
    assert seeded.ttls[keys.signal(1, "evt_1")] == keys.SIGNAL_TTL

    second = await service.generate("evt_1")
    assert second["cached"] is True
    assert second["signalId"] == first["signalId"]
    assert thesis.calls == 1

    telemetry = TelemetryStore(seeded)
    assert await telemetry.read_by_date(utc_date_str(utc_now())) == ["1:evt_1:XLE"]
    log = await telemetry.read("1:evt_1:XLE")
    assert log["theme"] == "sector_shock"
    assert log["source"] == "Reuters"
    assert log["atrPct"] == 3
    assert log["cached"] is False


@pytest.mark.asyncio
async def test_model_version_partitions_cache(seeded) -> None:
    v1 = SignalService(seeded, FakeThesis(), model_version=1)
    v2 = SignalService(seeded, FakeThesis(), model_version=2)
    await v1.generate("evt_1")
    result = await v2.generate("evt_1")
    await v1.drain()
    await v2.drain()
    assert result["cached"] is False
    assert result["signalId"] == "2:evt_1:XLE"
    assert result["meta"]["modelVersion"] == 2


@pytest.mark.asyncio
async def test_input_and_event_errors(seeded) -> None:
    service = SignalService(seeded, FakeThesis())
    assert (await service.generate("  "))["error"]["code"] == "INVALID_INPUT"
    assert (await service.generate("evt_missing"))["error"]["code"] == "EVENT_NOT_FOUND"
    assert (await service.generate("evt_blank"))["error"]["code"] == "INVALID_EVENT"


@pytest.mark.asyncio
async def test_thesis_failure_is_not_cached(seeded) -> None:
    service = SignalService(seeded, FakeThesis(error=ThesisError("PARSE_ERROR", "Failed to parse model response")))
    result = await service.generate("evt_1")
    assert result == {
        "ok": False,
        "eventId": "evt_1",
        "error": {"code": "PARSE_ERROR", "message": "Failed to parse model response"},
    }
    assert await seeded.get(keys.signal(1, "evt_1")) is None


@pytest.mark.asyncio
async def test_optional_inputs_fail_soft(seeded) -> None:
    class BrokenEcho:
        def build(self, event):
            raise KeyError("pairs")

    service = SignalService(seeded, FakeThesis(), echo=BrokenEcho(), market_stats=FakeStats(exc=RuntimeError("down")))
    result = await service.generate("evt_1")
    await service.drain()
    assert result["ok"] is True
    assert result["echoContext"] is None
    assert result["marketStats"] is None
    assert result["meta"]["echoUsed"] is False
    assert result["meta"]["marketStatsUsed"] is False


@pytest.mark.asyncio
async def test_echo_context_feeds_scoring(seeded) -> None:
    history = {"XOM_CVX": {"priceEcho": {"stats": {"accuracy": 82, "correlation": 0.7, "avgEchoMove": 2.1, "sampleSize": 30}}}}
    service = SignalService(seeded, FakeThesis(), echo=EchoContextBuilder(history=history))
    result = await service.generate("evt_1")
    await service.drain()
    assert result["echoContext"]["pairId"] == "XOM_CVX"
    assert result["echoContext"]["alignment"] == "tailwind"
    assert result["confidence"]["components"]["echoEdge"] == 85


@pytest.mark.asyncio
async def test_symbol_falls_back_to_tickers_then_stats(seeded) -> None:
    service = SignalService(seeded, FakeThesis({**THESIS, "instrument": ""}))
    assert (await service.generate("evt_1"))["symbol"] == "XOM"
    await service.drain()

    await seeded.delete(keys.signal(1, "evt_1"))
    service = SignalService(seeded, FakeThesis({**THESIS, "instrument": "", "tickers": []}),
                            market_stats=FakeStats({"symbol": "SPY", "atrPct": 2}))
    result = await service.generate("evt_1")
    await service.drain()
    assert result["symbol"] == "SPY"
    assert result["signalId"] == "1:evt_1:SPY"


@pytest.mark.asyncio
async def test_telemetry_failure_does_not_fail_signal(seeded) -> None:
    seeded.fail_on.add("zadd")
    service = SignalService(seeded, FakeThesis())
    result = await service.generate("evt_1")
    await service.drain()
    assert result["ok"] is True
    assert await TelemetryStore(seeded).read_by_date(utc_date_str(utc_now())) == []
