"""Signal endpoints: trade signal generation and telemetry summary."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from newsedge.api.deps import get_signal_service, get_store
from newsedge.signals.service import SignalService
from newsedge.store import KVStore
from newsedge.telemetry.summary import signal_summary
from newsedge.utils import is_valid_date_str, yesterday_utc

router = APIRouter(tags=["signals"])


class TradeSignalRequest(BaseModel):
    eventId: str


@router.post("/trade-signal")
async def trade_signal(body: TradeSignalRequest, service: SignalService = Depends(get_signal_service)):
    """Business failures come back as 200 with ``ok: false``."""
    if not body.eventId.strip():
        raise HTTPException(status_code=400, detail="eventId is required")
    return await service.generate(body.eventId)


@router.get("/metrics/signal-summary")
async def metrics_signal_summary(
    date: str | None = None,
    days: int = Query(1),
    store: KVStore = Depends(get_store),
):
    end_date = date or yesterday_utc()
    if not is_valid_date_str(end_date):
        raise HTTPException(status_code=400, detail="Invalid date format. Use YYYY-MM-DD")
    return await signal_summary(store, end_date, days)
