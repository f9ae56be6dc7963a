"""Outcome endpoints: trigger the outcome cron for a day."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from newsedge.api.deps import get_outcome_cron
from newsedge.workers.outcome_cron import OutcomeCron

router = APIRouter(tags=["outcomes"])


@router.get("/outcome-cron")
async def outcome_cron(date: str | None = None, cron: OutcomeCron = Depends(get_outcome_cron)):
    try:
        return await cron.run_for_date(date)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
