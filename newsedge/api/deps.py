"""FastAPI dependencies. Tests swap these via ``app.dependency_overrides``."""

from __future__ import annotations

from fastapi import HTTPException

from newsedge import factory
from newsedge.config import get_settings
from newsedge.ingest.gateway import IngestionGateway
from newsedge.signals.service import SignalService
from newsedge.store import KVStore
from newsedge.workers.outcome_cron import OutcomeCron

_signal_service: SignalService | None = None


def get_store() -> KVStore:
    if not get_settings().redis_url:
        raise HTTPException(status_code=500, detail="KV store is not configured")
    return factory.get_store()


def get_signal_service() -> SignalService:
    global _signal_service
    if not get_settings().thesis_configured:
        raise HTTPException(status_code=500, detail="Thesis model API key is not configured")
    if _signal_service is None:
        _signal_service = factory.build_signal_service(get_store())
    return _signal_service


def get_gateway() -> IngestionGateway:
    if not get_settings().classifier_configured:
        raise HTTPException(status_code=500, detail="Classifier API key is not configured")
    return factory.build_gateway(get_store())


def get_outcome_cron() -> OutcomeCron:
    return factory.build_outcome_cron(get_store())


async def shutdown() -> None:
    if _signal_service is not None:
        await _signal_service.drain()
    await factory.close_store()
