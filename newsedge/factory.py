"""Component wiring shared by the API and the CLI."""

from __future__ import annotations

from newsedge.config import Settings, get_settings
from newsedge.engine.echo import EchoContextBuilder
from newsedge.engine.thesis import ThesisGenerator
from newsedge.ingest.classifier import NewsClassifier
from newsedge.ingest.gateway import IngestionGateway
from newsedge.ingest.providers import FinnhubProvider, NewsAPIProvider
from newsedge.llm_client import CLASSIFIER, THESIS, get_llm_client
from newsedge.marketdata.bars import BarCache, TiingoClient
from newsedge.marketdata.stats import MarketStatsService
from newsedge.signals.service import SignalService
from newsedge.store import KVStore
from newsedge.workers.outcome_cron import OutcomeCron

_store: KVStore | None = None


def get_store() -> KVStore:
    global _store
    if _store is None:
        _store = KVStore(get_settings().redis_url)
    return _store


def build_gateway(store: KVStore, settings: Settings | None = None) -> IngestionGateway:
    s = settings or get_settings()
    return IngestionGateway(
        store,
        NewsClassifier(get_llm_client(CLASSIFIER) if s.classifier_configured else None),
        providers=[FinnhubProvider(s.finnhub_api_key), NewsAPIProvider(s.newsapi_key)],
        settings=s,
    )


def build_bar_cache(store: KVStore, settings: Settings | None = None) -> BarCache:
    s = settings or get_settings()
    return BarCache(store, TiingoClient(s.tiingo_api_key))


def build_signal_service(store: KVStore, settings: Settings | None = None) -> SignalService:
    s = settings or get_settings()
    thesis = ThesisGenerator(get_llm_client(THESIS) if s.thesis_configured else None, s.thesis_configured)
    return SignalService(
        store,
        thesis,
        echo=EchoContextBuilder(s.pattern_history_path),
        market_stats=MarketStatsService(BarCache(None, TiingoClient(s.tiingo_api_key))),
        model_version=s.confidence_model_version,
    )


def build_outcome_cron(store: KVStore, settings: Settings | None = None) -> OutcomeCron:
    return OutcomeCron(store, build_bar_cache(store, settings))


async def close_store() -> None:
    global _store
    if _store is not None:
        await _store.close()
        _store = None
