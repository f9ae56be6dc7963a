"""FastAPI application factory with lifespan, CORS and routers."""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from newsedge import __version__

logger = logging.getLogger(__name__)

_start_time: float = 0.0


def get_uptime() -> float:
    return time.time() - _start_time if _start_time else 0.0


@asynccontextmanager
async def _lifespan(app: FastAPI):
    global _start_time
    _start_time = time.time()
    logger.info("NewsEdge API v%s starting", __version__)
    yield
    from newsedge.api.deps import shutdown
    await shutdown()
    logger.info("NewsEdge API shutting down")


def create_app() -> FastAPI:
    """Build and return the fully-configured FastAPI application."""
    app = FastAPI(
        title="NewsEdge",
        description="News-driven trade signals with explainable confidence and outcome tracking",
        version=__version__,
        lifespan=_lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    from newsedge.api.routes import news, outcomes, signals, system
    app.include_router(signals.router, prefix="/api")
    app.include_router(news.router, prefix="/api")
    app.include_router(outcomes.router, prefix="/api")
    app.include_router(system.router, prefix="/api")

    return app
