"""Centralized configuration via pydantic-settings, loaded from .env."""

from __future__ import annotations

import functools

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── LLM · Classifier (news triage) ────────────────────────────────
    classifier_api_key: str = ""
    classifier_base_url: str = "https://api.openai.com/v1"
    classifier_model: str = "gpt-4o-mini"

    # ── LLM · Thesis (trade signal generation) ────────────────────────
    thesis_api_key: str = ""
    thesis_base_url: str = "https://api.openai.com/v1"
    thesis_model: str = "gpt-4o"

    # ── Infrastructure ─────────────────────────────────────────────────
    redis_url: str = "redis://localhost:6379/0"

    # ── Data Sources ───────────────────────────────────────────────────
    finnhub_api_key: str = ""
    newsapi_key: str = ""
    tiingo_api_key: str = ""
    pattern_history_path: str = "data/pattern_history.json"

    # ── API Server ────────────────────────────────────────────────────
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # ── Ingestion ──────────────────────────────────────────────────────
    importance_threshold_high: int = 50
    importance_threshold_low: int = 30   # sparse provider supply
    importance_threshold_macro: int = 20  # Tier-0 macro matches
    daily_classify_cap: int = 50
    min_fetch_for_healthy: int = 10
    lookback_hours: int = 2
    max_stored_events: int = 100
    processed_urls_limit: int = 1000
    max_raw_log_per_run: int = 200

    # ── Scoring ────────────────────────────────────────────────────────
    confidence_model_version: int = 1

    # ── Operational Settings ───────────────────────────────────────────
    log_level: str = "INFO"

    # ── Computed helpers ───────────────────────────────────────────────
    @property
    def provider_keys(self) -> dict[str, bool]:
        """Which market/news data sources have a key configured."""
        return {
            "finnhub": bool(self.finnhub_api_key.strip()),
            "newsapi": bool(self.newsapi_key.strip()),
            "tiingo": bool(self.tiingo_api_key.strip()),
        }

    @property
    def classifier_configured(self) -> bool:
        return bool(self.classifier_api_key.strip())

    @property
    def thesis_configured(self) -> bool:
        return bool(self.thesis_api_key.strip())


@functools.lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Singleton accessor for the global settings."""
    return Settings()
