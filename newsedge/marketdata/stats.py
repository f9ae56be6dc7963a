"""Volatility stats (ATR%, gap%) for the ticker that best represents an event."""

from __future__ import annotations

import logging
from typing import Any

from newsedge.errors import MarketDataError
from newsedge.marketdata.bars import BarCache
from newsedge.utils import utc_now

logger = logging.getLogger(__name__)

ATR_PERIOD = 14
MIN_BARS = ATR_PERIOD + 1

MAJOR_ETFS = ("SPY", "QQQ", "XLE", "XLF", "XLK", "XLV", "XLI", "XLU", "XLP", "XLY", "GLD", "TLT")
MAJOR_STOCKS = ("AAPL", "MSFT", "GOOGL", "AMZN", "NVDA", "META", "TSLA", "JPM", "XOM", "CVX")


def true_range(bar: dict[str, Any], prev_close: float | None) -> float:
    high, low = bar["high"], bar["low"]
    if prev_close is None:
        return high - low
    return max(high - low, abs(high - prev_close), abs(low - prev_close))


def compute_atr(bars: list[dict[str, Any]], period: int = ATR_PERIOD) -> float | None:
    """Simple average of the last *period* true ranges."""
    if len(bars) < period + 1:
        return None
    ranges = [true_range(bars[i], bars[i - 1]["close"]) for i in range(1, len(bars))]
    return sum(ranges[-period:]) / period


def compute_gap_pct(bars: list[dict[str, Any]]) -> float | None:
    if len(bars) < 2:
        return None
    prev_close = bars[-2]["close"]
    if not prev_close:
        return None
    return abs(bars[-1]["open"] - prev_close) / prev_close * 100


def representative_ticker(event: dict[str, Any]) -> str | None:
    """Major ETF first, then a mega cap (scanned per sector), then the first ticker, then SPY."""
    sectors = (event.get("analysis") or {}).get("sectors")
    if not sectors:
        return None
    for sector in sectors:
        tickers = [str(t).upper() for t in sector.get("exampleTickers") or []]
        for t in tickers:
            if t in MAJOR_ETFS:
                return t
        for t in tickers:
            if t in MAJOR_STOCKS:
                return t
    first = sectors[0].get("exampleTickers") or []
    if first:
        return str(first[0]).upper()
    return "SPY"


def stats_from_bars(symbol: str, bars: list[dict[str, Any]]) -> dict[str, Any] | None:
    if len(bars) < MIN_BARS:
        return None
    price = bars[-1]["close"]
    if not price:
        return None
    atr = compute_atr(bars)
    gap = compute_gap_pct(bars)
    return {
        "symbol": symbol,
        "currentPrice": price,
        "atr": round(atr, 2) if atr is not None else None,
        "atrPct": round(atr / price * 100, 2) if atr is not None else None,
        "gapPct": round(gap, 2) if gap is not None else None,
    }


class MarketStatsService:
    def __init__(self, bars: BarCache) -> None:
        self._bars = bars

    async def for_symbol(self, symbol: str) -> dict[str, Any] | None:
        try:
            bars = await self._bars.get_daily_bars(symbol, utc_now().isoformat())
        except MarketDataError as exc:
            logger.warning("[market-stats] %s unavailable (%s): %s", symbol, exc.code, exc.message)
            return None
        stats = stats_from_bars(symbol, bars[-30:])
        if stats is None:
            logger.warning("[market-stats] insufficient price history for %s", symbol)
        return stats

    async def for_event(self, event: dict[str, Any]) -> dict[str, Any] | None:
        """Stats for the event's representative ticker, or None when unavailable."""
        ticker = representative_ticker(event)
        if not ticker:
            logger.info("[market-stats] no representative ticker for event %s", event.get("id"))
            return None
        return await self.for_symbol(ticker)
