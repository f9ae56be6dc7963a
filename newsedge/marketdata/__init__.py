from newsedge.marketdata.bars import BarCache, TiingoClient
from newsedge.marketdata.stats import MarketStatsService

__all__ = ["BarCache", "MarketStatsService", "TiingoClient"]
