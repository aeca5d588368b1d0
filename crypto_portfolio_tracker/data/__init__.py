"""Data layer for the portfolio tracker.

This module provides the data models, the in-memory price cache, the
portfolio stores and the price feed API clients.
"""

from .models import (
    HoldingEntry,
    LastPrice,
    MarketQuote,
    CacheEntry,
    RefreshState,
    APIResponse,
)

from .cache import PriceCache
from .store import PortfolioStore, MemoryPortfolioStore, SQLitePortfolioStore
from .api_client import RateLimiter

__all__ = [
    'HoldingEntry',
    'LastPrice',
    'MarketQuote',
    'CacheEntry',
    'RefreshState',
    'APIResponse',
    'PriceCache',
    'PortfolioStore',
    'MemoryPortfolioStore',
    'SQLitePortfolioStore',
    'RateLimiter',
]
