"""
Crypto Portfolio Tracker - cached market valuation for cryptocurrency holdings.

This package keeps user-facing portfolio reads fast by serving prices from an
in-memory cache, while a background scheduler and an opportunistic
reconciliation pass keep that cache in step with the CoinGecko price feed.
"""

__version__ = "0.1.0"
__author__ = "Crypto Portfolio Tracker Team"
__license__ = "MIT"

from crypto_portfolio_tracker.core.config import ConfigManager, TrackerSettings
from crypto_portfolio_tracker.tracker.service import PortfolioTracker

__all__ = [
    "__version__",
    "__author__",
    "__license__",
    "ConfigManager",
    "TrackerSettings",
    "PortfolioTracker",
]
