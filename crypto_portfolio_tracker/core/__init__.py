"""
Core components for the Crypto Portfolio Tracker.

This module contains configuration loading, logging setup and the error
taxonomy shared by the data and tracker layers.
"""

from crypto_portfolio_tracker.core.config import ConfigManager, ConfigError, TrackerSettings
from crypto_portfolio_tracker.core.exceptions import (
    TrackerError,
    PriceFeedError,
    RateLimitedError,
    UpstreamUnavailableError,
    StoreIOError,
    InvalidHoldingError,
    HoldingNotFoundError,
)

__all__ = [
    "ConfigManager",
    "ConfigError",
    "TrackerSettings",
    "TrackerError",
    "PriceFeedError",
    "RateLimitedError",
    "UpstreamUnavailableError",
    "StoreIOError",
    "InvalidHoldingError",
    "HoldingNotFoundError",
]
