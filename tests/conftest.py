"""
Pytest configuration and shared fixtures for the test suite.

Clocks are fakes advanced by hand, the price feed answers from a dict, and
the portfolio lives in memory, so no test touches the network or waits on
real timers unless it asks to.
"""

import tempfile
from decimal import Decimal
from pathlib import Path
from typing import Dict, List, Optional
from unittest.mock import AsyncMock

import pytest
from click.testing import CliRunner

from crypto_portfolio_tracker.core.config import TrackerSettings
from crypto_portfolio_tracker.core.exceptions import UpstreamUnavailableError
from crypto_portfolio_tracker.data.models import HoldingEntry, LastPrice, MarketQuote
from crypto_portfolio_tracker.data.store import MemoryPortfolioStore
from crypto_portfolio_tracker.tracker.service import PortfolioTracker


WALL_CLOCK_START = 1_700_000_000.0


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: float):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakePriceFeed:
    """Price feed double answering ``get_market_data`` from a price table."""

    def __init__(self):
        self.quotes: Dict[str, MarketQuote] = {}
        self.calls: List[List[str]] = []
        self.error: Optional[Exception] = None
        self.started = False

    def set_price(self, coin_id: str, price, name: Optional[str] = None,
                  symbol: Optional[str] = None) -> None:
        self.quotes[coin_id] = MarketQuote(
            coin_id=coin_id,
            usd_value=Decimal(str(price)),
            name=name or coin_id.title(),
            symbol=symbol or coin_id[:3],
        )

    async def start(self):
        self.started = True

    async def stop(self):
        self.started = False

    async def get_market_data(self, coin_ids):
        ids = list(coin_ids)
        self.calls.append(ids)
        if self.error is not None:
            raise self.error
        return {coin_id: self.quotes[coin_id] for coin_id in ids if coin_id in self.quotes}

    def get_stats(self):
        return {'request_count': len(self.calls)}


@pytest.fixture
def cli_runner():
    """Create a Click CLI runner for testing commands."""
    return CliRunner()


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def wall_clock():
    return FakeClock(WALL_CLOCK_START)


@pytest.fixture
def monotonic_clock():
    return FakeClock(1000.0)


@pytest.fixture
def sleep():
    """Replacement for asyncio.sleep that returns immediately."""
    return AsyncMock()


@pytest.fixture
def price_feed():
    feed = FakePriceFeed()
    feed.set_price("bitcoin", "50000", name="Bitcoin", symbol="btc")
    feed.set_price("ethereum", "3000", name="Ethereum", symbol="eth")
    return feed


@pytest.fixture
def failing_price_feed():
    feed = FakePriceFeed()
    feed.error = UpstreamUnavailableError("GET coins/markets returned HTTP 503", status_code=503)
    return feed


@pytest.fixture
def memory_store():
    return MemoryPortfolioStore()


@pytest.fixture
def sample_holdings():
    """Two holdings, one carrying a persisted price."""
    return [
        HoldingEntry(
            coin_id="bitcoin",
            amount=Decimal("0.5"),
            name="Bitcoin",
            symbol="btc",
            last_price=LastPrice(usd=Decimal("48000"), timestamp=WALL_CLOCK_START - 60),
        ),
        HoldingEntry(coin_id="ethereum", amount=Decimal("2"), name="ethereum", symbol="?"),
    ]


@pytest.fixture
def settings(temp_dir):
    return TrackerSettings(
        refresh_interval=30.0,
        cache_duration=300.0,
        pacing_delay=3.0,
        store_path=temp_dir / "portfolio.db",
    )


@pytest.fixture
def tracker(settings, memory_store, price_feed, wall_clock, monotonic_clock, sleep):
    """Tracker wired to in-memory fakes; not initialized."""
    return PortfolioTracker(
        settings,
        store=memory_store,
        price_feed=price_feed,
        clock=wall_clock,
        monotonic=monotonic_clock,
        sleep=sleep,
    )
