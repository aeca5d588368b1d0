"""Portfolio tracker service wiring the cache, scheduler, view and store together."""

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional
import logging

from ..core.config import TrackerSettings
from ..data.api_client import BaseAPIClient, RateLimiter
from ..data.cache import PriceCache
from ..data.clients.coingecko import CoinGeckoClient
from ..data.models import HoldingEntry
from ..data.store import PortfolioStore, SQLitePortfolioStore
from .pacing import RequestPacer
from .scheduler import RefreshScheduler
from .view import CoinValuation, PortfolioSnapshot, PortfolioView

logger = logging.getLogger(__name__)


class PortfolioTracker:
    """Owns one process-wide price cache and everything that reads or writes it."""

    def __init__(self, settings: Optional[TrackerSettings] = None,
                 store: Optional[PortfolioStore] = None,
                 price_feed: Optional[BaseAPIClient] = None,
                 clock: Callable[[], float] = time.time,
                 monotonic: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        """Initialize portfolio tracker.

        Args:
            settings: Tracker settings; defaults apply when omitted
            store: Portfolio store; SQLite at ``settings.store_path`` by default
            price_feed: Price feed client; CoinGecko by default
            clock: Wall-clock source for price timestamps and freshness
            monotonic: Monotonic clock for the batch call gate
            sleep: Sleep used for reconciliation pacing
        """
        self.settings = settings or TrackerSettings()

        self.store = store or SQLitePortfolioStore(self.settings.store_path)
        self.price_feed = price_feed or CoinGeckoClient(
            api_key=self.settings.api_key,
            base_url=self.settings.base_url,
            timeout=self.settings.request_timeout,
            max_retries=self.settings.max_retries,
            retry_delay=self.settings.retry_delay,
        )

        self.cache = PriceCache(max_age=self.settings.cache_duration, clock=clock)
        self.rate_limiter = RateLimiter(min_interval=self.settings.refresh_interval,
                                        clock=monotonic)
        self.scheduler = RefreshScheduler(
            store=self.store,
            price_feed=self.price_feed,
            cache=self.cache,
            rate_limiter=self.rate_limiter,
            interval=self.settings.refresh_interval,
            clock=clock,
        )
        self.view = PortfolioView(
            store=self.store,
            cache=self.cache,
            scheduler=self.scheduler,
            pacer=RequestPacer(self.settings.pacing_delay, sleep=sleep),
            clock=clock,
        )
        self._initialized = False

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.shutdown()

    async def initialize(self, run_scheduler: bool = True):
        """Open the store and price feed, warm the cache and start refreshing.

        Args:
            run_scheduler: Start periodic refreshes; otherwise only warm the
                cache from stored prices
        """
        if self._initialized:
            return

        await self.store.initialize()
        await self.price_feed.start()

        if run_scheduler:
            await self.scheduler.start()
        else:
            await self.scheduler.warm_cache()

        self._initialized = True
        logger.info("Portfolio tracker initialized")

    async def shutdown(self, wait_for_background: bool = False):
        """Stop background work and release resources.

        Args:
            wait_for_background: Let pending reconciliation and fetches finish
                instead of cancelling them
        """
        if not self._initialized:
            return

        if wait_for_background:
            await self.view.wait_for_background()

        await self.view.close()
        await self.scheduler.stop()
        await self.price_feed.stop()
        await self.store.close()

        self._initialized = False
        logger.info("Portfolio tracker shutdown")

    async def get_portfolio_view(self, reconcile: bool = True) -> PortfolioSnapshot:
        return await self.view.get_portfolio_view(reconcile=reconcile)

    async def get_price(self, coin_id: str) -> Optional[CoinValuation]:
        return await self.view.get_price(coin_id)

    async def add_holding(self, coin_id: str, amount: Any) -> List[HoldingEntry]:
        return await self.view.add_holding(coin_id, amount)

    async def remove_holding(self, coin_id: str) -> List[HoldingEntry]:
        return await self.view.remove_holding(coin_id)

    async def refresh_now(self) -> bool:
        """Run one refresh tick outside the periodic schedule."""
        return await self.scheduler.tick()

    async def wait_for_background(self) -> None:
        await self.view.wait_for_background()

    def get_stats(self) -> Dict[str, Any]:
        """Statistics from the cache, scheduler and price feed."""
        stats = {
            'cache': self.cache.stats(),
            'scheduler': self.scheduler.get_stats(),
            'reconcile_runs': self.view.reconcile_runs,
        }
        if hasattr(self.price_feed, 'get_stats'):
            stats['price_feed'] = self.price_feed.get_stats()
        return stats
