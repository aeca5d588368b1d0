"""Periodic and on-demand refresh of the price cache."""

import asyncio
import time
from typing import Any, Callable, Dict, List, Optional, Sequence
import logging

from ..core.exceptions import PriceFeedError, StoreIOError
from ..core.logging import capture_exception
from ..data.api_client import BaseAPIClient, RateLimiter
from ..data.cache import PriceCache
from ..data.models import API_CALL_INTERVAL, CacheEntry, MarketQuote
from ..data.store import PortfolioStore
from .tasks import BackgroundTasks

logger = logging.getLogger(__name__)


class RefreshScheduler:
    """Keeps the price cache current.

    Two drivers feed the cache: a periodic tick that refreshes every held coin
    in one batch, and single-coin fetches requested after a holding is added.
    Both go through the same rate limiter, so either may be skipped.
    """

    def __init__(self, store: PortfolioStore, price_feed: BaseAPIClient,
                 cache: PriceCache, rate_limiter: RateLimiter,
                 interval: float = API_CALL_INTERVAL,
                 clock: Callable[[], float] = time.time):
        """Initialize refresh scheduler.

        Args:
            store: Portfolio store, source of the coin ids to refresh
            price_feed: Client answering batched market data lookups
            cache: Price cache to write
            rate_limiter: Gate shared by every batch call
            interval: Seconds between periodic ticks
            clock: Wall-clock source for ``observed_at`` timestamps
        """
        self.store = store
        self.price_feed = price_feed
        self.cache = cache
        self.rate_limiter = rate_limiter
        self.interval = interval
        self._clock = clock

        self._loop_task: Optional[asyncio.Task] = None
        self._running = False
        self._fetches = BackgroundTasks("refresh-scheduler")
        self.last_refresh_at: Optional[float] = None
        self._stats = {
            'ticks': 0,
            'refreshes': 0,
            'skipped': 0,
            'failures': 0,
            'coin_fetches': 0,
        }

    @property
    def running(self) -> bool:
        return self._running

    async def start(self):
        """Warm the cache from the store and start periodic refreshes."""
        if self._running:
            return

        self._running = True
        await self.warm_cache()
        self._loop_task = asyncio.create_task(self._refresh_loop(), name="price-refresh")

        logger.info(f"Refresh scheduler started (every {self.interval:g}s)")

    async def stop(self):
        """Stop periodic refreshes and cancel pending single-coin fetches."""
        if self._running:
            self._running = False

            if self._loop_task:
                self._loop_task.cancel()
                try:
                    await self._loop_task
                except asyncio.CancelledError:
                    pass
                self._loop_task = None

            logger.info("Refresh scheduler stopped")

        await self._fetches.cancel_all()

    async def warm_cache(self) -> int:
        """Seed the cache from prices persisted with the holdings.

        Returns:
            Number of cache entries loaded
        """
        try:
            holdings = await self.store.load()
        except StoreIOError as e:
            logger.error(f"Could not warm price cache: {e}")
            return 0

        entries = [CacheEntry.from_holding(h) for h in holdings]
        entries = [entry for entry in entries if entry is not None]
        self.cache.replace_all(entries)

        logger.debug(f"Warmed price cache with {len(entries)} stored prices")
        return len(entries)

    async def fetch_batch(self, coin_ids: Sequence[str]) -> Optional[Dict[str, MarketQuote]]:
        """One rate-limited batch call for ``coin_ids``.

        Returns:
            Quotes by coin id, or None if the rate limiter skipped the call

        Raises:
            PriceFeedError: the upstream call failed
        """
        ids = list(coin_ids)
        return await self.rate_limiter.attempt(lambda: self.price_feed.get_market_data(ids))

    async def _refresh_loop(self):
        """Run a tick immediately, then every ``interval`` seconds."""
        while self._running:
            try:
                await self.tick()
            except Exception as e:
                self._stats['failures'] += 1
                logger.error(f"Unexpected error in price refresh loop: {e}", exc_info=True)
                capture_exception(e, {"context": "price_refresh_loop"})

            await asyncio.sleep(self.interval)

    async def tick(self) -> bool:
        """Refresh every held coin in one batch.

        An empty portfolio clears the cache and persists an empty list.
        Upstream and store failures are logged; the next tick retries.

        Returns:
            True if the cache was refreshed
        """
        self._stats['ticks'] += 1

        try:
            holdings = await self.store.load()
        except StoreIOError as e:
            self._stats['failures'] += 1
            logger.error(f"Price refresh aborted, portfolio unreadable: {e}")
            return False

        if not holdings:
            self.cache.clear()
            try:
                await self.store.save([])
            except StoreIOError as e:
                logger.error(f"Could not persist empty portfolio: {e}")
            return False

        coin_ids = [h.coin_id for h in holdings]

        try:
            quotes = await self.fetch_batch(coin_ids)
        except PriceFeedError as e:
            self._stats['failures'] += 1
            logger.error(f"Error fetching and caching prices: {e}")
            return False

        if quotes is None:
            self._stats['skipped'] += 1
            logger.debug("Skipping price refresh due to rate limit interval")
            return False

        observed_at = self._clock()
        self.cache.replace_all(
            CacheEntry.from_quote(quotes[coin_id], observed_at)
            for coin_id in coin_ids if coin_id in quotes
        )

        updated = [
            h.with_quote(quotes[h.coin_id], observed_at) if h.coin_id in quotes else h
            for h in holdings
        ]
        try:
            await self.store.save(updated)
        except StoreIOError as e:
            logger.error(f"Refreshed prices could not be persisted: {e}")

        self.last_refresh_at = observed_at
        self._stats['refreshes'] += 1
        logger.info(f"Price cache updated: {len(quotes)}/{len(coin_ids)} coins priced")
        return True

    def request_coin_fetch(self, coin_id: str) -> asyncio.Task:
        """Fetch one coin's price in the background."""
        return self._fetches.spawn(self.fetch_coin(coin_id), name=f"fetch-{coin_id}")

    async def fetch_coin(self, coin_id: str) -> bool:
        """Refresh a single coin's cache entry and stored price.

        Other cache entries and holdings are left untouched.

        Returns:
            True if a new price was applied
        """
        self._stats['coin_fetches'] += 1

        try:
            quotes = await self.fetch_batch([coin_id])
        except PriceFeedError as e:
            logger.error(f"Error fetching price for {coin_id}: {e}")
            return False

        if quotes is None:
            logger.debug(f"Skipping price fetch for {coin_id} due to rate limit interval")
            return False

        quote = quotes.get(coin_id)
        if quote is None:
            logger.warning(f"Price feed returned no price for {coin_id}")
            return False

        observed_at = self._clock()

        try:
            holdings = await self.store.load()
        except StoreIOError as e:
            logger.error(f"Could not persist price for {coin_id}: {e}")
            self.cache.update_one(coin_id, CacheEntry.from_quote(quote, observed_at))
            return True

        if not any(h.coin_id == coin_id for h in holdings):
            logger.info(f"{coin_id} was removed before its price arrived")
            return False

        self.cache.update_one(coin_id, CacheEntry.from_quote(quote, observed_at))

        updated: List = [
            h.with_quote(quote, observed_at) if h.coin_id == coin_id else h
            for h in holdings
        ]
        try:
            await self.store.save(updated)
        except StoreIOError as e:
            logger.error(f"Could not persist price for {coin_id}: {e}")

        logger.info(f"Fetched price for {coin_id}: ${quote.usd_value}")
        return True

    async def wait_for_fetches(self) -> None:
        """Wait for pending single-coin fetches."""
        await self._fetches.wait()

    def get_stats(self) -> Dict[str, Any]:
        """Scheduler statistics."""
        return {
            **self._stats,
            'running': self._running,
            'pending_fetches': self._fetches.active,
            'last_refresh_at': self.last_refresh_at,
            'batch_calls_started': self.rate_limiter.state.calls_started,
            'batch_calls_skipped': self.rate_limiter.state.calls_skipped,
        }
