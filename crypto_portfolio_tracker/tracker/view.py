"""Portfolio view: joins holdings with cached prices and owns holding edits."""

import asyncio
import re
import time
from dataclasses import dataclass, field
from decimal import Decimal, localcontext
from typing import Any, Callable, Dict, List, Optional
import logging

from ..core.exceptions import (
    HoldingNotFoundError,
    InvalidHoldingError,
    PriceFeedError,
    StoreIOError,
)
from ..data.cache import PriceCache
from ..data.models import CacheEntry, HoldingEntry
from ..data.store import PortfolioStore
from .formatting import (
    EXACT_CONTEXT,
    NOT_AVAILABLE,
    format_price,
    format_total,
    format_value,
    holding_value,
)
from .pacing import RequestPacer
from .scheduler import RefreshScheduler
from .tasks import BackgroundTasks

logger = logging.getLogger(__name__)

COIN_ID_PATTERN = re.compile(r"^[a-z0-9][a-z0-9._-]*$")


@dataclass
class PortfolioRow:
    """One holding as presented to a caller."""

    coin_id: str
    name: str
    symbol: str
    amount: Decimal
    price: str
    value: str
    cached: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'coin': self.coin_id,
            'name': self.name,
            'symbol': self.symbol,
            'amount': format(self.amount, 'f'),
            'price': self.price,
            'value': self.value,
            'cached': self.cached,
        }


@dataclass
class PortfolioSnapshot:
    """Rows plus the total of every priced row."""

    holdings: List[PortfolioRow] = field(default_factory=list)
    total_value: str = "0.00"

    @property
    def priced_count(self) -> int:
        return sum(1 for row in self.holdings if row.cached)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'holdings': [row.to_dict() for row in self.holdings],
            'totalValue': self.total_value,
        }


@dataclass(frozen=True)
class CoinValuation:
    """Fresh price of a held coin and the value of the holding."""

    coin_id: str
    price: Decimal
    value: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'coin': self.coin_id,
            'price': format(self.price, 'f'),
            'value': self.value,
        }


def normalize_coin_id(coin_id: Any) -> str:
    """Validate a coin id and return it in canonical lowercase form.

    Raises:
        InvalidHoldingError: the id is empty or not a plausible coin id
    """
    if not isinstance(coin_id, str):
        raise InvalidHoldingError(f"Coin id must be a string, got {type(coin_id).__name__}")

    normalized = coin_id.strip().lower()
    if not normalized:
        raise InvalidHoldingError("Coin id must not be empty")
    if not COIN_ID_PATTERN.match(normalized):
        raise InvalidHoldingError(f"Invalid coin id: {coin_id!r}")
    return normalized


def parse_amount(amount: Any) -> Decimal:
    """Parse a holding amount; it must be a finite number above zero.

    Raises:
        InvalidHoldingError: the amount is not numeric or not positive
    """
    if isinstance(amount, bool):
        raise InvalidHoldingError(f"Invalid amount: {amount!r}")

    try:
        value = Decimal(str(amount).strip())
    except ArithmeticError:
        raise InvalidHoldingError(f"Amount must be a number, got {amount!r}")

    if not value.is_finite() or value <= 0:
        raise InvalidHoldingError(f"Amount must be greater than zero, got {amount!r}")
    return value


class PortfolioView:
    """Read path over holdings and cached prices, plus holding mutations.

    ``get_portfolio_view`` answers from the store and the cache alone and
    never waits on the network. It then starts a detached reconciliation
    pass that repairs stale or missing prices for the next read.

    Concurrent mutations and reconciliation passes each read-modify-write
    the whole holdings list; the last writer wins.
    """

    def __init__(self, store: PortfolioStore, cache: PriceCache,
                 scheduler: RefreshScheduler, pacer: Optional[RequestPacer] = None,
                 clock: Callable[[], float] = time.time):
        """Initialize portfolio view.

        Args:
            store: Portfolio store
            cache: Price cache written by the scheduler
            scheduler: Refresh scheduler, used for gated batch calls and
                on-demand single-coin fetches
            pacer: Delay applied before each per-holding update during
                reconciliation
            clock: Wall-clock source for freshness checks
        """
        self.store = store
        self.cache = cache
        self.scheduler = scheduler
        self.pacer = pacer or RequestPacer()
        self._clock = clock

        self._background = BackgroundTasks("portfolio-view")
        self._reconcile_task: Optional[asyncio.Task] = None
        self.reconcile_runs = 0

    async def get_portfolio_view(self, reconcile: bool = True) -> PortfolioSnapshot:
        """Current holdings joined with cached prices.

        Holdings without a cache entry are shown with ``N/A`` price and value
        and contribute nothing to the total. An unreadable store yields an
        empty portfolio.

        Args:
            reconcile: Start a background reconciliation after answering
        """
        try:
            holdings = await self.store.load()
        except StoreIOError as e:
            logger.error(f"Error reading portfolio: {e}")
            holdings = []

        prices = self.cache.read()
        rows = []
        values = []

        for holding in holdings:
            entry = prices.get(holding.coin_id)
            if entry is not None:
                value = holding_value(holding.amount, entry.usd_value)
                values.append(value)
                rows.append(PortfolioRow(
                    coin_id=holding.coin_id,
                    name=entry.name,
                    symbol=entry.symbol.upper(),
                    amount=holding.amount,
                    price=format_price(entry.usd_value),
                    value=format_value(value),
                    cached=True,
                ))
            else:
                rows.append(PortfolioRow(
                    coin_id=holding.coin_id,
                    name=holding.name or holding.coin_id,
                    symbol=holding.symbol or NOT_AVAILABLE,
                    amount=holding.amount,
                    price=NOT_AVAILABLE,
                    value=NOT_AVAILABLE,
                ))

        snapshot = PortfolioSnapshot(holdings=rows, total_value=format_total(values))

        if reconcile:
            self.schedule_reconciliation()

        return snapshot

    def schedule_reconciliation(self) -> Optional[asyncio.Task]:
        """Start a reconciliation pass unless one is already running."""
        if self._reconcile_task is not None and not self._reconcile_task.done():
            logger.debug("Reconciliation already in progress")
            return None

        self._reconcile_task = self._background.spawn(self.reconcile(), name="reconcile")
        return self._reconcile_task

    async def reconcile(self) -> bool:
        """Repair missing or stale cache entries from one batch call.

        Each holding that needs a new price waits one pacing interval before
        it is updated. The store is written only if a holding changed.

        Returns:
            True if any holding was updated
        """
        self.reconcile_runs += 1

        try:
            holdings = await self.store.load()
        except StoreIOError as e:
            logger.error(f"Reconciliation aborted, portfolio unreadable: {e}")
            return False

        if not holdings:
            return False

        try:
            quotes = await self.scheduler.fetch_batch([h.coin_id for h in holdings])
        except PriceFeedError as e:
            logger.error(f"Error fetching live data in background update: {e}")
            return False

        if not quotes:
            logger.debug("Reconciliation found no live data to apply")
            return False

        fresh_entries: Dict[str, CacheEntry] = {}
        updated: List[HoldingEntry] = []

        for holding in holdings:
            if not self.cache.is_fresh(holding.coin_id, self._clock()):
                await self.pacer.wait()

                quote = quotes.get(holding.coin_id)
                if quote is not None:
                    observed_at = self._clock()
                    holding = holding.with_quote(quote, observed_at)
                    fresh_entries[holding.coin_id] = CacheEntry.from_quote(quote, observed_at)

            updated.append(holding)

        if not fresh_entries:
            return False

        try:
            await self.store.save(updated)
        except StoreIOError as e:
            logger.error(f"Reconciled prices could not be persisted: {e}")

        current = self.cache.read()
        entries = []
        for holding in updated:
            entry = fresh_entries.get(holding.coin_id) or current.get(holding.coin_id)
            if entry is not None:
                entries.append(entry)
        self.cache.replace_all(entries)

        logger.info(f"Background update completed: {len(fresh_entries)} holdings repriced")
        return True

    async def get_price(self, coin_id: str) -> Optional[CoinValuation]:
        """Fresh price and holding value of a held coin.

        Returns:
            None if the coin is not held or has no fresh cache entry
        """
        try:
            coin_id = normalize_coin_id(coin_id)
        except InvalidHoldingError:
            return None

        entry = self.cache.get_fresh(coin_id, self._clock())
        if entry is None:
            return None

        try:
            holdings = await self.store.load()
        except StoreIOError as e:
            logger.error(f"Error reading portfolio: {e}")
            return None

        for holding in holdings:
            if holding.coin_id == coin_id:
                value = holding_value(holding.amount, entry.usd_value)
                return CoinValuation(coin_id=coin_id, price=entry.usd_value,
                                     value=format_value(value))
        return None

    async def add_holding(self, coin_id: str, amount: Any) -> List[HoldingEntry]:
        """Add ``amount`` of a coin, merging into an existing holding.

        A price fetch for the coin is requested after the store is written.

        Returns:
            The saved holdings list

        Raises:
            InvalidHoldingError: bad coin id or amount
            StoreIOError: the store could not be read or written
        """
        coin_id = normalize_coin_id(coin_id)
        amount = parse_amount(amount)

        holdings = await self.store.load()

        for holding in holdings:
            if holding.coin_id == coin_id:
                with localcontext(EXACT_CONTEXT):
                    holding.amount += amount
                break
        else:
            holdings.append(HoldingEntry(coin_id=coin_id, amount=amount,
                                         name=coin_id, symbol="?"))

        await self.store.save(holdings)
        logger.info(f"Added {amount} {coin_id} to portfolio")

        self.notify_holding_added(coin_id)
        return holdings

    async def remove_holding(self, coin_id: str) -> List[HoldingEntry]:
        """Remove a coin from the portfolio and drop its cache entry.

        Returns:
            The saved holdings list

        Raises:
            HoldingNotFoundError: the coin is not held; nothing is written
            StoreIOError: the store could not be read or written
        """
        try:
            coin_id = normalize_coin_id(coin_id)
        except InvalidHoldingError:
            raise HoldingNotFoundError(str(coin_id))

        holdings = await self.store.load()
        remaining = [h for h in holdings if h.coin_id != coin_id]

        if len(remaining) == len(holdings):
            raise HoldingNotFoundError(coin_id)

        await self.store.save(remaining)
        logger.info(f"Removed {coin_id} from portfolio")

        self.notify_holding_removed(coin_id)
        return remaining

    def notify_holding_added(self, coin_id: str) -> asyncio.Task:
        return self.scheduler.request_coin_fetch(coin_id)

    def notify_holding_removed(self, coin_id: str) -> None:
        self.cache.remove(coin_id)

    async def wait_for_background(self) -> None:
        """Wait for reconciliation and on-demand fetches to finish."""
        await self._background.wait()
        await self.scheduler.wait_for_fetches()

    async def close(self) -> None:
        """Cancel outstanding background work."""
        await self._background.cancel_all()
