"""In-memory price cache shared by the scheduler and the portfolio view."""

import time
from types import MappingProxyType
from typing import Callable, Dict, Iterable, Mapping, Optional, Any
import logging

from .models import CACHE_DURATION, CacheEntry

logger = logging.getLogger(__name__)


class PriceCache:
    """Coin id to last known price, with copy-on-write updates.

    Every write builds a new dict and swaps the reference in one assignment,
    so a mapping handed out by ``read()`` is never mutated afterwards. Readers
    take no lock and never observe a half-applied update.
    """

    def __init__(self, max_age: float = CACHE_DURATION,
                 clock: Callable[[], float] = time.time):
        """Initialize price cache.

        Args:
            max_age: Seconds an entry stays fresh
            clock: Wall-clock time source, comparable with ``observed_at``
        """
        self.max_age = max_age
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._stats = {
            'replacements': 0,
            'single_updates': 0,
            'removals': 0,
        }

    def read(self) -> Mapping[str, CacheEntry]:
        """Current snapshot, in insertion order. Read-only."""
        return MappingProxyType(self._entries)

    def get(self, coin_id: str) -> Optional[CacheEntry]:
        """Entry for a coin regardless of age."""
        return self._entries.get(coin_id)

    def is_fresh(self, coin_id: str, now: Optional[float] = None) -> bool:
        entry = self._entries.get(coin_id)
        if entry is None:
            return False
        return entry.is_fresh(self._clock() if now is None else now, self.max_age)

    def get_fresh(self, coin_id: str, now: Optional[float] = None) -> Optional[CacheEntry]:
        """Entry for a coin only if it is still fresh."""
        if self.is_fresh(coin_id, now):
            return self._entries[coin_id]
        return None

    def replace_all(self, entries: Iterable[CacheEntry]) -> None:
        """Swap in a whole new set of entries."""
        new_entries = {entry.coin_id: entry for entry in entries}
        self._entries = new_entries
        self._stats['replacements'] += 1
        logger.debug(f"Price cache replaced with {len(new_entries)} entries")

    def update_one(self, coin_id: str, entry: CacheEntry) -> None:
        """Replace a single coin's entry, leaving all others untouched."""
        if entry.coin_id != coin_id:
            raise ValueError(f"Entry for {entry.coin_id!r} cannot be stored under {coin_id!r}")

        new_entries = dict(self._entries)
        new_entries[coin_id] = entry
        self._entries = new_entries
        self._stats['single_updates'] += 1

    def remove(self, coin_id: str) -> bool:
        """Drop a coin's entry.

        Returns:
            True if the coin had an entry
        """
        if coin_id not in self._entries:
            return False

        new_entries = dict(self._entries)
        del new_entries[coin_id]
        self._entries = new_entries
        self._stats['removals'] += 1
        return True

    def clear(self) -> int:
        """Remove all entries.

        Returns:
            Number of entries cleared
        """
        count = len(self._entries)
        self._entries = {}
        return count

    def stats(self) -> Dict[str, Any]:
        """Cache statistics."""
        now = self._clock()
        fresh = sum(1 for entry in self._entries.values() if entry.is_fresh(now, self.max_age))
        return {
            **self._stats,
            'size': len(self._entries),
            'fresh': fresh,
            'stale': len(self._entries) - fresh,
        }

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, coin_id: object) -> bool:
        return coin_id in self._entries
