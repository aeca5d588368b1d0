"""Portfolio stores: durable list of holdings behind ``load()`` / ``save()``."""

import sqlite3
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Any, List, Sequence, Union
import logging

import aiosqlite

from ..core.exceptions import StoreIOError
from .models import HoldingEntry, LastPrice, to_decimal

logger = logging.getLogger(__name__)


class PortfolioStore(ABC):
    """Source of truth for which coins are held and in what amounts.

    ``save`` replaces the whole list. Callers read-modify-write, so entries
    they did not touch must round-trip unchanged.
    """

    @abstractmethod
    async def load(self) -> List[HoldingEntry]:
        """Return the holdings in stored order.

        Raises:
            StoreIOError: the store cannot be read
        """

    @abstractmethod
    async def save(self, holdings: Sequence[HoldingEntry]) -> None:
        """Replace the stored holdings.

        Raises:
            StoreIOError: the store cannot be written
        """

    async def initialize(self) -> None:
        """Prepare the backing storage."""

    async def close(self) -> None:
        """Release the backing storage."""


class MemoryPortfolioStore(PortfolioStore):
    """Process-local store; keeps serialized copies so callers never share objects."""

    def __init__(self, holdings: Sequence[HoldingEntry] = ()):
        self._rows: List[Dict[str, Any]] = [h.to_dict() for h in holdings]
        self.save_count = 0

    async def load(self) -> List[HoldingEntry]:
        return [HoldingEntry.from_dict(row) for row in self._rows]

    async def save(self, holdings: Sequence[HoldingEntry]) -> None:
        self._rows = [h.to_dict() for h in holdings]
        self.save_count += 1


class SQLitePortfolioStore(PortfolioStore):
    """Stores the holdings list in a SQLite table."""

    def __init__(self, db_path: Union[str, Path] = "portfolio.db"):
        """Initialize SQLite store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self._initialized = False

    async def initialize(self) -> None:
        """Create the database file and holdings table."""
        if self._initialized:
            return

        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

            async with aiosqlite.connect(self.db_path) as db:
                await db.execute("""
                    CREATE TABLE IF NOT EXISTS holdings (
                        position INTEGER NOT NULL,
                        coin_id TEXT PRIMARY KEY,
                        amount TEXT NOT NULL,
                        name TEXT NOT NULL,
                        symbol TEXT NOT NULL,
                        last_price_usd TEXT,
                        last_price_at REAL
                    )
                """)
                await db.commit()
        except (sqlite3.Error, OSError) as e:
            raise StoreIOError(f"Failed to initialize portfolio database {self.db_path}: {e}")

        self._initialized = True
        logger.info(f"Portfolio database initialized at {self.db_path}")

    async def load(self) -> List[HoldingEntry]:
        await self.initialize()

        try:
            async with aiosqlite.connect(self.db_path) as db:
                db.row_factory = aiosqlite.Row
                async with db.execute(
                    "SELECT * FROM holdings ORDER BY position"
                ) as cursor:
                    rows = await cursor.fetchall()
        except (sqlite3.Error, OSError) as e:
            raise StoreIOError(f"Failed to read portfolio: {e}")

        try:
            return [self._row_to_holding(row) for row in rows]
        except (ValueError, TypeError) as e:
            raise StoreIOError(f"Corrupt portfolio row: {e}")

    async def save(self, holdings: Sequence[HoldingEntry]) -> None:
        await self.initialize()

        params = [
            (
                position,
                h.coin_id,
                str(h.amount),
                h.name,
                h.symbol,
                str(h.last_price.usd) if h.last_price else None,
                h.last_price.timestamp if h.last_price else None,
            )
            for position, h in enumerate(holdings)
        ]

        try:
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute("DELETE FROM holdings")
                await db.executemany("""
                    INSERT INTO holdings (
                        position, coin_id, amount, name, symbol,
                        last_price_usd, last_price_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """, params)
                await db.commit()
        except (sqlite3.Error, OSError) as e:
            raise StoreIOError(f"Failed to save portfolio: {e}")

        logger.debug(f"Saved {len(params)} holdings")

    @staticmethod
    def _row_to_holding(row: aiosqlite.Row) -> HoldingEntry:
        last_price = None
        if row['last_price_usd'] is not None:
            last_price = LastPrice(
                usd=to_decimal(row['last_price_usd']),
                timestamp=float(row['last_price_at'] or 0),
            )

        return HoldingEntry(
            coin_id=row['coin_id'],
            amount=row['amount'],
            name=row['name'],
            symbol=row['symbol'],
            last_price=last_price,
        )
