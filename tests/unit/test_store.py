"""Tests for portfolio stores."""

import pytest
from decimal import Decimal

import aiosqlite

from crypto_portfolio_tracker.core.exceptions import StoreIOError
from crypto_portfolio_tracker.data.models import HoldingEntry, LastPrice
from crypto_portfolio_tracker.data.store import MemoryPortfolioStore, SQLitePortfolioStore


@pytest.fixture
async def sqlite_store(temp_dir):
    store = SQLitePortfolioStore(temp_dir / "data" / "portfolio.db")
    await store.initialize()
    yield store
    await store.close()


class TestMemoryPortfolioStore:
    """Test the in-memory store."""

    @pytest.mark.asyncio
    async def test_load_returns_copies(self, sample_holdings):
        store = MemoryPortfolioStore(sample_holdings)

        loaded = await store.load()
        loaded[0].amount = Decimal("99")

        assert (await store.load())[0].amount == Decimal("0.5")

    @pytest.mark.asyncio
    async def test_save_replaces_list(self, sample_holdings):
        store = MemoryPortfolioStore(sample_holdings)

        await store.save(sample_holdings[1:])

        assert [h.coin_id for h in await store.load()] == ["ethereum"]
        assert store.save_count == 1


class TestSQLitePortfolioStore:
    """Test the SQLite store."""

    @pytest.mark.asyncio
    async def test_empty_database(self, sqlite_store):
        assert await sqlite_store.load() == []

    @pytest.mark.asyncio
    async def test_save_and_load_preserves_order_and_prices(self, sqlite_store, sample_holdings):
        holdings = [sample_holdings[1], sample_holdings[0]]

        await sqlite_store.save(holdings)
        loaded = await sqlite_store.load()

        assert [h.coin_id for h in loaded] == ["ethereum", "bitcoin"]
        assert loaded == holdings
        assert loaded[1].last_price == LastPrice(usd=Decimal("48000"),
                                                 timestamp=sample_holdings[0].last_price.timestamp)
        assert loaded[0].last_price is None

    @pytest.mark.asyncio
    async def test_amount_precision_survives(self, sqlite_store):
        holding = HoldingEntry(coin_id="bitcoin", amount=Decimal("0.123456789012345678"))

        await sqlite_store.save([holding])

        assert (await sqlite_store.load())[0].amount == Decimal("0.123456789012345678")

    @pytest.mark.asyncio
    async def test_save_empty_list(self, sqlite_store, sample_holdings):
        await sqlite_store.save(sample_holdings)
        await sqlite_store.save([])

        assert await sqlite_store.load() == []

    @pytest.mark.asyncio
    async def test_corrupt_row(self, sqlite_store):
        async with aiosqlite.connect(sqlite_store.db_path) as db:
            await db.execute(
                "INSERT INTO holdings (position, coin_id, amount, name, symbol) "
                "VALUES (0, 'bitcoin', 'lots', 'Bitcoin', 'btc')"
            )
            await db.commit()

        with pytest.raises(StoreIOError):
            await sqlite_store.load()

    @pytest.mark.asyncio
    async def test_unopenable_database(self, temp_dir):
        store = SQLitePortfolioStore(temp_dir)

        with pytest.raises(StoreIOError):
            await store.load()
