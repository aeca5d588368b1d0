"""Tests for data models."""

import pytest
from decimal import Decimal

from crypto_portfolio_tracker.data.models import (
    CACHE_DURATION,
    APIResponse,
    CacheEntry,
    DataSource,
    HoldingEntry,
    LastPrice,
    MarketQuote,
    to_decimal,
)


@pytest.fixture
def bitcoin_quote():
    return MarketQuote(coin_id="bitcoin", usd_value=Decimal("50000.5"),
                       name="Bitcoin", symbol="btc")


class TestToDecimal:
    """Test decimal conversion of stored and upstream scalars."""

    def test_float_has_no_binary_artefacts(self):
        assert to_decimal(0.1) == Decimal("0.1")

    def test_string_and_int(self):
        assert to_decimal("12.50") == Decimal("12.50")
        assert to_decimal(3) == Decimal("3")

    def test_invalid_value(self):
        with pytest.raises(ValueError):
            to_decimal("not-a-number")


class TestLastPrice:
    """Test LastPrice parsing."""

    def test_round_trip(self):
        price = LastPrice(usd=Decimal("123.45"), timestamp=1700000000.0)
        assert LastPrice.from_dict(price.to_dict()) == price

    @pytest.mark.parametrize("data", [None, {}, {"usd": "N/A"}, {"usd": "NaN", "timestamp": 1}])
    def test_placeholder_prices_are_absent(self, data):
        assert LastPrice.from_dict(data) is None


class TestHoldingEntry:
    """Test HoldingEntry model."""

    def test_defaults(self):
        holding = HoldingEntry(coin_id="solana", amount="1.5")

        assert holding.amount == Decimal("1.5")
        assert holding.name == "solana"
        assert holding.symbol == "?"
        assert holding.last_price is None

    def test_negative_amount_rejected(self):
        with pytest.raises(ValueError):
            HoldingEntry(coin_id="bitcoin", amount="-1")

    def test_to_dict_uses_stored_record_shape(self):
        holding = HoldingEntry(
            coin_id="bitcoin", amount=Decimal("0.25"), name="Bitcoin", symbol="btc",
            last_price=LastPrice(usd=Decimal("50000"), timestamp=10.0),
        )

        assert holding.to_dict() == {
            'coin': 'bitcoin',
            'amount': '0.25',
            'name': 'Bitcoin',
            'symbol': 'btc',
            'lastPrice': {'usd': '50000', 'timestamp': 10.0},
        }

    def test_from_dict_tolerates_missing_fields(self):
        holding = HoldingEntry.from_dict({'coin': 'cardano', 'amount': 100,
                                          'lastPrice': {'usd': 'N/A'}})

        assert holding.name == "cardano"
        assert holding.symbol == "?"
        assert holding.amount == Decimal("100")
        assert holding.last_price is None

    def test_with_quote_returns_updated_copy(self, bitcoin_quote):
        holding = HoldingEntry(coin_id="bitcoin", amount=Decimal("2"))

        updated = holding.with_quote(bitcoin_quote, observed_at=42.0)

        assert updated is not holding
        assert updated.amount == Decimal("2")
        assert updated.name == "Bitcoin"
        assert updated.symbol == "btc"
        assert updated.last_price == LastPrice(usd=Decimal("50000.5"), timestamp=42.0)
        assert holding.last_price is None


class TestCacheEntry:
    """Test CacheEntry freshness and construction."""

    def test_freshness_boundary(self, bitcoin_quote):
        entry = CacheEntry.from_quote(bitcoin_quote, observed_at=1000.0)

        assert entry.is_fresh(1000.0)
        assert entry.is_fresh(1000.0 + CACHE_DURATION - 1)
        assert not entry.is_fresh(1000.0 + CACHE_DURATION)
        assert entry.age(1010.0) == 10.0

    def test_custom_max_age(self, bitcoin_quote):
        entry = CacheEntry.from_quote(bitcoin_quote, observed_at=0.0)
        assert not entry.is_fresh(61.0, max_age=60)

    def test_from_holding(self):
        priced = HoldingEntry(coin_id="bitcoin", amount=1, name="Bitcoin", symbol="btc",
                              last_price=LastPrice(usd=Decimal("1"), timestamp=5.0))
        unpriced = HoldingEntry(coin_id="ethereum", amount=1)

        entry = CacheEntry.from_holding(priced)
        assert entry.usd_value == Decimal("1")
        assert entry.observed_at == 5.0
        assert entry.name == "Bitcoin"
        assert CacheEntry.from_holding(unpriced) is None


class TestAPIResponse:
    """Test APIResponse model."""

    def test_is_success(self):
        assert APIResponse(data=[], status_code=200).is_success
        assert not APIResponse(data=None, status_code=429).is_success
        assert APIResponse(data=[], status_code=200).data_source == DataSource.COINGECKO
