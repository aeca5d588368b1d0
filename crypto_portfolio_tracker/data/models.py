"""Data models for holdings, market quotes and cached prices."""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Optional

# A cached price is fresh for this many seconds after it was observed.
CACHE_DURATION = 5 * 60
# Minimum spacing between two batch calls to the price feed.
API_CALL_INTERVAL = 30
# Delay between per-holding updates during a reconciliation pass.
RECONCILE_PACING_DELAY = 3.0
# Retries after an HTTP 429, and the first backoff delay (doubled per retry).
MAX_RETRIES = 5
INITIAL_RETRY_DELAY = 1.0


class DataSource(Enum):
    """Supported data sources."""
    COINGECKO = "coingecko"


def to_decimal(value: Any) -> Decimal:
    """Convert a JSON/DB scalar to Decimal without float artefacts."""
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Not a decimal value: {value!r}") from e


@dataclass(frozen=True)
class LastPrice:
    """Last observed USD price of a holding."""

    usd: Decimal
    timestamp: float

    def to_dict(self) -> Dict[str, Any]:
        return {'usd': str(self.usd), 'timestamp': self.timestamp}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional['LastPrice']:
        """Parse a stored price; placeholders like ``"N/A"`` yield None."""
        if not data:
            return None
        try:
            usd = to_decimal(data['usd'])
            timestamp = float(data.get('timestamp', 0))
        except (KeyError, ValueError, TypeError):
            return None
        if not usd.is_finite():
            return None
        return cls(usd=usd, timestamp=timestamp)


@dataclass
class HoldingEntry:
    """One holding in the portfolio."""

    coin_id: str
    amount: Decimal
    name: str = ""
    symbol: str = "?"
    last_price: Optional[LastPrice] = None

    def __post_init__(self):
        """Normalize numeric fields."""
        self.amount = to_decimal(self.amount)
        if self.amount < 0:
            raise ValueError(f"Holding amount must not be negative: {self.amount}")
        if not self.name:
            self.name = self.coin_id

    def with_quote(self, quote: 'MarketQuote', observed_at: float) -> 'HoldingEntry':
        """Return a copy of this holding carrying the quote's price and names."""
        return replace(
            self,
            name=quote.name,
            symbol=quote.symbol,
            last_price=LastPrice(usd=quote.usd_value, timestamp=observed_at),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'coin': self.coin_id,
            'amount': str(self.amount),
            'name': self.name,
            'symbol': self.symbol,
            'lastPrice': self.last_price.to_dict() if self.last_price else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'HoldingEntry':
        """Create instance from dictionary."""
        return cls(
            coin_id=data['coin'],
            amount=data['amount'],
            name=data.get('name') or data['coin'],
            symbol=data.get('symbol') or '?',
            last_price=LastPrice.from_dict(data.get('lastPrice')),
        )


@dataclass(frozen=True)
class MarketQuote:
    """Price feed result for a single coin."""

    coin_id: str
    usd_value: Decimal
    name: str
    symbol: str


@dataclass(frozen=True)
class CacheEntry:
    """Unit of the in-memory price cache."""

    coin_id: str
    usd_value: Decimal
    observed_at: float
    name: str
    symbol: str

    def age(self, now: float) -> float:
        return now - self.observed_at

    def is_fresh(self, now: float, max_age: float = CACHE_DURATION) -> bool:
        """Fresh entries are younger than ``max_age``; stale ones stay usable."""
        return self.age(now) < max_age

    @classmethod
    def from_quote(cls, quote: MarketQuote, observed_at: float) -> 'CacheEntry':
        return cls(
            coin_id=quote.coin_id,
            usd_value=quote.usd_value,
            observed_at=observed_at,
            name=quote.name,
            symbol=quote.symbol,
        )

    @classmethod
    def from_holding(cls, holding: HoldingEntry) -> Optional['CacheEntry']:
        """Rebuild a cache entry from a persisted holding, if it has a price."""
        if holding.last_price is None:
            return None
        return cls(
            coin_id=holding.coin_id,
            usd_value=holding.last_price.usd,
            observed_at=holding.last_price.timestamp,
            name=holding.name,
            symbol=holding.symbol,
        )


@dataclass
class RefreshState:
    """Process-wide record of the most recent batch price feed call."""

    last_batch_call_at: Optional[float] = None
    calls_started: int = 0
    calls_skipped: int = 0


@dataclass
class APIResponse:
    """Wrapper for API responses with metadata."""

    data: Any
    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    response_time: float = 0.0
    data_source: DataSource = DataSource.COINGECKO
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_success(self) -> bool:
        """Check if response was successful."""
        return 200 <= self.status_code < 300
