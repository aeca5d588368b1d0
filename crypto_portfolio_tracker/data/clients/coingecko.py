"""CoinGecko API client implementation."""

from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, Optional
import logging

from ...core.exceptions import UpstreamUnavailableError
from ..api_client import BaseAPIClient, APIClientConfig
from ..models import INITIAL_RETRY_DELAY, MAX_RETRIES, DataSource, MarketQuote

logger = logging.getLogger(__name__)

COINGECKO_API_BASE = "https://api.coingecko.com/api/v3"
# coins/markets returns at most this many rows per page
MAX_PAGE_SIZE = 250


class CoinGeckoClient(BaseAPIClient):
    """CoinGecko API client for batched market data."""

    def __init__(self, api_key: Optional[str] = None, base_url: str = COINGECKO_API_BASE,
                 timeout: int = 30, max_retries: int = MAX_RETRIES,
                 retry_delay: float = INITIAL_RETRY_DELAY):
        """Initialize CoinGecko client.

        Args:
            api_key: Optional CoinGecko demo API key for higher rate limits
            base_url: API root
            timeout: Total request timeout in seconds
            max_retries: Retries after a 429 response
            retry_delay: First backoff delay, doubled on every retry
        """
        config = APIClientConfig(
            base_url=base_url,
            api_key=api_key,
            timeout=timeout,
            max_retries=max_retries,
            retry_delay=retry_delay,
            backoff_factor=2.0,
            headers={
                "Accept": "application/json",
                "User-Agent": "CryptoPortfolioTracker/0.1"
            }
        )

        super().__init__(config, DataSource.COINGECKO)

    def _get_auth_headers(self) -> Dict[str, str]:
        """Get authentication headers for CoinGecko API."""
        if self.config.api_key:
            return {"x-cg-demo-api-key": self.config.api_key}
        return {}

    async def get_market_data(self, coin_ids: Iterable[str]) -> Dict[str, MarketQuote]:
        """Get USD price, display name and symbol for several coins at once.

        Args:
            coin_ids: CoinGecko coin ids (e.g. ``bitcoin``, ``usd-coin``)

        Returns:
            Mapping of coin id to MarketQuote; ids CoinGecko does not know, or
            reports without a current price, are left out
        """
        ids = list(dict.fromkeys(coin_ids))
        if not ids:
            return {}

        if len(ids) > MAX_PAGE_SIZE:
            logger.warning(f"Requesting {len(ids)} coins; only the first "
                           f"{MAX_PAGE_SIZE} fit in one batch")
            ids = ids[:MAX_PAGE_SIZE]

        params = {
            "vs_currency": "usd",
            "ids": ",".join(ids),
            "sparkline": "false",
            "per_page": str(MAX_PAGE_SIZE),
        }

        response = await self._make_request("GET", "coins/markets", params=params)

        if not isinstance(response.data, list):
            raise UpstreamUnavailableError(
                f"Unexpected coins/markets payload: {type(response.data).__name__}"
            )

        quotes = {}
        for coin in response.data:
            quote = self._parse_market_row(coin)
            if quote is not None:
                quotes[quote.coin_id] = quote

        logger.debug(f"Fetched {len(quotes)}/{len(ids)} prices from CoinGecko")
        return quotes

    @staticmethod
    def _parse_market_row(coin: Dict[str, Any]) -> Optional[MarketQuote]:
        """Convert a coins/markets row, skipping rows without a usable price."""
        if not isinstance(coin, dict) or not coin.get('id'):
            return None

        price = coin.get('current_price')
        if price is None or isinstance(price, bool):
            return None

        try:
            usd_value = Decimal(str(price))
        except InvalidOperation:
            return None

        if not usd_value.is_finite() or usd_value < 0:
            return None

        return MarketQuote(
            coin_id=coin['id'],
            usd_value=usd_value,
            name=coin.get('name') or coin['id'],
            symbol=coin.get('symbol') or '?',
        )
