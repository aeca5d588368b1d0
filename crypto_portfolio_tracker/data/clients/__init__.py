"""Price feed API clients."""

from .coingecko import CoinGeckoClient

__all__ = ['CoinGeckoClient']
