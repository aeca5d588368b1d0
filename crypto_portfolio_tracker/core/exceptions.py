"""Error taxonomy for the price cache and portfolio tracker."""

from typing import Optional


class TrackerError(Exception):
    """Base exception for tracker errors."""

    def __init__(self, message: str, code: str = "TRACKER_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class PriceFeedError(TrackerError):
    """Raised when the upstream price feed cannot answer a request."""

    def __init__(self, message: str, code: str = "PRICE_FEED_ERROR"):
        super().__init__(message, code=code)


class RateLimitedError(PriceFeedError):
    """Raised when the price feed keeps answering with HTTP 429.

    Retryable: the API client backs off and retries a bounded number of
    times before surfacing this error.
    """

    def __init__(self, message: str = "Rate limited by price feed", retries: int = 0):
        self.retries = retries
        super().__init__(message, code="RATE_LIMITED")


class UpstreamUnavailableError(PriceFeedError):
    """Raised for non-retryable price feed failures (bad status, network, timeout)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message, code="UPSTREAM_UNAVAILABLE")


class StoreIOError(TrackerError):
    """Raised when the portfolio store cannot be read or written."""

    def __init__(self, message: str):
        super().__init__(message, code="STORE_IO_ERROR")


class InvalidHoldingError(TrackerError, ValueError):
    """Raised when a holding request fails input validation."""

    def __init__(self, message: str):
        super().__init__(message, code="VALIDATION_ERROR")


class HoldingNotFoundError(TrackerError, LookupError):
    """Raised when a coin is not present in the portfolio."""

    def __init__(self, coin_id: str):
        self.coin_id = coin_id
        super().__init__(f"Coin '{coin_id}' not found in portfolio.", code="NOT_FOUND")
