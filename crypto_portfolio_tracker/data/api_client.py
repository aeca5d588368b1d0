"""Base API client framework with a batch-call gate and rate-limit backoff."""

import asyncio
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, TypeVar
from dataclasses import dataclass, field
import logging

import aiohttp

from ..core.exceptions import RateLimitedError, UpstreamUnavailableError
from .models import (
    API_CALL_INTERVAL,
    INITIAL_RETRY_DELAY,
    MAX_RETRIES,
    APIResponse,
    DataSource,
    MarketQuote,
    RefreshState,
)

logger = logging.getLogger(__name__)

T = TypeVar('T')

HTTP_TOO_MANY_REQUESTS = 429


@dataclass
class APIClientConfig:
    """Configuration for API clients."""

    base_url: str
    api_key: Optional[str] = None
    timeout: int = 30
    max_retries: int = MAX_RETRIES
    retry_delay: float = INITIAL_RETRY_DELAY
    backoff_factor: float = 2.0
    headers: Dict[str, str] = field(default_factory=dict)

    def retry_delays(self):
        """Sleep durations before each retry: 1, 2, 4, 8, 16 s by default."""
        return [self.retry_delay * (self.backoff_factor ** n) for n in range(self.max_retries)]


class RateLimiter:
    """Minimum-interval gate for batch price feed calls.

    A call is started only if no other call started within ``min_interval``
    seconds; otherwise the attempt is skipped, not queued.
    """

    def __init__(self, min_interval: float = API_CALL_INTERVAL,
                 clock: Callable[[], float] = time.monotonic):
        """Initialize rate limiter.

        Args:
            min_interval: Minimum seconds between the start of two calls
            clock: Monotonic time source
        """
        self.min_interval = min_interval
        self.state = RefreshState()
        self._clock = clock

    def seconds_until_ready(self) -> float:
        """Seconds until the next call would be allowed."""
        last = self.state.last_batch_call_at
        if last is None:
            return 0.0
        return max(0.0, self.min_interval - (self._clock() - last))

    def try_acquire(self) -> bool:
        """Check the interval and claim the slot in one step.

        Contains no suspension point, so concurrent triggers on the same event
        loop cannot both pass the check.
        """
        now = self._clock()
        last = self.state.last_batch_call_at
        if last is not None and now - last < self.min_interval:
            self.state.calls_skipped += 1
            return False

        self.state.last_batch_call_at = now
        self.state.calls_started += 1
        return True

    async def attempt(self, call: Callable[[], Awaitable[T]]) -> Optional[T]:
        """Run ``call`` if the interval allows it.

        Returns:
            The call's result, or None when the attempt was skipped
        """
        if not self.try_acquire():
            logger.debug(
                f"Skipping price feed call, next slot in {self.seconds_until_ready():.1f}s"
            )
            return None

        return await call()


class BaseAPIClient(ABC):
    """Base class for price feed API clients."""

    def __init__(self, config: APIClientConfig, data_source: DataSource):
        """Initialize API client.

        Args:
            config: API client configuration
            data_source: Data source identifier
        """
        self.config = config
        self.data_source = data_source
        self._session: Optional[aiohttp.ClientSession] = None
        self._sleep = asyncio.sleep
        self._request_count = 0
        self._rate_limited_count = 0

    async def __aenter__(self):
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.stop()

    async def start(self):
        """Start the API client session."""
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self.config.timeout)
            self._session = aiohttp.ClientSession(
                timeout=timeout,
                headers=self.config.headers
            )
            logger.info(f"Started {self.data_source.value} API client")

    async def stop(self):
        """Stop the API client session."""
        if self._session:
            await self._session.close()
            self._session = None
            logger.info(f"Stopped {self.data_source.value} API client")

    async def _make_request(self, method: str, endpoint: str,
                            params: Optional[Dict[str, Any]] = None,
                            headers: Optional[Dict[str, str]] = None) -> APIResponse:
        """Make an HTTP request, backing off while the upstream answers 429.

        Only rate-limit responses are retried, with doubling delays. Any other
        failure is raised immediately as UpstreamUnavailableError.

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: API endpoint
            params: Query parameters
            headers: Additional headers

        Returns:
            APIResponse with response data and metadata

        Raises:
            RateLimitedError: still rate limited after ``max_retries`` retries
            UpstreamUnavailableError: non-2xx status, network error or timeout
        """
        if not self._session:
            await self.start()

        url = f"{self.config.base_url.rstrip('/')}/{endpoint.lstrip('/')}"
        request_headers = {**self.config.headers}
        if headers:
            request_headers.update(headers)

        if self.config.api_key:
            request_headers.update(self._get_auth_headers())

        delays = self.config.retry_delays()
        attempt = 0

        while True:
            try:
                return await self._send_once(method, url, params, request_headers)
            except RateLimitedError:
                self._rate_limited_count += 1
                if attempt >= len(delays):
                    raise RateLimitedError(
                        f"{method} {url} still rate limited after {attempt} retries",
                        retries=attempt,
                    )

                delay = delays[attempt]
                attempt += 1
                logger.warning(f"Rate limit hit. Retrying in {delay:g} seconds "
                               f"(retry {attempt}/{len(delays)})")
                await self._sleep(delay)

    async def _send_once(self, method: str, url: str,
                         params: Optional[Dict[str, Any]],
                         headers: Dict[str, str]) -> APIResponse:
        """Send a single request and translate failures into tracker errors."""
        start_time = time.time()

        try:
            async with self._session.request(
                method=method,
                url=url,
                params=params,
                headers=headers
            ) as response:
                response_time = time.time() - start_time
                self._request_count += 1

                logger.debug(f"{method} {url} -> {response.status} ({response_time:.3f}s)")

                if response.status == HTTP_TOO_MANY_REQUESTS:
                    raise RateLimitedError(f"{method} {url} returned 429")

                if not 200 <= response.status < 300:
                    raise UpstreamUnavailableError(
                        f"{method} {url} returned HTTP {response.status}",
                        status_code=response.status,
                    )

                if response.content_type == 'application/json':
                    data = await response.json()
                else:
                    data = await response.text()

                return APIResponse(
                    data=data,
                    status_code=response.status,
                    headers=dict(response.headers),
                    response_time=response_time,
                    data_source=self.data_source,
                    timestamp=datetime.now(timezone.utc)
                )

        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise UpstreamUnavailableError(f"{method} {url} failed: {e}") from e

    @abstractmethod
    def _get_auth_headers(self) -> Dict[str, str]:
        """Get authentication headers for API requests."""
        pass

    @abstractmethod
    async def get_market_data(self, coin_ids: Iterable[str]) -> Dict[str, MarketQuote]:
        """Fetch USD price, name and symbol for a set of coin ids in one request.

        Args:
            coin_ids: Price feed coin identifiers

        Returns:
            Mapping of coin id to quote; coins without a price are omitted
        """
        pass

    def get_stats(self) -> Dict[str, Any]:
        """Get client statistics."""
        return {
            'data_source': self.data_source.value,
            'request_count': self._request_count,
            'rate_limited_count': self._rate_limited_count,
            'base_url': self.config.base_url,
            'has_api_key': bool(self.config.api_key),
        }
