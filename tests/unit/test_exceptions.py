"""Tests for the tracker error taxonomy."""

import pytest

from crypto_portfolio_tracker.core.exceptions import (
    HoldingNotFoundError,
    InvalidHoldingError,
    PriceFeedError,
    RateLimitedError,
    StoreIOError,
    TrackerError,
    UpstreamUnavailableError,
)


@pytest.mark.parametrize("error,parent", [
    (RateLimitedError(), PriceFeedError),
    (UpstreamUnavailableError("down", status_code=502), PriceFeedError),
    (StoreIOError("disk"), TrackerError),
    (InvalidHoldingError("bad amount"), ValueError),
    (HoldingNotFoundError("bitcoin"), LookupError),
])
def test_hierarchy(error, parent):
    assert isinstance(error, parent)
    assert isinstance(error, TrackerError)


def test_error_codes():
    assert RateLimitedError(retries=5).code == "RATE_LIMITED"
    assert RateLimitedError(retries=5).retries == 5
    assert UpstreamUnavailableError("down", status_code=502).status_code == 502
    assert UpstreamUnavailableError("timeout").status_code is None
    assert StoreIOError("disk").code == "STORE_IO_ERROR"
    assert HoldingNotFoundError("bitcoin").message == "Coin 'bitcoin' not found in portfolio."
