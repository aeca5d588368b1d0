"""Tests for price and value display rounding."""

import pytest
from decimal import Decimal

from crypto_portfolio_tracker.tracker.formatting import (
    format_price,
    format_total,
    format_value,
    holding_value,
)


@pytest.mark.parametrize("price,expected", [
    ("50000.125", "50000.13"),
    ("1", "1.00"),
    ("0.99995", "1.0000"),
    ("0.45678", "0.4568"),
    ("0.0001", "0.0001"),
    ("0.00009999", "0.00009999"),
    ("0.000000015", "0.00000002"),
    ("0", "0.00000000"),
])
def test_format_price_tiers(price, expected):
    assert format_price(Decimal(price)) == expected


def test_small_prices_never_use_exponent_notation():
    assert "E" not in format_price(Decimal("1E-9"))


def test_holding_value_rounds_half_up():
    assert holding_value(Decimal("0.5"), Decimal("0.01")) == Decimal("0.01")
    assert holding_value(Decimal("3"), Decimal("0.45678")) == Decimal("1.37")


def test_format_value():
    assert format_value(Decimal("12")) == "12.00"
    assert format_value(Decimal("0.005")) == "0.01"


def test_total_sums_rounded_values():
    values = [holding_value(Decimal("1"), Decimal("0.004")) for _ in range(3)]

    assert format_total(values) == "0.00"
    assert format_total([Decimal("1.10"), Decimal("2.25")]) == "3.35"
    assert format_total([]) == "0.00"


def test_large_values_are_rounded_exactly():
    value = holding_value(Decimal("1e23"), Decimal("50000.125"))

    assert value == Decimal("5000012500000000000000000000")
    assert format_value(value) == "5000012500000000000000000000.00"
    assert format_total([value, Decimal("0.01")]) == "5000012500000000000000000000.01"
    assert format_price(Decimal("1e30")) == "1" + "0" * 30 + ".00"
