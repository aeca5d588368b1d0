"""Display rounding for prices and values."""

from decimal import (
    Context,
    Decimal,
    MAX_EMAX,
    MAX_PREC,
    MIN_EMIN,
    ROUND_HALF_UP,
    localcontext,
)
from typing import Iterable

NOT_AVAILABLE = "N/A"

_CENTS = Decimal("0.01")
_FOUR_PLACES = Decimal("0.0001")
_EIGHT_PLACES = Decimal("0.00000001")

# Multiplication, addition and quantize are exact here whatever the magnitude
# of a stored amount.
EXACT_CONTEXT = Context(prec=MAX_PREC, Emax=MAX_EMAX, Emin=MIN_EMIN, rounding=ROUND_HALF_UP)


def format_price(price: Decimal) -> str:
    """Round a unit price: 2 places from $1, 4 from $0.0001, else 8."""
    if price >= 1:
        quantum = _CENTS
    elif price >= _FOUR_PLACES:
        quantum = _FOUR_PLACES
    else:
        quantum = _EIGHT_PLACES
    with localcontext(EXACT_CONTEXT):
        return format(price.quantize(quantum, rounding=ROUND_HALF_UP), "f")


def holding_value(amount: Decimal, price: Decimal) -> Decimal:
    """Value of a holding, rounded to cents."""
    with localcontext(EXACT_CONTEXT):
        return (amount * price).quantize(_CENTS, rounding=ROUND_HALF_UP)


def format_value(value: Decimal) -> str:
    with localcontext(EXACT_CONTEXT):
        return format(value.quantize(_CENTS, rounding=ROUND_HALF_UP), "f")


def format_total(values: Iterable[Decimal]) -> str:
    """Sum of rounded holding values as a two-place string."""
    with localcontext(EXACT_CONTEXT):
        total = sum(values, Decimal("0"))
        return format(total.quantize(_CENTS, rounding=ROUND_HALF_UP), "f")
