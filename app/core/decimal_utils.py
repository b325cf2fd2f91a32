"""
Bookstore · Decimal Utilities
Price parsing and rounding helpers.
Never use float near monetary values, always use Decimal.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, getcontext
from typing import Union

from app.core.exceptions import InvalidPriceError

# Set high-precision context globally for the process
getcontext().prec = 28

PRICE_PLACES = 2
# Numeric(12, 2) leaves ten integer digits
MAX_PRICE = Decimal(10) ** 10


def monetary(value: Union[str, int, float, Decimal]) -> Decimal:
    """
    Convert any numeric value to a Decimal suitable for monetary calculations.
    Raises TypeError on non-numeric input to prevent silent float contamination.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # Force via string to avoid float imprecision
        return Decimal(str(value))
    if isinstance(value, (int, str)):
        return Decimal(value.strip() if isinstance(value, str) else value)
    raise TypeError(f"Cannot convert {type(value).__name__} to Decimal monetary value")


def display_round(amount: Decimal, places: int = PRICE_PLACES) -> Decimal:
    """Round to `places` decimal places for display and storage."""
    quantizer = Decimal(10) ** -places
    return amount.quantize(quantizer, rounding=ROUND_HALF_UP)


def parse_price(raw: Union[str, int, float, Decimal, None]) -> Decimal:
    """
    Parse a user-supplied price into a rounded, non-negative Decimal.

    NaN, infinities, negatives, blanks and anything that is not a number
    raise InvalidPriceError.
    """
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        raise InvalidPriceError(raw, "price is required")

    try:
        value = monetary(raw)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidPriceError(raw)

    if not value.is_finite():
        raise InvalidPriceError(raw, "price must be a finite number")
    if value < Decimal("0"):
        raise InvalidPriceError(raw, "price must not be negative")
    # Checked before rounding too: quantize fails on values past the context precision
    if value >= MAX_PRICE or display_round(value) >= MAX_PRICE:
        raise InvalidPriceError(raw, "price is too large")

    return display_round(value)


def price_str(amount: Decimal) -> str:
    """Render a stored price for API responses."""
    return str(display_round(Decimal(amount)))
