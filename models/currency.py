"""
currency.py

Fixed-point money handling shared by every calculator.

All money is carried as decimal.Decimal and rounded to cents with
banker's rounding (ROUND_HALF_EVEN). Ratios (DSCR, LTV) are kept to four
places with the same rounding mode.
"""

from decimal import Decimal, InvalidOperation, ROUND_DOWN, ROUND_HALF_EVEN
from typing import Any

from models.errors import InvalidInput

CENT = Decimal("0.01")
RATIO_PLACES = Decimal("0.0001")
ZERO = Decimal("0")
ONE = Decimal("1")


def to_decimal(value: Any) -> Decimal:
    """
    Convert a caller value into a Decimal.

    Floats go through str() so 0.1 becomes Decimal("0.1") instead of its
    binary expansion. None and empty strings count as zero.
    """
    if value is None or value == "":
        return ZERO
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise InvalidInput(f"Expected a number, got {value!r}")
    else:
        try:
            result = Decimal(str(value)) if isinstance(value, float) else Decimal(value)
        except (InvalidOperation, TypeError, ValueError):
            raise InvalidInput(f"Expected a number, got {value!r}")

    if not result.is_finite():
        raise InvalidInput(f"Expected a finite number, got {value!r}")
    return result


def to_money(value: Any) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_EVEN)


def to_money_floor(value: Any) -> Decimal:
    """Truncate toward zero at the cent."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_DOWN)


def to_ratio(value: Any) -> Decimal:
    return to_decimal(value).quantize(RATIO_PLACES, rounding=ROUND_HALF_EVEN)
