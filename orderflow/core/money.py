"""
Money helpers.

Amounts are ``Decimal`` end to end. Rounding to cents happens only when an
amount is displayed or leaves the process (JSON, payment provider).
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any

ZERO = Decimal("0")
CENT = Decimal("0.01")
CURRENCY_SYMBOL = "€"


def to_decimal(value: Any) -> Decimal:
    """
    Convert a number or numeric string to Decimal.

    Floats go through ``str`` so 3.5 becomes Decimal("3.5") rather than its
    binary approximation. None and empty strings become zero.
    """
    if value is None or value == "":
        return ZERO
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Not a monetary amount: {value!r}")


def round_money(value: Any) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(value: Any) -> str:
    """Format for display, e.g. ``8.00 €``."""
    return f"{round_money(value):.2f} {CURRENCY_SYMBOL}"


def to_minor_units(value: Any) -> int:
    """Cents for payment providers."""
    return int(round_money(value) * 100)
