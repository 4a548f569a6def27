"""
Fixed-point currency helpers.

WHY: Binary floats drift across multi-step calculations
(subtotal -> discount -> total -> change). Every monetary amount is a
Decimal and is rounded to cents immediately after each arithmetic step.

ROUNDING RULE: ROUND_HALF_UP (10.005 -> 10.01, -10.005 -> -10.01).
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(value) -> Decimal:
    """
    Coerce an incoming amount to Decimal.

    Floats are converted through str() so 0.1 becomes Decimal("0.1"),
    not the binary approximation.

    Raises ValueError for bools, None, NaN, infinities and unparseable input.
    """
    if isinstance(value, bool) or value is None:
        raise ValueError(f"Invalid monetary amount: {value!r}")

    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(str(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            raise ValueError(f"Invalid monetary amount: {value!r}")
    else:
        raise ValueError(f"Invalid monetary amount: {value!r}")

    if not result.is_finite():
        raise ValueError(f"Invalid monetary amount: {value!r}")
    return result


def round2(value) -> Decimal:
    """Round to 2 decimal places, half-up."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(value) -> str:
    """Serialize an amount for JSON payloads, e.g. "20200.00"."""
    return str(round2(value))
