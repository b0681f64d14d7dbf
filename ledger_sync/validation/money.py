"""
Money normalization.

Every monetary field passes through `normalize_money` at every boundary
(cache load, remote load, import, form submission). Invalid input silently
becomes zero; no error is ever raised.
"""

import math
from decimal import ROUND_FLOOR, Decimal, InvalidOperation
from typing import Any

_HUNDRED = Decimal(100)
_HALF = Decimal("0.5")


def to_number(value: Any) -> float:
    """
    Coerce a raw value to a float, NaN when it is not numeric.

    Strings are stripped; an empty string counts as zero. Booleans count
    as 0/1. None counts as zero.
    """
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float, Decimal)):
        try:
            return float(value)
        except (OverflowError, ValueError):
            return math.nan
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        try:
            return float(text)
        except ValueError:
            return math.nan
    return math.nan


def normalize_money(value: Any) -> float:
    """
    Round a raw value to 2 decimal places; non-finite input becomes 0.

    Rounds like `Math.round(v * 100) / 100`: halves go up, towards
    positive infinity, so -12.345 becomes -12.34. The shortest decimal
    representation is used, so binary artefacts do not leak in:
    >>> normalize_money(12.345)
    12.35
    >>> normalize_money(-12.345)
    -12.34
    >>> normalize_money("abc")
    0.0
    """
    number = to_number(value)
    if not math.isfinite(number):
        return 0.0
    try:
        cents = (Decimal(repr(number)) * _HUNDRED + _HALF).to_integral_value(rounding=ROUND_FLOOR)
    except InvalidOperation:
        # Beyond the decimal context precision
        return round(number, 2)
    result = float(cents / _HUNDRED)
    # Drop negative zero
    return result if result else 0.0
