"""
burnpayout/rounding.py

Round-half-up of floats to integers.

Both trade parties must round exactly the same way, so this is part of the
protocol: floor(x + 0.5) evaluated on the exact binary value of x. Python's
round() uses banker's rounding and int(x + 0.5) loses precision for values
like 0.49999999999999994, so neither is used.
"""

from decimal import Decimal, ROUND_FLOOR
import math

_HALF = Decimal("0.5")


def round_half_up(value: float) -> int:
    """
    Round a float to the nearest integer, ties towards positive infinity.

    Examples:
        round_half_up(2.5)  -> 3
        round_half_up(2.49) -> 2
        round_half_up(-2.5) -> -2

    Raises:
        ValueError: If value is NaN or infinite
    """
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if math.isnan(value) or math.isinf(value):
        raise ValueError(f"Cannot round non-finite value {value!r}")
    return int((Decimal(value) + _HALF).to_integral_value(rounding=ROUND_FLOOR))
