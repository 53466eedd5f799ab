"""Helper functions for the pricing engine."""

from decimal import Decimal, InvalidOperation
from typing import Any

# Upper bound used for tiers and ranges without a maximum
UNBOUNDED = Decimal("Infinity")

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_decimal(value: Any) -> Decimal:
    """
    Convert a number or numeric string to Decimal.

    Notes:
        Uses str(x) to avoid embedding binary-float artefacts into Decimal.

    Raises:
        ValueError: If the value is not numeric (booleans included).
    """
    if isinstance(value, bool) or value is None:
        raise ValueError(f"Not a number: {value!r}")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValueError(f"Not a number: {value!r}")
    if not result.is_finite():
        raise ValueError(f"Not a finite number: {value!r}")
    return result


def upper_bound(value: Decimal | None) -> Decimal:
    """Return value, or UNBOUNDED when it is None."""
    return UNBOUNDED if value is None else value
