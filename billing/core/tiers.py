"""
Tiered volumetric pricing and the minimum-charge floor.
"""

from decimal import Decimal
from typing import Iterable

from .types import TariffTier
from .util import ZERO, upper_bound


def calculate_tiered_price(tiers: Iterable[TariffTier], volume: Decimal) -> Decimal:
    """
    Walk the tiers in ascending min_volume and accumulate the base price.

    Each tier consumes at most (max_volume - min_volume) units of the
    remaining volume at its own price. Tiers are assumed contiguous and
    non-overlapping; they are not re-validated here.

    Args:
        tiers: tariff tiers, in any order
        volume: consumed volume, must be >= 0

    Returns:
        Base price (0 for a zero volume or an empty tier list)

    Raises:
        ValueError: If volume is negative
    """
    if volume < 0:
        raise ValueError("volume must be non-negative")

    base_price = ZERO
    remaining = volume

    for tier in sorted(tiers, key=lambda t: t.min_volume):
        if remaining <= 0:
            break

        span = min(remaining, upper_bound(tier.max_volume) - tier.min_volume)
        if span > 0:
            base_price += span * tier.price_per_unit
            remaining -= span

    return base_price


def apply_minimum_charge(
    base_price: Decimal,
    has_minimum_charge: bool,
    minimum_charge_amount: Decimal,
) -> Decimal:
    """Raise base_price to the configured floor when the tariff has one."""
    if has_minimum_charge and base_price < minimum_charge_amount:
        return minimum_charge_amount
    return base_price
