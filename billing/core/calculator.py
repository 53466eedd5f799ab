"""
Core price calculator.

Orchestrates tiered pricing, the minimum charge and the discount overlays
into a single price breakdown.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from .discounts import select_bulk_discount, select_dynamic_discount, select_seasonal_discount
from .tiers import apply_minimum_charge, calculate_tiered_price
from .types import DiscountLine, EvaluationContext, PriceBreakdown, Tariff
from .util import ZERO


def calculate_base_price(tariff: Tariff, volume: Decimal) -> Decimal:
    """Tiered price for the volume, raised to the tariff's minimum charge."""
    base_price = calculate_tiered_price(tariff.tiers, volume)
    return apply_minimum_charge(
        base_price, tariff.has_minimum_charge, tariff.minimum_charge_amount
    )


def calculate_price(
    tariff: Tariff,
    volume: Decimal,
    *,
    today: date,
    context: Optional[EvaluationContext] = None,
) -> PriceBreakdown:
    """
    Calculate the billable price for a volume under a tariff snapshot.

    Discount categories are applied in a fixed order (seasonal, bulk,
    dynamic). Each contributes at most one discount, computed against the
    base price, and each is subtracted from the running final price. The
    final price is clamped at zero.

    Args:
        tariff: snapshot of the tariff with its tiers and overlays
        volume: consumed volume, must be >= 0
        today: the calendar date used for seasonal windows
        context: customer, meter, volume and "now" for dynamic rules. Dynamic
            discounts are skipped when no context is given.

    Returns:
        PriceBreakdown with base price, applied discounts and final price

    Raises:
        ValueError: If volume is negative
    """
    base_price = calculate_base_price(tariff, volume)

    discounts: list[DiscountLine] = []
    final_price = base_price

    candidates = []
    if tariff.is_seasonal and tariff.seasonal_rates:
        candidates.append(select_seasonal_discount(tariff.seasonal_rates, base_price, today))
    if tariff.has_bulk_discount and tariff.bulk_discounts:
        candidates.append(select_bulk_discount(tariff.bulk_discounts, base_price, volume))
    if tariff.has_dynamic_discount and tariff.dynamic_rules and context is not None:
        candidates.append(select_dynamic_discount(tariff.dynamic_rules, base_price, context))

    for line in candidates:
        if line is None:
            continue
        discounts.append(line)
        final_price -= line.amount

    return PriceBreakdown(
        tariff_id=tariff.id,
        tariff_name=tariff.name,
        volume=volume,
        base_price=base_price,
        discounts=tuple(discounts),
        final_price=max(ZERO, final_price),
    )
