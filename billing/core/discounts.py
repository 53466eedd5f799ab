"""
Selection of the discount overlays: seasonal rates, bulk tiers and dynamic rules.

Each selector picks at most one entry from its category. Amounts are always
computed against the base price, never against a price another category
has already reduced.
"""

from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from .conditions import evaluate_conditions
from .types import (
    AdjustmentType,
    BulkDiscountTier,
    DiscountLine,
    DiscountSourceType,
    DynamicDiscountRule,
    EvaluationContext,
    SeasonalRate,
)
from .util import HUNDRED


def compute_adjustment(
    base_price: Decimal,
    adjustment_type: AdjustmentType,
    value: Decimal,
) -> Decimal:
    """
    Turn a percentage or fixed discount value into an amount.

    Examples:
        >>> compute_adjustment(Decimal("80"), AdjustmentType.PERCENTAGE, Decimal("10"))
        Decimal('8.0')
        >>> compute_adjustment(Decimal("80"), AdjustmentType.FIXED, Decimal("5"))
        Decimal('5')
    """
    if adjustment_type == AdjustmentType.PERCENTAGE:
        return base_price * (value / HUNDRED)
    return value


def select_seasonal_discount(
    rates: Iterable[SeasonalRate],
    base_price: Decimal,
    today: date,
) -> Optional[DiscountLine]:
    """
    Apply the first active seasonal rate whose window contains today.

    Rates are considered in ascending start_date order; only one ever applies.
    """
    for rate in sorted(rates, key=lambda r: r.start_date):
        if rate.is_active and rate.start_date <= today <= rate.end_date:
            return DiscountLine(
                source_type=DiscountSourceType.SEASONAL_RATE,
                source_id=rate.id,
                amount=compute_adjustment(base_price, rate.adjustment_type, rate.adjustment_value),
                name=rate.name,
            )
    return None


def select_bulk_discount(
    tiers: Iterable[BulkDiscountTier],
    base_price: Decimal,
    volume: Decimal,
) -> Optional[DiscountLine]:
    """
    Apply the first active bulk tier whose volume range contains the volume.

    Tiers are considered in ascending min_volume order; both bounds are inclusive.
    """
    for tier in sorted(tiers, key=lambda t: t.min_volume):
        if not tier.is_active:
            continue
        if volume >= tier.min_volume and (tier.max_volume is None or volume <= tier.max_volume):
            return DiscountLine(
                source_type=DiscountSourceType.BULK_DISCOUNT,
                source_id=tier.id,
                amount=compute_adjustment(base_price, tier.discount_type, tier.discount_value),
                min_volume=tier.min_volume,
                max_volume=tier.max_volume,
            )
    return None


def candidate_dynamic_rules(
    rules: Iterable[DynamicDiscountRule],
    today: date,
) -> list[DynamicDiscountRule]:
    """
    Active rules whose optional date window contains today.

    Ordered by priority (highest first), then by name.
    """
    candidates = [
        rule
        for rule in rules
        if rule.is_active
        and (rule.start_date is None or rule.start_date <= today)
        and (rule.end_date is None or rule.end_date >= today)
    ]
    return sorted(candidates, key=lambda r: (-r.priority, r.name))


def select_dynamic_discount(
    rules: Iterable[DynamicDiscountRule],
    base_price: Decimal,
    context: EvaluationContext,
) -> Optional[DiscountLine]:
    """
    Apply the highest-priority candidate rule whose conditions hold.

    The amount is capped at max_discount_amount when the rule sets one.
    """
    today = context.now.date()
    for rule in candidate_dynamic_rules(rules, today):
        if not evaluate_conditions(rule.conditions, context):
            continue

        amount = compute_adjustment(base_price, rule.discount_type, rule.discount_value)
        if rule.max_discount_amount is not None:
            amount = min(amount, rule.max_discount_amount)

        return DiscountLine(
            source_type=DiscountSourceType.DYNAMIC_DISCOUNT,
            source_id=rule.id,
            amount=amount,
            name=rule.name,
            rule_type=rule.rule_type,
        )
    return None
