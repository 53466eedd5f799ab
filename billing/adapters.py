"""
Adapters for converting Django ORM models to pricing DTOs.

This module provides lightweight mappings from the tariffs and customers
apps' Django models to the immutable dataclasses used by the pricing core.
"""

import logging
from decimal import Decimal

from billing.core.conditions import try_parse_conditions
from billing.core.types import (
    AdjustmentType,
    BulkDiscountTier,
    CustomerSnapshot,
    DynamicDiscountRule,
    MeterSnapshot,
    SeasonalRate,
    Tariff,
    TariffTier,
)
from customers.models import Customer, Meter
from tariffs.models import BulkDiscountTier as BulkDiscountTierModel
from tariffs.models import DynamicDiscountRule as DynamicDiscountRuleModel
from tariffs.models import SeasonalRate as SeasonalRateModel
from tariffs.models import Tariff as TariffModel
from tariffs.models import TariffTier as TariffTierModel

logger = logging.getLogger(__name__)


def build_adjustment_type(value: str) -> AdjustmentType:
    """
    Map a stored adjustment/discount type choice to AdjustmentType.

    Raises:
        ValueError: If the value is not a known adjustment type
    """
    try:
        return AdjustmentType(value)
    except ValueError:
        raise ValueError(f"Invalid adjustment type: {value}")


def tier_to_dto(tier: TariffTierModel) -> TariffTier:
    return TariffTier(
        min_volume=tier.min_volume,
        max_volume=tier.max_volume,
        price_per_unit=tier.price_per_unit,
    )


def seasonal_rate_to_dto(rate: SeasonalRateModel) -> SeasonalRate:
    return SeasonalRate(
        id=rate.pk,
        name=rate.name,
        start_date=rate.start_date,
        end_date=rate.end_date,
        adjustment_type=build_adjustment_type(rate.adjustment_type),
        adjustment_value=rate.adjustment_value,
        is_active=rate.is_active,
    )


def bulk_discount_to_dto(tier: BulkDiscountTierModel) -> BulkDiscountTier:
    return BulkDiscountTier(
        id=tier.pk,
        min_volume=tier.min_volume,
        max_volume=tier.max_volume,
        discount_type=build_adjustment_type(tier.discount_type),
        discount_value=tier.discount_value,
        is_active=tier.is_active,
    )


def dynamic_rule_to_dto(rule: DynamicDiscountRuleModel) -> DynamicDiscountRule:
    """
    Convert a dynamic discount rule, parsing its conditions payload.

    A payload that no longer parses (e.g. written before validation existed)
    is carried as None so the rule fails closed instead of breaking the
    calculation.
    """
    conditions = try_parse_conditions(rule.rule_type, rule.conditions)
    if conditions is None:
        logger.warning(
            "Dynamic discount rule %s (%s) has uninterpretable %r conditions; it will not apply",
            rule.pk,
            rule.name,
            rule.rule_type,
        )

    return DynamicDiscountRule(
        id=rule.pk,
        name=rule.name,
        rule_type=rule.rule_type,
        conditions=conditions,
        discount_type=build_adjustment_type(rule.discount_type),
        discount_value=rule.discount_value,
        priority=rule.priority,
        is_active=rule.is_active,
        start_date=rule.start_date,
        end_date=rule.end_date,
        max_discount_amount=rule.max_discount_amount,
    )


def tariff_to_dto(tariff: TariffModel) -> Tariff:
    """
    Convert a Django Tariff model with its tiers and overlays to a Tariff DTO.

    Overlay categories are only loaded when the tariff's flag for that
    category is set.

    IMPORTANT: For performance, the tariff should be prefetched with:
        tariff = Tariff.objects.prefetch_related(
            'tiers',
            'seasonal_rates',
            'bulk_discounts',
            'dynamic_discount_rules',
        ).get(pk=tariff_id)

    Args:
        tariff: Django Tariff model instance (preferably with prefetched relations)

    Returns:
        Tariff DTO snapshot
    """
    seasonal_rates = ()
    if tariff.is_seasonal:
        seasonal_rates = tuple(seasonal_rate_to_dto(r) for r in tariff.seasonal_rates.all())

    bulk_discounts = ()
    if tariff.has_bulk_discount:
        bulk_discounts = tuple(bulk_discount_to_dto(t) for t in tariff.bulk_discounts.all())

    dynamic_rules = ()
    if tariff.has_dynamic_discount:
        dynamic_rules = tuple(dynamic_rule_to_dto(r) for r in tariff.dynamic_discount_rules.all())

    return Tariff(
        id=tariff.pk,
        name=tariff.name,
        tiers=tuple(tier_to_dto(t) for t in tariff.tiers.all()),
        has_minimum_charge=tariff.has_minimum_charge,
        minimum_charge_amount=Decimal(tariff.minimum_charge_amount),
        is_seasonal=tariff.is_seasonal,
        has_bulk_discount=tariff.has_bulk_discount,
        has_dynamic_discount=tariff.has_dynamic_discount,
        seasonal_rates=seasonal_rates,
        bulk_discounts=bulk_discounts,
        dynamic_rules=dynamic_rules,
    )


def customer_to_dto(customer: Customer) -> CustomerSnapshot:
    return CustomerSnapshot(
        id=customer.pk,
        created_at=customer.created_at,
        city=customer.city,
        province=customer.province,
    )


def meter_to_dto(meter: Meter) -> MeterSnapshot:
    return MeterSnapshot(
        id=meter.pk,
        meter_type=meter.meter_type,
        meter_model=meter.meter_model,
    )
