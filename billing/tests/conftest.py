"""
Shared fixtures for billing tests.

Consolidates tariff snapshot builders for the pure core and Django model
fixtures used across test files.
"""

from datetime import date, datetime
from decimal import Decimal
import zoneinfo

import pytest

from billing.core.types import (
    AdjustmentType,
    BulkDiscountTier,
    CustomerSnapshot,
    DynamicDiscountRule,
    EvaluationContext,
    MeterSnapshot,
    SeasonalRate,
    Tariff,
    TariffTier,
)
from customers.models import Customer, Meter
from tariffs.models import Tariff as TariffModel
from tariffs.models import TariffTier as TariffTierModel
from utilities.models import Utility

JAKARTA = zoneinfo.ZoneInfo("Asia/Jakarta")


@pytest.fixture
def two_tiers():
    """0-10 m³ at 1.00, 10-20 m³ at 2.50. A volume of 20 costs 35."""
    return (
        TariffTier(min_volume=Decimal("0"), max_volume=Decimal("10"), price_per_unit=Decimal("1")),
        TariffTier(
            min_volume=Decimal("10"), max_volume=Decimal("20"), price_per_unit=Decimal("2.5")
        ),
    )


@pytest.fixture
def flat_tier():
    """A single unbounded tier at 1.00 per m³, so price == volume."""
    return (TariffTier(min_volume=Decimal("0"), max_volume=None, price_per_unit=Decimal("1")),)


@pytest.fixture
def tariff_factory(flat_tier):
    """Factory fixture for tariff snapshots.

    Overlay flags default to on whenever the matching overlay list is given.
    """

    def _create_tariff(
        tiers=None,
        seasonal_rates=(),
        bulk_discounts=(),
        dynamic_rules=(),
        **overrides,
    ) -> Tariff:
        fields = {
            "id": 1,
            "name": "Residential R1",
            "tiers": tuple(tiers) if tiers is not None else flat_tier,
            "is_seasonal": bool(seasonal_rates),
            "has_bulk_discount": bool(bulk_discounts),
            "has_dynamic_discount": bool(dynamic_rules),
            "seasonal_rates": tuple(seasonal_rates),
            "bulk_discounts": tuple(bulk_discounts),
            "dynamic_rules": tuple(dynamic_rules),
        }
        fields.update(overrides)
        return Tariff(**fields)

    return _create_tariff


@pytest.fixture
def seasonal_rate_factory():
    def _create(id=1, start=date(2024, 6, 1), end=date(2024, 8, 31), value="10", **kwargs):
        return SeasonalRate(
            id=id,
            name=kwargs.pop("name", f"Season {id}"),
            start_date=start,
            end_date=end,
            adjustment_type=kwargs.pop("adjustment_type", AdjustmentType.PERCENTAGE),
            adjustment_value=Decimal(value),
            **kwargs,
        )

    return _create


@pytest.fixture
def bulk_tier_factory():
    def _create(id=1, min_volume="50", max_volume=None, value="20", **kwargs):
        return BulkDiscountTier(
            id=id,
            min_volume=Decimal(min_volume),
            max_volume=None if max_volume is None else Decimal(max_volume),
            discount_type=kwargs.pop("discount_type", AdjustmentType.FIXED),
            discount_value=Decimal(value),
            **kwargs,
        )

    return _create


@pytest.fixture
def dynamic_rule_factory():
    def _create(id=1, conditions=None, value="5", priority=0, **kwargs):
        return DynamicDiscountRule(
            id=id,
            name=kwargs.pop("name", f"Rule {id}"),
            rule_type=kwargs.pop("rule_type", "volume_based"),
            conditions=conditions,
            discount_type=kwargs.pop("discount_type", AdjustmentType.PERCENTAGE),
            discount_value=Decimal(value),
            priority=priority,
            **kwargs,
        )

    return _create


@pytest.fixture
def context_factory():
    """Factory fixture for evaluation contexts.

    Defaults: a customer created 2019-05-01 in Bandung, a prepaid WM-200 meter,
    100 m³, evaluated on Saturday 2024-07-06 at 10:00 Jakarta time.
    """

    def _create_context(
        volume="100",
        now=datetime(2024, 7, 6, 10, 0, tzinfo=JAKARTA),
        created_at=datetime(2019, 5, 1, 9, 0, tzinfo=JAKARTA),
        city="Bandung",
        province="Jawa Barat",
        meter_type="prepaid",
        meter_model="WM-200",
    ) -> EvaluationContext:
        return EvaluationContext(
            customer=CustomerSnapshot(id=1, created_at=created_at, city=city, province=province),
            meter=MeterSnapshot(id=1, meter_type=meter_type, meter_model=meter_model),
            volume=Decimal(volume),
            now=now,
        )

    return _create_context


@pytest.fixture
def utility(db):
    """Create a test utility."""
    return Utility.objects.create(name="PDAM Test", timezone="Asia/Jakarta")


@pytest.fixture
def tariff(utility):
    """Create a test tariff with the two standard tiers (20 m³ costs 35)."""
    tariff = TariffModel.objects.create(utility=utility, name="Residential R1")
    TariffTierModel.objects.create(
        tariff=tariff,
        min_volume=Decimal("0"),
        max_volume=Decimal("10"),
        price_per_unit=Decimal("1"),
    )
    TariffTierModel.objects.create(
        tariff=tariff,
        min_volume=Decimal("10"),
        max_volume=None,
        price_per_unit=Decimal("2.5"),
    )
    return tariff


@pytest.fixture
def customer(utility):
    return Customer.objects.create(
        utility=utility, name="Budi", city="Bandung", province="Jawa Barat"
    )


@pytest.fixture
def meter(customer):
    return Meter.objects.create(
        customer=customer, serial_number="M-0001", meter_type="prepaid", meter_model="WM-200"
    )
