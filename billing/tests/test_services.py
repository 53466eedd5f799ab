"""
Tests for the billing service layer.
"""

from datetime import date, datetime, timezone as dt_timezone
from decimal import Decimal
from unittest.mock import patch
import zoneinfo

import pytest
from django.db import IntegrityError

from billing.exceptions import (
    DuplicateAppliedDiscountError,
    InvalidVolumeError,
    NoTariffAssignedError,
    TariffNotFoundError,
)
from billing.models import AppliedDiscount
from billing.services import (
    calculate_price,
    calculate_price_for_property,
    get_current_tariff,
    get_customer_discount_stats,
    record_applied_discounts,
    utility_now,
)
from customers.models import Property, PropertyTariff
from tariffs.models import BulkDiscountTier, DynamicDiscountRule, SeasonalRate, Tariff

JAKARTA = zoneinfo.ZoneInfo("Asia/Jakarta")
# Saturday 2024-07-06 10:00 in Jakarta
SATURDAY_MORNING = datetime(2024, 7, 6, 10, 0, tzinfo=JAKARTA)


@pytest.fixture
def discounted_tariff(tariff):
    """The 20 m³ = 35 tariff with one discount of each kind."""
    SeasonalRate.objects.create(
        tariff=tariff,
        name="Dry Season",
        start_date=date(2024, 6, 1),
        end_date=date(2024, 8, 31),
        adjustment_type="percentage",
        adjustment_value=Decimal("10"),
    )
    BulkDiscountTier.objects.create(
        tariff=tariff,
        min_volume=Decimal("15"),
        discount_type="fixed",
        discount_value=Decimal("2"),
    )
    DynamicDiscountRule.objects.create(
        tariff=tariff,
        name="Weekend",
        rule_type="time_based",
        conditions={"days_of_week": ["Saturday", "Sunday"]},
        discount_type="percentage",
        discount_value=Decimal("20"),
        max_discount_amount=Decimal("5"),
    )
    return tariff


@pytest.fixture
def house(utility):
    return Property.objects.create(utility=utility, name="Jl. Merdeka 1")


# utility_now


def test_utility_now_converts_to_utility_timezone(utility):
    now = utility_now(utility, datetime(2024, 7, 5, 20, 0, tzinfo=dt_timezone.utc))
    assert now.tzinfo == JAKARTA
    # 20:00 UTC is already the next day in Jakarta
    assert now.date() == date(2024, 7, 6)


def test_utility_now_treats_naive_as_local(utility):
    now = utility_now(utility, datetime(2024, 7, 6, 10, 0))
    assert now == SATURDAY_MORNING


# calculate_price


@pytest.mark.django_db
def test_calculate_price_tiers_only(tariff):
    breakdown = calculate_price(tariff.pk, "20", now=SATURDAY_MORNING)
    assert breakdown.base_price == Decimal("35")
    assert breakdown.final_price == Decimal("35")
    assert breakdown.discounts == ()


@pytest.mark.django_db
def test_calculate_price_with_all_discounts(discounted_tariff, customer, meter):
    breakdown = calculate_price(
        discounted_tariff.pk,
        Decimal("20"),
        customer_id=customer.pk,
        meter_id=meter.pk,
        now=SATURDAY_MORNING,
    )

    assert [line.source_type.value for line in breakdown.discounts] == [
        "seasonal_rate",
        "bulk_discount",
        "dynamic_discount",
    ]
    # 35 - 3.5 - 2 - 5 (20% of 35 capped at 5)
    assert breakdown.final_price == Decimal("24.5")


@pytest.mark.django_db
def test_calculate_price_seasonal_uses_utility_date(discounted_tariff):
    # 2024-05-31 18:00 UTC is 2024-06-01 01:00 in Jakarta, the first day of the season
    breakdown = calculate_price(
        discounted_tariff.pk, "10", now=datetime(2024, 5, 31, 18, 0, tzinfo=dt_timezone.utc)
    )
    assert [line.source_type.value for line in breakdown.discounts] == ["seasonal_rate"]


@pytest.mark.django_db
def test_calculate_price_without_customer_skips_dynamic(discounted_tariff):
    breakdown = calculate_price(discounted_tariff.pk, "20", now=SATURDAY_MORNING)
    assert "dynamic_discount" not in [line.source_type.value for line in breakdown.discounts]


@pytest.mark.django_db
def test_calculate_price_missing_customer_skips_dynamic(discounted_tariff, meter, caplog):
    with caplog.at_level("WARNING", logger="billing.services"):
        breakdown = calculate_price(
            discounted_tariff.pk, "20", customer_id=999999, meter_id=meter.pk, now=SATURDAY_MORNING
        )
    assert len(breakdown.discounts) == 2
    assert "Skipping dynamic discounts" in caplog.text


@pytest.mark.django_db
def test_calculate_price_unknown_tariff():
    with pytest.raises(TariffNotFoundError):
        calculate_price(424242, "10")


@pytest.mark.django_db
def test_calculate_price_soft_deleted_tariff(tariff):
    tariff.soft_delete()
    with pytest.raises(TariffNotFoundError):
        calculate_price(tariff.pk, "10")


@pytest.mark.django_db
@pytest.mark.parametrize("volume", ["-1", "abc", None, float("nan")])
def test_calculate_price_invalid_volume(tariff, volume):
    with pytest.raises(InvalidVolumeError):
        calculate_price(tariff.pk, volume)


@pytest.mark.django_db
def test_calculate_price_is_deterministic(discounted_tariff, customer, meter):
    def price():
        return calculate_price(
            discounted_tariff.pk,
            "20",
            customer_id=customer.pk,
            meter_id=meter.pk,
            now=SATURDAY_MORNING,
        )

    assert price() == price()


# record_applied_discounts


@pytest.mark.django_db
def test_record_applied_discounts_chains_amounts(discounted_tariff, customer, meter):
    breakdown = calculate_price(
        discounted_tariff.pk,
        "20",
        customer_id=customer.pk,
        meter_id=meter.pk,
        now=SATURDAY_MORNING,
    )
    rows = record_applied_discounts(
        breakdown, customer, meter, reading_id="R-1", payment_id="P-1", now=SATURDAY_MORNING
    )

    assert len(rows) == 3
    assert [(r.original_amount, r.discount_amount, r.final_amount) for r in rows] == [
        (Decimal("35"), Decimal("3.5"), Decimal("31.5")),
        (Decimal("31.5"), Decimal("2"), Decimal("29.5")),
        (Decimal("29.5"), Decimal("5"), Decimal("24.5")),
    ]
    assert rows[-1].final_amount == breakdown.final_price
    assert AppliedDiscount.objects.filter(payment_id="P-1").count() == 3
    assert {r.applied_at for r in AppliedDiscount.objects.all()} == {SATURDAY_MORNING}


@pytest.mark.django_db
def test_record_applied_discounts_rejects_duplicates(discounted_tariff, customer, meter):
    breakdown = calculate_price(discounted_tariff.pk, "20", now=SATURDAY_MORNING)
    record_applied_discounts(breakdown, customer, meter, payment_id="P-1")

    with pytest.raises(DuplicateAppliedDiscountError) as exc_info:
        record_applied_discounts(breakdown, customer, meter, payment_id="P-1")

    assert exc_info.value.source_type == "seasonal_rate"
    assert AppliedDiscount.objects.count() == 2


@pytest.mark.django_db
def test_record_applied_discounts_is_all_or_nothing(discounted_tariff, customer, meter):
    """A duplicate on the second line leaves the first line unwritten too."""
    full = calculate_price(discounted_tariff.pk, "20", now=SATURDAY_MORNING)
    bulk_only = calculate_price(discounted_tariff.pk, "20", now=datetime(2024, 1, 6, tzinfo=JAKARTA))
    record_applied_discounts(bulk_only, customer, meter, payment_id="P-2")

    with pytest.raises(DuplicateAppliedDiscountError):
        record_applied_discounts(full, customer, meter, payment_id="P-2")

    assert list(
        AppliedDiscount.objects.filter(payment_id="P-2").values_list(
            "discount_source_type", flat=True
        )
    ) == ["bulk_discount"]


@pytest.mark.django_db
def test_applied_discount_is_immutable(discounted_tariff, customer, meter):
    breakdown = calculate_price(discounted_tariff.pk, "20", now=SATURDAY_MORNING)
    row = record_applied_discounts(breakdown, customer, meter, payment_id="P-3")[0]

    row.discount_amount = Decimal("0")
    with pytest.raises(ValueError):
        row.save()


@pytest.mark.django_db
def test_record_applied_discounts_stores_effective_deduction(tariff, customer, meter):
    """A discount larger than the running price is recorded only up to that price."""
    BulkDiscountTier.objects.create(
        tariff=tariff,
        min_volume=Decimal("15"),
        discount_type="fixed",
        discount_value=Decimal("50"),
    )
    breakdown = calculate_price(tariff.pk, "20", now=SATURDAY_MORNING)
    assert breakdown.final_price == Decimal("0")

    row = record_applied_discounts(breakdown, customer, meter, payment_id="P-5")[0]

    assert (row.original_amount, row.discount_amount, row.final_amount) == (
        Decimal("35"),
        Decimal("35"),
        Decimal("0"),
    )
    assert row.original_amount - row.discount_amount == row.final_amount


@pytest.mark.django_db
def test_record_applied_discounts_other_integrity_errors_propagate(
    discounted_tariff, customer, meter
):
    breakdown = calculate_price(discounted_tariff.pk, "20", now=SATURDAY_MORNING)

    with patch.object(
        AppliedDiscount.objects,
        "create",
        side_effect=IntegrityError("NOT NULL constraint failed: billing_applieddiscount.meter_id"),
    ):
        with pytest.raises(IntegrityError) as exc_info:
            record_applied_discounts(breakdown, customer, meter, payment_id="P-6")

    assert not isinstance(exc_info.value, DuplicateAppliedDiscountError)
    assert AppliedDiscount.objects.count() == 0


@pytest.mark.django_db
def test_record_nothing_for_undiscounted_price(tariff, customer, meter):
    breakdown = calculate_price(tariff.pk, "20")
    assert record_applied_discounts(breakdown, customer, meter, payment_id="P-4") == []


# Property tariffs


@pytest.mark.django_db
def test_get_current_tariff(house, tariff, utility):
    newer = Tariff.objects.create(utility=utility, name="Residential R2")
    PropertyTariff.objects.create(
        property=house, tariff=tariff, effective_from=date(2023, 1, 1), effective_to=date(2023, 12, 31)
    )
    PropertyTariff.objects.create(property=house, tariff=newer, effective_from=date(2024, 1, 1))

    assert get_current_tariff(house, date(2023, 12, 31)) == tariff
    assert get_current_tariff(house, date(2024, 1, 1)) == newer
    assert get_current_tariff(house, date(2022, 6, 1)) is None


@pytest.mark.django_db
def test_get_current_tariff_ignores_inactive_and_deleted(house, tariff):
    PropertyTariff.objects.create(
        property=house, tariff=tariff, effective_from=date(2024, 1, 1), is_active=False
    )
    assert get_current_tariff(house, date(2024, 6, 1)) is None

    PropertyTariff.objects.all().delete()
    PropertyTariff.objects.create(property=house, tariff=tariff, effective_from=date(2024, 1, 1))
    tariff.soft_delete()
    assert get_current_tariff(house, date(2024, 6, 1)) is None


@pytest.mark.django_db
def test_calculate_price_for_property(house, tariff):
    PropertyTariff.objects.create(property=house, tariff=tariff, effective_from=date(2024, 1, 1))
    breakdown = calculate_price_for_property(house, "20", now=SATURDAY_MORNING)
    assert breakdown.tariff_id == tariff.pk
    assert breakdown.final_price == Decimal("35")


@pytest.mark.django_db
def test_calculate_price_for_property_without_assignment(house):
    with pytest.raises(NoTariffAssignedError):
        calculate_price_for_property(house, "20", now=SATURDAY_MORNING)


# Discount stats


@pytest.mark.django_db
def test_customer_discount_stats(discounted_tariff, customer, meter):
    breakdown = calculate_price(
        discounted_tariff.pk,
        "20",
        customer_id=customer.pk,
        meter_id=meter.pk,
        now=SATURDAY_MORNING,
    )
    record_applied_discounts(breakdown, customer, meter, payment_id="P-1", now=SATURDAY_MORNING)

    stats = get_customer_discount_stats(customer)
    assert stats.count == 3
    assert stats.total_discount == Decimal("10.5")
    assert stats.total_original == Decimal("96")
    assert stats.by_source_type["dynamic_discount"] == {
        "total_discount": Decimal("5"),
        "count": 1,
    }

    empty = get_customer_discount_stats(customer, start_date=date(2025, 1, 1))
    assert empty.count == 0
    assert empty.total_discount == Decimal("0")
    assert empty.by_source_type == {}
