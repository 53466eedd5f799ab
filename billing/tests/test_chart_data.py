"""
Tests for price curve chart data.
"""

import json
from datetime import date
from decimal import Decimal

import pytest

from billing.chart_data import (
    default_max_volume,
    get_price_curve_chart_data,
    get_price_curve_dataframe,
    volume_grid,
)
from tariffs.models import BulkDiscountTier


def test_volume_grid():
    assert volume_grid(Decimal("10"), steps=4) == [
        Decimal("0"),
        Decimal("2.5"),
        Decimal("5"),
        Decimal("7.5"),
        Decimal("10"),
    ]


@pytest.mark.parametrize("max_volume,steps", [(Decimal("0"), 10), (Decimal("10"), 0)])
def test_volume_grid_rejects_bad_axis(max_volume, steps):
    with pytest.raises(ValueError):
        volume_grid(max_volume, steps)


def test_default_max_volume(tariff_factory, two_tiers, bulk_tier_factory):
    assert default_max_volume(tariff_factory(tiers=two_tiers)) == Decimal("30")
    assert default_max_volume(
        tariff_factory(tiers=two_tiers, bulk_discounts=[bulk_tier_factory(min_volume="40")])
    ) == Decimal("60")
    assert default_max_volume(tariff_factory()) == Decimal("100")


def test_price_curve_dataframe(tariff_factory, two_tiers, bulk_tier_factory):
    tariff = tariff_factory(
        tiers=two_tiers, bulk_discounts=[bulk_tier_factory(min_volume="15", value="5")]
    )
    df = get_price_curve_dataframe(
        tariff, date(2024, 7, 6), [Decimal("0"), Decimal("10"), Decimal("20")]
    )

    assert list(df.columns) == [
        "volume",
        "base_price",
        "seasonal_discount",
        "bulk_discount",
        "final_price",
        "average_price",
    ]
    assert df["base_price"].tolist() == [0.0, 10.0, 35.0]
    assert df["bulk_discount"].tolist() == [0.0, 0.0, 5.0]
    assert df["final_price"].tolist() == [0.0, 10.0, 30.0]
    assert df["average_price"].isna().tolist() == [True, False, False]
    assert df["average_price"].iloc[2] == pytest.approx(1.5)


@pytest.mark.django_db
def test_price_curve_chart_data(tariff):
    BulkDiscountTier.objects.create(
        tariff=tariff, min_volume=Decimal("15"), discount_type="fixed", discount_value=Decimal("5")
    )

    data = get_price_curve_chart_data(tariff, max_volume="20", steps=2, today=date(2024, 7, 6))

    assert data["tariff_id"] == tariff.pk
    assert data["date"] == "2024-07-06"
    assert data["volumes"] == [0.0, 10.0, 20.0]
    assert data["base_price"] == [0.0, 10.0, 35.0]
    assert data["final_price"] == [0.0, 10.0, 30.0]
    assert data["average_price"][0] is None
    assert data["tier_boundaries"] == [10.0]
    # Must be JSON serializable for the admin view
    json.dumps(data)
