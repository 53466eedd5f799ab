"""
Tests for tiered volume pricing and the minimum charge.
"""

from decimal import Decimal

import pytest

from billing.core.tiers import apply_minimum_charge, calculate_tiered_price
from billing.core.types import TariffTier


@pytest.mark.parametrize(
    "volume,expected",
    [
        ("0", "0"),
        ("5", "5"),
        ("10", "10"),
        ("12", "15"),
        ("20", "35"),
    ],
)
def test_tiered_price_walks_tiers(two_tiers, volume, expected):
    assert calculate_tiered_price(two_tiers, Decimal(volume)) == Decimal(expected)


def test_volume_beyond_last_bounded_tier_is_not_priced(two_tiers):
    """Consumption above the last bounded tier has no price."""
    assert calculate_tiered_price(two_tiers, Decimal("25")) == Decimal("35")


def test_unbounded_last_tier_prices_everything():
    tiers = [
        TariffTier(min_volume=Decimal("0"), max_volume=Decimal("10"), price_per_unit=Decimal("1")),
        TariffTier(min_volume=Decimal("10"), max_volume=None, price_per_unit=Decimal("3")),
    ]
    assert calculate_tiered_price(tiers, Decimal("110")) == Decimal("310")


def test_tier_order_does_not_matter(two_tiers):
    reversed_tiers = tuple(reversed(two_tiers))
    assert calculate_tiered_price(reversed_tiers, Decimal("20")) == Decimal("35")


def test_fractional_volume():
    tiers = [
        TariffTier(min_volume=Decimal("0"), max_volume=None, price_per_unit=Decimal("2.5")),
    ]
    assert calculate_tiered_price(tiers, Decimal("1.5")) == Decimal("3.75")


def test_no_tiers_prices_at_zero():
    assert calculate_tiered_price([], Decimal("42")) == Decimal("0")


def test_negative_volume_rejected(two_tiers):
    with pytest.raises(ValueError):
        calculate_tiered_price(two_tiers, Decimal("-1"))


def test_tiered_price_is_monotonic(two_tiers):
    volumes = [Decimal(v) / 2 for v in range(0, 50)]
    prices = [calculate_tiered_price(two_tiers, v) for v in volumes]
    assert prices == sorted(prices)


def test_tier_with_inverted_bounds_rejected():
    with pytest.raises(ValueError):
        TariffTier(min_volume=Decimal("10"), max_volume=Decimal("5"), price_per_unit=Decimal("1"))


# Minimum charge


def test_minimum_charge_raises_low_price():
    assert apply_minimum_charge(Decimal("10"), True, Decimal("50")) == Decimal("50")


def test_minimum_charge_leaves_higher_price():
    assert apply_minimum_charge(Decimal("80"), True, Decimal("50")) == Decimal("80")


def test_minimum_charge_ignored_when_disabled():
    assert apply_minimum_charge(Decimal("10"), False, Decimal("50")) == Decimal("10")
