"""
Chart data generation for tariff price curves.

Prices a tariff across a grid of volumes and converts the result into
structured data for Plotly charts.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING

import pandas as pd

from billing.adapters import tariff_to_dto
from billing.core.calculator import calculate_price
from billing.core.types import DiscountSourceType, Tariff
from billing.core.util import to_decimal
from billing.services import utility_now

if TYPE_CHECKING:
    from tariffs.models import Tariff as TariffModel

DEFAULT_STEPS = 50
DEFAULT_MAX_VOLUME = Decimal("100")


def default_max_volume(tariff: Tariff) -> Decimal:
    """
    Pick a volume range that shows every tier break.

    Returns one and a half times the highest bounded tier or bulk discount
    edge, or DEFAULT_MAX_VOLUME when the tariff has no bounded edge.
    """
    edges = [t.max_volume for t in tariff.tiers if t.max_volume is not None]
    edges += [t.min_volume for t in tariff.tiers]
    edges += [b.max_volume for b in tariff.bulk_discounts if b.max_volume is not None]
    edges += [b.min_volume for b in tariff.bulk_discounts]
    highest = max(edges, default=Decimal("0"))
    if highest <= 0:
        return DEFAULT_MAX_VOLUME
    return highest * Decimal("1.5")


def volume_grid(max_volume: Decimal, steps: int = DEFAULT_STEPS) -> list[Decimal]:
    """Evenly spaced volumes from 0 to max_volume inclusive."""
    if steps < 1:
        raise ValueError("steps must be at least 1")
    if max_volume <= 0:
        raise ValueError("max_volume must be positive")
    return [max_volume * i / steps for i in range(steps + 1)]


def get_price_curve_dataframe(
    tariff: Tariff,
    today: date,
    volumes: list[Decimal],
) -> pd.DataFrame:
    """
    Price a tariff snapshot at each volume.

    Dynamic discounts need a customer and a meter, so they are not part of
    the curve.

    Args:
        tariff: Tariff DTO with tiers and overlays
        today: date used for seasonal rates
        volumes: volumes to price

    Returns:
        DataFrame with columns: volume, base_price, seasonal_discount,
        bulk_discount, final_price, average_price (as floats)
    """
    records = []
    for volume in volumes:
        breakdown = calculate_price(tariff, volume, today=today)
        by_type = {line.source_type: line.amount for line in breakdown.discounts}
        records.append(
            {
                "volume": volume,
                "base_price": breakdown.base_price,
                "seasonal_discount": by_type.get(DiscountSourceType.SEASONAL_RATE, Decimal("0")),
                "bulk_discount": by_type.get(DiscountSourceType.BULK_DISCOUNT, Decimal("0")),
                "final_price": breakdown.final_price,
            }
        )

    df = pd.DataFrame(
        records,
        columns=["volume", "base_price", "seasonal_discount", "bulk_discount", "final_price"],
    )
    df = df.astype(float)

    # Average price per unit is undefined at zero volume
    df["average_price"] = (df["final_price"] / df["volume"]).where(df["volume"] > 0)
    return df


def get_price_curve_chart_data(
    tariff: TariffModel,
    max_volume=None,
    steps: int = DEFAULT_STEPS,
    today: date | None = None,
) -> dict:
    """
    Generate price curve chart data for a tariff.

    Args:
        tariff: Django Tariff model instance
        max_volume: upper end of the volume axis (defaults from the tiers)
        steps: number of intervals on the volume axis
        today: date used for seasonal rates (defaults to today in the
            utility's timezone)

    Returns:
        Dictionary with structure:
        {
            'tariff_id': 1,
            'tariff_name': 'Residential R1',
            'date': '2024-07-01',
            'volumes': [0.0, 2.0, ...],
            'base_price': [...],
            'final_price': [...],
            'seasonal_discount': [...],
            'bulk_discount': [...],
            'average_price': [None, 1.0, ...],
            'tier_boundaries': [10.0, 20.0],
        }
    """
    tariff_dto = tariff_to_dto(tariff)
    if today is None:
        today = utility_now(tariff.utility).date()

    if max_volume is None:
        max_volume = default_max_volume(tariff_dto)
    volumes = volume_grid(to_decimal(max_volume), steps)

    df = get_price_curve_dataframe(tariff_dto, today, volumes)

    # NaN is not valid JSON
    average_price = [None if pd.isna(v) else v for v in df["average_price"]]

    return {
        "tariff_id": tariff_dto.id,
        "tariff_name": tariff_dto.name,
        "date": today.isoformat(),
        "volumes": df["volume"].tolist(),
        "base_price": df["base_price"].tolist(),
        "final_price": df["final_price"].tolist(),
        "seasonal_discount": df["seasonal_discount"].tolist(),
        "bulk_discount": df["bulk_discount"].tolist(),
        "average_price": average_price,
        "tier_boundaries": sorted(
            float(t.max_volume) for t in tariff_dto.tiers if t.max_volume is not None
        ),
    }
