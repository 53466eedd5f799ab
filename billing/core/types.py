"""
Define lightweight dataclasses to use for price calculations.

Adapters to convert between Django ORM and these classes are in billing.adapters.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from .conditions import Conditions


class AdjustmentType(str, Enum):
    """How a discount value is turned into an amount."""

    PERCENTAGE = "percentage"
    FIXED = "fixed"


class DiscountSourceType(str, Enum):
    """The overlay category a discount came from."""

    SEASONAL_RATE = "seasonal_rate"
    BULK_DISCOUNT = "bulk_discount"
    DYNAMIC_DISCOUNT = "dynamic_discount"


class RuleType(str, Enum):
    """Condition kinds understood by dynamic discount rules."""

    TIME_BASED = "time_based"
    VOLUME_BASED = "volume_based"
    CUSTOMER_BASED = "customer_based"
    INVENTORY_BASED = "inventory_based"
    COMBINED = "combined"


@dataclass(frozen=True, slots=True)
class TariffTier:
    """
    A contiguous volume band with its own per-unit price.

    A max_volume of None means the tier is unbounded above.
    """

    min_volume: Decimal
    max_volume: Optional[Decimal]
    price_per_unit: Decimal

    def __post_init__(self) -> None:
        if self.max_volume is not None and self.max_volume <= self.min_volume:
            raise ValueError("max_volume must be greater than min_volume")


@dataclass(frozen=True, slots=True)
class SeasonalRate:
    """Date-windowed adjustment; both dates are inclusive."""

    id: int
    name: str
    start_date: date
    end_date: date
    adjustment_type: AdjustmentType
    adjustment_value: Decimal
    is_active: bool = True


@dataclass(frozen=True, slots=True)
class BulkDiscountTier:
    """Volume-threshold discount; both bounds are inclusive, None max is unbounded."""

    id: int
    min_volume: Decimal
    max_volume: Optional[Decimal]
    discount_type: AdjustmentType
    discount_value: Decimal
    is_active: bool = True


@dataclass(frozen=True, slots=True)
class DynamicDiscountRule:
    """
    Condition-gated discount selected by priority.

    conditions holds the already-parsed payload. It is None when the stored
    payload could not be interpreted for rule_type (including unknown rule
    types); such a rule never applies.
    """

    id: int
    name: str
    rule_type: str
    conditions: Optional[Conditions]
    discount_type: AdjustmentType
    discount_value: Decimal
    priority: int = 0
    is_active: bool = True
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    max_discount_amount: Optional[Decimal] = None


@dataclass(frozen=True, slots=True)
class Tariff:
    """
    Read-only snapshot of a tariff with its tiers and discount overlays.
    """

    id: int
    name: str
    tiers: tuple[TariffTier, ...] = ()
    has_minimum_charge: bool = False
    minimum_charge_amount: Decimal = Decimal("0")
    is_seasonal: bool = False
    has_bulk_discount: bool = False
    has_dynamic_discount: bool = False
    seasonal_rates: tuple[SeasonalRate, ...] = ()
    bulk_discounts: tuple[BulkDiscountTier, ...] = ()
    dynamic_rules: tuple[DynamicDiscountRule, ...] = ()


@dataclass(frozen=True, slots=True)
class CustomerSnapshot:
    """The customer attributes read by customer-based conditions."""

    id: int
    created_at: datetime
    city: str = ""
    province: str = ""


@dataclass(frozen=True, slots=True)
class MeterSnapshot:
    """The meter attributes read by inventory-based conditions."""

    id: int
    meter_type: str = ""
    meter_model: str = ""


@dataclass(frozen=True, slots=True)
class EvaluationContext:
    """Everything a dynamic discount condition may look at."""

    customer: CustomerSnapshot
    meter: MeterSnapshot
    volume: Decimal
    now: datetime


@dataclass(frozen=True, slots=True)
class DiscountLine:
    """
    One applied discount, suitable for display and for the applied-discount ledger.
    """

    source_type: DiscountSourceType
    source_id: int
    amount: Decimal
    name: Optional[str] = None
    rule_type: Optional[str] = None
    min_volume: Optional[Decimal] = None
    max_volume: Optional[Decimal] = None


@dataclass(frozen=True, slots=True)
class PriceBreakdown:
    """
    Result of a price calculation.

    discounts are listed in the order they were applied
    (seasonal, bulk, dynamic).
    """

    tariff_id: int
    tariff_name: str
    volume: Decimal
    base_price: Decimal
    discounts: tuple[DiscountLine, ...]
    final_price: Decimal

    @property
    def total_discount(self) -> Decimal:
        return sum((line.amount for line in self.discounts), start=Decimal("0"))

    def as_dict(self) -> dict[str, Any]:
        """Render as plain data, with decimals as strings."""

        def _fmt(value: Optional[Decimal]) -> Optional[str]:
            return None if value is None else str(value)

        discounts = []
        for line in self.discounts:
            entry: dict[str, Any] = {
                "type": line.source_type.value,
                "id": line.source_id,
                "amount": _fmt(line.amount),
            }
            if line.name is not None:
                entry["name"] = line.name
            if line.rule_type is not None:
                entry["rule_type"] = line.rule_type
            if line.source_type == DiscountSourceType.BULK_DISCOUNT:
                entry["min_volume"] = _fmt(line.min_volume)
                entry["max_volume"] = _fmt(line.max_volume)
            discounts.append(entry)

        return {
            "tariff_id": self.tariff_id,
            "tariff_name": self.tariff_name,
            "volume": _fmt(self.volume),
            "base_price": _fmt(self.base_price),
            "discounts": discounts,
            "final_price": _fmt(self.final_price),
        }
