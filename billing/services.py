"""
Billing service layer.

Orchestrates loading tariffs, customers and meters from Django models,
pricing consumption with the core calculator, and recording the discounts
that were applied.
"""

from __future__ import annotations

import logging
import zoneinfo
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING

from django.db import IntegrityError, transaction
from django.db.models import Count, Q, Sum
from django.utils import timezone

from billing.adapters import customer_to_dto, meter_to_dto, tariff_to_dto
from billing.core import calculator
from billing.core.types import EvaluationContext, PriceBreakdown
from billing.core.util import ZERO, to_decimal
from billing.exceptions import (
    DuplicateAppliedDiscountError,
    InvalidVolumeError,
    NoTariffAssignedError,
    TariffNotFoundError,
)
from billing.models import AppliedDiscount
from customers.models import Customer, Meter, PropertyTariff
from tariffs.models import Tariff

if TYPE_CHECKING:
    from customers.models import Property
    from utilities.models import Utility

logger = logging.getLogger(__name__)

LEDGER_QUANTUM = Decimal("0.0001")


@dataclass
class CustomerDiscountStats:
    """Totals of the discounts recorded for a customer."""

    customer: Customer
    start_date: date | None
    end_date: date | None
    total_discount: Decimal = ZERO
    total_original: Decimal = ZERO
    count: int = 0
    by_source_type: dict[str, dict] = field(default_factory=dict)


def utility_now(utility: Utility, now: datetime | None = None) -> datetime:
    """
    Express "now" in the utility's local timezone.

    Naive datetimes are taken to be local to the utility already.
    """
    tz = zoneinfo.ZoneInfo(str(utility.timezone))
    if now is None:
        now = timezone.now()
    if timezone.is_naive(now):
        return now.replace(tzinfo=tz)
    return now.astimezone(tz)


def parse_volume(volume) -> Decimal:
    """
    Validate a consumption volume.

    Raises:
        InvalidVolumeError: If the volume is not a finite number or is negative
    """
    try:
        value = to_decimal(volume)
    except ValueError:
        raise InvalidVolumeError(volume)
    if value < 0:
        raise InvalidVolumeError(volume)
    return value


def load_tariff(tariff_id) -> Tariff:
    """
    Load a live tariff with everything the calculator reads.

    Raises:
        TariffNotFoundError: If the tariff does not exist or was soft-deleted
    """
    try:
        return (
            Tariff.objects.live()
            .select_related("utility")
            .prefetch_related(
                "tiers",
                "seasonal_rates",
                "bulk_discounts",
                "dynamic_discount_rules",
            )
            .get(pk=tariff_id)
        )
    except (Tariff.DoesNotExist, ValueError, TypeError):
        raise TariffNotFoundError(tariff_id)


def build_evaluation_context(
    customer_id, meter_id, volume: Decimal, now: datetime
) -> EvaluationContext | None:
    """
    Snapshot the customer and meter for dynamic rule evaluation.

    Returns None when either is not supplied or cannot be found, in which
    case dynamic discounts are skipped.
    """
    if customer_id is None or meter_id is None:
        return None

    customer = Customer.objects.filter(pk=customer_id).first()
    meter = Meter.objects.filter(pk=meter_id).first()
    if customer is None or meter is None:
        logger.warning(
            "Skipping dynamic discounts: customer %s or meter %s not found",
            customer_id,
            meter_id,
        )
        return None

    return EvaluationContext(
        customer=customer_to_dto(customer),
        meter=meter_to_dto(meter),
        volume=volume,
        now=now,
    )


def calculate_price(
    tariff_id,
    volume,
    customer_id=None,
    meter_id=None,
    now: datetime | None = None,
) -> PriceBreakdown:
    """
    Price a consumption volume under a tariff.

    "Now" and "today" are taken in the timezone of the tariff's utility.
    Dynamic discounts are only evaluated when both customer_id and meter_id
    are given and both exist.

    Args:
        tariff_id: primary key of the tariff
        volume: consumed volume (m³), >= 0
        customer_id: customer for dynamic rule evaluation
        meter_id: meter for dynamic rule evaluation
        now: evaluation instant (defaults to the current time)

    Returns:
        PriceBreakdown with base price, applied discounts and final price

    Raises:
        InvalidVolumeError: If volume is negative or not a number
        TariffNotFoundError: If the tariff does not exist or was soft-deleted
    """
    volume = parse_volume(volume)
    tariff = load_tariff(tariff_id)
    local_now = utility_now(tariff.utility, now)

    context = build_evaluation_context(customer_id, meter_id, volume, local_now)
    breakdown = calculator.calculate_price(
        tariff_to_dto(tariff),
        volume,
        today=local_now.date(),
        context=context,
    )

    logger.debug(
        "Priced %s m3 on tariff %s: base %s, %d discount(s), final %s",
        volume,
        tariff.pk,
        breakdown.base_price,
        len(breakdown.discounts),
        breakdown.final_price,
    )
    return breakdown


def _quantize(value: Decimal) -> Decimal:
    return value.quantize(LEDGER_QUANTUM, rounding=ROUND_HALF_UP)


def _is_recorded(payment_id: str | None, line) -> bool:
    """Whether the payment already has a ledger row for the discount source."""
    if payment_id is None or line is None:
        return False
    return AppliedDiscount.objects.filter(
        payment_id=payment_id,
        discount_source_type=line.source_type.value,
        discount_source_id=line.source_id,
    ).exists()


def record_applied_discounts(
    breakdown: PriceBreakdown,
    customer: Customer,
    meter: Meter,
    reading_id: str | None = None,
    payment_id: str | None = None,
    now: datetime | None = None,
) -> list[AppliedDiscount]:
    """
    Write one ledger row per discount in a price breakdown.

    The rows chain from the base price to the final price: each row's
    original_amount is the running price before its discount and its
    final_amount the running price after it, never below zero. discount_amount
    is what was actually deducted, so a discount larger than the running price
    is recorded only up to that price. All rows are written in a single
    transaction.

    Args:
        breakdown: result of calculate_price
        customer: customer the price was calculated for
        meter: meter the consumption was read from
        reading_id: external meter reading reference
        payment_id: external payment reference
        now: applied_at timestamp (defaults to the current time)

    Returns:
        The created AppliedDiscount rows, in discount order

    Raises:
        DuplicateAppliedDiscountError: If the payment already carries a
            discount from one of the sources. Nothing is written in that case.
        IntegrityError: For any other constraint failure.
    """
    applied_at = now or timezone.now()
    running = breakdown.base_price
    created: list[AppliedDiscount] = []
    line = None

    try:
        with transaction.atomic():
            for line in breakdown.discounts:
                original = running
                running = max(ZERO, running - line.amount)
                # Only the part of the discount that fit under the running price
                deducted = original - running
                created.append(
                    AppliedDiscount.objects.create(
                        customer=customer,
                        meter=meter,
                        reading_id=reading_id,
                        payment_id=payment_id,
                        discount_source_type=line.source_type.value,
                        discount_source_id=line.source_id,
                        original_amount=_quantize(original),
                        discount_amount=_quantize(deducted),
                        final_amount=_quantize(running),
                        applied_at=applied_at,
                    )
                )
    except IntegrityError:
        if not _is_recorded(payment_id, line):
            raise
        logger.warning(
            "Duplicate applied discount %s #%s for payment %s",
            line.source_type.value,
            line.source_id,
            payment_id,
        )
        raise DuplicateAppliedDiscountError(payment_id, line.source_type.value, line.source_id)

    logger.debug(
        "Recorded %d applied discount(s) for customer %s, payment %s",
        len(created),
        customer.pk,
        payment_id,
    )
    return created


def get_current_tariff(property: Property, on_date: date | None = None) -> Tariff | None:
    """
    Get the tariff assigned to a property on a date.

    Args:
        property: Property to look up
        on_date: date in the utility's timezone (defaults to today there)

    Returns:
        The tariff of the active assignment covering on_date, or None
    """
    if on_date is None:
        on_date = utility_now(property.utility).date()

    assignment = (
        PropertyTariff.objects.filter(
            property=property,
            is_active=True,
            effective_from__lte=on_date,
            tariff__deleted_at__isnull=True,
        )
        .filter(Q(effective_to__isnull=True) | Q(effective_to__gte=on_date))
        .select_related("tariff")
        .order_by("-effective_from")
        .first()
    )
    return assignment.tariff if assignment else None


def calculate_price_for_property(
    property: Property,
    volume,
    customer_id=None,
    meter_id=None,
    now: datetime | None = None,
) -> PriceBreakdown:
    """
    Price a volume under the tariff currently assigned to a property.

    Raises:
        NoTariffAssignedError: If no tariff is assigned on the evaluation date
        InvalidVolumeError: If volume is negative or not a number
    """
    on_date = utility_now(property.utility, now).date()
    tariff = get_current_tariff(property, on_date)
    if tariff is None:
        raise NoTariffAssignedError(property.name, on_date)
    return calculate_price(tariff.pk, volume, customer_id=customer_id, meter_id=meter_id, now=now)


def get_customer_discount_stats(
    customer: Customer,
    start_date: date | None = None,
    end_date: date | None = None,
) -> CustomerDiscountStats:
    """
    Summarize the ledger of discounts applied to a customer.

    Args:
        customer: Customer to summarize
        start_date: first applied_at date to include (inclusive)
        end_date: last applied_at date to include (inclusive)

    Returns:
        CustomerDiscountStats with overall totals and a per source type breakdown
    """
    qs = AppliedDiscount.objects.filter(customer=customer)
    if start_date:
        qs = qs.filter(applied_at__date__gte=start_date)
    if end_date:
        qs = qs.filter(applied_at__date__lte=end_date)

    totals = qs.aggregate(
        total_discount=Sum("discount_amount"),
        total_original=Sum("original_amount"),
        count=Count("id"),
    )
    stats = CustomerDiscountStats(
        customer=customer,
        start_date=start_date,
        end_date=end_date,
        total_discount=totals["total_discount"] or ZERO,
        total_original=totals["total_original"] or ZERO,
        count=totals["count"],
    )

    rows = (
        qs.order_by()
        .values("discount_source_type")
        .annotate(total_discount=Sum("discount_amount"), count=Count("id"))
        .order_by("discount_source_type")
    )
    for row in rows:
        stats.by_source_type[row["discount_source_type"]] = {
            "total_discount": row["total_discount"] or ZERO,
            "count": row["count"],
        }
    return stats
