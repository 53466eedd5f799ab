"""
Conditions for dynamic discount rules.

A rule's stored JSON payload is parsed once, at write time, into one of the
condition dataclasses below. Evaluation then works on the typed value and
never has to second-guess the payload shape.

Payload shapes by rule type:

    time_based:
        time_range: {start: 6, end: 9}       # hour of day, end exclusive
        days_of_week: ["Saturday", "Sunday"]
        months: [6, 7, 8]
        specific_dates: ["2024-08-17"]
    volume_based:
        min_volume: 10                       # inclusive
        max_volume: 50                       # inclusive
    customer_based:
        customer_since: "2020-01-01"         # created at or before
        city: "Bandung"
        province: "Jawa Barat"
    inventory_based:
        meter_type: "prepaid"
        meter_model: "WM-200"
    combined:
        time_based: {...}
        volume_based: {...}
        customer_based: {...}
        inventory_based: {...}

Every key is optional. Keys that are present are AND-ed together; an absent
or null key places no constraint.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date, datetime, time, tzinfo
from decimal import Decimal
from typing import Any, Callable, ClassVar, Optional, Union

from .types import CustomerSnapshot, EvaluationContext, MeterSnapshot, RuleType
from .util import to_decimal

WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


class MalformedConditionError(ValueError):
    """Raised when a conditions payload cannot be interpreted for its rule type."""


class UnknownRuleTypeError(MalformedConditionError):
    """Raised when a rule type is not one of the supported kinds."""

    def __init__(self, rule_type: Any):
        super().__init__(f"Unknown rule type: {rule_type!r}")
        self.rule_type = rule_type


@dataclass(frozen=True, slots=True)
class TimeRange:
    """Hours of the day, start inclusive and end exclusive."""

    start: int
    end: int

    def contains(self, hour: int) -> bool:
        return self.start <= hour < self.end


@dataclass(frozen=True, slots=True)
class TimeBasedConditions:
    rule_type: ClassVar[RuleType] = RuleType.TIME_BASED

    time_range: Optional[TimeRange] = None
    days_of_week: Optional[frozenset[str]] = None
    months: Optional[frozenset[int]] = None
    specific_dates: Optional[frozenset[date]] = None


@dataclass(frozen=True, slots=True)
class VolumeBasedConditions:
    rule_type: ClassVar[RuleType] = RuleType.VOLUME_BASED

    min_volume: Optional[Decimal] = None
    max_volume: Optional[Decimal] = None


@dataclass(frozen=True, slots=True)
class CustomerBasedConditions:
    rule_type: ClassVar[RuleType] = RuleType.CUSTOMER_BASED

    customer_since: Optional[Union[date, datetime]] = None
    city: Optional[str] = None
    province: Optional[str] = None


@dataclass(frozen=True, slots=True)
class InventoryBasedConditions:
    rule_type: ClassVar[RuleType] = RuleType.INVENTORY_BASED

    meter_type: Optional[str] = None
    meter_model: Optional[str] = None


@dataclass(frozen=True, slots=True)
class CombinedConditions:
    """Any subset of the other four kinds, all of which must hold."""

    rule_type: ClassVar[RuleType] = RuleType.COMBINED

    time_based: Optional[TimeBasedConditions] = None
    volume_based: Optional[VolumeBasedConditions] = None
    customer_based: Optional[CustomerBasedConditions] = None
    inventory_based: Optional[InventoryBasedConditions] = None

    def parts(self) -> tuple[Conditions, ...]:
        return tuple(
            part
            for part in (
                self.time_based,
                self.volume_based,
                self.customer_based,
                self.inventory_based,
            )
            if part is not None
        )


Conditions = Union[
    TimeBasedConditions,
    VolumeBasedConditions,
    CustomerBasedConditions,
    InventoryBasedConditions,
    CombinedConditions,
]


# Parsing


def _check_keys(payload: dict, allowed: set[str], rule_type: RuleType) -> dict:
    """Reject unknown keys and return the payload without null entries."""
    unknown = set(payload) - allowed
    if unknown:
        raise MalformedConditionError(
            f"Unsupported {rule_type.value} condition(s): {', '.join(sorted(unknown))}"
        )
    # A null value is the same as leaving the key out
    return {key: value for key, value in payload.items() if value is not None}


def _parse_int(value: Any, field: str) -> int:
    if isinstance(value, bool):
        raise MalformedConditionError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise MalformedConditionError(f"{field} must be an integer")


def _parse_list(value: Any, field: str) -> list:
    if not isinstance(value, (list, tuple)):
        raise MalformedConditionError(f"{field} must be a list")
    return list(value)


def _parse_text(value: Any, field: str) -> str:
    if not isinstance(value, str):
        raise MalformedConditionError(f"{field} must be a string")
    return value


def _parse_date(value: Any, field: str) -> date:
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise MalformedConditionError(f"{field} must contain ISO dates (YYYY-MM-DD)")


def _parse_time_based(payload: dict) -> TimeBasedConditions:
    payload = _check_keys(
        payload, {"time_range", "days_of_week", "months", "specific_dates"}, RuleType.TIME_BASED
    )

    time_range = None
    if "time_range" in payload:
        raw = payload["time_range"]
        if not isinstance(raw, dict) or set(raw) != {"start", "end"}:
            raise MalformedConditionError("time_range must have exactly 'start' and 'end'")
        start = _parse_int(raw["start"], "time_range.start")
        end = _parse_int(raw["end"], "time_range.end")
        if not (0 <= start < end <= 24):
            raise MalformedConditionError("time_range hours must satisfy 0 <= start < end <= 24")
        time_range = TimeRange(start=start, end=end)

    days_of_week = None
    if "days_of_week" in payload:
        days = set()
        for day in _parse_list(payload["days_of_week"], "days_of_week"):
            name = _parse_text(day, "days_of_week").strip().capitalize()
            if name not in WEEKDAYS:
                raise MalformedConditionError(f"Invalid day of week: {day!r}")
            days.add(name)
        days_of_week = frozenset(days)

    months = None
    if "months" in payload:
        parsed_months = {_parse_int(m, "months") for m in _parse_list(payload["months"], "months")}
        if any(not 1 <= m <= 12 for m in parsed_months):
            raise MalformedConditionError("months must be between 1 and 12")
        months = frozenset(parsed_months)

    specific_dates = None
    if "specific_dates" in payload:
        specific_dates = frozenset(
            _parse_date(d, "specific_dates")
            for d in _parse_list(payload["specific_dates"], "specific_dates")
        )

    return TimeBasedConditions(
        time_range=time_range,
        days_of_week=days_of_week,
        months=months,
        specific_dates=specific_dates,
    )


def _parse_volume_based(payload: dict) -> VolumeBasedConditions:
    payload = _check_keys(payload, {"min_volume", "max_volume"}, RuleType.VOLUME_BASED)

    bounds: dict[str, Optional[Decimal]] = {}
    for field in ("min_volume", "max_volume"):
        if field in payload:
            try:
                bounds[field] = to_decimal(payload[field])
            except ValueError:
                raise MalformedConditionError(f"{field} must be a number")

    min_volume = bounds.get("min_volume")
    max_volume = bounds.get("max_volume")
    if min_volume is not None and max_volume is not None and min_volume > max_volume:
        raise MalformedConditionError("min_volume must not exceed max_volume")

    return VolumeBasedConditions(min_volume=min_volume, max_volume=max_volume)


def _parse_customer_based(payload: dict) -> CustomerBasedConditions:
    payload = _check_keys(payload, {"customer_since", "city", "province"}, RuleType.CUSTOMER_BASED)

    customer_since: Optional[Union[date, datetime]] = None
    if "customer_since" in payload:
        raw = payload["customer_since"]
        if isinstance(raw, (date, datetime)):
            customer_since = raw
        elif isinstance(raw, str) and len(raw.strip()) == 10:
            customer_since = _parse_date(raw.strip(), "customer_since")
        else:
            try:
                customer_since = datetime.fromisoformat(raw)
            except (TypeError, ValueError):
                raise MalformedConditionError("customer_since must be an ISO date or datetime")

    return CustomerBasedConditions(
        customer_since=customer_since,
        city=_parse_text(payload["city"], "city") if "city" in payload else None,
        province=_parse_text(payload["province"], "province") if "province" in payload else None,
    )


def _parse_inventory_based(payload: dict) -> InventoryBasedConditions:
    payload = _check_keys(payload, {"meter_type", "meter_model"}, RuleType.INVENTORY_BASED)
    return InventoryBasedConditions(
        meter_type=(
            _parse_text(payload["meter_type"], "meter_type") if "meter_type" in payload else None
        ),
        meter_model=(
            _parse_text(payload["meter_model"], "meter_model")
            if "meter_model" in payload
            else None
        ),
    )


def _parse_combined(payload: dict) -> CombinedConditions:
    parsers = {rule_type.value: parser for rule_type, parser in _LEAF_PARSERS.items()}
    payload = _check_keys(payload, set(parsers), RuleType.COMBINED)

    parts = {}
    for key, raw in payload.items():
        if not isinstance(raw, dict):
            raise MalformedConditionError(f"combined.{key} must be an object")
        try:
            parts[key] = parsers[key](raw)
        except MalformedConditionError as e:
            raise MalformedConditionError(f"combined.{key}: {e}")

    return CombinedConditions(**parts)


_LEAF_PARSERS: dict[RuleType, Callable[[dict], Conditions]] = {
    RuleType.TIME_BASED: _parse_time_based,
    RuleType.VOLUME_BASED: _parse_volume_based,
    RuleType.CUSTOMER_BASED: _parse_customer_based,
    RuleType.INVENTORY_BASED: _parse_inventory_based,
}


def parse_conditions(rule_type: str, payload: Any) -> Conditions:
    """
    Parse a stored conditions payload into its typed form.

    Args:
        rule_type: one of the RuleType values
        payload: dict (or JSON object string) shaped for rule_type

    Returns:
        The matching condition dataclass

    Raises:
        UnknownRuleTypeError: If rule_type is not supported
        MalformedConditionError: If the payload does not fit rule_type
    """
    try:
        kind = RuleType(rule_type)
    except ValueError:
        raise UnknownRuleTypeError(rule_type)

    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as e:
            raise MalformedConditionError(f"Conditions are not valid JSON: {e}")

    if not isinstance(payload, dict):
        raise MalformedConditionError("Conditions must be a JSON object")

    if kind == RuleType.COMBINED:
        return _parse_combined(payload)
    return _LEAF_PARSERS[kind](payload)


# Evaluation


def _align_tz(value: datetime, tz: Optional[tzinfo]) -> datetime:
    if value.tzinfo is None and tz is not None:
        return value.replace(tzinfo=tz)
    return value


def _evaluate_time_based(conditions: TimeBasedConditions, now: datetime) -> bool:
    if conditions.time_range is not None and not conditions.time_range.contains(now.hour):
        return False
    if conditions.days_of_week is not None and WEEKDAYS[now.weekday()] not in conditions.days_of_week:
        return False
    if conditions.months is not None and now.month not in conditions.months:
        return False
    if conditions.specific_dates is not None and now.date() not in conditions.specific_dates:
        return False
    return True


def _evaluate_volume_based(conditions: VolumeBasedConditions, volume: Decimal) -> bool:
    if conditions.min_volume is not None and volume < conditions.min_volume:
        return False
    if conditions.max_volume is not None and volume > conditions.max_volume:
        return False
    return True


def _evaluate_customer_based(
    conditions: CustomerBasedConditions,
    customer: CustomerSnapshot,
    now: datetime,
) -> bool:
    if conditions.customer_since is not None:
        since = conditions.customer_since
        if not isinstance(since, datetime):
            # A bare date means midnight at the start of that day
            since = datetime.combine(since, time.min)
        since = _align_tz(since, now.tzinfo)
        created_at = _align_tz(customer.created_at, since.tzinfo)
        if since.tzinfo is None:
            created_at = created_at.replace(tzinfo=None)
        if created_at > since:
            return False

    if conditions.city is not None and customer.city != conditions.city:
        return False
    if conditions.province is not None and customer.province != conditions.province:
        return False
    return True


def _evaluate_inventory_based(conditions: InventoryBasedConditions, meter: MeterSnapshot) -> bool:
    if conditions.meter_type is not None and meter.meter_type != conditions.meter_type:
        return False
    if conditions.meter_model is not None and meter.meter_model != conditions.meter_model:
        return False
    return True


def evaluate_conditions(conditions: Optional[Conditions], context: EvaluationContext) -> bool:
    """
    Decide whether parsed conditions hold for the given context.

    None (a payload that could not be parsed) never holds.
    """
    if isinstance(conditions, TimeBasedConditions):
        return _evaluate_time_based(conditions, context.now)
    if isinstance(conditions, VolumeBasedConditions):
        return _evaluate_volume_based(conditions, context.volume)
    if isinstance(conditions, CustomerBasedConditions):
        return _evaluate_customer_based(conditions, context.customer, context.now)
    if isinstance(conditions, InventoryBasedConditions):
        return _evaluate_inventory_based(conditions, context.meter)
    if isinstance(conditions, CombinedConditions):
        return all(evaluate_conditions(part, context) for part in conditions.parts())
    return False


def try_parse_conditions(rule_type: str, payload: Any) -> Optional[Conditions]:
    """Parse a payload, returning None instead of raising when it cannot be interpreted."""
    try:
        return parse_conditions(rule_type, payload)
    except MalformedConditionError:
        return None


def evaluate_rule_payload(rule_type: str, payload: Any, context: EvaluationContext) -> bool:
    """
    Parse and evaluate a raw payload, failing closed.

    Unknown rule types and malformed payloads evaluate to False.
    """
    return evaluate_conditions(try_parse_conditions(rule_type, payload), context)
