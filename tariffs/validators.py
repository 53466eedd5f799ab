"""
Write-time validation shared by tariff overlays and tariff assignments.

Range checks defer to billing.core.ranges for the overlap rule itself and
only add owner scoping, active-record filtering and Django error reporting.
"""

from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import transaction

from billing.core.ranges import Span, find_overlaps


def _conflicting_records(queryset, start_field, end_field, start, end, exclude_pk=None):
    records = {obj.pk: obj for obj in queryset.filter(is_active=True)}
    spans = [
        Span(id=pk, start=getattr(obj, start_field), end=getattr(obj, end_field))
        for pk, obj in records.items()
    ]
    return [records[span.id] for span in find_overlaps(spans, start, end, exclude_pk)]


def has_range_overlap(queryset, start_field, end_field, start, end, exclude_pk=None) -> bool:
    """
    Check whether a candidate range conflicts with active records in queryset.

    Args:
        queryset: records of a single owner (one tariff, one property)
        start_field: name of the inclusive start field on the records
        end_field: name of the inclusive end field (null means open-ended)
        start: candidate start
        end: candidate end, None for open-ended
        exclude_pk: primary key of the record being updated

    Returns:
        True if any active record other than exclude_pk overlaps the candidate
    """
    return bool(_conflicting_records(queryset, start_field, end_field, start, end, exclude_pk))


def validate_range_non_overlap(
    queryset, start_field, end_field, start, end, exclude_pk=None, label="ranges"
) -> None:
    """
    Reject a candidate range that overlaps an active record of the same owner.

    Raises:
        ValidationError: If the range is inverted or conflicts with another
            active record. The message names the conflicting window.
    """
    if start is None:
        return
    if end is not None and end < start:
        raise ValidationError({end_field: f"{end_field} must not be earlier than {start_field}."})

    conflicts = _conflicting_records(queryset, start_field, end_field, start, end, exclude_pk)
    if conflicts:
        other = conflicts[0]
        other_end = getattr(other, end_field)
        window = f"{getattr(other, start_field)} to {'open-ended' if other_end is None else other_end}"
        raise ValidationError(
            f"Overlapping {label} are not allowed: conflicts with {other} ({window})."
        )


def validate_adjustment(adjustment_type: str, value, field: str) -> None:
    """Reject negative discount values and percentages above 100."""
    if value is None:
        return
    if value < 0:
        raise ValidationError({field: "Discount value must not be negative."})
    if adjustment_type == "percentage" and value > Decimal("100"):
        raise ValidationError({field: "Percentage discounts cannot exceed 100."})


class NonOverlappingRangeMixin:
    """
    Model mixin keeping the active ranges of one owner free of overlaps.

    Subclasses name the owner foreign key and the range fields. The check runs
    in clean() for forms and again in save() while the owner row is locked, so
    two writers for the same owner cannot both pass the check.
    """

    range_owner_field: str
    range_start_field: str
    range_end_field: str
    range_label: str = "ranges"

    def _range_owner_id(self):
        return getattr(self, f"{self.range_owner_field}_id")

    def validate_range(self) -> None:
        owner_id = self._range_owner_id()
        if owner_id is None or not self.is_active:
            return
        siblings = type(self)._default_manager.filter(**{f"{self.range_owner_field}_id": owner_id})
        validate_range_non_overlap(
            siblings,
            self.range_start_field,
            self.range_end_field,
            getattr(self, self.range_start_field),
            getattr(self, self.range_end_field),
            exclude_pk=self.pk,
            label=self.range_label,
        )

    def clean(self):
        super().clean()
        self.validate_range()

    def save(self, *args, **kwargs):
        owner_model = self._meta.get_field(self.range_owner_field).related_model
        with transaction.atomic():
            # Serialize writers of the same owner
            list(owner_model._default_manager.select_for_update().filter(pk=self._range_owner_id()))
            self.validate_range()
            super().save(*args, **kwargs)


class TariffOverlayMixin:
    """
    Model mixin keeping a tariff's overlay flag in step with its overlays.

    Creating an active overlay switches the flag on; deleting the last one
    switches it off. Updates never touch the flag, so a category switched off
    by hand stays off while its overlays are edited.
    """

    tariff_flag: str

    def _set_tariff_flag(self, value: bool) -> None:
        type(self)._meta.get_field("tariff").related_model._default_manager.filter(
            pk=self.tariff_id
        ).exclude(**{self.tariff_flag: value}).update(**{self.tariff_flag: value})
        if self._meta.get_field("tariff").is_cached(self):
            setattr(self.tariff, self.tariff_flag, value)

    def save(self, *args, **kwargs):
        adding = self._state.adding
        super().save(*args, **kwargs)
        if adding and self.is_active:
            self._set_tariff_flag(True)

    def delete(self, *args, **kwargs):
        with transaction.atomic():
            result = super().delete(*args, **kwargs)
            if not type(self)._default_manager.filter(tariff_id=self.tariff_id).exists():
                self._set_tariff_flag(False)
        return result
