from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from billing.core.conditions import MalformedConditionError, parse_conditions

from .validators import NonOverlappingRangeMixin, TariffOverlayMixin, validate_adjustment

PROPERTY_TYPE_CHOICES = [
    ("residential", "Residential"),
    ("commercial", "Commercial"),
    ("industrial", "Industrial"),
    ("social", "Social"),
    ("government", "Government"),
]

ADJUSTMENT_TYPE_CHOICES = [
    ("percentage", "Percentage"),
    ("fixed", "Fixed amount"),
]


class TariffQuerySet(models.QuerySet):
    def live(self):
        """Tariffs that have not been soft-deleted."""
        return self.filter(deleted_at__isnull=True)


class Tariff(models.Model):
    """
    Represents a water tariff for one property type of a utility.

    A tariff prices consumption through volume tiers. Seasonal rates, bulk
    discount tiers and dynamic discount rules can be layered on top; each
    overlay category is only consulted when its flag is set.
    """

    name = models.CharField(max_length=200, help_text="Name of the tariff (e.g., Residential R1)")
    utility = models.ForeignKey(
        "utilities.Utility",
        on_delete=models.CASCADE,
        related_name="tariffs",
        help_text="Utility publishing this tariff",
    )
    property_type = models.CharField(
        max_length=20,
        choices=PROPERTY_TYPE_CHOICES,
        default="residential",
        help_text="Property type this tariff is meant for",
    )
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    effective_from = models.DateField(null=True, blank=True)
    effective_to = models.DateField(
        null=True, blank=True, help_text="Last day the tariff applies. Null = open-ended."
    )
    has_minimum_charge = models.BooleanField(default=False)
    minimum_charge_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=0,
        validators=[MinValueValidator(0)],
        help_text="Floor applied to the tiered price when has_minimum_charge is set",
    )
    is_seasonal = models.BooleanField(default=False, help_text="Apply seasonal rates")
    has_bulk_discount = models.BooleanField(default=False, help_text="Apply bulk discount tiers")
    has_dynamic_discount = models.BooleanField(
        default=False, help_text="Apply dynamic discount rules"
    )
    deleted_at = models.DateTimeField(null=True, blank=True, editable=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = TariffQuerySet.as_manager()

    class Meta:
        ordering = ["utility__name", "name"]
        unique_together = [["utility", "name"]]

    def clean(self):
        if self.effective_from and self.effective_to and self.effective_to < self.effective_from:
            raise ValidationError(
                {"effective_to": "Effective end date must be on or after the start date."}
            )

    def soft_delete(self):
        self.deleted_at = timezone.now()
        self.save(update_fields=["deleted_at", "updated_at"])

    def __str__(self):
        return f"{self.name} ({self.utility.name})"


class TariffTier(models.Model):
    """
    A volume band of a tariff, priced per unit (m³).

    Tiers are read in ascending min_volume and are expected to be contiguous.
    """

    tariff = models.ForeignKey(
        Tariff,
        on_delete=models.CASCADE,
        related_name="tiers",
        help_text="Tariff this tier belongs to",
    )
    min_volume = models.DecimalField(
        max_digits=12, decimal_places=3, validators=[MinValueValidator(0)]
    )
    max_volume = models.DecimalField(
        max_digits=12,
        decimal_places=3,
        null=True,
        blank=True,
        help_text="Upper bound of the band. Null = unbounded.",
    )
    price_per_unit = models.DecimalField(
        max_digits=12, decimal_places=4, validators=[MinValueValidator(0)]
    )

    class Meta:
        ordering = ["tariff", "min_volume"]

    def clean(self):
        if (
            self.max_volume is not None
            and self.min_volume is not None
            and self.max_volume <= self.min_volume
        ):
            raise ValidationError({"max_volume": "Maximum volume must exceed minimum volume."})

    def __str__(self):
        upper = "∞" if self.max_volume is None else self.max_volume
        return f"{self.tariff.name} [{self.min_volume}, {upper}) @ {self.price_per_unit}"


class SeasonalRate(NonOverlappingRangeMixin, TariffOverlayMixin, models.Model):
    """
    A date-windowed price adjustment of a tariff.

    Both dates are inclusive. Active seasonal rates of one tariff may not
    overlap each other.
    """

    range_owner_field = "tariff"
    range_start_field = "start_date"
    range_end_field = "end_date"
    range_label = "seasonal rates"
    tariff_flag = "is_seasonal"

    tariff = models.ForeignKey(Tariff, on_delete=models.CASCADE, related_name="seasonal_rates")
    name = models.CharField(max_length=200, help_text="Name of the season (e.g., Dry Season)")
    description = models.TextField(blank=True)
    start_date = models.DateField()
    end_date = models.DateField()
    adjustment_type = models.CharField(
        max_length=10, choices=ADJUSTMENT_TYPE_CHOICES, default="percentage"
    )
    adjustment_value = models.DecimalField(max_digits=12, decimal_places=4)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["tariff", "start_date"]

    def clean(self):
        super().clean()
        validate_adjustment(self.adjustment_type, self.adjustment_value, "adjustment_value")

    def __str__(self):
        return f"{self.tariff.name} - {self.name}"


class BulkDiscountTier(NonOverlappingRangeMixin, TariffOverlayMixin, models.Model):
    """
    A discount for consumption within a volume range.

    Both bounds are inclusive and a null max_volume is unbounded. Active bulk
    tiers of one tariff may not overlap each other.
    """

    range_owner_field = "tariff"
    range_start_field = "min_volume"
    range_end_field = "max_volume"
    range_label = "volume ranges"
    tariff_flag = "has_bulk_discount"

    tariff = models.ForeignKey(Tariff, on_delete=models.CASCADE, related_name="bulk_discounts")
    min_volume = models.DecimalField(
        max_digits=12, decimal_places=3, validators=[MinValueValidator(0)]
    )
    max_volume = models.DecimalField(
        max_digits=12,
        decimal_places=3,
        null=True,
        blank=True,
        help_text="Upper bound (inclusive). Null = unbounded.",
    )
    discount_type = models.CharField(
        max_length=10, choices=ADJUSTMENT_TYPE_CHOICES, default="percentage"
    )
    discount_value = models.DecimalField(max_digits=12, decimal_places=4)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["tariff", "min_volume"]

    def clean(self):
        super().clean()
        validate_adjustment(self.discount_type, self.discount_value, "discount_value")

    def __str__(self):
        upper = "∞" if self.max_volume is None else self.max_volume
        return f"{self.tariff.name} bulk [{self.min_volume}, {upper}]"


class DynamicDiscountRule(TariffOverlayMixin, models.Model):
    """
    A discount gated by conditions on time, volume, customer or meter.

    The conditions payload is interpreted according to rule_type (see
    billing.core.conditions) and is rejected on save if it does not fit.
    Rules may overlap freely; the highest priority matching rule wins.
    """

    RULE_TYPE_CHOICES = [
        ("time_based", "Time based"),
        ("volume_based", "Volume based"),
        ("customer_based", "Customer based"),
        ("inventory_based", "Inventory based"),
        ("combined", "Combined"),
    ]

    tariff_flag = "has_dynamic_discount"

    tariff = models.ForeignKey(
        Tariff, on_delete=models.CASCADE, related_name="dynamic_discount_rules"
    )
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    rule_type = models.CharField(max_length=20, choices=RULE_TYPE_CHOICES)
    conditions = models.JSONField(default=dict, blank=True)
    discount_type = models.CharField(
        max_length=10, choices=ADJUSTMENT_TYPE_CHOICES, default="percentage"
    )
    discount_value = models.DecimalField(max_digits=12, decimal_places=4)
    priority = models.IntegerField(default=0, help_text="Higher priority rules are tried first")
    is_active = models.BooleanField(default=True)
    start_date = models.DateField(null=True, blank=True)
    end_date = models.DateField(null=True, blank=True)
    max_discount_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(0)],
        help_text="Cap on the computed discount. Null = no cap.",
    )

    class Meta:
        ordering = ["tariff", "-priority", "name"]

    def validate_conditions(self):
        try:
            parse_conditions(self.rule_type, self.conditions)
        except MalformedConditionError as e:
            raise ValidationError({"conditions": str(e)})

    def clean(self):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValidationError({"end_date": "End date must be on or after the start date."})
        validate_adjustment(self.discount_type, self.discount_value, "discount_value")
        self.validate_conditions()

    def save(self, *args, **kwargs):
        self.validate_conditions()
        super().save(*args, **kwargs)

    @property
    def parsed_conditions(self):
        return parse_conditions(self.rule_type, self.conditions)

    def __str__(self):
        return f"{self.tariff.name} - {self.name} (priority {self.priority})"
