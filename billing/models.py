from django.db import models


class AppliedDiscount(models.Model):
    """
    Ledger row for a discount actually applied to a billed transaction.

    Rows are append-only: once written they cannot be updated. A payment can
    carry a given discount source at most once.
    """

    SOURCE_TYPE_CHOICES = [
        ("seasonal_rate", "Seasonal rate"),
        ("bulk_discount", "Bulk discount"),
        ("dynamic_discount", "Dynamic discount"),
    ]

    customer = models.ForeignKey(
        "customers.Customer",
        on_delete=models.PROTECT,
        related_name="applied_discounts",
    )
    meter = models.ForeignKey(
        "customers.Meter",
        on_delete=models.PROTECT,
        related_name="applied_discounts",
    )
    reading_id = models.CharField(
        max_length=64, null=True, blank=True, help_text="External meter reading reference"
    )
    payment_id = models.CharField(
        max_length=64, null=True, blank=True, help_text="External payment reference"
    )
    discount_source_type = models.CharField(max_length=20, choices=SOURCE_TYPE_CHOICES)
    discount_source_id = models.PositiveIntegerField(
        help_text="Primary key of the seasonal rate, bulk tier or dynamic rule"
    )
    original_amount = models.DecimalField(
        max_digits=14, decimal_places=4, help_text="Running price before this discount"
    )
    discount_amount = models.DecimalField(
        max_digits=14,
        decimal_places=4,
        help_text="Amount actually deducted; never more than original_amount",
    )
    final_amount = models.DecimalField(
        max_digits=14, decimal_places=4, help_text="Running price after this discount"
    )
    applied_at = models.DateTimeField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-applied_at", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["payment_id", "discount_source_type", "discount_source_id"],
                name="unique_discount_source_per_payment",
            )
        ]

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Applied discounts are immutable once recorded")
        super().save(*args, **kwargs)

    def __str__(self):
        return (
            f"{self.get_discount_source_type_display()} #{self.discount_source_id} "
            f"-{self.discount_amount} ({self.customer.name})"
        )
