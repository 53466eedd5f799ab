from django.db import models

from tariffs.models import PROPERTY_TYPE_CHOICES
from tariffs.validators import NonOverlappingRangeMixin


class Customer(models.Model):
    """
    Represents a water customer of a utility.

    Only the attributes read by customer-based discount rules live here.
    """

    utility = models.ForeignKey(
        "utilities.Utility",
        on_delete=models.CASCADE,
        related_name="customers",
        help_text="Utility serving this customer",
    )
    name = models.CharField(max_length=200, help_text="Name of the customer")
    email = models.EmailField(blank=True)
    city = models.CharField(max_length=100, blank=True)
    province = models.CharField(max_length=100, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name


class Property(models.Model):
    """A serviced property. Tariffs are assigned to properties over time."""

    utility = models.ForeignKey(
        "utilities.Utility",
        on_delete=models.CASCADE,
        related_name="properties",
    )
    name = models.CharField(max_length=200)
    property_type = models.CharField(
        max_length=20, choices=PROPERTY_TYPE_CHOICES, default="residential"
    )
    address = models.TextField(blank=True)

    class Meta:
        verbose_name_plural = "Properties"
        ordering = ["name"]

    def __str__(self):
        return self.name


class Meter(models.Model):
    """
    A water meter installed for a customer.

    meter_type and meter_model are read by inventory-based discount rules.
    """

    customer = models.ForeignKey(Customer, on_delete=models.CASCADE, related_name="meters")
    property = models.ForeignKey(
        Property,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="meters",
    )
    serial_number = models.CharField(max_length=100, unique=True)
    meter_type = models.CharField(max_length=50, blank=True, help_text="e.g., prepaid, postpaid")
    meter_model = models.CharField(max_length=100, blank=True)

    class Meta:
        ordering = ["serial_number"]

    def __str__(self):
        return f"{self.serial_number} ({self.customer.name})"


class PropertyTariff(NonOverlappingRangeMixin, models.Model):
    """
    Assignment of a tariff to a property for a window of dates.

    effective_to is inclusive; null means the assignment is open-ended.
    Active assignments of one property may not overlap each other.
    """

    range_owner_field = "property"
    range_start_field = "effective_from"
    range_end_field = "effective_to"
    range_label = "tariff assignments"

    property = models.ForeignKey(
        Property,
        on_delete=models.CASCADE,
        related_name="tariff_assignments",
    )
    tariff = models.ForeignKey(
        "tariffs.Tariff",
        on_delete=models.CASCADE,
        related_name="property_assignments",
    )
    effective_from = models.DateField(help_text="First day the tariff applies to the property")
    effective_to = models.DateField(
        null=True,
        blank=True,
        help_text="Last day the tariff applies (null if current)",
    )
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["property", "-effective_from"]

    def __str__(self):
        return f"{self.property.name} - {self.tariff.name} (from {self.effective_from})"
