"""Forms for billing module."""

from __future__ import annotations

from django import forms

from customers.models import Customer, Meter


class PriceQuoteForm(forms.Form):
    """Form for pricing a volume under a tariff from the admin."""

    volume = forms.DecimalField(
        label="Volume (m³)",
        min_value=0,
        max_digits=12,
        decimal_places=3,
    )
    customer = forms.ModelChoiceField(
        queryset=Customer.objects.all(),
        required=False,
        help_text="Customer and meter are both needed for dynamic discounts",
    )
    meter = forms.ModelChoiceField(
        queryset=Meter.objects.select_related("customer"),
        required=False,
    )
    at = forms.DateTimeField(
        label="Priced at",
        required=False,
        help_text="Defaults to now in the utility's timezone",
    )

    def clean(self):
        cleaned_data = super().clean()
        customer = cleaned_data.get("customer")
        meter = cleaned_data.get("meter")

        if meter and customer and meter.customer_id != customer.pk:
            raise forms.ValidationError("The meter does not belong to the selected customer.")

        return cleaned_data


class PriceCurveForm(forms.Form):
    """Form for choosing the volume axis of a price curve."""

    max_volume = forms.DecimalField(
        label="Max volume (m³)",
        required=False,
        max_digits=12,
        decimal_places=3,
    )
    steps = forms.IntegerField(min_value=1, max_value=500, initial=50, required=False)

    def clean_max_volume(self):
        max_volume = self.cleaned_data.get("max_volume")
        if max_volume is not None and max_volume <= 0:
            raise forms.ValidationError("Max volume must be positive.")
        return max_volume
