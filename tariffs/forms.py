"""
Forms for tariff import/export and dynamic discount rules.
"""

from django import forms

from .models import DynamicDiscountRule


class TariffYAMLUploadForm(forms.Form):
    """Form for uploading YAML tariff files."""

    yaml_file = forms.FileField(
        label="YAML File",
        help_text="Upload a .yaml or .yml file with tariff definitions (max 10MB)",
        widget=forms.FileInput(attrs={"accept": ".yaml,.yml"}),
    )

    replace_existing = forms.BooleanField(
        required=False,
        initial=False,
        label="Replace existing tariffs",
        help_text="If checked, tariffs with the same utility+name will be replaced. "
        "Otherwise, they will be skipped with a warning.",
    )

    def clean_yaml_file(self):
        """Validate file extension and size."""
        yaml_file = self.cleaned_data["yaml_file"]

        # Check file extension
        if not yaml_file.name.endswith((".yaml", ".yml")):
            raise forms.ValidationError("File must have .yaml or .yml extension")

        # Check file size (max 10MB)
        if yaml_file.size > 10 * 1024 * 1024:
            raise forms.ValidationError("File size exceeds 10MB limit")

        return yaml_file


CONDITIONS_HELP = (
    "JSON object, keyed by rule type. "
    'time_based: {"time_range": {"start": 8, "end": 17}, "days_of_week": ["Monday"], '
    '"months": [6, 7], "specific_dates": ["2024-08-17"]}. '
    'volume_based: {"min_volume": 100, "max_volume": 500}. '
    'customer_based: {"customer_since": "2020-01-01", "city": "...", "province": "..."}. '
    'inventory_based: {"meter_type": "...", "meter_model": "..."}. '
    'combined: {"time_based": {...}, "volume_based": {...}, ...}.'
)


class DynamicDiscountRuleForm(forms.ModelForm):
    """Admin form for dynamic discount rules with a guide to the conditions payload."""

    class Meta:
        model = DynamicDiscountRule
        fields = "__all__"
        help_texts = {"conditions": CONDITIONS_HELP}
