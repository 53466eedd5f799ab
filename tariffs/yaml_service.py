"""
YAML import/export service for tariffs.

Provides bulk import and export of tariffs with their tiers, seasonal rates,
bulk discount tiers and dynamic discount rules. Validation matches web
interface validation: every record goes through full_clean(), including the
overlap checks and dynamic rule condition parsing.

YAML Format:
    tariffs:
      - name: "Residential R1"
        utility: "PDAM Tirta Jaya"
        property_type: "residential"
        has_minimum_charge: true
        minimum_charge_amount: 50.00
        tiers:
          - min_volume: 0
            max_volume: 10
            price_per_unit: 1.00
          - min_volume: 10
            max_volume: null
            price_per_unit: 2.50
        seasonal_rates:
          - name: "Dry Season"
            start_date: 2024-06-01
            end_date: 2024-08-31
            adjustment_type: "percentage"
            adjustment_value: 10
        bulk_discounts:
          - min_volume: 100
            max_volume: null
            discount_type: "fixed"
            discount_value: 20
        dynamic_discount_rules:
          - name: "Weekend saver"
            rule_type: "time_based"
            conditions:
              days_of_week: ["Saturday", "Sunday"]
            discount_type: "percentage"
            discount_value: 5
            priority: 10
"""

import datetime
import logging
from decimal import Decimal
from typing import Any

import yaml
from django.core.exceptions import ValidationError
from django.db import transaction

from tariffs.models import BulkDiscountTier, DynamicDiscountRule, SeasonalRate, Tariff, TariffTier
from utilities.models import Utility

logger = logging.getLogger(__name__)

TARIFF_FLAGS = ["is_seasonal", "has_bulk_discount", "has_dynamic_discount"]


class TariffYAMLExporter:
    """Export tariffs to YAML format."""

    def __init__(self, tariffs_queryset):
        """
        Initialize exporter with tariffs queryset.

        Args:
            tariffs_queryset: Django queryset of Tariff objects to export
        """
        self.tariffs = tariffs_queryset.select_related("utility").prefetch_related(
            "tiers",
            "seasonal_rates",
            "bulk_discounts",
            "dynamic_discount_rules",
        )

    def export_to_yaml(self) -> str:
        """
        Export tariffs to YAML string.

        Returns:
            YAML string representation of tariffs
        """

        # Add custom representer for Decimal to preserve precision
        def decimal_representer(dumper, value):
            return dumper.represent_scalar("tag:yaml.org,2002:float", str(value))

        yaml.add_representer(Decimal, decimal_representer)

        data = {"tariffs": [self._serialize_tariff(t) for t in self.tariffs]}
        return yaml.dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True)

    def _serialize_tariff(self, tariff: Tariff) -> dict:
        """Convert tariff instance to dictionary."""
        return {
            "name": tariff.name,
            "utility": tariff.utility.name,
            "property_type": tariff.property_type,
            "description": tariff.description,
            "is_active": tariff.is_active,
            "effective_from": tariff.effective_from,
            "effective_to": tariff.effective_to,
            "has_minimum_charge": tariff.has_minimum_charge,
            "minimum_charge_amount": tariff.minimum_charge_amount,
            "is_seasonal": tariff.is_seasonal,
            "has_bulk_discount": tariff.has_bulk_discount,
            "has_dynamic_discount": tariff.has_dynamic_discount,
            "tiers": [self._serialize_tier(t) for t in tariff.tiers.all()],
            "seasonal_rates": [self._serialize_seasonal_rate(r) for r in tariff.seasonal_rates.all()],
            "bulk_discounts": [self._serialize_bulk_discount(b) for b in tariff.bulk_discounts.all()],
            "dynamic_discount_rules": [
                self._serialize_dynamic_rule(r) for r in tariff.dynamic_discount_rules.all()
            ],
        }

    def _serialize_tier(self, tier: TariffTier) -> dict:
        return {
            "min_volume": tier.min_volume,
            "max_volume": tier.max_volume,
            "price_per_unit": tier.price_per_unit,
        }

    def _serialize_seasonal_rate(self, rate: SeasonalRate) -> dict:
        return {
            "name": rate.name,
            "description": rate.description,
            "start_date": rate.start_date,
            "end_date": rate.end_date,
            "adjustment_type": rate.adjustment_type,
            "adjustment_value": rate.adjustment_value,
            "is_active": rate.is_active,
        }

    def _serialize_bulk_discount(self, tier: BulkDiscountTier) -> dict:
        return {
            "min_volume": tier.min_volume,
            "max_volume": tier.max_volume,
            "discount_type": tier.discount_type,
            "discount_value": tier.discount_value,
            "is_active": tier.is_active,
        }

    def _serialize_dynamic_rule(self, rule: DynamicDiscountRule) -> dict:
        """Convert dynamic discount rule instance to dictionary."""
        return {
            "name": rule.name,
            "description": rule.description,
            "rule_type": rule.rule_type,
            "conditions": rule.conditions,
            "discount_type": rule.discount_type,
            "discount_value": rule.discount_value,
            "priority": rule.priority,
            "is_active": rule.is_active,
            "start_date": rule.start_date,
            "end_date": rule.end_date,
            "max_discount_amount": rule.max_discount_amount,
        }


class TariffYAMLImporter:
    """Import tariffs from YAML format with validation."""

    def __init__(self, yaml_content: str, replace_existing: bool = False):
        """
        Initialize importer with YAML content.

        Args:
            yaml_content: YAML string to parse and import
            replace_existing: If True, replace existing tariffs with same utility+name.
                            If False, skip existing tariffs.
        """
        self.yaml_content = yaml_content
        self.replace_existing = replace_existing
        self.results = {
            "created": [],  # [(tariff, counts), ...]
            "updated": [],  # [(tariff, counts), ...]
            "skipped": [],  # [(tariff_name, reason), ...]
            "errors": [],  # [(tariff_name, error_messages), ...]
        }

    def import_tariffs(self) -> dict:
        """
        Parse and import tariffs from YAML.

        Returns:
            Dictionary with results:
            {
                'created': [(tariff, counts), ...],
                'updated': [(tariff, counts), ...],
                'skipped': [(tariff_name, reason), ...],
                'errors': [(tariff_name, error_messages), ...]
            }
        """
        try:
            data = self._parse_yaml()
            self._validate_schema(data)
        except ValueError as e:
            # Parse or schema errors affect entire file
            self.results["errors"].append(("YAML File", [str(e)]))
            return self.results

        # Import each tariff in its own transaction
        for tariff_data in data["tariffs"]:
            try:
                self._import_single_tariff(tariff_data)
            except (ValueError, TypeError, KeyError) as e:
                tariff_name = tariff_data.get("name", "Unknown")
                logger.warning("Tariff %r could not be imported: %s", tariff_name, e)
                self.results["errors"].append((tariff_name, [f"Invalid data: {e}"]))

        logger.info(
            "Tariff import finished: %d created, %d updated, %d skipped, %d errors",
            len(self.results["created"]),
            len(self.results["updated"]),
            len(self.results["skipped"]),
            len(self.results["errors"]),
        )
        return self.results

    def _parse_yaml(self) -> dict:
        """Parse YAML content with error handling."""
        try:
            data = yaml.safe_load(self.yaml_content)
            if data is None:
                raise ValueError("Empty YAML file")
            return data
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML syntax: {str(e)}")

    def _validate_schema(self, data: dict):
        """Validate top-level YAML structure."""
        if not isinstance(data, dict):
            raise ValueError("YAML must contain a dictionary at top level")

        if "tariffs" not in data:
            raise ValueError("Missing required top-level key: tariffs")

        if not isinstance(data["tariffs"], list):
            raise ValueError("tariffs must be a list")

        if len(data["tariffs"]) == 0:
            raise ValueError("tariffs list cannot be empty")

        for tariff_data in data["tariffs"]:
            if not isinstance(tariff_data, dict):
                raise ValueError("Each tariff must be a dictionary")

    def _import_single_tariff(self, tariff_data: dict):
        """Import a single tariff atomically."""
        tariff_name = tariff_data.get("name", "Unknown")

        # Validate required fields
        errors = []
        if "name" not in tariff_data:
            errors.append("Missing required field: name")
        if "utility" not in tariff_data:
            errors.append("Missing required field: utility")

        if errors:
            self.results["errors"].append((tariff_name, errors))
            return

        # Look up utility
        try:
            utility = Utility.objects.get(name=tariff_data["utility"])
        except Utility.DoesNotExist:
            self.results["errors"].append(
                (tariff_name, [f"Utility '{tariff_data['utility']}' not found"])
            )
            return

        # Check for existing tariff
        existing_tariff = Tariff.objects.filter(utility=utility, name=tariff_name).first()

        if existing_tariff and not self.replace_existing:
            # Skip duplicate
            self.results["skipped"].append(
                (tariff_name, f"Tariff already exists for {utility.name}")
            )
            return

        # Import in transaction (per-tariff atomicity)
        try:
            with transaction.atomic():
                if existing_tariff:
                    existing_tariff.tiers.all().delete()
                    existing_tariff.seasonal_rates.all().delete()
                    existing_tariff.bulk_discounts.all().delete()
                    existing_tariff.dynamic_discount_rules.all().delete()
                    tariff = existing_tariff
                    tariff.deleted_at = None
                    action = "updated"
                else:
                    tariff = Tariff(name=tariff_name, utility=utility)
                    action = "created"

                self._apply_tariff_fields(tariff, tariff_data)
                tariff.full_clean()
                tariff.save()

                counts = self._import_components(tariff, tariff_data)
                self._apply_declared_flags(tariff, tariff_data)

                self.results[action].append((tariff, counts))

        except ValidationError as e:
            # Validation errors from model.clean()
            error_messages = []
            if hasattr(e, "error_dict"):
                for field, errors in e.error_dict.items():
                    for error in errors:
                        error_messages.extend(f"{field}: {message}" for message in error.messages)
            else:
                error_messages = e.messages
            self.results["errors"].append((tariff_name, error_messages))

    def _apply_tariff_fields(self, tariff: Tariff, tariff_data: dict):
        tariff.property_type = tariff_data.get("property_type", "residential")
        tariff.description = tariff_data.get("description") or ""
        tariff.is_active = tariff_data.get("is_active", True)
        tariff.effective_from = self._parse_date(tariff_data.get("effective_from"))
        tariff.effective_to = self._parse_date(tariff_data.get("effective_to"))
        tariff.has_minimum_charge = tariff_data.get("has_minimum_charge", False)
        tariff.minimum_charge_amount = self._parse_decimal(
            tariff_data.get("minimum_charge_amount", 0)
        )
        for flag in TARIFF_FLAGS:
            setattr(tariff, flag, tariff_data.get(flag, False))

    def _apply_declared_flags(self, tariff: Tariff, tariff_data: dict):
        """
        Restore overlay flags the YAML sets explicitly.

        Saving an overlay switches its flag on, so a tariff exported with an
        overlay category switched off would otherwise come back switched on.
        """
        declared = {flag: tariff_data[flag] for flag in TARIFF_FLAGS if flag in tariff_data}
        if declared:
            Tariff.objects.filter(pk=tariff.pk).update(**declared)
            for flag, value in declared.items():
                setattr(tariff, flag, value)

    def _import_components(self, tariff: Tariff, tariff_data: dict) -> dict:
        """
        Import tiers and overlays for a tariff.

        Returns:
            Dictionary with counts: {'tiers': N, 'seasonal': N, 'bulk': N, 'dynamic': N}
        """
        counts = {"tiers": 0, "seasonal": 0, "bulk": 0, "dynamic": 0}

        for tier_data in tariff_data.get("tiers") or []:
            self._create_tier(tariff, tier_data)
            counts["tiers"] += 1

        for rate_data in tariff_data.get("seasonal_rates") or []:
            self._create_seasonal_rate(tariff, rate_data)
            counts["seasonal"] += 1

        for bulk_data in tariff_data.get("bulk_discounts") or []:
            self._create_bulk_discount(tariff, bulk_data)
            counts["bulk"] += 1

        for rule_data in tariff_data.get("dynamic_discount_rules") or []:
            self._create_dynamic_rule(tariff, rule_data)
            counts["dynamic"] += 1

        return counts

    def _create_tier(self, tariff: Tariff, tier_data: dict):
        tier = TariffTier(
            tariff=tariff,
            min_volume=self._parse_decimal(tier_data["min_volume"]),
            max_volume=self._parse_decimal(tier_data.get("max_volume")),
            price_per_unit=self._parse_decimal(tier_data["price_per_unit"]),
        )
        tier.full_clean()
        tier.save()

    def _create_seasonal_rate(self, tariff: Tariff, rate_data: dict):
        rate = SeasonalRate(
            tariff=tariff,
            name=rate_data["name"],
            description=rate_data.get("description") or "",
            start_date=self._parse_date(rate_data["start_date"]),
            end_date=self._parse_date(rate_data["end_date"]),
            adjustment_type=rate_data.get("adjustment_type", "percentage"),
            adjustment_value=self._parse_decimal(rate_data["adjustment_value"]),
            is_active=rate_data.get("is_active", True),
        )
        # Runs the overlap check against rates already imported
        rate.full_clean()
        rate.save()

    def _create_bulk_discount(self, tariff: Tariff, bulk_data: dict):
        tier = BulkDiscountTier(
            tariff=tariff,
            min_volume=self._parse_decimal(bulk_data["min_volume"]),
            max_volume=self._parse_decimal(bulk_data.get("max_volume")),
            discount_type=bulk_data.get("discount_type", "percentage"),
            discount_value=self._parse_decimal(bulk_data["discount_value"]),
            is_active=bulk_data.get("is_active", True),
        )
        tier.full_clean()
        tier.save()

    def _create_dynamic_rule(self, tariff: Tariff, rule_data: dict):
        """Create a dynamic rule; its conditions are parsed by full_clean()."""
        rule = DynamicDiscountRule(
            tariff=tariff,
            name=rule_data["name"],
            description=rule_data.get("description") or "",
            rule_type=rule_data["rule_type"],
            conditions=self._jsonable(rule_data.get("conditions") or {}),
            discount_type=rule_data.get("discount_type", "percentage"),
            discount_value=self._parse_decimal(rule_data["discount_value"]),
            priority=rule_data.get("priority", 0),
            is_active=rule_data.get("is_active", True),
            start_date=self._parse_date(rule_data.get("start_date")),
            end_date=self._parse_date(rule_data.get("end_date")),
            max_discount_amount=self._parse_decimal(rule_data.get("max_discount_amount")),
        )
        rule.full_clean()
        rule.save()

    def _jsonable(self, value: Any) -> Any:
        """Turn YAML-native dates inside a conditions payload back into ISO strings."""
        if isinstance(value, dict):
            return {k: self._jsonable(v) for k, v in value.items()}
        if isinstance(value, list):
            return [self._jsonable(v) for v in value]
        if isinstance(value, (datetime.date, datetime.datetime)):
            return value.isoformat()
        return value

    def _parse_decimal(self, value: Any) -> Decimal | None:
        if value is None or value == "":
            return None
        try:
            return Decimal(str(value))
        except ArithmeticError:
            raise ValueError(f"Invalid number: '{value}'")

    def _parse_date(self, value: Any) -> datetime.date | None:
        """Parse a date given as YYYY-MM-DD text or as a YAML date."""
        if value is None or value == "":
            return None
        if isinstance(value, datetime.datetime):
            return value.date()
        if isinstance(value, datetime.date):
            return value

        try:
            return datetime.datetime.strptime(value, "%Y-%m-%d").date()
        except (ValueError, TypeError):
            raise ValueError(f"Invalid date format: '{value}'. Expected YYYY-MM-DD or null")
