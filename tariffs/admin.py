from django.contrib import admin, messages
from django.http import HttpResponse, JsonResponse
from django.shortcuts import get_object_or_404, render
from django.urls import path

from billing.chart_data import get_price_curve_chart_data
from billing.exceptions import BillingServiceError
from billing.forms import PriceCurveForm, PriceQuoteForm
from billing.services import calculate_price

from .forms import DynamicDiscountRuleForm, TariffYAMLUploadForm
from .models import BulkDiscountTier, DynamicDiscountRule, SeasonalRate, Tariff, TariffTier
from .yaml_service import TariffYAMLExporter, TariffYAMLImporter


class TariffTierInline(admin.TabularInline):
    model = TariffTier
    extra = 1
    fields = ["min_volume", "max_volume", "price_per_unit"]


class SeasonalRateInline(admin.TabularInline):
    model = SeasonalRate
    extra = 0
    fields = ["name", "start_date", "end_date", "adjustment_type", "adjustment_value", "is_active"]


class BulkDiscountTierInline(admin.TabularInline):
    model = BulkDiscountTier
    extra = 0
    fields = ["min_volume", "max_volume", "discount_type", "discount_value", "is_active"]


class DynamicDiscountRuleInline(admin.StackedInline):
    model = DynamicDiscountRule
    form = DynamicDiscountRuleForm
    extra = 0
    fields = [
        ("name", "rule_type", "priority", "is_active"),
        "conditions",
        ("discount_type", "discount_value", "max_discount_amount"),
        ("start_date", "end_date"),
    ]


@admin.register(Tariff)
class TariffAdmin(admin.ModelAdmin):
    list_display = [
        "name",
        "utility",
        "property_type",
        "is_active",
        "tier_count",
        "overlays",
    ]
    list_filter = ["utility", "property_type", "is_active"]
    search_fields = ["name", "utility__name"]
    readonly_fields = ["created_at", "updated_at"]
    inlines = [
        TariffTierInline,
        SeasonalRateInline,
        BulkDiscountTierInline,
        DynamicDiscountRuleInline,
    ]
    change_list_template = "admin/tariffs/tariff_changelist.html"
    change_form_template = "admin/tariffs/tariff_change_form.html"
    actions = ["export_selected_tariffs_to_yaml", "soft_delete_selected"]

    def get_queryset(self, request):
        return super().get_queryset(request).live().select_related("utility")

    def tier_count(self, obj):
        return obj.tiers.count()

    tier_count.short_description = "Tiers"

    def overlays(self, obj):
        flags = []
        if obj.has_minimum_charge:
            flags.append("MIN")
        if obj.is_seasonal:
            flags.append("SEAS")
        if obj.has_bulk_discount:
            flags.append("BULK")
        if obj.has_dynamic_discount:
            flags.append("DYN")
        return ", ".join(flags) if flags else "None"

    overlays.short_description = "Overlays"

    def get_urls(self):
        """Add custom URLs for import/export and pricing views."""
        urls = super().get_urls()
        custom_urls = [
            path(
                "import/",
                self.admin_site.admin_view(self.import_tariffs_view),
                name="tariffs_tariff_import",
            ),
            path(
                "export/",
                self.admin_site.admin_view(self.export_tariffs_view),
                name="tariffs_tariff_export",
            ),
            path(
                "<int:tariff_id>/quote/",
                self.admin_site.admin_view(self.price_quote_view),
                name="tariffs_tariff_quote",
            ),
            path(
                "<int:tariff_id>/price-curve/",
                self.admin_site.admin_view(self.price_curve_view),
                name="tariffs_tariff_price_curve",
            ),
        ]
        return custom_urls + urls

    def import_tariffs_view(self, request):
        """Handle YAML import via file upload."""
        if request.method == "POST":
            form = TariffYAMLUploadForm(request.POST, request.FILES)
            if form.is_valid():
                yaml_file = form.cleaned_data["yaml_file"]
                replace_existing = form.cleaned_data["replace_existing"]

                # Read file content
                yaml_content = yaml_file.read().decode("utf-8")

                # Import tariffs
                importer = TariffYAMLImporter(yaml_content, replace_existing=replace_existing)
                results = importer.import_tariffs()

                # Render results page
                context = {
                    **self.admin_site.each_context(request),
                    "results": results,
                    "opts": self.model._meta,
                    "title": "YAML Import Results",
                }
                return render(request, "admin/tariffs/tariff_import_result.html", context)
        else:
            form = TariffYAMLUploadForm()

        context = {
            **self.admin_site.each_context(request),
            "form": form,
            "opts": self.model._meta,
            "title": "Import Tariffs from YAML",
        }
        return render(request, "admin/tariffs/tariff_import.html", context)

    def export_tariffs_view(self, request):
        """Export all live tariffs as YAML download."""
        exporter = TariffYAMLExporter(Tariff.objects.live())
        yaml_str = exporter.export_to_yaml()

        response = HttpResponse(yaml_str, content_type="application/x-yaml")
        response["Content-Disposition"] = 'attachment; filename="tariffs.yaml"'
        return response

    def price_quote_view(self, request, tariff_id):
        """Price a volume under the tariff and show the breakdown."""
        tariff = get_object_or_404(Tariff.objects.live(), pk=tariff_id)
        breakdown = None
        error = None

        form = PriceQuoteForm(request.POST or None)
        if request.method == "POST" and form.is_valid():
            customer = form.cleaned_data["customer"]
            meter = form.cleaned_data["meter"]
            try:
                breakdown = calculate_price(
                    tariff.pk,
                    form.cleaned_data["volume"],
                    customer_id=customer.pk if customer else None,
                    meter_id=meter.pk if meter else None,
                    now=form.cleaned_data["at"],
                )
            except BillingServiceError as e:
                error = str(e)

        context = {
            **self.admin_site.each_context(request),
            "form": form,
            "tariff": tariff,
            "breakdown": breakdown,
            "error": error,
            "opts": self.model._meta,
            "title": f"Price quote: {tariff.name}",
        }
        return render(request, "admin/tariffs/tariff_quote.html", context)

    def price_curve_view(self, request, tariff_id):
        """Return the tariff's price curve as JSON for the change form chart."""
        tariff = get_object_or_404(
            Tariff.objects.live().prefetch_related("tiers", "seasonal_rates", "bulk_discounts"),
            pk=tariff_id,
        )
        form = PriceCurveForm(request.GET or None)
        if request.GET and not form.is_valid():
            return JsonResponse({"errors": form.errors.get_json_data()}, status=400)

        max_volume = form.cleaned_data.get("max_volume") if request.GET else None
        steps = (form.cleaned_data.get("steps") if request.GET else None) or 50
        return JsonResponse(get_price_curve_chart_data(tariff, max_volume=max_volume, steps=steps))

    @admin.action(description="Export selected tariffs to YAML")
    def export_selected_tariffs_to_yaml(self, request, queryset):
        """Export selected tariffs as YAML download."""
        exporter = TariffYAMLExporter(queryset)
        yaml_str = exporter.export_to_yaml()

        response = HttpResponse(yaml_str, content_type="application/x-yaml")
        response["Content-Disposition"] = 'attachment; filename="tariffs_selected.yaml"'
        return response

    @admin.action(description="Soft delete selected tariffs")
    def soft_delete_selected(self, request, queryset):
        count = 0
        for tariff in queryset:
            tariff.soft_delete()
            count += 1
        self.message_user(request, f"Soft deleted {count} tariff(s).", messages.SUCCESS)


@admin.register(SeasonalRate)
class SeasonalRateAdmin(admin.ModelAdmin):
    list_display = [
        "name",
        "tariff",
        "start_date",
        "end_date",
        "adjustment_type",
        "adjustment_value",
        "is_active",
    ]
    list_filter = ["tariff", "adjustment_type", "is_active"]
    search_fields = ["name", "tariff__name"]


@admin.register(BulkDiscountTier)
class BulkDiscountTierAdmin(admin.ModelAdmin):
    list_display = [
        "tariff",
        "min_volume",
        "max_volume",
        "discount_type",
        "discount_value",
        "is_active",
    ]
    list_filter = ["tariff", "discount_type", "is_active"]
    search_fields = ["tariff__name"]


@admin.register(DynamicDiscountRule)
class DynamicDiscountRuleAdmin(admin.ModelAdmin):
    form = DynamicDiscountRuleForm
    list_display = [
        "name",
        "tariff",
        "rule_type",
        "priority",
        "discount_type",
        "discount_value",
        "validity",
        "is_active",
    ]
    list_filter = ["tariff", "rule_type", "is_active"]
    search_fields = ["name", "tariff__name"]

    def validity(self, obj):
        if obj.start_date or obj.end_date:
            start = obj.start_date or "…"
            end = obj.end_date or "…"
            return f"{start} - {end}"
        return "Always"

    validity.short_description = "Validity"
