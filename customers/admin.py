from django.contrib import admin

from billing.services import get_current_tariff, get_customer_discount_stats

from .models import Customer, Meter, Property, PropertyTariff


class MeterInline(admin.TabularInline):
    model = Meter
    extra = 0
    fields = ["serial_number", "property", "meter_type", "meter_model"]


class PropertyTariffInline(admin.TabularInline):
    model = PropertyTariff
    extra = 0
    fields = ["tariff", "effective_from", "effective_to", "is_active"]


@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    list_display = ["name", "utility", "city", "province", "created_at", "updated_at"]
    list_filter = ["utility", "province"]
    search_fields = ["name", "email", "city"]
    readonly_fields = ["created_at", "updated_at"]
    inlines = [MeterInline]
    change_form_template = "admin/customers/customer_change_form.html"

    def changeform_view(self, request, object_id=None, form_url="", extra_context=None):
        """Override to add applied discount totals to context."""
        extra_context = extra_context or {}

        # Only add data when viewing existing customer (not add form)
        if object_id:
            customer = self.get_object(request, object_id)
            if customer:
                extra_context["discount_stats"] = get_customer_discount_stats(customer)

        return super().changeform_view(request, object_id, form_url, extra_context)


@admin.register(Property)
class PropertyAdmin(admin.ModelAdmin):
    list_display = ["name", "utility", "property_type", "current_tariff"]
    list_filter = ["utility", "property_type"]
    search_fields = ["name", "address"]
    inlines = [PropertyTariffInline]

    def current_tariff(self, obj):
        tariff = get_current_tariff(obj)
        return tariff.name if tariff else "None"

    current_tariff.short_description = "Current Tariff"


@admin.register(Meter)
class MeterAdmin(admin.ModelAdmin):
    list_display = ["serial_number", "customer", "property", "meter_type", "meter_model"]
    list_filter = ["meter_type"]
    search_fields = ["serial_number", "customer__name", "meter_model"]


@admin.register(PropertyTariff)
class PropertyTariffAdmin(admin.ModelAdmin):
    list_display = ["property", "tariff", "effective_from", "effective_to", "is_active"]
    list_filter = ["is_active", "tariff"]
    search_fields = ["property__name", "tariff__name"]
    date_hierarchy = "effective_from"
