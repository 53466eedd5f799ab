from django.contrib import admin

from .models import Utility


@admin.register(Utility)
class UtilityAdmin(admin.ModelAdmin):
    list_display = ["name", "timezone", "tariff_count", "customer_count"]
    search_fields = ["name"]

    def tariff_count(self, obj):
        return obj.tariffs.filter(deleted_at__isnull=True).count()

    tariff_count.short_description = "Tariffs"

    def customer_count(self, obj):
        return obj.customers.count()

    customer_count.short_description = "Customers"
