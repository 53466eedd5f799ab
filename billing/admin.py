from django.contrib import admin

from .models import AppliedDiscount


@admin.register(AppliedDiscount)
class AppliedDiscountAdmin(admin.ModelAdmin):
    """Read-only view of the applied discount ledger."""

    list_display = [
        "applied_at",
        "customer",
        "meter",
        "payment_id",
        "discount_source_type",
        "discount_source_id",
        "original_amount",
        "discount_amount",
        "final_amount",
    ]
    list_filter = ["discount_source_type", "customer__utility"]
    search_fields = ["payment_id", "reading_id", "customer__name", "meter__serial_number"]
    date_hierarchy = "applied_at"
    list_select_related = ["customer", "meter"]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
