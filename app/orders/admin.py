"""Django admin for orders (read-mostly; status changes go through services)."""

from django.contrib import admin

from orders.models import Order


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "buyer",
        "resource",
        "amount",
        "currency",
        "status",
        "payment_method",
        "expires_at",
        "created_at",
    ]
    list_filter = ["status", "payment_method", "cancel_reason"]
    search_fields = ["id", "buyer__username", "buyer__email"]
    raw_id_fields = ["buyer", "resource"]
    readonly_fields = [
        "id",
        "amount",
        "currency",
        "status",
        "paid_at",
        "completed_at",
        "cancelled_at",
        "refunded_at",
        "cancel_reason",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"

    def has_delete_permission(self, request, obj=None):
        return False
