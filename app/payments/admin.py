"""
Payment admin configuration.

Registers payment domain models with the Django admin. Transactions,
commission records, settlement entries and webhook events are records of
what happened and are read-only; provider configuration, commission rules
and payout configs are edited here.
"""

from django.contrib import admin

from payments.models import (
    ChainConfig,
    CommissionRecord,
    CommissionRule,
    HostedCheckoutConfig,
    PaymentTransaction,
    SettlementEntry,
    UserPayoutConfig,
    WebhookEvent,
)
from payments.state_machines import WebhookEventStatus
from payments.tasks import process_webhook_event


class ReadOnlyAdminMixin:
    """Records nobody edits by hand."""

    def has_add_permission(self, request, obj=None) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        return False


@admin.register(PaymentTransaction)
class PaymentTransactionAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    """
    Admin configuration for PaymentTransaction.

    Status changes go through the settlement coordinator, never the admin.
    """

    list_display = [
        "id",
        "order_id",
        "buyer",
        "payment_method",
        "status",
        "settlement_status",
        "amount",
        "currency",
        "created_at",
    ]
    list_filter = ["status", "settlement_status", "provider", "payment_method", "created_at"]
    search_fields = ["id", "order__id", "provider_ref", "external_ref", "deposit_address"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (None, {"fields": ("id", "order", "buyer", "payment_method", "provider", "status")}),
        ("Amount", {"fields": ("amount", "currency")}),
        (
            "Provider",
            {"fields": ("provider_ref", "external_ref", "refund_ref", "deposit_address", "payment_url")},
        ),
        ("Settlement", {"fields": ("settlement_status", "settlement_error", "settled_at")}),
        ("Failure", {"fields": ("failure_reason",), "classes": ("collapse",)}),
        ("Gateway Response", {"fields": ("gateway_response",), "classes": ("collapse",)}),
        (
            "Timestamps",
            {
                "fields": (
                    "created_at",
                    "updated_at",
                    "completed_at",
                    "failed_at",
                    "cancelled_at",
                    "refunded_at",
                ),
                "classes": ("collapse",),
            },
        ),
    )


@admin.register(CommissionRule)
class CommissionRuleAdmin(admin.ModelAdmin):
    """Commission terms; the newest active matching rule wins."""

    list_display = ["id", "name", "rule_type", "rate", "min_amount", "max_amount", "is_active", "created_at"]
    list_filter = ["rule_type", "is_active"]
    search_fields = ["name"]
    ordering = ["-created_at"]


@admin.register(CommissionRecord)
class CommissionRecordAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = [
        "id",
        "order_id",
        "payee",
        "rule_type",
        "rate",
        "gross_amount",
        "commission_amount",
        "payee_amount",
        "status",
        "created_at",
    ]
    list_filter = ["status", "rule_type"]
    search_fields = ["order__id", "payee__email"]
    ordering = ["-created_at"]


@admin.register(SettlementEntry)
class SettlementEntryAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    """Payout intents written by settlement."""

    list_display = [
        "id",
        "order_id",
        "recipient_type",
        "recipient",
        "amount",
        "currency",
        "payout_method",
        "destination",
        "dispatched_at",
    ]
    list_filter = ["recipient_type", "payout_method"]
    search_fields = ["order__id", "destination"]
    ordering = ["-created_at"]


@admin.register(UserPayoutConfig)
class UserPayoutConfigAdmin(admin.ModelAdmin):
    list_display = ["id", "user", "payment_method", "account_address", "is_active", "updated_at"]
    list_filter = ["payment_method", "is_active"]
    search_fields = ["user__email", "account_address"]
    ordering = ["-updated_at"]


@admin.register(HostedCheckoutConfig)
class HostedCheckoutConfigAdmin(admin.ModelAdmin):
    """
    PayPal configuration.

    Saving invalidates the provider configuration cache (payments.signals).
    """

    list_display = ["id", "client_id", "sandbox", "min_amount", "max_amount", "is_active", "updated_at"]
    list_filter = ["sandbox", "is_active"]
    ordering = ["-updated_at"]


@admin.register(ChainConfig)
class ChainConfigAdmin(admin.ModelAdmin):
    """
    USDT configuration per network.

    Saving invalidates the provider configuration cache (payments.signals).
    """

    list_display = ["id", "network", "api_url", "min_confirmations", "min_amount", "max_amount", "is_active"]
    list_filter = ["network", "is_active"]
    ordering = ["network", "-updated_at"]


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    """
    Admin configuration for WebhookEvent.

    Provides visibility into webhook processing status.
    Webhook events are immutable once received; failed ones can be
    re-queued with the retry action.
    """

    list_display = [
        "id",
        "provider",
        "event_id",
        "event_type",
        "status",
        "retry_count",
        "processed_at",
        "created_at",
    ]
    list_filter = ["provider", "status", "event_type", "created_at"]
    search_fields = ["id", "event_id", "event_type"]
    readonly_fields = [
        "id",
        "created_at",
        "updated_at",
        "provider",
        "event_id",
        "event_type",
        "status",
        "retry_count",
        "processed_at",
        "response_message",
        "client_ip",
        "signature",
        "headers",
        "payload",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
    actions = ["retry_events"]

    fieldsets = (
        (None, {"fields": ("id", "provider", "event_id", "event_type", "status")}),
        ("Processing", {"fields": ("processed_at", "retry_count", "response_message")}),
        ("Request", {"fields": ("client_ip", "signature", "headers"), "classes": ("collapse",)}),
        ("Payload", {"fields": ("payload",), "classes": ("collapse",)}),
        ("Timestamps", {"fields": ("created_at", "updated_at"), "classes": ("collapse",)}),
    )

    @admin.action(description="Retry selected failed webhook events")
    def retry_events(self, request, queryset):
        failed = list(queryset.filter(status=WebhookEventStatus.FAILED).values_list("id", flat=True))
        for event_id in failed:
            process_webhook_event.delay(event_id)
        self.message_user(request, f"Queued {len(failed)} webhook events for retry.")

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False
