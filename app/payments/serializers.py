"""
DRF serializers for payments app.

Serializer Hierarchy:
    PayRequestSerializer: Input of POST /orders/{id}/pay/
    PaymentStartSerializer: Payment attempt as returned by the pay step
    PaymentStatusSerializer: Output of GET /payments/{ref}/verify/
    PaymentTransactionSerializer: Admin view of an attempt (refund)
    PayoutConfigSerializer / PayoutConfigCreateSerializer: Payee destinations

Related files:
    - views.py: Payment API views
    - services/: PaymentService, PayoutConfigService
"""

from __future__ import annotations

from rest_framework import serializers

from core.serializer_mixins import SequenceIdField, TimestampMixin
from orders.models import PaymentMethod

from payments.models import PaymentTransaction, UserPayoutConfig
from payments.services.payout_config import PAYOUT_METHODS


class PayRequestSerializer(serializers.Serializer):
    """
    Pay step input.

    Validates:
        - payment_method is a known method
        - return_url/cancel_url, when given, are URLs
    """

    payment_method = serializers.ChoiceField(choices=PaymentMethod.choices)
    return_url = serializers.URLField(required=False, allow_blank=True, default="")
    cancel_url = serializers.URLField(required=False, allow_blank=True, default="")


class PaymentStartSerializer(serializers.ModelSerializer):
    """
    What the buyer needs to pay.

    payment_ref is the value to pass to the verify endpoint. Hosted
    checkout fills payment_url; on-chain fills deposit_address and qr_code.
    """

    payment_ref = serializers.CharField(source="id", read_only=True)
    order_id = SequenceIdField(read_only=True)
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = PaymentTransaction
        fields = [
            "payment_ref",
            "order_id",
            "payment_method",
            "status",
            "amount",
            "currency",
            "payment_url",
            "qr_code",
            "deposit_address",
        ]
        read_only_fields = fields


class PaymentStatusSerializer(serializers.Serializer):
    """Verify endpoint output (PaymentService.PaymentStatus)."""

    payment_ref = serializers.CharField()
    status = serializers.CharField()
    order_id = SequenceIdField()
    order_status = serializers.CharField()
    settlement_status = serializers.CharField()


class PaymentTransactionSerializer(TimestampMixin, serializers.ModelSerializer):
    """Payment attempt with its provider references."""

    payment_ref = serializers.CharField(source="id", read_only=True)
    order_id = SequenceIdField(read_only=True)
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = PaymentTransaction
        fields = [
            "payment_ref",
            "order_id",
            "payment_method",
            "provider",
            "status",
            "settlement_status",
            "amount",
            "currency",
            "provider_ref",
            "external_ref",
            "refund_ref",
            "completed_at",
            "refunded_at",
        ]
        read_only_fields = fields


class PayoutConfigSerializer(TimestampMixin, serializers.ModelSerializer):
    """Payee payout destination."""

    class Meta:
        model = UserPayoutConfig
        fields = ["id", "payment_method", "account_address", "account_name", "is_active"]
        read_only_fields = fields


class PayoutConfigCreateSerializer(serializers.Serializer):
    """
    New payout destination.

    Address format is checked by PayoutConfigService per method.
    """

    payment_method = serializers.ChoiceField(
        choices=[(m.value, m.label) for m in PAYOUT_METHODS],
    )
    account_address = serializers.CharField(max_length=255)
    account_name = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
