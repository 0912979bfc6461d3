"""
Serializers for the orders API.

Serializer Hierarchy:
    OrderSerializer: Order read representation
    OrderCreateSerializer: Purchase intent input
    OrderListFilterSerializer: Query parameters for the list endpoint
"""

from __future__ import annotations

from rest_framework import serializers

from core.serializer_mixins import SequenceIdField, TimestampMixin
from orders.models import Order, OrderStatus, PaymentMethod


class OrderSerializer(TimestampMixin, serializers.ModelSerializer):
    """Order as returned by every orders endpoint."""

    id = SequenceIdField(read_only=True)
    buyer_id = serializers.CharField(read_only=True)
    resource_id = SequenceIdField(read_only=True)
    resource_title = serializers.CharField(source="resource.title", read_only=True)
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "buyer_id",
            "resource_id",
            "resource_title",
            "amount",
            "currency",
            "status",
            "payment_method",
            "expires_at",
            "paid_at",
            "completed_at",
            "cancelled_at",
            "refunded_at",
            "cancel_reason",
        ]
        read_only_fields = fields


class OrderCreateSerializer(serializers.Serializer):
    """
    Purchase intent.

    Validates:
        - resource_id is a positive integer (string or number)
        - payment_method, when given, is a known method
    """

    resource_id = SequenceIdField()
    payment_method = serializers.ChoiceField(
        choices=PaymentMethod.choices,
        required=False,
        allow_blank=True,
        default="",
    )


class OrderListFilterSerializer(serializers.Serializer):
    """Filters accepted by GET /orders/."""

    status = serializers.ChoiceField(choices=OrderStatus.choices, required=False)
    created_after = serializers.DateTimeField(required=False)
    created_before = serializers.DateTimeField(required=False)
    buyer_id = serializers.IntegerField(required=False, min_value=1)

    def validate(self, attrs):
        after = attrs.get("created_after")
        before = attrs.get("created_before")
        if after and before and after >= before:
            raise serializers.ValidationError(
                {"created_before": "Must be later than created_after."}
            )
        return attrs
