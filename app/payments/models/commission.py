"""
Commission rules and the per-order commission record.

Usage:
    from payments.models import CommissionRule, CommissionRecord

    CommissionRule.objects.create(
        rule_type=CommissionRuleType.PERCENTAGE,
        rate=Decimal("10.00"),
        min_amount=Decimal("0.00"),
    )
"""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models

from core.models import BaseModel

from payments.state_machines import CommissionRuleType, CommissionStatus


class CommissionRule(BaseModel):
    """
    How much the platform keeps from a third-party sale.

    The calculator picks the most recently created active rule whose amount
    range contains the gross amount. Rules never stack.

    Fields:
        name: Label shown in admin
        rule_type: percentage or fixed
        rate: Percentage (0-100) or fixed amount
        min_amount/max_amount: Inclusive gross range (max null = unbounded)
        is_active: Inactive rules are never selected
    """

    name = models.CharField(
        max_length=100,
        blank=True,
        default="",
        help_text="Label shown in admin",
    )
    rule_type = models.CharField(
        max_length=20,
        choices=CommissionRuleType.choices,
        default=CommissionRuleType.PERCENTAGE,
        help_text="Percentage of gross, or a fixed amount",
    )
    rate = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Percentage (0-100) or fixed amount",
    )
    min_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text="Smallest gross amount this rule applies to",
    )
    max_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Largest gross amount this rule applies to (empty = no limit)",
    )
    is_active = models.BooleanField(
        default=True,
        db_index=True,
        help_text="Inactive rules are never selected",
    )

    class Meta:
        ordering = ["-created_at", "-id"]
        verbose_name = "Commission Rule"
        verbose_name_plural = "Commission Rules"
        constraints = [
            models.CheckConstraint(
                condition=models.Q(rate__gte=0),
                name="commission_rule_rate_non_negative",
            ),
        ]

    def __str__(self) -> str:
        suffix = "%" if self.rule_type == CommissionRuleType.PERCENTAGE else ""
        return f"CommissionRule({self.id}, {self.rate}{suffix})"

    def clean(self):
        if self.rule_type == CommissionRuleType.PERCENTAGE and self.rate > 100:
            raise ValidationError({"rate": "A percentage rate cannot exceed 100."})
        if self.max_amount is not None and self.max_amount < self.min_amount:
            raise ValidationError({"max_amount": "max_amount must be at least min_amount."})

    def matches(self, gross: Decimal) -> bool:
        """Whether the gross amount falls inside this rule's range."""
        if gross < self.min_amount:
            return False
        return self.max_amount is None or gross <= self.max_amount


class CommissionRecord(BaseModel):
    """
    The commission split of one settled third-party order.

    At most one record exists per order (unique order). payee_amount is
    always gross_amount - commission_amount.

    Fields:
        order: Settled order
        transaction: Completed transaction that paid it
        payee: Resource owner receiving payee_amount
        rule: Rule applied (null when the resource's default rate applied)
        rate/rule_type: Terms actually applied
        gross_amount/commission_amount/payee_amount: The split
        status: pending, paid or cancelled
    """

    order = models.OneToOneField(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="commission_record",
        help_text="Settled order",
    )
    transaction = models.ForeignKey(
        "payments.PaymentTransaction",
        on_delete=models.PROTECT,
        related_name="commission_records",
        help_text="Completed transaction that paid the order",
    )
    payee = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="commission_records",
        help_text="Resource owner receiving the payee amount",
    )
    rule = models.ForeignKey(
        CommissionRule,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="records",
        help_text="Rule applied (empty when the resource default rate applied)",
    )
    rule_type = models.CharField(
        max_length=20,
        choices=CommissionRuleType.choices,
        help_text="Type of the applied terms",
    )
    rate = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Rate of the applied terms",
    )
    gross_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Amount the buyer paid",
    )
    commission_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Platform share",
    )
    payee_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Payee share (gross - commission)",
    )
    status = models.CharField(
        max_length=20,
        choices=CommissionStatus.choices,
        default=CommissionStatus.PENDING,
        db_index=True,
        help_text="pending until payout intents are recorded",
    )
    paid_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When payout intents were recorded",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Commission Record"
        verbose_name_plural = "Commission Records"
        constraints = [
            models.CheckConstraint(
                condition=models.Q(commission_amount__gte=0, payee_amount__gte=0),
                name="commission_record_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return (
            f"CommissionRecord(order={self.order_id}, "
            f"commission={self.commission_amount}, payee={self.payee_amount})"
        )
