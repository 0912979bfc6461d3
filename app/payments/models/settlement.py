"""
SettlementEntry model: what the platform owes whom after a payment.

Settlement records the decision, not the transfer. Each entry is a payout
intent (platform receipt, payee transfer, platform commission) that the
external payout system executes and reconciles later.

Usage:
    from payments.models import SettlementEntry

    SettlementEntry.objects.filter(order=order).values_list("recipient_type", "amount")
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.models import BaseModel
from orders.models import PaymentMethod

from payments.state_machines import SettlementRecipient


class SettlementEntry(BaseModel):
    """
    One payout intent produced by settling an order.

    Unique per (order, recipient_type), so settling the same order twice
    can never record a second transfer.

    Fields:
        order/transaction: What was settled
        recipient_type: platform, payee or commission
        recipient: Payee user (null for platform entries)
        amount/currency: Amount owed
        payout_method: Method of the payee's payout config
        destination: Account or wallet the payout goes to
        dispatched_at: Set by the payout system once executed
    """

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="settlement_entries",
        help_text="Settled order",
    )
    transaction = models.ForeignKey(
        "payments.PaymentTransaction",
        on_delete=models.PROTECT,
        related_name="settlement_entries",
        help_text="Completed transaction that paid the order",
    )
    recipient_type = models.CharField(
        max_length=20,
        choices=SettlementRecipient.choices,
        help_text="Who the amount is owed to",
    )
    recipient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="settlement_entries",
        help_text="Payee user (empty for platform entries)",
    )
    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Amount owed",
    )
    currency = models.CharField(
        max_length=3,
        default="USD",
        help_text="ISO 4217 currency code",
    )
    payout_method = models.CharField(
        max_length=20,
        choices=PaymentMethod.choices,
        blank=True,
        default="",
        help_text="Payout method of the destination",
    )
    destination = models.CharField(
        max_length=255,
        help_text="Account or wallet address receiving the amount",
    )
    dispatched_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the external payout system executed the transfer",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Settlement Entry"
        verbose_name_plural = "Settlement Entries"
        constraints = [
            models.UniqueConstraint(
                fields=["order", "recipient_type"],
                name="settlement_entry_unique_per_order",
            ),
            models.CheckConstraint(
                condition=models.Q(amount__gte=0),
                name="settlement_entry_amount_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"SettlementEntry({self.order_id}, {self.recipient_type}, {self.amount})"
