"""
UserPayoutConfig model: where a payee wants to be paid.

A payee may keep several destinations per method. The effective one is the
most recently updated active config for that method, so "set default" is
just touching updated_at.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.models import BaseModel
from orders.models import PaymentMethod


class UserPayoutConfig(BaseModel):
    """
    A payee's payout destination for one method.

    Fields:
        user: Payee
        payment_method: paypal, usdt_tron or usdt_eth
        account_address: PayPal e-mail or wallet address
        account_name: Display name of the destination
        is_active: Deleted configs are deactivated, never removed
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="payout_configs",
        help_text="Payee owning this destination",
    )
    payment_method = models.CharField(
        max_length=20,
        choices=PaymentMethod.choices,
        help_text="Method the payout is sent with",
    )
    account_address = models.CharField(
        max_length=255,
        help_text="PayPal e-mail or wallet address",
    )
    account_name = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Display name of the destination",
    )
    is_active = models.BooleanField(
        default=True,
        db_index=True,
        help_text="Inactive configs are ignored by settlement",
    )

    class Meta:
        ordering = ["-updated_at", "-id"]
        verbose_name = "Payout Config"
        verbose_name_plural = "Payout Configs"
        indexes = [
            models.Index(
                fields=["user", "payment_method", "is_active", "updated_at"],
                name="payout_config_lookup_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"UserPayoutConfig({self.user_id}, {self.payment_method}, {self.account_address})"
