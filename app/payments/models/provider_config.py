"""
Provider configuration rows, edited in Django admin.

Adapters never read these tables directly; they receive a frozen settings
object from payments.config_cache.ProviderConfigCache, which is invalidated
whenever one of these rows is saved.

Card payments (Stripe) are configured through settings (STRIPE_*) instead.
"""

from __future__ import annotations

from decimal import Decimal

from django.db import models

from core.models import BaseModel


class ChainNetwork(models.TextChoices):
    """Blockchains USDT is accepted on."""

    TRON = "tron", "TRON"
    ETHEREUM = "ethereum", "Ethereum"


class ProviderConfigBase(BaseModel):
    """Fields shared by every provider configuration."""

    min_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.01"),
        help_text="Smallest order amount accepted through this provider",
    )
    max_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("100000.00"),
        help_text="Largest order amount accepted through this provider",
    )
    fee_rate = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text="Provider fee percentage, informational",
    )
    is_active = models.BooleanField(
        default=True,
        db_index=True,
        help_text="Only active configurations are used",
    )

    class Meta:
        abstract = True


class HostedCheckoutConfig(ProviderConfigBase):
    """
    PayPal REST credentials and checkout page settings.

    The most recently updated active row is the one in use.
    """

    client_id = models.CharField(max_length=255)
    client_secret = models.CharField(max_length=255)
    sandbox = models.BooleanField(
        default=True,
        help_text="Use api-m.sandbox.paypal.com instead of api-m.paypal.com",
    )
    webhook_id = models.CharField(max_length=255, blank=True, default="")
    webhook_secret = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Shared secret for the X-Webhook-Signature HMAC",
    )
    return_url = models.URLField(
        max_length=500,
        help_text="Default page PayPal returns the buyer to after approval",
    )
    cancel_url = models.URLField(
        max_length=500,
        help_text="Default page PayPal returns the buyer to after cancelling",
    )
    brand_name = models.CharField(max_length=127, default="Settlement")

    class Meta:
        ordering = ["-updated_at"]
        verbose_name = "Hosted Checkout Config"
        verbose_name_plural = "Hosted Checkout Configs"

    def __str__(self) -> str:
        mode = "sandbox" if self.sandbox else "live"
        return f"HostedCheckoutConfig({self.client_id[:8]}..., {mode})"

    @property
    def base_url(self) -> str:
        if self.sandbox:
            return "https://api-m.sandbox.paypal.com"
        return "https://api-m.paypal.com"


class ChainConfig(ProviderConfigBase):
    """
    USDT receiving configuration for one network.

    Fields:
        network: tron or ethereum (one row per network)
        api_url: Chain explorer API (TronGrid / etherscan-style)
        api_key: Explorer API key
        usdt_contract: USDT token contract address
        wallet_addresses: Receiving addresses, rotated round-robin
        min_confirmations: Confirmations before a transfer counts
        webhook_secret: Shared secret of the chain watcher's callbacks
    """

    network = models.CharField(
        max_length=20,
        choices=ChainNetwork.choices,
        unique=True,
    )
    network_name = models.CharField(max_length=50, blank=True, default="")
    api_url = models.URLField(max_length=500)
    api_key = models.CharField(max_length=255, blank=True, default="")
    usdt_contract = models.CharField(max_length=128)
    wallet_addresses = models.JSONField(
        default=list,
        help_text="Receiving addresses, rotated round-robin per payment",
    )
    min_confirmations = models.PositiveIntegerField(default=19)
    webhook_secret = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Shared secret for the X-Webhook-Signature HMAC",
    )

    class Meta:
        ordering = ["network"]
        verbose_name = "Chain Config"
        verbose_name_plural = "Chain Configs"

    def __str__(self) -> str:
        return f"ChainConfig({self.network}, {len(self.wallet_addresses)} wallets)"
