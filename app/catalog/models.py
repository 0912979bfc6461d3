"""
Resource model.

A resource is either sold by the platform itself or by a third-party owner
(a payee) who receives the sale amount minus commission.

Usage:
    from catalog.models import Resource, ProviderType

    Resource.objects.create(
        title="Field recording pack",
        price=Decimal("49.99"),
        provider_type=ProviderType.THIRD_PARTY,
        owner=payee,
    )
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.models import BaseModel
from core.model_mixins import SequenceIdPrimaryKeyMixin


class ProviderType(models.TextChoices):
    """Who sells the resource."""

    PLATFORM = "platform", "Platform"
    THIRD_PARTY = "third_party", "Third party"


class Resource(SequenceIdPrimaryKeyMixin, BaseModel):
    """
    A purchasable digital resource.

    Fields:
        title: Display title
        price: Current price; orders snapshot it at creation
        provider_type: platform or third_party
        owner: Payee receiving third-party sales (null for platform)
        commission_rate: Default commission percentage used when no
            commission rule matches (null = none)
        is_active: Inactive resources cannot be ordered
    """

    title = models.CharField(
        max_length=255,
        help_text="Display title",
    )
    price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Current price; open orders keep the price they were created with",
    )
    provider_type = models.CharField(
        max_length=20,
        choices=ProviderType.choices,
        default=ProviderType.PLATFORM,
        help_text="Whether the platform or a third-party owner sells this resource",
    )
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="owned_resources",
        help_text="Payee for third-party resources",
    )
    commission_rate = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Default commission percentage when no commission rule applies",
    )
    is_active = models.BooleanField(
        default=True,
        help_text="Inactive resources cannot be ordered",
    )

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(price__gte=0),
                name="resource_price_non_negative",
            ),
            models.CheckConstraint(
                condition=(
                    models.Q(provider_type="platform")
                    | models.Q(owner__isnull=False)
                ),
                name="resource_third_party_has_owner",
            ),
        ]

    def __str__(self) -> str:
        return f"Resource {self.id}: {self.title}"
