"""
Django signals for payments app.

This module defines signal handlers for:
- Order cancellation (buyer or expiry): cancel open payment attempts
- Provider configuration changes: drop the in-process config cache

Related files:
    - orders/signals.py: orders_cancelled
    - config_cache.py: ProviderConfigCache
    - apps.py: Signal registration

Usage:
    Signals are automatically connected when app is ready.
    See apps.py for registration.
"""

from __future__ import annotations

import logging

from django.apps import apps
from django.db import transaction
from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from orders.signals import orders_cancelled

from payments.models import ChainConfig, HostedCheckoutConfig

logger = logging.getLogger(__name__)


@receiver(orders_cancelled)
def cancel_payment_attempts(sender, order_ids, reason, **kwargs):
    """
    Cancel open payment attempts of cancelled orders and release them at
    their providers once the cancellation is committed.

    A payment that completes at the provider anyway is recorded by the
    settlement coordinator with settlement BLOCKED for manual refund.
    """
    from payments.services import PaymentService, TransactionLedger

    cancelled = TransactionLedger().cancel_open_for_orders(order_ids)
    if cancelled:
        logger.info(
            "Cancelled payment attempts of cancelled orders",
            extra={"order_count": len(order_ids), "cancelled_count": len(cancelled), "reason": reason},
        )
        transaction.on_commit(lambda: PaymentService().release_attempts(cancelled))


@receiver(post_save, sender=HostedCheckoutConfig)
@receiver(post_delete, sender=HostedCheckoutConfig)
@receiver(post_save, sender=ChainConfig)
@receiver(post_delete, sender=ChainConfig)
def invalidate_provider_config(sender, instance, **kwargs):
    """Drop cached provider configuration after an admin edit."""
    apps.get_app_config("payments").config_cache.invalidate()
    logger.info(
        "Provider configuration changed, cache invalidated",
        extra={"model": sender.__name__, "config_id": instance.pk},
    )
