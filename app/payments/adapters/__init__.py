"""
Provider clients for the payment rails.

All provider API calls go through these clients to ensure consistent
error handling, timeouts, idempotency, and observability.

Usage:
    from payments.adapters import StartPaymentRequest, default_registry

    client = default_registry().client_for_method("paypal")
    started = client.start_payment(
        StartPaymentRequest(
            transaction_id=transaction.id,
            order_id=order.id,
            amount=order.amount,
            currency=order.currency,
        )
    )
"""

from payments.adapters.base import (
    IdempotencyKeyGenerator,
    PaymentCheck,
    PaymentHandle,
    PaymentStart,
    ProviderClient,
    RefundResult,
    StartPaymentRequest,
)
from payments.adapters.card_checkout import CardCheckoutClient
from payments.adapters.hosted_checkout import HostedCheckoutClient
from payments.adapters.on_chain import OnChainClient
from payments.adapters.registry import ProviderRegistry, default_registry

__all__ = [
    "CardCheckoutClient",
    "HostedCheckoutClient",
    "IdempotencyKeyGenerator",
    "OnChainClient",
    "PaymentCheck",
    "PaymentHandle",
    "PaymentStart",
    "ProviderClient",
    "ProviderRegistry",
    "RefundResult",
    "StartPaymentRequest",
    "default_registry",
]
