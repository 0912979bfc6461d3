"""
Webhook authenticity checks.

PayPal and chain notifications are signed with HMAC-SHA256 over the raw
request body using the secret stored in the provider configuration. The
signature travels hex encoded in the X-Webhook-Signature header, with or
without a "sha256=" prefix. Stripe events are checked with the Stripe SDK
(Stripe-Signature header, STRIPE_WEBHOOK_SECRET).

Usage:
    verifier = SignatureVerifier(config_cache)
    verifier.verify(Provider.PAYPAL, request.body, request.headers)  # raises on mismatch
"""

from __future__ import annotations

import hashlib
import hmac
from typing import TYPE_CHECKING

from payments.adapters.card_checkout import CardCheckoutClient
from payments.exceptions import WebhookSignatureError
from payments.state_machines import Provider

if TYPE_CHECKING:
    from collections.abc import Mapping

    from payments.config_cache import ProviderConfigCache


HMAC_SIGNATURE_HEADER = "X-Webhook-Signature"
STRIPE_SIGNATURE_HEADER = "Stripe-Signature"
SIGNATURE_PREFIX = "sha256="


def compute_signature(raw_body: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of raw_body."""
    return hmac.new(secret.encode(), raw_body, hashlib.sha256).hexdigest()


def hmac_signature_matches(raw_body: bytes, signature: str, secret: str) -> bool:
    """Constant-time comparison of a received signature with the expected one."""
    if not signature or not secret:
        return False
    received = signature.strip()
    if received.lower().startswith(SIGNATURE_PREFIX):
        received = received[len(SIGNATURE_PREFIX) :]
    expected = compute_signature(raw_body, secret)
    return hmac.compare_digest(expected, received.lower())


def signature_header_for(provider: str) -> str:
    if provider == Provider.STRIPE:
        return STRIPE_SIGNATURE_HEADER
    return HMAC_SIGNATURE_HEADER


class SignatureVerifier:
    """Checks webhook signatures against the active provider configuration."""

    def __init__(self, config_cache: ProviderConfigCache):
        self.config_cache = config_cache

    def verify(self, provider: str, raw_body: bytes, headers: Mapping[str, str]) -> None:
        """
        Raises:
            WebhookSignatureError: Missing or wrong signature, or no secret
                configured for the provider
        """
        signature = headers.get(signature_header_for(provider), "")
        details = {"provider": provider}

        if provider == Provider.STRIPE:
            if not signature:
                raise WebhookSignatureError("Missing Stripe-Signature header", details=details)
            CardCheckoutClient.construct_event(raw_body, signature)
            return

        secret = self._secret(provider)
        if not secret:
            raise WebhookSignatureError(
                f"No webhook secret configured for {provider}",
                details=details,
            )
        if not hmac_signature_matches(raw_body, signature, secret):
            raise WebhookSignatureError("Webhook signature mismatch", details=details)

    def _secret(self, provider: str) -> str:
        if provider == Provider.PAYPAL:
            config = self.config_cache.hosted_checkout()
        else:
            config = self.config_cache.chain(provider)
        return config.webhook_secret if config is not None else ""
