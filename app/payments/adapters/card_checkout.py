"""
Card payments through Stripe Checkout Sessions.

All Stripe calls go through this client to ensure consistent error
handling, timeouts, idempotency, and observability.

Configuration (via settings):
- STRIPE_SECRET_KEY: Stripe API secret key
- STRIPE_WEBHOOK_SECRET: Webhook signing secret
- STRIPE_API_TIMEOUT_SECONDS: API call timeout (default: 10)
- STRIPE_CHECKOUT_SUCCESS_URL / STRIPE_CHECKOUT_CANCEL_URL: Default
  return pages when the caller passes none

Status mapping (Checkout Session):
    open                          -> pending
    complete + unpaid             -> processing (delayed payment methods)
    complete/paid                 -> completed (external ref = payment intent)
    expired                       -> failed
"""

from __future__ import annotations

import time
from decimal import Decimal
from typing import TYPE_CHECKING, Any

import stripe
from django.conf import settings

from payments.adapters.base import (
    IdempotencyKeyGenerator,
    PaymentCheck,
    PaymentStart,
    ProviderClient,
    RefundResult,
)
from payments.exceptions import (
    ConfigMissingError,
    ProviderRequestError,
    ProviderUnavailableError,
    WebhookSignatureError,
)
from payments.state_machines import Provider, TransactionStatus

if TYPE_CHECKING:
    from payments.adapters.base import PaymentHandle, StartPaymentRequest


def to_minor_units(amount: Decimal) -> int:
    """Convert a 2-decimal amount to cents."""
    return int((amount * 100).quantize(Decimal("1")))


class CardCheckoutClient(ProviderClient):
    """
    Stripe Checkout client.

    Stateless apart from SDK configuration; safe to share between threads.
    """

    provider = Provider.STRIPE

    # =========================================================================
    # Configuration
    # =========================================================================

    @staticmethod
    def _configure_stripe() -> None:
        """Configure Stripe client with API key and timeout."""
        if not settings.STRIPE_SECRET_KEY:
            raise ConfigMissingError(
                "Card payments are not configured",
                details={"provider": Provider.STRIPE},
            )
        stripe.api_key = settings.STRIPE_SECRET_KEY
        timeout = getattr(settings, "STRIPE_API_TIMEOUT_SECONDS", 10)
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)

    # =========================================================================
    # ProviderClient
    # =========================================================================

    def start_payment(self, request: StartPaymentRequest) -> PaymentStart:
        self._configure_stripe()
        log_context = {
            "operation": "create_checkout_session",
            "transaction_id": request.transaction_id,
            "order_id": request.order_id,
            "amount": str(request.amount),
        }

        session = self._call(
            log_context,
            stripe.checkout.Session.create,
            mode="payment",
            line_items=[
                {
                    "price_data": {
                        "currency": request.currency.lower(),
                        "unit_amount": to_minor_units(request.amount),
                        "product_data": {"name": f"Order #{request.order_id}"},
                    },
                    "quantity": 1,
                }
            ],
            success_url=request.return_url or settings.STRIPE_CHECKOUT_SUCCESS_URL,
            cancel_url=request.cancel_url or settings.STRIPE_CHECKOUT_CANCEL_URL,
            client_reference_id=str(request.transaction_id),
            metadata={
                "transaction_id": str(request.transaction_id),
                "order_id": str(request.order_id),
            },
            idempotency_key=IdempotencyKeyGenerator.generate(
                "create_checkout_session", request.transaction_id
            ),
        )

        return PaymentStart(
            provider_ref=session.id,
            status=TransactionStatus.PENDING,
            payment_url=session.url or "",
            raw_response=session.to_dict(),
        )

    def verify_payment(self, handle: PaymentHandle) -> PaymentCheck:
        self._configure_stripe()
        log_context = {
            "operation": "retrieve_checkout_session",
            "transaction_id": handle.transaction_id,
            "session_id": handle.provider_ref,
        }
        session = self._call(log_context, stripe.checkout.Session.retrieve, handle.provider_ref)
        return self.check_from_session(session.to_dict())

    def refund(self, handle: PaymentHandle, external_ref: str, amount: Decimal) -> RefundResult:
        self._configure_stripe()
        log_context = {
            "operation": "create_refund",
            "transaction_id": handle.transaction_id,
            "payment_intent_id": external_ref,
        }
        refund = self._call(
            log_context,
            stripe.Refund.create,
            payment_intent=external_ref,
            amount=to_minor_units(amount),
            idempotency_key=IdempotencyKeyGenerator.generate("refund", handle.transaction_id),
        )
        return RefundResult(
            refund_ref=refund.id,
            status=refund.status,
            raw_response=refund.to_dict(),
        )

    def release_payment(self, handle: PaymentHandle) -> None:
        """Expire the open Checkout Session so the buyer can no longer pay it."""
        if not handle.provider_ref:
            return
        self._configure_stripe()
        log_context = {
            "operation": "expire_checkout_session",
            "transaction_id": handle.transaction_id,
            "session_id": handle.provider_ref,
        }
        self._call(log_context, stripe.checkout.Session.expire, handle.provider_ref)

    @staticmethod
    def check_from_session(session: dict[str, Any]) -> PaymentCheck:
        """Map a Checkout Session payload (API or webhook) to a PaymentCheck."""
        status = session.get("status")
        payment_status = session.get("payment_status")

        if payment_status == "paid":
            amount_total = session.get("amount_total")
            return PaymentCheck(
                status=TransactionStatus.COMPLETED,
                external_ref=session.get("payment_intent") or session.get("id", ""),
                confirmed_amount=(
                    Decimal(amount_total) / 100 if amount_total is not None else None
                ),
                raw_response=session,
            )
        if status == "expired":
            return PaymentCheck(
                status=TransactionStatus.FAILED,
                failure_reason="Checkout session expired",
                raw_response=session,
            )
        if status == "complete":
            return PaymentCheck(status=TransactionStatus.PROCESSING, raw_response=session)
        return PaymentCheck(status=TransactionStatus.PENDING, raw_response=session)

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    @classmethod
    def construct_event(cls, payload: bytes, signature: str) -> dict[str, Any]:
        """
        Verify and parse a Stripe webhook event.

        Raises:
            WebhookSignatureError: Invalid signature or payload
        """
        try:
            event = stripe.Webhook.construct_event(
                payload,
                signature,
                settings.STRIPE_WEBHOOK_SECRET,
            )
        except (stripe.SignatureVerificationError, ValueError) as e:
            raise WebhookSignatureError(
                "Invalid Stripe webhook signature",
                details={"provider": Provider.STRIPE},
            ) from e
        return event.to_dict()

    # =========================================================================
    # Error Handling
    # =========================================================================

    def _call(self, log_context: dict[str, Any], fn, *args, **kwargs):
        logger = self.get_logger()
        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)
        try:
            result = fn(*args, **kwargs)
        except stripe.StripeError as e:
            duration_ms = (time.time() - start_time) * 1000
            self._handle_stripe_error(e, log_context, duration_ms)
            raise
        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            "Stripe operation completed",
            extra={**log_context, "duration_ms": duration_ms},
        )
        return result

    def _handle_stripe_error(
        self,
        error: stripe.StripeError,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate Stripe exceptions to provider exceptions.

        Raises:
            ProviderRequestError: Declined card, invalid request, bad API key
            ProviderUnavailableError: Rate limit, network or Stripe server error
        """
        logger = self.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms}
        details = {"stripe_code": getattr(error, "code", None)}

        if isinstance(error, stripe.CardError):
            logger.warning(
                "Card error from Stripe",
                extra={**log_context, "decline_code": getattr(error, "decline_code", None)},
            )
            raise ProviderRequestError(
                str(error.user_message or error),
                provider=self.provider,
                error_code="CARD_DECLINED",
                details=details,
            ) from error

        if isinstance(error, stripe.InvalidRequestError):
            logger.error(
                "Invalid request to Stripe",
                extra={**log_context, "stripe_code": error.code},
            )
            raise ProviderRequestError(
                str(error),
                provider=self.provider,
                details=details,
            ) from error

        if isinstance(error, stripe.AuthenticationError):
            logger.critical(
                "Stripe authentication failed - check API key",
                extra=log_context,
            )
            raise ProviderRequestError(
                "Stripe authentication failed",
                provider=self.provider,
                details=details,
            ) from error

        if isinstance(error, (stripe.RateLimitError, stripe.APIConnectionError)):
            logger.warning("Stripe unavailable", extra=log_context)
            raise ProviderUnavailableError(
                "Could not reach Stripe. Please retry.",
                provider=self.provider,
                details=details,
            ) from error

        logger.error(
            f"Stripe API error: {type(error).__name__}",
            extra=log_context,
            exc_info=True,
        )
        raise ProviderUnavailableError(
            "Stripe service error. Please retry.",
            provider=self.provider,
            details=details,
        ) from error
