"""
Provider payload -> NormalizedEvent mapping.

Each provider sends its own event shapes. A mapper turns one parsed payload
into a NormalizedEvent that says what the provider observed and how to find
our transaction; the handler does the database work.

Mappers are registered per provider with @register_mapper. An event type a
mapper does not know maps to an event with outcome None (ignored).

Usage:
    from payments.webhooks.mappers import map_event

    event = map_event(Provider.PAYPAL, payload)
    if event.outcome is None and not event.verify_with_provider:
        ...  # nothing to do
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from payments.adapters.card_checkout import CardCheckoutClient
from payments.state_machines import Provider, TransactionStatus

if TYPE_CHECKING:
    from collections.abc import Callable


logger = logging.getLogger(__name__)

CHAIN_TRANSFER_EVENT = "transfer"


@dataclass(frozen=True)
class NormalizedEvent:
    """
    Provider-neutral view of a webhook.

    Attributes:
        event_type: Provider event type
        outcome: TransactionStatus the provider reports, None to ignore
        verify_with_provider: Ask the provider for the final state instead
            of trusting the payload (PayPal approvals must be captured)
        transaction_ref: Our transaction id, when the provider echoes it
        captured_ref: External ref of the completed payment (refunds)
        provider_ref: Provider's payment id (PayPal order, Stripe session)
        external_ref: Capture id, payment intent id or txid
        confirmed_amount: Amount the provider says arrived
        deposit_address: Receiving wallet (on-chain)
        confirmations: Block confirmations (on-chain)
        reason: Provider failure reason
    """

    event_type: str
    outcome: str | None = None
    verify_with_provider: bool = False
    transaction_ref: str = ""
    captured_ref: str = ""
    provider_ref: str = ""
    external_ref: str = ""
    confirmed_amount: Decimal | None = None
    deposit_address: str = ""
    confirmations: int = 0
    reason: str = ""

    @property
    def is_actionable(self) -> bool:
        return self.outcome is not None or self.verify_with_provider


# =============================================================================
# Registry
# =============================================================================


EVENT_MAPPERS: dict[str, Callable[[dict[str, Any]], NormalizedEvent]] = {}


def register_mapper(*providers: str) -> Callable:
    """
    Decorator to register the payload mapper of one or more providers.

    Usage:
        @register_mapper(Provider.PAYPAL)
        def map_paypal(payload: dict) -> NormalizedEvent:
            ...
    """

    def decorator(func: Callable[[dict[str, Any]], NormalizedEvent]) -> Callable:
        for provider in providers:
            EVENT_MAPPERS[provider] = func
            logger.debug(f"Registered webhook mapper for {provider}")
        return func

    return decorator


def map_event(provider: str, payload: dict[str, Any]) -> NormalizedEvent:
    """
    Raises:
        KeyError: No mapper registered for provider
    """
    return EVENT_MAPPERS[provider](payload)


def event_identity(provider: str, payload: dict[str, Any], raw_body: bytes) -> tuple[str, str]:
    """
    (event_id, event_type) used to deduplicate deliveries.

    Providers without event ids (chain notifiers) are identified by a hash of
    the body, so a redelivery with more confirmations counts as a new event.
    """
    if provider == Provider.PAYPAL:
        event_id, event_type = payload.get("id"), payload.get("event_type")
    elif provider == Provider.STRIPE:
        event_id, event_type = payload.get("id"), payload.get("type")
    else:
        event_id, event_type = payload.get("event_id"), CHAIN_TRANSFER_EVENT

    if not event_id:
        event_id = hashlib.sha256(raw_body).hexdigest()
    return str(event_id), str(event_type or "")


# =============================================================================
# PayPal
# =============================================================================


@register_mapper(Provider.PAYPAL)
def map_paypal(payload: dict[str, Any]) -> NormalizedEvent:
    """
    PAYMENT.CAPTURE.COMPLETED   completed (custom_id is our transaction)
    PAYMENT.CAPTURE.PENDING     processing
    PAYMENT.CAPTURE.DENIED      failed
    PAYMENT.CAPTURE.REFUNDED    refunded (found by the refunded capture)
    CHECKOUT.ORDER.APPROVED     capture through the provider
    """
    event_type = payload.get("event_type", "")
    resource = payload.get("resource") or {}
    custom_id = str(resource.get("custom_id") or "")

    if event_type == "PAYMENT.CAPTURE.COMPLETED":
        return NormalizedEvent(
            event_type=event_type,
            outcome=TransactionStatus.COMPLETED,
            transaction_ref=custom_id,
            external_ref=resource.get("id", ""),
            confirmed_amount=_decimal((resource.get("amount") or {}).get("value")),
        )

    if event_type == "PAYMENT.CAPTURE.PENDING":
        return NormalizedEvent(
            event_type=event_type,
            outcome=TransactionStatus.PROCESSING,
            transaction_ref=custom_id,
        )

    if event_type == "PAYMENT.CAPTURE.DENIED":
        reason = (resource.get("status_details") or {}).get("reason", "")
        return NormalizedEvent(
            event_type=event_type,
            outcome=TransactionStatus.FAILED,
            transaction_ref=custom_id,
            reason=f"PayPal capture denied {reason}".strip(),
        )

    if event_type == "PAYMENT.CAPTURE.REFUNDED":
        return NormalizedEvent(
            event_type=event_type,
            outcome=TransactionStatus.REFUNDED,
            transaction_ref=custom_id,
            captured_ref=_refunded_capture_id(resource),
            external_ref=resource.get("id", ""),
        )

    if event_type == "CHECKOUT.ORDER.APPROVED":
        units = resource.get("purchase_units") or [{}]
        return NormalizedEvent(
            event_type=event_type,
            verify_with_provider=True,
            transaction_ref=str(units[0].get("custom_id") or ""),
            provider_ref=resource.get("id", ""),
        )

    return NormalizedEvent(event_type=event_type)


def _refunded_capture_id(resource: dict[str, Any]) -> str:
    """Capture id from the refund's 'up' link (.../captures/{id})."""
    for link in resource.get("links") or []:
        if link.get("rel") == "up":
            return link.get("href", "").rstrip("/").rsplit("/", 1)[-1]
    return ""


# =============================================================================
# Stripe
# =============================================================================


@register_mapper(Provider.STRIPE)
def map_stripe(payload: dict[str, Any]) -> NormalizedEvent:
    """
    checkout.session.completed / async_payment_succeeded   session status
    checkout.session.async_payment_failed / expired        failed
    charge.refunded                                        refunded
    """
    event_type = payload.get("type", "")
    obj = (payload.get("data") or {}).get("object") or {}

    if event_type in ("checkout.session.completed", "checkout.session.async_payment_succeeded"):
        check = CardCheckoutClient.check_from_session(obj)
        return NormalizedEvent(
            event_type=event_type,
            outcome=check.status,
            transaction_ref=_session_transaction_ref(obj),
            provider_ref=obj.get("id", ""),
            external_ref=check.external_ref,
            confirmed_amount=check.confirmed_amount,
        )

    if event_type in ("checkout.session.async_payment_failed", "checkout.session.expired"):
        return NormalizedEvent(
            event_type=event_type,
            outcome=TransactionStatus.FAILED,
            transaction_ref=_session_transaction_ref(obj),
            provider_ref=obj.get("id", ""),
            reason=event_type.rsplit(".", 1)[-1].replace("_", " "),
        )

    if event_type == "charge.refunded":
        refunds = (obj.get("refunds") or {}).get("data") or [{}]
        return NormalizedEvent(
            event_type=event_type,
            outcome=TransactionStatus.REFUNDED,
            captured_ref=obj.get("payment_intent") or "",
            external_ref=refunds[0].get("id", ""),
        )

    return NormalizedEvent(event_type=event_type)


def _session_transaction_ref(session: dict[str, Any]) -> str:
    metadata = session.get("metadata") or {}
    return str(metadata.get("transaction_id") or session.get("client_reference_id") or "")


# =============================================================================
# On-chain
# =============================================================================


@register_mapper(Provider.TRON, Provider.ETHEREUM)
def map_chain_transfer(payload: dict[str, Any]) -> NormalizedEvent:
    """
    Incoming token transfer: {txid, from, to, amount, confirmations, block_number}.

    The transaction is found later by deposit address and exact amount.
    """
    txid = payload.get("txid") or payload.get("hash") or ""
    amount = _decimal(payload.get("amount"))
    if not txid or amount is None or not payload.get("to"):
        return NormalizedEvent(event_type=CHAIN_TRANSFER_EVENT)

    try:
        confirmations = int(payload.get("confirmations") or 0)
    except (TypeError, ValueError):
        confirmations = 0

    return NormalizedEvent(
        event_type=CHAIN_TRANSFER_EVENT,
        outcome=TransactionStatus.COMPLETED,
        external_ref=txid,
        confirmed_amount=amount,
        deposit_address=payload["to"],
        confirmations=confirmations,
    )


def _decimal(value: Any) -> Decimal | None:
    if value in (None, ""):
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None
