"""
Factory Boy factories for payment test data.

Usage:
    from payments.tests.factories import (
        PaymentTransactionFactory,
        CommissionRuleFactory,
        UserPayoutConfigFactory,
        ChainConfigFactory,
        WebhookEventFactory,
        FakeClient,
    )

    # Open PayPal attempt for a new pending order
    attempt = PaymentTransactionFactory()

    # On-chain attempt waiting at an address
    attempt = TronTransactionFactory(order=order, deposit_address=TRON_WALLETS[0])

    # Completed attempt
    attempt = PaymentTransactionFactory(status=TransactionStatus.COMPLETED, external_ref="CAP-1")
"""

from decimal import Decimal
from unittest.mock import MagicMock

import factory
import requests

from catalog.tests.factories import UserFactory
from core.sequence import generate_sequence_id
from orders.models import PaymentMethod
from orders.tests.factories import OrderFactory
from payments.adapters.base import PaymentCheck, PaymentStart, ProviderClient, RefundResult
from payments.models import (
    ChainConfig,
    CommissionRule,
    HostedCheckoutConfig,
    PaymentTransaction,
    UserPayoutConfig,
    WebhookEvent,
)
from payments.state_machines import (
    CommissionRuleType,
    Provider,
    TransactionStatus,
    WebhookEventStatus,
)

TRON_WALLETS = [
    "TXYZoPEU3q9QMFw2nQm1H8Fc6KoY7rFa1A",
    "TXYZoPEU3q9QMFw2nQm1H8Fc6KoY7rFa2B",
]
ETH_WALLETS = ["0x" + "a" * 40, "0x" + "b" * 40]
USDT_TRON_CONTRACT = "TR7NHqjeKQxGTCi8q8ZY4pL8otSzgjLj6t"
USDT_ETH_CONTRACT = "0xdAC17F958D2ee523a2206206994597C13D831ec7"


class PaymentTransactionFactory(factory.django.DjangoModelFactory):
    """
    Pending PayPal attempt for a pending order.

    Example:
        attempt = PaymentTransactionFactory(order=order, provider_ref="PAYPAL-ORDER-1")
    """

    class Meta:
        model = PaymentTransaction

    id = factory.LazyFunction(generate_sequence_id)
    order = factory.SubFactory(OrderFactory)
    buyer = factory.LazyAttribute(lambda o: o.order.buyer)
    payment_method = PaymentMethod.PAYPAL
    provider = Provider.PAYPAL
    provider_ref = factory.Sequence(lambda n: f"PAYPAL-ORDER-{n}")
    amount = factory.LazyAttribute(lambda o: o.order.amount)
    currency = factory.LazyAttribute(lambda o: o.order.currency)
    status = TransactionStatus.PENDING
    payment_url = factory.LazyAttribute(
        lambda o: f"https://www.sandbox.paypal.com/checkoutnow?token={o.provider_ref}"
    )


class CardTransactionFactory(PaymentTransactionFactory):
    payment_method = PaymentMethod.CARD
    provider = Provider.STRIPE
    provider_ref = factory.Sequence(lambda n: f"cs_test_{n}")
    payment_url = factory.LazyAttribute(lambda o: f"https://checkout.stripe.com/c/pay/{o.provider_ref}")


class TronTransactionFactory(PaymentTransactionFactory):
    """USDT on Tron: no provider ref, a deposit address instead of a URL."""

    payment_method = PaymentMethod.USDT_TRON
    provider = Provider.TRON
    provider_ref = ""
    payment_url = ""
    deposit_address = TRON_WALLETS[0]


class CommissionRuleFactory(factory.django.DjangoModelFactory):
    """10% on every amount unless overridden."""

    class Meta:
        model = CommissionRule

    name = factory.Sequence(lambda n: f"Rule {n}")
    rule_type = CommissionRuleType.PERCENTAGE
    rate = Decimal("10.00")
    min_amount = Decimal("0.00")
    max_amount = None
    is_active = True


class UserPayoutConfigFactory(factory.django.DjangoModelFactory):
    """PayPal payout destination of a payee."""

    class Meta:
        model = UserPayoutConfig

    user = factory.SubFactory(UserFactory)
    payment_method = PaymentMethod.PAYPAL
    account_address = factory.LazyAttribute(lambda o: f"payouts-{o.user.username}@example.com")
    account_name = "Main"
    is_active = True


class HostedCheckoutConfigFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = HostedCheckoutConfig

    client_id = "paypal-client-id"
    client_secret = "paypal-client-secret"
    sandbox = True
    webhook_secret = "paypal-webhook-secret"
    return_url = "https://shop.example.com/paypal/return"
    cancel_url = "https://shop.example.com/paypal/cancel"
    min_amount = Decimal("1.00")
    max_amount = Decimal("10000.00")


class ChainConfigFactory(factory.django.DjangoModelFactory):
    """Tron configuration with two receiving wallets and 19 confirmations."""

    class Meta:
        model = ChainConfig
        django_get_or_create = ("network",)

    network = Provider.TRON
    api_url = "https://api.trongrid.io"
    api_key = "tron-api-key"
    usdt_contract = USDT_TRON_CONTRACT
    wallet_addresses = factory.LazyFunction(lambda: list(TRON_WALLETS))
    min_confirmations = 19
    webhook_secret = "chain-webhook-secret"
    min_amount = Decimal("1.00")
    max_amount = Decimal("10000.00")


class EthereumChainConfigFactory(ChainConfigFactory):
    network = Provider.ETHEREUM
    api_url = "https://api.etherscan.io/api"
    api_key = "etherscan-api-key"
    usdt_contract = USDT_ETH_CONTRACT
    wallet_addresses = factory.LazyFunction(lambda: list(ETH_WALLETS))
    min_confirmations = 12


class WebhookEventFactory(factory.django.DjangoModelFactory):
    """
    Pending PayPal capture-completed webhook.

    Example:
        event = WebhookEventFactory(payload=paypal_capture_payload(attempt))
        event = WebhookEventFactory(status=WebhookEventStatus.FAILED, retry_count=1)
    """

    class Meta:
        model = WebhookEvent

    provider = Provider.PAYPAL
    event_id = factory.Sequence(lambda n: f"WH-{n:08d}")
    event_type = "PAYMENT.CAPTURE.COMPLETED"
    payload = factory.LazyAttribute(lambda o: {"id": o.event_id, "event_type": o.event_type, "resource": {}})
    status = WebhookEventStatus.PENDING
    retry_count = 0


# =============================================================================
# Provider payloads
# =============================================================================


def paypal_capture_payload(
    transaction,
    event_type: str = "PAYMENT.CAPTURE.COMPLETED",
    capture_id: str = "CAPTURE-1",
    amount: Decimal | None = None,
    event_id: str = "WH-CAPTURE-1",
) -> dict:
    """PayPal capture webhook for a transaction."""
    value = amount if amount is not None else transaction.amount
    return {
        "id": event_id,
        "event_type": event_type,
        "resource": {
            "id": capture_id,
            "status": "COMPLETED",
            "custom_id": str(transaction.id),
            "amount": {"currency_code": "USD", "value": f"{value:.2f}"},
        },
    }


def chain_transfer_payload(
    to: str,
    amount: Decimal,
    txid: str = "f" * 64,
    confirmations: int = 20,
) -> dict:
    """Chain watcher callback for an incoming USDT transfer."""
    return {
        "txid": txid,
        "from": "TSenderAddressxxxxxxxxxxxxxxxxxxxx",
        "to": to,
        "amount": str(amount),
        "confirmations": confirmations,
        "block_number": 61234567,
    }


# =============================================================================
# Provider clients
# =============================================================================


class FakeClient(ProviderClient):
    """
    Scriptable provider client.

    Returns self.start / self.check, raises self.error when set, and
    records every request it receives.

    Example:
        client = FakeClient(Provider.PAYPAL)
        client.check = PaymentCheck(status=TransactionStatus.COMPLETED, external_ref="CAP-1")
    """

    def __init__(self, provider, start=None, check=None, limits=None, refundable=True, confirmations=19):
        self.provider = provider
        self.confirmations = confirmations
        self.start = start or PaymentStart(
            provider_ref=f"{provider}-ref",
            payment_url=f"https://{provider}.example.com/pay",
        )
        self.check = check or PaymentCheck(status=TransactionStatus.PENDING)
        self.limits = limits
        self.refundable = refundable
        self.started = []
        self.checked = []
        self.refunded = []
        self.released = []
        self.error = None

    def start_payment(self, request):
        if self.error:
            raise self.error
        self.started.append(request)
        return self.start

    def verify_payment(self, handle):
        if self.error:
            raise self.error
        self.checked.append(handle)
        return self.check

    def refund(self, handle, external_ref, amount):
        if not self.refundable:
            return super().refund(handle, external_ref, amount)
        self.refunded.append((external_ref, amount))
        return RefundResult(refund_ref="REFUND-1", status=TransactionStatus.REFUNDED)

    def release_payment(self, handle):
        if self.error:
            raise self.error
        self.released.append(handle)

    def amount_limits(self):
        return self.limits

    def min_confirmations(self):
        return self.confirmations


# =============================================================================
# HTTP responses
# =============================================================================


def http_response(status_code: int = 200, body=None) -> MagicMock:
    """A requests.Response stand-in whose json() returns body (or fails when None)."""
    response = MagicMock(spec=requests.Response)
    response.status_code = status_code
    if body is None:
        response.json.side_effect = ValueError("no JSON")
    else:
        response.json.return_value = body
    return response
