"""
Pytest fixtures for provider client tests.

Provider clients never touch the database; these fixtures hand them
in-memory configuration and a mocked requests session.

Sections:
    - Configuration Fixtures
    - HTTP Fixtures
"""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest
import requests

from payments.adapters.base import PaymentHandle, StartPaymentRequest
from payments.config_cache import ChainSettings, HostedCheckoutSettings
from payments.models import ChainNetwork
from payments.tests.factories import TRON_WALLETS, USDT_TRON_CONTRACT


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def paypal_settings():
    return HostedCheckoutSettings(
        client_id="paypal-client-id",
        client_secret="paypal-client-secret",
        base_url="https://api-m.sandbox.paypal.com",
        webhook_secret="paypal-webhook-secret",
        return_url="https://example.com/paypal/return",
        cancel_url="https://example.com/paypal/cancel",
        brand_name="Marketplace",
        min_amount=Decimal("1.00"),
        max_amount=Decimal("10000.00"),
    )


@pytest.fixture
def tron_settings():
    return ChainSettings(
        network=ChainNetwork.TRON,
        api_url="https://api.trongrid.io",
        api_key="trongrid-key",
        usdt_contract=USDT_TRON_CONTRACT,
        wallet_addresses=tuple(TRON_WALLETS),
        min_confirmations=19,
        webhook_secret="chain-webhook-secret",
        min_amount=Decimal("1.00"),
        max_amount=Decimal("50000.00"),
    )


@pytest.fixture
def start_request():
    """Request to collect 49.99 for transaction 7001."""
    return StartPaymentRequest(
        transaction_id=7001,
        order_id=42,
        amount=Decimal("49.99"),
        currency="USD",
    )


@pytest.fixture
def make_handle():
    """Build a PaymentHandle for transaction 7001."""

    def _create(**overrides) -> PaymentHandle:
        fields = {
            "transaction_id": 7001,
            "provider_ref": "",
            "amount": Decimal("49.99"),
            "currency": "USD",
        }
        fields.update(overrides)
        return PaymentHandle(**fields)

    return _create


# =============================================================================
# HTTP Fixtures
# =============================================================================


@pytest.fixture
def session():
    """Mocked requests.Session; script answers via session.request/get side_effect."""
    return MagicMock(spec=requests.Session)
