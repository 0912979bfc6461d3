"""
Tests for the PayPal hosted-checkout client.

The requests session is mocked; every test scripts the HTTP answers in
call order (token exchange first, then the API call).

Tests cover:
- Order creation and approval links
- Verification, including capture of approved orders
- Refunds
- Access token caching and refresh
- HTTP error translation
"""

from decimal import Decimal

import pytest
import requests

from payments.adapters.hosted_checkout import HostedCheckoutClient
from payments.exceptions import (
    ConfigMissingError,
    ProviderRequestError,
    ProviderUnavailableError,
)
from payments.state_machines import TransactionStatus
from payments.tests.factories import http_response


TOKEN = http_response(200, {"access_token": "A21-token", "expires_in": 32400})


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def client(paypal_settings, session, clock):
    return HostedCheckoutClient(
        config_source=lambda: paypal_settings,
        session=session,
        timeout=5,
        clock=clock,
    )


def created_order(status="CREATED"):
    return {
        "id": "5O190127TN364715T",
        "status": status,
        "links": [
            {"rel": "self", "href": "https://api-m.sandbox.paypal.com/v2/checkout/orders/5O190127TN364715T"},
            {"rel": "approve", "href": "https://www.sandbox.paypal.com/checkoutnow?token=5O190127TN364715T"},
        ],
    }


def completed_order(capture_status="COMPLETED", value="49.99"):
    return {
        "id": "5O190127TN364715T",
        "status": "COMPLETED",
        "purchase_units": [
            {
                "payments": {
                    "captures": [
                        {
                            "id": "3C679366HH908993F",
                            "status": capture_status,
                            "amount": {"currency_code": "USD", "value": value},
                        }
                    ]
                }
            }
        ],
    }


# =============================================================================
# start_payment
# =============================================================================


class TestStartPayment:
    """Tests for order creation."""

    def test_returns_approval_link(self, client, session, start_request):
        session.request.side_effect = [TOKEN, http_response(201, created_order())]

        started = client.start_payment(start_request)

        assert started.provider_ref == "5O190127TN364715T"
        assert started.status == TransactionStatus.PENDING
        assert started.payment_url.startswith("https://www.sandbox.paypal.com/checkoutnow")

    def test_request_body_and_headers(self, client, session, start_request):
        session.request.side_effect = [TOKEN, http_response(201, created_order())]

        client.start_payment(start_request)

        method, url = session.request.call_args.args
        kwargs = session.request.call_args.kwargs
        assert (method, url) == ("POST", "https://api-m.sandbox.paypal.com/v2/checkout/orders")
        unit = kwargs["json"]["purchase_units"][0]
        assert unit["custom_id"] == "7001"
        assert unit["amount"] == {"currency_code": "USD", "value": "49.99"}
        assert kwargs["json"]["application_context"]["return_url"] == "https://example.com/paypal/return"
        assert kwargs["headers"]["Authorization"] == "Bearer A21-token"
        assert kwargs["headers"]["PayPal-Request-Id"].startswith("create_order:7001:1:")
        assert kwargs["timeout"] == 5

    def test_missing_approval_link(self, client, session, start_request):
        session.request.side_effect = [TOKEN, http_response(201, {"id": "X", "links": []})]

        with pytest.raises(ProviderRequestError):
            client.start_payment(start_request)

    def test_not_configured(self, session, start_request):
        client = HostedCheckoutClient(config_source=lambda: None, session=session)

        with pytest.raises(ConfigMissingError):
            client.start_payment(start_request)
        session.request.assert_not_called()


# =============================================================================
# verify_payment
# =============================================================================


class TestVerifyPayment:
    """Tests for order lookups."""

    def test_approved_order_is_captured(self, client, session, make_handle):
        session.request.side_effect = [
            TOKEN,
            http_response(200, created_order("APPROVED")),
            http_response(201, completed_order()),
        ]

        check = client.verify_payment(make_handle(provider_ref="5O190127TN364715T"))

        assert check.status == TransactionStatus.COMPLETED
        assert check.external_ref == "3C679366HH908993F"
        assert check.confirmed_amount == Decimal("49.99")
        capture_call = session.request.call_args_list[-1]
        assert capture_call.args[1].endswith("/v2/checkout/orders/5O190127TN364715T/capture")
        assert capture_call.kwargs["headers"]["PayPal-Request-Id"].startswith("capture:7001:")

    def test_created_order_is_pending(self, client, session, make_handle):
        session.request.side_effect = [TOKEN, http_response(200, created_order())]

        check = client.verify_payment(make_handle(provider_ref="5O190127TN364715T"))

        assert check.status == TransactionStatus.PENDING
        assert check.external_ref == ""

    def test_voided_order_fails(self, client, session, make_handle):
        session.request.side_effect = [TOKEN, http_response(200, created_order("VOIDED"))]

        check = client.verify_payment(make_handle(provider_ref="5O190127TN364715T"))

        assert check.status == TransactionStatus.FAILED
        assert check.failure_reason == "PayPal order VOIDED"

    @pytest.mark.parametrize(
        ("capture_status", "expected"),
        [
            ("PENDING", TransactionStatus.PROCESSING),
            ("DECLINED", TransactionStatus.FAILED),
            ("REFUNDED", TransactionStatus.COMPLETED),
        ],
    )
    def test_capture_status_mapping(self, client, session, make_handle, capture_status, expected):
        session.request.side_effect = [TOKEN, http_response(200, completed_order(capture_status))]

        check = client.verify_payment(make_handle(provider_ref="5O190127TN364715T"))

        assert check.status == expected

    def test_completed_order_without_capture_is_processing(self, client, session, make_handle):
        session.request.side_effect = [TOKEN, http_response(200, {"status": "COMPLETED"})]

        check = client.verify_payment(make_handle(provider_ref="5O190127TN364715T"))

        assert check.status == TransactionStatus.PROCESSING


# =============================================================================
# refund
# =============================================================================


class TestRefund:
    def test_refunds_capture(self, client, session, make_handle):
        session.request.side_effect = [
            TOKEN,
            http_response(201, {"id": "1JU08902781691411", "status": "COMPLETED"}),
        ]

        result = client.refund(make_handle(), "3C679366HH908993F", Decimal("49.99"))

        assert result.refund_ref == "1JU08902781691411"
        assert session.request.call_args.args[1].endswith("/v2/payments/captures/3C679366HH908993F/refund")
        assert session.request.call_args.kwargs["json"]["amount"]["value"] == "49.99"


# =============================================================================
# Access Token
# =============================================================================


class TestAccessToken:
    """Client-credentials token handling."""

    def test_token_reused_until_expiry(self, client, session, clock, make_handle):
        session.request.side_effect = [
            TOKEN,
            http_response(200, created_order()),
            http_response(200, created_order()),
            TOKEN,
            http_response(200, created_order()),
        ]
        handle = make_handle(provider_ref="5O190127TN364715T")

        client.verify_payment(handle)
        client.verify_payment(handle)
        clock.now += 32400
        client.verify_payment(handle)

        token_calls = [c for c in session.request.call_args_list if c.args[1].endswith("/v1/oauth2/token")]
        assert len(token_calls) == 2
        assert token_calls[0].kwargs["auth"] == ("paypal-client-id", "paypal-client-secret")

    def test_unauthorized_retries_with_fresh_token(self, client, session, make_handle):
        session.request.side_effect = [
            TOKEN,
            http_response(401, {"error": "invalid_token"}),
            TOKEN,
            http_response(200, created_order()),
        ]

        check = client.verify_payment(make_handle(provider_ref="5O190127TN364715T"))

        assert check.status == TransactionStatus.PENDING
        assert session.request.call_count == 4


# =============================================================================
# Error Handling
# =============================================================================


class TestErrors:
    """Translation of HTTP failures."""

    @pytest.mark.parametrize("status_code", [429, 500, 503])
    def test_server_errors_are_unavailable(self, client, session, make_handle, status_code):
        session.request.side_effect = [TOKEN, http_response(status_code)]

        with pytest.raises(ProviderUnavailableError) as exc_info:
            client.verify_payment(make_handle(provider_ref="X"))

        assert exc_info.value.is_retryable

    def test_timeout_is_unavailable(self, client, session, make_handle):
        session.request.side_effect = [TOKEN, requests.Timeout("read timed out")]

        with pytest.raises(ProviderUnavailableError):
            client.verify_payment(make_handle(provider_ref="X"))

    def test_client_error_is_rejected(self, client, session, start_request):
        session.request.side_effect = [
            TOKEN,
            http_response(422, {"name": "UNPROCESSABLE_ENTITY", "message": "Amount invalid"}),
        ]

        with pytest.raises(ProviderRequestError) as exc_info:
            client.start_payment(start_request)

        assert exc_info.value.details["paypal_error"] == "UNPROCESSABLE_ENTITY"
        assert exc_info.value.details["status_code"] == 422
        assert not exc_info.value.is_retryable

    def test_amount_limits_come_from_config(self, client):
        assert client.amount_limits() == (Decimal("1.00"), Decimal("10000.00"))
