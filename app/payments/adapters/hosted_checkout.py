"""
PayPal hosted-checkout client (Orders v2 REST API over requests).

Flow:
    1. start_payment creates a PayPal order (intent CAPTURE) and returns the
       approval link as the buyer's payment URL
    2. The buyer approves on PayPal and is sent back to return_url
    3. verify_payment reads the order; an APPROVED order is captured on the
       spot (idempotent through PayPal-Request-Id), a COMPLETED order
       reports its capture
    4. refund posts to the capture's refund endpoint

Access tokens come from the client-credentials exchange and are cached per
client until shortly before they expire. Network calls never run while the
token lock is held.

Status mapping:
    CREATED, SAVED, PAYER_ACTION_REQUIRED -> pending
    APPROVED, capture PENDING             -> processing
    capture COMPLETED                     -> completed
    VOIDED, capture DECLINED/FAILED       -> failed
"""

from __future__ import annotations

import threading
import time
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

import requests
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
)
from payments.state_machines import Provider, TransactionStatus

if TYPE_CHECKING:
    from collections.abc import Callable

    from payments.adapters.base import PaymentHandle, StartPaymentRequest
    from payments.config_cache import HostedCheckoutSettings


ORDER_STATUS_MAP = {
    "CREATED": TransactionStatus.PENDING,
    "SAVED": TransactionStatus.PENDING,
    "PAYER_ACTION_REQUIRED": TransactionStatus.PENDING,
    "APPROVED": TransactionStatus.PROCESSING,
    "VOIDED": TransactionStatus.FAILED,
}

CAPTURE_STATUS_MAP = {
    "COMPLETED": TransactionStatus.COMPLETED,
    "PENDING": TransactionStatus.PROCESSING,
    "DECLINED": TransactionStatus.FAILED,
    "FAILED": TransactionStatus.FAILED,
    "REFUNDED": TransactionStatus.COMPLETED,
    "PARTIALLY_REFUNDED": TransactionStatus.COMPLETED,
}

# Refresh tokens this many seconds before PayPal says they expire
TOKEN_REFRESH_MARGIN_SECONDS = 60


class HostedCheckoutClient(ProviderClient):
    """
    PayPal Orders v2 client.

    Args:
        config_source: Returns the active HostedCheckoutSettings (or None)
        session: requests.Session to use (tests pass a mock)
        timeout: Per-request timeout in seconds
    """

    provider = Provider.PAYPAL

    def __init__(
        self,
        config_source: Callable[[], HostedCheckoutSettings | None],
        session: requests.Session | None = None,
        timeout: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._config_source = config_source
        self.session = session or requests.Session()
        self.timeout = timeout or settings.PAYMENT_PROVIDER_TIMEOUT_SECONDS
        self._clock = clock
        self._token_lock = threading.Lock()
        self._token: tuple[str, str, float] | None = None  # (client_id, token, expires_at)

    # =========================================================================
    # ProviderClient
    # =========================================================================

    def start_payment(self, request: StartPaymentRequest) -> PaymentStart:
        config = self._config()
        body = {
            "intent": "CAPTURE",
            "purchase_units": [
                {
                    "reference_id": str(request.order_id),
                    "custom_id": str(request.transaction_id),
                    "description": f"Order #{request.order_id}",
                    "amount": {
                        "currency_code": request.currency,
                        "value": _format_amount(request.amount),
                    },
                }
            ],
            "application_context": {
                "return_url": request.return_url or config.return_url,
                "cancel_url": request.cancel_url or config.cancel_url,
                "brand_name": config.brand_name,
                "user_action": "PAY_NOW",
            },
        }

        data = self._request(
            "POST",
            "/v2/checkout/orders",
            operation="create_order",
            json=body,
            request_id=IdempotencyKeyGenerator.generate("create_order", request.transaction_id),
        )

        approve_url = next(
            (
                link.get("href", "")
                for link in data.get("links", [])
                if link.get("rel") in ("approve", "payer-action")
            ),
            "",
        )
        if not approve_url:
            raise ProviderRequestError(
                "PayPal order has no approval link",
                provider=self.provider,
                details={"paypal_order_id": data.get("id")},
            )

        return PaymentStart(
            provider_ref=data["id"],
            status=ORDER_STATUS_MAP.get(data.get("status", ""), TransactionStatus.PENDING),
            payment_url=approve_url,
            raw_response=data,
        )

    def verify_payment(self, handle: PaymentHandle) -> PaymentCheck:
        data = self._request(
            "GET",
            f"/v2/checkout/orders/{handle.provider_ref}",
            operation="get_order",
        )
        status = data.get("status", "")

        if status == "APPROVED":
            data = self._request(
                "POST",
                f"/v2/checkout/orders/{handle.provider_ref}/capture",
                operation="capture_order",
                json={},
                request_id=IdempotencyKeyGenerator.generate("capture", handle.transaction_id),
            )
            status = data.get("status", "")

        if status == "COMPLETED":
            return self._capture_check(data)

        mapped = ORDER_STATUS_MAP.get(status, TransactionStatus.PENDING)
        return PaymentCheck(
            status=mapped,
            failure_reason=f"PayPal order {status}" if mapped == TransactionStatus.FAILED else "",
            raw_response=data,
        )

    def refund(self, handle: PaymentHandle, external_ref: str, amount: Decimal) -> RefundResult:
        data = self._request(
            "POST",
            f"/v2/payments/captures/{external_ref}/refund",
            operation="refund_capture",
            json={
                "amount": {
                    "currency_code": handle.currency,
                    "value": _format_amount(amount),
                }
            },
            request_id=IdempotencyKeyGenerator.generate("refund", handle.transaction_id),
        )
        return RefundResult(
            refund_ref=data.get("id", ""),
            status=data.get("status", ""),
            raw_response=data,
        )

    def amount_limits(self) -> tuple[Decimal, Decimal] | None:
        config = self._config()
        return config.min_amount, config.max_amount

    # =========================================================================
    # Access Token
    # =========================================================================

    def _access_token(self, config: HostedCheckoutSettings) -> str:
        with self._token_lock:
            cached = self._token
        if cached and cached[0] == config.client_id and cached[2] > self._clock():
            return cached[1]

        data = self._send(
            "POST",
            f"{config.base_url}/v1/oauth2/token",
            operation="access_token",
            auth=(config.client_id, config.client_secret),
            data={"grant_type": "client_credentials"},
            headers={"Accept": "application/json"},
        )
        token = data["access_token"]
        expires_in = int(data.get("expires_in", 0))
        expires_at = self._clock() + max(expires_in - TOKEN_REFRESH_MARGIN_SECONDS, 0)

        with self._token_lock:
            self._token = (config.client_id, token, expires_at)
        return token

    def _forget_token(self) -> None:
        with self._token_lock:
            self._token = None

    # =========================================================================
    # HTTP
    # =========================================================================

    def _config(self) -> HostedCheckoutSettings:
        config = self._config_source()
        if config is None:
            raise ConfigMissingError(
                "PayPal is not configured",
                details={"provider": self.provider},
            )
        return config

    def _request(
        self,
        method: str,
        path: str,
        operation: str,
        json: dict[str, Any] | None = None,
        request_id: str | None = None,
    ) -> dict[str, Any]:
        """Authenticated call; retried once with a fresh token on 401."""
        config = self._config()
        headers = {"Content-Type": "application/json"}
        if request_id:
            headers["PayPal-Request-Id"] = request_id

        for attempt in (1, 2):
            headers["Authorization"] = f"Bearer {self._access_token(config)}"
            try:
                return self._send(
                    method,
                    f"{config.base_url}{path}",
                    operation=operation,
                    json=json,
                    headers=headers,
                )
            except ProviderRequestError as e:
                if e.details.get("status_code") == 401 and attempt == 1:
                    self._forget_token()
                    continue
                raise
        raise AssertionError("unreachable")

    def _send(self, method: str, url: str, operation: str, **kwargs) -> dict[str, Any]:
        logger = self.get_logger()
        log_context = {
            "provider": self.provider,
            "operation": operation,
            "method": method,
        }

        start_time = time.time()
        logger.info("Starting PayPal operation", extra=log_context)

        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except (requests.Timeout, requests.ConnectionError) as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                "Could not reach PayPal",
                extra={**log_context, "duration_ms": duration_ms},
                exc_info=True,
            )
            raise ProviderUnavailableError(
                "Could not connect to PayPal. Please retry.",
                provider=self.provider,
                details={"operation": operation},
            ) from e

        duration_ms = (time.time() - start_time) * 1000
        log_context = {**log_context, "status_code": response.status_code, "duration_ms": duration_ms}

        if response.status_code >= 500 or response.status_code == 429:
            logger.error("PayPal service error", extra=log_context)
            raise ProviderUnavailableError(
                "PayPal service error. Please retry.",
                provider=self.provider,
                details={"operation": operation, "status_code": response.status_code},
            )

        body = _json_or_empty(response)
        if response.status_code >= 400:
            logger.warning(
                "PayPal rejected request",
                extra={**log_context, "paypal_error": body.get("name") or body.get("error")},
            )
            raise ProviderRequestError(
                body.get("message") or body.get("error_description") or "PayPal rejected the request",
                provider=self.provider,
                details={
                    "operation": operation,
                    "status_code": response.status_code,
                    "paypal_error": body.get("name") or body.get("error", ""),
                },
            )

        logger.info("PayPal operation completed", extra=log_context)
        return body

    def _capture_check(self, data: dict[str, Any]) -> PaymentCheck:
        try:
            capture = data["purchase_units"][0]["payments"]["captures"][0]
        except (KeyError, IndexError, TypeError):
            # Completed orders always carry their capture; anything else is still settling
            return PaymentCheck(status=TransactionStatus.PROCESSING, raw_response=data)

        capture_status = capture.get("status", "")
        mapped = CAPTURE_STATUS_MAP.get(capture_status, TransactionStatus.PROCESSING)
        return PaymentCheck(
            status=mapped,
            failure_reason=f"PayPal capture {capture_status}" if mapped == TransactionStatus.FAILED else "",
            external_ref=capture.get("id", ""),
            confirmed_amount=_parse_amount(capture.get("amount", {}).get("value")),
            raw_response=data,
        )


def _format_amount(amount: Decimal) -> str:
    return f"{amount.quantize(Decimal('0.01'))}"


def _parse_amount(value: Any) -> Decimal | None:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def _json_or_empty(response: requests.Response) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}
