"""
USDT on-chain payments (Tron TRC20 and Ethereum ERC20).

There is no provider-side payment object. Starting a payment assigns a
receiving wallet from the configured pool (round-robin, so concurrent
payments spread across addresses) and renders a QR code for the payment
URI. Verifying scans the address's recent token transfers for one that:
    - is sent to the assigned address (case-insensitive)
    - carries exactly the expected amount
    - was not already matched to another transaction
    - has at least min_confirmations confirmations

An unmatched or under-confirmed payment stays pending; on-chain payments
never fail on their own, they only expire with their order.

Refunds are not supported on-chain.

Usage:
    client = OnChainClient(ChainNetwork.TRON, config_source=cache.chain)
    started = client.start_payment(request)   # deposit_address + qr_code
    check = client.verify_payment(handle)
"""

from __future__ import annotations

import base64
import io
import itertools
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone as dt_timezone
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

import qrcode
import qrcode.image.svg
import requests
from django.conf import settings

from payments.adapters.base import PaymentCheck, PaymentStart, ProviderClient
from payments.exceptions import ConfigMissingError, ProviderRequestError, ProviderUnavailableError
from payments.models import ChainNetwork
from payments.state_machines import TransactionStatus

if TYPE_CHECKING:
    from collections.abc import Callable

    from payments.adapters.base import PaymentHandle, StartPaymentRequest
    from payments.config_cache import ChainSettings


# USDT uses 6 decimals on both networks
TOKEN_DECIMALS = Decimal(10) ** 6
SCAN_LIMIT = 20


@dataclass(frozen=True)
class ChainTransfer:
    """One token transfer as reported by a chain explorer."""

    txid: str
    from_address: str
    to_address: str
    amount: Decimal
    confirmations: int
    block_number: int | None = None
    timestamp: datetime | None = None


# =============================================================================
# Explorers
# =============================================================================


class ChainScanner(ABC):
    """Reads recent USDT transfers to an address from a chain explorer."""

    network: str = ""

    def __init__(self, session: requests.Session | None = None, timeout: float | None = None):
        self.session = session or requests.Session()
        self.timeout = timeout or settings.PAYMENT_PROVIDER_TIMEOUT_SECONDS

    @abstractmethod
    def recent_transfers(self, config: ChainSettings, address: str) -> list[ChainTransfer]:
        """Most recent transfers to address, newest first."""

    def _get_json(self, url: str, **kwargs) -> dict[str, Any]:
        try:
            response = self.session.get(url, timeout=self.timeout, **kwargs)
        except (requests.Timeout, requests.ConnectionError) as e:
            raise ProviderUnavailableError(
                f"Could not reach the {self.network} explorer",
                provider=self.network,
            ) from e
        if response.status_code >= 500 or response.status_code == 429:
            raise ProviderUnavailableError(
                f"{self.network} explorer error",
                provider=self.network,
                details={"status_code": response.status_code},
            )
        if response.status_code >= 400:
            raise ProviderRequestError(
                f"{self.network} explorer rejected the request",
                provider=self.network,
                details={"status_code": response.status_code},
            )
        try:
            return response.json()
        except ValueError as e:
            raise ProviderUnavailableError(
                f"{self.network} explorer returned invalid JSON",
                provider=self.network,
            ) from e


class TronScanner(ChainScanner):
    """
    TronGrid TRC20 transaction history.

    TronGrid's trc20 listing carries no confirmation count. Confirmations
    are derived from the head block (/wallet/getnowblock): blocks between
    the head and the transfer's block, estimated from the timestamps when
    the listing has no block number (Tron produces a block every 3s).
    """

    network = ChainNetwork.TRON
    block_interval_ms = 3000

    def recent_transfers(self, config: ChainSettings, address: str) -> list[ChainTransfer]:
        headers = {"Accept": "application/json"}
        if config.api_key:
            headers["TRON-PRO-API-KEY"] = config.api_key

        data = self._get_json(
            f"{config.api_url}/v1/accounts/{address}/transactions/trc20",
            params={"contract_address": config.usdt_contract, "limit": SCAN_LIMIT},
            headers=headers,
        )
        if data.get("success") is False:
            raise ProviderUnavailableError(
                "TronGrid reported an unsuccessful query",
                provider=self.network,
            )

        items = [item for item in data.get("data") or [] if _token_amount(item.get("value")) is not None]
        head = None
        if any(item.get("confirmations") is None for item in items):
            head = self.head_block(config, headers)

        transfers = []
        for item in items:
            block_number = _int(item.get("block_number")) or None
            confirmations = item.get("confirmations")
            if confirmations is None:
                confirmations = self._confirmations(head, block_number, item.get("block_timestamp"))
            transfers.append(
                ChainTransfer(
                    txid=item.get("txid") or item.get("transaction_id", ""),
                    from_address=item.get("from", ""),
                    to_address=item.get("to", ""),
                    amount=_token_amount(item.get("value")),
                    confirmations=_int(confirmations),
                    block_number=block_number,
                    timestamp=_from_millis(item.get("block_timestamp")),
                )
            )
        return transfers

    def head_block(self, config: ChainSettings, headers: dict[str, str]) -> tuple[int, int]:
        """(number, timestamp in ms) of the latest block."""
        data = self._get_json(f"{config.api_url}/wallet/getnowblock", headers=headers)
        raw = (data.get("block_header") or {}).get("raw_data") or {}
        number, timestamp = _int(raw.get("number")), _int(raw.get("timestamp"))
        if not number or not timestamp:
            raise ProviderUnavailableError(
                "TronGrid returned no head block",
                provider=self.network,
            )
        return number, timestamp

    def _confirmations(self, head: tuple[int, int], block_number: int | None, block_timestamp: Any) -> int:
        head_number, head_timestamp = head
        if block_number:
            return max(0, head_number - block_number)
        timestamp = _int(block_timestamp)
        if not timestamp:
            return 0
        return max(0, (head_timestamp - timestamp) // self.block_interval_ms)


class EthereumScanner(ChainScanner):
    """Etherscan-style tokentx listing."""

    network = ChainNetwork.ETHEREUM

    def recent_transfers(self, config: ChainSettings, address: str) -> list[ChainTransfer]:
        data = self._get_json(
            config.api_url,
            params={
                "module": "account",
                "action": "tokentx",
                "contractaddress": config.usdt_contract,
                "address": address,
                "page": 1,
                "offset": SCAN_LIMIT,
                "sort": "desc",
                "apikey": config.api_key,
            },
        )
        if data.get("status") != "1":
            # "No transactions found" is status 0 with an empty result
            if isinstance(data.get("result"), list):
                return []
            raise ProviderUnavailableError(
                f"Explorer error: {data.get('message', 'unknown')}",
                provider=self.network,
            )

        transfers = []
        for item in data.get("result") or []:
            amount = _token_amount(item.get("value"))
            if amount is None:
                continue
            transfers.append(
                ChainTransfer(
                    txid=item.get("hash", ""),
                    from_address=item.get("from", ""),
                    to_address=item.get("to", ""),
                    amount=amount,
                    confirmations=_int(item.get("confirmations")),
                    block_number=_int(item.get("blockNumber") or item.get("block_number")) or None,
                    timestamp=_from_seconds(item.get("timeStamp")),
                )
            )
        return transfers


SCANNERS: dict[str, type[ChainScanner]] = {
    ChainNetwork.TRON: TronScanner,
    ChainNetwork.ETHEREUM: EthereumScanner,
}


# =============================================================================
# Client
# =============================================================================


class OnChainClient(ProviderClient):
    """
    USDT client for one network.

    Args:
        network: ChainNetwork value
        config_source: Returns ChainSettings for a network (or None)
        scanner: Explorer reader (defaults to the network's scanner)
    """

    def __init__(
        self,
        network: str,
        config_source: Callable[[str], ChainSettings | None],
        scanner: ChainScanner | None = None,
    ):
        self.network = network
        self.provider = network
        self._config_source = config_source
        self.scanner = scanner or SCANNERS[network]()
        # next() on itertools.count is atomic under the GIL
        self._wallet_counter = itertools.count()

    def start_payment(self, request: StartPaymentRequest) -> PaymentStart:
        config = self._config()
        address = self.next_wallet(config)
        uri = payment_uri(self.network, address, request.amount)

        self.get_logger().info(
            "Assigned on-chain deposit address",
            extra={
                "network": self.network,
                "transaction_id": request.transaction_id,
                "order_id": request.order_id,
                "deposit_address": address,
            },
        )
        return PaymentStart(
            status=TransactionStatus.PENDING,
            deposit_address=address,
            qr_code=render_qr_data_uri(uri),
            raw_response={"payment_uri": uri, "network": self.network},
        )

    def verify_payment(self, handle: PaymentHandle) -> PaymentCheck:
        config = self._config()
        logger = self.get_logger()
        log_context = {
            "network": self.network,
            "transaction_id": handle.transaction_id,
            "deposit_address": handle.deposit_address,
        }

        start_time = time.time()
        transfers = self.scanner.recent_transfers(config, handle.deposit_address)
        duration_ms = (time.time() - start_time) * 1000

        match = find_matching_transfer(
            transfers,
            address=handle.deposit_address,
            amount=handle.amount,
            claimed_refs=handle.claimed_refs,
            not_before=handle.created_at,
        )
        if match is None:
            logger.info(
                "No matching on-chain transfer yet",
                extra={**log_context, "scanned": len(transfers), "duration_ms": duration_ms},
            )
            return PaymentCheck(status=TransactionStatus.PENDING)

        raw = {
            "txid": match.txid,
            "from": match.from_address,
            "to": match.to_address,
            "amount": str(match.amount),
            "confirmations": match.confirmations,
            "block_number": match.block_number,
        }
        if match.confirmations < config.min_confirmations:
            logger.info(
                "On-chain transfer awaiting confirmations",
                extra={
                    **log_context,
                    "txid": match.txid,
                    "confirmations": match.confirmations,
                    "min_confirmations": config.min_confirmations,
                },
            )
            return PaymentCheck(status=TransactionStatus.PENDING, raw_response=raw)

        logger.info(
            "On-chain transfer confirmed",
            extra={**log_context, "txid": match.txid, "confirmations": match.confirmations},
        )
        return PaymentCheck(
            status=TransactionStatus.COMPLETED,
            external_ref=match.txid,
            confirmed_amount=match.amount,
            raw_response=raw,
        )

    def amount_limits(self) -> tuple[Decimal, Decimal] | None:
        config = self._config()
        return config.min_amount, config.max_amount

    def min_confirmations(self) -> int:
        return self._config().min_confirmations

    def webhook_secret(self) -> str:
        return self._config().webhook_secret

    def next_wallet(self, config: ChainSettings) -> str:
        """Next receiving address from the pool, round-robin."""
        if not config.wallet_addresses:
            raise ConfigMissingError(
                f"No receiving wallets configured for {self.network}",
                details={"network": self.network},
            )
        index = next(self._wallet_counter) % len(config.wallet_addresses)
        return config.wallet_addresses[index]

    def _config(self) -> ChainSettings:
        config = self._config_source(self.network)
        if config is None:
            raise ConfigMissingError(
                f"USDT on {self.network} is not configured",
                details={"network": self.network},
            )
        return config


# =============================================================================
# Helpers
# =============================================================================


def find_matching_transfer(
    transfers: list[ChainTransfer],
    address: str,
    amount: Decimal,
    claimed_refs: frozenset[str] = frozenset(),
    not_before: datetime | None = None,
) -> ChainTransfer | None:
    """Best transfer paying exactly amount to address, most confirmed first."""
    candidates = [
        transfer
        for transfer in transfers
        if transfer.to_address.lower() == address.lower()
        and transfer.amount == amount
        and transfer.txid
        and transfer.txid not in claimed_refs
        and (not_before is None or transfer.timestamp is None or transfer.timestamp >= not_before)
    ]
    if not candidates:
        return None
    return max(candidates, key=lambda transfer: transfer.confirmations)


def payment_uri(network: str, address: str, amount: Decimal) -> str:
    """Wallet payment URI for the network's convention."""
    value = format(amount.normalize(), "f")
    if network == ChainNetwork.ETHEREUM:
        return f"ethereum:{address}@1?value={value}"
    return f"tron:{address}?amount={value}"


def render_qr_data_uri(data: str) -> str:
    """Render data as an SVG QR code and return it as a data: URI."""
    qr = qrcode.QRCode(
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=10,
        border=4,
    )
    qr.add_data(data)
    qr.make(fit=True)
    image = qr.make_image(image_factory=qrcode.image.svg.SvgPathImage)

    buffer = io.BytesIO()
    image.save(buffer)
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/svg+xml;base64,{encoded}"


def _token_amount(raw_value: Any) -> Decimal | None:
    if raw_value in (None, ""):
        return None
    try:
        return Decimal(str(raw_value)) / TOKEN_DECIMALS
    except InvalidOperation:
        return None


def _int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _from_millis(value: Any) -> datetime | None:
    millis = _int(value)
    if not millis:
        return None
    return datetime.fromtimestamp(millis / 1000, tz=dt_timezone.utc)


def _from_seconds(value: Any) -> datetime | None:
    seconds = _int(value)
    if not seconds:
        return None
    return datetime.fromtimestamp(seconds, tz=dt_timezone.utc)
