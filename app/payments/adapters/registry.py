"""
Payment method lookup table.

Maps the method a buyer picks to the provider rail and the client that
talks to it:

    paypal     -> paypal   (HostedCheckoutClient)
    card       -> stripe   (CardCheckoutClient)
    usdt_tron  -> tron     (OnChainClient for Tron)
    usdt_eth   -> ethereum (OnChainClient for Ethereum)

The process-wide registry is owned by the payments AppConfig (it keeps
the PayPal token cache and the wallet rotation counters alive between
requests). Services receive a registry through __init__; tests build one
from fake clients.

Usage:
    from payments.adapters.registry import default_registry

    registry = default_registry()
    client = registry.client_for_method(PaymentMethod.USDT_TRON)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.apps import apps

from core.exceptions import ValidationError
from orders.models import PaymentMethod

from payments.adapters.card_checkout import CardCheckoutClient
from payments.adapters.hosted_checkout import HostedCheckoutClient
from payments.adapters.on_chain import OnChainClient
from payments.models import ChainNetwork
from payments.state_machines import Provider

if TYPE_CHECKING:
    from collections.abc import Mapping

    from payments.adapters.base import ProviderClient
    from payments.config_cache import ProviderConfigCache


METHOD_PROVIDERS: dict[str, str] = {
    PaymentMethod.PAYPAL: Provider.PAYPAL,
    PaymentMethod.CARD: Provider.STRIPE,
    PaymentMethod.USDT_TRON: Provider.TRON,
    PaymentMethod.USDT_ETH: Provider.ETHEREUM,
}


class ProviderRegistry:
    """Provider clients keyed by provider name."""

    def __init__(self, clients: Mapping[str, ProviderClient]):
        self._clients = dict(clients)

    @classmethod
    def from_config_cache(cls, config_cache: ProviderConfigCache) -> ProviderRegistry:
        """Build the production clients, all reading configuration from config_cache."""
        return cls(
            {
                Provider.PAYPAL: HostedCheckoutClient(config_source=config_cache.hosted_checkout),
                Provider.STRIPE: CardCheckoutClient(),
                Provider.TRON: OnChainClient(ChainNetwork.TRON, config_source=config_cache.chain),
                Provider.ETHEREUM: OnChainClient(
                    ChainNetwork.ETHEREUM, config_source=config_cache.chain
                ),
            }
        )

    @staticmethod
    def provider_for_method(payment_method: str) -> str:
        """
        Provider rail for a payment method.

        Raises:
            ValidationError: Unknown payment method
        """
        provider = METHOD_PROVIDERS.get(payment_method)
        if provider is None:
            raise ValidationError(
                f"Unsupported payment method '{payment_method}'",
                error_code="UNSUPPORTED_PAYMENT_METHOD",
                details={"payment_method": payment_method},
            )
        return provider

    def client_for_method(self, payment_method: str) -> ProviderClient:
        return self.client_for_provider(self.provider_for_method(payment_method))

    def client_for_provider(self, provider: str) -> ProviderClient:
        """
        Raises:
            ValidationError: No client registered for the provider
        """
        client = self._clients.get(provider)
        if client is None:
            raise ValidationError(
                f"Provider '{provider}' is not available",
                error_code="UNSUPPORTED_PROVIDER",
                details={"provider": provider},
            )
        return client


def default_registry() -> ProviderRegistry:
    """The registry owned by the running payments app."""
    return apps.get_app_config("payments").registry
