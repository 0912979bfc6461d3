"""
Payments app configuration.

The app config owns the long-lived payment components of the process:
    - config_cache: ProviderConfigCache read by every provider client
    - registry: ProviderRegistry built on top of the cache
"""

from functools import cached_property

from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    """Configuration for the payments application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"
    verbose_name = "Payments"

    def ready(self):
        from payments import signals  # noqa: F401

    @cached_property
    def config_cache(self):
        from payments.config_cache import ProviderConfigCache

        return ProviderConfigCache()

    @cached_property
    def registry(self):
        from payments.adapters.registry import ProviderRegistry

        return ProviderRegistry.from_config_cache(self.config_cache)
