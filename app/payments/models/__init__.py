"""
Payment domain models.

This module contains all payment-related models:
- PaymentTransaction: One attempt to pay an order via one provider
- CommissionRule: Commission terms for third-party sales
- CommissionRecord: Commission split of one settled order
- SettlementEntry: Payout intents recorded by settlement
- UserPayoutConfig: Payee payout destinations
- HostedCheckoutConfig / ChainConfig: Provider configuration
- WebhookEvent: Provider webhook log for idempotent processing
"""

from payments.models.commission import CommissionRecord, CommissionRule
from payments.models.payout_config import UserPayoutConfig
from payments.models.provider_config import ChainConfig, ChainNetwork, HostedCheckoutConfig
from payments.models.settlement import SettlementEntry
from payments.models.transaction import PaymentTransaction
from payments.models.webhook_event import WebhookEvent

__all__ = [
    "ChainConfig",
    "ChainNetwork",
    "CommissionRecord",
    "CommissionRule",
    "HostedCheckoutConfig",
    "PaymentTransaction",
    "SettlementEntry",
    "UserPayoutConfig",
    "WebhookEvent",
]
