"""
State machine enums and helpers for payment models.

This module defines the state enums used by payment models with django-fsm.
"""

from payments.state_machines.states import (
    OPEN_TRANSACTION_STATUSES,
    RETRYABLE_SETTLEMENT_STATUSES,
    CommissionRuleType,
    CommissionStatus,
    Provider,
    SettlementRecipient,
    SettlementStatus,
    TransactionStatus,
    WebhookEventStatus,
)

__all__ = [
    "OPEN_TRANSACTION_STATUSES",
    "RETRYABLE_SETTLEMENT_STATUSES",
    "CommissionRuleType",
    "CommissionStatus",
    "Provider",
    "SettlementRecipient",
    "SettlementStatus",
    "TransactionStatus",
    "WebhookEventStatus",
]
