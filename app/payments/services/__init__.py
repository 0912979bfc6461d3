"""
Payment services.

This module provides:
- PaymentService: pay, verify, refund and reconciliation entry points
- SettlementCoordinator: exactly-once finalization and settlement
- TransactionLedger: PaymentTransaction state and provider records
- CommissionCalculator: platform/payee split
- PayoutConfigService: payee payout destinations

Usage:
    from payments.services import PaymentService, SettlementCoordinator

    attempt = PaymentService().pay(order_id, user, "usdt_tron")

    result = SettlementCoordinator().finalize_payment(
        attempt.id, TransactionStatus.COMPLETED, external_ref=txid
    )
"""

from payments.services.commission import (
    CommissionCalculator,
    CommissionResult,
    CommissionSplit,
    NoCommission,
)
from payments.services.ledger import TransactionLedger
from payments.services.payment_service import PaymentService, PaymentStatus
from payments.services.payout_config import PayoutConfigService, validate_destination
from payments.services.settlement import SettlementCoordinator, SettlementOutcome

__all__ = [
    "CommissionCalculator",
    "CommissionResult",
    "CommissionSplit",
    "NoCommission",
    "PaymentService",
    "PaymentStatus",
    "PayoutConfigService",
    "SettlementCoordinator",
    "SettlementOutcome",
    "TransactionLedger",
    "validate_destination",
]
