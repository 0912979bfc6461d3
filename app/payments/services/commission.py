"""
Commission calculator.

Picks the commission rule for a gross amount and splits it between the
platform and the payee. Only third-party sales reach this code; platform
sales keep the full amount.

Rule selection:
    The most recently created active rule whose [min_amount, max_amount]
    range contains the gross amount. First match wins, rules never stack.
    When no rule matches, the resource's default rate (a percentage)
    applies. With neither, the result is NoCommission.

Usage:
    calculator = CommissionCalculator()
    match calculator.compute(Decimal("100.00"), default_rate=Decimal("15")):
        case CommissionSplit(commission_amount=commission, payee_amount=payee):
            ...
        case NoCommission():
            ...
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from core.services import BaseService

from payments.exceptions import InvalidCommissionConfigError
from payments.models import CommissionRule
from payments.state_machines import CommissionRuleType

CENTS = Decimal("0.01")
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class CommissionSplit:
    """
    Platform/payee split of a gross amount.

    commission_amount + payee_amount == gross_amount exactly.
    """

    gross_amount: Decimal
    commission_amount: Decimal
    payee_amount: Decimal
    rule_type: str
    rate: Decimal
    rule_id: int | None = None


@dataclass(frozen=True)
class NoCommission:
    """No rule applies; the payee receives the whole gross amount."""

    gross_amount: Decimal

    @property
    def payee_amount(self) -> Decimal:
        return self.gross_amount


CommissionResult = CommissionSplit | NoCommission


class CommissionCalculator(BaseService):
    """Selects a commission rule and computes the split."""

    def compute(self, gross: Decimal, default_rate: Decimal | None = None) -> CommissionResult:
        """
        Split gross between platform and payee.

        Raises:
            InvalidCommissionConfigError: A rule (or the default rate) would
                take more than the gross amount or less than nothing
        """
        gross = gross.quantize(CENTS, rounding=ROUND_HALF_UP)
        rule = self.select_rule(gross)

        if rule is not None:
            rule_type, rate, rule_id = rule.rule_type, rule.rate, rule.id
        elif default_rate is not None:
            rule_type, rate, rule_id = CommissionRuleType.PERCENTAGE, default_rate, None
        else:
            return NoCommission(gross_amount=gross)

        commission = self._commission(gross, rule_type, rate, rule_id)
        split = CommissionSplit(
            gross_amount=gross,
            commission_amount=commission,
            payee_amount=gross - commission,
            rule_type=rule_type,
            rate=rate,
            rule_id=rule_id,
        )
        self.get_logger().debug(
            "Commission computed",
            extra={
                "gross_amount": str(gross),
                "commission_amount": str(commission),
                "rule_id": rule_id,
                "rule_type": rule_type,
            },
        )
        return split

    @staticmethod
    def select_rule(gross: Decimal) -> CommissionRule | None:
        """Most recently created active rule whose range contains gross."""
        candidates = CommissionRule.objects.filter(
            is_active=True,
            min_amount__lte=gross,
        ).order_by("-created_at", "-id")
        for rule in candidates:
            if rule.matches(gross):
                return rule
        return None

    @staticmethod
    def _commission(gross: Decimal, rule_type: str, rate: Decimal, rule_id: int | None) -> Decimal:
        details = {"rule_id": rule_id, "rule_type": rule_type, "rate": str(rate)}

        if rate < 0:
            raise InvalidCommissionConfigError("Commission rate cannot be negative", details=details)

        if rule_type == CommissionRuleType.PERCENTAGE:
            if rate > HUNDRED:
                raise InvalidCommissionConfigError(
                    "Commission percentage cannot exceed 100",
                    details=details,
                )
            return (gross * rate / HUNDRED).quantize(CENTS, rounding=ROUND_HALF_UP)

        if rule_type == CommissionRuleType.FIXED:
            commission = rate.quantize(CENTS, rounding=ROUND_HALF_UP)
            if commission > gross:
                raise InvalidCommissionConfigError(
                    f"Fixed commission {commission} exceeds gross amount {gross}",
                    details={**details, "gross_amount": str(gross)},
                )
            return commission

        raise InvalidCommissionConfigError(f"Unknown commission rule type '{rule_type}'", details=details)
