"""
Payee payout destinations.

A payee may register several destinations per payout method. Settlement
uses the most recently updated active one, so "set default" only bumps
updated_at and "delete" only deactivates (settlement entries keep
pointing at the old destination text).

Card sales are paid out through the payee's PayPal destination.

Usage:
    service = PayoutConfigService()
    config = service.create_config(user, PaymentMethod.USDT_TRON, "T" + "x" * 33)
    destination = service.resolve(payee_id, PaymentMethod.CARD)   # PayPal config
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import validate_email

from core.exceptions import ConflictError, NotFoundError, ValidationError
from core.services import BaseService
from orders.models import PaymentMethod

from payments.models import UserPayoutConfig

if TYPE_CHECKING:
    from django.contrib.auth.models import AbstractBaseUser
    from django.db.models import QuerySet


# Payment method of a sale -> payout method of the payee
PAYOUT_METHOD_FOR_SALE: dict[str, str] = {
    PaymentMethod.PAYPAL: PaymentMethod.PAYPAL,
    PaymentMethod.CARD: PaymentMethod.PAYPAL,
    PaymentMethod.USDT_TRON: PaymentMethod.USDT_TRON,
    PaymentMethod.USDT_ETH: PaymentMethod.USDT_ETH,
}

PAYOUT_METHODS = (PaymentMethod.PAYPAL, PaymentMethod.USDT_TRON, PaymentMethod.USDT_ETH)

TRON_ADDRESS_LENGTH = 34
ETH_ADDRESS_LENGTH = 42


def validate_destination(payment_method: str, address: str) -> str:
    """
    Check a payout destination's format and return it normalized.

    Raises:
        ValidationError: Unknown payout method or malformed destination
    """
    address = (address or "").strip()
    details = {"payment_method": payment_method}

    if payment_method == PaymentMethod.PAYPAL:
        try:
            validate_email(address)
        except DjangoValidationError as e:
            raise ValidationError(
                "PayPal payouts need a valid e-mail address",
                error_code="INVALID_PAYOUT_DESTINATION",
                details=details,
            ) from e
        return address.lower()

    if payment_method == PaymentMethod.USDT_TRON:
        if not (address.startswith("T") and len(address) == TRON_ADDRESS_LENGTH):
            raise ValidationError(
                f"Tron addresses start with 'T' and are {TRON_ADDRESS_LENGTH} characters long",
                error_code="INVALID_PAYOUT_DESTINATION",
                details=details,
            )
        return address

    if payment_method == PaymentMethod.USDT_ETH:
        if not (address.startswith("0x") and len(address) == ETH_ADDRESS_LENGTH):
            raise ValidationError(
                f"Ethereum addresses start with '0x' and are {ETH_ADDRESS_LENGTH} characters long",
                error_code="INVALID_PAYOUT_DESTINATION",
                details=details,
            )
        return address

    raise ValidationError(
        f"'{payment_method}' is not a payout method",
        error_code="UNSUPPORTED_PAYOUT_METHOD",
        details=details,
    )


class PayoutConfigService(BaseService):
    """Payee payout destination management and lookup."""

    @staticmethod
    def list_configs(user: AbstractBaseUser) -> QuerySet[UserPayoutConfig]:
        return UserPayoutConfig.objects.filter(user=user, is_active=True).order_by(
            "payment_method", "-updated_at", "-id"
        )

    def create_config(
        self,
        user: AbstractBaseUser,
        payment_method: str,
        account_address: str,
        account_name: str = "",
    ) -> UserPayoutConfig:
        """
        Register a new destination; it becomes the default for its method.

        Raises:
            ValidationError: Malformed destination
            ConflictError: Same active destination already registered
        """
        address = validate_destination(payment_method, account_address)

        duplicate = UserPayoutConfig.objects.filter(
            user=user,
            payment_method=payment_method,
            account_address__iexact=address,
            is_active=True,
        ).exists()
        if duplicate:
            raise ConflictError(
                "This payout destination is already registered",
                error_code="DUPLICATE_PAYOUT_CONFIG",
                details={"payment_method": payment_method},
            )

        config = UserPayoutConfig.objects.create(
            user=user,
            payment_method=payment_method,
            account_address=address,
            account_name=account_name,
        )
        self.get_logger().info(
            "Payout config created",
            extra={"user_id": user.pk, "payment_method": payment_method, "config_id": config.id},
        )
        return config

    def set_default(self, user: AbstractBaseUser, config_id: int) -> UserPayoutConfig:
        """Make a destination the one settlement uses for its method."""
        config = self._load(user, config_id)
        config.save(update_fields=["updated_at"])
        return config

    def delete_config(self, user: AbstractBaseUser, config_id: int) -> None:
        config = self._load(user, config_id)
        config.is_active = False
        config.save(update_fields=["is_active", "updated_at"])
        self.get_logger().info(
            "Payout config deactivated",
            extra={"user_id": user.pk, "config_id": config.id},
        )

    @staticmethod
    def resolve(payee_id: int, sale_method: str) -> UserPayoutConfig | None:
        """Destination settlement pays a payee through, or None."""
        payout_method = PAYOUT_METHOD_FOR_SALE.get(sale_method)
        if payout_method is None:
            return None
        return (
            UserPayoutConfig.objects.filter(
                user_id=payee_id,
                payment_method=payout_method,
                is_active=True,
            )
            .order_by("-updated_at", "-id")
            .first()
        )

    @staticmethod
    def _load(user: AbstractBaseUser, config_id: int) -> UserPayoutConfig:
        config = UserPayoutConfig.objects.filter(id=config_id, user=user, is_active=True).first()
        if config is None:
            raise NotFoundError(
                f"Payout config {config_id} not found",
                error_code="PAYOUT_CONFIG_NOT_FOUND",
                details={"config_id": str(config_id)},
            )
        return config
