"""
Resource lookup consumed by order creation and settlement.

Returns an immutable snapshot so callers never hold a live model whose
price might be edited mid-operation.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from core.exceptions import NotFoundError
from core.services import BaseService

from catalog.models import ProviderType, Resource
from catalog.ownership import Ownership, PlatformOwned, ThirdPartyOwned


@dataclass(frozen=True)
class ResourceSnapshot:
    """Price and ownership of a resource at lookup time."""

    id: int
    title: str
    price: Decimal
    ownership: Ownership
    is_active: bool


class ResourceLookup(BaseService):
    """Read-only access to resources."""

    @classmethod
    def get(cls, resource_id: int) -> ResourceSnapshot:
        """
        Load a resource snapshot.

        Raises:
            NotFoundError: Resource does not exist
        """
        resource = Resource.objects.filter(id=resource_id).first()
        if resource is None:
            raise NotFoundError(
                f"Resource {resource_id} not found",
                error_code="RESOURCE_NOT_FOUND",
                details={"resource_id": str(resource_id)},
            )
        return cls.snapshot(resource)

    @staticmethod
    def snapshot(resource: Resource) -> ResourceSnapshot:
        if resource.provider_type == ProviderType.THIRD_PARTY:
            ownership: Ownership = ThirdPartyOwned(
                payee_id=resource.owner_id,
                default_rate=resource.commission_rate,
            )
        else:
            ownership = PlatformOwned()

        return ResourceSnapshot(
            id=resource.id,
            title=resource.title,
            price=resource.price,
            ownership=ownership,
            is_active=resource.is_active,
        )
