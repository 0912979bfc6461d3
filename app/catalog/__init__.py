"""
Catalog app: the resources buyers purchase.

Resources are owned by the upload/storage side of the platform; this app
holds the columns the settlement engine reads (price, who owns the sale,
default commission rate) and the lookup used by order creation and
settlement.

Usage:
    from catalog.services import ResourceLookup

    snapshot = ResourceLookup.get(resource_id)
    snapshot.price
    snapshot.ownership  # PlatformOwned() | ThirdPartyOwned(payee_id, rate)
"""
