"""Deterministic fallback gateways.

These implement the gateway ports without any I/O and are what the
``Resilient*Gateway`` decorators answer with when a downstream service is
unreachable or its breaker is open.

The values are chosen so order admission fails closed (no user, no stock)
while status transitions can carry on with a logged, degraded inventory
answer.
"""

from typing import Dict
from uuid import UUID

from .domain import (
    UNAVAILABLE,
    ZERO,
    CatalogGateway,
    IdentityGateway,
    InventoryGateway,
    InventoryInfo,
    ProductInfo,
)

FALLBACK_PRODUCT_NAME = "Product Unavailable"


class IdentityFallback(IdentityGateway):
    """No user: a shipping snapshot cannot be derived safely."""

    def get_user(self, user_id: UUID):
        return None


class CatalogFallback(CatalogGateway):
    """Placeholder product with zero price and a sentinel name."""

    def get_product(self, product_id: UUID) -> ProductInfo:
        return ProductInfo(
            id=product_id,
            name=FALLBACK_PRODUCT_NAME,
            price=ZERO,
            description="Product service is currently unavailable",
        )


class InventoryFallback(InventoryGateway):
    """Deny-by-default inventory answers.

    Availability is refused for every product; lookups, reservations and
    releases return records flagged ``UNAVAILABLE``.
    """

    def get_inventory(self, product_id: UUID) -> InventoryInfo:
        return InventoryInfo(id=None, product_id=product_id, status=UNAVAILABLE)

    def check_availability(self, request: Dict[UUID, int]) -> Dict[UUID, bool]:
        return {product_id: False for product_id in request}

    def reserve(self, inventory_id: UUID, quantity: int) -> InventoryInfo:
        return InventoryInfo(id=inventory_id, product_id=None, status=UNAVAILABLE)

    def release(self, inventory_id: UUID, quantity: int) -> InventoryInfo:
        return InventoryInfo(id=inventory_id, product_id=None, status=UNAVAILABLE)
