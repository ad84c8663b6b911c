"""Error taxonomy for the orders domain.

Every failure the orchestrator can surface is an ``OrderError``. Errors keep
a stable machine-readable ``code`` (used by the API layer to pick an HTTP
status), a human readable message, and a ``details`` dict with the
structured data a client needs to correct and retry the request.

``OrderError`` subclasses ``ValueError`` so callers that only care about
"the domain rejected this" can keep catching ``ValueError``.
"""

from decimal import Decimal
from typing import Any, Optional
from uuid import UUID


class OrderError(ValueError):
    """Base class for domain failures raised by the orders core.

    Attributes:
        code: Stable error code, e.g. ``"INSUFFICIENT_STOCK"``.
        message: Human readable description.
        details: JSON-serializable structured context.
    """

    code = "ORDER_ERROR"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        """Return the error as an API body ``{"detail", "message", ...}``."""
        body = {"detail": self.code, "message": self.message}
        for key, value in self.details.items():
            body[key] = str(value) if isinstance(value, (UUID, Decimal)) else value
        return body


class UserNotFound(OrderError):
    code = "USER_NOT_FOUND"

    def __init__(self, user_id: UUID):
        super().__init__(f"User not found with id: {user_id}", user_id=user_id)


class ProductNotFound(OrderError):
    code = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: UUID):
        super().__init__(f"Product not found with id: {product_id}", product_id=product_id)


class InventoryNotFound(OrderError):
    """No inventory record for a product, or no record with a given id."""

    code = "INVENTORY_NOT_FOUND"

    def __init__(self, product_id: Optional[UUID] = None, inventory_id: Optional[UUID] = None):
        if inventory_id is not None:
            super().__init__(f"Inventory not found with id: {inventory_id}", inventory_id=inventory_id)
        else:
            super().__init__(
                f"Inventory not found with productId: {product_id}", product_id=product_id
            )


class OrderNotFound(OrderError):
    code = "ORDER_NOT_FOUND"

    def __init__(self, order_id: UUID):
        super().__init__(f"Order not found with id: {order_id}", order_id=order_id)


class EmptyOrder(OrderError):
    code = "EMPTY_ORDER"

    def __init__(self):
        super().__init__("Order must have at least one item")


class InsufficientStock(OrderError):
    """Raised when the batch availability check denies at least one item."""

    code = "INSUFFICIENT_STOCK"

    def __init__(self, product_id: UUID, requested: int, available: int):
        super().__init__(
            f"Insufficient stock for product {product_id}. "
            f"Requested: {requested}, Available: {available}",
            product_id=product_id,
            requested=requested,
            available=available,
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


class InvalidTransition(OrderError):
    """Raised when a status change is not allowed by the state machine."""

    code = "INVALID_TRANSITION"

    def __init__(self, current, requested, message: str | None = None):
        current_value = getattr(current, "value", current)
        requested_value = getattr(requested, "value", requested)
        super().__init__(
            message or f"Cannot change status from {current_value} to {requested_value}",
            current_status=current_value,
            requested_status=requested_value,
        )
        self.current = current
        self.requested = requested


class AlreadyCancelled(InvalidTransition):
    code = "ALREADY_CANCELLED"

    def __init__(self, current, requested):
        super().__init__(current, requested, message="Order is already cancelled.")


class NotEditable(OrderError):
    code = "NOT_EDITABLE"

    def __init__(self, current):
        current_value = getattr(current, "value", current)
        super().__init__(
            "Order can only be updated when status is PENDING. "
            f"Current status: {current_value}",
            current_status=current_value,
        )


class ConcurrentUpdate(OrderError):
    code = "CONCURRENT_UPDATE"

    def __init__(self, order_id: UUID, expected_version: int):
        super().__init__(
            f"Order {order_id} was modified concurrently; reload and retry",
            order_id=order_id,
            expected_version=expected_version,
        )


class DownstreamDegraded(OrderError):
    """A downstream call was answered by its fallback instead of the service."""

    code = "DOWNSTREAM_DEGRADED"

    def __init__(self, service: str, operation: str, reason: str = ""):
        message = f"{service} service degraded during {operation}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, service=service, operation=operation)
        self.service = service
        self.operation = operation


class IdempotencyConflict(OrderError):
    """An ``Idempotency-Key`` was reused with a different request body."""

    code = "IDEMPOTENCY_CONFLICT"

    def __init__(self, key: str):
        super().__init__("Idempotency-Key was already used with a different payload", key=key)
