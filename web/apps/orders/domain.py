"""Domain model, state machine and ports for orders.

This module contains the ``Order`` aggregate root and its ``OrderItem`` line
items, the ``OrderStatus`` state machine, the read-only DTOs returned by the
downstream services (identity, catalog, inventory), and the protocol
definitions (ports) the orchestrator depends on. Nothing here performs I/O.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Dict, List, Optional, Protocol
from uuid import UUID, uuid4

from .errors import AlreadyCancelled, EmptyOrder, InvalidTransition, NotEditable

ZERO = Decimal("0.00")
CENT = Decimal("0.01")
UNAVAILABLE = "UNAVAILABLE"


def to_money(value) -> Decimal:
    """Round an amount to cents, half up, matching the stored precision."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---- Enums ----
class OrderStatus(str, Enum):
    """Lifecycle states of an order.

    ``PENDING`` is the only initial state. ``DELIVERED`` and ``CANCELLED`` are
    terminal.
    """

    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return not ALLOWED_TRANSITIONS[self]


ALLOWED_TRANSITIONS: Dict[OrderStatus, frozenset] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

CANCELLABLE = frozenset({OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.PROCESSING})

# Cancelling from these states must hand reserved stock back to inventory.
RESERVED_STATES = frozenset({OrderStatus.CONFIRMED, OrderStatus.PROCESSING})


def validate_transition(current: OrderStatus, requested: OrderStatus) -> None:
    """Check a status change against the state machine.

    Args:
        current: Status the order is in now.
        requested: Status the caller wants to move to.

    Raises:
        AlreadyCancelled: When cancelling an order that is already cancelled.
        InvalidTransition: For any other transition not in the graph.
    """
    if current == OrderStatus.CANCELLED:
        if requested == OrderStatus.CANCELLED:
            raise AlreadyCancelled(current, requested)
        raise InvalidTransition(current, requested, f"Cannot change status from {current.value}")
    if requested == OrderStatus.CANCELLED and current not in CANCELLABLE:
        raise InvalidTransition(
            current,
            requested,
            f"Cannot cancel order with status: {current.value}. "
            "Only PENDING, CONFIRMED or PROCESSING orders can be cancelled.",
        )
    if current == OrderStatus.DELIVERED:
        raise InvalidTransition(current, requested, f"Cannot change status from {current.value}")
    if requested not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransition(current, requested)


# ---- Downstream DTOs ----
@dataclass(frozen=True)
class UserInfo:
    """Identity record as returned by the identity service."""

    id: UUID
    email: str
    first_name: str = ""
    last_name: str = ""
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass(frozen=True)
class ProductInfo:
    """Catalog record; only the fields orders snapshot are kept."""

    id: UUID
    name: str
    price: Decimal
    description: str = ""


@dataclass(frozen=True)
class InventoryInfo:
    """Inventory record for one product.

    Attributes:
        id: Inventory record id, or None for a fallback placeholder.
        product_id: Product the record tracks.
        quantity: Units on hand.
        reserved_quantity: Units already reserved by confirmed orders.
        status: Inventory status string; ``UNAVAILABLE`` marks a fallback.
    """

    id: Optional[UUID]
    product_id: Optional[UUID]
    quantity: int = 0
    reserved_quantity: int = 0
    status: str = "IN_STOCK"

    @property
    def available_quantity(self) -> int:
        return self.quantity - self.reserved_quantity

    @property
    def is_degraded(self) -> bool:
        return self.status == UNAVAILABLE


# ---- Aggregate ----
@dataclass(frozen=True)
class OrderItem:
    """A single line item of an order.

    Items are frozen: ``product_name`` and ``price`` are catalog snapshots
    taken when the item joins the order and never change afterwards. To
    change an item, replace it.

    Attributes:
        product_id: Catalog product reference.
        quantity: Units ordered, at least 1.
        price: Unit price snapshot.
        product_name: Product name snapshot.
        subtotal: ``quantity * price``; computed when absent.
        order_id: Back-reference to the owning order.
        id: Line item identifier.
    """

    product_id: UUID
    quantity: int
    price: Decimal
    product_name: str = ""
    subtotal: Optional[Decimal] = None
    order_id: Optional[UUID] = None
    id: UUID = field(default_factory=uuid4)

    def __post_init__(self):
        if self.quantity < 1:
            raise ValueError("Quantity must be at least 1")
        # cent precision, same as the stored columns
        object.__setattr__(self, "price", to_money(self.price))
        if self.subtotal is None:
            object.__setattr__(self, "subtotal", self.calculate_subtotal())
        else:
            object.__setattr__(self, "subtotal", to_money(self.subtotal))

    def calculate_subtotal(self) -> Decimal:
        return self.price * self.quantity


@dataclass
class Order:
    """Aggregate root for an order and its line items.

    The item list is owned exclusively by the order. ``total_amount`` is
    derived and is recomputed by every method that changes the items.
    """

    user_id: UUID
    items: List[OrderItem] = field(default_factory=list)
    id: UUID = field(default_factory=uuid4)
    status: OrderStatus = OrderStatus.PENDING
    address_id: Optional[UUID] = None
    shipping_address: Optional[str] = None
    city: Optional[str] = None
    zip_code: Optional[str] = None
    phone_number: Optional[str] = None
    notes: Optional[str] = None
    total_amount: Decimal = ZERO
    order_date: Optional[datetime] = None
    delivery_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    version: int = 0

    def calculate_total_amount(self) -> Decimal:
        return sum((item.subtotal for item in self.items), ZERO)

    def recalculate_total(self) -> Decimal:
        self.total_amount = self.calculate_total_amount()
        return self.total_amount

    def add_item(self, item: OrderItem) -> OrderItem:
        """Attach an item to this order and refresh the total.

        The stored copy carries this order's id as ``order_id`` and always
        has a subtotal.
        """
        owned = replace(item, order_id=self.id)
        self.items.append(owned)
        self.recalculate_total()
        return owned

    def remove_item(self, item_id: UUID) -> None:
        remaining = [it for it in self.items if it.id != item_id]
        if not remaining:
            raise EmptyOrder()
        self.items = remaining
        self.recalculate_total()

    def replace_items(self, items: List[OrderItem]) -> None:
        """Swap the whole item collection. Only allowed while PENDING.

        Raises:
            NotEditable: If the order has left PENDING.
            EmptyOrder: If ``items`` is empty.
        """
        self.ensure_editable()
        if not items:
            raise EmptyOrder()
        self.items = []
        for item in items:
            self.add_item(item)

    def ensure_editable(self) -> None:
        if self.status != OrderStatus.PENDING:
            raise NotEditable(self.status)

    def transition_to(self, new_status: OrderStatus, now: Optional[datetime] = None) -> OrderStatus:
        """Move the order to ``new_status`` and return the previous status.

        ``delivery_date`` is stamped on the first transition to DELIVERED.

        Raises:
            InvalidTransition: If the state machine forbids the change.
        """
        validate_transition(self.status, new_status)
        previous = self.status
        self.status = new_status
        if new_status == OrderStatus.DELIVERED and self.delivery_date is None:
            self.delivery_date = now or utcnow()
        return previous


# ---- Commands ----
@dataclass(frozen=True)
class OrderItemDraft:
    product_id: UUID
    quantity: int
    price: Optional[Decimal] = None


@dataclass
class OrderDraft:
    """Client request to create an order, before any lookups."""

    user_id: UUID
    items: List[OrderItemDraft]
    address_id: Optional[UUID] = None
    shipping_address: Optional[str] = None
    city: Optional[str] = None
    zip_code: Optional[str] = None
    phone_number: Optional[str] = None
    notes: Optional[str] = None


@dataclass
class OrderPatch:
    """Partial update of a PENDING order; ``None`` fields are left alone."""

    shipping_address: Optional[str] = None
    city: Optional[str] = None
    zip_code: Optional[str] = None
    phone_number: Optional[str] = None
    notes: Optional[str] = None
    items: Optional[List[OrderItemDraft]] = None


# ---- Ports (DIP) ----
class IdentityGateway(Protocol):
    """Port for the identity service."""

    def get_user(self, user_id: UUID) -> Optional[UserInfo]:
        """Return the user, or None when unknown or unavailable."""
        raise NotImplementedError()


class CatalogGateway(Protocol):
    """Port for the catalog service."""

    def get_product(self, product_id: UUID) -> Optional[ProductInfo]:
        """Return the product, or None when unknown."""
        raise NotImplementedError()


class InventoryGateway(Protocol):
    """Port for the inventory service.

    ``check_availability`` answers a whole batch at once so order admission
    is a single all-or-nothing decision.
    """

    def get_inventory(self, product_id: UUID) -> Optional[InventoryInfo]:
        raise NotImplementedError()

    def check_availability(self, request: Dict[UUID, int]) -> Dict[UUID, bool]:
        raise NotImplementedError()

    def reserve(self, inventory_id: UUID, quantity: int) -> InventoryInfo:
        raise NotImplementedError()

    def release(self, inventory_id: UUID, quantity: int) -> InventoryInfo:
        raise NotImplementedError()


class OrderRepositoryPort(Protocol):
    """Persistence port for the order aggregate."""

    def add(self, order: Order) -> Order:
        """Persist a new order and all its items in one atomic write."""
        raise NotImplementedError()

    def get(self, order_id: UUID) -> Optional[Order]:
        raise NotImplementedError()

    def save(self, order: Order) -> Order:
        """Persist changes to an existing order (status, fields, items).

        Raises:
            ConcurrentUpdate: If the stored version moved since ``order`` was loaded.
        """
        raise NotImplementedError()

    def list(self, user_id: Optional[UUID] = None, status: Optional[OrderStatus] = None) -> List[Order]:
        raise NotImplementedError()


class EventPublisher(Protocol):
    """Port for handing domain events to the message channel."""

    def publish(self, event) -> None:
        raise NotImplementedError()
