"""In-process stub adapters for the orders domain ports.

These stubs implement the identity, catalog, inventory, repository and
event publisher ports without any network or database calls. They are
intended for unit tests and local development where deterministic behavior
is useful and external services are not required.
"""

import copy
import threading
from dataclasses import replace
from typing import Dict, List, Optional, Tuple
from uuid import UUID, uuid4

from .domain import (
    CatalogGateway,
    EventPublisher,
    IdentityGateway,
    InventoryGateway,
    InventoryInfo,
    Order,
    OrderRepositoryPort,
    OrderStatus,
    ProductInfo,
    UserInfo,
)
from .errors import ConcurrentUpdate, InsufficientStock, InventoryNotFound


class InMemoryIdentityGateway(IdentityGateway):
    """Identity stub backed by a dict of known users."""

    def __init__(self, users: Optional[List[UserInfo]] = None):
        self.users: Dict[UUID, UserInfo] = {u.id: u for u in users or []}

    def add_user(self, user: UserInfo) -> UserInfo:
        self.users[user.id] = user
        return user

    def get_user(self, user_id: UUID) -> Optional[UserInfo]:
        return self.users.get(user_id)


class InMemoryCatalogGateway(CatalogGateway):
    """Catalog stub backed by a dict of known products."""

    def __init__(self, products: Optional[List[ProductInfo]] = None):
        self.products: Dict[UUID, ProductInfo] = {p.id: p for p in products or []}

    def add_product(self, product: ProductInfo) -> ProductInfo:
        self.products[product.id] = product
        return product

    def get_product(self, product_id: UUID) -> Optional[ProductInfo]:
        return self.products.get(product_id)


class InMemoryInventoryGateway(InventoryGateway):
    """Inventory stub that tracks on-hand and reserved units per product.

    Every call is appended to ``calls`` as ``(operation, key, quantity)`` so
    tests can assert on the exact sequence of inventory side effects.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.records: Dict[UUID, InventoryInfo] = {}
        self.calls: List[Tuple[str, UUID, int]] = []

    def add_stock(self, product_id: UUID, quantity: int, reserved_quantity: int = 0) -> InventoryInfo:
        record = InventoryInfo(
            id=uuid4(), product_id=product_id, quantity=quantity, reserved_quantity=reserved_quantity
        )
        self.records[product_id] = record
        return record

    def _by_id(self, inventory_id: UUID) -> InventoryInfo:
        for record in self.records.values():
            if record.id == inventory_id:
                return record
        raise InventoryNotFound(inventory_id=inventory_id)

    def get_inventory(self, product_id: UUID) -> Optional[InventoryInfo]:
        self.calls.append(("get_inventory", product_id, 0))
        return self.records.get(product_id)

    def check_availability(self, request: Dict[UUID, int]) -> Dict[UUID, bool]:
        self.calls.append(("check_availability", None, sum(request.values())))
        result = {}
        for product_id, quantity in request.items():
            record = self.records.get(product_id)
            result[product_id] = record is not None and record.available_quantity >= quantity
        return result

    def reserve(self, inventory_id: UUID, quantity: int) -> InventoryInfo:
        with self._lock:
            self.calls.append(("reserve", inventory_id, quantity))
            record = self._by_id(inventory_id)
            if record.available_quantity < quantity:
                raise InsufficientStock(record.product_id, quantity, record.available_quantity)
            updated = replace(record, reserved_quantity=record.reserved_quantity + quantity)
            self.records[record.product_id] = updated
            return updated

    def release(self, inventory_id: UUID, quantity: int) -> InventoryInfo:
        with self._lock:
            self.calls.append(("release", inventory_id, quantity))
            record = self._by_id(inventory_id)
            updated = replace(record, reserved_quantity=max(0, record.reserved_quantity - quantity))
            self.records[record.product_id] = updated
            return updated


class InMemoryOrderRepository(OrderRepositoryPort):
    """Order repository stub with the same versioning rules as the ORM one.

    Stored orders are deep copies so callers can never mutate persisted state
    without going through ``save``.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._orders: Dict[UUID, Order] = {}

    def add(self, order: Order) -> Order:
        with self._lock:
            self._orders[order.id] = copy.deepcopy(order)
            return copy.deepcopy(order)

    def get(self, order_id: UUID) -> Optional[Order]:
        stored = self._orders.get(order_id)
        return copy.deepcopy(stored) if stored is not None else None

    def save(self, order: Order) -> Order:
        with self._lock:
            stored = self._orders.get(order.id)
            if stored is None or stored.version != order.version:
                raise ConcurrentUpdate(order.id, order.version)
            order.version += 1
            self._orders[order.id] = copy.deepcopy(order)
            return copy.deepcopy(order)

    def list(self, user_id: Optional[UUID] = None, status: Optional[OrderStatus] = None) -> List[Order]:
        orders = [
            o for o in self._orders.values()
            if (user_id is None or o.user_id == user_id) and (status is None or o.status == status)
        ]
        orders.sort(key=lambda o: (o.created_at is not None, o.created_at), reverse=True)
        return [copy.deepcopy(o) for o in orders]


class RecordingEventPublisher(EventPublisher):
    """Publisher stub that keeps every event in memory.

    Set ``fail`` to make ``publish`` raise, which simulates an unreachable
    broker.
    """

    def __init__(self, fail: bool = False):
        self.events: list = []
        self.fail = fail

    def publish(self, event) -> None:
        if self.fail:
            raise ConnectionError("message broker unavailable")
        self.events.append(event)
