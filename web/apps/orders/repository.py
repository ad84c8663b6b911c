"""Repository layer for persisting orders.

This module maps the ``Order`` aggregate to the Django ORM so the domain
layer is not coupled to ORM details. Orders and their items are always
written together inside one transaction, and updates use the ``version``
column for optimistic locking.
"""

from typing import List, Optional
from uuid import UUID

from django.db import transaction

from .domain import Order, OrderItem, OrderRepositoryPort, OrderStatus
from .errors import ConcurrentUpdate
from .models import OrderItemModel, OrderModel

ORDER_FIELDS = (
    "user_id",
    "address_id",
    "total_amount",
    "shipping_address",
    "city",
    "zip_code",
    "phone_number",
    "notes",
    "order_date",
    "delivery_date",
    "created_at",
    "updated_at",
)


def _to_domain(obj: OrderModel) -> Order:
    items = [
        OrderItem(
            id=i.id,
            order_id=obj.id,
            product_id=i.product_id,
            product_name=i.product_name,
            quantity=i.quantity,
            price=i.price,
            subtotal=i.subtotal,
        )
        for i in obj.items.all()
    ]
    order = Order(id=obj.id, status=OrderStatus(obj.status), version=obj.version, items=items,
                  user_id=obj.user_id)
    for name in ORDER_FIELDS[1:]:
        setattr(order, name, getattr(obj, name))
    return order


def _item_models(order: Order) -> List[OrderItemModel]:
    return [
        OrderItemModel(
            id=i.id,
            order_id=order.id,
            product_id=i.product_id,
            product_name=i.product_name,
            quantity=i.quantity,
            price=i.price,
            subtotal=i.subtotal,
        )
        for i in order.items
    ]


class DjangoOrderRepository(OrderRepositoryPort):
    """Repository that persists Order aggregates using Django ORM."""

    @transaction.atomic
    def add(self, order: Order) -> Order:
        """Insert an order and all of its items atomically.

        Args:
            order: Aggregate with at least one item.

        Returns:
            Order: The same aggregate; ``version`` is stored as given.
        """
        obj = OrderModel(id=order.id, status=order.status.value, version=order.version)
        for name in ORDER_FIELDS:
            setattr(obj, name, getattr(order, name))
        obj.save(force_insert=True)
        OrderItemModel.objects.bulk_create(_item_models(order))
        return order

    def get(self, order_id: UUID) -> Optional[Order]:
        obj = OrderModel.objects.prefetch_related("items").filter(id=order_id).first()
        return _to_domain(obj) if obj is not None else None

    @transaction.atomic
    def save(self, order: Order) -> Order:
        """Write back an order loaded earlier, replacing its items.

        The update only matches when the stored ``version`` still equals the
        one the aggregate was loaded with; the stored version is then bumped.

        Raises:
            ConcurrentUpdate: If another writer saved the order in between.
        """
        values = {name: getattr(order, name) for name in ORDER_FIELDS}
        updated = OrderModel.objects.filter(id=order.id, version=order.version).update(
            status=order.status.value, version=order.version + 1, **values
        )
        if updated != 1:
            raise ConcurrentUpdate(order.id, order.version)

        OrderItemModel.objects.filter(order_id=order.id).delete()
        OrderItemModel.objects.bulk_create(_item_models(order))
        order.version += 1
        return order

    def list(self, user_id: Optional[UUID] = None, status: Optional[OrderStatus] = None) -> List[Order]:
        qs = OrderModel.objects.prefetch_related("items").order_by("-created_at")
        if user_id is not None:
            qs = qs.filter(user_id=user_id)
        if status is not None:
            qs = qs.filter(status=OrderStatus(status).value)
        return [_to_domain(o) for o in qs]
