"""Domain events emitted by the orders core.

Two events leave the orders service: ``OrderCreatedEvent`` after an order is
persisted and ``OrderStatusChangedEvent`` after every status transition. Each
carries enough data (recipient email, display name, amounts, shipping
snapshot) for the notification consumer to act without calling back into
any service.

Events are Pydantic models serialized with camelCase keys, which is the
format the notification consumer reads.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar, List, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .domain import Order, OrderStatus, UserInfo, utcnow

ORDER_EXCHANGE = "order.events.exchange"
ORDER_CREATED_QUEUE = "order.created"
ORDER_STATUS_CHANGED_QUEUE = "order.status.changed"
ROUTING_KEY_CREATED = "order.created.key"
ROUTING_KEY_STATUS_CHANGED = "order.status.changed.key"


class OrderEvent(BaseModel):
    """Base for events published on the order exchange.

    Subclasses set ``event_type`` (the AMQP message type) and
    ``routing_key`` (which queue the direct exchange routes to).
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    event_type: ClassVar[str] = ""
    routing_key: ClassVar[str] = ""

    event_id: UUID = Field(default_factory=uuid4)
    order_id: UUID
    user_id: UUID
    user_email: str
    user_name: str

    def to_json(self) -> bytes:
        return self.model_dump_json(by_alias=True).encode("utf-8")


class OrderItemInfo(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    product_id: UUID
    product_name: str
    quantity: int
    price: Decimal
    subtotal: Decimal


class OrderCreatedEvent(OrderEvent):
    event_type: ClassVar[str] = "order.created"
    routing_key: ClassVar[str] = ROUTING_KEY_CREATED

    total_amount: Decimal
    shipping_address: Optional[str] = None
    city: Optional[str] = None
    zip_code: Optional[str] = None
    phone_number: Optional[str] = None
    order_date: Optional[datetime] = None
    order_items: List[OrderItemInfo] = Field(default_factory=list)


class OrderStatusChangedEvent(OrderEvent):
    event_type: ClassVar[str] = "order.status_changed"
    routing_key: ClassVar[str] = ROUTING_KEY_STATUS_CHANGED

    old_status: str
    new_status: str
    changed_at: datetime = Field(default_factory=utcnow)


def order_created(order: Order, user: UserInfo) -> OrderCreatedEvent:
    """Build the creation event from a persisted order and its owner."""
    return OrderCreatedEvent(
        order_id=order.id,
        user_id=order.user_id,
        user_email=user.email,
        user_name=user.display_name,
        total_amount=order.total_amount,
        shipping_address=order.shipping_address,
        city=order.city,
        zip_code=order.zip_code,
        phone_number=order.phone_number,
        order_date=order.order_date,
        order_items=[
            OrderItemInfo(
                product_id=item.product_id,
                product_name=item.product_name,
                quantity=item.quantity,
                price=item.price,
                subtotal=item.subtotal,
            )
            for item in order.items
        ],
    )


def order_status_changed(order: Order, old_status: Optional[OrderStatus], user: UserInfo) -> OrderStatusChangedEvent:
    return OrderStatusChangedEvent(
        order_id=order.id,
        user_id=order.user_id,
        user_email=user.email,
        user_name=user.display_name,
        old_status=old_status.value if old_status is not None else "UNKNOWN",
        new_status=order.status.value,
    )
