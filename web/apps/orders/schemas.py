"""Pydantic schemas for orders.

Two groups of schemas live here:

- API schemas: request validation for the orders endpoints and the read DTO
  returned to clients.
- Wire schemas: the JSON documents returned by the identity, catalog and
  inventory services. They accept the camelCase keys those services emit
  and convert to the frozen domain DTOs.
"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, RootModel, field_validator
from pydantic.alias_generators import to_camel

from .domain import (
    InventoryInfo,
    Order,
    OrderDraft,
    OrderItemDraft,
    OrderPatch,
    OrderStatus,
    ProductInfo,
    UserInfo,
)

Money = Decimal


# ---------------- API: requests ---------------- #

class OrderItemIn(BaseModel):
    """Input schema for a single order line item.

    Attributes:
        product_id: Catalog product id.
        quantity: Positive integer indicating units requested.
        price: Optional explicit unit price; when omitted the catalog price
            is snapshotted.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    product_id: UUID
    quantity: int = Field(gt=0)
    price: Optional[Money] = Field(default=None, ge=0, max_digits=12, decimal_places=2)

    def to_domain(self) -> OrderItemDraft:
        return OrderItemDraft(product_id=self.product_id, quantity=self.quantity, price=self.price)


class ShippingFields(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    shipping_address: Optional[str] = Field(default=None, max_length=500)
    city: Optional[str] = Field(default=None, max_length=50)
    zip_code: Optional[str] = Field(default=None, max_length=10)
    phone_number: Optional[str] = Field(default=None, max_length=15)
    notes: Optional[str] = Field(default=None, max_length=2000)

    @field_validator("shipping_address", "city", "zip_code", "phone_number")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        """Treat blank strings as "not supplied"."""
        if v is not None and not v.strip():
            return None
        return v


class CreateOrderDTO(ShippingFields):
    """Schema for creating an order.

    Accepts both snake_case and camelCase keys. ``orderItems`` is accepted
    as an alias of ``items``.
    """

    user_id: UUID
    address_id: Optional[UUID] = None
    items: List[OrderItemIn] = Field(default_factory=list, validation_alias="orderItems")

    @field_validator("items", mode="before")
    @classmethod
    def items_not_none(cls, v):
        return [] if v is None else v

    def to_domain(self) -> OrderDraft:
        return OrderDraft(
            user_id=self.user_id,
            items=[i.to_domain() for i in self.items],
            address_id=self.address_id,
            shipping_address=self.shipping_address,
            city=self.city,
            zip_code=self.zip_code,
            phone_number=self.phone_number,
            notes=self.notes,
        )


class UpdateOrderDTO(ShippingFields):
    """Schema for editing a PENDING order; every field is optional."""

    items: Optional[List[OrderItemIn]] = Field(default=None, validation_alias="orderItems")

    def to_domain(self) -> OrderPatch:
        return OrderPatch(
            shipping_address=self.shipping_address,
            city=self.city,
            zip_code=self.zip_code,
            phone_number=self.phone_number,
            notes=self.notes,
            items=[i.to_domain() for i in self.items] if self.items else None,
        )


class StatusUpdateDTO(BaseModel):
    status: OrderStatus

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v):
        """Accept lowercase status names."""
        return v.upper() if isinstance(v, str) else v


# ---------------- API: responses ---------------- #

class OrderItemRead(BaseModel):
    id: UUID
    product_id: UUID
    product_name: str
    quantity: int
    price: Money
    subtotal: Money


class OrderReadDTO(BaseModel):
    """Read model returned by every orders endpoint."""

    id: UUID
    user_id: UUID
    address_id: Optional[UUID] = None
    status: OrderStatus
    total_amount: Money
    shipping_address: Optional[str] = None
    city: Optional[str] = None
    zip_code: Optional[str] = None
    phone_number: Optional[str] = None
    notes: Optional[str] = None
    order_date: Optional[datetime] = None
    delivery_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    items: List[OrderItemRead]

    @classmethod
    def from_domain(cls, order: Order) -> "OrderReadDTO":
        return cls(
            id=order.id,
            user_id=order.user_id,
            address_id=order.address_id,
            status=order.status,
            total_amount=order.total_amount,
            shipping_address=order.shipping_address,
            city=order.city,
            zip_code=order.zip_code,
            phone_number=order.phone_number,
            notes=order.notes,
            order_date=order.order_date,
            delivery_date=order.delivery_date,
            created_at=order.created_at,
            updated_at=order.updated_at,
            items=[
                OrderItemRead(
                    id=i.id,
                    product_id=i.product_id,
                    product_name=i.product_name,
                    quantity=i.quantity,
                    price=i.price,
                    subtotal=i.subtotal,
                )
                for i in order.items
            ],
        )


# ---------------- Wire: downstream responses ---------------- #

class _Wire(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class UserResponse(_Wire):
    id: UUID
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None

    def to_domain(self) -> UserInfo:
        return UserInfo(
            id=self.id,
            email=self.email,
            first_name=self.first_name or "",
            last_name=self.last_name or "",
            phone=self.phone,
            address=self.address,
            city=self.city,
            state=self.state,
            zip=self.zip,
        )


class ProductResponse(_Wire):
    id: UUID
    name: str
    description: Optional[str] = None
    price: Decimal

    def to_domain(self) -> ProductInfo:
        return ProductInfo(id=self.id, name=self.name, price=self.price, description=self.description or "")


class InventoryResponse(_Wire):
    id: UUID
    product_id: Optional[UUID] = None
    quantity: int = 0
    reserved_quantity: int = 0
    status: str = "IN_STOCK"

    def to_domain(self) -> InventoryInfo:
        return InventoryInfo(
            id=self.id,
            product_id=self.product_id,
            quantity=self.quantity,
            reserved_quantity=self.reserved_quantity,
            status=self.status,
        )


class AvailabilityResponse(RootModel[Dict[UUID, bool]]):
    """``{productId: bool}`` map returned by the batch stock check."""

