"""SQLAlchemy repository for per-product inventory records.

Each product has one inventory row tracking units on hand and units reserved
by confirmed orders. Reservations and releases lock the row
(SELECT ... FOR UPDATE) so concurrent orders cannot oversell.

The connection URL comes from ``DATABASE_URL`` when set, otherwise it is
built from the ``DB_*`` variables for PostgreSQL.
"""

import os
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import DateTime, Integer, String, create_engine, select
from sqlalchemy.orm import DeclarativeBase, Session, mapped_column
from sqlalchemy.pool import StaticPool

DB_HOST = os.getenv("DB_HOST", "inventory-db")
DB_PORT = os.getenv("DB_PORT", "5432")
DB_NAME = os.getenv("DB_NAME", "inventory")
DB_USER = os.getenv("DB_USER", "inventory_user")
DB_PASSWORD = os.getenv("DB_PASSWORD", "inventory-pass")

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql+psycopg://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}",
)

if DATABASE_URL.startswith("sqlite"):
    # single shared connection so an in-memory database survives across sessions
    engine = create_engine(DATABASE_URL, connect_args={"check_same_thread": False}, poolclass=StaticPool)
else:
    engine = create_engine(DATABASE_URL, pool_pre_ping=True)


IN_STOCK = "IN_STOCK"
OUT_OF_STOCK = "OUT_OF_STOCK"
LOW_STOCK = "LOW_STOCK"
RESERVED = "RESERVED"


class Base(DeclarativeBase): pass


class Inventory(Base):
    """Stock record for one product.

    Attributes:
        id: Inventory record id (UUID string).
        product_id: Catalog product id (UUID string), unique.
        quantity: Units on hand.
        reserved_quantity: Units held by confirmed orders.
        min_stock_level: At or below this quantity the record is LOW_STOCK.
        status: Derived stock status, refreshed on every change.
    """
    __tablename__ = "inventory"
    id = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    product_id = mapped_column(String(36), unique=True, nullable=False, index=True)
    quantity = mapped_column(Integer, nullable=False, default=0)
    reserved_quantity = mapped_column(Integer, nullable=False, default=0)
    min_stock_level = mapped_column(Integer, nullable=False, default=0)
    status = mapped_column(String(20), nullable=False, default=IN_STOCK)
    created_at = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def available_quantity(self) -> int:
        return self.quantity - self.reserved_quantity

    def refresh_status(self) -> None:
        if self.quantity <= 0:
            self.status = OUT_OF_STOCK
        elif self.min_stock_level and self.quantity <= self.min_stock_level:
            self.status = LOW_STOCK
        elif self.reserved_quantity > 0 and self.available_quantity <= 0:
            self.status = RESERVED
        else:
            self.status = IN_STOCK
        self.updated_at = datetime.now(timezone.utc)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "productId": self.product_id,
            "quantity": self.quantity,
            "reservedQuantity": self.reserved_quantity,
            "availableQuantity": self.available_quantity,
            "minStockLevel": self.min_stock_level,
            "status": self.status,
        }


class InventoryNotFound(LookupError):
    pass


class InsufficientStock(ValueError):
    def __init__(self, product_id: str, requested: int, available: int):
        super().__init__(
            f"Insufficient stock for product {product_id}. Requested: {requested}, Available: {available}"
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


def init_db() -> None:
    Base.metadata.create_all(engine)


@contextmanager
def get_session():
    """Context manager that yields a SQLAlchemy session.

    Yields:
        Session: Active SQLAlchemy session connected to the database.
    """
    with Session(engine) as s:
        yield s


class InventoryRepo:
    """Repository class for inventory operations."""

    def get(self, inventory_id: str) -> Optional[dict]:
        with get_session() as s:
            obj = s.get(Inventory, inventory_id)
            return obj.to_dict() if obj else None

    def get_by_product(self, product_id: str) -> Optional[dict]:
        with get_session() as s:
            obj = s.scalar(select(Inventory).where(Inventory.product_id == product_id))
            return obj.to_dict() if obj else None

    def list(self, status: Optional[str] = None) -> List[dict]:
        with get_session() as s:
            stmt = select(Inventory).order_by(Inventory.product_id)
            if status:
                stmt = stmt.where(Inventory.status == status)
            return [obj.to_dict() for obj in s.scalars(stmt)]

    def upsert(self, product_id: str, quantity: int, min_stock_level: int = 0) -> dict:
        """Set on-hand stock for a product, creating the record if needed.

        Args:
            product_id: Catalog product id.
            quantity: New on-hand quantity.
            min_stock_level: Low-stock threshold.

        Returns:
            dict: The stored record.
        """
        with get_session() as s:
            obj = s.scalar(select(Inventory).where(Inventory.product_id == product_id).with_for_update())
            if obj is None:
                obj = Inventory(id=str(uuid.uuid4()), product_id=product_id, reserved_quantity=0,
                                created_at=datetime.now(timezone.utc))
                s.add(obj)
            obj.quantity = quantity
            obj.min_stock_level = min_stock_level
            obj.refresh_status()
            s.commit()
            return obj.to_dict()

    def check(self, request: Dict[str, int]) -> Dict[str, bool]:
        """Answer ``{productId: available >= requested}`` for a batch.

        Unknown products are reported as unavailable.
        """
        with get_session() as s:
            rows = s.scalars(select(Inventory).where(Inventory.product_id.in_(list(request)))).all()
            available = {r.product_id: r.available_quantity for r in rows}
            return {pid: available.get(pid, 0) >= qty for pid, qty in request.items()}

    def reserve(self, inventory_id: str, quantity: int) -> dict:
        """Hold ``quantity`` units for a confirmed order.

        Raises:
            InventoryNotFound: If the record does not exist.
            InsufficientStock: If fewer than ``quantity`` units are available.
        """
        with get_session() as s:
            obj = s.get(Inventory, inventory_id, with_for_update=True)
            if obj is None:
                raise InventoryNotFound(inventory_id)
            if obj.available_quantity < quantity:
                s.rollback()
                raise InsufficientStock(obj.product_id, quantity, obj.available_quantity)
            obj.reserved_quantity += quantity
            obj.refresh_status()
            s.commit()
            return obj.to_dict()

    def release(self, inventory_id: str, quantity: int) -> dict:
        """Hand back ``quantity`` reserved units; never drops below zero.

        Raises:
            InventoryNotFound: If the record does not exist.
        """
        with get_session() as s:
            obj = s.get(Inventory, inventory_id, with_for_update=True)
            if obj is None:
                raise InventoryNotFound(inventory_id)
            obj.reserved_quantity = max(0, obj.reserved_quantity - quantity)
            obj.refresh_status()
            s.commit()
            return obj.to_dict()
