"""Order orchestration service.

``OrderService`` coordinates the identity, catalog and inventory gateways,
the order repository and the event publisher. It owns the create workflow
(validate, all-or-nothing stock admission, snapshot, persist, publish) and
the status workflow (state machine, stock reservation/compensation,
publish).

Gateway calls are made strictly in sequence; data gathered while validating
(products and inventory records) is reused when the items are built.
"""

import logging
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Tuple
from uuid import UUID

from . import events
from .domain import (
    RESERVED_STATES,
    CatalogGateway,
    EventPublisher,
    IdentityGateway,
    InventoryGateway,
    InventoryInfo,
    Order,
    OrderDraft,
    OrderItem,
    OrderItemDraft,
    OrderPatch,
    OrderRepositoryPort,
    OrderStatus,
    ProductInfo,
    utcnow,
    validate_transition,
)
from .errors import (
    DownstreamDegraded,
    EmptyOrder,
    InsufficientStock,
    InventoryNotFound,
    OrderNotFound,
    ProductNotFound,
    UserNotFound,
)
from .metrics import OrderMetrics, get_order_metrics

logger = logging.getLogger(__name__)

PATCHABLE_FIELDS = ("shipping_address", "city", "zip_code", "phone_number", "notes")


class OrderService:
    """Domain service that creates orders and drives their status.

    Args:
        identity: Gateway used to resolve the ordering user.
        catalog: Gateway used to snapshot product name and price.
        inventory: Gateway used for availability checks and reservations.
        repository: Persistence for the order aggregate.
        publisher: Channel for ``OrderCreated``/``OrderStatusChanged`` events.
        strict_reservation: When True a failed reserve/release aborts the
            transition with ``DownstreamDegraded`` instead of only logging.
        metrics: Creation and transition counters; the process-wide
            ``OrderMetrics`` when omitted.
    """

    def __init__(
        self,
        identity: IdentityGateway,
        catalog: CatalogGateway,
        inventory: InventoryGateway,
        repository: OrderRepositoryPort,
        publisher: EventPublisher,
        strict_reservation: bool = False,
        metrics: Optional[OrderMetrics] = None,
    ):
        self.identity = identity
        self.catalog = catalog
        self.inventory = inventory
        self.repository = repository
        self.publisher = publisher
        self.strict_reservation = strict_reservation
        self.metrics = metrics or get_order_metrics()

    # ---------------- Queries ---------------- #

    def get_order(self, order_id: UUID) -> Order:
        order = self.repository.get(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        return order

    def list_orders(self, user_id: Optional[UUID] = None, status: Optional[OrderStatus] = None) -> List[Order]:
        return self.repository.list(user_id=user_id, status=status)

    # ---------------- Create ---------------- #

    def create_order(self, draft: OrderDraft) -> Order:
        """Create a PENDING order from a client draft.

        Steps: resolve the user, default the shipping snapshot from the
        user's address, resolve every product and inventory record, run one
        batch availability check, snapshot names and prices, persist the
        order with its items atomically, then publish ``OrderCreated``.

        Args:
            draft: The client request.

        Returns:
            The persisted order with status PENDING.

        Raises:
            UserNotFound: If identity does not know ``draft.user_id``.
            EmptyOrder: If the draft has no items.
            ProductNotFound: If a product is unknown to the catalog.
            InventoryNotFound: If a product has no inventory record.
            InsufficientStock: If any item fails the availability check;
                nothing is persisted in that case.
        """
        with self.metrics.time_creation():
            try:
                order = self._create_order(draft)
            except Exception as exc:
                self.metrics.creation_failed(exc)
                raise
        self.metrics.order_created()
        return order

    def _create_order(self, draft: OrderDraft) -> Order:
        user = self.identity.get_user(draft.user_id)
        if user is None:
            raise UserNotFound(draft.user_id)

        order = Order(
            user_id=draft.user_id,
            address_id=draft.address_id,
            shipping_address=draft.shipping_address,
            city=draft.city,
            zip_code=draft.zip_code,
            phone_number=draft.phone_number,
            notes=draft.notes,
        )
        if not draft.shipping_address:
            order.shipping_address = user.address
            order.city = user.city
            order.zip_code = user.zip
            order.phone_number = user.phone

        if not draft.items:
            raise EmptyOrder()

        for item in self._admit_items(draft.items):
            order.add_item(item)
        order.recalculate_total()

        now = utcnow()
        order.order_date = now
        order.created_at = now
        order.updated_at = now

        saved = self.repository.add(order)
        logger.info(
            "order created",
            extra={"order_id": str(saved.id), "user_id": str(saved.user_id),
                   "items": len(saved.items), "total_amount": str(saved.total_amount)},
        )

        self._publish_safely("OrderCreatedEvent", saved, lambda: events.order_created(saved, user))
        return saved

    def _admit_items(self, drafts: List[OrderItemDraft]) -> List[OrderItem]:
        """Resolve, stock-check and snapshot a list of item drafts.

        Lines for the same product are merged (quantities summed) so the
        batch availability request has one entry per product.
        """
        requested: Dict[UUID, int] = {}
        explicit_prices: Dict[UUID, Decimal] = {}
        for draft in drafts:
            requested[draft.product_id] = requested.get(draft.product_id, 0) + draft.quantity
            if draft.price is not None and draft.product_id not in explicit_prices:
                explicit_prices[draft.product_id] = draft.price

        products: Dict[UUID, ProductInfo] = {}
        inventories: Dict[UUID, InventoryInfo] = {}
        for product_id in requested:
            product = self.catalog.get_product(product_id)
            if product is None:
                raise ProductNotFound(product_id)
            products[product_id] = product

            inventory = self.inventory.get_inventory(product_id)
            if inventory is None:
                raise InventoryNotFound(product_id)
            inventories[product_id] = inventory

        availability = self.inventory.check_availability(dict(requested))
        for product_id, quantity in requested.items():
            # a product missing from the answer is treated as unavailable
            if not availability.get(product_id, False):
                raise InsufficientStock(product_id, quantity, inventories[product_id].available_quantity)

        items = []
        for product_id, quantity in requested.items():
            product = products[product_id]
            price = explicit_prices.get(product_id, product.price)
            items.append(
                OrderItem(product_id=product_id, quantity=quantity, price=price, product_name=product.name)
            )
        return items

    # ---------------- Update ---------------- #

    def update_order(self, order_id: UUID, patch: OrderPatch) -> Order:
        """Edit a PENDING order.

        Provided shipping fields and notes overwrite the stored ones. A
        non-empty item list replaces the whole item collection; new items
        are snapshotted and stock-checked the same way as on creation.

        Raises:
            OrderNotFound: If the order does not exist.
            NotEditable: If the order is not PENDING.
        """
        order = self.get_order(order_id)
        order.ensure_editable()

        new_items = self._admit_items(patch.items) if patch.items else None

        for name in PATCHABLE_FIELDS:
            value = getattr(patch, name)
            if value is not None:
                setattr(order, name, value)
        if new_items:
            order.replace_items(new_items)

        order.updated_at = utcnow()
        saved = self.repository.save(order)
        logger.info("order updated", extra={"order_id": str(saved.id), "items_replaced": bool(new_items)})
        return saved

    # ---------------- Status ---------------- #

    def update_order_status(self, order_id: UUID, new_status: OrderStatus) -> Order:
        """Apply a status transition with its inventory side effects.

        Raises:
            OrderNotFound: If the order does not exist.
            InvalidTransition: If the state machine forbids the change.
            AlreadyCancelled: If cancelling a cancelled order.
            DownstreamDegraded: Only in strict reservation mode.
        """
        return self._transition(self.get_order(order_id), OrderStatus(new_status))

    def cancel_order(self, order_id: UUID) -> Order:
        return self._transition(self.get_order(order_id), OrderStatus.CANCELLED)

    def _transition(self, order: Order, new_status: OrderStatus) -> Order:
        validate_transition(order.status, new_status)
        previous = order.status

        if previous == OrderStatus.PENDING and new_status == OrderStatus.CONFIRMED:
            self._apply_to_inventory(order, "reserve")
        elif new_status == OrderStatus.CANCELLED and previous in RESERVED_STATES:
            self._apply_to_inventory(order, "release")

        order.transition_to(new_status)
        order.updated_at = utcnow()
        saved = self.repository.save(order)
        logger.info(
            "order status changed",
            extra={"order_id": str(saved.id), "old_status": previous.value, "new_status": saved.status.value},
        )

        self.metrics.status_changed(saved.status)
        self._publish_status_changed(saved, previous)
        return saved

    def _apply_to_inventory(self, order: Order, operation: str) -> List[Tuple[UUID, int]]:
        """Reserve or release stock for every item of ``order``.

        Per-item failures are logged and skipped. In strict mode the first
        failure reverts the calls already applied to the other items and raises
        ``DownstreamDegraded``.
        """
        call: Callable[[UUID, int], InventoryInfo] = getattr(self.inventory, operation)
        done: List[Tuple[UUID, int]] = []
        for item in order.items:
            try:
                record = self.inventory.get_inventory(item.product_id)
                if record is None or record.id is None or record.is_degraded:
                    raise DownstreamDegraded(
                        "inventory", operation, f"no inventory record for product {item.product_id}"
                    )
                result = call(record.id, item.quantity)
                if result.is_degraded:
                    raise DownstreamDegraded("inventory", operation, f"inventory {record.id} unavailable")
                done.append((record.id, item.quantity))
            except Exception as exc:
                logger.warning(
                    "stock %s failed",
                    operation,
                    extra={"order_id": str(order.id), "product_id": str(item.product_id),
                           "quantity": item.quantity, "error": str(exc)},
                )
                if not self.strict_reservation:
                    continue
                self._undo(order, operation, done)
                if isinstance(exc, DownstreamDegraded):
                    raise
                raise DownstreamDegraded("inventory", operation, str(exc)) from exc
        return done

    def _undo(self, order: Order, operation: str, done: List[Tuple[UUID, int]]) -> None:
        """Revert the reserve/release calls already applied for an aborted transition.

        Reservations are released and releases are reserved again, so a
        retried transition starts from the same inventory state.
        """
        inverse = "release" if operation == "reserve" else "reserve"
        call: Callable[[UUID, int], InventoryInfo] = getattr(self.inventory, inverse)
        for inventory_id, quantity in done:
            try:
                result = call(inventory_id, quantity)
                error = "inventory unavailable" if result.is_degraded else None
            except Exception as exc:
                error = str(exc)
            if error:
                logger.error(
                    "could not undo stock %s",
                    operation,
                    extra={"order_id": str(order.id), "inventory_id": str(inventory_id),
                           "quantity": quantity, "error": error},
                )

    # ---------------- Events ---------------- #

    def _publish_status_changed(self, order: Order, previous: OrderStatus) -> None:
        try:
            user = self.identity.get_user(order.user_id)
        except Exception as exc:
            logger.warning(
                "recipient lookup failed; status event skipped",
                extra={"order_id": str(order.id), "error": str(exc)},
            )
            return
        if user is None:
            logger.warning("recipient lookup failed; status event skipped", extra={"order_id": str(order.id)})
            return
        self._publish_safely(
            "OrderStatusChangedEvent", order, lambda: events.order_status_changed(order, previous, user)
        )

    def _publish_safely(self, name: str, order: Order, build: Callable[[], events.OrderEvent]) -> None:
        try:
            self.publisher.publish(build())
        except Exception:
            logger.exception("error sending %s", name, extra={"order_id": str(order.id)})
