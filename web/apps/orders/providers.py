"""Service provider helpers for wiring OrderService with ports.

``get_order_service`` returns a configured ``OrderService``. When
``settings.USE_HTTP_ADAPTERS`` is truthy the gateways are the HTTP clients
wrapped in circuit breakers with fallbacks; otherwise they are the shared
in-process stubs from ``adapters.py``, which tests and local development
seed directly.

The event publisher is a process-wide singleton: RabbitMQ when
``settings.ORDER_EVENTS_ENABLED`` is truthy, a logging publisher otherwise.
"""

import threading
from dataclasses import dataclass, field
from typing import Optional

from django.conf import settings

from .adapters import (
    InMemoryCatalogGateway,
    InMemoryIdentityGateway,
    InMemoryInventoryGateway,
)
from .domain import EventPublisher
from .fallbacks import CatalogFallback, IdentityFallback, InventoryFallback
from .http_adapters import HttpCatalogClient, HttpIdentityClient, HttpInventoryClient
from .publisher import LoggingEventPublisher, RabbitMQEventPublisher
from .repository import DjangoOrderRepository
from .resilience import ResilientCatalogGateway, ResilientIdentityGateway, ResilientInventoryGateway
from .service import OrderService


@dataclass
class StubGateways:
    identity: InMemoryIdentityGateway = field(default_factory=InMemoryIdentityGateway)
    catalog: InMemoryCatalogGateway = field(default_factory=InMemoryCatalogGateway)
    inventory: InMemoryInventoryGateway = field(default_factory=InMemoryInventoryGateway)


_lock = threading.Lock()
_stubs: Optional[StubGateways] = None
_publisher: Optional[EventPublisher] = None


def get_stub_gateways() -> StubGateways:
    """Return the in-process gateways used when HTTP adapters are disabled."""
    global _stubs
    with _lock:
        if _stubs is None:
            _stubs = StubGateways()
        return _stubs


def reset_stub_gateways() -> StubGateways:
    global _stubs
    with _lock:
        _stubs = StubGateways()
        return _stubs


def get_event_publisher() -> EventPublisher:
    """Return the process-wide event publisher, creating it on first use."""
    global _publisher
    with _lock:
        if _publisher is None:
            if getattr(settings, "ORDER_EVENTS_ENABLED", False):
                _publisher = RabbitMQEventPublisher(settings.RABBITMQ_URL)
            else:
                _publisher = LoggingEventPublisher()
        return _publisher


def set_event_publisher(publisher: Optional[EventPublisher]) -> None:
    """Replace the process-wide publisher; ``None`` re-creates it from settings."""
    global _publisher
    with _lock:
        previous, _publisher = _publisher, publisher
    close = getattr(previous, "close", None)
    if previous is not publisher and callable(close):
        close()


def get_order_service() -> OrderService:
    """Return a configured OrderService instance.

    Returns:
        OrderService: A service wired to the ORM repository, the shared
        publisher and either HTTP or in-process gateways.
    """
    if getattr(settings, "USE_HTTP_ADAPTERS", True):
        identity = ResilientIdentityGateway(HttpIdentityClient(), IdentityFallback())
        catalog = ResilientCatalogGateway(HttpCatalogClient(), CatalogFallback())
        inventory = ResilientInventoryGateway(HttpInventoryClient(), InventoryFallback())
    else:
        stubs = get_stub_gateways()
        identity, catalog, inventory = stubs.identity, stubs.catalog, stubs.inventory

    return OrderService(
        identity=identity,
        catalog=catalog,
        inventory=inventory,
        repository=DjangoOrderRepository(),
        publisher=get_event_publisher(),
        strict_reservation=getattr(settings, "ORDERS_STRICT_RESERVATION", False),
    )
