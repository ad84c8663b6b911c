from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

import pytest


@pytest.fixture(autouse=True)
def use_stubs_for_tests(settings):
    from apps.orders.metrics import reset_order_metrics
    from apps.orders.resilience import reset_breakers

    settings.USE_HTTP_ADAPTERS = False
    settings.ORDERS_STRICT_RESERVATION = False
    settings.HTTP_RETRY_BACKOFF_BASE = 0
    reset_breakers()
    reset_order_metrics()
    yield
    reset_breakers()


@pytest.fixture(autouse=True)
def stub_gateways():
    """Fresh in-process identity/catalog/inventory used by the API views."""
    from apps.orders.providers import reset_stub_gateways

    return reset_stub_gateways()


@pytest.fixture(autouse=True)
def event_publisher():
    from apps.orders.adapters import RecordingEventPublisher
    from apps.orders.providers import set_event_publisher

    publisher = RecordingEventPublisher()
    set_event_publisher(publisher)
    yield publisher
    set_event_publisher(None)


def _seed(identity, catalog, inventory):
    from apps.orders.domain import ProductInfo, UserInfo

    user = identity.add_user(
        UserInfo(
            id=uuid4(),
            email="ada@example.com",
            first_name="Ada",
            last_name="Lovelace",
            phone="5550100",
            address="1 Main Street",
            city="Springfield",
            zip="12345",
        )
    )
    widget = catalog.add_product(ProductInfo(id=uuid4(), name="Widget", price=Decimal("10.00")))
    gadget = catalog.add_product(ProductInfo(id=uuid4(), name="Gadget", price=Decimal("25.50")))
    return SimpleNamespace(
        user=user,
        widget=widget,
        gadget=gadget,
        widget_stock=inventory.add_stock(widget.id, 10),
        gadget_stock=inventory.add_stock(gadget.id, 5),
    )


@pytest.fixture
def seeded(stub_gateways):
    """One user and two stocked products in the shared stubs (10 widgets, 5 gadgets)."""
    return _seed(stub_gateways.identity, stub_gateways.catalog, stub_gateways.inventory)


@pytest.fixture
def ports():
    """Isolated in-memory ports for service-level tests (no database)."""
    from apps.orders.adapters import (
        InMemoryCatalogGateway,
        InMemoryIdentityGateway,
        InMemoryInventoryGateway,
        InMemoryOrderRepository,
        RecordingEventPublisher,
    )

    ns = SimpleNamespace(
        identity=InMemoryIdentityGateway(),
        catalog=InMemoryCatalogGateway(),
        inventory=InMemoryInventoryGateway(),
        repository=InMemoryOrderRepository(),
        publisher=RecordingEventPublisher(),
    )
    ns.data = _seed(ns.identity, ns.catalog, ns.inventory)
    return ns


@pytest.fixture
def service(ports):
    from apps.orders.service import OrderService

    return OrderService(
        identity=ports.identity,
        catalog=ports.catalog,
        inventory=ports.inventory,
        repository=ports.repository,
        publisher=ports.publisher,
    )
