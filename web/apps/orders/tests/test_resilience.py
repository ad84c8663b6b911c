# web/apps/orders/tests/test_resilience.py
import uuid
from decimal import Decimal

import httpx
import pytest

from apps.orders.fallbacks import (
    FALLBACK_PRODUCT_NAME,
    CatalogFallback,
    IdentityFallback,
    InventoryFallback,
)
from apps.orders.resilience import (
    CircuitBreaker,
    CircuitOpenError,
    CircuitState,
    ResilientCatalogGateway,
    ResilientIdentityGateway,
    ResilientInventoryGateway,
    breaker_for,
    reset_breakers,
)


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


def _breaker(threshold=2, timeout=10.0):
    clock = FakeClock()
    return CircuitBreaker("test", threshold, timeout, clock=clock), clock


# ---------------- breaker ---------------- #

def test_breaker_opens_at_threshold():
    cb, _ = _breaker(threshold=2)
    cb.on_failure()
    assert cb.state == CircuitState.CLOSED
    cb.on_failure()
    assert cb.state == CircuitState.OPEN
    with pytest.raises(CircuitOpenError):
        cb.before_call()


def test_success_resets_failure_count():
    cb, _ = _breaker(threshold=2)
    cb.on_failure()
    cb.on_success()
    cb.on_failure()
    assert cb.state == CircuitState.CLOSED


def test_half_open_allows_a_single_trial_call():
    cb, clock = _breaker(threshold=1, timeout=10.0)
    cb.on_failure()
    clock.now += 10.0

    assert cb.before_call() == CircuitState.HALF_OPEN
    # segunda llamada concurrente: rechazada mientras la sonda está en vuelo
    with pytest.raises(CircuitOpenError):
        cb.before_call()

    cb.on_success()
    cb.on_finish()
    assert cb.state == CircuitState.CLOSED


def test_failed_trial_call_reopens():
    cb, clock = _breaker(threshold=3, timeout=5.0)
    for _ in range(3):
        cb.on_failure()
    clock.now += 5.0
    cb.before_call()

    cb.on_failure()
    cb.on_finish()

    assert cb.state == CircuitState.OPEN
    clock.now += 4.9
    assert cb.state == CircuitState.OPEN


def test_breaker_for_uses_settings_and_is_shared(settings):
    settings.HTTP_CIRCUIT_FAIL_THRESHOLD = 7
    reset_breakers()
    cb = breaker_for("inventory")
    assert cb.fail_threshold == 7
    assert breaker_for("inventory") is cb
    assert breaker_for("catalog") is not cb


# ---------------- resilient gateways ---------------- #

class BrokenCatalog:
    def __init__(self, exc):
        self.exc = exc
        self.calls = 0

    def get_product(self, product_id):
        self.calls += 1
        raise self.exc


def test_catalog_failure_falls_back_to_placeholder(caplog):
    cb, _ = _breaker(threshold=5)
    primary = BrokenCatalog(httpx.ConnectError("down"))
    gw = ResilientCatalogGateway(primary, CatalogFallback(), breaker=cb)
    pid = uuid.uuid4()

    product = gw.get_product(pid)

    assert product.id == pid
    assert product.name == FALLBACK_PRODUCT_NAME
    assert product.price == Decimal("0.00")
    assert cb.failures == 1
    assert "downstream degraded" in caplog.text


def test_open_breaker_short_circuits_to_fallback():
    cb, _ = _breaker(threshold=2)
    primary = BrokenCatalog(httpx.ReadTimeout("slow"))
    gw = ResilientCatalogGateway(primary, CatalogFallback(), breaker=cb)

    for _ in range(5):
        gw.get_product(uuid.uuid4())

    assert cb.state == CircuitState.OPEN
    assert primary.calls == 2


def test_client_errors_do_not_trip_the_breaker():
    cb, _ = _breaker(threshold=1)
    response = httpx.Response(422, request=httpx.Request("PATCH", "http://inventory"))
    exc = httpx.HTTPStatusError("unprocessable", request=response.request, response=response)

    class RejectingInventory:
        def reserve(self, inventory_id, quantity):
            raise exc

    gw = ResilientInventoryGateway(RejectingInventory(), InventoryFallback(), breaker=cb)
    record = gw.reserve(uuid.uuid4(), 3)

    assert record.is_degraded
    assert cb.state == CircuitState.CLOSED


def test_malformed_payload_counts_as_failure():
    cb, _ = _breaker(threshold=1)

    class GarbledIdentity:
        def get_user(self, user_id):
            raise ValueError("Expecting value: line 1 column 1")

    gw = ResilientIdentityGateway(GarbledIdentity(), IdentityFallback(), breaker=cb)
    assert gw.get_user(uuid.uuid4()) is None
    assert cb.state == CircuitState.OPEN


def test_success_passes_through():
    cb, _ = _breaker()

    class OkIdentity:
        def get_user(self, user_id):
            return "user"

    gw = ResilientIdentityGateway(OkIdentity(), IdentityFallback(), breaker=cb)
    assert gw.get_user(uuid.uuid4()) == "user"


# ---------------- fallbacks ---------------- #

def test_inventory_fallback_denies_everything():
    fb = InventoryFallback()
    a, b = uuid.uuid4(), uuid.uuid4()

    assert fb.check_availability({a: 1, b: 2}) == {a: False, b: False}
    placeholder = fb.get_inventory(a)
    assert placeholder.id is None and placeholder.is_degraded
    assert fb.release(uuid.uuid4(), 1).status == "UNAVAILABLE"


def test_identity_outage_rejects_order_creation(service, ports):
    from apps.orders.domain import OrderDraft, OrderItemDraft
    from apps.orders.errors import UserNotFound

    cb, _ = _breaker()
    service.identity = ResilientIdentityGateway(
        BrokenIdentity(), IdentityFallback(), breaker=cb
    )
    with pytest.raises(UserNotFound):
        service.create_order(OrderDraft(ports.data.user.id, [OrderItemDraft(ports.data.widget.id, 1)]))


def test_inventory_outage_rejects_order_creation(service, ports):
    from apps.orders.domain import OrderDraft, OrderItemDraft
    from apps.orders.errors import InsufficientStock

    cb, _ = _breaker()

    class DownInventory:
        def __getattr__(self, name):
            def fail(*args):
                raise httpx.ConnectError("down")
            return fail

    service.inventory = ResilientInventoryGateway(DownInventory(), InventoryFallback(), breaker=cb)
    with pytest.raises(InsufficientStock) as exc:
        service.create_order(OrderDraft(ports.data.user.id, [OrderItemDraft(ports.data.widget.id, 1)]))
    assert exc.value.available == 0
    assert ports.repository.list() == []


class BrokenIdentity:
    def get_user(self, user_id):
        raise httpx.ConnectError("down")
