import uuid
from decimal import Decimal

import pytest

from apps.orders.models import OrderItemModel, OrderModel

URL = "/api/orders/"


def _create(client, seeded, **overrides):
    payload = {
        "userId": str(seeded.user.id),
        "orderItems": [
            {"productId": str(seeded.widget.id), "quantity": 2},
            {"productId": str(seeded.gadget.id), "quantity": 1},
        ],
        "notes": "ring twice",
    }
    payload.update(overrides)
    return client.post(URL, data=payload, content_type="application/json")


@pytest.mark.django_db
def test_ping(client):
    r = client.get(f"{URL}ping/")
    assert r.status_code == 200
    assert r.json() == {"ok": True}


@pytest.mark.django_db
def test_create_order_201_and_persisted(client, seeded, event_publisher):
    r = _create(client, seeded)
    assert r.status_code == 201, r.content
    body = r.json()

    assert body["status"] == "PENDING"
    assert Decimal(body["total_amount"]) == Decimal("45.50")
    assert body["shipping_address"] == "1 Main Street"
    assert {i["product_name"] for i in body["items"]} == {"Widget", "Gadget"}

    obj = OrderModel.objects.get(id=body["id"])
    assert obj.total_amount == Decimal("45.50")
    assert obj.notes == "ring twice"
    assert OrderItemModel.objects.filter(order=obj).count() == 2
    assert len(event_publisher.events) == 1


@pytest.mark.django_db
def test_create_accepts_snake_case(client, seeded):
    r = client.post(
        URL,
        data={"user_id": str(seeded.user.id), "items": [{"product_id": str(seeded.widget.id), "quantity": 1}]},
        content_type="application/json",
    )
    assert r.status_code == 201, r.content


@pytest.mark.django_db
def test_create_insufficient_stock_422_nothing_persisted(client, seeded):
    r = _create(client, seeded, orderItems=[
        {"productId": str(seeded.widget.id), "quantity": 1},
        {"productId": str(seeded.gadget.id), "quantity": 6},
    ])
    assert r.status_code == 422
    body = r.json()
    assert body["detail"] == "INSUFFICIENT_STOCK"
    assert body["product_id"] == str(seeded.gadget.id)
    assert (body["requested"], body["available"]) == (6, 5)
    assert OrderModel.objects.count() == 0
    assert OrderItemModel.objects.count() == 0


@pytest.mark.django_db
def test_create_empty_order_400(client, seeded):
    r = _create(client, seeded, orderItems=[])
    assert r.status_code == 400
    assert r.json()["detail"] == "EMPTY_ORDER"
    assert OrderModel.objects.count() == 0


@pytest.mark.django_db
@pytest.mark.parametrize("field", ["userId", "productId"])
def test_create_unknown_references_404(client, seeded, field):
    if field == "userId":
        r = _create(client, seeded, userId=str(uuid.uuid4()))
        expected = "USER_NOT_FOUND"
    else:
        r = _create(client, seeded, orderItems=[{"productId": str(uuid.uuid4()), "quantity": 1}])
        expected = "PRODUCT_NOT_FOUND"
    assert r.status_code == 404
    assert r.json()["detail"] == expected


@pytest.mark.django_db
def test_create_validation_errors_400(client, seeded):
    r = _create(client, seeded, orderItems=[{"productId": str(seeded.widget.id), "quantity": 0}])
    assert r.status_code == 400
    assert r.json()["detail"] == "VALIDATION_ERROR"


@pytest.mark.django_db
def test_get_order_and_404(client, seeded):
    oid = _create(client, seeded).json()["id"]

    r = client.get(f"{URL}{oid}/")
    assert r.status_code == 200
    assert r.json()["id"] == oid

    r404 = client.get(f"{URL}{uuid.uuid4()}/")
    assert r404.status_code == 404
    assert r404.json()["detail"] == "ORDER_NOT_FOUND"


@pytest.mark.django_db
def test_list_orders_filters_and_paginates(client, seeded):
    first = _create(client, seeded).json()["id"]
    _create(client, seeded)
    client.patch(f"{URL}{first}/cancel/")

    r = client.get(URL, {"user_id": str(seeded.user.id), "page_size": 1})
    assert r.status_code == 200
    body = r.json()
    assert body["count"] == 2
    assert len(body["results"]) == 1

    cancelled = client.get(URL, {"status": "cancelled"}).json()
    assert [o["id"] for o in cancelled["results"]] == [first]

    assert client.get(URL, {"user_id": "not-a-uuid"}).status_code == 400


@pytest.mark.django_db
def test_status_flow_reserves_then_releases(client, seeded, stub_gateways):
    oid = _create(client, seeded).json()["id"]

    r = client.patch(f"{URL}{oid}/status/", data={"status": "CONFIRMED"}, content_type="application/json")
    assert r.status_code == 200, r.content
    assert r.json()["status"] == "CONFIRMED"
    assert stub_gateways.inventory.records[seeded.widget.id].reserved_quantity == 2

    r = client.patch(f"{URL}{oid}/cancel/")
    assert r.status_code == 200
    assert r.json()["status"] == "CANCELLED"
    assert stub_gateways.inventory.records[seeded.widget.id].reserved_quantity == 0
    assert OrderModel.objects.get(id=oid).status == "CANCELLED"


@pytest.mark.django_db
def test_invalid_transition_409(client, seeded):
    oid = _create(client, seeded).json()["id"]

    r = client.patch(f"{URL}{oid}/status/", data={"status": "shipped"}, content_type="application/json")
    assert r.status_code == 409
    body = r.json()
    assert body["detail"] == "INVALID_TRANSITION"
    assert (body["current_status"], body["requested_status"]) == ("PENDING", "SHIPPED")


@pytest.mark.django_db
def test_cancel_twice_409_already_cancelled(client, seeded):
    oid = _create(client, seeded).json()["id"]
    assert client.patch(f"{URL}{oid}/cancel/").status_code == 200

    r = client.patch(f"{URL}{oid}/cancel/")
    assert r.status_code == 409
    assert r.json()["detail"] == "ALREADY_CANCELLED"


@pytest.mark.django_db
def test_unknown_status_value_400(client, seeded):
    oid = _create(client, seeded).json()["id"]
    r = client.patch(f"{URL}{oid}/status/", data={"status": "LOST"}, content_type="application/json")
    assert r.status_code == 400


@pytest.mark.django_db
def test_update_pending_order(client, seeded):
    oid = _create(client, seeded).json()["id"]

    r = client.patch(
        f"{URL}{oid}/",
        data={"city": "Capital City", "orderItems": [{"productId": str(seeded.gadget.id), "quantity": 2}]},
        content_type="application/json",
    )
    assert r.status_code == 200, r.content
    body = r.json()
    assert body["city"] == "Capital City"
    assert Decimal(body["total_amount"]) == Decimal("51.00")
    assert OrderItemModel.objects.filter(order_id=oid).count() == 1


@pytest.mark.django_db
def test_update_confirmed_order_409(client, seeded):
    oid = _create(client, seeded).json()["id"]
    client.patch(f"{URL}{oid}/status/", data={"status": "CONFIRMED"}, content_type="application/json")

    r = client.patch(f"{URL}{oid}/", data={"notes": "late"}, content_type="application/json")
    assert r.status_code == 409
    assert r.json()["detail"] == "NOT_EDITABLE"


@pytest.mark.django_db
def test_request_id_is_echoed(client):
    r = client.get(f"{URL}ping/", HTTP_X_REQUEST_ID="abc-123")
    assert r["X-Request-ID"] == "abc-123"
    assert client.get(f"{URL}ping/")["X-Request-ID"]


@pytest.mark.django_db
def test_oversized_payload_413(client, settings):
    settings.API_MAX_BYTES = 10
    r = client.post(URL, data={"userId": "x" * 50}, content_type="application/json")
    assert r.status_code == 413


@pytest.mark.django_db
def test_catalog_prices_are_snapshotted_at_cents(client, seeded, stub_gateways):
    from apps.orders.domain import ProductInfo

    # precio del catálogo con tres decimales
    products = [
        stub_gateways.catalog.add_product(ProductInfo(id=uuid.uuid4(), name=f"Bolt {n}", price=Decimal("0.335")))
        for n in range(3)
    ]
    for p in products:
        stub_gateways.inventory.add_stock(p.id, 5)

    r = client.post(
        URL,
        data={"userId": str(seeded.user.id), "orderItems": [{"productId": str(p.id), "quantity": 1} for p in products]},
        content_type="application/json",
    )
    assert r.status_code == 201, r.content
    created = r.json()

    loaded = client.get(f"{URL}{created['id']}/").json()
    subtotals = [Decimal(i["subtotal"]) for i in loaded["items"]]
    assert subtotals == [Decimal("0.34")] * 3
    assert Decimal(loaded["total_amount"]) == sum(subtotals) == Decimal("1.02")
    assert Decimal(created["total_amount"]) == Decimal(loaded["total_amount"])
