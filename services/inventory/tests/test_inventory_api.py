# services/inventory/tests/test_inventory_api.py
import os
import uuid

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient

import repo
from main import app


@pytest.fixture
def client():
    repo.Base.metadata.drop_all(repo.engine)
    with TestClient(app) as c:
        yield c


def _stock(client, quantity, min_level=0):
    pid = str(uuid.uuid4())
    r = client.put(f"/api/inventory/product/{pid}", json={"quantity": quantity, "minStockLevel": min_level})
    assert r.status_code == 200
    return r.json()


def test_health(client):
    assert client.get("/health").json() == {"ok": True}


def test_lookup_by_product(client):
    rec = _stock(client, 10)
    r = client.get(f"/api/inventory/product/{rec['productId']}")
    assert r.status_code == 200
    body = r.json()
    assert body["id"] == rec["id"]
    assert (body["quantity"], body["reservedQuantity"], body["status"]) == (10, 0, "IN_STOCK")
    assert "X-Request-ID" in r.headers


def test_unknown_product_is_404(client):
    r = client.get(f"/api/inventory/product/{uuid.uuid4()}")
    assert r.status_code == 404


def test_check_reports_each_product(client):
    a = _stock(client, 5)
    b = _stock(client, 1)
    missing = str(uuid.uuid4())

    r = client.post("/api/inventory/check", json={a["productId"]: 5, b["productId"]: 2, missing: 1})
    assert r.status_code == 200
    assert r.json() == {a["productId"]: True, b["productId"]: False, missing: False}


def test_reserve_and_release(client):
    rec = _stock(client, 3)

    r = client.patch(f"/api/inventory/{rec['id']}/reserve", params={"quantity": 3})
    assert r.status_code == 200
    assert r.json()["reservedQuantity"] == 3
    assert r.json()["availableQuantity"] == 0
    assert r.json()["status"] == "RESERVED"

    # ya no queda stock disponible
    r = client.post("/api/inventory/check", json={rec["productId"]: 1})
    assert r.json() == {rec["productId"]: False}

    r = client.patch(f"/api/inventory/{rec['id']}/release", params={"quantity": 5})
    assert r.status_code == 200
    assert r.json()["reservedQuantity"] == 0
    assert r.json()["status"] == "IN_STOCK"


def test_reserve_more_than_available_is_422(client):
    rec = _stock(client, 2)
    r = client.patch(f"/api/inventory/{rec['id']}/reserve", params={"quantity": 5})
    assert r.status_code == 422
    body = r.json()
    assert body["detail"] == "INSUFFICIENT_STOCK"
    assert (body["requested"], body["available"]) == (5, 2)
    assert client.get(f"/api/inventory/{rec['id']}").json()["reservedQuantity"] == 0


def test_reserve_unknown_inventory_is_404(client):
    r = client.patch(f"/api/inventory/{uuid.uuid4()}/reserve", params={"quantity": 1})
    assert r.status_code == 404
    assert r.json()["detail"] == "INVENTORY_NOT_FOUND"


def test_quantity_must_be_positive(client):
    rec = _stock(client, 2)
    r = client.patch(f"/api/inventory/{rec['id']}/reserve", params={"quantity": 0})
    assert r.status_code == 422


def test_status_is_derived_from_levels(client):
    assert _stock(client, 0)["status"] == "OUT_OF_STOCK"
    assert _stock(client, 3, min_level=5)["status"] == "LOW_STOCK"
    assert _stock(client, 20, min_level=5)["status"] == "IN_STOCK"

    low = client.get("/api/inventory", params={"status": "LOW_STOCK"}).json()
    assert [r["quantity"] for r in low] == [3]
