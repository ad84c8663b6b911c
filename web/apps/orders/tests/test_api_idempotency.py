import pytest

from apps.orders.models import IdempotencyKey, OrderModel

CREATE_URL = "/api/orders/"


def _payload(seeded, quantity=2):
    return {
        "userId": str(seeded.user.id),
        "orderItems": [{"productId": str(seeded.widget.id), "quantity": quantity}],
    }


@pytest.mark.django_db
def test_idempotent_same_payload_returns_same_order_on_retry(client, seeded, event_publisher):
    key = "idem-same-1"
    payload = _payload(seeded)

    # 1º intento
    r1 = client.post(CREATE_URL, data=payload, content_type="application/json", **{"HTTP_IDEMPOTENCY_KEY": key})
    assert r1.status_code == 201
    body1 = r1.json()

    # 2º intento (replay)
    r2 = client.post(CREATE_URL, data=payload, content_type="application/json", **{"HTTP_IDEMPOTENCY_KEY": key})
    assert r2.status_code == 201
    assert r2.json() == body1
    assert r2.headers.get("Idempotent-Replay") == "true"

    assert OrderModel.objects.count() == 1
    assert len(event_publisher.events) == 1
    assert str(IdempotencyKey.objects.get(key=key).order_id) == body1["id"]


@pytest.mark.django_db
def test_idempotent_conflict_on_different_payload_with_same_key(client, seeded):
    key = "idem-conflict-1"

    r1 = client.post(CREATE_URL, data=_payload(seeded, 2), content_type="application/json",
                     **{"HTTP_IDEMPOTENCY_KEY": key})
    assert r1.status_code == 201

    r2 = client.post(CREATE_URL, data=_payload(seeded, 3), content_type="application/json",
                     **{"HTTP_IDEMPOTENCY_KEY": key})
    assert r2.status_code == 409
    assert r2.json()["detail"] == "IDEMPOTENCY_CONFLICT"


@pytest.mark.django_db
def test_idempotent_replay_preserves_422_status(client, seeded):
    key = "idem-422"
    payload = _payload(seeded, 999)

    r1 = client.post(CREATE_URL, data=payload, content_type="application/json", **{"HTTP_IDEMPOTENCY_KEY": key})
    assert r1.status_code == 422

    r2 = client.post(CREATE_URL, data=payload, content_type="application/json", **{"HTTP_IDEMPOTENCY_KEY": key})
    assert r2.status_code == 422
    assert r2.json() == r1.json()
    assert r2.headers.get("Idempotent-Replay") == "true"
    assert OrderModel.objects.count() == 0


@pytest.mark.django_db
def test_without_key_each_post_creates_an_order(client, seeded):
    payload = _payload(seeded, 1)
    client.post(CREATE_URL, data=payload, content_type="application/json")
    client.post(CREATE_URL, data=payload, content_type="application/json")
    assert OrderModel.objects.count() == 2
