import pytest


@pytest.mark.django_db
def test_health_reports_db_and_circuits(client):
    r = client.get("/api/health/")
    assert r.status_code == 200
    body = r.json()
    assert body["ok"] is True
    assert body["components"]["db"]["ok"] is True
    assert set(body["components"]["circuits"]) == {"identity", "catalog", "inventory"}
    assert body["degraded"] == []


@pytest.mark.django_db
def test_open_circuit_is_reported_as_degraded(client, settings):
    from apps.orders.resilience import breaker_for

    settings.HTTP_CIRCUIT_FAIL_THRESHOLD = 1
    breaker_for("inventory").on_failure()

    body = client.get("/api/health/").json()
    assert body["ok"] is True
    assert body["degraded"] == ["inventory"]
    assert body["components"]["circuits"]["inventory"]["state"] == "OPEN"
