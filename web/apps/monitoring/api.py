"""Health endpoint: database reachability, circuit breaker states and order counters."""

import logging

from django.db import DatabaseError, connection
from django.http import JsonResponse

from apps.orders.metrics import get_order_metrics
from apps.orders.resilience import CircuitState, breaker_for

logger = logging.getLogger(__name__)

DOWNSTREAM_SERVICES = ("identity", "catalog", "inventory")


def health_view(_request):
    db_ok = False
    try:
        with connection.cursor() as cur:
            cur.execute("SELECT 1;")
        db_ok = True
    except DatabaseError:
        logger.warning("health check: database unreachable", exc_info=True)

    breakers = {name: breaker_for(name).snapshot() for name in DOWNSTREAM_SERVICES}
    degraded = [name for name, snap in breakers.items() if snap["state"] != CircuitState.CLOSED.value]

    # open breakers degrade the service but do not make it unhealthy
    ok = db_ok
    code = 200 if ok else 503
    return JsonResponse(
        {
            "ok": ok,
            "degraded": degraded,
            "components": {"db": {"ok": db_ok}, "circuits": breakers},
            "metrics": get_order_metrics().snapshot(),
        },
        status=code,
    )
