"""OpenTelemetry metrics for the orders core.

Instruments:
    - orders.created.count (Counter): orders persisted
    - orders.created.fail (Counter): failed creations, ``exception`` attribute
    - orders.created.duration (Histogram): creation time in milliseconds
    - orders.status.change.count (Counter): transitions, ``to`` attribute
    - orders.delivered.count / orders.cancelled.count (Counter)

Without a configured ``MeterProvider`` the OpenTelemetry API hands out no-op
instruments. The running totals kept alongside are what ``/api/health/``
reports.
"""

import threading
import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from opentelemetry import metrics

from .domain import OrderStatus

METER_NAME = "apps.orders"


class OrderMetrics:
    """Counters and the creation timer for one meter.

    Args:
        meter: OpenTelemetry meter; the global provider's ``apps.orders``
            meter when omitted.
    """

    def __init__(self, meter: Optional[Any] = None):
        self._meter = meter or metrics.get_meter(METER_NAME)
        self._created = self._meter.create_counter(
            name="orders.created.count", unit="orders", description="Orders created"
        )
        self._failed = self._meter.create_counter(
            name="orders.created.fail", unit="orders", description="Order creations that failed"
        )
        self._duration = self._meter.create_histogram(
            name="orders.created.duration", unit="ms", description="Order creation time in milliseconds"
        )
        self._status_changes = self._meter.create_counter(
            name="orders.status.change.count", unit="orders", description="Order status transitions"
        )
        self._delivered = self._meter.create_counter(
            name="orders.delivered.count", unit="orders", description="Orders delivered"
        )
        self._cancelled = self._meter.create_counter(
            name="orders.cancelled.count", unit="orders", description="Orders cancelled"
        )

        self._lock = threading.Lock()
        self._totals: Dict[str, Any] = {
            "orders.created.count": 0,
            "orders.created.fail": {},
            "orders.status.change.count": {},
            "orders.delivered.count": 0,
            "orders.cancelled.count": 0,
        }

    def _bump(self, name: str, key: Optional[str] = None) -> None:
        with self._lock:
            if key is None:
                self._totals[name] += 1
            else:
                self._totals[name][key] = self._totals[name].get(key, 0) + 1

    @contextmanager
    def time_creation(self) -> Iterator[None]:
        start = time.perf_counter()
        try:
            yield
        finally:
            self._duration.record((time.perf_counter() - start) * 1000)

    def order_created(self) -> None:
        self._created.add(1)
        self._bump("orders.created.count")

    def creation_failed(self, exc: BaseException) -> None:
        name = type(exc).__name__
        self._failed.add(1, {"exception": name})
        self._bump("orders.created.fail", name)

    def status_changed(self, new_status: OrderStatus) -> None:
        """Count a transition, plus the delivered/cancelled totals."""
        to = OrderStatus(new_status).value
        self._status_changes.add(1, {"to": to})
        self._bump("orders.status.change.count", to)
        if to == OrderStatus.DELIVERED.value:
            self._delivered.add(1)
            self._bump("orders.delivered.count")
        elif to == OrderStatus.CANCELLED.value:
            self._cancelled.add(1)
            self._bump("orders.cancelled.count")

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {k: dict(v) if isinstance(v, dict) else v for k, v in self._totals.items()}


_lock = threading.Lock()
_default: Optional[OrderMetrics] = None


def get_order_metrics() -> OrderMetrics:
    """Return the process-wide metrics, creating them on first use."""
    global _default
    with _lock:
        if _default is None:
            _default = OrderMetrics()
        return _default


def reset_order_metrics() -> None:
    global _default
    with _lock:
        _default = None
