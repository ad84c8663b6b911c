"""Circuit breakers and fallback selection for downstream gateways.

Each downstream service (identity, catalog, inventory) gets one
process-wide ``CircuitBreaker``. The ``Resilient*Gateway`` decorators wrap a
primary gateway (the HTTP client) and a fallback gateway (deterministic
values) behind the same port: while the breaker is CLOSED, or HALF_OPEN with
a free trial slot, calls go to the primary; when the breaker is OPEN or the
primary fails, the fallback answers and the degradation is logged. Callers
never see transport errors.
"""

import logging
import threading
import time
from enum import Enum
from typing import Callable, Dict, Optional

import httpx
from django.conf import settings

from .domain import CatalogGateway, IdentityGateway, InventoryGateway

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class CircuitOpenError(RuntimeError):
    """Raised by ``before_call`` when the breaker refuses a call."""


# ---------------- Circuit Breaker ---------------- #

class CircuitBreaker:
    """Circuit breaker with CLOSED/OPEN/HALF_OPEN states.

    Transitions:
    - CLOSED → OPEN when consecutive failures reach ``fail_threshold``.
    - OPEN → HALF_OPEN after ``reset_timeout`` seconds.
    - HALF_OPEN → CLOSED on a successful trial call; only one trial call may be in
      flight; a failed trial call re-opens the breaker.

    This implementation is thread-safe via an internal lock.
    """

    def __init__(
        self,
        name: str,
        fail_threshold: int,
        reset_timeout: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.fail_threshold = fail_threshold
        self.reset_timeout = reset_timeout
        self._clock = clock
        self._lock = threading.RLock()
        self._failures = 0
        self._state = CircuitState.CLOSED
        self._opened_at = 0.0
        self._half_open_trial_in_flight = False

    @property
    def state(self) -> CircuitState:
        """Current breaker state with time-based transition handling."""
        with self._lock:
            if self._state == CircuitState.OPEN and (self._clock() - self._opened_at) >= self.reset_timeout:
                self._state = CircuitState.HALF_OPEN
                self._half_open_trial_in_flight = False
            return self._state

    @property
    def failures(self) -> int:
        return self._failures

    def before_call(self) -> CircuitState:
        """Check and update state before a protected call.

        Returns:
            CircuitState: The state at call time.

        Raises:
            CircuitOpenError: If the circuit is OPEN or a HALF_OPEN trial call is busy.
        """
        with self._lock:
            st = self.state
            if st == CircuitState.OPEN:
                raise CircuitOpenError("CIRCUIT_OPEN")
            if st == CircuitState.HALF_OPEN:
                if self._half_open_trial_in_flight:
                    raise CircuitOpenError("CIRCUIT_HALF_OPEN_BUSY")
                self._half_open_trial_in_flight = True
            return st

    def on_success(self):
        """Record a successful call and close/reset the breaker."""
        with self._lock:
            self._failures = 0
            self._state = CircuitState.CLOSED
            self._half_open_trial_in_flight = False

    def on_failure(self):
        """Record a failed call; open the breaker at the threshold or after a failed trial call."""
        with self._lock:
            self._failures += 1
            if self._state == CircuitState.HALF_OPEN or (
                self._failures >= self.fail_threshold and self._state != CircuitState.OPEN
            ):
                self._state = CircuitState.OPEN
                self._opened_at = self._clock()
                self._half_open_trial_in_flight = False

    def on_finish(self):
        """Release any HALF_OPEN trial flag after a call finishes."""
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._half_open_trial_in_flight = False

    def reset(self):
        self.on_success()

    def snapshot(self) -> dict:
        return {"state": self.state.value, "failures": self._failures}


_breakers: Dict[str, CircuitBreaker] = {}
_breakers_lock = threading.Lock()


def breaker_for(service: str) -> CircuitBreaker:
    """Return the process-wide breaker for ``service``, creating it on first use."""
    with _breakers_lock:
        cb = _breakers.get(service)
        if cb is None:
            cb = CircuitBreaker(
                service,
                getattr(settings, "HTTP_CIRCUIT_FAIL_THRESHOLD", 5),
                getattr(settings, "HTTP_CIRCUIT_RESET_TIMEOUT", 30.0),
            )
            _breakers[service] = cb
        return cb


def all_breakers() -> Dict[str, CircuitBreaker]:
    with _breakers_lock:
        return dict(_breakers)


def reset_breakers() -> None:
    """Drop every breaker so the next call starts CLOSED with current settings."""
    with _breakers_lock:
        _breakers.clear()


# ---------------- Fallback selection ---------------- #

def _counts_as_failure(exc: Exception) -> bool:
    # A 4xx answer means the service is up; only transport errors, 5xx and
    # malformed payloads count against the breaker.
    if isinstance(exc, httpx.HTTPStatusError) and exc.response is not None:
        return exc.response.status_code >= 500
    return True


class _ResilientGateway:
    service = ""

    def __init__(self, primary, fallback, breaker: Optional[CircuitBreaker] = None):
        self.primary = primary
        self.fallback = fallback
        self.breaker = breaker or breaker_for(self.service)

    def _call(self, operation: str, *args):
        try:
            self.breaker.before_call()
        except CircuitOpenError as exc:
            self._degraded(operation, exc)
            return getattr(self.fallback, operation)(*args)

        try:
            result = getattr(self.primary, operation)(*args)
        except (httpx.HTTPError, ValueError) as exc:
            if _counts_as_failure(exc):
                self.breaker.on_failure()
            else:
                self.breaker.on_success()
            self._degraded(operation, exc)
            return getattr(self.fallback, operation)(*args)
        else:
            self.breaker.on_success()
            return result
        finally:
            self.breaker.on_finish()

    def _degraded(self, operation: str, exc: Exception):
        logger.warning(
            "downstream degraded; using fallback",
            extra={
                "service": self.service,
                "operation": operation,
                "error": f"{type(exc).__name__}: {exc}",
                "circuit_state": self.breaker.state.value,
            },
        )


class ResilientIdentityGateway(_ResilientGateway, IdentityGateway):
    service = "identity"

    def get_user(self, user_id):
        return self._call("get_user", user_id)


class ResilientCatalogGateway(_ResilientGateway, CatalogGateway):
    service = "catalog"

    def get_product(self, product_id):
        return self._call("get_product", product_id)


class ResilientInventoryGateway(_ResilientGateway, InventoryGateway):
    service = "inventory"

    def get_inventory(self, product_id):
        return self._call("get_inventory", product_id)

    def check_availability(self, request):
        return self._call("check_availability", request)

    def reserve(self, inventory_id, quantity):
        return self._call("reserve", inventory_id, quantity)

    def release(self, inventory_id, quantity):
        return self._call("release", inventory_id, quantity)
