"""HTTP adapter clients with retries and context headers.

This module implements concrete HTTP clients for the identity, catalog and
inventory ports using ``httpx``. It adds:

- Request correlation: propagates ``X-Request-ID`` from a ContextVar set by
    the gateway middleware.
- Simple retry policy with exponential backoff for transport errors and 5xx.
- Response parsing through the wire schemas in ``schemas.py``; a 404 maps to
    ``None`` where the port allows "not found".

The clients raise on failure. Circuit breaking and fallbacks are layered on
top by ``resilience.py``.
"""

import logging
import time
from typing import Dict, Optional
from uuid import UUID

import httpx
from django.conf import settings
from django.utils.module_loading import import_string

from .domain import CatalogGateway, IdentityGateway, InventoryGateway, InventoryInfo, ProductInfo, UserInfo
from .resilience import breaker_for
from .schemas import AvailabilityResponse, InventoryResponse, ProductResponse, UserResponse

REQUEST_ID_CTX = import_string("gateway.middleware.REQUEST_ID_CTX")

logger = logging.getLogger(__name__)


# ---------------- Helpers ---------------- #

def _request_headers(extra: Optional[dict] = None) -> dict:
    """Build base headers including X-Request-ID and any extras.

    Reads the request id from the ContextVar populated by middleware and
    adds it as ``X-Request-ID`` when present. Then applies any extra headers
    provided by the caller.

    Args:
        extra: Optional dict of additional headers to include.

    Returns:
        dict: Final headers dictionary for the outgoing request.
    """
    headers: dict[str, str] = {}
    rid = REQUEST_ID_CTX.get()
    if rid and rid != "-":
        headers["X-Request-ID"] = rid
    if extra:
        headers.update(extra)
    return headers


def _retry_policy():
    """Return retry configuration as (max_attempts, backoff_base_seconds, max_sleep_seconds)."""
    return (
        max(1, getattr(settings, "HTTP_RETRY_MAX", 3)),
        getattr(settings, "HTTP_RETRY_BACKOFF_BASE", 0.15),
        getattr(settings, "HTTP_RETRY_MAX_SLEEP", 0.5),
    )


def _should_retry(resp: Optional[httpx.Response], exc: Optional[Exception]) -> bool:
    """Decide whether to retry based on response status or transport error.

    Retries are attempted only on transport exceptions or HTTP 5xx.
    """
    if exc is not None:
        return True
    if resp is not None and 500 <= resp.status_code < 600:
        return True
    return False


class _HttpServiceClient:
    """Shared request loop for the downstream service clients."""

    service = ""

    def __init__(self, base_url: str, timeout: float | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECS

    def _request(
        self,
        method: str,
        path: str,
        *,
        json=None,
        params: Optional[dict] = None,
        allow_404: bool = False,
    ) -> Optional[httpx.Response]:
        """Send one request, retrying transport errors and 5xx with backoff.

        Args:
            method: HTTP method.
            path: Path relative to ``base_url``.
            json: Optional JSON body.
            params: Optional query parameters.
            allow_404: When True a 404 returns None instead of raising.

        Returns:
            httpx.Response | None: The 2xx response, or None on an allowed 404.

        Raises:
            httpx.RequestError: For network/transport errors after retries.
            httpx.HTTPStatusError: For non-2xx responses that are not retried
                or that persist after retries.
        """
        max_attempts, backoff, cap = _retry_policy()
        headers = _request_headers({
            "X-Circuit-State": breaker_for(self.service).state.value,
            "X-Retry-Count": "0",
        })
        url = f"{self.base_url}{path}"
        tries = 0

        with httpx.Client(timeout=self.timeout) as client:
            while True:
                resp = None
                exc = None
                try:
                    resp = client.request(method, url, json=json, params=params, headers=headers)
                    if resp.status_code == 404 and allow_404:
                        return None
                    if resp.is_success:
                        return resp
                    if not _should_retry(resp, None):
                        resp.raise_for_status()
                except httpx.RequestError as e:
                    exc = e

                tries += 1
                headers["X-Retry-Count"] = str(tries)

                if tries >= max_attempts:
                    logger.warning(
                        "downstream call failed",
                        extra={"service": self.service, "method": method, "url": url, "attempts": tries},
                    )
                    if exc:
                        raise exc
                    resp.raise_for_status()

                sleep_s = backoff * (2 ** (tries - 1))  # exponential backoff
                if sleep_s > 0:
                    time.sleep(min(sleep_s, cap))


# ---------------- Identity Adapter ---------------- #

class HttpIdentityClient(_HttpServiceClient, IdentityGateway):
    """HTTP client for the identity service (``GET /users/{id}``)."""

    service = "identity"

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        super().__init__(base_url or settings.IDENTITY_BASE_URL, timeout)

    def get_user(self, user_id: UUID) -> Optional[UserInfo]:
        resp = self._request("GET", f"/users/{user_id}", allow_404=True)
        if resp is None:
            return None
        return UserResponse.model_validate(resp.json()).to_domain()


# ---------------- Catalog Adapter ---------------- #

class HttpCatalogClient(_HttpServiceClient, CatalogGateway):
    """HTTP client for the catalog service (``GET /products/{id}``)."""

    service = "catalog"

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        super().__init__(base_url or settings.CATALOG_BASE_URL, timeout)

    def get_product(self, product_id: UUID) -> Optional[ProductInfo]:
        resp = self._request("GET", f"/products/{product_id}", allow_404=True)
        if resp is None:
            return None
        return ProductResponse.model_validate(resp.json()).to_domain()


# ---------------- Inventory Adapter ---------------- #

class HttpInventoryClient(_HttpServiceClient, InventoryGateway):
    """HTTP client for the inventory service.

    Endpoints:
        GET   /inventory/product/{productId}
        POST  /inventory/check               body ``{productId: quantity}``
        PATCH /inventory/{id}/reserve?quantity=N
        PATCH /inventory/{id}/release?quantity=N
    """

    service = "inventory"

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        super().__init__(base_url or settings.INVENTORY_BASE_URL, timeout)

    def get_inventory(self, product_id: UUID) -> Optional[InventoryInfo]:
        resp = self._request("GET", f"/inventory/product/{product_id}", allow_404=True)
        if resp is None:
            return None
        return InventoryResponse.model_validate(resp.json()).to_domain()

    def check_availability(self, request: Dict[UUID, int]) -> Dict[UUID, bool]:
        payload = {str(product_id): quantity for product_id, quantity in request.items()}
        resp = self._request("POST", "/inventory/check", json=payload)
        return AvailabilityResponse.model_validate(resp.json()).root

    def reserve(self, inventory_id: UUID, quantity: int) -> InventoryInfo:
        resp = self._request("PATCH", f"/inventory/{inventory_id}/reserve", params={"quantity": quantity})
        return InventoryResponse.model_validate(resp.json()).to_domain()

    def release(self, inventory_id: UUID, quantity: int) -> InventoryInfo:
        resp = self._request("PATCH", f"/inventory/{inventory_id}/release", params={"quantity": quantity})
        return InventoryResponse.model_validate(resp.json()).to_domain()
