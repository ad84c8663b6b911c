"""HTTP views for the orders app.

Views are kept intentionally small: they validate requests (via Pydantic),
map to domain commands, delegate to ``OrderService`` and render the result
with ``OrderReadDTO``. Domain failures are ``OrderError`` subclasses; their
``code`` picks the HTTP status and ``to_dict()`` is the response body.

The views obtain a configured service from ``get_order_service()``, which
returns HTTP adapter-backed gateways or in-process stubs depending on
runtime settings.

Idempotency: when an ``Idempotency-Key`` header is provided, the create
endpoint stores its final response. Retries with the same payload replay it
with ``Idempotent-Replay: true``; reusing the key with a different payload
returns HTTP 409.
"""

import logging
from uuid import UUID

from django.core.paginator import Paginator
from pydantic import ValidationError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from .domain import OrderStatus
from .errors import OrderError
from .idempotency import finalize, get_or_create_idempotent
from .providers import get_order_service
from .schemas import CreateOrderDTO, OrderReadDTO, StatusUpdateDTO, UpdateOrderDTO

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    "EMPTY_ORDER": status.HTTP_400_BAD_REQUEST,
    "USER_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "PRODUCT_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "INVENTORY_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "ORDER_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "INSUFFICIENT_STOCK": 422,
    "INVALID_TRANSITION": status.HTTP_409_CONFLICT,
    "ALREADY_CANCELLED": status.HTTP_409_CONFLICT,
    "NOT_EDITABLE": status.HTTP_409_CONFLICT,
    "CONCURRENT_UPDATE": status.HTTP_409_CONFLICT,
    "IDEMPOTENCY_CONFLICT": status.HTTP_409_CONFLICT,
    "DOWNSTREAM_DEGRADED": status.HTTP_503_SERVICE_UNAVAILABLE,
}


def _error_response(exc: OrderError) -> Response:
    return Response(exc.to_dict(), status=ERROR_STATUS.get(exc.code, status.HTTP_400_BAD_REQUEST))


def _validation_response(exc: ValidationError) -> Response:
    errors = [
        {"loc": [str(p) for p in e["loc"]], "msg": e["msg"], "type": e["type"]}
        for e in exc.errors(include_url=False)
    ]
    return Response({"detail": "VALIDATION_ERROR", "errors": errors}, status=status.HTTP_400_BAD_REQUEST)


def _render(order) -> dict:
    return OrderReadDTO.from_domain(order).model_dump(mode="json")


class OrdersPingView(APIView):
    """Simple health-check endpoint for the orders module."""

    def get(self, request):
        return Response({"ok": True})


class OrdersCollectionView(APIView):
    """List orders and create new ones.

    ``POST`` validates the payload, lets the service resolve the user,
    admit the items against inventory, snapshot catalog data and persist
    the order, then returns the created resource.
    """

    throttle_classes = [ScopedRateThrottle]

    def get_throttles(self):
        # DRF evaluates throttles in initial(), before get/post
        self.throttle_scope = "orders_list" if self.request.method == "GET" else "orders_create"
        return [throttle() for throttle in self.throttle_classes]

    def get(self, request):
        """List orders, newest first.

        Query params: ``user_id``, ``status``, ``page``, ``page_size``.
        """
        try:
            user_id = UUID(request.GET["user_id"]) if request.GET.get("user_id") else None
            order_status = OrderStatus(request.GET["status"].upper()) if request.GET.get("status") else None
            page = int(request.GET.get("page", 1))
            page_size = max(1, min(int(request.GET.get("page_size", 20)), 100))
        except ValueError as e:
            return Response({"detail": "VALIDATION_ERROR", "message": str(e)}, status=status.HTTP_400_BAD_REQUEST)

        orders = get_order_service().list_orders(user_id=user_id, status=order_status)
        p = Paginator(orders, page_size)
        page_obj = p.get_page(page)

        return Response(
            {
                "count": p.count,
                "page": page_obj.number,
                "page_size": page_size,
                "results": [_render(o) for o in page_obj.object_list],
            },
            status=status.HTTP_200_OK,
        )

    def post(self, request):
        """Create a new order.

        Args:
            request (Request): DRF request with JSON body and optional
                ``Idempotency-Key`` header.

        Returns:
            Response: One of the following responses.
            - 201 with the order when it is created.
            - The stored status and body when the same idempotency key and
              payload are retried.
            - 409 with {detail: "IDEMPOTENCY_CONFLICT"} when the same key is
              reused with a different payload.
            - 400 for validation errors and empty orders.
            - 404 when the user, a product or an inventory record is unknown.
            - 422 with {detail: "INSUFFICIENT_STOCK"} when stock is short.
        """
        idem_key = request.headers.get("Idempotency-Key")

        # 1) Pydantic validation
        try:
            dto = CreateOrderDTO.model_validate(request.data)
        except ValidationError as e:
            return _validation_response(e)

        # 2) Idempotency get-or-create
        rec = None
        if idem_key:
            try:
                existing, rec = get_or_create_idempotent(idem_key, request.data)
            except OrderError as e:
                return _error_response(e)
            if existing:
                status_code = rec.response_status or status.HTTP_200_OK
                resp = Response(rec.response_body, status=status_code)
                resp["Idempotent-Replay"] = "true"
                return resp

        # 3) Domain
        try:
            order = get_order_service().create_order(dto.to_domain())
        except OrderError as e:
            resp = _error_response(e)
            if rec:
                finalize(rec, resp.status_code, resp.data)
            return resp
        except Exception:
            logger.exception("order creation failed")
            body = {"detail": "UPSTREAM_UNAVAILABLE"}
            if rec:
                finalize(rec, status.HTTP_503_SERVICE_UNAVAILABLE, body)
            return Response(body, status=status.HTTP_503_SERVICE_UNAVAILABLE)

        # 4) Response
        body = _render(order)
        if rec:
            finalize(rec, status.HTTP_201_CREATED, body, order_id=order.id)
        return Response(body, status=status.HTTP_201_CREATED)


class OrderDetailView(APIView):
    """Read or edit a single order."""

    throttle_classes = [ScopedRateThrottle]

    def get_throttles(self):
        self.throttle_scope = "orders_detail" if self.request.method == "GET" else "orders_update"
        return [throttle() for throttle in self.throttle_classes]

    def get(self, request, oid: UUID):
        try:
            order = get_order_service().get_order(oid)
        except OrderError as e:
            return _error_response(e)
        return Response(_render(order), status=status.HTTP_200_OK)

    def patch(self, request, oid: UUID):
        """Edit shipping fields, notes or items of a PENDING order."""
        try:
            dto = UpdateOrderDTO.model_validate(request.data)
        except ValidationError as e:
            return _validation_response(e)
        try:
            order = get_order_service().update_order(oid, dto.to_domain())
        except OrderError as e:
            return _error_response(e)
        return Response(_render(order), status=status.HTTP_200_OK)


class OrderStatusView(APIView):
    """Move an order through its lifecycle (``{"status": "CONFIRMED"}``)."""

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_update"

    def patch(self, request, oid: UUID):
        try:
            dto = StatusUpdateDTO.model_validate(request.data)
        except ValidationError as e:
            return _validation_response(e)
        try:
            order = get_order_service().update_order_status(oid, dto.status)
        except OrderError as e:
            return _error_response(e)
        return Response(_render(order), status=status.HTTP_200_OK)


class OrderCancelView(APIView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_update"

    def patch(self, request, oid: UUID):
        try:
            order = get_order_service().cancel_order(oid)
        except OrderError as e:
            return _error_response(e)
        return Response(_render(order), status=status.HTTP_200_OK)
