"""Inventory service API built with FastAPI.

This module exposes the inventory endpoints the orders service depends on
(lookup by product, batch availability check, reserve, release) plus a
small stock administration surface. Validation is performed with Pydantic
models, while persistence and locking are delegated to the
SQLAlchemy-backed repository in ``repo.InventoryRepo``.
"""

import logging
import time
import uuid
from typing import Dict, List, Optional

from fastapi import APIRouter, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from pythonjsonlogger import jsonlogger
from sqlalchemy import text

from repo import InsufficientStock, InventoryNotFound, InventoryRepo, engine, init_db

app = FastAPI(title="Inventory Service")
router = APIRouter(prefix="/api/inventory")

# logger JSON
logger = logging.getLogger("inventory")
if not logger.handlers:
    h = logging.StreamHandler()
    h.setFormatter(jsonlogger.JsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s"))
    logger.addHandler(h)
    logger.setLevel(logging.INFO)


@app.on_event("startup")
def _startup_db():
    # espera activa breve hasta que la DB acepte conexiones
    deadline = time.time() + 30  # 30s
    while True:
        try:
            with engine.connect() as conn:
                conn.execute(text("select 1"))
            break
        except Exception:
            if time.time() > deadline:
                raise
            time.sleep(1)
    init_db()


class StockIn(BaseModel):
    """Request body for setting on-hand stock of a product.

    Attributes:
        quantity: Units on hand, zero or more.
        min_stock_level: Low-stock threshold.
    """
    quantity: int = Field(ge=0)
    min_stock_level: int = Field(default=0, ge=0, alias="minStockLevel")

    model_config = {"populate_by_name": True}


@app.exception_handler(InventoryNotFound)
async def _not_found(request: Request, exc: InventoryNotFound):
    return JSONResponse({"detail": "INVENTORY_NOT_FOUND", "message": f"Inventory not found: {exc}"}, status_code=404)


@app.exception_handler(InsufficientStock)
async def _insufficient(request: Request, exc: InsufficientStock):
    return JSONResponse(
        {
            "detail": "INSUFFICIENT_STOCK",
            "message": str(exc),
            "productId": exc.product_id,
            "requested": exc.requested,
            "available": exc.available,
        },
        status_code=422,
    )


@app.get("/health")
def health():
    """Liveness/health endpoint."""
    return {"ok": True}


@router.get("")
def list_inventory(status: Optional[str] = None) -> List[dict]:
    return InventoryRepo().list(status=status)


@router.get("/product/{product_id}")
def get_by_product(product_id: uuid.UUID) -> dict:
    record = InventoryRepo().get_by_product(str(product_id))
    if record is None:
        raise HTTPException(status_code=404, detail="INVENTORY_NOT_FOUND")
    return record


@router.put("/product/{product_id}")
def set_stock(product_id: uuid.UUID, body: StockIn) -> dict:
    """Create or overwrite the stock record of a product."""
    record = InventoryRepo().upsert(str(product_id), body.quantity, body.min_stock_level)
    logger.info("stock set", extra={"product_id": str(product_id), "quantity": body.quantity})
    return record


@router.post("/check")
def check(request: Dict[uuid.UUID, int]) -> Dict[str, bool]:
    """Batch availability check: ``{productId: quantity}`` to ``{productId: bool}``."""
    return InventoryRepo().check({str(pid): qty for pid, qty in request.items()})


@router.get("/{inventory_id}")
def get_inventory(inventory_id: uuid.UUID) -> dict:
    record = InventoryRepo().get(str(inventory_id))
    if record is None:
        raise InventoryNotFound(str(inventory_id))
    return record


@router.patch("/{inventory_id}/reserve")
def reserve(inventory_id: uuid.UUID, quantity: int = Query(gt=0)) -> dict:
    """Reserve units of one inventory record.

    Raises:
        InventoryNotFound: Mapped to 404.
        InsufficientStock: Mapped to 422 with requested/available.
    """
    record = InventoryRepo().reserve(str(inventory_id), quantity)
    logger.info("stock reserved", extra={"inventory_id": str(inventory_id), "quantity": quantity})
    return record


@router.patch("/{inventory_id}/release")
def release(inventory_id: uuid.UUID, quantity: int = Query(gt=0)) -> dict:
    record = InventoryRepo().release(str(inventory_id), quantity)
    logger.info("stock released", extra={"inventory_id": str(inventory_id), "quantity": quantity})
    return record


app.include_router(router)


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    # guardamos en state para logs locales
    request.state.request_id = rid
    try:
        response = await call_next(request)
    finally:
        # log estructurado mínimo
        logger.info("request handled", extra={"request_id": rid, "path": request.url.path, "method": request.method})
    response.headers["X-Request-ID"] = rid
    return response
