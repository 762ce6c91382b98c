"""
Programmatic Inventory API (v1) - API key + secret authentication

Every call made with a valid key is recorded in ``api_request_log``.
"""
from fastapi import APIRouter, Body, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from typing import Optional
import logging
import time

from branchstock.core import get_db
from branchstock.core.exceptions import AuthorizationError, BranchStockError, ValidationError
from branchstock.services import ApiContext, ApiKeyService, InventoryViewService, StockService
from branchstock.api.deps import parse_uuid

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["Public API v1"])

ENDPOINT = "/api/v1/inventory"


def api_success(data, status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": True, "data": data})


def api_error(message: str, status_code: int = 400) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def _client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.headers.get("x-real-ip") or (request.client.host if request.client else None)


def _authenticate(request: Request, db: Session) -> ApiContext:
    return ApiKeyService.validate(
        db,
        request.headers.get("X-API-Key"),
        request.headers.get("X-API-Secret")
    )


def _log(db: Session, ctx: ApiContext, request: Request, status_code: int, body: dict, started: float) -> None:
    try:
        ApiKeyService.log_request(
            db,
            api_key_id=ctx.api_key_id,
            organization_id=ctx.organization_id,
            endpoint=ENDPOINT,
            method=request.method,
            status_code=status_code,
            request_body=body,
            response_time_ms=int((time.monotonic() - started) * 1000),
            ip_address=_client_ip(request),
            user_agent=request.headers.get("user-agent")
        )
    except BranchStockError as e:
        logger.error(f"Failed to log API request for key {ctx.api_key_id}: {e}")


@router.get("/inventory")
def api_get_inventory(
    request: Request,
    branch_id: Optional[str] = Query(None),
    low_stock: bool = Query(False),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db)
):
    started = time.monotonic()
    try:
        ctx = _authenticate(request, db)
    except BranchStockError as e:
        return api_error(e.message, e.status_code)

    params = {"branch_id": branch_id, "low_stock": low_stock, "limit": limit, "offset": offset}
    try:
        inventory, total = InventoryViewService.api_stock_listing(
            db, ctx.organization_id,
            branch_id=parse_uuid(branch_id, "branch_id"),
            low_stock=low_stock,
            limit=limit,
            offset=offset
        )
    except BranchStockError as e:
        _log(db, ctx, request, e.status_code, params, started)
        return api_error(e.message, e.status_code)

    _log(db, ctx, request, 200, params, started)
    return api_success({
        "inventory": inventory,
        "pagination": {
            "total": total,
            "limit": limit,
            "offset": offset,
            "hasMore": offset + limit < total,
        },
    })


@router.patch("/inventory")
def api_update_inventory(
    request: Request,
    body: dict = Body(...),
    db: Session = Depends(get_db)
):
    """
    Body: product_id, branch_id, quantity, adjustment_type (add / subtract / set, default set).
    Subtracting more than is on hand leaves the record at 0.
    """
    started = time.monotonic()
    try:
        ctx = _authenticate(request, db)
    except BranchStockError as e:
        return api_error(e.message, e.status_code)

    try:
        if not ctx.has_permission("write"):
            raise AuthorizationError("Write permission required")

        if not body.get("product_id") or not body.get("branch_id") or body.get("quantity") is None:
            raise ValidationError("product_id, branch_id, and quantity are required")

        adjustment_type = body.get("adjustment_type") or "set"
        record = StockService.record_adjustment(
            db, ctx.organization_id,
            product_id=parse_uuid(body["product_id"], "product_id"),
            branch_id=parse_uuid(body["branch_id"], "branch_id"),
            adjustment_type=adjustment_type,
            quantity=body["quantity"],
            reference_type="API",
            note=f"api key {ctx.api_key_id}"
        )
    except BranchStockError as e:
        _log(db, ctx, request, e.status_code, body, started)
        return api_error(e.message, e.status_code)

    _log(db, ctx, request, 200, body, started)
    return api_success({
        "stock": {
            "id": str(record.id),
            "product_id": str(record.product_id),
            "branch_id": str(record.branch_id),
            "quantity": record.quantity,
            "min_quantity": record.min_quantity,
        },
        "new_quantity": record.quantity,
    })
