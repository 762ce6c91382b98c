"""
Inventory API - branch stock views and adjustments for signed-in users
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional

from branchstock.core import get_db
from branchstock.models import StockRecord
from branchstock.schemas.stock import StockAdjustmentRequest, SaleDeductionRequest, MinQuantityUpdate
from branchstock.services import InventoryViewService, Principal, StockService
from branchstock.api.deps import get_current_principal, parse_uuid

router = APIRouter(prefix="/inventory", tags=["Inventory"])


def serialize_record(record: StockRecord) -> dict:
    return {
        "id": str(record.id),
        "product_id": str(record.product_id),
        "branch_id": str(record.branch_id),
        "quantity": record.quantity,
        "min_quantity": record.min_quantity,
    }


@router.get("")
def get_branch_inventory(
    branch_id: Optional[str] = Query(None, description="Defaults to the user's branch, then the main branch"),
    search: Optional[str] = Query(None),
    low_stock: bool = Query(False),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    return InventoryViewService.branch_inventory(
        db, principal,
        branch_id=parse_uuid(branch_id, "branch_id"),
        search=search,
        low_stock_only=low_stock
    )


@router.get("/transferable")
def get_transferable_products(
    source_branch_id: str = Query(...),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    """Products with stock at the source branch, for the new-transfer form"""
    branch_id = parse_uuid(source_branch_id, "source_branch_id")
    return {"products": InventoryViewService.transferable_products(db, principal, branch_id)}


@router.post("/adjust")
def adjust_stock(
    data: StockAdjustmentRequest,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    record = StockService.adjust_for_principal(
        db, principal, data.product_id, data.branch_id, data.adjustment_type, data.quantity, note=data.note
    )
    return serialize_record(record)


@router.post("/sale")
def deduct_sale(
    data: SaleDeductionRequest,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    record = StockService.deduct_for_sale(
        db, principal, data.product_id, data.branch_id, data.quantity, reference_id=data.reference_id
    )
    return serialize_record(record)


@router.put("/min-quantity")
def update_min_quantity(
    data: MinQuantityUpdate,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    record = StockService.update_min_quantity(db, principal, data.product_id, data.branch_id, data.min_quantity)
    return serialize_record(record)
