"""
Stock Transfer API - request, approve, reject, complete, cancel
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from branchstock.core import get_db
from branchstock.models import StockTransfer
from branchstock.schemas.transfer import TransferCreate, TransferStatusUpdate
from branchstock.services import InventoryViewService, Principal, TransferService
from branchstock.api.deps import get_current_principal

router = APIRouter(prefix="/transfers", tags=["Transfers"])


def serialize_transfer(t: StockTransfer) -> dict:
    return {
        "id": str(t.id),
        "source_branch_id": str(t.source_branch_id),
        "destination_branch_id": str(t.destination_branch_id),
        "product_id": str(t.product_id),
        "quantity": t.quantity,
        "status": t.status,
        "is_terminal": t.is_terminal,
        "notes": t.notes,
        "created_by": str(t.created_by) if t.created_by else None,
        "created_at": t.created_at.isoformat() if t.created_at else None,
        "approved_by": str(t.approved_by) if t.approved_by else None,
        "approved_at": t.approved_at.isoformat() if t.approved_at else None,
        "completed_by": str(t.completed_by) if t.completed_by else None,
        "completed_at": t.completed_at.isoformat() if t.completed_at else None,
    }


@router.get("")
def list_transfers(
    status: Optional[str] = Query(None, description="PENDING, APPROVED, COMPLETED, REJECTED, CANCELLED or ALL"),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    """Transfer history, most recent first"""
    transfers, total = InventoryViewService.transfer_history(db, principal, status, page, per_page)
    return {
        "transfers": transfers,
        "total": total,
        "page": page,
        "per_page": per_page,
    }


@router.post("", status_code=201)
def create_transfer(
    data: TransferCreate,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    transfer = TransferService.create_transfer(db, principal, data)
    return serialize_transfer(transfer)


@router.get("/{transfer_id}")
def get_transfer(
    transfer_id: UUID,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    return serialize_transfer(TransferService.get_transfer(db, principal.tenant_id, transfer_id))


@router.post("/{transfer_id}/approve")
def approve_transfer(
    transfer_id: UUID,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    return serialize_transfer(TransferService.approve(db, principal, transfer_id))


@router.post("/{transfer_id}/reject")
def reject_transfer(
    transfer_id: UUID,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    return serialize_transfer(TransferService.reject(db, principal, transfer_id))


@router.post("/{transfer_id}/complete")
def complete_transfer(
    transfer_id: UUID,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    """Destination confirms receipt; moves the stock"""
    return serialize_transfer(TransferService.complete(db, principal, transfer_id))


@router.post("/{transfer_id}/cancel")
def cancel_transfer(
    transfer_id: UUID,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    return serialize_transfer(TransferService.cancel(db, principal, transfer_id))


@router.post("/{transfer_id}/status")
def update_transfer_status(
    transfer_id: UUID,
    data: TransferStatusUpdate,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    return serialize_transfer(TransferService.update_status(db, principal, transfer_id, data.status))
