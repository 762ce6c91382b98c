"""
Branch Directory API
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from uuid import UUID

from branchstock.core import get_db
from branchstock.models import Branch
from branchstock.schemas.branch import BranchCreate, BranchUpdate
from branchstock.services import AccessPolicy, BranchService, Principal
from branchstock.api.deps import get_current_principal

router = APIRouter(prefix="/branches", tags=["Branches"])


def serialize_branch(b: Branch) -> dict:
    return {
        "id": str(b.id),
        "name": b.name,
        "code": b.code,
        "address": b.address,
        "phone": b.phone,
        "is_main": b.is_main,
        "is_active": b.is_active,
    }


@router.get("")
def list_branches(
    include_inactive: bool = Query(False),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    branches = BranchService.list_branches(db, principal.tenant_id, active_only=not include_inactive)
    main = BranchService.resolve_main_branch(db, principal.tenant_id)
    return {
        "branches": [serialize_branch(b) for b in branches],
        "main_branch_id": str(main.id) if main else None,
        "transfer_source_ids": [
            str(b) for b in AccessPolicy.originable_branch_ids(principal, [b.id for b in branches if b.is_active])
        ],
    }


@router.post("", status_code=201)
def create_branch(
    data: BranchCreate,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    return serialize_branch(BranchService.create_branch(db, principal, data))


@router.patch("/{branch_id}")
def update_branch(
    branch_id: UUID,
    data: BranchUpdate,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    return serialize_branch(BranchService.update_branch(db, principal, branch_id, data))


@router.post("/{branch_id}/main")
def set_main_branch(
    branch_id: UUID,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    return serialize_branch(BranchService.set_main_branch(db, principal, branch_id))
