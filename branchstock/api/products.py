"""
Product Catalogue API
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from branchstock.core import get_db
from branchstock.models import Product
from branchstock.schemas.product import ProductCreate, ProductUpdate
from branchstock.services import AccessPolicy, Capability, Principal, ProductService
from branchstock.api.deps import get_current_principal

router = APIRouter(prefix="/products", tags=["Products"])


def serialize_product(p: Product) -> dict:
    return {
        "id": str(p.id),
        "sku": p.sku,
        "barcode": p.barcode,
        "name": p.name,
        "description": p.description,
        "cost_price": float(p.cost_price or 0),
        "selling_price": float(p.selling_price or 0),
        "is_active": p.is_active,
    }


@router.get("")
def list_products(
    search: Optional[str] = Query(None),
    active_only: bool = Query(True),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    products, total = ProductService.get_products(db, principal.tenant_id, search, active_only, page, per_page)
    return {
        "products": [serialize_product(p) for p in products],
        "total": total,
        "page": page,
        "per_page": per_page,
    }


@router.post("", status_code=201)
def create_product(
    data: ProductCreate,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    AccessPolicy.require(principal, Capability.ADJUST_STOCK)
    return serialize_product(ProductService.create_product(db, principal.tenant_id, data))


@router.patch("/{product_id}")
def update_product(
    product_id: UUID,
    data: ProductUpdate,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    AccessPolicy.require(principal, Capability.ADJUST_STOCK)
    return serialize_product(ProductService.update_product(db, principal.tenant_id, product_id, data))
