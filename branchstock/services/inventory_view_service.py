"""
Inventory View Service - read-only projections for display and the API

- Branch inventory: every product of the tenant with its quantity at one branch
- Transfer history: transfers with branch, product and requester names
- API stock listing: paginated stock rows for programmatic callers
"""
from sqlalchemy.orm import Session, aliased
from sqlalchemy import and_, func, or_
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from branchstock.core import settings
from branchstock.core.exceptions import ValidationError
from branchstock.models import AppUser, Branch, Product, StockRecord, StockTransfer, TransferStatus
from branchstock.services.access_policy import AccessPolicy, Principal
from branchstock.services.branch_service import BranchService


def stock_threshold(min_quantity: Optional[int]) -> int:
    """A missing or zero min_quantity falls back to the default threshold"""
    return min_quantity or settings.DEFAULT_MIN_QUANTITY


def classify_stock(quantity: int, min_quantity: Optional[int] = None) -> str:
    """low at or below the threshold, medium below 5x the threshold, healthy above"""
    threshold = stock_threshold(min_quantity)
    if quantity <= threshold:
        return "low"
    if quantity < threshold * settings.HEALTHY_STOCK_MULTIPLIER:
        return "medium"
    return "healthy"


class InventoryViewService:
    """Read projections over stock records and transfers"""

    @staticmethod
    def resolve_view_branch(db: Session, principal: Principal, branch_id: Optional[UUID] = None) -> Optional[Branch]:
        """Selected branch, else the principal's own (branch-scoped roles), else the tenant's main branch"""
        scoped = not AccessPolicy.has_all_branches(principal)
        if branch_id is None and scoped:
            branch_id = principal.branch_id
        if branch_id is not None or scoped:
            # A branch-scoped profile without a branch reaches nothing
            AccessPolicy.require_branch_access(principal, branch_id)
            return BranchService.get_branch_for_tenant(db, principal.tenant_id, branch_id)
        return BranchService.resolve_main_branch(db, principal.tenant_id)

    @staticmethod
    def branch_inventory(
        db: Session,
        principal: Principal,
        branch_id: Optional[UUID] = None,
        search: Optional[str] = None,
        low_stock_only: bool = False
    ) -> Dict:
        branch = InventoryViewService.resolve_view_branch(db, principal, branch_id)
        if branch is None:
            return {"branch": None, "items": []}

        query = db.query(Product, StockRecord).outerjoin(
            StockRecord,
            and_(StockRecord.product_id == Product.id, StockRecord.branch_id == branch.id)
        ).filter(
            Product.organization_id == principal.tenant_id,
            Product.is_active == True
        )

        if search:
            search_term = f"%{search}%"
            query = query.filter(
                or_(
                    Product.name.ilike(search_term),
                    Product.sku.ilike(search_term),
                    Product.barcode.ilike(search_term)
                )
            )

        items = []
        for product, record in query.order_by(Product.name).all():
            quantity = record.quantity if record else 0
            min_quantity = record.min_quantity if record else None
            level = classify_stock(quantity, min_quantity)
            if low_stock_only and level != "low":
                continue
            items.append({
                "product_id": str(product.id),
                "name": product.name,
                "sku": product.sku,
                "barcode": product.barcode,
                "selling_price": float(product.selling_price or 0),
                "quantity": quantity,
                "min_quantity": stock_threshold(min_quantity),
                "stock_level": level,
            })

        return {
            "branch": {"id": str(branch.id), "name": branch.name, "is_main": branch.is_main},
            "items": items,
        }

    @staticmethod
    def transferable_products(db: Session, principal: Principal, source_branch_id: UUID) -> List[Dict]:
        """Products the source branch actually holds, for the new-transfer form"""
        AccessPolicy.require_branch_access(principal, source_branch_id)
        branch = BranchService.get_branch_for_tenant(db, principal.tenant_id, source_branch_id)

        rows = db.query(Product, StockRecord.quantity).join(
            StockRecord, StockRecord.product_id == Product.id
        ).filter(
            Product.organization_id == principal.tenant_id,
            Product.is_active == True,
            StockRecord.branch_id == branch.id,
            StockRecord.quantity > 0
        ).order_by(Product.name).all()

        return [
            {"id": str(p.id), "name": p.name, "sku": p.sku, "current_stock": int(qty)}
            for p, qty in rows
        ]

    @staticmethod
    def transfer_history(
        db: Session,
        principal: Principal,
        status: Optional[str] = None,
        page: int = 1,
        per_page: int = 50
    ) -> Tuple[List[Dict], int]:
        """Most recent first; branch-scoped roles only see transfers touching their branch"""
        source = aliased(Branch)
        destination = aliased(Branch)

        query = db.query(StockTransfer, source.name, destination.name, Product, AppUser).join(
            source, StockTransfer.source_branch_id == source.id
        ).join(
            destination, StockTransfer.destination_branch_id == destination.id
        ).join(
            Product, StockTransfer.product_id == Product.id
        ).outerjoin(
            AppUser, StockTransfer.created_by == AppUser.id
        ).filter(
            StockTransfer.organization_id == principal.tenant_id
        )

        if status and status.upper() != "ALL":
            try:
                status_value = TransferStatus(status.upper()).value
            except ValueError:
                raise ValidationError(f"Unknown status: {status}", field="status")
            query = query.filter(StockTransfer.status == status_value)

        if not AccessPolicy.has_all_branches(principal):
            query = query.filter(
                or_(
                    StockTransfer.source_branch_id == principal.branch_id,
                    StockTransfer.destination_branch_id == principal.branch_id
                )
            )

        total = query.count()
        rows = query.order_by(StockTransfer.created_at.desc(), StockTransfer.id)\
            .offset((page - 1) * per_page)\
            .limit(per_page)\
            .all()

        transfers = [
            {
                "id": str(t.id),
                "created_at": t.created_at.isoformat() if t.created_at else None,
                "quantity": t.quantity,
                "status": t.status,
                "notes": t.notes,
                "source_branch": {"id": str(t.source_branch_id), "name": source_name},
                "destination_branch": {"id": str(t.destination_branch_id), "name": destination_name},
                "product": {"id": str(product.id), "name": product.name, "sku": product.sku},
                "requested_by": {
                    "id": str(user.id),
                    "name": user.display_name,
                } if user else None,
                "approved_at": t.approved_at.isoformat() if t.approved_at else None,
                "completed_at": t.completed_at.isoformat() if t.completed_at else None,
            }
            for t, source_name, destination_name, product, user in rows
        ]
        return transfers, total

    @staticmethod
    def api_stock_listing(
        db: Session,
        tenant_id: UUID,
        branch_id: Optional[UUID] = None,
        low_stock: bool = False,
        limit: int = 100,
        offset: int = 0
    ) -> Tuple[List[Dict], int]:
        """Stock rows of the tenant, lowest quantity first"""
        query = db.query(StockRecord, Product, Branch).join(
            Product, StockRecord.product_id == Product.id
        ).join(
            Branch, StockRecord.branch_id == Branch.id
        ).filter(
            Product.organization_id == tenant_id,
            Branch.organization_id == tenant_id
        )

        if branch_id:
            query = query.filter(StockRecord.branch_id == branch_id)

        if low_stock:
            query = query.filter(
                StockRecord.quantity <= func.coalesce(func.nullif(StockRecord.min_quantity, 0), settings.DEFAULT_MIN_QUANTITY)
            )

        total = query.count()
        rows = query.order_by(StockRecord.quantity, Product.name)\
            .offset(offset)\
            .limit(limit)\
            .all()

        inventory = [
            {
                "id": str(record.id),
                "quantity": record.quantity,
                "min_quantity": record.min_quantity,
                "stock_level": classify_stock(record.quantity, record.min_quantity),
                "products": {
                    "id": str(product.id),
                    "name": product.name,
                    "sku": product.sku,
                    "barcode": product.barcode,
                    "selling_price": float(product.selling_price or 0),
                },
                "branches": {"id": str(branch.id), "name": branch.name},
            }
            for record, product, branch in rows
        ]
        return inventory, total
