"""
Stock Service - per-branch on-hand quantities

Functions here flush but never commit; the caller wraps them in ``atomic``
so that a multi-row change (a transfer completion, for example) is applied
all at once or not at all.
"""
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from sqlalchemy import update
from typing import Iterable, List, Optional
from uuid import UUID
import logging

from branchstock.core import atomic, run_atomic
from branchstock.core.exceptions import ValidationError, InsufficientStockError, ConflictError
from branchstock.models import StockRecord, StockLedger, MovementType, AuditLog
from branchstock.models.base import utcnow
from branchstock.services.access_policy import AccessPolicy, Capability, Principal
from branchstock.services.branch_service import BranchService
from branchstock.services.product_service import ProductService

logger = logging.getLogger(__name__)

# Quantity reported for a (product, branch) pair that has no record yet
DEFAULT_QUANTITY = 0

ADJUSTMENT_TYPES = ("add", "subtract", "set")

# Optimistic retries when another writer changed the row between read and write
MAX_WRITE_ATTEMPTS = 3


class StockService:
    """Stock record store and adjustment logic"""

    @staticmethod
    def get_record(db: Session, product_id: UUID, branch_id: UUID) -> Optional[StockRecord]:
        """Get the stock record for a product at a branch, None if never stocked"""
        return db.query(StockRecord).filter(
            StockRecord.product_id == product_id,
            StockRecord.branch_id == branch_id
        ).first()

    @staticmethod
    def get_or_default(db: Session, product_id: UUID, branch_id: UUID, default: int = DEFAULT_QUANTITY) -> int:
        """On-hand quantity, or ``default`` (0) when the branch never held the product"""
        quantity = db.query(StockRecord.quantity).filter(
            StockRecord.product_id == product_id,
            StockRecord.branch_id == branch_id
        ).scalar()
        return default if quantity is None else int(quantity)

    @staticmethod
    def _lock_record(db: Session, product_id: UUID, branch_id: UUID) -> StockRecord:
        """Load the record FOR UPDATE, creating an empty one on first use"""
        query = db.query(StockRecord).filter(
            StockRecord.product_id == product_id,
            StockRecord.branch_id == branch_id
        ).populate_existing().with_for_update()

        record = query.first()
        if record is not None:
            return record

        try:
            with db.begin_nested():
                db.add(StockRecord(product_id=product_id, branch_id=branch_id, quantity=0))
        except IntegrityError:
            # Another request created the row first
            logger.info(f"Stock record for {product_id}@{branch_id} created concurrently, reloading")

        record = query.first()
        if record is None:
            raise ConflictError("Stock record could not be created, please retry")
        return record

    @staticmethod
    def lock_records(db: Session, product_id: UUID, branch_ids: Iterable[UUID]) -> List[StockRecord]:
        """Lock several branch records of one product, always in branch id order"""
        return [
            StockService._lock_record(db, product_id, branch_id)
            for branch_id in sorted(set(branch_ids), key=str)
        ]

    @staticmethod
    def _write(
        db: Session,
        product_id: UUID,
        branch_id: UUID,
        target,
        strict: bool,
        movement_type: Optional[MovementType],
        reference_type: str,
        reference_id: Optional[str],
        note: Optional[str],
        performed_by: Optional[UUID]
    ) -> StockRecord:
        """Lock, compute the new balance from the locked one, compare-and-swap, journal"""
        for attempt in range(MAX_WRITE_ATTEMPTS):
            record = StockService._lock_record(db, product_id, branch_id)
            before = record.quantity or 0
            after = target(before)

            if after < 0:
                if strict:
                    logger.warning(
                        f"Insufficient stock for {product_id}@{branch_id}: available {before}, requested {before - after}"
                    )
                    raise InsufficientStockError(available=before, requested=before - after)
                after = 0

            if after == before:
                return record

            result = db.execute(
                update(StockRecord)
                .where(StockRecord.id == record.id, StockRecord.quantity == before)
                .values(quantity=after, updated_at=utcnow())
            )
            if result.rowcount == 1:
                break
            logger.info(f"Stock record {record.id} changed concurrently, retry {attempt + 1}")
        else:
            raise ConflictError("Stock changed concurrently, please retry")

        applied = after - before
        if movement_type is None:
            movement_type = MovementType.IN if applied > 0 else MovementType.OUT

        db.add(StockLedger(
            product_id=product_id,
            branch_id=branch_id,
            movement_type=movement_type.value,
            quantity=applied,
            balance_after=after,
            reference_type=reference_type,
            reference_id=reference_id,
            note=note,
            created_by=performed_by
        ))
        db.flush()
        db.refresh(record)
        return record

    @staticmethod
    def adjust(
        db: Session,
        product_id: UUID,
        branch_id: UUID,
        delta: int,
        strict: bool = False,
        movement_type: Optional[MovementType] = None,
        reference_type: str = "ADJUSTMENT",
        reference_id: Optional[str] = None,
        note: Optional[str] = None,
        performed_by: Optional[UUID] = None
    ) -> StockRecord:
        """
        Apply a signed quantity change to one (product, branch) record.

        A negative delta larger than the balance is clamped to zero, unless
        ``strict`` is set, in which case InsufficientStockError is raised and
        nothing changes.
        """
        if not isinstance(delta, int) or isinstance(delta, bool):
            raise ValidationError("Quantity change must be an integer", field="quantity")
        return StockService._write(
            db, product_id, branch_id, lambda before: before + delta,
            strict, movement_type, reference_type, reference_id, note, performed_by
        )

    @staticmethod
    def set_quantity(
        db: Session,
        product_id: UUID,
        branch_id: UUID,
        new_quantity: int,
        movement_type: Optional[MovementType] = MovementType.ADJUST,
        reference_type: str = "ADJUSTMENT",
        reference_id: Optional[str] = None,
        note: Optional[str] = None,
        performed_by: Optional[UUID] = None
    ) -> StockRecord:
        """Overwrite the on-hand quantity, journaled as an ADJUST movement"""
        if not isinstance(new_quantity, int) or isinstance(new_quantity, bool) or new_quantity < 0:
            raise ValidationError("Quantity must be a non-negative integer", field="quantity")
        return StockService._write(
            db, product_id, branch_id, lambda before: new_quantity,
            False, movement_type, reference_type, reference_id, note, performed_by
        )

    @staticmethod
    def apply_adjustment(
        db: Session,
        product_id: UUID,
        branch_id: UUID,
        adjustment_type: str,
        quantity: int,
        strict: bool = False,
        **kwargs
    ) -> StockRecord:
        """
        add / subtract take a non-negative magnitude, set takes the new absolute value.
        """
        adjustment_type = (adjustment_type or "set").lower()
        if adjustment_type not in ADJUSTMENT_TYPES:
            raise ValidationError(
                f"adjustment_type must be one of {', '.join(ADJUSTMENT_TYPES)}", field="adjustment_type"
            )
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 0:
            raise ValidationError("Quantity must be a non-negative integer", field="quantity")

        if adjustment_type == "add":
            return StockService.adjust(db, product_id, branch_id, quantity, movement_type=MovementType.IN, **kwargs)
        if adjustment_type == "subtract":
            return StockService.adjust(
                db, product_id, branch_id, -quantity, strict=strict, movement_type=MovementType.OUT, **kwargs
            )
        return StockService.set_quantity(db, product_id, branch_id, quantity, **kwargs)

    @staticmethod
    def set_min_quantity(db: Session, product_id: UUID, branch_id: UUID, min_quantity: Optional[int]) -> StockRecord:
        """Set (or clear with None) the reorder threshold"""
        if min_quantity is not None and (not isinstance(min_quantity, int) or min_quantity < 0):
            raise ValidationError("min_quantity must be a non-negative integer", field="min_quantity")
        record = StockService._lock_record(db, product_id, branch_id)
        record.min_quantity = min_quantity
        db.flush()
        return record

    # ===================== Tenant-scoped commands =====================

    @staticmethod
    def record_adjustment(
        db: Session,
        tenant_id: UUID,
        product_id: UUID,
        branch_id: UUID,
        adjustment_type: str,
        quantity: int,
        performed_by: Optional[UUID] = None,
        reference_type: str = "ADJUSTMENT",
        strict: bool = False,
        note: Optional[str] = None
    ) -> StockRecord:
        """Validate tenant ownership, apply one adjustment and commit it with an audit row"""
        product = ProductService.get_product_for_tenant(db, tenant_id, product_id)
        branch = BranchService.get_branch_for_tenant(db, tenant_id, branch_id)

        def unit(db: Session):
            before = StockService.get_or_default(db, product.id, branch.id)
            record = StockService.apply_adjustment(
                db, product.id, branch.id, adjustment_type, quantity,
                strict=strict,
                reference_type=reference_type,
                note=note,
                performed_by=performed_by
            )
            db.add(AuditLog(
                organization_id=tenant_id,
                table_name="product_stock",
                record_id=str(record.id),
                action="ADJUST",
                performed_by=performed_by,
                before_data={"quantity": before},
                after_data={"quantity": record.quantity, "adjustment_type": adjustment_type, "amount": quantity}
            ))
            return before, record

        before, record = run_atomic(db, unit)

        logger.info(
            f"Stock {adjustment_type} {quantity} for {product.sku or product.id} at {branch.name}: {before} -> {record.quantity}"
        )
        return record

    @staticmethod
    def adjust_for_principal(
        db: Session,
        principal: Principal,
        product_id: UUID,
        branch_id: UUID,
        adjustment_type: str,
        quantity: int,
        note: Optional[str] = None
    ) -> StockRecord:
        """Manual correction / receiving from the back-office"""
        AccessPolicy.require(principal, Capability.ADJUST_STOCK)
        AccessPolicy.require_branch_access(principal, branch_id)
        return StockService.record_adjustment(
            db, principal.tenant_id, product_id, branch_id, adjustment_type, quantity,
            performed_by=principal.user_id, note=note
        )

    @staticmethod
    def deduct_for_sale(
        db: Session,
        principal: Principal,
        product_id: UUID,
        branch_id: UUID,
        quantity: int,
        reference_id: Optional[str] = None
    ) -> StockRecord:
        """Point-of-sale deduction; a sale can never take more than the branch holds"""
        AccessPolicy.require_branch_access(principal, branch_id)
        if not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError("Quantity must be greater than 0", field="quantity")

        product = ProductService.get_product_for_tenant(db, principal.tenant_id, product_id)
        branch = BranchService.get_branch_for_tenant(db, principal.tenant_id, branch_id)
        # Re-run on a write conflict so a losing sale sees the balance the winner left
        record = run_atomic(db, lambda db: StockService.adjust(
            db, product.id, branch.id, -quantity,
            strict=True,
            movement_type=MovementType.OUT,
            reference_type="SALE",
            reference_id=reference_id,
            performed_by=principal.user_id
        ))
        logger.info(f"Sale deducted {quantity} x {product.sku or product.id} at {branch.name}, left {record.quantity}")
        return record

    @staticmethod
    def update_min_quantity(
        db: Session,
        principal: Principal,
        product_id: UUID,
        branch_id: UUID,
        min_quantity: Optional[int]
    ) -> StockRecord:
        AccessPolicy.require(principal, Capability.ADJUST_STOCK)
        AccessPolicy.require_branch_access(principal, branch_id)
        product = ProductService.get_product_for_tenant(db, principal.tenant_id, product_id)
        branch = BranchService.get_branch_for_tenant(db, principal.tenant_id, branch_id)
        with atomic(db):
            record = StockService.set_min_quantity(db, product.id, branch.id, min_quantity)
        return record
