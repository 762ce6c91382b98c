"""
Transfer Service - branch to branch stock transfer workflow

    PENDING --approve--> APPROVED --complete--> COMPLETED
    PENDING --reject---> REJECTED
    PENDING | APPROVED --cancel--> CANCELLED

Stock only moves on COMPLETED. The stock check at request time is optimistic
and reserves nothing; the source balance is checked again, under lock, when
the transfer completes, and that check is the only protection against two
transfers (or a sale) over-drawing the same branch.
"""
from sqlalchemy.orm import Session
from sqlalchemy import update
from typing import Optional
from uuid import UUID
import logging

from branchstock.core import atomic, run_atomic
from branchstock.core.exceptions import (
    AuthorizationError, InsufficientStockError, InvalidTransitionError, NotFoundError, ValidationError
)
from branchstock.models import StockTransfer, TransferStatus, MovementType, AuditLog
from branchstock.models.base import utcnow
from branchstock.schemas.transfer import TransferCreate
from branchstock.services.access_policy import AccessPolicy, Capability, Principal
from branchstock.services.branch_service import BranchService
from branchstock.services.product_service import ProductService
from branchstock.services.stock_service import StockService

logger = logging.getLogger(__name__)


class TransferService:
    """Transfer lifecycle"""

    # Valid status transitions
    STATUS_TRANSITIONS = {
        TransferStatus.PENDING.value: [
            TransferStatus.APPROVED.value, TransferStatus.REJECTED.value, TransferStatus.CANCELLED.value
        ],
        TransferStatus.APPROVED.value: [TransferStatus.COMPLETED.value, TransferStatus.CANCELLED.value],
        TransferStatus.COMPLETED.value: [],
        TransferStatus.REJECTED.value: [],
        TransferStatus.CANCELLED.value: [],
    }

    @staticmethod
    def validate_request(data: TransferCreate) -> None:
        """Shape checks that need no store access"""
        if data.quantity is None or isinstance(data.quantity, bool) or data.quantity <= 0:
            raise ValidationError("Quantity must be greater than 0", field="quantity")
        if data.source_branch_id == data.destination_branch_id:
            raise ValidationError("Source and destination branch must be different", field="destination_branch_id")
        if data.product_id is None:
            raise ValidationError("product_id is required", field="product_id")

    @staticmethod
    def can_transition(current_status: str, new_status: str) -> bool:
        return new_status in TransferService.STATUS_TRANSITIONS.get(current_status, [])

    @staticmethod
    def get_transfer(db: Session, tenant_id: UUID, transfer_id: UUID, for_update: bool = False) -> StockTransfer:
        query = db.query(StockTransfer).filter(
            StockTransfer.id == transfer_id,
            StockTransfer.organization_id == tenant_id
        )
        if for_update:
            query = query.populate_existing().with_for_update()
        transfer = query.first()
        if not transfer:
            raise NotFoundError("Transfer", transfer_id)
        return transfer

    @staticmethod
    def create_transfer(db: Session, principal: Principal, data: TransferCreate) -> StockTransfer:
        """Record a PENDING transfer request"""
        TransferService.validate_request(data)
        AccessPolicy.require_transfer_source(principal, data.source_branch_id)

        product = ProductService.get_product_for_tenant(db, principal.tenant_id, data.product_id)
        source = BranchService.get_branch_for_tenant(db, principal.tenant_id, data.source_branch_id, active_only=True)
        destination = BranchService.get_branch_for_tenant(
            db, principal.tenant_id, data.destination_branch_id, active_only=True
        )

        # Optimistic: nothing is reserved, completion checks again
        available = StockService.get_or_default(db, product.id, source.id)
        if available < data.quantity:
            logger.warning(
                f"Transfer request rejected, {source.name} has {available} of {product.sku or product.id}, "
                f"requested {data.quantity}"
            )
            raise InsufficientStockError(available=available, requested=data.quantity)

        transfer = StockTransfer(
            organization_id=principal.tenant_id,
            source_branch_id=source.id,
            destination_branch_id=destination.id,
            product_id=product.id,
            quantity=data.quantity,
            status=TransferStatus.PENDING.value,
            notes=data.notes,
            created_by=principal.user_id
        )
        with atomic(db):
            db.add(transfer)
            db.flush()
            db.add(AuditLog(
                organization_id=principal.tenant_id,
                table_name="stock_transfer",
                record_id=str(transfer.id),
                action="INSERT",
                performed_by=principal.user_id,
                after_data={
                    "status": transfer.status,
                    "quantity": transfer.quantity,
                    "source_branch_id": str(source.id),
                    "destination_branch_id": str(destination.id),
                    "product_id": str(product.id),
                }
            ))

        logger.info(
            f"Transfer {transfer.id} requested: {data.quantity} x {product.sku or product.id} "
            f"{source.name} -> {destination.name}"
        )
        return transfer

    @staticmethod
    def _advance(
        db: Session,
        principal: Principal,
        transfer: StockTransfer,
        new_status: TransferStatus,
        **values
    ) -> None:
        """Compare-and-swap the status; fails if anyone moved the transfer first"""
        current_status = transfer.status
        if not TransferService.can_transition(current_status, new_status.value):
            raise InvalidTransitionError(current_status, new_status.value)

        result = db.execute(
            update(StockTransfer)
            .where(StockTransfer.id == transfer.id, StockTransfer.status == current_status)
            .values(status=new_status.value, updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.refresh(transfer)
            raise InvalidTransitionError(transfer.status, new_status.value)

        db.add(AuditLog(
            organization_id=transfer.organization_id,
            table_name="stock_transfer",
            record_id=str(transfer.id),
            action="STATUS_CHANGE",
            performed_by=principal.user_id,
            before_data={"status": current_status},
            after_data={"status": new_status.value}
        ))
        db.flush()

    @staticmethod
    def approve(db: Session, principal: Principal, transfer_id: UUID) -> StockTransfer:
        """Authorize the destination to expect goods; no stock moves"""
        AccessPolicy.require(principal, Capability.APPROVE_TRANSFER)
        with atomic(db):
            transfer = TransferService.get_transfer(db, principal.tenant_id, transfer_id, for_update=True)
            TransferService._advance(
                db, principal, transfer, TransferStatus.APPROVED,
                approved_by=principal.user_id, approved_at=utcnow()
            )
        db.refresh(transfer)
        logger.info(f"Transfer {transfer.id} approved by {principal.user_id}")
        return transfer

    @staticmethod
    def reject(db: Session, principal: Principal, transfer_id: UUID) -> StockTransfer:
        AccessPolicy.require(principal, Capability.APPROVE_TRANSFER)
        with atomic(db):
            transfer = TransferService.get_transfer(db, principal.tenant_id, transfer_id, for_update=True)
            TransferService._advance(
                db, principal, transfer, TransferStatus.REJECTED,
                approved_by=principal.user_id, approved_at=utcnow()
            )
        db.refresh(transfer)
        logger.info(f"Transfer {transfer.id} rejected by {principal.user_id}")
        return transfer

    @staticmethod
    def complete(db: Session, principal: Principal, transfer_id: UUID) -> StockTransfer:
        """
        Destination confirms receipt: debit source, credit destination and
        mark COMPLETED in one transaction. On insufficient source stock
        nothing changes and the transfer stays APPROVED.

        Losing a race against a concurrent completion re-reads the transfer,
        which then fails the status swap with InvalidTransitionError.
        """
        AccessPolicy.require(principal, Capability.COMPLETE_TRANSFER)

        def unit(db: Session) -> StockTransfer:
            transfer = TransferService.get_transfer(db, principal.tenant_id, transfer_id, for_update=True)
            AccessPolicy.require_branch_access(principal, transfer.destination_branch_id)

            TransferService._advance(
                db, principal, transfer, TransferStatus.COMPLETED,
                completed_by=principal.user_id, completed_at=utcnow()
            )

            # Lock both stock rows in a fixed order so opposite transfers cannot deadlock
            StockService.lock_records(
                db, transfer.product_id, [transfer.source_branch_id, transfer.destination_branch_id]
            )
            StockService.adjust(
                db, transfer.product_id, transfer.source_branch_id, -transfer.quantity,
                strict=True,
                movement_type=MovementType.TRANSFER_OUT,
                reference_type="TRANSFER",
                reference_id=str(transfer.id),
                performed_by=principal.user_id
            )
            StockService.adjust(
                db, transfer.product_id, transfer.destination_branch_id, transfer.quantity,
                movement_type=MovementType.TRANSFER_IN,
                reference_type="TRANSFER",
                reference_id=str(transfer.id),
                performed_by=principal.user_id
            )
            return transfer

        try:
            transfer = run_atomic(db, unit)
        except InsufficientStockError:
            logger.warning(f"Transfer {transfer_id} not completed: source stock too low, left as APPROVED")
            raise

        db.refresh(transfer)
        logger.info(
            f"Transfer {transfer.id} completed: moved {transfer.quantity} "
            f"{transfer.source_branch_id} -> {transfer.destination_branch_id}"
        )
        return transfer

    @staticmethod
    def cancel(db: Session, principal: Principal, transfer_id: UUID) -> StockTransfer:
        """
        Requesters may withdraw their own PENDING transfer; approvers may
        cancel any transfer that is not finished.
        """
        with atomic(db):
            transfer = TransferService.get_transfer(db, principal.tenant_id, transfer_id, for_update=True)
            if not AccessPolicy.can(principal, Capability.CANCEL_ANY_TRANSFER):
                if transfer.created_by != principal.user_id:
                    raise AuthorizationError("Only the requester or an approver can cancel this transfer")
                if transfer.status != TransferStatus.PENDING.value:
                    raise AuthorizationError("Approved transfers can only be cancelled by an approver")
            TransferService._advance(db, principal, transfer, TransferStatus.CANCELLED)
        db.refresh(transfer)
        logger.info(f"Transfer {transfer.id} cancelled by {principal.user_id}")
        return transfer

    @staticmethod
    def update_status(db: Session, principal: Principal, transfer_id: UUID, new_status: Optional[str]) -> StockTransfer:
        """Single entry point used by the status endpoint"""
        if not new_status:
            raise ValidationError("Status is required", field="status")
        try:
            target = TransferStatus(new_status.upper())
        except ValueError:
            raise ValidationError(f"Unknown status: {new_status}", field="status")

        handlers = {
            TransferStatus.APPROVED: TransferService.approve,
            TransferStatus.REJECTED: TransferService.reject,
            TransferStatus.COMPLETED: TransferService.complete,
            TransferStatus.CANCELLED: TransferService.cancel,
        }
        handler = handlers.get(target)
        if handler is None:
            transfer = TransferService.get_transfer(db, principal.tenant_id, transfer_id)
            raise InvalidTransitionError(transfer.status, target.value)
        return handler(db, principal, transfer_id)
