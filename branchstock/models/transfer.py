"""
Stock Transfer Model - branch to branch movement requests
"""
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Text, CheckConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
import enum

from branchstock.core import Base
from .base import UUIDMixin, TimestampMixin


class TransferStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


TERMINAL_STATUSES = (TransferStatus.COMPLETED, TransferStatus.REJECTED, TransferStatus.CANCELLED)


class StockTransfer(Base, UUIDMixin, TimestampMixin):
    """Requested movement of a fixed quantity of one product between two branches"""
    __tablename__ = "stock_transfer"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_stock_transfer_quantity_positive"),
        CheckConstraint("source_branch_id <> destination_branch_id", name="ck_stock_transfer_distinct_branches"),
        CheckConstraint(
            "status IN ('PENDING', 'APPROVED', 'COMPLETED', 'REJECTED', 'CANCELLED')",
            name="ck_stock_transfer_status",
        ),
    )
    
    organization_id = Column(UUID(as_uuid=True), ForeignKey("organization.id"), nullable=False, index=True)
    source_branch_id = Column(UUID(as_uuid=True), ForeignKey("branch.id"), nullable=False, index=True)
    destination_branch_id = Column(UUID(as_uuid=True), ForeignKey("branch.id"), nullable=False, index=True)
    product_id = Column(UUID(as_uuid=True), ForeignKey("product.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    status = Column(String(20), default=TransferStatus.PENDING.value, nullable=False, index=True)
    notes = Column(Text)
    
    # Workflow actors
    created_by = Column(UUID(as_uuid=True), ForeignKey("app_user.id"))
    approved_by = Column(UUID(as_uuid=True), ForeignKey("app_user.id"))
    approved_at = Column(DateTime(timezone=True))
    completed_by = Column(UUID(as_uuid=True), ForeignKey("app_user.id"))
    completed_at = Column(DateTime(timezone=True))
    
    # Relationships
    source_branch = relationship("Branch", foreign_keys=[source_branch_id])
    destination_branch = relationship("Branch", foreign_keys=[destination_branch_id])
    product = relationship("Product")
    requester = relationship("AppUser", foreign_keys=[created_by])

    def __repr__(self):
        return f"<StockTransfer {self.id} {self.quantity} {self.status}>"

    @property
    def is_terminal(self) -> bool:
        return self.status in {s.value for s in TERMINAL_STATUSES}
