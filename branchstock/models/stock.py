"""
Stock & Inventory Models
"""
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Text, UniqueConstraint, CheckConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum

from branchstock.core import Base
from .base import UUIDMixin, utcnow


class MovementType(str, enum.Enum):
    IN = "IN"
    OUT = "OUT"
    ADJUST = "ADJUST"
    TRANSFER_IN = "TRANSFER_IN"
    TRANSFER_OUT = "TRANSFER_OUT"


class StockRecord(Base, UUIDMixin):
    """On-hand quantity of one product at one branch"""
    __tablename__ = "product_stock"
    __table_args__ = (
        UniqueConstraint("product_id", "branch_id", name="uq_product_stock_product_branch"),
        CheckConstraint("quantity >= 0", name="ck_product_stock_quantity_non_negative"),
    )
    
    product_id = Column(UUID(as_uuid=True), ForeignKey("product.id"), nullable=False, index=True)
    branch_id = Column(UUID(as_uuid=True), ForeignKey("branch.id"), nullable=False, index=True)
    quantity = Column(Integer, default=0, nullable=False)
    min_quantity = Column(Integer)  # Reorder threshold, policy default applies when NULL
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False)
    
    # Relationships
    product = relationship("Product", back_populates="stock_records")
    branch = relationship("Branch", back_populates="stock_records")

class StockLedger(Base, UUIDMixin):
    """Stock Movement Ledger"""
    __tablename__ = "stock_ledger"
    
    branch_id = Column(UUID(as_uuid=True), ForeignKey("branch.id"), nullable=False, index=True)
    product_id = Column(UUID(as_uuid=True), ForeignKey("product.id"), nullable=False, index=True)
    
    # Movement info
    movement_type = Column(String(20), nullable=False)  # IN, OUT, ADJUST, TRANSFER_IN, TRANSFER_OUT
    quantity = Column(Integer, nullable=False)  # Signed delta actually applied
    balance_after = Column(Integer, nullable=False)
    
    # Reference
    reference_type = Column(String(30))  # ADJUSTMENT, SALE, TRANSFER, API
    reference_id = Column(String(50))  # ID of related record
    
    # Metadata
    note = Column(Text)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    created_by = Column(UUID(as_uuid=True), ForeignKey("app_user.id"))
    
    # Relationships
    branch = relationship("Branch")
    product = relationship("Product", back_populates="stock_ledger")
