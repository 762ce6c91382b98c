"""
Product Model
"""
from sqlalchemy import Column, String, Numeric, Boolean, ForeignKey, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from branchstock.core import Base
from .base import UUIDMixin, TimestampMixin

class Product(Base, UUIDMixin, TimestampMixin):
    """Product Master"""
    __tablename__ = "product"
    __table_args__ = (
        UniqueConstraint("organization_id", "sku", name="uq_product_org_sku"),
    )
    
    organization_id = Column(UUID(as_uuid=True), ForeignKey("organization.id"), nullable=False, index=True)
    sku = Column(String(100), index=True)
    barcode = Column(String(100), index=True)
    name = Column(String(300), nullable=False)
    description = Column(Text)
    cost_price = Column(Numeric(12, 2), default=0)
    selling_price = Column(Numeric(12, 2), default=0)
    is_active = Column(Boolean, default=True, nullable=False)
    
    # Relationships
    organization = relationship("Organization", back_populates="products")
    stock_records = relationship("StockRecord", back_populates="product")
    stock_ledger = relationship("StockLedger", back_populates="product")
