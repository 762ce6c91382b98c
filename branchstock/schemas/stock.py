"""
Stock Schemas
"""
from pydantic import BaseModel
from typing import Optional
from uuid import UUID

class StockAdjustmentRequest(BaseModel):
    product_id: UUID
    branch_id: UUID
    quantity: int
    adjustment_type: str = "set"  # add, subtract, set
    note: Optional[str] = None

class SaleDeductionRequest(BaseModel):
    product_id: UUID
    branch_id: UUID
    quantity: int
    reference_id: Optional[str] = None

class MinQuantityUpdate(BaseModel):
    product_id: UUID
    branch_id: UUID
    min_quantity: Optional[int] = None
