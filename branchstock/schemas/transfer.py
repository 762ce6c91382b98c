"""
Stock Transfer Schemas
"""
from pydantic import BaseModel
from typing import Optional
from uuid import UUID

class TransferCreate(BaseModel):
    source_branch_id: UUID
    destination_branch_id: UUID
    product_id: UUID
    quantity: int
    notes: Optional[str] = None

class TransferStatusUpdate(BaseModel):
    status: str
