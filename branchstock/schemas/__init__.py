# Pydantic Schemas Package
from .branch import BranchCreate, BranchUpdate
from .product import ProductCreate, ProductUpdate
from .stock import StockAdjustmentRequest, SaleDeductionRequest, MinQuantityUpdate
from .transfer import TransferCreate, TransferStatusUpdate
from .api_key import ApiKeyCreate, ApiKeyUpdate

__all__ = [
    "BranchCreate", "BranchUpdate",
    "ProductCreate", "ProductUpdate",
    "StockAdjustmentRequest", "SaleDeductionRequest", "MinQuantityUpdate",
    "TransferCreate", "TransferStatusUpdate",
    "ApiKeyCreate", "ApiKeyUpdate",
]
