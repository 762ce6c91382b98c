# Services Package
from .access_policy import AccessPolicy, Capability, Principal
from .branch_service import BranchService
from .product_service import ProductService
from .stock_service import StockService
from .transfer_service import TransferService
from .inventory_view_service import InventoryViewService, classify_stock
from .api_key_service import ApiKeyService, ApiContext

__all__ = [
    "AccessPolicy",
    "Capability",
    "Principal",
    "BranchService",
    "ProductService",
    "StockService",
    "TransferService",
    "InventoryViewService",
    "classify_stock",
    "ApiKeyService",
    "ApiContext",
]
