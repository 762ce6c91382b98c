from .base import TimestampMixin, UUIDMixin
from .master import Organization, Branch, AppUser, Role
from .product import Product
from .stock import StockRecord, StockLedger, MovementType
from .transfer import StockTransfer, TransferStatus, TERMINAL_STATUSES
from .api_key import ApiKey, ApiRequestLog
from .audit import AuditLog

__all__ = [
    # Base
    "TimestampMixin", "UUIDMixin",
    # Master
    "Organization", "Branch", "AppUser", "Role",
    # Product
    "Product",
    # Stock
    "StockRecord", "StockLedger", "MovementType",
    # Transfer
    "StockTransfer", "TransferStatus", "TERMINAL_STATUSES",
    # API credentials
    "ApiKey", "ApiRequestLog",
    # Audit
    "AuditLog",
]
