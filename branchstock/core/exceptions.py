"""
Typed errors for the inventory ledger and transfer workflow.

Every error carries a machine-readable ``code`` and the HTTP status the API
layer answers with. Services raise these; ``main.py`` registers the handlers
that turn them into JSON responses.

    BranchStockError
    +-- ValidationError          400
    +-- AuthenticationError      401
    +-- AuthorizationError       403
    +-- NotFoundError            404
    +-- ConflictError            409
    |   +-- InsufficientStockError
    |   +-- InvalidTransitionError
    |   +-- WriteConflictError
    +-- StoreUnavailableError    503
"""
from typing import Optional


class BranchStockError(Exception):
    """Base class for all service errors"""

    code: str = "BRANCHSTOCK_ERROR"
    status_code: int = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code}


class ValidationError(BranchStockError):
    """Malformed input rejected before touching the store"""

    code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.field:
            data["field"] = self.field
        return data


class AuthenticationError(BranchStockError):
    code = "NOT_AUTHENTICATED"
    status_code = 401


class AuthorizationError(BranchStockError):
    """Principal lacks the capability or branch scope for the action"""

    code = "FORBIDDEN"
    status_code = 403


class NotFoundError(BranchStockError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity: str, entity_id):
        self.entity = entity
        self.entity_id = str(entity_id)
        super().__init__(f"{entity} not found: {entity_id}")


class ConflictError(BranchStockError):
    code = "CONFLICT"
    status_code = 409


class InsufficientStockError(ConflictError):
    code = "INSUFFICIENT_STOCK"

    def __init__(self, available: int, requested: int):
        self.available = available
        self.requested = requested
        super().__init__(f"insufficient stock: available {available}, requested {requested}")

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["available"] = self.available
        data["requested"] = self.requested
        return data


class InvalidTransitionError(ConflictError):
    code = "INVALID_TRANSITION"

    def __init__(self, current_status: str, target_status: str):
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(f"Cannot transition from {current_status} to {target_status}")


class WriteConflictError(ConflictError):
    """Another transaction wrote the same rows first; the unit was rolled back"""

    code = "WRITE_CONFLICT"


class StoreUnavailableError(BranchStockError):
    """Connectivity or timeout talking to the database; safe to retry"""

    code = "STORE_UNAVAILABLE"
    status_code = 503
