"""
Domain errors for the stock core.

Each error carries a machine-readable ``code``, the HTTP status the API
answers with, and a ``context`` dict (current stock, requested quantity,
threshold, ...) so callers can render an actionable message.
"""
from typing import Any, Dict


class StockError(Exception):
    """Base class for every error raised by the stock services"""
    code = "STOCK_ERROR"
    status_code = 400

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "context": self.context}


# ===================== INPUT =====================

class InvalidQuantity(StockError):
    code = "INVALID_QUANTITY"


class PermissionDenied(StockError):
    code = "PERMISSION_DENIED"
    status_code = 403


# ===================== STOCK LEVELS =====================

class InsufficientStock(StockError):
    code = "INSUFFICIENT_STOCK"


class InsufficientLockedStock(StockError):
    """Total stock may be fine; the shortfall is in the locked marketplace buffer."""
    code = "INSUFFICIENT_LOCKED_STOCK"


class LockEmptyRefillNeeded(StockError):
    """Locked buffer is empty: caller should prompt a manual lock refill."""
    code = "LOCK_EMPTY_REFILL_NEEDED"
    status_code = 409


class ReservedBorrowRequired(StockError):
    """Main stock is short but the reserved pool can cover it if the caller confirms."""
    code = "RESERVED_BORROW_REQUIRED"
    status_code = 409


# ===================== LOCK POLICY =====================

class InvalidLockAmount(StockError):
    code = "INVALID_LOCK_AMOUNT"


class ThresholdExceeded(StockError):
    code = "THRESHOLD_EXCEEDED"


class StockLockDisabled(StockError):
    code = "STOCK_LOCK_DISABLED"


class SettingsNotFound(StockError):
    code = "SETTINGS_NOT_FOUND"
    status_code = 404


# ===================== LOOKUPS =====================

class ProductNotFound(StockError):
    code = "PRODUCT_NOT_FOUND"
    status_code = 404


class ColorNotFound(StockError):
    code = "COLOR_NOT_FOUND"
    status_code = 404


class SizeNotFound(StockError):
    code = "SIZE_NOT_FOUND"
    status_code = 404


class DuplicateProduct(StockError):
    code = "DUPLICATE_PRODUCT"
    status_code = 409


class SaleNotFound(StockError):
    code = "ORDER_NOT_FOUND"
    status_code = 404


# ===================== ORDER LIFECYCLE =====================

class InvalidStatus(StockError):
    code = "INVALID_STATUS"


class InvalidStatusTransition(InvalidStatus):
    code = "INVALID_STATUS_TRANSITION"


class SameStatus(StockError):
    code = "SAME_STATUS"


# ===================== CONCURRENCY =====================

class ConcurrentUpdate(StockError):
    code = "CONCURRENT_UPDATE"
    status_code = 409
