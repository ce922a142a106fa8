# Services Package
from .stock_service import StockService
from .transfer_service import TransferService, quick_fill_items
from .lock_service import LockService
from .sale_service import SaleService

__all__ = [
    "StockService",
    "TransferService",
    "LockService",
    "SaleService",
    "quick_fill_items",
]
