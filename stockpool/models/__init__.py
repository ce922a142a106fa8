from .base import TimestampMixin, UUIDMixin
from .product import Product, VariantStock, SIZE_ORDER
from .stock import StockTransfer, StockPool, TransferType, RelatedOrderType
from .sale import (
    MarketplaceSale, SaleStatusHistory, SaleStatus, StockEffect,
    DEDUCTING_STATUSES, RESTORING_STATUSES, effect_class, parse_status,
)
from .settings import StockLockSettings

__all__ = [
    # Base
    "TimestampMixin", "UUIDMixin",
    # Product
    "Product", "VariantStock", "SIZE_ORDER",
    # Stock ledger
    "StockTransfer", "StockPool", "TransferType", "RelatedOrderType",
    # Sales
    "MarketplaceSale", "SaleStatusHistory", "SaleStatus", "StockEffect",
    "DEDUCTING_STATUSES", "RESTORING_STATUSES", "effect_class", "parse_status",
    # Settings
    "StockLockSettings",
]
