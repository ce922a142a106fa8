from .common import RequestContext
from .lock import LockPolicy, LOCK_DISABLED
from .stock import TransferItem, TransferRequest, BulkTransferRequest, ProductCreate
from .sale import SaleCreate, SaleUpdate

__all__ = [
    "RequestContext", "LockPolicy", "LOCK_DISABLED",
    "TransferItem", "TransferRequest", "BulkTransferRequest", "ProductCreate",
    "SaleCreate", "SaleUpdate",
]
