"""
Stock Schemas
"""
from pydantic import BaseModel
from typing import Optional, List, Literal
from datetime import datetime
from uuid import UUID

class TransferItem(BaseModel):
    design: str
    color: str
    size: str
    quantity: int

class TransferRequest(TransferItem):
    notes: Optional[str] = None

class BulkTransferRequest(BaseModel):
    transfers: List[TransferItem]
    notes: Optional[str] = None

class TransferResponse(BaseModel):
    id: UUID
    transfer_type: str
    design: str
    color: str
    size: str
    quantity: int
    from_pool: str
    to_pool: str
    main_stock_before: int
    main_stock_after: int
    reserved_stock_before: int
    reserved_stock_after: int
    related_order_id: Optional[str] = None
    related_order_type: Optional[str] = None
    performed_by: Optional[UUID] = None
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True

class VariantStockResponse(BaseModel):
    design: str
    color: str
    size: str
    current_stock: int
    reserved_stock: int
    locked_stock: int
    reorder_point: int
    available_stock: Optional[int] = None

    class Config:
        from_attributes = True

class SizeCreate(BaseModel):
    size: str
    current_stock: int = 0
    reorder_point: Optional[int] = None

class ColorCreate(BaseModel):
    color: str
    sizes: List[SizeCreate] = []

class ProductCreate(BaseModel):
    design: str
    description: Optional[str] = None
    colors: List[ColorCreate]

class ProductResponse(BaseModel):
    id: UUID
    design: str
    description: Optional[str] = None
    variants: List[VariantStockResponse] = []

    class Config:
        from_attributes = True

class ReceiveStockRequest(TransferItem):
    notes: Optional[str] = None

class ChannelSaleRequest(BaseModel):
    channel: Literal["wholesale", "direct"] = "wholesale"
    reference: Optional[str] = None
    items: List[TransferItem]
    borrow_from_reserved: bool = False

class ChannelSaleLine(BaseModel):
    design: str
    color: str
    size: str
    quantity: int
    from_main: int
    borrowed_from_reserved: int
