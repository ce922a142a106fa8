"""
Marketplace Sale Schemas
"""
from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime
from uuid import UUID

class SaleCreate(BaseModel):
    account_name: str
    marketplace_order_id: Optional[str] = None
    sale_date: Optional[datetime] = None
    design: str
    color: str
    size: str
    quantity: int
    notes: Optional[str] = None

class SaleUpdate(BaseModel):
    # Any role
    status: Optional[str] = None
    comments: Optional[str] = None
    # Admin only
    account_name: Optional[str] = None
    sale_date: Optional[datetime] = None
    marketplace_order_id: Optional[str] = None
    notes: Optional[str] = None
    design: Optional[str] = None
    color: Optional[str] = None
    size: Optional[str] = None
    quantity: Optional[int] = None

    @property
    def admin_fields(self) -> List[str]:
        return [
            field for field in self.model_fields_set
            if field not in ("status", "comments") and getattr(self, field) is not None
        ]

class BulkDeliveredRequest(BaseModel):
    sale_ids: List[UUID]
    comments: Optional[str] = None

class SaleStatusHistoryResponse(BaseModel):
    sequence: int
    previous_status: Optional[str] = None
    new_status: str
    changed_by: Optional[UUID] = None
    changed_by_role: Optional[str] = None
    changed_at: datetime
    comments: Optional[str] = None

    class Config:
        from_attributes = True

class SaleResponse(BaseModel):
    id: UUID
    account_name: str
    marketplace_order_id: Optional[str] = None
    design: str
    color: str
    size: str
    quantity: int
    sale_date: datetime
    status: str
    notes: Optional[str] = None
    created_by: Optional[UUID] = None
    status_history: List[SaleStatusHistoryResponse] = []

    class Config:
        from_attributes = True

class SaleStockChange(BaseModel):
    stock_restored: int = 0
    stock_deducted: int = 0
