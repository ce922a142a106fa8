"""
Stock Lock Schemas
"""
from pydantic import BaseModel, Field
from typing import Optional, List

class LockPolicy(BaseModel):
    """Immutable lock configuration, fetched once per request and passed into the services"""
    enabled: bool = False
    max_threshold: int = 0

    class Config:
        from_attributes = True
        frozen = True

LOCK_DISABLED = LockPolicy()

class StockLockToggle(BaseModel):
    enabled: bool
    threshold: Optional[int] = Field(None, ge=0)

class StockLockDistribute(BaseModel):
    threshold: int = Field(..., gt=0)

class VariantLockSet(BaseModel):
    design: str
    color: str
    size: str
    lock_amount: int

class LockRefill(BaseModel):
    design: str
    color: str
    size: str
    refill_amount: int

class LockReleaseItem(BaseModel):
    design: str
    color: str
    size: str
    reduce_by: int

class LockReleaseRequest(BaseModel):
    items: List[LockReleaseItem]

class LockDistribution(BaseModel):
    total_locked: int = 0
    variants_locked: int = 0
    total_cleared: int = 0

class StockLockSummary(BaseModel):
    enabled: bool
    max_threshold: int
    total_locked: int
