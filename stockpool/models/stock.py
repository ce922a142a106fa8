"""
Stock Transfer Ledger Model

Append-only: one row per committed pool movement, never updated afterwards.
"""
from sqlalchemy import Column, String, Integer, DateTime, Text, Uuid, Index, func
import enum

from stockpool.core import Base
from .base import UUIDMixin, utcnow


class StockPool(str, enum.Enum):
    MAIN = "main"           # currentStock
    RESERVED = "reserved"   # reservedStock
    LOCKED = "locked"       # lockedStock (subset of main)
    SOLD = "sold"           # ledger sink only


class TransferType(str, enum.Enum):
    MANUAL_REFILL = "manual_refill"         # main -> reserved
    MANUAL_RETURN = "manual_return"         # reserved -> main
    MARKETPLACE_ORDER = "marketplace_order" # locked or main -> sold, one per marketplace sale
    EMERGENCY_USE = "emergency_use"         # legacy, kept readable for old ledger rows; nothing writes it
    EMERGENCY_BORROW = "emergency_borrow"   # reserved -> main (wholesale/direct shortfall)


class RelatedOrderType(str, enum.Enum):
    MARKETPLACE = "marketplace"
    WHOLESALE = "wholesale"
    DIRECT = "direct"


class StockTransfer(Base, UUIDMixin):
    """Stock Transfer Ledger Entry"""
    __tablename__ = "stock_transfer"
    
    organization_id = Column(Uuid(as_uuid=True), nullable=False)
    
    # Variant
    design = Column(String(100), nullable=False)
    color = Column(String(50), nullable=False)
    size = Column(String(20), nullable=False)
    
    # Movement
    transfer_type = Column(String(30), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    from_pool = Column(String(20), nullable=False)
    to_pool = Column(String(20), nullable=False)
    
    # Snapshots
    main_stock_before = Column(Integer, nullable=False, default=0)
    main_stock_after = Column(Integer, nullable=False, default=0)
    reserved_stock_before = Column(Integer, nullable=False, default=0)
    reserved_stock_after = Column(Integer, nullable=False, default=0)
    
    # Reference
    related_order_id = Column(String(100))
    related_order_type = Column(String(20))  # marketplace, wholesale, direct
    
    # Metadata
    performed_by = Column(Uuid(as_uuid=True))
    notes = Column(Text)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    
    __table_args__ = (
        Index("ix_stock_transfer_org_created", organization_id, created_at),
        Index("ix_stock_transfer_variant", design, color, size),
    )
