"""
Stock Lock Settings Model
"""
from sqlalchemy import Column, Boolean, Integer, Uuid, CheckConstraint

from stockpool.core import Base
from .base import UUIDMixin, TimestampMixin


class StockLockSettings(Base, UUIDMixin, TimestampMixin):
    """Per-organization stock lock configuration"""
    __tablename__ = "stock_lock_settings"
    
    organization_id = Column(Uuid(as_uuid=True), unique=True, nullable=False)
    enabled = Column(Boolean, default=False, nullable=False)
    max_threshold = Column(Integer, default=0, nullable=False)  # cap for auto-distribution and refills
    
    __table_args__ = (
        CheckConstraint("max_threshold >= 0", name="ck_stock_lock_threshold_non_negative"),
    )
