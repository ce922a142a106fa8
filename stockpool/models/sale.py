"""
Marketplace Sale Models
"""
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Text, Uuid, Index
from sqlalchemy.orm import relationship
import enum

from stockpool.core import Base
from stockpool.core.exceptions import InvalidStatus
from .base import UUIDMixin, TimestampMixin, utcnow


class SaleStatus(str, enum.Enum):
    DISPATCHED = "dispatched"       # initial
    DELIVERED = "delivered"
    RETURNED = "returned"
    WRONG_RETURN = "wrong_return"
    CANCELLED = "cancelled"


class StockEffect(str, enum.Enum):
    DEDUCTING = "deducting"   # stock has been taken from the variant
    RESTORING = "restoring"   # stock has been given back


DEDUCTING_STATUSES = frozenset({SaleStatus.DISPATCHED, SaleStatus.DELIVERED})
RESTORING_STATUSES = frozenset({SaleStatus.RETURNED, SaleStatus.CANCELLED, SaleStatus.WRONG_RETURN})


def parse_status(value) -> SaleStatus:
    try:
        return SaleStatus(value)
    except ValueError:
        valid = ", ".join(s.value for s in SaleStatus)
        raise InvalidStatus(f"Invalid status. Must be one of: {valid}", status=value, valid=[s.value for s in SaleStatus])


def effect_class(status) -> StockEffect:
    """Whether being in ``status`` means the sale holds stock or has given it back"""
    status = parse_status(status)
    if status in DEDUCTING_STATUSES:
        return StockEffect.DEDUCTING
    return StockEffect.RESTORING


class MarketplaceSale(Base, UUIDMixin, TimestampMixin):
    """Marketplace order line"""
    __tablename__ = "marketplace_sale"
    
    organization_id = Column(Uuid(as_uuid=True), nullable=False)
    account_name = Column(String(100), nullable=False)
    marketplace_order_id = Column(String(100), index=True)
    
    # Variant
    design = Column(String(100), nullable=False)
    color = Column(String(50), nullable=False)
    size = Column(String(20), nullable=False)
    quantity = Column(Integer, nullable=False)
    
    sale_date = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    status = Column(String(20), default=SaleStatus.DISPATCHED.value, nullable=False, index=True)
    notes = Column(Text, default="")
    
    created_by = Column(Uuid(as_uuid=True))
    
    # Relationships
    status_history = relationship(
        "SaleStatusHistory",
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="SaleStatusHistory.sequence",
    )
    
    __table_args__ = (
        Index("ix_marketplace_sale_org_date", organization_id, sale_date),
        Index("ix_marketplace_sale_org_status", organization_id, status),
    )
    
    @property
    def stock_effect(self) -> StockEffect:
        return effect_class(self.status)


class SaleStatusHistory(Base, UUIDMixin):
    """Append-only status log of a marketplace sale"""
    __tablename__ = "sale_status_history"
    
    sale_id = Column(Uuid(as_uuid=True), ForeignKey("marketplace_sale.id"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)
    
    previous_status = Column(String(20))  # null for the creation entry
    new_status = Column(String(20), nullable=False)
    
    changed_by = Column(Uuid(as_uuid=True))
    changed_by_role = Column(String(20))
    changed_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    comments = Column(Text, default="")
    
    # Relationships
    sale = relationship("MarketplaceSale", back_populates="status_history")
