"""
Product & Variant Stock Models

A variant is one (design, color, size) combination and is the smallest
stock-tracked unit. Each variant row holds three pools:

- current_stock: main pool, usable by any channel
- reserved_stock: set aside for marketplace fulfillment
- locked_stock: subset of current_stock pre-committed to marketplace dispatch

Invariants: every pool >= 0 and locked_stock <= current_stock.
"""
from sqlalchemy import (
    Column, String, Integer, Text, Uuid, ForeignKey,
    UniqueConstraint, CheckConstraint,
)
from sqlalchemy.orm import relationship
from typing import Dict, List, Tuple

from stockpool.core import Base
from stockpool.core.exceptions import (
    InvalidQuantity, InsufficientStock, InsufficientLockedStock, InvalidLockAmount,
)
from .base import UUIDMixin, TimestampMixin
from .stock import StockPool

SIZE_ORDER = ["S", "M", "L", "XL", "XXL"]

def check_quantity(quantity) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidQuantity("Quantity must be greater than 0", quantity=quantity)


class Product(Base, UUIDMixin, TimestampMixin):
    """Product (design) master"""
    __tablename__ = "product"

    organization_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    design = Column(String(100), nullable=False)
    description = Column(Text)

    # Relationships
    variants = relationship(
        "VariantStock",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="VariantStock.position",
    )

    __table_args__ = (
        UniqueConstraint(organization_id, design, name="uq_product_org_design"),
    )

    @property
    def colors(self) -> List[str]:
        seen = []
        for variant in self.variants:
            if variant.color not in seen:
                seen.append(variant.color)
        return seen


class VariantStock(Base, UUIDMixin, TimestampMixin):
    """Stock levels of one design x color x size"""
    __tablename__ = "variant_stock"

    organization_id = Column(Uuid(as_uuid=True), nullable=False)
    product_id = Column(Uuid(as_uuid=True), ForeignKey("product.id"), nullable=False, index=True)

    # Variant key (denormalized from product for row-level locking)
    design = Column(String(100), nullable=False)
    color = Column(String(50), nullable=False)
    size = Column(String(20), nullable=False)
    position = Column(Integer, default=0, nullable=False)  # order within the product

    # Pools
    current_stock = Column(Integer, default=0, nullable=False)
    reserved_stock = Column(Integer, default=0, nullable=False)
    locked_stock = Column(Integer, default=0, nullable=False)
    reorder_point = Column(Integer, default=20, nullable=False)  # advisory only

    # Optimistic concurrency counter
    version = Column(Integer, nullable=False)

    # Relationships
    product = relationship("Product", back_populates="variants")

    __table_args__ = (
        UniqueConstraint(organization_id, design, color, size, name="uq_variant_stock_key"),
        CheckConstraint("current_stock >= 0", name="ck_variant_current_non_negative"),
        CheckConstraint("reserved_stock >= 0", name="ck_variant_reserved_non_negative"),
        CheckConstraint("locked_stock >= 0", name="ck_variant_locked_non_negative"),
        CheckConstraint("locked_stock <= current_stock", name="ck_variant_locked_within_current"),
    )
    __mapper_args__ = {"version_id_col": version}

    @property
    def label(self) -> str:
        return f"{self.design}-{self.color}-{self.size}"

    def key_dict(self) -> Dict[str, str]:
        return {"design": self.design, "color": self.color, "size": self.size}

    def snapshot(self) -> Tuple[int, int]:
        """(main, reserved) pair recorded on ledger entries"""
        return self.current_stock, self.reserved_stock

    def available(self, pool: StockPool) -> int:
        pool = StockPool(pool)
        if pool == StockPool.MAIN:
            return self.current_stock
        if pool == StockPool.RESERVED:
            return self.reserved_stock
        if pool == StockPool.LOCKED:
            return self.locked_stock
        raise ValueError(f"Pool {pool.value} holds no stock")

    def available_for_general_sale(self, lock_enabled: bool) -> int:
        """Main stock a wholesale/direct sale may take without touching the lock buffer"""
        if lock_enabled:
            return max(0, self.current_stock - self.locked_stock)
        return self.current_stock

    def deduct(self, pool: StockPool, quantity: int, consume_lock: bool = False) -> None:
        """
        Take ``quantity`` units out of ``pool``.

        Deducting from LOCKED removes the units from both locked and main
        stock. For MAIN with ``consume_lock`` the units are taken out of the
        locked buffer first.
        """
        check_quantity(quantity)
        pool = StockPool(pool)
        available = self.available(pool)
        if available < quantity:
            error_cls = InsufficientLockedStock if pool == StockPool.LOCKED else InsufficientStock
            raise error_cls(
                f"Insufficient {pool.value} stock for {self.label}. "
                f"Available: {available}, Requested: {quantity}",
                pool=pool.value,
                available=available,
                requested=quantity,
                **self.key_dict(),
            )

        if pool == StockPool.MAIN:
            self.current_stock -= quantity
            if consume_lock:
                self.locked_stock -= min(self.locked_stock, quantity)
        elif pool == StockPool.RESERVED:
            self.reserved_stock -= quantity
        else:
            self.locked_stock -= quantity
            self.current_stock -= quantity

        # Locked is a subset of main
        if self.locked_stock > self.current_stock:
            self.locked_stock = self.current_stock

    def credit(self, pool: StockPool, quantity: int) -> None:
        """Add ``quantity`` units to ``pool``; crediting LOCKED grows main stock too"""
        check_quantity(quantity)
        pool = StockPool(pool)
        if pool == StockPool.MAIN:
            self.current_stock += quantity
        elif pool == StockPool.RESERVED:
            self.reserved_stock += quantity
        elif pool == StockPool.LOCKED:
            self.locked_stock += quantity
            self.current_stock += quantity
        else:
            raise ValueError(f"Cannot credit pool {pool.value}")

    def set_lock(self, quantity: int) -> None:
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0 or quantity > self.current_stock:
            raise InvalidLockAmount(
                f"Lock amount must be between 0 and {self.current_stock}",
                requested=quantity,
                current_stock=self.current_stock,
                **self.key_dict(),
            )
        self.locked_stock = quantity
