"""
Stock Service - Variant lookup, locking, ledger and inventory operations
"""
import logging
from sqlalchemy.orm import Session
from sqlalchemy import and_, or_
from typing import Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from stockpool.core import atomic, settings
from stockpool.core.database import retry_on_conflict
from stockpool.core.exceptions import (
    StockError, ProductNotFound, ColorNotFound, SizeNotFound, DuplicateProduct,
    InsufficientStock, ReservedBorrowRequired, InvalidQuantity,
)
from stockpool.models import Product, VariantStock, StockTransfer, StockPool, TransferType, RelatedOrderType, SIZE_ORDER
from stockpool.models.product import check_quantity
from stockpool.schemas.common import RequestContext
from stockpool.schemas.lock import LockPolicy
from stockpool.schemas.stock import ProductCreate, TransferItem, ChannelSaleLine

logger = logging.getLogger(__name__)

VariantKey = Tuple[str, str, str]

# Canonical row-lock order for variant rows
VARIANT_LOCK_ORDER = (VariantStock.design, VariantStock.color, VariantStock.size)


class StockService:
    """Variant stock lookups and inventory business logic"""

    # ===================== LOOKUPS =====================

    @staticmethod
    def _variant_query(db: Session, organization_id: UUID, design: str, color: str, size: str):
        return db.query(VariantStock).filter(
            VariantStock.organization_id == organization_id,
            VariantStock.design == design,
            VariantStock.color == color,
            VariantStock.size == size,
        )

    @staticmethod
    def find_variant(
        db: Session,
        organization_id: UUID,
        design: str,
        color: str,
        size: str,
        for_update: bool = False
    ) -> Optional[VariantStock]:
        query = StockService._variant_query(db, organization_id, design, color, size)
        if for_update:
            query = query.with_for_update()
        return query.first()

    @staticmethod
    def _raise_missing(db: Session, organization_id: UUID, design: str, color: str, size: str, **context) -> None:
        """Report which part of a (design, color, size) key does not exist"""
        product = db.query(Product).filter(
            Product.organization_id == organization_id,
            Product.design == design
        ).first()
        if not product:
            raise ProductNotFound(f"Product {design} not found", design=design, **context)

        has_color = db.query(VariantStock.id).filter(
            VariantStock.product_id == product.id,
            VariantStock.color == color
        ).first()
        if not has_color:
            raise ColorNotFound(f"Color {color} not found for {design}", design=design, color=color, **context)

        raise SizeNotFound(
            f"Size {size} not found for {design} {color}",
            design=design, color=color, size=size, **context
        )

    @staticmethod
    def lock_variant(db: Session, organization_id: UUID, design: str, color: str, size: str) -> VariantStock:
        """Load a variant row for update (row lock where the database supports it)"""
        variant = StockService.find_variant(db, organization_id, design, color, size, for_update=True)
        if not variant:
            StockService._raise_missing(db, organization_id, design, color, size)
        return variant

    @staticmethod
    def lock_variants(db: Session, organization_id: UUID, keys: Sequence[VariantKey]) -> Dict[VariantKey, VariantStock]:
        """
        Lock every distinct variant in ``keys`` with one ordered query.

        Rows are locked in VARIANT_LOCK_ORDER, like every other multi-row
        variant lock. Lookup errors carry the index of the first item that
        referenced the missing variant.
        """
        keys = [tuple(k) for k in keys]
        if not keys:
            return {}

        rows = db.query(VariantStock).filter(
            VariantStock.organization_id == organization_id,
            or_(*[
                and_(VariantStock.design == design, VariantStock.color == color, VariantStock.size == size)
                for design, color, size in set(keys)
            ])
        ).order_by(*VARIANT_LOCK_ORDER).with_for_update().all()

        variants = {(v.design, v.color, v.size): v for v in rows}
        for index, key in enumerate(keys):
            if key not in variants:
                StockService._raise_missing(db, organization_id, *key, item_index=index)
        return variants

    # ===================== LEDGER =====================

    @staticmethod
    def record_transfer(
        db: Session,
        ctx: RequestContext,
        variant: VariantStock,
        transfer_type: TransferType,
        quantity: int,
        from_pool: StockPool,
        to_pool: StockPool,
        before: Tuple[int, int],
        notes: Optional[str] = None,
        related_order_id: Optional[str] = None,
        related_order_type: Optional[str] = None
    ) -> StockTransfer:
        """Append a ledger entry for a movement already applied to ``variant``"""
        main_before, reserved_before = before
        main_after, reserved_after = variant.snapshot()
        transfer = StockTransfer(
            organization_id=ctx.organization_id,
            design=variant.design,
            color=variant.color,
            size=variant.size,
            transfer_type=TransferType(transfer_type).value,
            quantity=quantity,
            from_pool=StockPool(from_pool).value,
            to_pool=StockPool(to_pool).value,
            main_stock_before=main_before,
            main_stock_after=main_after,
            reserved_stock_before=reserved_before,
            reserved_stock_after=reserved_after,
            related_order_id=related_order_id,
            related_order_type=related_order_type,
            performed_by=ctx.user_id,
            notes=notes
        )
        db.add(transfer)
        return transfer

    # ===================== PRODUCTS =====================

    @staticmethod
    def create_product(db: Session, ctx: RequestContext, data: ProductCreate) -> Product:
        """Create a design with its color/size variants; colors without sizes get the default size run"""
        design = data.design.strip()
        if not design:
            raise InvalidQuantity("Design name is required")
        if not data.colors:
            raise InvalidQuantity("Colors array is required and must contain at least one color", design=design)

        with atomic(db):
            existing = db.query(Product.id).filter(
                Product.organization_id == ctx.organization_id,
                Product.design == design
            ).first()
            if existing:
                raise DuplicateProduct(f"Product {design} already exists", design=design)

            product = Product(organization_id=ctx.organization_id, design=design, description=data.description)
            position = 0
            for color in data.colors:
                sizes = color.sizes or []
                size_specs = [(s.size, s.current_stock, s.reorder_point) for s in sizes]
                if not size_specs:
                    size_specs = [(size, 0, None) for size in SIZE_ORDER]
                for size, current_stock, reorder_point in size_specs:
                    if current_stock < 0:
                        raise InvalidQuantity("Opening stock cannot be negative", design=design, color=color.color, size=size)
                    product.variants.append(VariantStock(
                        organization_id=ctx.organization_id,
                        design=design,
                        color=color.color,
                        size=size,
                        position=position,
                        current_stock=current_stock,
                        reserved_stock=0,
                        locked_stock=0,
                        reorder_point=settings.DEFAULT_REORDER_POINT if reorder_point is None else reorder_point
                    ))
                    position += 1
            db.add(product)

        logger.info(f"Created product {design} with {len(product.variants)} variants")
        return product

    @staticmethod
    def get_product(db: Session, organization_id: UUID, design: str) -> Product:
        product = db.query(Product).filter(
            Product.organization_id == organization_id,
            Product.design == design
        ).first()
        if not product:
            raise ProductNotFound(f"Product {design} not found", design=design)
        return product

    @staticmethod
    def list_inventory(
        db: Session,
        organization_id: UUID,
        policy: LockPolicy,
        search: Optional[str] = None
    ) -> List[Dict]:
        """All variants with the stock a general (non-marketplace) sale may use"""
        query = db.query(VariantStock).filter(VariantStock.organization_id == organization_id)
        if search:
            term = f"%{search}%"
            query = query.filter(or_(VariantStock.design.ilike(term), VariantStock.color.ilike(term)))

        rows = query.order_by(VariantStock.design, VariantStock.position).all()
        return [
            {
                **v.key_dict(),
                "current_stock": v.current_stock,
                "reserved_stock": v.reserved_stock,
                "locked_stock": v.locked_stock,
                "reorder_point": v.reorder_point,
                "available_stock": v.available_for_general_sale(policy.enabled),
            }
            for v in rows
        ]

    @staticmethod
    def get_low_stock(db: Session, organization_id: UUID, policy: LockPolicy) -> List[Dict]:
        """Variants whose available main stock is at or below their reorder point"""
        return [
            row for row in StockService.list_inventory(db, organization_id, policy)
            if row["available_stock"] <= row["reorder_point"]
        ]

    @staticmethod
    @retry_on_conflict
    def receive_stock(
        db: Session,
        ctx: RequestContext,
        design: str,
        color: str,
        size: str,
        quantity: int,
        notes: Optional[str] = None
    ) -> VariantStock:
        """Book received units into the main pool"""
        check_quantity(quantity)
        with atomic(db):
            variant = StockService.lock_variant(db, ctx.organization_id, design, color, size)
            variant.credit(StockPool.MAIN, quantity)

        logger.info(f"Received {quantity} units into main stock for {variant.label}" + (f" ({notes})" if notes else ""))
        return variant

    # ===================== WHOLESALE / DIRECT =====================

    @staticmethod
    @retry_on_conflict
    def consume_for_channel_sale(
        db: Session,
        ctx: RequestContext,
        policy: LockPolicy,
        items: List[TransferItem],
        channel: str = "wholesale",
        reference: Optional[str] = None,
        borrow_from_reserved: bool = False
    ) -> List[ChannelSaleLine]:
        """
        Take stock for a wholesale or direct sale.

        Only main stock outside the lock buffer is usable. A shortfall the
        reserved pool can cover is either reported (ReservedBorrowRequired) or,
        with ``borrow_from_reserved``, moved reserved -> main as an
        emergency_borrow ledger entry before consuming. All items succeed or
        none do.
        """
        if not items:
            raise InvalidQuantity("Items array is required")

        lines = []
        with atomic(db):
            variants = StockService.lock_variants(db, ctx.organization_id, [(i.design, i.color, i.size) for i in items])
            for index, item in enumerate(items):
                try:
                    check_quantity(item.quantity)
                    variant = variants[(item.design, item.color, item.size)]
                    lines.append(StockService._consume_line(
                        db, ctx, policy, variant, item.quantity, channel, reference, borrow_from_reserved
                    ))
                except StockError as e:
                    e.context.setdefault("item_index", index)
                    raise

        borrowed = sum(line.borrowed_from_reserved for line in lines)
        logger.info(
            f"{channel} sale {reference or '-'}: consumed {sum(l.quantity for l in lines)} units "
            f"across {len(lines)} lines, borrowed {borrowed} from reserved"
        )
        return lines

    @staticmethod
    def _consume_line(
        db: Session,
        ctx: RequestContext,
        policy: LockPolicy,
        variant: VariantStock,
        quantity: int,
        channel: str,
        reference: Optional[str],
        borrow_from_reserved: bool
    ) -> ChannelSaleLine:
        available_main = variant.available_for_general_sale(policy.enabled)
        borrowed = 0

        if quantity > available_main:
            deficit = quantity - available_main
            context = dict(
                available_main=available_main,
                reserved_stock=variant.reserved_stock,
                locked_stock=variant.locked_stock,
                requested=quantity,
                **variant.key_dict()
            )
            if variant.reserved_stock < deficit:
                raise InsufficientStock(
                    f"Insufficient stock for {variant.label}. "
                    f"Total available: {available_main + variant.reserved_stock}, Requested: {quantity}",
                    **context
                )
            if not borrow_from_reserved:
                raise ReservedBorrowRequired(
                    f"Main stock insufficient for {variant.label}. Need {deficit} units from reserved inventory.",
                    deficit=deficit,
                    **context
                )

            before = variant.snapshot()
            variant.deduct(StockPool.RESERVED, deficit)
            variant.credit(StockPool.MAIN, deficit)
            StockService.record_transfer(
                db, ctx, variant, TransferType.EMERGENCY_BORROW, deficit,
                StockPool.RESERVED, StockPool.MAIN, before,
                notes=f"Emergency borrow for {channel} order",
                related_order_id=reference,
                related_order_type=RelatedOrderType(channel).value
            )
            borrowed = deficit

        variant.deduct(StockPool.MAIN, quantity)
        return ChannelSaleLine(
            **variant.key_dict(),
            quantity=quantity,
            from_main=quantity - borrowed,
            borrowed_from_reserved=borrowed
        )
