"""
Transfer Service - Atomic main <-> reserved stock moves and the transfer ledger
"""
import logging
from sqlalchemy.orm import Session
from typing import List, Optional, Sequence, Tuple
from datetime import datetime
from uuid import UUID

from stockpool.core import atomic
from stockpool.core.database import retry_on_conflict
from stockpool.core.exceptions import StockError, InvalidQuantity
from stockpool.models import StockTransfer, VariantStock, StockPool, TransferType
from stockpool.schemas.common import RequestContext
from stockpool.schemas.stock import TransferItem
from .stock_service import StockService

logger = logging.getLogger(__name__)

# Manual transfer directions: type -> (from pool, to pool)
MANUAL_DIRECTIONS = {
    TransferType.MANUAL_REFILL: (StockPool.MAIN, StockPool.RESERVED),
    TransferType.MANUAL_RETURN: (StockPool.RESERVED, StockPool.MAIN),
}


def quick_fill_items(design: str, color: str, sizes: Sequence[str], quantity: int) -> List[TransferItem]:
    """Same quantity for every size of one color, ready for a bulk transfer"""
    return [TransferItem(design=design, color=color, size=size, quantity=quantity) for size in sizes]


class TransferService:
    """Manual stock transfers between the main and reserved pools"""

    @staticmethod
    def _move(
        db: Session,
        ctx: RequestContext,
        variant: VariantStock,
        transfer_type: TransferType,
        quantity: int,
        notes: Optional[str]
    ) -> StockTransfer:
        from_pool, to_pool = MANUAL_DIRECTIONS[transfer_type]
        before = variant.snapshot()
        variant.deduct(from_pool, quantity)
        variant.credit(to_pool, quantity)
        return StockService.record_transfer(
            db, ctx, variant, transfer_type, quantity, from_pool, to_pool, before, notes=notes
        )

    @staticmethod
    def _single(
        db: Session,
        ctx: RequestContext,
        transfer_type: TransferType,
        design: str,
        color: str,
        size: str,
        quantity: int,
        notes: Optional[str]
    ) -> Tuple[StockTransfer, VariantStock]:
        with atomic(db):
            variant = StockService.lock_variant(db, ctx.organization_id, design, color, size)
            transfer = TransferService._move(db, ctx, variant, transfer_type, quantity, notes)

        logger.info(
            f"Transfer {transfer_type.value} successful: {variant.label} x{quantity} "
            f"(main {transfer.main_stock_after}, reserved {transfer.reserved_stock_after})"
        )
        return transfer, variant

    @staticmethod
    def _bulk(
        db: Session,
        ctx: RequestContext,
        transfer_type: TransferType,
        items: List[TransferItem],
        notes: str
    ) -> List[StockTransfer]:
        """
        Apply every item as its own sub-transfer inside one transaction.

        All-or-nothing: the first failing item aborts the batch, nothing moves,
        and the error context names the item index.
        """
        if not items:
            raise InvalidQuantity("Transfers array is required")

        transfers = []
        with atomic(db):
            variants = StockService.lock_variants(db, ctx.organization_id, [(i.design, i.color, i.size) for i in items])
            for index, item in enumerate(items):
                variant = variants[(item.design, item.color, item.size)]
                try:
                    transfers.append(TransferService._move(db, ctx, variant, transfer_type, item.quantity, notes))
                except StockError as e:
                    e.context.setdefault("item_index", index)
                    raise

        logger.info(f"Bulk {transfer_type.value} completed: {len(transfers)} transfers, {sum(t.quantity for t in transfers)} units")
        return transfers

    @staticmethod
    @retry_on_conflict
    def transfer_to_reserved(
        db: Session,
        ctx: RequestContext,
        design: str,
        color: str,
        size: str,
        quantity: int,
        notes: Optional[str] = None
    ) -> Tuple[StockTransfer, VariantStock]:
        """Main -> Reserved (manual refill)"""
        return TransferService._single(db, ctx, TransferType.MANUAL_REFILL, design, color, size, quantity, notes)

    @staticmethod
    @retry_on_conflict
    def transfer_to_main(
        db: Session,
        ctx: RequestContext,
        design: str,
        color: str,
        size: str,
        quantity: int,
        notes: Optional[str] = None
    ) -> Tuple[StockTransfer, VariantStock]:
        """Reserved -> Main (manual return)"""
        return TransferService._single(db, ctx, TransferType.MANUAL_RETURN, design, color, size, quantity, notes)

    @staticmethod
    @retry_on_conflict
    def bulk_transfer_to_reserved(
        db: Session,
        ctx: RequestContext,
        items: List[TransferItem],
        notes: Optional[str] = None
    ) -> List[StockTransfer]:
        return TransferService._bulk(db, ctx, TransferType.MANUAL_REFILL, items, notes or "Bulk transfer")

    @staticmethod
    @retry_on_conflict
    def bulk_transfer_to_main(
        db: Session,
        ctx: RequestContext,
        items: List[TransferItem],
        notes: Optional[str] = None
    ) -> List[StockTransfer]:
        return TransferService._bulk(db, ctx, TransferType.MANUAL_RETURN, items, notes or "Bulk return")

    # ===================== LEDGER QUERIES =====================

    @staticmethod
    def get_transfers(
        db: Session,
        organization_id: UUID,
        transfer_type: Optional[str] = None,
        design: Optional[str] = None,
        color: Optional[str] = None,
        size: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: int = 100
    ) -> List[StockTransfer]:
        """Ledger entries, newest first"""
        query = db.query(StockTransfer).filter(StockTransfer.organization_id == organization_id)

        if transfer_type:
            query = query.filter(StockTransfer.transfer_type == transfer_type)
        if design:
            query = query.filter(StockTransfer.design == design)
        if color:
            query = query.filter(StockTransfer.color == color)
        if size:
            query = query.filter(StockTransfer.size == size)
        if start_date:
            query = query.filter(StockTransfer.created_at >= start_date)
        if end_date:
            query = query.filter(StockTransfer.created_at <= end_date)

        return query.order_by(StockTransfer.created_at.desc()).limit(limit).all()

    @staticmethod
    def get_recent_transfers(db: Session, organization_id: UUID, limit: int = 10) -> List[StockTransfer]:
        return TransferService.get_transfers(db, organization_id, limit=limit)
