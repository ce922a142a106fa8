"""
Sale Service - Marketplace order stock lifecycle

A sale holds stock while its status is dispatched/delivered and has given it
back while returned/cancelled/wrong_return. Every status change that crosses
between those two classes moves stock exactly once.
"""
import logging
from sqlalchemy.orm import Session
from sqlalchemy import func, or_
from typing import Dict, List, Optional, Tuple
from datetime import datetime
from uuid import UUID

from stockpool.core import atomic
from stockpool.core.database import retry_on_conflict
from stockpool.core.exceptions import (
    StockError, SaleNotFound, InvalidStatus, InvalidStatusTransition, SameStatus,
    PermissionDenied, LockEmptyRefillNeeded, InvalidQuantity,
)
from stockpool.models import (
    MarketplaceSale, SaleStatusHistory, SaleStatus, StockEffect, StockPool, VariantStock,
    TransferType, RelatedOrderType,
    DEDUCTING_STATUSES, effect_class, parse_status,
)
from stockpool.models.base import utcnow
from stockpool.models.product import check_quantity
from stockpool.schemas.common import RequestContext
from stockpool.schemas.lock import LockPolicy
from stockpool.schemas.sale import SaleCreate, SaleUpdate, SaleStockChange
from .stock_service import StockService

logger = logging.getLogger(__name__)

ADMIN_EDITABLE_FIELDS = ("account_name", "sale_date", "marketplace_order_id", "notes")


def _restore(policy: LockPolicy, variant: VariantStock, quantity: int) -> None:
    """Give sold units back; with locks on they return to the marketplace buffer"""
    variant.credit(StockPool.LOCKED if policy.enabled else StockPool.MAIN, quantity)


def _take(policy: LockPolicy, variant: VariantStock, quantity: int) -> None:
    """Take units for a sale that holds stock again, draining the lock buffer first"""
    variant.deduct(StockPool.MAIN, quantity, consume_lock=policy.enabled)


class SaleService:
    """Marketplace sale business logic"""

    # ===================== QUERIES =====================

    @staticmethod
    def get_sales(
        db: Session,
        organization_id: UUID,
        status: Optional[str] = None,
        account_name: Optional[str] = None,
        design: Optional[str] = None,
        search: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        page: int = 1,
        per_page: int = 50
    ) -> Tuple[List[MarketplaceSale], int]:
        """Get sales with filters and pagination"""
        query = db.query(MarketplaceSale).filter(MarketplaceSale.organization_id == organization_id)

        if status and status != "all":
            query = query.filter(MarketplaceSale.status == parse_status(status).value)
        if account_name:
            query = query.filter(MarketplaceSale.account_name == account_name)
        if design:
            query = query.filter(MarketplaceSale.design == design)
        if search:
            search_term = f"%{search}%"
            query = query.filter(
                or_(
                    MarketplaceSale.marketplace_order_id.ilike(search_term),
                    MarketplaceSale.design.ilike(search_term),
                    MarketplaceSale.account_name.ilike(search_term)
                )
            )
        if start_date:
            query = query.filter(MarketplaceSale.sale_date >= start_date)
        if end_date:
            query = query.filter(MarketplaceSale.sale_date <= end_date)

        total = query.count()

        sales = query.order_by(MarketplaceSale.sale_date.desc(), MarketplaceSale.created_at.desc())\
            .offset((page - 1) * per_page)\
            .limit(per_page)\
            .all()

        return sales, total

    @staticmethod
    def get_sale(db: Session, organization_id: UUID, sale_id: UUID, for_update: bool = False) -> MarketplaceSale:
        query = db.query(MarketplaceSale).filter(
            MarketplaceSale.organization_id == organization_id,
            MarketplaceSale.id == sale_id
        )
        if for_update:
            query = query.with_for_update()
        sale = query.first()
        if not sale:
            raise SaleNotFound("Sale not found", sale_id=str(sale_id))
        return sale

    @staticmethod
    def get_sales_stats(db: Session, organization_id: UUID) -> Dict:
        """Sale counts per status and the quantity currently held by open sales"""
        status_counts = db.query(
            MarketplaceSale.status,
            func.count(MarketplaceSale.id)
        ).filter(
            MarketplaceSale.organization_id == organization_id
        ).group_by(MarketplaceSale.status).all()

        quantity_held = db.query(func.coalesce(func.sum(MarketplaceSale.quantity), 0)).filter(
            MarketplaceSale.organization_id == organization_id,
            MarketplaceSale.status.in_([s.value for s in DEDUCTING_STATUSES])
        ).scalar()

        counts = {s.value: 0 for s in SaleStatus}
        counts.update(dict(status_counts))
        return {
            "total_sales": sum(counts.values()),
            "status_counts": counts,
            "quantity_held": int(quantity_held or 0)
        }

    # ===================== CREATE =====================

    @staticmethod
    @retry_on_conflict
    def create_sale(db: Session, ctx: RequestContext, policy: LockPolicy, data: SaleCreate) -> MarketplaceSale:
        """
        Record a marketplace sale and take its stock.

        With the lock policy on, marketplace sales are served from the locked
        buffer only; an empty buffer asks the caller to refill rather than
        silently selling from main stock.
        """
        check_quantity(data.quantity)

        with atomic(db):
            variant = StockService.lock_variant(db, ctx.organization_id, data.design, data.color, data.size)

            before = variant.snapshot()
            if policy.enabled:
                if variant.locked_stock == 0:
                    raise LockEmptyRefillNeeded(
                        f"Locked stock for {variant.label} is empty. Please refill locked stock.",
                        current_stock=variant.current_stock,
                        locked_stock=variant.locked_stock,
                        max_threshold=policy.max_threshold,
                        requested=data.quantity,
                        **variant.key_dict()
                    )
                variant.deduct(StockPool.LOCKED, data.quantity)
            else:
                variant.deduct(StockPool.MAIN, data.quantity)

            now = utcnow()
            order_id = data.marketplace_order_id or f"MP-{int(now.timestamp() * 1000)}"
            StockService.record_transfer(
                db, ctx, variant, TransferType.MARKETPLACE_ORDER, data.quantity,
                StockPool.LOCKED if policy.enabled else StockPool.MAIN, StockPool.SOLD, before,
                notes=f"Marketplace order {order_id}",
                related_order_id=order_id,
                related_order_type=RelatedOrderType.MARKETPLACE.value
            )

            sale = MarketplaceSale(
                organization_id=ctx.organization_id,
                account_name=data.account_name,
                marketplace_order_id=order_id,
                design=variant.design,
                color=variant.color,
                size=variant.size,
                quantity=data.quantity,
                sale_date=data.sale_date or now,
                status=SaleStatus.DISPATCHED.value,
                notes=data.notes or "",
                created_by=ctx.user_id
            )
            sale.status_history.append(SaleStatusHistory(
                sequence=1,
                previous_status=None,
                new_status=SaleStatus.DISPATCHED.value,
                changed_by=ctx.user_id,
                changed_by_role=ctx.role,
                changed_at=now,
                comments="Sale created"
            ))
            db.add(sale)

        logger.info(
            f"Created sale {sale.marketplace_order_id}: {variant.label} x{sale.quantity} "
            f"({'locked' if policy.enabled else 'main'} stock)"
        )
        return sale

    # ===================== STATUS =====================

    @staticmethod
    def _apply_status_change(
        db: Session,
        ctx: RequestContext,
        policy: LockPolicy,
        sale: MarketplaceSale,
        new_status: str,
        comments: Optional[str] = None
    ) -> SaleStockChange:
        """Move ``sale`` to ``new_status`` inside the caller's transaction"""
        target = parse_status(new_status)
        current = parse_status(sale.status)

        if target == current:
            raise SameStatus(f"Sale is already {current.value}", status=current.value)
        if target == SaleStatus.DISPATCHED:
            raise InvalidStatusTransition(
                f"Cannot move a sale from {current.value} back to dispatched",
                previous_status=current.value,
                status=target.value
            )

        change = SaleStockChange()
        old_effect, new_effect = effect_class(current), effect_class(target)
        if old_effect != new_effect:
            variant = StockService.lock_variant(db, sale.organization_id, sale.design, sale.color, sale.size)
            if new_effect == StockEffect.DEDUCTING:
                _take(policy, variant, sale.quantity)
                change.stock_deducted = sale.quantity
            else:
                _restore(policy, variant, sale.quantity)
                change.stock_restored = sale.quantity

        sale.status = target.value
        sale.status_history.append(SaleStatusHistory(
            sequence=len(sale.status_history) + 1,
            previous_status=current.value,
            new_status=target.value,
            changed_by=ctx.user_id,
            changed_by_role=ctx.role,
            changed_at=utcnow(),
            comments=comments or ""
        ))
        return change

    @staticmethod
    @retry_on_conflict
    def change_status(
        db: Session,
        ctx: RequestContext,
        policy: LockPolicy,
        sale_id: UUID,
        new_status: str,
        comments: Optional[str] = None
    ) -> Tuple[MarketplaceSale, SaleStockChange]:
        with atomic(db):
            sale = SaleService.get_sale(db, ctx.organization_id, sale_id, for_update=True)
            previous = sale.status
            change = SaleService._apply_status_change(db, ctx, policy, sale, new_status, comments)

        logger.info(
            f"Sale {sale.marketplace_order_id} status {previous} -> {sale.status} "
            f"(restored {change.stock_restored}, deducted {change.stock_deducted})"
        )
        return sale, change

    # ===================== UPDATE / DELETE =====================

    @staticmethod
    def _apply_admin_edit(
        db: Session,
        policy: LockPolicy,
        sale: MarketplaceSale,
        data: SaleUpdate,
        change: SaleStockChange
    ) -> None:
        for field in ADMIN_EDITABLE_FIELDS:
            value = getattr(data, field)
            if value is not None:
                setattr(sale, field, value)

        old_key = (sale.design, sale.color, sale.size)
        new_key = (data.design or sale.design, data.color or sale.color, data.size or sale.size)
        new_quantity = sale.quantity if data.quantity is None else data.quantity
        if new_key == old_key and new_quantity == sale.quantity:
            return
        check_quantity(new_quantity)

        if sale.stock_effect == StockEffect.DEDUCTING:
            # Restore the old line in full, then take the new one in full
            variants = StockService.lock_variants(db, sale.organization_id, [old_key, new_key])
            _restore(policy, variants[old_key], sale.quantity)
            change.stock_restored += sale.quantity

            _take(policy, variants[new_key], new_quantity)
            change.stock_deducted += new_quantity
        else:
            # Sale holds no stock; only check the new variant exists
            StockService.lock_variant(db, sale.organization_id, *new_key)

        sale.design, sale.color, sale.size = new_key
        sale.quantity = new_quantity

    @staticmethod
    @retry_on_conflict
    def update_sale(
        db: Session,
        ctx: RequestContext,
        policy: LockPolicy,
        sale_id: UUID,
        data: SaleUpdate
    ) -> Tuple[MarketplaceSale, SaleStockChange]:
        """
        Status change (any role) and/or admin edit of a sale.

        Variant/quantity edits are applied before the status change. An admin
        edit that repeats the current status leaves the status untouched.
        """
        admin_fields = data.admin_fields
        if admin_fields and not ctx.is_admin:
            raise PermissionDenied(
                "Only admins can edit sale details. You can only update status.",
                fields=sorted(admin_fields)
            )
        if data.status is None and not admin_fields:
            raise InvalidStatus("Status is required")

        with atomic(db):
            sale = SaleService.get_sale(db, ctx.organization_id, sale_id, for_update=True)
            change = SaleStockChange()

            if admin_fields:
                SaleService._apply_admin_edit(db, policy, sale, data, change)

            if data.status is not None:
                target = parse_status(data.status)
                if target.value != sale.status or not admin_fields:
                    status_change = SaleService._apply_status_change(db, ctx, policy, sale, target, data.comments)
                    change.stock_restored += status_change.stock_restored
                    change.stock_deducted += status_change.stock_deducted

        logger.info(
            f"Updated sale {sale.marketplace_order_id} by {ctx.role}: status {sale.status}, "
            f"restored {change.stock_restored}, deducted {change.stock_deducted}"
        )
        return sale, change

    @staticmethod
    @retry_on_conflict
    def delete_sale(db: Session, ctx: RequestContext, policy: LockPolicy, sale_id: UUID) -> int:
        """
        Delete a sale, giving its stock back only if it still holds it.
        Returns the quantity restored.
        """
        restored = 0
        with atomic(db):
            sale = SaleService.get_sale(db, ctx.organization_id, sale_id, for_update=True)
            order_id = sale.marketplace_order_id

            if sale.stock_effect == StockEffect.DEDUCTING:
                variant = StockService.find_variant(
                    db, sale.organization_id, sale.design, sale.color, sale.size, for_update=True
                )
                if variant:
                    _restore(policy, variant, sale.quantity)
                    restored = sale.quantity
                else:
                    logger.warning(
                        f"Variant {sale.design}-{sale.color}-{sale.size} no longer exists, "
                        f"deleting sale {order_id} without restoring stock"
                    )

            db.delete(sale)

        logger.info(f"Deleted sale {order_id}, restored {restored} units")
        return restored

    @staticmethod
    @retry_on_conflict
    def bulk_mark_delivered(
        db: Session,
        ctx: RequestContext,
        policy: LockPolicy,
        sale_ids: List[UUID],
        comments: Optional[str] = None
    ) -> Dict:
        """Mark several sales delivered in one transaction; sales already delivered are skipped"""
        if not sale_ids:
            raise InvalidQuantity("Sale ids are required")

        unique_ids = list(dict.fromkeys(sale_ids))
        updated = 0
        with atomic(db):
            sales = db.query(MarketplaceSale).filter(
                MarketplaceSale.organization_id == ctx.organization_id,
                MarketplaceSale.id.in_(unique_ids)
            ).order_by(MarketplaceSale.id).with_for_update().all()
            by_id = {s.id: s for s in sales}

            missing = [str(i) for i in unique_ids if i not in by_id]
            if missing:
                raise SaleNotFound(f"{len(missing)} sale(s) not found", sale_ids=missing)

            # Sales that take stock again lock their variants up front, in canonical order
            StockService.lock_variants(db, ctx.organization_id, [
                (s.design, s.color, s.size) for s in sales if s.stock_effect == StockEffect.RESTORING
            ])

            for sale_id in unique_ids:
                sale = by_id[sale_id]
                if sale.status == SaleStatus.DELIVERED.value:
                    continue
                try:
                    SaleService._apply_status_change(db, ctx, policy, sale, SaleStatus.DELIVERED, comments)
                except StockError as e:
                    e.context.setdefault("sale_id", str(sale_id))
                    raise
                updated += 1

        logger.info(f"Bulk delivered: {updated} updated, {len(unique_ids) - updated} already delivered")
        return {"updated": updated, "skipped": len(unique_ids) - updated}
