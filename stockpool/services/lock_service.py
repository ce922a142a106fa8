"""
Stock Lock Service - Organization lock policy and per-variant locked stock
"""
import logging
from sqlalchemy.orm import Session
from sqlalchemy import func
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from stockpool.core import atomic
from stockpool.core.database import retry_on_conflict
from stockpool.core.exceptions import (
    SettingsNotFound, StockLockDisabled, InvalidLockAmount, ThresholdExceeded,
)
from stockpool.models import StockLockSettings, VariantStock
from stockpool.schemas.common import RequestContext
from stockpool.schemas.lock import LockPolicy, LockDistribution, LockReleaseItem, StockLockSummary
from .stock_service import StockService, VARIANT_LOCK_ORDER

logger = logging.getLogger(__name__)


def _require_enabled(policy: LockPolicy) -> None:
    if not policy.enabled:
        raise StockLockDisabled("Stock lock feature is not enabled")


class LockService:
    """Stock lock policy business logic"""

    # ===================== POLICY =====================

    @staticmethod
    def get_settings(db: Session, organization_id: UUID, for_update: bool = False) -> Optional[StockLockSettings]:
        query = db.query(StockLockSettings).filter(StockLockSettings.organization_id == organization_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    @staticmethod
    def get_or_create_settings(db: Session, organization_id: UUID) -> StockLockSettings:
        """Settings row of the organization, created disabled on first access"""
        settings_row = LockService.get_settings(db, organization_id)
        if settings_row:
            return settings_row

        with atomic(db):
            settings_row = StockLockSettings(organization_id=organization_id, enabled=False, max_threshold=0)
            db.add(settings_row)
        logger.info(f"Created default stock lock settings for organization {organization_id}")
        return settings_row

    @staticmethod
    def get_lock_policy(db: Session, organization_id: UUID) -> LockPolicy:
        """Lock policy value for one request; organizations without settings run unlocked"""
        settings_row = LockService.get_settings(db, organization_id)
        if not settings_row:
            return LockPolicy()
        return LockPolicy.model_validate(settings_row)

    @staticmethod
    def get_stock_lock_summary(db: Session, organization_id: UUID) -> StockLockSummary:
        settings_row = LockService.get_or_create_settings(db, organization_id)
        total_locked = db.query(func.coalesce(func.sum(VariantStock.locked_stock), 0)).filter(
            VariantStock.organization_id == organization_id
        ).scalar()
        return StockLockSummary(
            enabled=settings_row.enabled,
            max_threshold=settings_row.max_threshold,
            total_locked=int(total_locked or 0)
        )

    @staticmethod
    def _org_variants(db: Session, organization_id: UUID) -> List[VariantStock]:
        """Every variant of the organization, locked in the canonical variant order"""
        return db.query(VariantStock).filter(
            VariantStock.organization_id == organization_id
        ).order_by(*VARIANT_LOCK_ORDER).with_for_update().all()

    @staticmethod
    @retry_on_conflict
    def toggle_stock_lock(
        db: Session,
        ctx: RequestContext,
        enabled: bool,
        threshold: Optional[int] = None
    ) -> Tuple[LockPolicy, LockDistribution]:
        """
        Switch the lock policy on or off.

        Enabling (from disabled, threshold > 0) spreads the threshold evenly
        over every variant that has stock: each gets threshold // n, the first
        threshold % n variants one extra, each capped at its current stock.
        Disabling clears every variant's locked stock.
        """
        if threshold is not None and threshold < 0:
            raise InvalidLockAmount("Threshold cannot be negative", threshold=threshold)

        distribution = LockDistribution()
        with atomic(db):
            settings_row = LockService.get_settings(db, ctx.organization_id, for_update=True)
            if not settings_row:
                raise SettingsNotFound("Settings not found", organization_id=str(ctx.organization_id))

            was_enabled = settings_row.enabled
            settings_row.enabled = enabled
            if threshold is not None:
                settings_row.max_threshold = threshold

            if enabled and not was_enabled and settings_row.max_threshold > 0:
                distribution = LockService._auto_distribute(db, ctx.organization_id, settings_row.max_threshold)
            elif not enabled and was_enabled:
                distribution = LockService._clear_locks(db, ctx.organization_id)

            policy = LockPolicy.model_validate(settings_row)

        logger.info(
            f"Stock lock {'enabled' if enabled else 'disabled'} for organization {ctx.organization_id} "
            f"(threshold {policy.max_threshold}, locked {distribution.total_locked}, cleared {distribution.total_cleared})"
        )
        return policy, distribution

    @staticmethod
    def _auto_distribute(db: Session, organization_id: UUID, threshold: int) -> LockDistribution:
        variants = [v for v in LockService._org_variants(db, organization_id) if v.current_stock > 0]
        variants.sort(key=lambda v: (v.design, v.position))
        if not variants:
            logger.warning(f"No variants with stock to lock for organization {organization_id}")
            return LockDistribution()

        per_variant = threshold // len(variants)
        remaining = threshold - per_variant * len(variants)
        total_locked = 0
        for variant in variants:
            lock_amount = min(per_variant + (1 if remaining > 0 else 0), variant.current_stock)
            variant.set_lock(lock_amount)
            total_locked += lock_amount
            if remaining > 0:
                remaining -= 1

        return LockDistribution(total_locked=total_locked, variants_locked=len(variants))

    @staticmethod
    def _clear_locks(db: Session, organization_id: UUID) -> LockDistribution:
        total_cleared = 0
        for variant in LockService._org_variants(db, organization_id):
            if variant.locked_stock > 0:
                total_cleared += variant.locked_stock
                variant.set_lock(0)
        return LockDistribution(total_cleared=total_cleared)

    @staticmethod
    @retry_on_conflict
    def distribute_stock_lock(db: Session, ctx: RequestContext, policy: LockPolicy, threshold: int) -> LockDistribution:
        """Lock ``threshold`` units on every variant with stock (or all of its stock if less)"""
        _require_enabled(policy)
        if threshold <= 0:
            raise InvalidLockAmount("Valid threshold required", threshold=threshold)

        total_locked = 0
        variants_locked = 0
        with atomic(db):
            for variant in LockService._org_variants(db, ctx.organization_id):
                if variant.current_stock <= 0:
                    continue
                lock_amount = min(threshold, variant.current_stock)
                variant.set_lock(lock_amount)
                total_locked += lock_amount
                variants_locked += 1

        logger.info(f"Distributed stock lock: {total_locked} units across {variants_locked} variants")
        return LockDistribution(total_locked=total_locked, variants_locked=variants_locked)

    # ===================== VARIANT LOCKS =====================

    @staticmethod
    @retry_on_conflict
    def set_variant_lock_amount(
        db: Session,
        ctx: RequestContext,
        policy: LockPolicy,
        design: str,
        color: str,
        size: str,
        lock_amount: int
    ) -> VariantStock:
        _require_enabled(policy)
        with atomic(db):
            variant = StockService.lock_variant(db, ctx.organization_id, design, color, size)
            variant.set_lock(lock_amount)

        logger.info(f"Lock amount for {variant.label} set to {lock_amount}")
        return variant

    @staticmethod
    @retry_on_conflict
    def refill_locked_stock(
        db: Session,
        ctx: RequestContext,
        policy: LockPolicy,
        design: str,
        color: str,
        size: str,
        refill_amount: int
    ) -> Tuple[VariantStock, int]:
        """
        Move unlocked main stock into the lock buffer, capped by the unlocked
        stock and by the policy threshold. Returns the variant and the amount
        actually refilled.
        """
        _require_enabled(policy)
        if isinstance(refill_amount, bool) or not isinstance(refill_amount, int) or refill_amount <= 0:
            raise InvalidLockAmount("Refill amount must be greater than 0", requested=refill_amount)

        with atomic(db):
            variant = StockService.lock_variant(db, ctx.organization_id, design, color, size)
            current_locked = variant.locked_stock
            available_for_lock = variant.current_stock - current_locked
            context = dict(
                current_stock=variant.current_stock,
                locked_stock=current_locked,
                available_for_lock=available_for_lock,
                max_threshold=policy.max_threshold,
                requested=refill_amount,
                **variant.key_dict()
            )
            if current_locked >= policy.max_threshold:
                raise ThresholdExceeded(
                    f"Cannot refill. Lock for {variant.label} is already at the threshold ({policy.max_threshold})",
                    **context
                )
            if available_for_lock <= 0:
                raise InvalidLockAmount(f"Cannot refill. No unlocked stock left for {variant.label}", **context)

            refilled = min(refill_amount, available_for_lock, policy.max_threshold - current_locked)
            variant.set_lock(current_locked + refilled)

        logger.info(f"Refilled {refilled} units to locked stock for {variant.label}")
        return variant, refilled

    @staticmethod
    @retry_on_conflict
    def release_variant_locks(db: Session, ctx: RequestContext, items: List[LockReleaseItem]) -> List[Dict]:
        """Reduce locked stock on several variants (never below zero), all or nothing"""
        results = []
        with atomic(db):
            variants = StockService.lock_variants(db, ctx.organization_id, [(i.design, i.color, i.size) for i in items])
            for index, item in enumerate(items):
                variant = variants[(item.design, item.color, item.size)]
                if item.reduce_by <= 0:
                    raise InvalidLockAmount("Reduce amount must be greater than 0", item_index=index, requested=item.reduce_by)
                previous = variant.locked_stock
                variant.set_lock(max(0, previous - item.reduce_by))
                results.append({
                    **variant.key_dict(),
                    "previous_locked": previous,
                    "new_locked": variant.locked_stock,
                    "reduced": previous - variant.locked_stock,
                })

        logger.info(f"Released locks on {len(results)} variants")
        return results
