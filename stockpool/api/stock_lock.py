"""
Stock Lock API - Marketplace lock policy and per-variant locked stock
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from stockpool.core import get_db
from stockpool.schemas.common import RequestContext
from stockpool.schemas.lock import (
    LockPolicy, StockLockSummary, StockLockToggle, StockLockDistribute,
    VariantLockSet, LockRefill, LockReleaseRequest,
)
from stockpool.services import LockService
from .deps import get_request_context, get_lock_policy

router = APIRouter(prefix="/stock-lock", tags=["Stock Lock"])


def _variant_locks(variant) -> dict:
    return {
        **variant.key_dict(),
        "current_stock": variant.current_stock,
        "locked_stock": variant.locked_stock
    }


@router.get("", response_model=StockLockSummary)
def get_stock_lock(
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    return LockService.get_stock_lock_summary(db, ctx.organization_id)


@router.post("/toggle")
def toggle_stock_lock(
    data: StockLockToggle,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    LockService.get_or_create_settings(db, ctx.organization_id)
    policy, distribution = LockService.toggle_stock_lock(db, ctx, data.enabled, data.threshold)
    return {
        "success": True,
        "message": f"Stock lock {'enabled' if policy.enabled else 'disabled'}",
        "settings": policy,
        "distribution": distribution
    }


@router.post("/distribute")
def distribute_stock_lock(
    data: StockLockDistribute,
    ctx: RequestContext = Depends(get_request_context),
    policy: LockPolicy = Depends(get_lock_policy),
    db: Session = Depends(get_db)
):
    distribution = LockService.distribute_stock_lock(db, ctx, policy, data.threshold)
    return {"success": True, "distribution": distribution}


@router.post("/variant")
def set_variant_lock(
    data: VariantLockSet,
    ctx: RequestContext = Depends(get_request_context),
    policy: LockPolicy = Depends(get_lock_policy),
    db: Session = Depends(get_db)
):
    variant = LockService.set_variant_lock_amount(
        db, ctx, policy, data.design, data.color, data.size, data.lock_amount
    )
    return {"success": True, "variant": _variant_locks(variant)}


@router.post("/refill")
def refill_locked_stock(
    data: LockRefill,
    ctx: RequestContext = Depends(get_request_context),
    policy: LockPolicy = Depends(get_lock_policy),
    db: Session = Depends(get_db)
):
    variant, refilled = LockService.refill_locked_stock(
        db, ctx, policy, data.design, data.color, data.size, data.refill_amount
    )
    return {
        "success": True,
        "message": f"Refilled {refilled} units to locked stock",
        "refilled": refilled,
        "variant": _variant_locks(variant)
    }


@router.post("/release")
def release_variant_locks(
    data: LockReleaseRequest,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    results = LockService.release_variant_locks(db, ctx, data.items)
    return {"success": True, "variants": results}
