"""
Sales API - Marketplace sales and their stock lifecycle
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional
from datetime import datetime
from uuid import UUID

from stockpool.core import get_db
from stockpool.schemas.common import RequestContext
from stockpool.schemas.lock import LockPolicy
from stockpool.schemas.sale import SaleCreate, SaleUpdate, SaleResponse, BulkDeliveredRequest
from stockpool.services import SaleService
from .deps import get_request_context, get_lock_policy

router = APIRouter(prefix="/sales", tags=["Sales"])


@router.post("", status_code=201)
def create_sale(
    data: SaleCreate,
    ctx: RequestContext = Depends(get_request_context),
    policy: LockPolicy = Depends(get_lock_policy),
    db: Session = Depends(get_db)
):
    sale = SaleService.create_sale(db, ctx, policy, data)
    return {
        "success": True,
        "message": "Sale recorded",
        "sale": SaleResponse.model_validate(sale)
    }


@router.get("")
def list_sales(
    status: Optional[str] = Query(None),
    account_name: Optional[str] = Query(None),
    design: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=100),
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    sales, total = SaleService.get_sales(
        db, ctx.organization_id, status, account_name, design, search, start_date, end_date, page, per_page
    )
    return {
        "sales": [SaleResponse.model_validate(s) for s in sales],
        "total": total,
        "page": page,
        "per_page": per_page
    }


@router.get("/stats")
def sales_stats(
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    return SaleService.get_sales_stats(db, ctx.organization_id)


@router.post("/bulk/delivered")
def bulk_mark_delivered(
    data: BulkDeliveredRequest,
    ctx: RequestContext = Depends(get_request_context),
    policy: LockPolicy = Depends(get_lock_policy),
    db: Session = Depends(get_db)
):
    result = SaleService.bulk_mark_delivered(db, ctx, policy, data.sale_ids, data.comments)
    return {"success": True, **result}


@router.get("/{sale_id}", response_model=SaleResponse)
def get_sale(
    sale_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    return SaleService.get_sale(db, ctx.organization_id, sale_id)


@router.put("/{sale_id}")
def update_sale(
    sale_id: UUID,
    data: SaleUpdate,
    ctx: RequestContext = Depends(get_request_context),
    policy: LockPolicy = Depends(get_lock_policy),
    db: Session = Depends(get_db)
):
    """Change status (any role) or edit sale details (admin)"""
    sale, change = SaleService.update_sale(db, ctx, policy, sale_id, data)
    return {
        "success": True,
        "sale": SaleResponse.model_validate(sale),
        "stock_restored": change.stock_restored,
        "stock_deducted": change.stock_deducted
    }


@router.delete("/{sale_id}")
def delete_sale(
    sale_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    policy: LockPolicy = Depends(get_lock_policy),
    db: Session = Depends(get_db)
):
    restored = SaleService.delete_sale(db, ctx, policy, sale_id)
    return {"success": True, "message": "Sale deleted", "stock_restored": restored}
