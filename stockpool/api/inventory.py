"""
Inventory API - Products, variant stock levels and non-marketplace sales
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional, List

from stockpool.core import get_db
from stockpool.schemas.common import RequestContext
from stockpool.schemas.lock import LockPolicy
from stockpool.schemas.stock import (
    ProductCreate, ProductResponse, VariantStockResponse, ReceiveStockRequest, ChannelSaleRequest,
)
from stockpool.services import StockService
from .deps import get_request_context, get_lock_policy

router = APIRouter(prefix="/inventory", tags=["Inventory"])


@router.post("/products", response_model=ProductResponse, status_code=201)
def create_product(
    data: ProductCreate,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    return StockService.create_product(db, ctx, data)


@router.get("", response_model=List[VariantStockResponse])
def list_inventory(
    search: Optional[str] = Query(None),
    ctx: RequestContext = Depends(get_request_context),
    policy: LockPolicy = Depends(get_lock_policy),
    db: Session = Depends(get_db)
):
    return StockService.list_inventory(db, ctx.organization_id, policy, search)


@router.get("/low-stock", response_model=List[VariantStockResponse])
def low_stock(
    ctx: RequestContext = Depends(get_request_context),
    policy: LockPolicy = Depends(get_lock_policy),
    db: Session = Depends(get_db)
):
    return StockService.get_low_stock(db, ctx.organization_id, policy)


@router.get("/products/{design}", response_model=ProductResponse)
def get_product(
    design: str,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    return StockService.get_product(db, ctx.organization_id, design)


@router.post("/receive", response_model=VariantStockResponse)
def receive_stock(
    data: ReceiveStockRequest,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    """Book received goods into main stock"""
    return StockService.receive_stock(db, ctx, data.design, data.color, data.size, data.quantity, data.notes)


@router.post("/channel-sale")
def channel_sale(
    data: ChannelSaleRequest,
    ctx: RequestContext = Depends(get_request_context),
    policy: LockPolicy = Depends(get_lock_policy),
    db: Session = Depends(get_db)
):
    """Wholesale or direct sale, optionally borrowing a shortfall from reserved stock"""
    lines = StockService.consume_for_channel_sale(
        db, ctx, policy, data.items, data.channel, data.reference, data.borrow_from_reserved
    )
    return {
        "success": True,
        "lines": lines,
        "borrowed_from_reserved": sum(line.borrowed_from_reserved for line in lines)
    }
