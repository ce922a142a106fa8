"""
Transfer API - Main <-> reserved stock moves and the transfer ledger
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional, List
from datetime import datetime

from stockpool.core import get_db
from stockpool.schemas.common import RequestContext
from stockpool.schemas.stock import TransferRequest, BulkTransferRequest, TransferResponse
from stockpool.services import TransferService
from .deps import get_request_context

router = APIRouter(prefix="/transfers", tags=["Transfers"])


def _single_result(transfer, variant, message: str) -> dict:
    return {
        "success": True,
        "message": message,
        "transfer": TransferResponse.model_validate(transfer),
        "stock": {
            "current_stock": variant.current_stock,
            "reserved_stock": variant.reserved_stock,
            "locked_stock": variant.locked_stock
        }
    }


@router.get("", response_model=List[TransferResponse])
def list_transfers(
    transfer_type: Optional[str] = Query(None),
    design: Optional[str] = Query(None),
    color: Optional[str] = Query(None),
    size: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    return TransferService.get_transfers(
        db, ctx.organization_id, transfer_type, design, color, size, start_date, end_date, limit
    )


@router.get("/recent", response_model=List[TransferResponse])
def recent_transfers(
    limit: int = Query(10, ge=1, le=100),
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    return TransferService.get_recent_transfers(db, ctx.organization_id, limit)


@router.post("/to-reserved")
def transfer_to_reserved(
    data: TransferRequest,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    """Move stock from main to reserved"""
    transfer, variant = TransferService.transfer_to_reserved(
        db, ctx, data.design, data.color, data.size, data.quantity, data.notes
    )
    return _single_result(transfer, variant, f"Transferred {data.quantity} units to reserved stock")


@router.post("/to-main")
def transfer_to_main(
    data: TransferRequest,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    """Move stock from reserved back to main"""
    transfer, variant = TransferService.transfer_to_main(
        db, ctx, data.design, data.color, data.size, data.quantity, data.notes
    )
    return _single_result(transfer, variant, f"Transferred {data.quantity} units to main stock")


@router.post("/bulk/to-reserved")
def bulk_transfer_to_reserved(
    data: BulkTransferRequest,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    transfers = TransferService.bulk_transfer_to_reserved(db, ctx, data.transfers, data.notes)
    return {
        "success": True,
        "message": f"Bulk transfer completed: {len(transfers)} transfers",
        "transfers": [TransferResponse.model_validate(t) for t in transfers]
    }


@router.post("/bulk/to-main")
def bulk_transfer_to_main(
    data: BulkTransferRequest,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    transfers = TransferService.bulk_transfer_to_main(db, ctx, data.transfers, data.notes)
    return {
        "success": True,
        "message": f"Bulk return completed: {len(transfers)} transfers",
        "transfers": [TransferResponse.model_validate(t) for t in transfers]
    }
