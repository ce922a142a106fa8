"""
API Router - JSON Endpoints
"""
from fastapi import APIRouter
from datetime import datetime

from .transfers import router as transfers_router
from .sales import router as sales_router
from .stock_lock import router as stock_lock_router
from .inventory import router as inventory_router

api_router = APIRouter()

api_router.include_router(transfers_router)
api_router.include_router(sales_router)
api_router.include_router(stock_lock_router)
api_router.include_router(inventory_router)


@api_router.get("/status", tags=["API"])
async def api_status():
    return {"status": "ok", "version": "1.0.0", "timestamp": datetime.now().isoformat()}
