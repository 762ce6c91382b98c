"""
API Router - aggregates the JSON endpoints mounted under /api
"""
from fastapi import APIRouter
from datetime import datetime

from branchstock.api.transfers import router as transfers_router
from branchstock.api.inventory import router as inventory_router
from branchstock.api.branches import router as branches_router
from branchstock.api.products import router as products_router
from branchstock.api.api_keys import router as api_keys_router
from branchstock.api.v1_inventory import router as v1_router

api_router = APIRouter(tags=["API"])

api_router.include_router(transfers_router)
api_router.include_router(inventory_router)
api_router.include_router(branches_router)
api_router.include_router(products_router)
api_router.include_router(api_keys_router)
api_router.include_router(v1_router)


@api_router.get("/status")
async def api_status():
    return {"status": "ok", "version": "1.0.0", "timestamp": datetime.now().isoformat()}
