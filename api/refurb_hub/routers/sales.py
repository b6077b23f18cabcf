# refurb_hub/routers/sales.py
"""
Sales Router - local point-of-sale records, added costs and reports.
"""
from __future__ import annotations
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from refurb_hub.deps import get_store
from refurb_hub.errors import RecordNotFoundError
from refurb_hub.models import AddCostIn, RecordSaleIn
from refurb_hub.services.store import REPORT_TYPES, InventoryStore

router = APIRouter(prefix="/api", tags=["Sales"])


def _require_store(store: Optional[InventoryStore] = Depends(get_store)) -> InventoryStore:
    if store is None:
        raise HTTPException(503, detail="Inventory store unavailable")
    return store


@router.post("/record-sale")
async def record_sale(sale: RecordSaleIn, store: InventoryStore = Depends(_require_store)):
    try:
        sale_id = await store.record_sale(sale)
    except RecordNotFoundError as e:
        raise HTTPException(404, detail=str(e))
    return {"success": True, "saleId": sale_id, "message": "Sale recorded successfully"}


@router.post("/add-cost")
async def add_cost(cost: AddCostIn, store: InventoryStore = Depends(_require_store)):
    try:
        total = await store.add_cost(cost)
    except RecordNotFoundError as e:
        raise HTTPException(404, detail=str(e))
    return {"success": True, "totalCosts": total}


@router.get("/costs/{stock_id}")
async def cost_history(stock_id: str, store: InventoryStore = Depends(_require_store)):
    costs = await store.cost_history(stock_id)
    return {"success": True, "costs": [c.model_dump(mode="json", by_alias=True) for c in costs]}


@router.get("/reports")
async def reports(
    type: str = Query(..., description=f"One of: {', '.join(REPORT_TYPES)}"),
    startDate: Optional[date] = Query(None),
    endDate: Optional[date] = Query(None),
    store: InventoryStore = Depends(_require_store),
):
    if type not in REPORT_TYPES:
        raise HTTPException(400, detail="Invalid report type")
    return await store.query(type, startDate, endDate)


@router.get("/dashboard-stats")
async def dashboard_stats(store: InventoryStore = Depends(_require_store)):
    stats = await store.dashboard_stats()
    return stats.model_dump(by_alias=True)
