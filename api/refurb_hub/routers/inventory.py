# refurb_hub/routers/inventory.py
"""
Inventory Router - spreadsheet upload -> product groups, unit lookup.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, Optional

import httpx
from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile

from refurb_hub.deps import get_image_transport, get_settings, get_store
from refurb_hub.errors import RecordNotFoundError, SpreadsheetError
from refurb_hub.services.grouping import build_product_groups
from refurb_hub.services.images import ImageLookupClient, attach_image_availability
from refurb_hub.services.rows import read_rows
from refurb_hub.services.store import InventoryStore
from refurb_hub.settings import Settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Inventory"])


@router.post("/process-excel")
async def process_excel(
    excelFile: Optional[UploadFile] = File(None),
    checkImages: bool = Query(True),
    cfg: Settings = Depends(get_settings),
    store: Optional[InventoryStore] = Depends(get_store),
    image_transport: Optional[httpx.AsyncBaseTransport] = Depends(get_image_transport),
) -> Dict[str, Any]:
    """Decode an inventory sheet and return the grouped, priced product groups."""
    if excelFile is None:
        raise HTTPException(400, detail="No file uploaded")

    data = await excelFile.read()
    if not data:
        raise HTTPException(400, detail="Uploaded file is empty")
    if len(data) > cfg.UPLOAD_MAX_BYTES:
        raise HTTPException(400, detail=f"File too large (max {cfg.UPLOAD_MAX_BYTES} bytes)")

    try:
        rows = read_rows(data, excelFile.filename or "")
    except SpreadsheetError as e:
        raise HTTPException(400, detail=str(e))
    if not rows:
        raise HTTPException(400, detail="No data found in file")

    result = build_product_groups(rows)

    images_checked = 0
    if checkImages and cfg.IMAGE_SERVICE_ENABLED and result.product_groups:
        async with ImageLookupClient(
            cfg.IMAGE_SERVICE_URL, timeout=cfg.IMAGE_LOOKUP_TIMEOUT, transport=image_transport,
        ) as images:
            images_checked = await attach_image_availability(result.product_groups, images)

    saved = 0
    if store is not None:
        saved = await store.upsert_groups(result.product_groups.values())

    body = result.model_dump(mode="json", by_alias=True)
    body["success"] = True
    body["debug"] = {
        "totalRows": len(rows),
        "classifiedRows": result.total_unique_units,
        "rejectedRows": result.rejected_count,
        "groupsWithImages": images_checked,
        "savedUnits": saved,
    }
    return body


@router.get("/product/{stock_id}")
async def get_product(stock_id: str, store: Optional[InventoryStore] = Depends(get_store)):
    if store is None:
        raise HTTPException(503, detail="Inventory store unavailable")
    try:
        product = await store.get_product(stock_id)
    except RecordNotFoundError as e:
        raise HTTPException(404, detail=str(e))
    return {"success": True, "product": product.model_dump(mode="json", by_alias=True)}
