# refurb_hub/routers/sync.py
"""
Sync Router - push product groups to the storefront catalog; image service probes.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError

from refurb_hub.deps import get_catalog_transport, get_image_transport, get_settings, get_store
from refurb_hub.errors import CatalogConnectionError, ImageLookupError
from refurb_hub.models import FindImagesIn, GroupSyncState, SyncRequest, SyncResult
from refurb_hub.services.catalog_client import CatalogClient
from refurb_hub.services.images import ImageLookupClient, build_query
from refurb_hub.services.reconciler import CatalogReconciler, SyncOptions
from refurb_hub.services.store import InventoryStore
from refurb_hub.settings import Settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Sync"])


@router.post("/sync-shopify")
async def sync_shopify(
    payload: SyncRequest,
    cfg: Settings = Depends(get_settings),
    store: Optional[InventoryStore] = Depends(get_store),
    catalog_transport: Optional[httpx.AsyncBaseTransport] = Depends(get_catalog_transport),
    image_transport: Optional[httpx.AsyncBaseTransport] = Depends(get_image_transport),
) -> Dict[str, Any]:
    if not payload.store_url or not payload.api_token or not payload.product_groups:
        raise HTTPException(400, detail="Missing required data")

    options = SyncOptions.from_settings(
        cfg, batch_guard=payload.batch_guard, upload_images=payload.upload_images,
    )
    logger.info("Starting catalog sync for %d product groups", len(payload.product_groups))

    images: Optional[ImageLookupClient] = None
    if cfg.IMAGE_SERVICE_ENABLED and options.upload_images:
        images = ImageLookupClient(cfg.IMAGE_SERVICE_URL, timeout=cfg.IMAGE_LOOKUP_TIMEOUT, transport=image_transport)
    try:
        async with CatalogClient(
            payload.store_url, payload.api_token,
            api_version=cfg.CATALOG_API_VERSION, timeout=cfg.CATALOG_TIMEOUT, transport=catalog_transport,
        ) as client:
            reconciler = CatalogReconciler(client, image_finder=images, options=options)
            result: SyncResult = await reconciler.sync(payload.product_groups)
    except CatalogConnectionError as e:
        logger.error("Catalog sync aborted: %s", e)
        raise HTTPException(502, detail=str(e))
    finally:
        if images is not None:
            await images.aclose()

    if store is not None:
        for outcome in result.outcomes:
            if outcome.state != GroupSyncState.DONE or not outcome.remote_product_id:
                continue
            group = payload.product_groups[outcome.key]
            try:
                await store.set_remote_product_id((i.stock_id for i in group.stock_items), outcome.remote_product_id)
            except SQLAlchemyError as e:
                # catalog is already updated at this point
                logger.warning("Could not record product id %s for %s: %s", outcome.remote_product_id, outcome.key, e)
                result.details.append(f"Warning: product id {outcome.remote_product_id} not saved locally for {outcome.title}")

    return result.model_dump(mode="json", by_alias=True)


@router.get("/test-scraper-connection")
async def test_scraper_connection(
    cfg: Settings = Depends(get_settings),
    image_transport: Optional[httpx.AsyncBaseTransport] = Depends(get_image_transport),
):
    async with ImageLookupClient(cfg.IMAGE_SERVICE_URL, timeout=cfg.IMAGE_LOOKUP_TIMEOUT, transport=image_transport) as images:
        try:
            health = await images.health()
        except ImageLookupError as e:
            logger.warning("Image service connection failed: %s", e)
            return {
                "success": False,
                "message": "Could not connect to image lookup service",
                "error": str(e),
                "serviceUrl": cfg.IMAGE_SERVICE_URL,
            }
    return {
        "success": True,
        "message": "Successfully connected to image lookup service",
        "scraperHealth": health,
        "integration": "ready",
    }


@router.post("/find-product-images")
async def find_product_images(
    body: FindImagesIn,
    cfg: Settings = Depends(get_settings),
    image_transport: Optional[httpx.AsyncBaseTransport] = Depends(get_image_transport),
):
    params = build_query(body.product_specs)
    async with ImageLookupClient(cfg.IMAGE_SERVICE_URL, timeout=cfg.IMAGE_LOOKUP_TIMEOUT, transport=image_transport) as images:
        try:
            result = await images.find_images(params)
        except ImageLookupError as e:
            raise HTTPException(502, detail=str(e))
    matches = result.get("matches") or []
    return {
        "success": True,
        "query": body.product_specs,
        "imageSearchResults": result,
        "hasImages": bool(result.get("found")),
        "bestMatch": matches[0] if matches else None,
    }
