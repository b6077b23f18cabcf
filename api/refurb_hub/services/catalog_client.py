# refurb_hub/services/catalog_client.py
"""
Storefront catalog client (Shopify-style Admin REST) over httpx.AsyncClient.

One method per endpoint the reconciler uses. Every non-2xx response raises
CatalogAPIError(status, body); transport failures raise it with status 0.
Calls are never retried here.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

import httpx

from refurb_hub.errors import CatalogAPIError

logger = logging.getLogger(__name__)

PAGE_LIMIT = 250
PRODUCT_LIST_FIELDS = "id,title,handle,tags,variants,product_type"


def normalize_store_url(store_url: str) -> str:
    """'https://shop.myshopify.com/' -> 'shop.myshopify.com'."""
    s = (store_url or "").strip()
    for prefix in ("https://", "http://"):
        if s.lower().startswith(prefix):
            s = s[len(prefix):]
    return s.strip("/")


def next_page_info(response: httpx.Response) -> Optional[str]:
    """Cursor from the Link header's rel="next" entry, if any."""
    nxt = response.links.get("next")
    if not nxt or not nxt.get("url"):
        return None
    return httpx.URL(nxt["url"]).params.get("page_info")


class CatalogClient:
    """Async client for one store. Use as `async with CatalogClient(...) as client:`."""

    def __init__(
        self,
        store_url: str,
        access_token: str,
        api_version: str = "2023-10",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.store = normalize_store_url(store_url)
        self.base_url = f"https://{self.store}/admin/api/{api_version}/"
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Content-Type": "application/json",
                "X-Shopify-Access-Token": access_token,
            },
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "CatalogClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # =========================================================================
    # Transport
    # =========================================================================

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        try:
            resp = await self._client.request(method, path, params=params, json=json)
        except httpx.HTTPError as e:
            raise CatalogAPIError(0, str(e), method, path) from e
        if resp.status_code >= 400:
            raise CatalogAPIError(resp.status_code, resp.text, method, path)
        return resp

    async def _paginate(self, path: str, key: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        page_info: Optional[str] = None
        while True:
            page_params = dict(params)
            if page_info:
                page_params["page_info"] = page_info
            resp = await self._request("GET", path, params=page_params)
            items.extend(resp.json().get(key) or [])
            page_info = next_page_info(resp)
            logger.debug("Fetched %d %s so far", len(items), key)
            if not page_info:
                return items

    # =========================================================================
    # Shop / products / variants
    # =========================================================================

    async def check_connection(self) -> Dict[str, Any]:
        resp = await self._request("GET", "shop.json")
        return resp.json().get("shop") or {}

    async def list_products(self) -> List[Dict[str, Any]]:
        return await self._paginate(
            "products.json", "products", {"limit": PAGE_LIMIT, "fields": PRODUCT_LIST_FIELDS},
        )

    async def create_product(self, product: Dict[str, Any]) -> Dict[str, Any]:
        resp = await self._request("POST", "products.json", json={"product": product})
        return resp.json()["product"]

    async def update_product(self, product_id: int, product: Dict[str, Any]) -> Dict[str, Any]:
        body = dict(product, id=product_id)
        resp = await self._request("PUT", f"products/{product_id}.json", json={"product": body})
        return resp.json().get("product") or {}

    async def update_variant(self, variant_id: int, variant: Dict[str, Any]) -> Dict[str, Any]:
        body = dict(variant, id=variant_id)
        resp = await self._request("PUT", f"variants/{variant_id}.json", json={"variant": body})
        return resp.json().get("variant") or {}

    async def create_variant(self, product_id: int, variant: Dict[str, Any]) -> Dict[str, Any]:
        body = dict(variant, product_id=product_id)
        resp = await self._request("POST", f"products/{product_id}/variants.json", json={"variant": body})
        return resp.json().get("variant") or {}

    # =========================================================================
    # Collections
    # =========================================================================

    async def list_custom_collections(self) -> List[Dict[str, Any]]:
        return await self._paginate("custom_collections.json", "custom_collections", {"limit": PAGE_LIMIT})

    async def create_custom_collection(self, collection: Dict[str, Any]) -> Dict[str, Any]:
        resp = await self._request("POST", "custom_collections.json", json={"custom_collection": collection})
        return resp.json()["custom_collection"]

    async def add_to_collection(self, product_id: int, collection_id: int) -> bool:
        """True when added, False when the product was already a member (422)."""
        try:
            await self._request(
                "POST", "collects.json",
                json={"collect": {"product_id": product_id, "collection_id": collection_id}},
            )
        except CatalogAPIError as e:
            if e.status == 422:
                return False
            raise
        return True

    # =========================================================================
    # Images
    # =========================================================================

    async def create_product_image(self, product_id: int, image: Dict[str, Any]) -> Dict[str, Any]:
        body = dict(image, product_id=product_id)
        resp = await self._request("POST", f"products/{product_id}/images.json", json={"image": body})
        return resp.json().get("image") or {}
