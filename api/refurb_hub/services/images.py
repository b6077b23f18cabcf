# refurb_hub/services/images.py
"""
Image lookup service client (optional collaborator).

GET /api/find-images?<spec fields>  -> {found, matchCount, matches: [{images: [...]}]}
GET /api/health                      -> service status

Failures here never fail a sync: callers get None / no images instead.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, Iterable, Mapping, Optional

import httpx

from refurb_hub.domain import ImageAvailability, ProductGroup
from refurb_hub.errors import ImageLookupError

logger = logging.getLogger(__name__)

# query parameter -> attribute on a group / spec payload
QUERY_FIELDS = (
    ("productType", "product_type"),
    ("displaySize", "display_size"),
    ("processor", "processor"),
    ("year", "year"),
    ("storage", "storage"),
    ("memory", "memory"),
    ("color", "color"),
    ("condition", "condition"),
    ("keyboardLayout", "keyboard_layout"),
)
AVAILABILITY_FIELDS = ("productType", "displaySize", "processor", "year")


def build_query(specs: Mapping[str, Any], only: Optional[Iterable[str]] = None) -> Dict[str, str]:
    """Query params from camelCase or snake_case spec keys; empty values are dropped."""
    allowed = set(only) if only else None
    params: Dict[str, str] = {}
    for camel, snake in QUERY_FIELDS:
        if allowed is not None and camel not in allowed:
            continue
        value = specs.get(camel) or specs.get(snake)
        if value:
            params[camel] = str(value)
    return params


def group_query(group: ProductGroup) -> Dict[str, str]:
    return build_query(group.model_dump(), only=AVAILABILITY_FIELDS)


class ImageLookupClient:
    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)

    async def __aenter__(self) -> "ImageLookupClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get(self, path: str, params: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        try:
            resp = await self._client.get(path, params=params)
        except httpx.HTTPError as e:
            raise ImageLookupError(f"Image service unreachable: {e}") from e
        if resp.status_code >= 400:
            raise ImageLookupError(f"Image service responded with status: {resp.status_code}")
        try:
            return resp.json()
        except ValueError as e:
            raise ImageLookupError(f"Image service returned invalid JSON: {e}") from e

    async def health(self) -> Dict[str, Any]:
        return await self._get("/api/health")

    async def find_images(self, params: Dict[str, str]) -> Dict[str, Any]:
        result = await self._get("/api/find-images", params=params)
        logger.debug(
            "Image search %s -> %s",
            params, f"{result.get('matchCount', 0)} matches" if result.get("found") else "no matches",
        )
        return result

    async def best_match(self, group: ProductGroup) -> Optional[Dict[str, Any]]:
        """Best match for a group, or None when nothing was found or the service failed."""
        stored = group.image_availability
        if stored is not None and stored.has_images and stored.best_match:
            return stored.best_match
        try:
            result = await self.find_images(group_query(group))
        except ImageLookupError as e:
            logger.warning("Image search failed for %s: %s", group.seo_title, e)
            return None
        if not result.get("found"):
            return None
        matches = result.get("matches") or []
        return matches[0] if matches else None


def availability_from(result: Mapping[str, Any]) -> ImageAvailability:
    matches = result.get("matches") or []
    return ImageAvailability(
        has_images=bool(result.get("found")),
        match_count=int(result.get("matchCount") or 0),
        best_match=matches[0] if matches else None,
    )


async def attach_image_availability(groups: Mapping[str, ProductGroup], client: ImageLookupClient) -> int:
    """Store an image pre-check on each group; returns how many groups have images."""
    with_images = 0
    for group in groups.values():
        try:
            result = await client.find_images(group_query(group))
        except ImageLookupError as e:
            logger.info("Image search failed for %s: %s", group.seo_title, e)
            continue
        group.image_availability = availability_from(result)
        if group.image_availability.has_images:
            with_images += 1
    return with_images
