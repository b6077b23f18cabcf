# refurb_hub/services/reconciler.py
"""
Catalog Reconciler - create-or-update product groups in the remote catalog.

Per group: PENDING -> MATCHING -> CREATING | UPDATING -> DONE | FAILED
(or SKIPPED when there is nothing to sync).

Rules:
- Matching is exact, case-insensitive title equality against the listing
  fetched once at the start of the run (plus entities created in this run).
- Updates ADD local bucket quantities to the remote variant's inventory.
- A failed update is never retried as a create.
- Calls are strictly sequential with configurable pauses between them.
"""
from __future__ import annotations
import asyncio
import hashlib
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from refurb_hub.domain import (
    DEFAULT_COLOR, DEFAULT_GRADE, KEYBOARD_ENGLISH, ProductGroup, VariantBucket,
)
from refurb_hub.errors import CatalogAPIError, CatalogConnectionError, ImageLookupError
from refurb_hub.models import GroupOutcome, GroupSyncState, SyncResult
from refurb_hub.services import content
from refurb_hub.services.catalog_client import CatalogClient

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]
BATCH_TAG_PREFIX = "sync-batch-"


@dataclass
class SyncOptions:
    group_pause: float = 0.5
    variant_pause: float = 0.3
    collection_pause: float = 0.2
    collection_create_pause: float = 0.3
    image_pause: float = 0.6
    max_images: int = 8
    batch_guard: bool = False
    upload_images: bool = True

    @classmethod
    def from_settings(cls, settings, **overrides) -> "SyncOptions":
        opts = cls(
            group_pause=settings.GROUP_PAUSE_SECONDS,
            variant_pause=settings.VARIANT_PAUSE_SECONDS,
            collection_pause=settings.COLLECTION_PAUSE_SECONDS,
            collection_create_pause=settings.COLLECTION_CREATE_PAUSE_SECONDS,
            image_pause=settings.IMAGE_PAUSE_SECONDS,
            max_images=settings.MAX_IMAGES_PER_PRODUCT,
            batch_guard=settings.SYNC_BATCH_GUARD,
        )
        for name, value in overrides.items():
            if value is not None:
                setattr(opts, name, value)
        return opts


# ============================================================================
# Payload builders (pure)
# ============================================================================

def batch_fingerprint(group: ProductGroup) -> str:
    """Tag identifying exactly this set of units, e.g. 'sync-batch-3fa2b9c01d4e'."""
    ids = sorted(item.stock_id or item.serial_number for item in group.stock_items)
    digest = hashlib.sha256("\n".join(ids).encode("utf-8")).hexdigest()
    return BATCH_TAG_PREFIX + digest[:12]


def remote_tags(entity: Mapping[str, Any]) -> List[str]:
    raw = entity.get("tags") or ""
    if isinstance(raw, str):
        return [t.strip() for t in raw.split(",") if t.strip()]
    return [str(t).strip() for t in raw]


def _bucket_payload(group: ProductGroup, bucket: VariantBucket) -> Dict[str, Any]:
    option1, option2, option3 = bucket.options
    barcode = next((i.serial_number for i in bucket.stock_items if i.serial_number), None)
    return {
        "title": f"{bucket.color} - Grade {bucket.condition} - {bucket.keyboard_layout}",
        "option1": option1,
        "option2": option2,
        "option3": option3,
        "inventory_quantity": bucket.quantity,
        "inventory_management": "shopify",
        "inventory_policy": "deny",
        "sku": bucket.sku,
        "barcode": barcode,
        "price": str(bucket.price),
        "compare_at_price": str(bucket.compare_at_price) if bucket.compare_at_price > bucket.price else None,
        "weight": content.estimate_weight(group.product_type),
        "weight_unit": "kg",
        "requires_shipping": True,
        "taxable": True,
        "fulfillment_service": "manual",
    }


def default_variant_payload(group: ProductGroup) -> Dict[str, Any]:
    spec = group.spec
    return {
        "title": f"{DEFAULT_COLOR} - Grade {DEFAULT_GRADE} - {KEYBOARD_ENGLISH}",
        "option1": DEFAULT_COLOR,
        "option2": f"Grade {DEFAULT_GRADE}",
        "option3": KEYBOARD_ENGLISH,
        "inventory_quantity": group.total_units,
        "inventory_management": "shopify",
        "inventory_policy": "deny",
        "sku": content.variant_sku(spec, DEFAULT_COLOR, DEFAULT_GRADE, KEYBOARD_ENGLISH),
        "price": str(group.base_price or content.base_price(spec)),
        "weight": content.estimate_weight(group.product_type),
        "weight_unit": "kg",
        "requires_shipping": True,
        "taxable": True,
    }


def variant_payloads(group: ProductGroup) -> List[Dict[str, Any]]:
    """One remote variant per bucket (quantity = bucket size), sorted by options."""
    payloads = [_bucket_payload(group, b) for b in group.variants.values() if b.quantity > 0]
    payloads.sort(key=lambda v: (v["option1"], v["option2"], v["option3"]))
    if not payloads:
        payloads.append(default_variant_payload(group))
    return payloads


def _distinct(values: Iterable[str]) -> List[str]:
    out: List[str] = []
    for v in values:
        if v not in out:
            out.append(v)
    return out


def product_payload(group: ProductGroup, variants: List[Dict[str, Any]], tags: List[str]) -> Dict[str, Any]:
    return {
        "title": group.seo_title,
        "body_html": group.product_description,
        "vendor": "Apple",
        "product_type": group.product_type,
        "status": "active",
        "handle": group.seo_handle,
        "options": [
            {"name": "Color", "values": _distinct(v["option1"] for v in variants)},
            {"name": "Condition", "values": _distinct(v["option2"] for v in variants)},
            {"name": "Keyboard", "values": _distinct(v["option3"] for v in variants)},
        ],
        "variants": variants,
        "tags": ", ".join(tags),
        "seo_title": group.seo_title,
        "seo_description": group.seo_description,
    }


def update_payload(group: ProductGroup, tags: List[str]) -> Dict[str, Any]:
    return {
        "title": group.seo_title,
        "body_html": group.product_description,
        "tags": ", ".join(tags),
        "seo_title": group.seo_title,
        "seo_description": group.seo_description,
    }


def find_variant(remote_variants: Iterable[Dict[str, Any]], options: Tuple[str, str, str]) -> Optional[Dict[str, Any]]:
    for v in remote_variants:
        if (v.get("option1"), v.get("option2"), v.get("option3")) == options:
            return v
    return None


def collection_payload(name: str) -> Dict[str, Any]:
    return {
        "title": name,
        "handle": content.collection_handle(name),
        "published": True,
        "sort_order": "best-selling",
        "body_html": f"<p>Certified refurbished {name} devices with professional quality guarantee.</p>",
    }


def _context_suffix(ctx: Mapping[str, Any]) -> str:
    return (
        f"[type={ctx.get('productType')}, processor={ctx.get('processor') or '-'}, "
        f"storage={ctx.get('storage') or '-'}, memory={ctx.get('memory') or '-'}, "
        f"units={ctx.get('totalUnits')}, variants={ctx.get('variantCount')}]"
    )


# ============================================================================
# Reconciler
# ============================================================================

class CatalogReconciler:
    """Runs one sync of a product-group map against one catalog client."""

    def __init__(
        self,
        client: CatalogClient,
        image_finder=None,
        options: Optional[SyncOptions] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.client = client
        self.image_finder = image_finder
        self.options = options or SyncOptions()
        self._sleep = sleep
        self._by_title: Dict[str, Dict[str, Any]] = {}
        self._collections: Dict[str, int] = {}

    # =========================================================================
    # Run
    # =========================================================================

    async def sync(self, groups: Mapping[str, ProductGroup]) -> SyncResult:
        """Sync every group. Raises CatalogConnectionError before any group on fatal errors."""
        await self._connect()
        remote = await self._fatal(self.client.list_products(), "Failed to fetch products")
        self._by_title = {}
        for entity in remote:
            self._by_title.setdefault(str(entity.get("title") or "").lower(), entity)
        logger.info("Found %d existing products in store", len(remote))

        result = SyncResult()
        result.collections_created = await self.setup_collections(groups.values())

        for key, group in groups.items():
            outcome = await self.sync_group(key, group)
            self._record(result, group, outcome)
            await self._sleep(self.options.group_pause)

        logger.info(
            "Sync complete: created=%d updated=%d errors=%d skipped=%d",
            result.created, result.updated, result.errors, result.skipped,
        )
        return result

    async def _connect(self) -> None:
        try:
            shop = await self.client.check_connection()
        except CatalogAPIError as e:
            raise CatalogConnectionError(
                f"Catalog connection failed: {e.status} - Check your store URL and API token", e
            ) from e
        logger.info("Connected to store %s", shop.get("name") or self.client.store)

    @staticmethod
    async def _fatal(call: Awaitable[Any], message: str) -> Any:
        try:
            return await call
        except CatalogAPIError as e:
            raise CatalogConnectionError(f"{message}: {e}", e) from e

    @staticmethod
    def _record(result: SyncResult, group: ProductGroup, outcome: GroupOutcome) -> None:
        result.outcomes.append(outcome)
        title = outcome.title
        if outcome.state == GroupSyncState.DONE:
            n_variants = outcome.variants_created + outcome.variants_updated
            result.variants_created += outcome.variants_created
            result.variants_updated += outcome.variants_updated
            result.stock_items_processed += outcome.stock_items
            if outcome.action == "create":
                result.created += 1
                result.details.append(f"Created: {title} ({n_variants} variants, {outcome.stock_items} items)")
            else:
                result.updated += 1
                result.details.append(f"Updated: {title} ({n_variants} variants, {outcome.stock_items} items)")
        elif outcome.state == GroupSyncState.FAILED:
            result.errors += 1
            suffix = _context_suffix(outcome.context)
            if outcome.action == "update":
                result.details.append(
                    f"Update failed for: {title} - {outcome.error} (skipped to prevent duplicate) {suffix}"
                )
            else:
                result.details.append(f"Create failed for: {title} - {outcome.error} {suffix}")
        else:
            result.skipped += 1
            result.details.append(f"Skipped: {title} ({outcome.error})")

    # =========================================================================
    # Collections
    # =========================================================================

    async def setup_collections(self, groups: Iterable[ProductGroup]) -> int:
        """Fetch existing collections once and create missing ones. Returns number created."""
        needed = _distinct(name for g in groups if g.total_units > 0 for name in g.collections if name)
        existing = await self._fatal(self.client.list_custom_collections(), "Failed to fetch collections")
        self._collections = {
            str(c.get("title") or "").lower(): c["id"] for c in existing if c.get("id")
        }

        created = 0
        for name in needed:
            if name.lower() in self._collections:
                continue
            try:
                collection = await self.client.create_custom_collection(collection_payload(name))
                self._collections[name.lower()] = collection["id"]
                created += 1
                logger.info("Created collection: %s", name)
            except CatalogAPIError as e:
                logger.warning("Failed to create collection %s: %s", name, e)
            await self._sleep(self.options.collection_create_pause)
        return created

    async def _add_to_collections(self, product_id: int, names: Iterable[str]) -> None:
        for name in names:
            collection_id = self._collections.get(name.lower())
            if not collection_id:
                logger.info("Collection not found: %s", name)
                continue
            try:
                added = await self.client.add_to_collection(product_id, collection_id)
                if not added:
                    logger.debug("Product %s already in collection %s", product_id, name)
            except CatalogAPIError as e:
                logger.warning("Failed to add product %s to collection %s: %s", product_id, name, e)
            await self._sleep(self.options.collection_pause)

    # =========================================================================
    # Per-group state machine
    # =========================================================================

    def find_existing(self, group: ProductGroup) -> Optional[Dict[str, Any]]:
        return self._by_title.get((group.seo_title or "").lower())

    async def sync_group(self, key: str, group: ProductGroup) -> GroupOutcome:
        outcome = GroupOutcome(
            key=key,
            title=group.seo_title,
            stock_items=group.total_units,
            context=group.diagnostic_context(),
        )
        if group.total_units <= 0:
            outcome.state = GroupSyncState.SKIPPED
            outcome.error = "no units"
            return outcome

        tags = list(group.tags)
        fingerprint = batch_fingerprint(group) if self.options.batch_guard else None
        if fingerprint:
            tags.append(fingerprint)

        outcome.state = GroupSyncState.MATCHING
        existing = self.find_existing(group)

        if existing is not None:
            if fingerprint and fingerprint in remote_tags(existing):
                outcome.state = GroupSyncState.SKIPPED
                outcome.remote_product_id = existing.get("id")
                outcome.error = f"batch already applied ({fingerprint})"
                logger.info("Skipping %s: batch %s already applied", group.seo_title, fingerprint)
                return outcome
            # a full tag list is PUT on update; keep earlier batch tags
            tags.extend(t for t in remote_tags(existing) if t.startswith(BATCH_TAG_PREFIX) and t not in tags)
            outcome.state = GroupSyncState.UPDATING
            outcome.action = "update"
            step = self._update(existing, group, tags, outcome)
        else:
            outcome.state = GroupSyncState.CREATING
            outcome.action = "create"
            step = self._create(group, tags, outcome)

        try:
            await step
        except Exception as e:
            outcome.state = GroupSyncState.FAILED
            outcome.error = str(e)
            logger.error(
                "%s failed for %s: %s | %s",
                outcome.action, group.seo_title, e, outcome.context,
            )
            return outcome

        outcome.state = GroupSyncState.DONE
        group.shopify_product_id = outcome.remote_product_id
        return outcome

    async def _create(self, group: ProductGroup, tags: List[str], outcome: GroupOutcome) -> None:
        variants = variant_payloads(group)
        logger.info("Creating %s with %d variants", group.seo_title, len(variants))
        product = await self.client.create_product(product_payload(group, variants, tags))
        product_id = product["id"]
        outcome.remote_product_id = product_id
        outcome.variants_created = len(variants)

        # later groups with the same title in this run update this entity
        self._by_title[(group.seo_title or "").lower()] = {
            "id": product_id,
            "title": product.get("title") or group.seo_title,
            "tags": product.get("tags") or ", ".join(tags),
            "variants": product.get("variants") or [],
        }

        if self.options.upload_images and self.image_finder is not None:
            try:
                outcome.images_uploaded = await self._upload_images(product_id, group)
            except Exception as e:
                logger.warning("Image step failed for %s (product %s): %s", group.seo_title, product_id, e)
        await self._add_to_collections(product_id, group.collections)

    async def _update(
        self, existing: Dict[str, Any], group: ProductGroup, tags: List[str], outcome: GroupOutcome,
    ) -> None:
        product_id = existing["id"]
        outcome.remote_product_id = product_id
        logger.info("Updating %s (id %s, %d remote variants)",
                    group.seo_title, product_id, len(existing.get("variants") or []))

        updated = await self.client.update_product(product_id, update_payload(group, tags))
        remote_variants = [dict(v) for v in (updated.get("variants") or existing.get("variants") or [])]

        for payload in variant_payloads(group):
            options = (payload["option1"], payload["option2"], payload["option3"])
            match = find_variant(remote_variants, options)
            if match is not None:
                current = int(match.get("inventory_quantity") or 0)
                new_quantity = current + int(payload["inventory_quantity"])
                await self.client.update_variant(match["id"], {
                    "inventory_quantity": new_quantity,
                    "price": payload["price"],
                    "compare_at_price": payload.get("compare_at_price"),
                    "sku": payload["sku"],
                })
                logger.debug("Variant %s: %d + %d = %d", options, current, payload["inventory_quantity"], new_quantity)
                match["inventory_quantity"] = new_quantity
                outcome.variants_updated += 1
            else:
                created = await self.client.create_variant(product_id, payload)
                remote_variants.append(created or dict(payload))
                outcome.variants_created += 1
            await self._sleep(self.options.variant_pause)

        self._by_title[(group.seo_title or "").lower()] = dict(
            existing, variants=remote_variants, tags=", ".join(tags),
        )

    # =========================================================================
    # Images
    # =========================================================================

    async def _upload_images(self, product_id: int, group: ProductGroup) -> int:
        try:
            match = await self.image_finder.best_match(group)
        except ImageLookupError as e:
            logger.warning("Image lookup failed for %s: %s", group.seo_title, e)
            return 0
        images = match.get("images") if isinstance(match, dict) else None
        if not isinstance(images, list):
            return 0
        images = [img for img in images if isinstance(img, dict) and img.get("url")]
        if not images:
            return 0

        uploaded = 0
        batch = images[: self.options.max_images]
        for i, image in enumerate(batch, start=1):
            try:
                await self.client.create_product_image(product_id, {
                    "src": image.get("url"),
                    "alt": image.get("seoAltTag") or image.get("imageDescription") or f"Product image {i}",
                    "filename": image.get("filename"),
                })
                uploaded += 1
            except (CatalogAPIError, ValueError) as e:
                logger.warning("Image %d upload failed for product %s: %s", i, product_id, e)
            await self._sleep(self.options.image_pause)
        logger.info("Images uploaded: %d/%d", uploaded, len(batch))
        return uploaded
