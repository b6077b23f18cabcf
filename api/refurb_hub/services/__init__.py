# refurb_hub/services/__init__.py
"""
Business logic services for Refurb Hub.
"""
from refurb_hub.services.catalog_client import CatalogClient
from refurb_hub.services.grouping import build_product_groups, group_key
from refurb_hub.services.images import ImageLookupClient
from refurb_hub.services.reconciler import CatalogReconciler, SyncOptions
from refurb_hub.services.store import InventoryStore

__all__ = [
    "CatalogClient",
    "CatalogReconciler",
    "ImageLookupClient",
    "InventoryStore",
    "SyncOptions",
    "build_product_groups",
    "group_key",
]
