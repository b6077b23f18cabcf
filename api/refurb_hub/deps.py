# refurb_hub/deps.py
"""
FastAPI dependencies shared by the routers.

The transports default to None (real network); tests override them with
httpx.MockTransport through app.dependency_overrides.
"""
from __future__ import annotations
from typing import Optional

import httpx
from fastapi import Request

from refurb_hub.services.store import InventoryStore
from refurb_hub.settings import Settings, settings


def get_settings() -> Settings:
    return settings


def get_store(request: Request) -> Optional[InventoryStore]:
    """Store opened in the app lifespan, or None when persistence is unavailable."""
    return getattr(request.app.state, "store", None)


def get_catalog_transport() -> Optional[httpx.AsyncBaseTransport]:
    return None


def get_image_transport() -> Optional[httpx.AsyncBaseTransport]:
    return None
