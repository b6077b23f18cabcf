# refurb_hub/errors.py
"""
Exception types shared by the pipeline, the catalog sync and the store.
"""
from __future__ import annotations
from typing import Optional


class RefurbHubError(Exception):
    """Base class for all Refurb Hub errors."""


class SpreadsheetError(RefurbHubError):
    """Uploaded inventory file could not be decoded into rows."""


class CatalogAPIError(RefurbHubError):
    """Non-2xx response (or transport failure, status 0) from the catalog API."""

    def __init__(self, status: int, body: str = "", method: str = "", path: str = ""):
        self.status = status
        self.body = body
        self.method = method
        self.path = path
        label = f"{method} {path}".strip()
        detail = (body or "").strip()
        if len(detail) > 300:
            detail = detail[:300] + "..."
        msg = f"{label} failed: {status}" if label else f"Catalog API error: {status}"
        if detail:
            msg += f" - {detail}"
        super().__init__(msg)


class CatalogConnectionError(RefurbHubError):
    """Fatal: the catalog could not be reached or rejected our credentials."""

    def __init__(self, message: str, cause: Optional[Exception] = None):
        super().__init__(message)
        self.cause = cause


class ImageLookupError(RefurbHubError):
    """Image lookup service failed or is unreachable."""


class RecordNotFoundError(RefurbHubError):
    """Requested stock id does not exist in the store."""

    def __init__(self, stock_id: str):
        super().__init__(f"Product not found: {stock_id}")
        self.stock_id = stock_id
