"""
Pytest fixtures for Refurb Hub tests.

Provides sample inventory rows, an in-memory fake catalog served through
httpx.MockTransport, and a throwaway SQLite database per test.
"""

import copy
import json
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

# Settings are read at import time; point everything at a scratch dir first.
_SCRATCH = Path(tempfile.mkdtemp(prefix="refurb-hub-tests-"))
os.environ.setdefault("DATA_ROOT", str(_SCRATCH))
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{(_SCRATCH / 'api.db').as_posix()}")
os.environ.setdefault("LOG_TO_CONSOLE", "false")
os.environ.setdefault("IMAGE_SERVICE_ENABLED", "false")

import httpx
import pytest

from refurb_hub.database import Database
from refurb_hub.services.catalog_client import CatalogClient
from refurb_hub.services.reconciler import SyncOptions
from refurb_hub.services.store import InventoryStore

API_PREFIX = "/admin/api/2023-10/"

# =============================================================================
# SAMPLE DATA FIXTURES
# =============================================================================


@pytest.fixture
def macbook_rows() -> List[Dict[str, Any]]:
    """Two units of one MacBook Pro spec in different color/grade."""
    return [
        {
            "Stock": "S1", "Serial Number": "C02X1", "Model": 'MacBook Pro 14" 2022',
            "Sub-Category": "Laptops", "Processor": "M2", "Brand": "Apple",
            "Color": "Space Gray", "Condition": "A", "Storage": "512GB", "Memory": "16GB",
        },
        {
            "Stock": "S2", "Serial Number": "C02X2", "Model": 'MacBook Pro 14" 2022',
            "Sub-Category": "Laptops", "Processor": "M2", "Brand": "Apple",
            "Color": "Silver", "Condition": "B", "Storage": "512GB", "Memory": "16GB",
        },
    ]


@pytest.fixture
def mixed_rows(macbook_rows) -> List[Dict[str, Any]]:
    """Laptops, a tablet, a phone and one row nothing recognizes."""
    return macbook_rows + [
        {
            "Stock": "S3", "Serial Number": "C02X3", "Model": 'MacBook Pro 14" 2022',
            "Processor": "Apple M2", "Color": "space grey", "Condition": "Grade A",
            "Storage": "512 gb", "Memory": "16 GB", "Comments": "French keyboard",
        },
        {
            "Stock": "T1", "Serial Number": "DMP1", "Model": "iPad Air 5th Gen",
            "Sub-Category": "Tablets", "Processor": "M1", "Color": "Blue",
            "Condition": "B", "Storage": "64GB",
        },
        {
            "Stock": "P1", "Serial Number": "F2L1", "Model": "iPhone 13 128GB",
            "Sub-Category": "Phones", "Color": "Midnight", "Condition": "C", "Storage": "128GB",
        },
        {"Stock": "X1", "Model": "Office chair", "Sub-Category": "Furniture"},
    ]


def _rows_to_csv(rows: List[Dict[str, Any]]) -> bytes:
    headers: List[str] = []
    for row in rows:
        for k in row:
            if k not in headers:
                headers.append(k)
    lines = [",".join(headers)]
    for row in rows:
        cells = []
        for h in headers:
            v = str(row.get(h, ""))
            if "," in v or '"' in v:
                v = '"' + v.replace('"', '""') + '"'
            cells.append(v)
        lines.append(",".join(cells))
    return ("\n".join(lines) + "\n").encode("utf-8")


@pytest.fixture
def to_csv():
    """Render row dicts as CSV bytes, quoting cells that need it."""
    return _rows_to_csv


# =============================================================================
# FAKE CATALOG
# =============================================================================


class FakeCatalog:
    """
    In-memory storefront catalog behind an httpx.MockTransport handler.

    Records every call as (method, path) and can inject a status code for
    any (method, path) pair via fail().
    """

    def __init__(self):
        self.products: Dict[int, Dict[str, Any]] = {}
        self.collections: Dict[int, Dict[str, Any]] = {}
        self.collects: set = set()
        self.images: List[Tuple[int, Dict[str, Any]]] = []
        self.calls: List[Tuple[str, str]] = []
        self.failures: Dict[Tuple[str, str], int] = {}
        self.pattern_failures: List[Tuple[str, re.Pattern, int]] = []
        self.shop = {"name": "Test Shop"}
        self._next_id = 1000

    # -- setup helpers -------------------------------------------------------

    def next_id(self) -> int:
        self._next_id += 1
        return self._next_id

    def add_product(self, title: str, variants=(), tags: str = "") -> Dict[str, Any]:
        pid = self.next_id()
        self.products[pid] = {
            "id": pid,
            "title": title,
            "tags": tags,
            "variants": [dict(v, id=self.next_id(), product_id=pid) for v in variants],
        }
        return self.products[pid]

    def add_collection(self, title: str) -> Dict[str, Any]:
        cid = self.next_id()
        self.collections[cid] = {"id": cid, "title": title}
        return self.collections[cid]

    def fail(self, method: str, path: str, status: int = 500) -> None:
        self.failures[(method, path)] = status

    def fail_matching(self, method: str, pattern: str, status: int = 500) -> None:
        self.pattern_failures.append((method, re.compile(pattern), status))

    def count(self, method: str, path: str) -> int:
        return sum(1 for c in self.calls if c == (method, path))

    def product_by_title(self, title: str) -> Optional[Dict[str, Any]]:
        for p in self.products.values():
            if p["title"].lower() == title.lower():
                return p
        return None

    @staticmethod
    def variant(product: Dict[str, Any], options: Tuple[str, str, str]) -> Optional[Dict[str, Any]]:
        for v in product["variants"]:
            if (v.get("option1"), v.get("option2"), v.get("option3")) == options:
                return v
        return None

    # -- transport -----------------------------------------------------------

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.split(API_PREFIX, 1)[1]
        method = request.method
        self.calls.append((method, path))
        status = self.failures.get((method, path))
        for verb, pattern, code in self.pattern_failures:
            if not status and verb == method and pattern.fullmatch(path):
                status = code
        if status:
            return httpx.Response(status, json={"errors": "injected failure"})
        body = json.loads(request.content) if request.content else {}

        if path == "shop.json":
            return httpx.Response(200, json={"shop": self.shop})

        if path == "products.json" and method == "GET":
            return httpx.Response(200, json={"products": copy.deepcopy(list(self.products.values()))})

        if path == "products.json" and method == "POST":
            payload = body["product"]
            pid = self.next_id()
            product = dict(payload, id=pid)
            product["variants"] = [
                dict(v, id=self.next_id(), product_id=pid) for v in payload.get("variants", [])
            ]
            self.products[pid] = product
            return httpx.Response(201, json={"product": copy.deepcopy(product)})

        m = re.fullmatch(r"products/(\d+)\.json", path)
        if m and method == "PUT":
            product = self.products.get(int(m.group(1)))
            if product is None:
                return httpx.Response(404, json={"errors": "Not Found"})
            for k, v in body["product"].items():
                if k != "id":
                    product[k] = v
            return httpx.Response(200, json={"product": copy.deepcopy(product)})

        m = re.fullmatch(r"variants/(\d+)\.json", path)
        if m and method == "PUT":
            vid = int(m.group(1))
            for product in self.products.values():
                for v in product["variants"]:
                    if v["id"] == vid:
                        v.update({k: val for k, val in body["variant"].items() if k != "id"})
                        return httpx.Response(200, json={"variant": copy.deepcopy(v)})
            return httpx.Response(404, json={"errors": "Not Found"})

        m = re.fullmatch(r"products/(\d+)/variants\.json", path)
        if m and method == "POST":
            product = self.products[int(m.group(1))]
            variant = dict(body["variant"], id=self.next_id())
            product["variants"].append(variant)
            return httpx.Response(201, json={"variant": copy.deepcopy(variant)})

        m = re.fullmatch(r"products/(\d+)/images\.json", path)
        if m and method == "POST":
            self.images.append((int(m.group(1)), body["image"]))
            return httpx.Response(201, json={"image": dict(body["image"], id=self.next_id())})

        if path == "custom_collections.json" and method == "GET":
            return httpx.Response(200, json={"custom_collections": copy.deepcopy(list(self.collections.values()))})

        if path == "custom_collections.json" and method == "POST":
            payload = body["custom_collection"]
            cid = self.next_id()
            self.collections[cid] = dict(payload, id=cid)
            return httpx.Response(201, json={"custom_collection": copy.deepcopy(self.collections[cid])})

        if path == "collects.json" and method == "POST":
            collect = body["collect"]
            key = (collect["product_id"], collect["collection_id"])
            if key in self.collects:
                return httpx.Response(422, json={"errors": {"product_id": ["already exists"]}})
            self.collects.add(key)
            return httpx.Response(201, json={"collect": collect})

        return httpx.Response(404, json={"errors": f"no route for {method} {path}"})


@pytest.fixture
def fake_catalog() -> FakeCatalog:
    return FakeCatalog()


@pytest.fixture
async def catalog_client(fake_catalog):
    async with CatalogClient(
        "https://test-shop.myshopify.com/", "test-token",
        transport=httpx.MockTransport(fake_catalog.handler),
    ) as client:
        yield client


class SleepRecorder:
    """Async stand-in for asyncio.sleep that only records durations."""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def fast_options() -> SyncOptions:
    return SyncOptions(
        group_pause=0, variant_pause=0, collection_pause=0,
        collection_create_pause=0, image_pause=0,
    )


# =============================================================================
# STORE FIXTURES
# =============================================================================


@pytest.fixture
async def store(tmp_path):
    inventory = InventoryStore(Database(f"sqlite+aiosqlite:///{(tmp_path / 'store.db').as_posix()}"))
    await inventory.open()
    try:
        yield inventory
    finally:
        await inventory.close()
