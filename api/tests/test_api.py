"""Tests for the HTTP shell (FastAPI TestClient).

Covers:
- Health endpoint with database status
- Upload -> grouped result, persisted units, validation errors
- Sync round trip with the upload response as the request body
- A failed local write-back still returns the sync summary
- Image service probes
- Sales, costs, reports and dashboard endpoints
"""

import uuid

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from refurb_hub.deps import get_catalog_transport, get_image_transport, get_settings, get_store
from refurb_hub.main import app
from refurb_hub.settings import Settings

STORE_URL = "https://test-shop.myshopify.com"


def fast_settings(**overrides) -> Settings:
    values = dict(
        GROUP_PAUSE_SECONDS=0, VARIANT_PAUSE_SECONDS=0, COLLECTION_PAUSE_SECONDS=0,
        COLLECTION_CREATE_PAUSE_SECONDS=0, IMAGE_PAUSE_SECONDS=0, IMAGE_SERVICE_ENABLED=False,
    )
    values.update(overrides)
    return Settings(**values)


def image_service(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/api/health":
        return httpx.Response(200, json={"status": "ok"})
    if request.url.path == "/api/find-images":
        return httpx.Response(200, json={
            "found": True,
            "matchCount": 1,
            "matches": [{"images": [{"url": "https://img.local/front.jpg", "filename": "front.jpg"}]}],
        })
    return httpx.Response(404)


class BrokenStore:
    """Store whose product-id write-back fails like a locked database."""

    async def set_remote_product_id(self, stock_ids, remote_product_id):
        raise OperationalError("UPDATE products", {}, Exception("database is locked"))


@pytest.fixture
def client(fake_catalog):
    app.dependency_overrides[get_settings] = lambda: fast_settings()
    app.dependency_overrides[get_catalog_transport] = lambda: httpx.MockTransport(fake_catalog.handler)
    app.dependency_overrides[get_image_transport] = lambda: httpx.MockTransport(image_service)
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def inventory_csv(macbook_rows, to_csv):
    """Two-unit MacBook sheet with stock ids unique to this test."""
    prefix = uuid.uuid4().hex[:8]
    for i, row in enumerate(macbook_rows, start=1):
        row["Stock"] = f"{prefix}-{i}"
    return to_csv(macbook_rows), [r["Stock"] for r in macbook_rows]


def upload(client, csv_bytes, **params):
    return client.post(
        "/api/process-excel",
        params=params,
        files={"excelFile": ("inventory.csv", csv_bytes, "text/csv")},
    )


# ---------------------------------------------------------------------------
# Health / upload
# ---------------------------------------------------------------------------


def test_health(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    assert body["database"]["status"] == "healthy"


class TestUpload:
    def test_missing_file(self, client):
        resp = client.post("/api/process-excel")
        assert resp.status_code == 400
        assert resp.json()["detail"] == "No file uploaded"

    def test_empty_file(self, client):
        resp = upload(client, b"")
        assert resp.status_code == 400

    def test_unreadable_workbook(self, client):
        resp = client.post(
            "/api/process-excel",
            files={"excelFile": ("inventory.xlsx", b"not a workbook", "application/octet-stream")},
        )
        assert resp.status_code == 400

    def test_groups_and_persists_units(self, client, inventory_csv):
        csv_bytes, stock_ids = inventory_csv
        resp = upload(client, csv_bytes)

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["groupCount"] == 1
        assert body["totalUniqueUnits"] == 2
        assert body["debug"]["savedUnits"] == 2
        group = body["productGroups"]["MacBookPro_14_M2_512GB_16GB_2022"]
        assert group["seoTitle"] == 'Refurbished MacBook Pro 14" M2 2022 512GB 16GB'
        assert group["variants"]["Space Gray|A|English"]["price"] == 2519
        assert group["variants"]["Silver|B|English"]["compareAtPrice"] == 3599

        resp = client.get(f"/api/product/{stock_ids[0]}")
        assert resp.status_code == 200
        product = resp.json()["product"]
        assert product["productType"] == "MacBook Pro"
        assert product["condition"] == "A"

    def test_unknown_product(self, client):
        resp = client.get("/api/product/does-not-exist")
        assert resp.status_code == 404

    def test_image_precheck(self, client, inventory_csv):
        app.dependency_overrides[get_settings] = lambda: fast_settings(IMAGE_SERVICE_ENABLED=True)
        resp = upload(client, inventory_csv[0])
        body = resp.json()
        assert body["debug"]["groupsWithImages"] == 1
        group = next(iter(body["productGroups"].values()))
        assert group["imageAvailability"]["hasImages"] is True

        resp = upload(client, inventory_csv[0], checkImages="false")
        assert resp.json()["debug"]["groupsWithImages"] == 0


# ---------------------------------------------------------------------------
# Sync
# ---------------------------------------------------------------------------


class TestSync:
    def test_round_trip(self, client, fake_catalog, inventory_csv):
        csv_bytes, stock_ids = inventory_csv
        groups = upload(client, csv_bytes).json()["productGroups"]

        resp = client.post("/api/sync-shopify", json={
            "storeUrl": STORE_URL, "apiToken": "tok", "productGroups": groups,
        })

        assert resp.status_code == 200
        result = resp.json()
        assert (result["created"], result["updated"], result["errors"]) == (1, 0, 0)
        assert result["outcomes"][0]["state"] == "DONE"
        product_id = result["outcomes"][0]["remoteProductId"]
        assert product_id in fake_catalog.products
        assert client.get(f"/api/product/{stock_ids[1]}").json()["product"]["remoteProductId"] == product_id

    def test_images_uploaded_from_precheck(self, client, fake_catalog, inventory_csv):
        app.dependency_overrides[get_settings] = lambda: fast_settings(IMAGE_SERVICE_ENABLED=True)
        groups = upload(client, inventory_csv[0]).json()["productGroups"]

        resp = client.post("/api/sync-shopify", json={
            "storeUrl": STORE_URL, "apiToken": "tok", "productGroups": groups,
        })

        assert resp.json()["outcomes"][0]["imagesUploaded"] == 1
        assert fake_catalog.images[0][1]["src"] == "https://img.local/front.jpg"

    def test_store_write_failure_still_returns_summary(self, client, fake_catalog, inventory_csv):
        groups = upload(client, inventory_csv[0]).json()["productGroups"]
        app.dependency_overrides[get_store] = lambda: BrokenStore()

        resp = client.post("/api/sync-shopify", json={
            "storeUrl": STORE_URL, "apiToken": "tok", "productGroups": groups,
        })

        assert resp.status_code == 200
        result = resp.json()
        assert (result["created"], result["errors"]) == (1, 0)
        assert any("not saved locally" in line for line in result["details"])
        assert len(fake_catalog.products) == 1

    def test_missing_data(self, client):
        resp = client.post("/api/sync-shopify", json={"storeUrl": STORE_URL})
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Missing required data"

    def test_bad_credentials(self, client, fake_catalog, inventory_csv):
        groups = upload(client, inventory_csv[0]).json()["productGroups"]
        fake_catalog.fail("GET", "shop.json", 401)

        resp = client.post("/api/sync-shopify", json={
            "storeUrl": STORE_URL, "apiToken": "wrong", "productGroups": groups,
        })

        assert resp.status_code == 502
        assert "Catalog connection failed: 401" in resp.json()["detail"]

    def test_inconsistent_group_rejected(self, client, inventory_csv):
        groups = upload(client, inventory_csv[0]).json()["productGroups"]
        next(iter(groups.values()))["totalUnits"] = 5

        resp = client.post("/api/sync-shopify", json={
            "storeUrl": STORE_URL, "apiToken": "tok", "productGroups": groups,
        })

        assert resp.status_code == 422


# ---------------------------------------------------------------------------
# Image service probes
# ---------------------------------------------------------------------------


class TestImageService:
    def test_connection_ok(self, client):
        body = client.get("/api/test-scraper-connection").json()
        assert body["success"] is True
        assert body["scraperHealth"] == {"status": "ok"}

    def test_connection_down(self, client):
        def down(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        app.dependency_overrides[get_image_transport] = lambda: httpx.MockTransport(down)
        body = client.get("/api/test-scraper-connection").json()
        assert body["success"] is False
        assert "unreachable" in body["error"]

    def test_find_images(self, client):
        resp = client.post("/api/find-product-images", json={
            "productSpecs": {"productType": "MacBook Pro", "displaySize": '14"', "processor": "M2"},
        })
        body = resp.json()
        assert body["success"] is True
        assert body["hasImages"] is True
        assert body["bestMatch"]["images"][0]["filename"] == "front.jpg"


# ---------------------------------------------------------------------------
# Sales
# ---------------------------------------------------------------------------


class TestSales:
    def test_record_sale_and_costs(self, client, inventory_csv):
        csv_bytes, stock_ids = inventory_csv
        upload(client, csv_bytes)
        stock_id = stock_ids[0]

        resp = client.post("/api/record-sale", json={
            "stockId": stock_id, "salePrice": 1200, "paymentMethod": "interac",
            "customerName": "Jordan", "saleDate": "2024-05-02T14:00:00",
        })
        assert resp.status_code == 200
        assert resp.json()["success"] is True
        assert client.get(f"/api/product/{stock_id}").json()["product"]["sold"] is True

        resp = client.post("/api/add-cost", json={"stockId": stock_id, "costType": "repair", "amount": 40})
        assert resp.json()["totalCosts"] == 40.0
        resp = client.post("/api/add-cost", json={"stockId": stock_id, "costType": "shipping", "amount": 12.5})
        assert resp.json()["totalCosts"] == 52.5

        costs = client.get(f"/api/costs/{stock_id}").json()["costs"]
        assert len(costs) == 2
        assert {c["costType"] for c in costs} == {"repair", "shipping"}

        report = client.get("/api/reports", params={
            "type": "interac-sales", "startDate": "2024-05-01", "endDate": "2024-05-03",
        }).json()
        assert stock_id in [r["stock_id"] for r in report["data"]]

    def test_sale_for_unknown_unit(self, client):
        resp = client.post("/api/record-sale", json={
            "stockId": "missing-unit", "salePrice": 10, "paymentMethod": "cash",
        })
        assert resp.status_code == 404

    def test_invalid_payment_method(self, client):
        resp = client.post("/api/record-sale", json={
            "stockId": "anything", "salePrice": 10, "paymentMethod": "bitcoin",
        })
        assert resp.status_code == 422

    def test_invalid_report_type(self, client):
        resp = client.get("/api/reports", params={"type": "everything"})
        assert resp.status_code == 400

    def test_dashboard_stats(self, client, inventory_csv):
        upload(client, inventory_csv[0])
        body = client.get("/api/dashboard-stats").json()
        assert set(body) == {"totalProducts", "availableProducts", "soldProducts", "totalSales"}
        assert body["totalProducts"] >= 2
        assert body["totalProducts"] == body["availableProducts"] + body["soldProducts"]
