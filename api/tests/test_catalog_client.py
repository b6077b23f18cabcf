"""Tests for the storefront catalog client.

Covers:
- Base URL / auth header construction
- Cursor pagination through the Link header
- Non-2xx and transport failures raise CatalogAPIError
- Duplicate collection membership (422) is not an error
"""

import httpx
import pytest

from refurb_hub.errors import CatalogAPIError
from refurb_hub.services.catalog_client import CatalogClient, next_page_info, normalize_store_url

STORE = "shop.example.com"
BASE = f"https://{STORE}/admin/api/2023-10"


def client_for(handler) -> CatalogClient:
    return CatalogClient(f"https://{STORE}/", "secret-token", transport=httpx.MockTransport(handler))


def test_normalize_store_url():
    assert normalize_store_url("https://shop.example.com/") == STORE
    assert normalize_store_url("  http://shop.example.com ") == STORE
    assert normalize_store_url(STORE) == STORE


def test_next_page_info():
    link = f'<{BASE}/products.json?limit=250&page_info=abc123>; rel="next"'
    resp = httpx.Response(200, headers={"Link": link})
    assert next_page_info(resp) == "abc123"
    assert next_page_info(httpx.Response(200)) is None


async def test_check_connection_sends_token():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"shop": {"name": "Demo"}})

    async with client_for(handler) as client:
        shop = await client.check_connection()

    assert shop == {"name": "Demo"}
    assert str(seen[0].url) == f"{BASE}/shop.json"
    assert seen[0].headers["X-Shopify-Access-Token"] == "secret-token"


async def test_list_products_follows_link_cursor():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(dict(request.url.params))
        if request.url.params.get("page_info") == "p2":
            return httpx.Response(200, json={"products": [{"id": 2, "title": "B"}]})
        return httpx.Response(
            200,
            json={"products": [{"id": 1, "title": "A"}]},
            headers={"Link": f'<{BASE}/products.json?limit=250&page_info=p2>; rel="next"'},
        )

    async with client_for(handler) as client:
        products = await client.list_products()

    assert [p["id"] for p in products] == [1, 2]
    assert len(seen) == 2
    assert seen[0]["limit"] == "250"
    assert "fields" in seen[0]
    assert seen[1]["page_info"] == "p2"


async def test_error_status_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, text="Invalid API key or access token")

    async with client_for(handler) as client:
        with pytest.raises(CatalogAPIError) as exc:
            await client.check_connection()

    assert exc.value.status == 401
    assert "Invalid API key" in exc.value.body
    assert "401" in str(exc.value)


async def test_transport_failure_is_status_zero():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with client_for(handler) as client:
        with pytest.raises(CatalogAPIError) as exc:
            await client.list_products()

    assert exc.value.status == 0


async def test_add_to_collection_treats_422_as_already_member():
    statuses = iter([201, 422])

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(next(statuses), json={})

    async with client_for(handler) as client:
        assert await client.add_to_collection(1, 2) is True
        assert await client.add_to_collection(1, 2) is False


async def test_add_to_collection_other_errors_raise():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="boom")

    async with client_for(handler) as client:
        with pytest.raises(CatalogAPIError):
            await client.add_to_collection(1, 2)


async def test_update_product_puts_id_in_body(fake_catalog, catalog_client):
    product = fake_catalog.add_product("Old title")
    updated = await catalog_client.update_product(product["id"], {"title": "New title"})
    assert updated["title"] == "New title"
    assert ("PUT", f"products/{product['id']}.json") in fake_catalog.calls
