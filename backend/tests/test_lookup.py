"""Barcode product lookup tests."""

import httpx
import pytest

from stockroom.api.deps import get_http_client
from stockroom.core.exceptions import ValidationError
from stockroom.main import app
from stockroom.services.lookup_service import ProductLookupService


def _transport(off=None, upc=None):
    """Mock transport answering Open Food Facts and UPCitemdb with the given (status, json)"""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url)
        if "openfoodfacts" in request.url.host:
            status, body = off or (404, {"status": 0})
        else:
            status, body = upc or (404, {})
        if isinstance(body, Exception):
            raise body
        return httpx.Response(status, json=body)

    return httpx.MockTransport(handler), calls


class TestProductLookupService:
    @pytest.mark.asyncio
    async def test_open_food_facts_hit(self):
        transport, calls = _transport(off=(200, {
            "status": 1,
            "product": {
                "product_name": "Sparkling Water",
                "generic_name": "Carbonated water",
                "categories": "Beverages, Waters",
            },
        }))
        async with httpx.AsyncClient(transport=transport) as client:
            result = await ProductLookupService(client).lookup(" 5000112637922 ")

        assert result == {
            "name": "Sparkling Water",
            "description": "Carbonated water",
            "category": "Beverages",
            "source": "openfoodfacts",
        }
        assert len(calls) == 1
        assert "5000112637922.json" in calls[0].path

    @pytest.mark.asyncio
    async def test_falls_through_to_upcitemdb(self):
        transport, calls = _transport(
            off=(200, {"status": 0}),
            upc=(200, {"items": [{"title": "USB Cable", "category": "Electronics"}]}),
        )
        async with httpx.AsyncClient(transport=transport) as client:
            result = await ProductLookupService(client).lookup("0885909950805")

        assert result == {"name": "USB Cable", "description": "", "category": "Electronics", "source": "upcitemdb"}
        assert calls[1].params["upc"] == "0885909950805"

    @pytest.mark.asyncio
    async def test_failures_fall_back_to_barcode(self):
        transport, _ = _transport(
            off=(200, httpx.ConnectError("offline")),
            upc=(500, {"error": "boom"}),
        )
        async with httpx.AsyncClient(transport=transport) as client:
            result = await ProductLookupService(client).lookup("42")

        assert result == {"name": "42", "description": "", "category": "", "source": "none"}

    @pytest.mark.asyncio
    async def test_blank_barcode(self):
        async with httpx.AsyncClient(transport=_transport()[0]) as client:
            with pytest.raises(ValidationError):
                await ProductLookupService(client).lookup("   ")


class TestLookupAPI:
    @pytest.mark.asyncio
    async def test_lookup_endpoint(self, client, auth_headers):
        transport, _ = _transport(upc=(200, {"items": [{"title": "Stapler"}]}))

        async def override_http_client():
            async with httpx.AsyncClient(transport=transport) as mocked:
                yield mocked

        app.dependency_overrides[get_http_client] = override_http_client

        hit = await client.get("/api/v1/lookup/?barcode=123", headers=auth_headers)
        missing = await client.get("/api/v1/lookup/", headers=auth_headers)

        assert hit.status_code == 200
        assert hit.json()["name"] == "Stapler"
        assert hit.json()["source"] == "upcitemdb"
        assert missing.status_code == 400
