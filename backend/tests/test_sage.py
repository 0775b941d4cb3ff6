"""Sage Intacct sync tests."""

import xml.etree.ElementTree as ET
from types import SimpleNamespace

import httpx
import pytest

from stockroom.api.deps import get_http_client
from stockroom.core.config import settings
from stockroom.main import app
from stockroom.services.sage_service import SageService, build_request, create_item_function

SUCCESS = "<response><operation><result><status>success</status></result></operation></response>"
FAILURE = "<response><errormessage><error><errorno>XL03000006</errorno></error></errormessage></response>"


@pytest.fixture
def sage_credentials(monkeypatch):
    monkeypatch.setattr(settings, "SAGE_SENDER_ID", "sender")
    monkeypatch.setattr(settings, "SAGE_SENDER_PASSWORD", "sender-pw")
    monkeypatch.setattr(settings, "SAGE_COMPANY_ID", "acme")
    monkeypatch.setattr(settings, "SAGE_USER_ID", "api-user")
    monkeypatch.setattr(settings, "SAGE_USER_PASSWORD", "user-pw")


def _client(responder):
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return responder(request)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler)), requests


class TestRequestEnvelope:
    def test_item_create_envelope(self, sage_credentials):
        item = SimpleNamespace(barcode="111", name="Widget & Co", description=None, category=None)

        xml = build_request("sync-111-1", create_item_function("sync-111-1", item))

        assert xml.startswith('<?xml version="1.0" encoding="UTF-8"?>\n<request>')
        root = ET.fromstring(xml.split("\n", 1)[1])
        assert root.findtext("control/senderid") == "sender"
        assert root.findtext("operation/authentication/login/companyid") == "acme"
        record = root.find("operation/content/function/create/ITEM")
        assert record.findtext("ITEMID") == "111"
        assert record.findtext("NAME") == "Widget & Co"
        assert record.findtext("PRODUCTLINEID") == "Default"


class TestSageService:
    @pytest.mark.asyncio
    async def test_sync_without_credentials(self, db_session, make_item):
        await make_item(name="Widget")
        client, requests = _client(lambda request: httpx.Response(200, text=SUCCESS))

        async with client:
            result = await SageService(db_session, client).sync_items()

        assert result["synced"] == 0
        assert result["failed"] == 1
        assert result["errors"] == ["Widget: Sage Intacct credentials not configured"]
        assert requests == []

    @pytest.mark.asyncio
    async def test_sync_stamps_sage_item_id(self, db_session, make_item, sage_credentials):
        good = await make_item(barcode="G1", name="Good")
        bad = await make_item(barcode="B1", name="Bad")
        already = await make_item(barcode="S1", name="Synced", sage_item_id="SAGE-9")

        def responder(request):
            body = request.content.decode()
            return httpx.Response(200, text=FAILURE if "<ITEMID>B1</ITEMID>" in body else SUCCESS)

        client, requests = _client(responder)
        async with client:
            result = await SageService(db_session, client).sync_items()

        assert result["total"] == 3
        assert result["synced"] == 2
        assert result["failed"] == 1
        assert result["message"] == "Synced 2/3 items to Sage Intacct"
        assert good.sage_item_id == "G1"
        assert bad.sage_item_id is None
        assert already.sage_item_id == "SAGE-9"
        assert requests[0].headers["content-type"] == "application/xml"

    @pytest.mark.asyncio
    async def test_http_error_is_reported_per_item(self, db_session, make_item, sage_credentials):
        await make_item(name="Widget")
        client, _ = _client(lambda request: httpx.Response(503))

        async with client:
            result = await SageService(db_session, client).sync_items()

        assert result["failed"] == 1
        assert "503" in result["errors"][0]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text,expected", [
        (SUCCESS, {"connected": True, "message": "Connected to Sage Intacct"}),
        (FAILURE, {"connected": False, "message": "Authentication failed"}),
    ])
    async def test_connection(self, db_session, sage_credentials, text, expected):
        client, requests = _client(lambda request: httpx.Response(200, text=text))

        async with client:
            result = await SageService(db_session, client).test_connection()

        assert result == expected
        assert b"<getAPISession />" in requests[0].content

    @pytest.mark.asyncio
    async def test_connection_without_credentials(self, db_session):
        client, requests = _client(lambda request: httpx.Response(200, text=SUCCESS))

        async with client:
            result = await SageService(db_session, client).test_connection()

        assert result["connected"] is False
        assert result["message"].startswith("Sage Intacct credentials not configured")
        assert requests == []


class TestSageAPI:
    @pytest.mark.asyncio
    async def test_status_and_sync(self, client, auth_headers, make_item, sage_credentials):
        await make_item(barcode="X1")

        async def override_http_client():
            async with httpx.AsyncClient(
                transport=httpx.MockTransport(lambda request: httpx.Response(200, text=SUCCESS))
            ) as mocked:
                yield mocked

        app.dependency_overrides[get_http_client] = override_http_client

        status = await client.get("/api/v1/sage/status", headers=auth_headers)
        tested = await client.get("/api/v1/sage/status?test=true", headers=auth_headers)
        synced = await client.post("/api/v1/sage/sync", headers=auth_headers)

        assert status.json() == {"status": "ok", "configured": True}
        assert tested.json()["connected"] is True
        assert synced.json()["synced"] == 1
