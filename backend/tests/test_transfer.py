"""CSV import / export tests."""

from datetime import date

import pytest
from sqlalchemy import select

from stockroom.models.scan_log import ScanAction, ScanLog
from stockroom.services.transfer_service import (
    IMPORT_TEMPLATE,
    TransferService,
    content_disposition,
    cycle_count_filename,
    normalize_header,
    sniff_delimiter,
)


async def _upload(client, headers, content, mode=None):
    data = {"mode": mode} if mode else {}
    return await client.post(
        "/api/v1/transfer/import/csv",
        files={"file": ("items.csv", content.encode("utf-8"), "text/csv")},
        data=data,
        headers=headers,
    )


class TestHelpers:
    def test_normalize_header(self):
        assert normalize_header(" Item Number ") == "item_number"
        assert normalize_header("Cost-Price") == "cost_price"

    @pytest.mark.parametrize("line,expected", [
        ("barcode,name,qty", ","),
        ("barcode\tname\tqty", "\t"),
        ("barcode;name;qty", ";"),
        ("barcode", ","),
    ])
    def test_sniff_delimiter(self, line, expected):
        assert sniff_delimiter(line) == expected

    def test_cycle_count_filename(self):
        assert cycle_count_filename("Zone A  Audit", date(2026, 10, 19)) == "cycle-count-Zone-A-Audit-2026-10-19.csv"

    def test_content_disposition_is_ascii_safe(self):
        header = content_disposition("cycle-count-棚卸-A-2026-10-19.csv")

        header.encode("latin-1")
        assert header.startswith('attachment; filename="cycle-count-_-A-2026-10-19.csv"')
        assert header.endswith("filename*=UTF-8''cycle-count-%E6%A3%9A%E5%8D%B8-A-2026-10-19.csv")

    def test_content_disposition_plain_name(self):
        assert content_disposition("inventory-2026-10-19.csv") == (
            "attachment; filename=\"inventory-2026-10-19.csv\"; filename*=UTF-8''inventory-2026-10-19.csv"
        )


class TestExport:
    @pytest.mark.asyncio
    async def test_inventory_export(self, client, auth_headers, make_item):
        await make_item(barcode="B2", name="Bolt", quantity=3, zone="A", cost_price=0.25)
        await make_item(barcode="A1", name="Anchor", quantity=7, description="heavy, cast iron")
        await client.post("/api/v1/scan/", json={"barcode": "B2", "action": "AUDIT"}, headers=auth_headers)

        response = await client.get("/api/v1/transfer/export/csv", headers=auth_headers)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert 'filename="inventory-' in response.headers["content-disposition"]
        lines = response.text.strip().split("\n")
        assert lines[0].startswith("Barcode,Name,Description,Quantity,Bin,Row,Aisle,Zone")
        assert lines[1].startswith('A1,Anchor,"heavy, cast iron",7,')
        assert lines[2].startswith("B2,Bolt,,3,,,,A,")
        assert lines[2].split(",")[15] == "1"
        assert lines[1].split(",")[16] == "0"

    @pytest.mark.asyncio
    async def test_template(self, client, auth_headers):
        response = await client.get("/api/v1/transfer/import/template", headers=auth_headers)

        assert response.status_code == 200
        assert response.text == IMPORT_TEMPLATE
        assert 'filename="inventory-import-template.csv"' in response.headers["content-disposition"]


class TestImport:
    @pytest.mark.asyncio
    async def test_template_import_then_skip(self, client, auth_headers, db_session):
        first = await _upload(client, auth_headers, IMPORT_TEMPLATE)

        assert first.status_code == 200
        assert first.json() == {"imported": 3, "updated": 0, "skipped": 0, "errors": []}

        second = await _upload(client, auth_headers, IMPORT_TEMPLATE)
        assert second.json() == {"imported": 0, "updated": 0, "skipped": 3, "errors": []}

        logs = (await db_session.execute(select(ScanLog))).scalars().all()
        assert len(logs) == 3
        assert {log.action for log in logs} == {ScanAction.CREATED}
        assert {log.notes for log in logs} == {"CSV import"}

        widget = (await client.get("/api/v1/inventory/barcode/123456789012", headers=auth_headers)).json()
        assert widget["name"] == "Widget A"
        assert widget["quantity"] == 50
        assert widget["cost_price"] == 4.99
        assert widget["min_stock"] == 10
        assert widget["location"] == "Zone A / A-1 / R-3 / B-12"
        assert widget["created_by"] == "tester-1"

    @pytest.mark.asyncio
    async def test_update_mode_overwrites(self, client, auth_headers, make_item, db_session):
        await make_item(barcode="111", name="Old name", quantity=9)

        response = await _upload(client, auth_headers, "barcode,name,quantity\n111,New name,0\n", mode="update")

        assert response.json() == {"imported": 0, "updated": 1, "skipped": 0, "errors": []}
        item = (await client.get("/api/v1/inventory/barcode/111", headers=auth_headers)).json()
        assert item["name"] == "New name"
        assert item["quantity"] == 0

        logs = (await db_session.execute(select(ScanLog))).scalars().all()
        assert [(log.action, log.notes) for log in logs] == [(ScanAction.UPDATED, "CSV import update")]

    @pytest.mark.asyncio
    async def test_alternate_delimiters_and_headers(self, client, auth_headers):
        tabbed = await _upload(client, auth_headers, "UPC\tTitle\tQty\n222\tTabbed\t4\n")
        semi = await _upload(client, auth_headers, "SKU;Product Name;Stock;Condition\n333;Semi;x;broken\n")

        assert tabbed.json()["imported"] == 1
        assert semi.json()["imported"] == 1

        tab_item = (await client.get("/api/v1/inventory/barcode/222", headers=auth_headers)).json()
        semi_item = (await client.get("/api/v1/inventory/barcode/333", headers=auth_headers)).json()
        assert tab_item["name"] == "Tabbed"
        assert tab_item["quantity"] == 4
        assert semi_item["quantity"] == 1
        assert semi_item["condition"] == "GOOD"

    @pytest.mark.asyncio
    async def test_row_problems_are_reported(self, client, auth_headers):
        content = "barcode,name\n,No barcode\n444,\n555,Fine\n"

        response = await _upload(client, auth_headers, content)

        assert response.json() == {
            "imported": 1,
            "updated": 0,
            "skipped": 2,
            "errors": ["Row 3: Missing name"],
        }

    @pytest.mark.asyncio
    async def test_rejected_files(self, client, auth_headers):
        no_barcode = await _upload(client, auth_headers, "foo,name\n1,2\n")
        no_name = await _upload(client, auth_headers, "barcode,foo\n1,2\n")
        empty = await _upload(client, auth_headers, "\n\n")
        bad_mode = await _upload(client, auth_headers, IMPORT_TEMPLATE, mode="merge")

        assert no_barcode.status_code == 400
        assert "Available columns: foo, name" in no_barcode.json()["detail"]["message"]
        assert no_name.status_code == 400
        assert empty.status_code == 400
        assert bad_mode.status_code == 400

    @pytest.mark.asyncio
    async def test_non_utf8_upload(self, client, auth_headers):
        response = await client.post(
            "/api/v1/transfer/import/csv",
            files={"file": ("items.csv", b"barcode,name\n1,\xff\xfe\n", "text/csv")},
            headers=auth_headers,
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_service_import_without_http(self, db_session):
        result = await TransferService(db_session).import_inventory_csv(
            "barcode,name,quantity\n666,Direct,2\n", "skip", "tester-2"
        )

        assert result["imported"] == 1

    @pytest.mark.asyncio
    async def test_quoted_fields_may_span_lines(self, client, auth_headers):
        content = 'barcode,name,description,quantity\n777,Crate,"Line one\nline two",3\n\n888,Box,,2\n'

        response = await _upload(client, auth_headers, content)

        assert response.json() == {"imported": 2, "updated": 0, "skipped": 0, "errors": []}
        crate = (await client.get("/api/v1/inventory/barcode/777", headers=auth_headers)).json()
        assert crate["description"] == "Line one\nline two"
        assert crate["quantity"] == 3
