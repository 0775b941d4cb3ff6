"""Cycle count HTTP API tests."""

import pytest


async def _create(client, headers, **overrides):
    payload = {"name": "Zone A Audit", "filter_type": "zone", "filter_value": "A"}
    payload.update(overrides)
    return await client.post("/api/v1/cycle-counts/", json=payload, headers=headers)


class TestCycleCountAPI:
    """Cycle count endpoints."""

    @pytest.mark.asyncio
    async def test_requires_actor_header(self, client, zone_a_items):
        response = await client.get("/api/v1/cycle-counts/")

        assert response.status_code == 401
        assert response.json()["detail"]["error_code"] == "MISSING_ACTOR"

    @pytest.mark.asyncio
    async def test_create_and_get(self, client, auth_headers, zone_a_items):
        response = await _create(client, auth_headers, notes="Monthly")

        assert response.status_code == 201
        created = response.json()
        assert created["entry_count"] == 3
        assert created["status"] == "NOT_STARTED"
        assert created["filter_type"] == "zone"
        assert created["created_by"] == "tester-1"

        response = await client.get(f"/api/v1/cycle-counts/{created['id']}", headers=auth_headers)

        assert response.status_code == 200
        detail = response.json()
        assert [e["expected_qty"] for e in detail["entries"]] == [10, 0, 5]
        assert detail["entries"][0]["inventory_item"]["barcode"] == zone_a_items[0].barcode
        assert detail["summary"] == {
            "total_entries": 3,
            "counted_entries": 0,
            "skipped_entries": 0,
            "pending_entries": 3,
            "variance_count": 0,
            "total_variance": 0,
        }

    @pytest.mark.asyncio
    async def test_create_errors(self, client, auth_headers, zone_a_items):
        blank = await _create(client, auth_headers, name="  ")
        empty = await _create(client, auth_headers, filter_value="Nowhere")
        unknown = await _create(client, auth_headers, filter_type="shelf")

        assert blank.status_code == 400
        assert blank.json()["detail"]["error_code"] == "VALIDATION_ERROR"
        assert empty.status_code == 400
        assert empty.json()["detail"]["error_code"] == "EMPTY_SELECTION"
        assert unknown.status_code == 400

        listing = await client.get("/api/v1/cycle-counts/", headers=auth_headers)
        assert listing.json() == []

    @pytest.mark.asyncio
    async def test_get_unknown(self, client, auth_headers):
        response = await client.get("/api/v1/cycle-counts/999", headers=auth_headers)

        assert response.status_code == 404
        assert response.json()["detail"]["error_code"] == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_full_workflow(self, client, auth_headers, zone_a_items):
        created = (await _create(client, auth_headers)).json()
        detail = (await client.get(f"/api/v1/cycle-counts/{created['id']}", headers=auth_headers)).json()
        first, second, third = [e["id"] for e in detail["entries"]]

        counted = await client.put(
            f"/api/v1/cycle-counts/entries/{first}",
            json={"counted_qty": 8, "adjustment_reason": "Two units damaged"},
            headers=auth_headers,
        )
        assert counted.status_code == 200
        assert counted.json()["variance"] == -2
        assert counted.json()["status"] == "COUNTED"

        await client.put(f"/api/v1/cycle-counts/entries/{second}", json={"counted_qty": "0"}, headers=auth_headers)
        skipped = await client.post(f"/api/v1/cycle-counts/entries/{third}/skip", headers=auth_headers)
        assert skipped.json()["status"] == "SKIPPED"

        listing = (await client.get("/api/v1/cycle-counts/?status=IN_PROGRESS", headers=auth_headers)).json()
        assert len(listing) == 1
        assert listing[0]["progress"] == 67
        assert listing[0]["variance_count"] == 1

        response = await client.put(
            f"/api/v1/cycle-counts/{created['id']}/status", json={"status": "COUNTED"}, headers=auth_headers
        )
        assert response.status_code == 200
        assert response.json()["reconciliation"] is None

        response = await client.put(
            f"/api/v1/cycle-counts/{created['id']}/status", json={"status": "RECONCILED"}, headers=auth_headers
        )
        body = response.json()
        assert response.status_code == 200
        assert body["cycle_count"]["status"] == "RECONCILED"
        assert body["reconciliation"] == {"applied": 1, "failed": 0, "errors": []}

        item = (await client.get(f"/api/v1/inventory/{zone_a_items[0].id}", headers=auth_headers)).json()
        assert item["quantity"] == 8

        logs = (await client.get(
            f"/api/v1/scan/logs?barcode={zone_a_items[0].barcode}", headers=auth_headers
        )).json()
        assert logs[0]["action"] == "AUDITED"
        assert logs[0]["quantity_change"] == -2

    @pytest.mark.asyncio
    async def test_invalid_transition_names_both_states(self, client, auth_headers, zone_a_items):
        created = (await _create(client, auth_headers)).json()

        response = await client.put(
            f"/api/v1/cycle-counts/{created['id']}/status", json={"status": "RECONCILED"}, headers=auth_headers
        )

        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["error_code"] == "INVALID_TRANSITION"
        assert detail["message"] == "Cannot transition from NOT_STARTED to RECONCILED"
        assert detail["current_status"] == "NOT_STARTED"
        assert detail["requested_status"] == "RECONCILED"

    @pytest.mark.asyncio
    async def test_record_count_errors(self, client, auth_headers, zone_a_items):
        created = (await _create(client, auth_headers)).json()
        detail = (await client.get(f"/api/v1/cycle-counts/{created['id']}", headers=auth_headers)).json()
        entry_id = detail["entries"][0]["id"]

        negative = await client.put(
            f"/api/v1/cycle-counts/entries/{entry_id}", json={"counted_qty": -4}, headers=auth_headers
        )
        missing = await client.put("/api/v1/cycle-counts/entries/9999", json={"counted_qty": 1}, headers=auth_headers)
        skip_missing = await client.post("/api/v1/cycle-counts/entries/9999/skip", headers=auth_headers)

        assert negative.status_code == 400
        assert missing.status_code == 404
        assert skip_missing.status_code == 404

    @pytest.mark.asyncio
    async def test_delete_rules(self, client, auth_headers, zone_a_items):
        created = (await _create(client, auth_headers)).json()
        await client.put(
            f"/api/v1/cycle-counts/{created['id']}/status", json={"status": "IN_PROGRESS"}, headers=auth_headers
        )

        refused = await client.delete(f"/api/v1/cycle-counts/{created['id']}", headers=auth_headers)
        assert refused.status_code == 400
        assert refused.json()["detail"]["error_code"] == "INVALID_STATE"

        await client.put(
            f"/api/v1/cycle-counts/{created['id']}/status", json={"status": "VOIDED"}, headers=auth_headers
        )
        deleted = await client.delete(f"/api/v1/cycle-counts/{created['id']}", headers=auth_headers)
        assert deleted.status_code == 200
        assert deleted.json() == {"success": True}

        gone = await client.get(f"/api/v1/cycle-counts/{created['id']}", headers=auth_headers)
        assert gone.status_code == 404

    @pytest.mark.asyncio
    async def test_export_csv(self, client, auth_headers, zone_a_items):
        created = (await _create(client, auth_headers)).json()
        detail = (await client.get(f"/api/v1/cycle-counts/{created['id']}", headers=auth_headers)).json()
        await client.put(
            f"/api/v1/cycle-counts/entries/{detail['entries'][0]['id']}",
            json={"counted_qty": 8, "adjustment_reason": "Damaged, two units"},
            headers=auth_headers,
        )

        response = await client.get(f"/api/v1/cycle-counts/{created['id']}/export", headers=auth_headers)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert 'filename="cycle-count-Zone-A-Audit-' in response.headers["content-disposition"]
        lines = response.text.strip().split("\n")
        assert lines[0].startswith("Item ID,Item Name,Zone,Aisle,Row,Bin,Unit,Expected Qty")
        assert len(lines) == 4
        assert lines[1].startswith(f"{zone_a_items[0].barcode},Widget A,A,A-1,,,,10,8,-2,COUNTED,tester-1,")
        assert '"Damaged, two units"' in lines[1]

        missing = await client.get("/api/v1/cycle-counts/999/export", headers=auth_headers)
        assert missing.status_code == 404

    @pytest.mark.asyncio
    async def test_export_non_ascii_name(self, client, auth_headers, zone_a_items):
        created = (await _create(client, auth_headers, name='棚卸 "Zone" A')).json()

        response = await client.get(f"/api/v1/cycle-counts/{created['id']}/export", headers=auth_headers)

        assert response.status_code == 200
        disposition = response.headers["content-disposition"]
        assert 'filename="cycle-count-_-_Zone_-A-' in disposition
        assert "filename*=UTF-8''cycle-count-%E6%A3%9A%E5%8D%B8-%22Zone%22-A-" in disposition
        assert len(response.text.strip().split("\n")) == 4
