"""
Sage Intacct push sync

Sage Intacct exposes an XML gateway: every request carries a control block
(sender credentials), an authentication block (company login) and a content
block with one or more <function> elements. A response containing
<errorno> is a failure.
"""
import time
import xml.etree.ElementTree as ET
from typing import Any, Dict, Tuple

import httpx
import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stockroom.core.config import settings
from stockroom.models.inventory import InventoryItem

logger = structlog.get_logger(__name__)

CREDENTIALS_MISSING = "Sage Intacct credentials not configured"


def credentials_configured() -> bool:
    return bool(settings.SAGE_SENDER_ID and settings.SAGE_USER_ID)


def build_request(control_id: str, function: ET.Element) -> str:
    """Wrap a single <function> in the control/authentication/content envelope"""
    root = ET.Element("request")

    control = ET.SubElement(root, "control")
    ET.SubElement(control, "senderid").text = settings.SAGE_SENDER_ID
    ET.SubElement(control, "password").text = settings.SAGE_SENDER_PASSWORD
    ET.SubElement(control, "controlid").text = control_id
    ET.SubElement(control, "uniqueid").text = "false"
    ET.SubElement(control, "dtdversion").text = "3.0"
    ET.SubElement(control, "includewhitespace").text = "false"

    operation = ET.SubElement(root, "operation")
    login = ET.SubElement(ET.SubElement(operation, "authentication"), "login")
    ET.SubElement(login, "userid").text = settings.SAGE_USER_ID
    ET.SubElement(login, "companyid").text = settings.SAGE_COMPANY_ID
    ET.SubElement(login, "password").text = settings.SAGE_USER_PASSWORD

    ET.SubElement(operation, "content").append(function)

    body = ET.tostring(root, encoding="unicode", method="xml")
    return '<?xml version="1.0" encoding="UTF-8"?>\n' + body


def create_item_function(control_id: str, item: InventoryItem) -> ET.Element:
    function = ET.Element("function", controlid=control_id)
    record = ET.SubElement(ET.SubElement(function, "create"), "ITEM")
    ET.SubElement(record, "ITEMID").text = item.barcode
    ET.SubElement(record, "NAME").text = item.name
    ET.SubElement(record, "ITEMTYPE").text = "Inventory"
    ET.SubElement(record, "EXTENDED_DESCRIPTION").text = item.description or ""
    ET.SubElement(record, "PRODUCTLINEID").text = item.category or "Default"
    return function


def _control_id(prefix: str) -> str:
    return f"{prefix}-{int(time.time() * 1000)}"


class SageService:
    def __init__(self, db: AsyncSession, client: httpx.AsyncClient):
        self.db = db
        self.client = client

    async def _send(self, xml: str) -> str:
        response = await self.client.post(
            settings.SAGE_ENDPOINT,
            content=xml.encode("utf-8"),
            headers={"Content-Type": "application/xml"},
            timeout=settings.SAGE_TIMEOUT,
        )
        if response.status_code >= 400:
            raise httpx.HTTPStatusError(
                f"Sage API error: {response.status_code} {response.reason_phrase}",
                request=response.request,
                response=response,
            )
        return response.text

    async def sync_item(self, item: InventoryItem) -> Tuple[bool, str]:
        """Push one item as an ITEM create; returns (success, response text or error)"""
        if not credentials_configured():
            return False, CREDENTIALS_MISSING

        control_id = _control_id(f"sync-{item.barcode}")
        xml = build_request(control_id, create_item_function(control_id, item))
        try:
            response = await self._send(xml)
        except httpx.HTTPError as e:
            return False, str(e)
        return "<errorno>" not in response, response

    async def sync_items(self) -> Dict[str, Any]:
        """
        Push every item. The first successful sync of an item stamps
        sage_item_id with its barcode.
        """
        items = (await self.db.execute(select(InventoryItem).order_by(InventoryItem.id.asc()))).scalars().all()
        results = {"total": len(items), "synced": 0, "failed": 0, "errors": []}

        for item in items:
            success, response = await self.sync_item(item)
            if success:
                results["synced"] += 1
                if not item.sage_item_id:
                    item.sage_item_id = item.barcode
            else:
                results["failed"] += 1
                results["errors"].append(f"{item.name}: {response}")

        await self.db.commit()

        results["message"] = f"Synced {results['synced']}/{results['total']} items to Sage Intacct"
        logger.info("Sage sync finished", total=results["total"], synced=results["synced"], failed=results["failed"])
        return results

    async def test_connection(self) -> Dict[str, Any]:
        if not credentials_configured():
            return {"connected": False, "message": CREDENTIALS_MISSING + ". Set environment variables."}

        control_id = _control_id("test")
        function = ET.Element("function", controlid=control_id)
        ET.SubElement(function, "getAPISession")

        try:
            response = await self._send(build_request(control_id, function))
        except httpx.HTTPError as e:
            logger.warning("Sage connection test failed", error=str(e))
            return {"connected": False, "message": str(e) or "Connection failed"}

        if "<errorno>" in response:
            return {"connected": False, "message": "Authentication failed"}
        return {"connected": True, "message": "Connected to Sage Intacct"}


def status_payload() -> Dict[str, Any]:
    return {"status": "ok", "configured": credentials_configured()}
