"""
Scan request / scan log schemas
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime

from stockroom.models.scan_log import ScanAction
from stockroom.schemas.inventory import InventoryItemResponse, ScanItemPayload


class ScanRequest(BaseModel):
    """
    Barcode scan submitted by a camera or wireless scanner.

    action is one of CREATE, INCREMENT, DECREMENT, AUDIT; anything else is
    rejected by the service with a 400.
    """
    barcode: str = ""
    action: str
    item: Optional[ScanItemPayload] = None
    quantity_change: Optional[int] = None
    notes: Optional[str] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "barcode": "123456789012",
                "action": "INCREMENT",
                "quantity_change": 5,
                "notes": "Received shipment"
            }
        }
    )


class ScanResult(BaseModel):
    action: str  # created / incremented / decremented / audited
    item: Optional[InventoryItemResponse] = None


class ScanLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    barcode: str
    action: ScanAction
    quantity_change: Optional[int] = None
    notes: Optional[str] = None
    scanned_by: Optional[str] = None
    inventory_item_id: Optional[int] = None
    item_name: Optional[str] = Field(None, description="Name of the referenced item, if it still exists")
    created_at: Optional[datetime] = None
