"""
CSV import / export service

Exports the inventory table and cycle count sheets as CSV, and imports
inventory from CSV files produced by other systems. Column detection is
tolerant: headers are normalised and matched against alias lists.
"""
import csv
import io
import re
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from stockroom.core.exceptions import NotFoundError, ValidationError
from stockroom.models.inventory import InventoryItem, ItemCondition
from stockroom.models.scan_log import ScanAction, ScanLog
from stockroom.services.cycle_count_service import CycleCountService
from stockroom.services.scan_log_service import ScanLogService

logger = structlog.get_logger(__name__)

INVENTORY_EXPORT_HEADERS = [
    "Barcode", "Name", "Description", "Quantity", "Bin", "Row", "Aisle", "Zone",
    "Unit", "Category", "Condition", "Min Stock", "Cost Price", "Sage Item ID",
    "Created By", "Total Scans", "Created At", "Updated At",
]

CYCLE_COUNT_EXPORT_HEADERS = [
    "Item ID", "Item Name", "Zone", "Aisle", "Row", "Bin", "Unit", "Expected Qty",
    "Counted Qty", "Variance", "Status", "Counted By", "Adjustment Reason", "Counted At",
]

IMPORT_TEMPLATE = (
    "barcode,name,description,quantity,bin,row,aisle,zone,unit,category,condition,cost_price,min_stock\n"
    "123456789012,Widget A,A standard widget,50,B-12,R-3,A-1,Zone A,each,Widgets,GOOD,4.99,10\n"
    "234567890123,Gadget B,Premium gadget,25,B-5,R-1,A-2,Zone B,each,Gadgets,NEW,12.50,5\n"
    "345678901234,Part C,Replacement part,100,B-20,R-7,A-1,Zone A,box,Parts,GOOD,2.25,20\n"
)

IMPORT_MODES = ("skip", "update")

# Normalised header fragments that identify each field, in priority order
COLUMN_ALIASES = {
    "barcode": ["barcode", "upc", "ean", "sku", "code", "item_number", "item_id"],
    "name": ["name", "title", "product_name", "item_name", "item"],
    "description": ["description", "desc", "details"],
    "quantity": ["quantity", "qty", "stock", "count", "on_hand"],
    "bin": ["bin", "shelf"],
    "row": ["row"],
    "aisle": ["aisle"],
    "zone": ["zone", "warehouse", "location", "loc"],
    "unit": ["unit", "uom", "unit_of_measure"],
    "category": ["category", "cat", "type", "group", "department"],
    "condition": ["condition", "status"],
    "cost_price": ["cost_price", "cost", "price", "unit_cost"],
    "min_stock": ["min_stock", "reorder", "minimum"],
}

TEXT_FIELDS = ("description", "bin", "row", "aisle", "zone", "unit", "category")


def normalize_header(header: str) -> str:
    return re.sub(r"[^a-z0-9_]", "_", header.strip().lower())


def sniff_delimiter(first_line: str) -> str:
    """Pick whichever of comma, tab or semicolon occurs most in the header line"""
    best, best_count = ",", 0
    for candidate in (",", "\t", ";"):
        count = first_line.count(candidate)
        if count > best_count:
            best, best_count = candidate, count
    return best


def find_column(headers: List[str], aliases: List[str]) -> Optional[int]:
    for alias in aliases:
        for index, header in enumerate(headers):
            if alias in header:
                return index
    return None


def _int_or(value: str, fallback: int) -> int:
    match = re.match(r"\s*-?\d+", value or "")
    if not match:
        return fallback
    return int(match.group())


def _float_or_none(value: str) -> Optional[float]:
    try:
        return float(value) or None
    except (TypeError, ValueError):
        return None


def _isoformat(value: Optional[datetime]) -> str:
    return value.isoformat() if value else ""


def cycle_count_filename(name: str, on: Optional[date] = None) -> str:
    on = on or date.today()
    slug = re.sub(r"\s+", "-", name.strip())
    return f"cycle-count-{slug}-{on.isoformat()}.csv"


def inventory_filename(on: Optional[date] = None) -> str:
    on = on or date.today()
    return f"inventory-{on.isoformat()}.csv"


def content_disposition(filename: str) -> str:
    """
    Attachment header safe for latin-1 transport: an ASCII ``filename`` for
    old clients plus the exact name as RFC 5987 ``filename*``.
    """
    fallback = re.sub(r"[^A-Za-z0-9._-]+", "_", filename)
    fallback = fallback.strip("_") or "download.csv"
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"


class TransferService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.scan_logs = ScanLogService(db)

    async def export_inventory_csv(self) -> str:
        """All items ordered by name, with their scan-log counts"""
        scan_counts = (
            select(ScanLog.inventory_item_id, func.count(ScanLog.id).label("total_scans"))
            .group_by(ScanLog.inventory_item_id)
            .subquery()
        )
        query = (
            select(InventoryItem, func.coalesce(scan_counts.c.total_scans, 0))
            .outerjoin(scan_counts, scan_counts.c.inventory_item_id == InventoryItem.id)
            .order_by(InventoryItem.name.asc(), InventoryItem.id.asc())
        )
        result = await self.db.execute(query)
        rows = result.all()

        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(INVENTORY_EXPORT_HEADERS)
        for item, total_scans in rows:
            writer.writerow([
                item.barcode,
                item.name,
                item.description or "",
                item.quantity,
                item.bin or "",
                item.row or "",
                item.aisle or "",
                item.zone or "",
                item.unit or "",
                item.category or "",
                ItemCondition(item.condition).value,
                item.min_stock,
                "" if item.cost_price is None else item.cost_price,
                item.sage_item_id or "",
                item.created_by or "",
                total_scans,
                _isoformat(item.created_at),
                _isoformat(item.updated_at),
            ])

        logger.info("Exported inventory CSV", rows=len(rows))
        return buffer.getvalue()

    async def export_cycle_count_csv(self, cycle_count_id: int) -> Tuple[str, str]:
        """
        One row per entry. Location columns come from the live item; entries
        whose item was deleted fall back to the snapshot barcode and name.

        Returns:
            (csv text, download filename)
        """
        cycle_count = await CycleCountService(self.db).get_count(cycle_count_id)
        if cycle_count is None:
            raise NotFoundError("Cycle count not found", cycle_count_id=cycle_count_id)

        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(CYCLE_COUNT_EXPORT_HEADERS)
        for entry in cycle_count.entries:
            item = entry.inventory_item
            writer.writerow([
                item.barcode if item else entry.item_barcode,
                item.name if item else entry.item_name,
                (item.zone if item else None) or "",
                (item.aisle if item else None) or "",
                (item.row if item else None) or "",
                (item.bin if item else None) or "",
                (item.unit if item else None) or "",
                entry.expected_qty,
                "" if entry.counted_qty is None else entry.counted_qty,
                "" if entry.variance is None else entry.variance,
                entry.status.value,
                entry.counted_by or "",
                entry.adjustment_reason or "",
                _isoformat(entry.counted_at),
            ])

        logger.info("Exported cycle count CSV", cycle_count_id=cycle_count_id, rows=len(cycle_count.entries))
        return buffer.getvalue(), cycle_count_filename(cycle_count.name)

    async def import_inventory_csv(self, text: str, mode: str, actor_id: Optional[str]) -> Dict[str, Any]:
        """
        Import items from CSV text.

        mode "skip" leaves existing barcodes untouched; "update" overwrites
        them. Each created or updated item gets a scan-log row. Row-level
        problems are collected in ``errors`` and never abort the import.

        Returns:
            {"imported", "updated", "skipped", "errors"}
        """
        mode = (mode or "skip").strip().lower()
        if mode not in IMPORT_MODES:
            raise ValidationError("Import mode must be 'skip' or 'update'", field="mode")

        first_line = next((line for line in text.splitlines() if line.strip()), None)
        if first_line is None:
            raise ValidationError("Empty CSV", field="file")

        # Quoted fields may span lines, so the reader gets the whole text
        reader = csv.reader(io.StringIO(text), delimiter=sniff_delimiter(first_line), skipinitialspace=True)
        header_row = next((row for row in reader if any(h.strip() for h in row)), None)
        if header_row is None:
            raise ValidationError("Empty CSV", field="file")
        headers = [normalize_header(h) for h in header_row]
        columns = {field: find_column(headers, aliases) for field, aliases in COLUMN_ALIASES.items()}

        if columns["barcode"] is None:
            raise ValidationError(
                "No barcode/UPC/SKU column found. Available columns: " + ", ".join(headers),
                field="file",
            )
        if columns["name"] is None:
            raise ValidationError(
                "No name/title column found. Available columns: " + ", ".join(headers),
                field="file",
            )

        results = {"imported": 0, "updated": 0, "skipped": 0, "errors": []}

        for row in reader:
            if not any(value.strip() for value in row):
                continue
            line_number = reader.line_num

            def cell(field: str) -> str:
                index = columns[field]
                if index is None or index >= len(row):
                    return ""
                return row[index].strip()

            barcode = cell("barcode")
            name = cell("name")
            if not barcode:
                results["skipped"] += 1
                continue
            if not name:
                results["errors"].append(f"Row {line_number}: Missing name")
                results["skipped"] += 1
                continue

            data = self._row_data(cell, name)
            try:
                outcome = await self._import_row(barcode, data, mode, actor_id)
            except SQLAlchemyError as e:
                await self.db.rollback()
                results["errors"].append(f"Row {line_number} ({barcode}): {str(e)[:100]}")
                continue
            results[outcome] += 1

        logger.info("Imported inventory CSV",
                    mode=mode,
                    imported=results["imported"],
                    updated=results["updated"],
                    skipped=results["skipped"],
                    errors=len(results["errors"]))
        return results

    @staticmethod
    def _row_data(cell, name: str) -> Dict[str, Any]:
        condition = cell("condition").upper() or ItemCondition.GOOD.value
        if condition not in ItemCondition.__members__:
            condition = ItemCondition.GOOD.value

        data = {field: cell(field) or None for field in TEXT_FIELDS}
        data.update(
            name=name,
            quantity=max(0, _int_or(cell("quantity"), 1)),
            condition=ItemCondition(condition),
            cost_price=_float_or_none(cell("cost_price")),
            min_stock=max(0, _int_or(cell("min_stock"), 0)),
        )
        return data

    async def _import_row(self, barcode: str, data: Dict[str, Any], mode: str, actor_id: Optional[str]) -> str:
        result = await self.db.execute(select(InventoryItem).where(InventoryItem.barcode == barcode))
        existing = result.scalar_one_or_none()

        if existing is not None:
            if mode != "update":
                return "skipped"
            for field, value in data.items():
                setattr(existing, field, value)
            await self.db.flush()
            await self.scan_logs.append(
                barcode, ScanAction.UPDATED, actor_id,
                inventory_item_id=existing.id, notes="CSV import update",
            )
            await self.db.commit()
            return "updated"

        item = InventoryItem(barcode=barcode, created_by=actor_id, **data)
        self.db.add(item)
        await self.db.flush()
        await self.scan_logs.append(
            barcode, ScanAction.CREATED, actor_id,
            inventory_item_id=item.id, quantity_change=item.quantity, notes="CSV import",
        )
        await self.db.commit()
        return "imported"
