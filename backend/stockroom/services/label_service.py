"""
Printable barcode label sheets

Renders a self-contained HTML page with one page-sized label per copy of
each selected item. Barcodes are drawn in the browser by JsBarcode from the
data attributes on each <svg>.
"""
from dataclasses import dataclass
from datetime import date
from html import escape
from typing import List, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stockroom.core.exceptions import NotFoundError, ValidationError
from stockroom.models.inventory import InventoryItem

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class LabelSize:
    width_mm: int
    height_mm: int
    barcode_height: int


# Dymo label stock
LABEL_SIZES = {
    "30252": LabelSize(89, 29, 18),
    "30336": LabelSize(54, 25, 12),
    "30332": LabelSize(25, 25, 15),
    "30256": LabelSize(102, 59, 25),
}
DEFAULT_LABEL_SIZE = "30252"

FONT_SIZES = {"small": "8pt", "medium": "10pt", "large": "12pt"}

LABEL_STYLE = (
    "width: {width}mm; height: {height}mm; page-break-after: always; display: flex; "
    "flex-direction: column; align-items: center; justify-content: center; padding: 2mm; "
    "box-sizing: border-box; font-family: Arial, sans-serif; gap: 1mm;"
)

PAGE_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>Print Labels</title>
<style>
  @page {{ size: {width}mm {height}mm; margin: 0; }}
  * {{ margin: 0; padding: 0; box-sizing: border-box; }}
  body {{ background: #fff; }}
  .label:last-child {{ page-break-after: auto; }}
  @media screen {{
    body {{ background: #f0f0f0; display: flex; flex-direction: column; align-items: center; gap: 8px; padding: 16px; }}
    .label {{ background: #fff; box-shadow: 0 1px 3px rgba(0,0,0,0.2); }}
  }}
</style>
<script src="https://cdn.jsdelivr.net/npm/jsbarcode@3.11.6/dist/JsBarcode.all.min.js"></script>
</head>
<body>
{labels}
<script>
document.querySelectorAll('.barcode').forEach(function(el) {{
  var options = {{ width: 2, height: parseInt(el.dataset.height), displayValue: true, fontSize: 10, margin: 2 }};
  try {{
    JsBarcode(el, el.dataset.barcode, Object.assign({{ format: el.dataset.format }}, options));
  }} catch(e) {{
    JsBarcode(el, el.dataset.barcode, Object.assign({{ format: 'CODE128' }}, options));
  }}
}});
setTimeout(function() {{ window.print(); }}, 500);
</script>
</body>
</html>"""


@dataclass
class LabelOptions:
    size: str = DEFAULT_LABEL_SIZE
    copies: int = 1
    show_name: bool = True
    show_barcode: bool = True
    show_location: bool = False
    show_qty: bool = False
    show_date: bool = False
    custom_text: str = ""
    barcode_type: str = "CODE128"
    font_size: str = "medium"


def parse_item_ids(raw: Optional[str]) -> List[int]:
    """Comma separated ids; blanks are ignored, anything non-numeric is a 400"""
    ids = []
    for part in (raw or "").split(","):
        part = part.strip()
        if not part:
            continue
        if not part.isdigit():
            raise ValidationError(f"Invalid item id '{part}'", field="items")
        ids.append(int(part))
    return ids


def render_label(item: InventoryItem, options: LabelOptions, label_size: LabelSize, today: str) -> str:
    parts = []
    if options.show_name:
        font_size = FONT_SIZES.get(options.font_size, FONT_SIZES["medium"])
        parts.append(
            f'<div style="font-size: {font_size}; font-weight: bold; text-align: center; max-width: 100%; '
            f'overflow: hidden; text-overflow: ellipsis; white-space: nowrap;">{escape(item.name)}</div>'
        )
    if options.show_barcode:
        parts.append(
            f'<svg class="barcode" data-barcode="{escape(item.barcode)}" '
            f'data-format="{escape(options.barcode_type)}" data-height="{label_size.barcode_height}"></svg>'
        )
    if options.show_location and item.location:
        parts.append(f'<div style="font-size: 8pt; color: #666;">{escape(item.location)}</div>')
    if options.show_qty:
        parts.append(f'<div style="font-size: 8pt;">Qty: {item.quantity}</div>')
    if options.show_date:
        parts.append(f'<div style="font-size: 7pt; color: #999;">{today}</div>')
    if options.custom_text:
        parts.append(f'<div style="font-size: 8pt;">{escape(options.custom_text)}</div>')

    style = LABEL_STYLE.format(width=label_size.width_mm, height=label_size.height_mm)
    return f'<div class="label" style="{style}">{"".join(parts)}</div>'


class LabelService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def render_labels(self, item_ids: List[int], options: LabelOptions) -> str:
        """
        Build the label sheet for the given items.

        Unknown sizes fall back to 30252; copies below 1 print once.

        Raises:
            ValidationError: no ids given
            NotFoundError: none of the ids exist
        """
        if not item_ids:
            raise ValidationError("No items selected", field="items")

        query = select(InventoryItem).where(InventoryItem.id.in_(item_ids)).order_by(InventoryItem.id.asc())
        items = (await self.db.execute(query)).scalars().all()
        if not items:
            raise NotFoundError("No items found", item_ids=item_ids)

        label_size = LABEL_SIZES.get(options.size, LABEL_SIZES[DEFAULT_LABEL_SIZE])
        copies = max(1, options.copies)
        today = date.today().isoformat()

        labels = [
            render_label(item, options, label_size, today)
            for item in items
            for _ in range(copies)
        ]

        logger.info("Rendered label sheet", items=len(items), copies=copies, size=options.size)
        return PAGE_TEMPLATE.format(
            width=label_size.width_mm,
            height=label_size.height_mm,
            labels="\n".join(labels),
        )
