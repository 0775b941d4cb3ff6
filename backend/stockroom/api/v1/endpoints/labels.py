"""
Label printing endpoint
"""
from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from stockroom.core.database import get_db
from stockroom.services.label_service import DEFAULT_LABEL_SIZE, LabelOptions, LabelService, parse_item_ids

router = APIRouter()


@router.get("/", response_class=HTMLResponse)
async def print_labels(
    items: Optional[str] = None,
    size: str = DEFAULT_LABEL_SIZE,
    copies: int = 1,
    show_name: bool = True,
    show_barcode: bool = True,
    show_location: bool = False,
    show_qty: bool = False,
    show_date: bool = False,
    custom_text: str = "",
    barcode_type: str = "CODE128",
    font_size: str = "medium",
    db: AsyncSession = Depends(get_db)
):
    """
    Printable label sheet for the comma separated item ids in ``items``.

    Example:
        GET /api/v1/labels/?items=1,2&size=30336&show_location=true&copies=2
    """
    options = LabelOptions(
        size=size,
        copies=copies,
        show_name=show_name,
        show_barcode=show_barcode,
        show_location=show_location,
        show_qty=show_qty,
        show_date=show_date,
        custom_text=custom_text,
        barcode_type=barcode_type,
        font_size=font_size,
    )
    service = LabelService(db)
    html = await service.render_labels(parse_item_ids(items), options)
    return HTMLResponse(content=html)
