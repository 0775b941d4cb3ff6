"""
CSV import / export endpoints
"""
from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from stockroom.api.deps import get_actor_id
from stockroom.core.database import get_db
from stockroom.core.exceptions import ValidationError
from stockroom.services.transfer_service import (
    IMPORT_TEMPLATE,
    TransferService,
    content_disposition,
    inventory_filename,
)

router = APIRouter()


def _csv_response(content: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": content_disposition(filename)},
    )


@router.get("/export/csv")
async def export_inventory_csv(
    db: AsyncSession = Depends(get_db)
):
    """Download every item as CSV, ordered by name"""
    service = TransferService(db)
    return _csv_response(await service.export_inventory_csv(), inventory_filename())


@router.post("/import/csv")
async def import_inventory_csv(
    file: UploadFile = File(...),
    mode: str = Form("skip"),
    actor_id: str = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db)
):
    """
    Import items from an uploaded CSV.

    Form fields:
        file: the CSV (comma, tab or semicolon separated)
        mode: "skip" (default) keeps existing barcodes, "update" overwrites them

    Response:
        {"imported", "updated", "skipped", "errors"}
    """
    raw = await file.read()
    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise ValidationError("CSV file must be UTF-8 encoded", field="file")

    service = TransferService(db)
    return await service.import_inventory_csv(text, mode, actor_id)


@router.get("/import/template")
async def import_template():
    return _csv_response(IMPORT_TEMPLATE, "inventory-import-template.csv")
