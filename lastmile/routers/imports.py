# lastmile/routers/imports.py
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from lastmile.core.settings import settings
from lastmile.dependencies import get_import_service
from lastmile.domain.models import SheetFormat
from lastmile.importers.column_mapper import mapping_from_indexes
from lastmile.importers.pdf import ocr_status
from lastmile.importers.service import ImportService, PreviewOptions
from lastmile.schemas.imports import (
    ConfirmRequest,
    ConfirmResponse,
    ParseResponse,
    PreviewRequest,
    PreviewResponse,
    parse_response,
    preview_response,
)

router = APIRouter(prefix="/rate-imports", tags=["rate-imports"])


@router.get("/ocr-status")
def get_ocr_status() -> Dict[str, Any]:
    return ocr_status(settings)


@router.post("/parse", response_model=ParseResponse)
async def parse_rate_sheet(
    file: UploadFile = File(...),
    sheet_name: Optional[str] = Form(None),
    header_row: int = Form(1),
    data_start_row: int = Form(2),
    service: ImportService = Depends(get_import_service),
) -> ParseResponse:
    """Upload an xlsx / csv / pdf / image rate sheet; returns detection and auto-mapping."""
    content = await file.read()
    result = await service.parse_file(
        content,
        file.filename or "",
        sheet_name=sheet_name,
        header_row=header_row,
        data_start_row=data_start_row,
    )
    return parse_response(result)


@router.post("/{import_id}/preview", response_model=PreviewResponse)
def preview_rate_sheet(
    import_id: str,
    req: Optional[PreviewRequest] = None,
    service: ImportService = Depends(get_import_service),
) -> PreviewResponse:
    req = req or PreviewRequest()
    parsed = service.get_parse_result(import_id)

    mapping = None
    if req.mapping and req.format != SheetFormat.MATRIX.value:
        try:
            mapping = mapping_from_indexes(parsed.raw_table.headers, req.mapping)
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))

    preview = service.preview_import(
        parsed,
        mapping,
        PreviewOptions(
            format=req.format,
            data_start_row=req.data_start_row,
            limit=req.limit,
            price_unit=req.price_unit,
            validation=req.validation_options(),
        ),
    )
    return preview_response(preview)


@router.post("/{import_id}/confirm", response_model=ConfirmResponse)
async def confirm_rate_sheet(
    import_id: str,
    req: ConfirmRequest,
    service: ImportService = Depends(get_import_service),
) -> ConfirmResponse:
    outcome = await service.confirm_preview(
        import_id,
        req.rate_card_info(),
        only_valid=req.only_valid,
        block_on_duplicates=req.block_on_duplicates,
        surcharges=[s.to_spec() for s in req.surcharges],
    )
    return ConfirmResponse(
        rate_card_id=outcome.rate_card_id,
        rate_card_code=outcome.rate_card_code,
        total_records=outcome.total_records,
        success_count=outcome.success_count,
        fail_count=outcome.fail_count,
    )
