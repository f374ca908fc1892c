from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from pathlib import PurePath
from typing import List, Optional, Sequence

from lastmile.core.logging_config import logger
from lastmile.core.settings import Settings, settings as default_settings
from lastmile.domain.models import (
    ColumnMapping,
    FormatDetection,
    ImportOutcome,
    PriceUnit,
    RateCardInfo,
    RateTierCandidate,
    RawTable,
    SheetFormat,
    SurchargeSpec,
)
from lastmile.errors import (
    ImportBlocked,
    MappingError,
    OcrNotConfigured,
    ParseError,
    PreviewExpired,
    UnsupportedFileType,
)
from lastmile.importers.column_mapper import auto_map_columns, validate_mapping
from lastmile.importers.format_detector import detect_format
from lastmile.importers.normalizer import normalize, resolve_format
from lastmile.importers.pdf import OcrClient, read_document
from lastmile.importers.preview_store import PreviewStore
from lastmile.importers.spreadsheet import file_type_for, read_csv, read_spreadsheet
from lastmile.importers.validator import FullValidation, RateSummary, ValidationOptions, full_validation
from lastmile.observability.metrics import imports_confirmed_counter, imports_parsed_counter
from lastmile.repositories.rate_cards import RateCardStore


@dataclass(frozen=True)
class ParseResult:
    import_id: str
    file_name: str
    file_type: str
    raw_table: RawTable
    format_detection: FormatDetection
    auto_mapping: ColumnMapping


@dataclass(frozen=True)
class PreviewOptions:
    format: str = "auto"  # auto | matrix | list
    data_start_row: Optional[int] = None
    limit: Optional[int] = None  # None => settings.PREVIEW_LIMIT
    price_unit: Optional[PriceUnit] = None
    validation: ValidationOptions = field(default_factory=ValidationOptions)


@dataclass
class PreviewResult:
    import_id: str
    format: SheetFormat
    total_records: int
    preview_records: int
    rates: List[RateTierCandidate]
    all_rates: List[RateTierCandidate]
    validation: FullValidation
    mapping: Optional[ColumnMapping] = None
    mapping_warnings: List[str] = field(default_factory=list)

    @property
    def summary(self) -> RateSummary:
        return self.validation.summary


@dataclass
class ImportSession:
    """What the preview store holds per import id."""

    parse: ParseResult
    preview: Optional[PreviewResult] = None


class ImportService:
    """
    upload -> raw table -> detection + auto mapping (parse)
           -> normalized + validated rates (preview)
           -> rate card in the store (confirm)

    Parse and preview results live in the preview store under one import id
    until they are confirmed or expire.
    """

    def __init__(
        self,
        store: RateCardStore,
        ocr_client: Optional[OcrClient],
        preview_store: PreviewStore,
        settings: Settings = default_settings,
    ):
        self.store = store
        self.ocr_client = ocr_client
        self.previews = preview_store
        self.settings = settings

    # -----------------------------
    # Parse
    # -----------------------------

    async def _read(
        self,
        content: bytes,
        file_name: str,
        file_type: str,
        *,
        sheet_name: Optional[str],
        header_row: int,
        data_start_row: int,
    ) -> RawTable:
        if file_type == "excel":
            return read_spreadsheet(
                content, sheet_name=sheet_name, header_row=header_row, data_start_row=data_start_row
            )
        if file_type == "csv":
            return read_csv(content, header_row=header_row, data_start_row=data_start_row)
        if file_type in ("pdf", "image"):
            if self.ocr_client is None:
                raise OcrNotConfigured("OCR service is not configured")
            return await read_document(
                content,
                self.ocr_client,
                is_pdf=file_type == "pdf",
                timeout=self.settings.OCR_TIMEOUT_SECONDS,
            )

        ext = PurePath(file_name or "").suffix.lower()
        if ext == ".xls":
            raise UnsupportedFileType("legacy .xls workbooks are not supported; save the sheet as .xlsx")
        raise UnsupportedFileType(f"unsupported file type: {ext or file_name!r}")

    async def parse_file(
        self,
        content: bytes,
        file_name: str,
        *,
        sheet_name: Optional[str] = None,
        header_row: int = 1,
        data_start_row: int = 2,
    ) -> ParseResult:
        file_type = file_type_for(file_name)
        max_bytes = self.settings.max_upload_mb * 1024 * 1024
        try:
            if not content:
                raise ParseError("uploaded file is empty")
            if len(content) > max_bytes:
                raise ParseError(f"file exceeds {self.settings.max_upload_mb} MB")
            raw_table = await self._read(
                content,
                file_name,
                file_type,
                sheet_name=sheet_name,
                header_row=header_row,
                data_start_row=data_start_row,
            )
        except ParseError as e:
            imports_parsed_counter.labels(file_type=file_type, result="parse_error").inc()
            logger.warning("import_parse_failed", file_name=file_name, file_type=file_type, error=str(e))
            raise

        detection = detect_format(raw_table)
        mapping = auto_map_columns(raw_table.headers, raw_table.sample_rows(5))

        result = ParseResult(
            import_id=uuid.uuid4().hex,
            file_name=file_name,
            file_type=file_type,
            raw_table=raw_table,
            format_detection=detection,
            auto_mapping=mapping,
        )
        self.previews.put(ImportSession(parse=result), key=result.import_id)

        imports_parsed_counter.labels(file_type=file_type, result="success").inc()
        logger.info(
            "import_parsed",
            import_id=result.import_id,
            file_name=file_name,
            file_type=file_type,
            rows=raw_table.total_rows,
            columns=raw_table.total_columns,
            format=detection.format.value,
            confidence=detection.confidence,
        )
        return result

    def _session(self, import_id: str) -> ImportSession:
        session = self.previews.get(import_id)
        if session is None:
            raise PreviewExpired(import_id)
        return session

    def get_parse_result(self, import_id: str) -> ParseResult:
        return self._session(import_id).parse

    # -----------------------------
    # Preview
    # -----------------------------

    def preview_import(
        self,
        parse_result: ParseResult,
        mapping: Optional[ColumnMapping] = None,
        options: PreviewOptions = PreviewOptions(),
    ) -> PreviewResult:
        detection = parse_result.format_detection
        fmt = resolve_format(options.format, detection)
        mapping = mapping or parse_result.auto_mapping

        check = validate_mapping(mapping, fmt, detected=detection.format)
        if not check.valid:
            raise MappingError(check.errors, check.warnings)

        rates = normalize(
            parse_result.raw_table,
            detection,
            mapping,
            format=fmt.value,
            data_start_row=options.data_start_row,
            price_unit=options.price_unit,
        )
        validation = full_validation(rates, options.validation)

        limit = options.limit if options.limit is not None else self.settings.PREVIEW_LIMIT
        shown = rates[: max(limit, 0)]

        preview = PreviewResult(
            import_id=parse_result.import_id,
            format=fmt,
            total_records=len(rates),
            preview_records=len(shown),
            rates=shown,
            all_rates=rates,
            validation=validation,
            mapping=mapping if fmt == SheetFormat.LIST else None,
            mapping_warnings=check.warnings,
        )
        self.previews.put(ImportSession(parse=parse_result, preview=preview), key=parse_result.import_id)

        logger.info(
            "import_previewed",
            import_id=parse_result.import_id,
            format=fmt.value,
            records=len(rates),
            status=validation.status,
            errors=len(validation.all_errors),
            warnings=len(validation.all_warnings),
        )
        return preview

    # -----------------------------
    # Confirm
    # -----------------------------

    async def confirm_import(
        self,
        rates: Sequence[RateTierCandidate],
        rate_card_info: RateCardInfo,
        *,
        surcharges: Sequence[SurchargeSpec] = (),
    ) -> ImportOutcome:
        outcome = await self.store.create_rate_card_with_tiers(rate_card_info, rates, surcharges)
        imports_confirmed_counter.labels(result="success" if outcome.fail_count == 0 else "partial").inc()
        return outcome

    async def confirm_preview(
        self,
        import_id: str,
        rate_card_info: RateCardInfo,
        *,
        only_valid: bool = True,
        block_on_duplicates: bool = False,
        surcharges: Sequence[SurchargeSpec] = (),
    ) -> ImportOutcome:
        """
        Confirm a stored preview. With `only_valid` rows that failed
        validation are left out; otherwise any invalid row blocks the import.
        """
        try:
            session = self._session(import_id)
        except PreviewExpired:
            imports_confirmed_counter.labels(result="expired").inc()
            raise
        if session.preview is None:
            raise ImportBlocked("PREVIEW_REQUIRED", "run a preview before confirming")

        preview = session.preview
        validation = preview.validation

        if not validation.can_proceed and not only_valid:
            imports_confirmed_counter.labels(result="blocked").inc()
            raise ImportBlocked(
                "VALIDATION_FAILED",
                f"{validation.validation.invalid_count} rows failed validation",
            )
        if block_on_duplicates and validation.duplicates.has_duplicates:
            imports_confirmed_counter.labels(result="blocked").inc()
            raise ImportBlocked(
                "DUPLICATE_TIERS",
                f"{validation.duplicates.duplicate_count} duplicate zone/weight bands",
            )

        rates = validation.validation.valid_rates if only_valid else preview.all_rates
        if not rates:
            imports_confirmed_counter.labels(result="blocked").inc()
            raise ImportBlocked("NO_VALID_RATES", "nothing to import")

        info = rate_card_info
        if info.file_name is None:
            info = replace(info, file_name=session.parse.file_name, file_type=session.parse.file_type)

        # claimed before the write; a concurrent confirm of this id gets PreviewExpired
        self.previews.pop(import_id)
        try:
            outcome = await self.confirm_import(rates, info, surcharges=surcharges)
        except Exception:
            self.previews.put(session, key=import_id)
            raise

        logger.info(
            "import_confirmed",
            import_id=import_id,
            rate_card_id=outcome.rate_card_id,
            success=outcome.success_count,
            failed=outcome.fail_count,
        )
        return outcome
