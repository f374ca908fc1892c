# lastmile/schemas/imports.py
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from lastmile.core.settings import settings
from lastmile.domain.models import ChargeType, PriceUnit, RateCardInfo, RateTierCandidate, SurchargeSpec
from lastmile.importers.service import ParseResult, PreviewResult
from lastmile.importers.validator import ValidationOptions


class HeaderOut(BaseModel):
    index: int
    column: str
    value: str


class DetectionOut(BaseModel):
    format: str
    confidence: float
    hints: Dict[str, Any] = {}


class ColumnRefOut(BaseModel):
    index: int
    column: str
    header_value: str
    confidence: float


class MappingOut(BaseModel):
    columns: Dict[str, ColumnRefOut]
    suggestions: List[str] = []
    unmapped: List[HeaderOut] = []


class ParseResponse(BaseModel):
    import_id: str
    file_name: str
    file_type: str
    sheet_name: Optional[str] = None
    available_sheets: List[str] = []
    total_rows: int
    total_columns: int
    ocr_confidence: Optional[float] = None
    headers: List[HeaderOut]
    sample_rows: List[List[Any]]
    format_detection: DetectionOut
    auto_mapping: MappingOut


class PreviewRequest(BaseModel):
    format: Literal["auto", "matrix", "list"] = "auto"
    # role -> kolomindex (0-based); leeg = automatische mapping
    mapping: Optional[Dict[str, Optional[int]]] = None
    data_start_row: Optional[int] = Field(default=None, ge=1)
    limit: Optional[int] = Field(default=None, ge=0)
    price_unit: Optional[PriceUnit] = None

    require_purchase_price: bool = True
    require_sales_price: bool = False
    allow_negative_price: bool = False
    max_price: Decimal = Decimal("10000")
    min_weight: Decimal = Decimal("0")
    max_weight: Decimal = Decimal("10000")

    def validation_options(self) -> ValidationOptions:
        return ValidationOptions(
            require_purchase_price=self.require_purchase_price,
            require_sales_price=self.require_sales_price,
            allow_negative_price=self.allow_negative_price,
            max_price=self.max_price,
            min_weight=self.min_weight,
            max_weight=self.max_weight,
        )


class RateOut(BaseModel):
    row_number: int
    zone_code: Optional[str]
    weight_from: Optional[Decimal]
    weight_to: Optional[Decimal]
    purchase_price: Optional[Decimal] = None
    sales_price: Optional[Decimal] = None
    price_unit: Optional[PriceUnit] = None


class IssueOut(BaseModel):
    row_number: int
    field: str
    code: str
    message: str


class SummaryOut(BaseModel):
    total_records: int
    zones: List[str]
    zone_count: int
    weight_ranges: List[str]
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None
    has_purchase_price: bool
    has_sales_price: bool


class ValidationOut(BaseModel):
    status: str
    valid: bool
    can_proceed: bool
    message: str
    valid_count: int
    invalid_count: int
    errors: List[IssueOut]
    warnings: List[IssueOut]
    duplicates: List[str]
    gaps: List[str]
    overlaps: List[str]


class PreviewResponse(BaseModel):
    import_id: str
    format: str
    total_records: int
    preview_records: int
    rates: List[RateOut]
    validation: ValidationOut
    summary: SummaryOut
    mapping_warnings: List[str] = []


class SurchargeIn(BaseModel):
    code: str
    name: str
    charge_type: ChargeType = ChargeType.FIXED
    purchase_amount: Decimal = Decimal("0")
    sales_amount: Decimal = Decimal("0")
    percentage: Decimal = Decimal("0")
    is_mandatory: bool = True

    def to_spec(self) -> SurchargeSpec:
        return SurchargeSpec(**self.model_dump())


class ConfirmRequest(BaseModel):
    carrier_id: int
    name: str
    code: Optional[str] = None
    rate_type: str = "last_mile"
    service_type: str = "standard"
    valid_from: Optional[date] = None
    valid_until: Optional[date] = None
    currency: str = settings.DEFAULT_CURRENCY
    is_default: bool = False
    price_unit: PriceUnit = PriceUnit.PER_SHIPMENT
    imported_by: str = "system"

    only_valid: bool = True
    block_on_duplicates: bool = False
    surcharges: List[SurchargeIn] = []

    def rate_card_info(self) -> RateCardInfo:
        return RateCardInfo(
            carrier_id=self.carrier_id,
            name=self.name,
            code=self.code,
            rate_type=self.rate_type,
            service_type=self.service_type,
            valid_from=self.valid_from,
            valid_until=self.valid_until,
            currency=self.currency,
            is_default=self.is_default,
            price_unit=self.price_unit,
            imported_by=self.imported_by,
        )


class ConfirmResponse(BaseModel):
    rate_card_id: int
    rate_card_code: str
    total_records: int
    success_count: int
    fail_count: int


# -----------------------------
# Domein -> response
# -----------------------------


def _cell(v: Any) -> Any:
    if isinstance(v, (str, int, float, bool)) or v is None:
        return v
    return str(v)


def parse_response(result: ParseResult, sample_size: int = 5) -> ParseResponse:
    table = result.raw_table
    mapping = result.auto_mapping
    return ParseResponse(
        import_id=result.import_id,
        file_name=result.file_name,
        file_type=result.file_type,
        sheet_name=table.sheet_name,
        available_sheets=list(table.available_sheets),
        total_rows=table.total_rows,
        total_columns=table.total_columns,
        ocr_confidence=table.confidence if result.file_type in ("pdf", "image") else None,
        headers=[HeaderOut(index=h.index, column=h.column, value=h.value) for h in table.headers],
        sample_rows=[[_cell(v) for v in r.values] for r in table.sample_rows(sample_size)],
        format_detection=DetectionOut(
            format=result.format_detection.format.value,
            confidence=result.format_detection.confidence,
            hints=dict(result.format_detection.hints),
        ),
        auto_mapping=MappingOut(
            columns={
                role.value: ColumnRefOut(
                    index=ref.index,
                    column=ref.column,
                    header_value=ref.header_value,
                    confidence=mapping.confidence.get(role, 0.0),
                )
                for role, ref in mapping.columns.items()
            },
            suggestions=list(mapping.suggestions),
            unmapped=[HeaderOut(index=h.index, column=h.column, value=h.value) for h in mapping.unmapped],
        ),
    )


def _rate_out(r: RateTierCandidate) -> RateOut:
    return RateOut(
        row_number=r.row_number,
        zone_code=r.zone_code,
        weight_from=r.weight_from,
        weight_to=r.weight_to,
        purchase_price=r.purchase_price,
        sales_price=r.sales_price,
        price_unit=r.price_unit,
    )


def preview_response(preview: PreviewResult) -> PreviewResponse:
    v = preview.validation
    s = preview.summary
    return PreviewResponse(
        import_id=preview.import_id,
        format=preview.format.value,
        total_records=preview.total_records,
        preview_records=preview.preview_records,
        rates=[_rate_out(r) for r in preview.rates],
        validation=ValidationOut(
            status=v.status,
            valid=v.valid,
            can_proceed=v.can_proceed,
            message=v.message,
            valid_count=v.validation.valid_count,
            invalid_count=v.validation.invalid_count,
            errors=[IssueOut(**e.__dict__) for e in v.validation.errors],
            warnings=[IssueOut(**w.__dict__) for w in v.validation.warnings],
            duplicates=[d.message for d in v.duplicates.duplicates],
            gaps=[g.message for g in v.continuity.gaps],
            overlaps=[o.message for o in v.continuity.overlaps],
        ),
        summary=SummaryOut(
            total_records=s.total_records,
            zones=s.zones,
            zone_count=s.zone_count,
            weight_ranges=[b.label for b in s.weight_ranges],
            min_price=s.min_price,
            max_price=s.max_price,
            has_purchase_price=s.has_purchase_price,
            has_sales_price=s.has_sales_price,
        ),
        mapping_warnings=list(preview.mapping_warnings),
    )
