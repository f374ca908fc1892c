from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

D = Decimal

# "N+" / "over N" bands are stored with this upper bound.
OPEN_ENDED_WEIGHT = D("9999")


# -----------------------------
# Raw input (reader output)
# -----------------------------


@dataclass(frozen=True)
class HeaderCell:
    index: int
    column: str  # spreadsheet letter: A, B, ..., AA
    value: str


@dataclass(frozen=True)
class DataRow:
    row_number: int  # 1-based, zoals in de sheet
    values: Tuple[Any, ...]

    def cell(self, index: int) -> Any:
        if 0 <= index < len(self.values):
            return self.values[index]
        return None


@dataclass(frozen=True)
class RawTable:
    """
    Rectangular cell matrix of one uploaded sheet.

    raw_data holds every row including the header row (index 0 when the
    header is the first row); headers/rows are the header guess and the
    data rows after it.
    """

    headers: Tuple[HeaderCell, ...]
    rows: Tuple[DataRow, ...]
    raw_data: Tuple[Tuple[Any, ...], ...]
    sheet_name: Optional[str] = None
    available_sheets: Tuple[str, ...] = ()
    confidence: float = 1.0

    @property
    def total_rows(self) -> int:
        return len(self.raw_data)

    @property
    def total_columns(self) -> int:
        return len(self.headers)

    def sample_rows(self, n: int = 5) -> List[DataRow]:
        return list(self.rows[:n])


# -----------------------------
# Detection / mapping
# -----------------------------


class SheetFormat(str, Enum):
    MATRIX = "matrix"
    LIST = "list"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class FormatDetection:
    format: SheetFormat
    confidence: float
    hints: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_matrix(self) -> bool:
        return self.format == SheetFormat.MATRIX


class Role(str, Enum):
    ZONE = "zone"
    WEIGHT_FROM = "weight_from"
    WEIGHT_TO = "weight_to"
    WEIGHT = "weight"
    PURCHASE_PRICE = "purchase_price"
    SALES_PRICE = "sales_price"
    PRICE = "price"
    CURRENCY = "currency"
    SERVICE = "service"


@dataclass(frozen=True)
class ColumnRef:
    index: int
    column: str
    header_value: str


@dataclass
class ColumnMapping:
    columns: Dict[Role, ColumnRef] = field(default_factory=dict)
    confidence: Dict[Role, float] = field(default_factory=dict)
    suggestions: List[str] = field(default_factory=list)
    unmapped: List[HeaderCell] = field(default_factory=list)

    def get(self, role: Role) -> Optional[ColumnRef]:
        return self.columns.get(role)

    def has(self, role: Role) -> bool:
        return role in self.columns


# -----------------------------
# Rate tiers
# -----------------------------


class PriceUnit(str, Enum):
    PER_KG = "per_kg"
    PER_SHIPMENT = "per_shipment"


@dataclass(frozen=True)
class RateTierCandidate:
    row_number: int
    zone_code: Optional[str]
    weight_from: Optional[D]
    weight_to: Optional[D]  # inclusive
    purchase_price: Optional[D] = None
    sales_price: Optional[D] = None
    price_unit: Optional[PriceUnit] = None  # None => unit of the rate card
    purchase_min_charge: Optional[D] = None
    sales_min_charge: Optional[D] = None

    @property
    def key(self) -> Tuple[Optional[str], Optional[D], Optional[D]]:
        return (self.zone_code, self.weight_from, self.weight_to)


class ChargeType(str, Enum):
    FIXED = "fixed"
    PERCENTAGE = "percentage"


@dataclass(frozen=True)
class SurchargeSpec:
    """Surcharge as supplied on import (not yet persisted)."""

    code: str
    name: str
    charge_type: ChargeType = ChargeType.FIXED
    purchase_amount: D = D("0")
    sales_amount: D = D("0")
    percentage: D = D("0")
    is_mandatory: bool = True


@dataclass
class RateCardInfo:
    carrier_id: int
    name: str
    code: Optional[str] = None  # None => generated
    rate_type: str = "last_mile"
    service_type: str = "standard"
    valid_from: Optional[date] = None  # None => today
    valid_until: Optional[date] = None  # None => open-ended
    currency: str = "EUR"
    is_default: bool = False
    price_unit: PriceUnit = PriceUnit.PER_SHIPMENT
    imported_by: str = "system"
    file_name: Optional[str] = None
    file_type: Optional[str] = None


@dataclass(frozen=True)
class ImportOutcome:
    rate_card_id: int
    rate_card_code: str
    total_records: int
    success_count: int
    fail_count: int


# -----------------------------
# Persisted views (store output)
# -----------------------------


@dataclass(frozen=True)
class CarrierRecord:
    id: int
    code: str
    name: str
    status: str = "active"


@dataclass(frozen=True)
class ZoneRule:
    id: int
    carrier_id: int
    zone_code: str
    zone_name: str
    postal_prefixes: Tuple[str, ...] = ()
    countries: frozenset = frozenset()
    sort_order: int = 0


@dataclass(frozen=True)
class TierRecord:
    id: int
    rate_card_id: int
    zone_code: str
    weight_from: D
    weight_to: D
    purchase_price: Optional[D]
    sales_price: Optional[D]
    price_unit: PriceUnit
    purchase_min_charge: Optional[D] = None
    sales_min_charge: Optional[D] = None
    margin_rate: Optional[D] = None


@dataclass(frozen=True)
class SurchargeRecord:
    id: int
    rate_card_id: int
    code: str
    name: str
    charge_type: ChargeType
    purchase_amount: D = D("0")
    sales_amount: D = D("0")
    percentage: D = D("0")
    is_mandatory: bool = True


@dataclass(frozen=True)
class RateCardRecord:
    id: int
    code: str
    name: str
    carrier_id: int
    rate_type: str
    service_type: str
    valid_from: date
    valid_until: Optional[date]
    currency: str
    status: str
    is_default: bool
    created_at: datetime
    tiers: Tuple[TierRecord, ...] = ()
    surcharges: Tuple[SurchargeRecord, ...] = ()


@dataclass(frozen=True)
class ShipmentRecord:
    id: int
    shipment_no: str
    carrier_id: int
    carrier_code: str
    zone_code: Optional[str]
    weight: D
    purchase_cost: D
    sales_amount: D
    profit_amount: D
    currency: str
    status: str
    created_at: datetime


# -----------------------------
# Quote request / result
# -----------------------------


@dataclass(frozen=True)
class Dimensions:
    """Lengte/breedte/hoogte in cm."""

    length: Optional[D] = None
    width: Optional[D] = None
    height: Optional[D] = None


@dataclass
class QuoteRequest:
    weight: D
    carrier_id: Optional[int] = None
    rate_card_id: Optional[int] = None
    zone_code: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    dimensions: Optional[Dimensions] = None
    service_type: Optional[str] = None
    include_surcharges: bool = True


@dataclass(frozen=True)
class AppliedSurcharge:
    code: str
    name: str
    charge_type: ChargeType
    purchase_amount: D
    sales_amount: D


@dataclass(frozen=True)
class PricingResult:
    actual_weight: D
    volume_weight: D
    chargeable_weight: D

    zone_code: str
    zone_name: str

    rate_card_id: int
    tier_id: int
    price_unit: PriceUnit
    weight_from: D
    weight_to: D

    base_purchase_price: Optional[D]
    base_sales_price: Optional[D]
    purchase_cost: D
    sales_amount: D

    surcharges: Tuple[AppliedSurcharge, ...]
    total_purchase_surcharge: D
    total_sales_surcharge: D

    total_purchase: D
    total_sales: D
    profit: D
    profit_rate: D
    currency: str

    overflow: bool = False
    excess_weight: D = D("0")

    @property
    def weight_range(self) -> str:
        return f"{self.weight_from}-{self.weight_to}"


@dataclass(frozen=True)
class CarrierQuote:
    carrier_id: int
    carrier_code: str
    carrier_name: str
    result: Optional[PricingResult] = None
    error_code: Optional[str] = None
    error: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.result is not None


@dataclass(frozen=True)
class QuickQuote:
    purchase_cost: D
    sales_amount: D
    profit: D
    currency: str
