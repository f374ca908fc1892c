"""
Row checks and structural checks over normalized rate tiers.

Row problems (missing zone / band / price) are isolated per row. Duplicates,
gaps and overlaps describe the carrier's tariff and are reported as
warnings only; nothing is corrected here.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from lastmile.domain.models import RateTierCandidate

D = Decimal


@dataclass(frozen=True)
class ValidationOptions:
    require_purchase_price: bool = True
    require_sales_price: bool = False
    allow_negative_price: bool = False
    max_price: D = D("10000")
    min_weight: D = D("0")
    max_weight: D = D("10000")


@dataclass(frozen=True)
class RowError:
    row_number: int
    field: str
    code: str
    message: str


@dataclass(frozen=True)
class RowWarning:
    row_number: int
    field: str
    code: str
    message: str


@dataclass
class RateValidationResult:
    valid: bool
    total_rows: int
    valid_count: int
    invalid_count: int
    errors: List[RowError] = field(default_factory=list)
    warnings: List[RowWarning] = field(default_factory=list)
    valid_rates: List[RateTierCandidate] = field(default_factory=list)
    invalid_rates: List[RateTierCandidate] = field(default_factory=list)


def _check_row(
    rate: RateTierCandidate, opts: ValidationOptions
) -> Tuple[List[RowError], List[RowWarning]]:
    row = rate.row_number
    errors: List[RowError] = []
    warnings: List[RowWarning] = []

    if not rate.zone_code or not str(rate.zone_code).strip():
        errors.append(RowError(row, "zone_code", "ZONE_MISSING", f"row {row}: zone is empty"))

    if rate.weight_from is None:
        errors.append(RowError(row, "weight_from", "WEIGHT_FROM_MISSING", f"row {row}: weight from is empty"))
    elif rate.weight_from < opts.min_weight:
        errors.append(
            RowError(
                row,
                "weight_from",
                "WEIGHT_FROM_BELOW_MIN",
                f"row {row}: weight from {rate.weight_from} is below {opts.min_weight}",
            )
        )

    if rate.weight_to is None:
        errors.append(RowError(row, "weight_to", "WEIGHT_TO_MISSING", f"row {row}: weight to is empty"))
    elif rate.weight_from is not None and rate.weight_to < rate.weight_from:
        errors.append(
            RowError(
                row,
                "weight_to",
                "WEIGHT_TO_BELOW_FROM",
                f"row {row}: weight to {rate.weight_to} is below weight from {rate.weight_from}",
            )
        )
    elif rate.weight_to > opts.max_weight:
        warnings.append(
            RowWarning(
                row,
                "weight_to",
                "WEIGHT_TO_ABOVE_MAX",
                f"row {row}: weight to {rate.weight_to} exceeds {opts.max_weight}, please confirm",
            )
        )

    if opts.require_purchase_price and rate.purchase_price is None:
        errors.append(
            RowError(row, "purchase_price", "PURCHASE_PRICE_MISSING", f"row {row}: purchase price is empty")
        )
    if opts.require_sales_price and rate.sales_price is None:
        errors.append(RowError(row, "sales_price", "SALES_PRICE_MISSING", f"row {row}: sales price is empty"))

    for name, price in (("purchase_price", rate.purchase_price), ("sales_price", rate.sales_price)):
        if price is None:
            continue
        if price < 0 and not opts.allow_negative_price:
            errors.append(RowError(row, name, "NEGATIVE_PRICE", f"row {row}: {name} {price} is negative"))
        if price > opts.max_price:
            warnings.append(
                RowWarning(
                    row,
                    name,
                    "PRICE_ABOVE_MAX",
                    f"row {row}: {name} {price} exceeds {opts.max_price}, please confirm",
                )
            )

    if (
        rate.purchase_price is not None
        and rate.sales_price is not None
        and rate.sales_price < rate.purchase_price
    ):
        warnings.append(
            RowWarning(
                row,
                "sales_price",
                "SALES_BELOW_PURCHASE",
                f"row {row}: sales price {rate.sales_price} is below purchase price {rate.purchase_price}",
            )
        )

    return errors, warnings


def validate_rates(
    candidates: Sequence[RateTierCandidate], options: Optional[ValidationOptions] = None
) -> RateValidationResult:
    opts = options or ValidationOptions()
    result = RateValidationResult(valid=True, total_rows=len(candidates), valid_count=0, invalid_count=0)

    for rate in candidates:
        errors, warnings = _check_row(rate, opts)
        if errors:
            result.errors.extend(errors)
            result.invalid_rates.append(rate)
        else:
            result.valid_rates.append(rate)
        result.warnings.extend(warnings)

    result.valid_count = len(result.valid_rates)
    result.invalid_count = len(result.invalid_rates)
    result.valid = not result.errors
    return result


# -----------------------------
# Duplicates
# -----------------------------


@dataclass(frozen=True)
class DuplicatePair:
    zone_code: Optional[str]
    weight_from: Optional[D]
    weight_to: Optional[D]
    first_index: int
    duplicate_index: int
    first_row: int
    duplicate_row: int

    @property
    def message(self) -> str:
        return (
            f"zone {self.zone_code} band {self.weight_from}-{self.weight_to}kg appears twice "
            f"(rows {self.first_row} and {self.duplicate_row})"
        )


@dataclass
class DuplicateReport:
    duplicates: List[DuplicatePair] = field(default_factory=list)

    @property
    def has_duplicates(self) -> bool:
        return bool(self.duplicates)

    @property
    def duplicate_count(self) -> int:
        return len(self.duplicates)


def check_duplicates(rates: Sequence[RateTierCandidate]) -> DuplicateReport:
    """Same (zone, from, to) twice; each pair names both rows."""
    seen: Dict[tuple, int] = {}
    report = DuplicateReport()
    for i, rate in enumerate(rates):
        key = rate.key
        if key in seen:
            first = seen[key]
            report.duplicates.append(
                DuplicatePair(
                    zone_code=rate.zone_code,
                    weight_from=rate.weight_from,
                    weight_to=rate.weight_to,
                    first_index=first,
                    duplicate_index=i,
                    first_row=rates[first].row_number,
                    duplicate_row=rate.row_number,
                )
            )
        else:
            seen[key] = i
    return report


# -----------------------------
# Weight continuity
# -----------------------------


@dataclass(frozen=True)
class WeightGap:
    zone_code: str
    gap_from: D
    gap_to: D

    @property
    def message(self) -> str:
        return f"zone {self.zone_code}: no band covers {self.gap_from}kg to {self.gap_to}kg"


@dataclass(frozen=True)
class WeightOverlap:
    zone_code: str
    overlap_from: D
    overlap_to: D
    first_band: Tuple[D, D]
    second_band: Tuple[D, D]

    @property
    def message(self) -> str:
        a, b = self.first_band, self.second_band
        return f"zone {self.zone_code}: band {a[0]}-{a[1]}kg overlaps {b[0]}-{b[1]}kg"


@dataclass
class ContinuityReport:
    gaps: List[WeightGap] = field(default_factory=list)
    overlaps: List[WeightOverlap] = field(default_factory=list)
    zone_count: int = 0

    @property
    def has_gaps(self) -> bool:
        return bool(self.gaps)

    @property
    def has_overlaps(self) -> bool:
        return bool(self.overlaps)


def check_weight_continuity(rates: Sequence[RateTierCandidate]) -> ContinuityReport:
    """
    Per zone, after a stable sort on weight_from, compare each band with the
    next one: next.from > cur.to is a gap, next.from < cur.to an overlap.
    Touching bands (0-5, 5-10) are continuous.
    """
    by_zone: Dict[str, List[RateTierCandidate]] = {}
    for r in rates:
        if r.weight_from is None or r.weight_to is None:
            continue
        by_zone.setdefault(str(r.zone_code), []).append(r)

    report = ContinuityReport(zone_count=len(by_zone))
    for zone, zone_rates in by_zone.items():
        ordered = sorted(zone_rates, key=lambda r: r.weight_from)
        for cur, nxt in zip(ordered, ordered[1:]):
            if nxt.weight_from > cur.weight_to:
                report.gaps.append(WeightGap(zone, cur.weight_to, nxt.weight_from))
            elif nxt.weight_from < cur.weight_to:
                report.overlaps.append(
                    WeightOverlap(
                        zone,
                        nxt.weight_from,
                        min(cur.weight_to, nxt.weight_to),
                        (cur.weight_from, cur.weight_to),
                        (nxt.weight_from, nxt.weight_to),
                    )
                )
    return report


# -----------------------------
# Summary
# -----------------------------


@dataclass(frozen=True)
class WeightBand:
    weight_from: D
    weight_to: D

    @property
    def label(self) -> str:
        return f"{self.weight_from}-{self.weight_to}kg"


@dataclass
class RateSummary:
    total_records: int = 0
    zones: List[str] = field(default_factory=list)
    weight_ranges: List[WeightBand] = field(default_factory=list)
    min_price: Optional[D] = None
    max_price: Optional[D] = None
    purchase_price_count: int = 0
    sales_price_count: int = 0

    @property
    def zone_count(self) -> int:
        return len(self.zones)

    @property
    def weight_range_count(self) -> int:
        return len(self.weight_ranges)

    @property
    def has_purchase_price(self) -> bool:
        return self.purchase_price_count > 0

    @property
    def has_sales_price(self) -> bool:
        return self.sales_price_count > 0


def generate_summary(rates: Sequence[RateTierCandidate]) -> RateSummary:
    if not rates:
        return RateSummary()

    zones = sorted({str(r.zone_code) for r in rates if r.zone_code})

    bands: List[WeightBand] = []
    seen = set()
    for r in rates:
        if r.weight_from is None or r.weight_to is None:
            continue
        key = (r.weight_from, r.weight_to)
        if key not in seen:
            seen.add(key)
            bands.append(WeightBand(*key))
    bands.sort(key=lambda b: b.weight_from)

    purchase = [r.purchase_price for r in rates if r.purchase_price is not None]
    sales = [r.sales_price for r in rates if r.sales_price is not None]
    prices = purchase + sales

    return RateSummary(
        total_records=len(rates),
        zones=zones,
        weight_ranges=bands,
        min_price=min(prices) if prices else None,
        max_price=max(prices) if prices else None,
        purchase_price_count=len(purchase),
        sales_price_count=len(sales),
    )


# -----------------------------
# Full run
# -----------------------------


@dataclass
class FullValidation:
    status: str  # success | warning | error
    valid: bool
    can_proceed: bool
    summary: RateSummary
    validation: RateValidationResult
    duplicates: DuplicateReport
    continuity: ContinuityReport
    all_errors: List[str]
    all_warnings: List[str]
    message: str


def full_validation(
    candidates: Sequence[RateTierCandidate], options: Optional[ValidationOptions] = None
) -> FullValidation:
    """Row checks on everything; duplicates, continuity and summary on the valid rows."""
    validation = validate_rates(candidates, options)
    duplicates = check_duplicates(validation.valid_rates)
    continuity = check_weight_continuity(validation.valid_rates)
    summary = generate_summary(validation.valid_rates)

    all_errors = [e.message for e in validation.errors]
    all_warnings = (
        [w.message for w in validation.warnings]
        + [d.message for d in duplicates.duplicates]
        + [g.message for g in continuity.gaps]
        + [o.message for o in continuity.overlaps]
    )

    if validation.invalid_count > 0:
        status = "error"
        message = f"validation failed with {len(all_errors)} errors"
    elif all_warnings:
        status = "warning"
        message = f"validation passed with {len(all_warnings)} warnings"
    else:
        status = "success"
        message = "validation passed"

    return FullValidation(
        status=status,
        valid=validation.valid and not duplicates.has_duplicates,
        can_proceed=validation.valid,
        summary=summary,
        validation=validation,
        duplicates=duplicates,
        continuity=continuity,
        all_errors=all_errors,
        all_warnings=all_warnings,
        message=message,
    )
