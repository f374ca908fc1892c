from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from lastmile.domain.models import (
    ColumnMapping,
    FormatDetection,
    PriceUnit,
    RateTierCandidate,
    RawTable,
    Role,
    SheetFormat,
)
from lastmile.importers.common import cell_text, parse_number, parse_price, parse_weight_range


def normalize_matrix(
    raw_table: RawTable,
    hints: Optional[Mapping[str, Any]] = None,
    *,
    price_unit: Optional[PriceUnit] = None,
) -> List[RateTierCandidate]:
    """
    Weight bands down one column, zones across the header row.
    One candidate per (row, zone column) with a parseable price; prices are
    purchase prices, sales stay empty.
    """
    hints = hints or {}
    weight_col = int(hints.get("weight_column", 0))
    start_col = int(hints.get("data_start_column", weight_col + 1))

    zone_columns = [
        (h.index, h.value) for h in raw_table.headers if h.index >= start_col and h.value
    ]

    out: List[RateTierCandidate] = []
    for row in raw_table.rows:
        band = parse_weight_range(cell_text(row.cell(weight_col)))
        if band is None:
            continue
        w_from, w_to = band

        for idx, zone in zone_columns:
            price = parse_price(row.cell(idx))
            if price is None:
                continue
            out.append(
                RateTierCandidate(
                    row_number=row.row_number,
                    zone_code=zone,
                    weight_from=w_from,
                    weight_to=w_to,
                    purchase_price=price,
                    sales_price=None,
                    price_unit=price_unit,
                )
            )
    return out


def normalize_list(
    raw_table: RawTable,
    mapping: ColumnMapping,
    *,
    data_start_row: Optional[int] = None,
    price_unit: Optional[PriceUnit] = None,
) -> List[RateTierCandidate]:
    """
    One record per row. Rows without a zone, a usable weight band or any
    price are skipped. `data_start_row` is the 1-based sheet row.
    """
    zone = mapping.get(Role.ZONE)
    w_from_col = mapping.get(Role.WEIGHT_FROM)
    w_to_col = mapping.get(Role.WEIGHT_TO)
    weight = mapping.get(Role.WEIGHT)
    purchase = mapping.get(Role.PURCHASE_PRICE)
    sales = mapping.get(Role.SALES_PRICE)
    generic = mapping.get(Role.PRICE)

    out: List[RateTierCandidate] = []
    for row in raw_table.rows:
        if data_start_row is not None and row.row_number < data_start_row:
            continue

        zone_code = cell_text(row.cell(zone.index)) if zone else ""
        if not zone_code:
            continue

        w_from = w_to = None
        if w_from_col and w_to_col:
            w_from = parse_number(row.cell(w_from_col.index))
            w_to = parse_number(row.cell(w_to_col.index))
        if (w_from is None or w_to is None) and weight:
            band = parse_weight_range(cell_text(row.cell(weight.index)))
            if band:
                w_from, w_to = band
        if w_from is None or w_to is None:
            continue

        purchase_price = parse_price(row.cell(purchase.index)) if purchase else None
        sales_price = parse_price(row.cell(sales.index)) if sales else None
        if purchase_price is None and sales_price is None and generic:
            purchase_price = parse_price(row.cell(generic.index))
        if purchase_price is None and sales_price is None:
            continue

        out.append(
            RateTierCandidate(
                row_number=row.row_number,
                zone_code=zone_code,
                weight_from=w_from,
                weight_to=w_to,
                purchase_price=purchase_price,
                sales_price=sales_price,
                price_unit=price_unit,
            )
        )
    return out


def resolve_format(requested: str, detection: FormatDetection) -> SheetFormat:
    """'auto' follows the detector: matrix when it says matrix, list otherwise."""
    if requested and requested != "auto":
        return SheetFormat(requested)
    return SheetFormat.MATRIX if detection.is_matrix else SheetFormat.LIST


def normalize(
    raw_table: RawTable,
    detection: FormatDetection,
    mapping: Optional[ColumnMapping],
    *,
    format: str = "auto",
    data_start_row: Optional[int] = None,
    price_unit: Optional[PriceUnit] = None,
) -> List[RateTierCandidate]:
    fmt = resolve_format(format, detection)
    if fmt == SheetFormat.MATRIX:
        hints: Dict[str, Any] = dict(detection.hints) if detection.is_matrix else {}
        return normalize_matrix(raw_table, hints, price_unit=price_unit)
    return normalize_list(
        raw_table,
        mapping or ColumnMapping(),
        data_start_row=data_start_row,
        price_unit=price_unit,
    )
