from __future__ import annotations

import re
from typing import List

from lastmile.domain.models import FormatDetection, RawTable, Role, SheetFormat
from lastmile.importers.column_mapper import SPECS_BY_ROLE
from lastmile.importers.common import looks_like_weight_range

BOTH_SIGNALS_CONFIDENCE = 0.9
SINGLE_SIGNAL_CONFIDENCE = 0.7
LIST_STRONG_CONFIDENCE = 0.9
LIST_WEAK_CONFIDENCE = 0.7

ZONE_HEADER_RE = re.compile(r"zone|^z\d+$|region|区域|分区", re.IGNORECASE)

# vocabulary tokens that make a header row look like a list sheet
LIST_ROLES = (
    Role.ZONE,
    Role.WEIGHT_FROM,
    Role.WEIGHT_TO,
    Role.WEIGHT,
    Role.PURCHASE_PRICE,
    Role.SALES_PRICE,
    Role.PRICE,
)


def _list_token_hits(headers: List[str]) -> int:
    hits = 0
    for text in headers:
        low = text.lower()
        if not low:
            continue
        if any(k.lower() in low for role in LIST_ROLES for k in SPECS_BY_ROLE[role].keywords):
            hits += 1
    return hits


def detect_format(raw_table: RawTable) -> FormatDetection:
    """
    matrix: weight bands down the first column, zones across the header row.
    list:   one (zone, weight, price) record per row.

    Never raises; an ambiguous sheet comes back as `unknown` with confidence 0.
    """
    if not raw_table.headers or not raw_table.rows:
        return FormatDetection(SheetFormat.UNKNOWN, 0.0)

    header = [h.value for h in raw_table.headers]
    weight_signal = looks_like_weight_range(raw_table.rows[0].cell(0))
    others = [h for h in header[1:] if h]
    zone_headers = [h for h in others if ZONE_HEADER_RE.search(h)]
    # meer dan de helft, anders is een losse "Zone"-kolom al genoeg
    zone_signal = bool(zone_headers) and len(zone_headers) * 2 > len(others)

    matrix_hints = {
        "zone_row": 0,
        "weight_column": 0,
        "data_start_row": 1,
        "data_start_column": 1,
        "zones": others,
    }

    if weight_signal and zone_signal:
        return FormatDetection(SheetFormat.MATRIX, BOTH_SIGNALS_CONFIDENCE, matrix_hints)

    hits = _list_token_hits(header)
    if hits >= 2:
        confidence = LIST_STRONG_CONFIDENCE if hits >= 3 else LIST_WEAK_CONFIDENCE
        return FormatDetection(
            SheetFormat.LIST,
            confidence,
            {"header_row": 0, "data_start_row": 1, "token_hits": hits},
        )

    if weight_signal or zone_signal:
        return FormatDetection(SheetFormat.MATRIX, SINGLE_SIGNAL_CONFIDENCE, matrix_hints)

    return FormatDetection(SheetFormat.UNKNOWN, 0.0)
