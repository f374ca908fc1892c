"""
Header -> role scoring for list-shaped rate sheets.

Every header is scored against every role with `score_header`, a pure
function so the weights below can be tuned and tested in isolation.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Pattern, Sequence, Tuple

from lastmile.domain.models import (
    ColumnMapping,
    ColumnRef,
    DataRow,
    HeaderCell,
    Role,
    SheetFormat,
)
from lastmile.importers.common import cell_text, looks_like_weight_range, parse_price

KEYWORD_SCORE = 0.6
PATTERN_SCORE = 0.4
CONTENT_THRESHOLD = 0.5
CONTENT_MAX = 0.5
NUMERIC_CONTENT_SCORE = 0.2
ZONE_CONTENT_SCORE = 0.3
WEIGHT_RANGE_CONTENT_SCORE = 0.3

SAMPLE_SIZE = 5

PRICE_ROLES = (Role.PURCHASE_PRICE, Role.SALES_PRICE, Role.PRICE)

ZONE_TOKEN_RE = re.compile(r"zone|z\d|区域", re.IGNORECASE)

# korte tokens tellen alleen als los woord ("to" zit ook in "Total")
WHOLE_WORD_KEYWORDS = frozenset({"to", "from", "von", "bis"})


@dataclass(frozen=True)
class RoleSpec:
    role: Role
    keywords: Tuple[str, ...]
    patterns: Tuple[Pattern[str], ...] = ()


def _p(*exprs: str) -> Tuple[Pattern[str], ...]:
    return tuple(re.compile(e, re.IGNORECASE) for e in exprs)


# Volgorde = tie-break volgorde
ROLE_SPECS: Tuple[RoleSpec, ...] = (
    RoleSpec(
        Role.ZONE,
        ("zone", "area", "区域", "分区", "region", "dest", "目的地", "zona"),
        _p(r"^z\d+$", r"^zone\s*\d+$", r"^区域\d+$"),
    ),
    RoleSpec(
        Role.WEIGHT_FROM,
        ("weight_from", "weight from", "min_weight", "min weight", "起始重量", "最小重量", "from", "从", "von"),
        _p(r"^from$", r"^min$"),
    ),
    RoleSpec(
        Role.WEIGHT_TO,
        ("weight_to", "weight to", "max_weight", "max weight", "截止重量", "最大重量", "to", "至", "bis"),
        _p(r"^to$", r"^max$"),
    ),
    RoleSpec(
        Role.WEIGHT,
        ("weight", "kg", "重量", "gewicht", "poids"),
        _p(r"^\d+[-~]\d*\s*(kg)?$", r"^up\s*to"),
    ),
    RoleSpec(
        Role.PURCHASE_PRICE,
        ("purchase", "cost", "buy", "采购", "成本", "进价", "einkauf", "achat"),
        _p(r"^cost$", r"^purchase$"),
    ),
    RoleSpec(
        Role.SALES_PRICE,
        # bare "price" valt onder de generieke price-rol
        ("sales", "sell", "销售", "售价", "报价", "verkauf", "vente"),
        _p(r"^sell$", r"^sales?\s*price$"),
    ),
    RoleSpec(
        Role.PRICE,
        ("price", "rate", "amount", "价格", "费率", "金额", "preis", "prix", "tarif"),
        _p(r"^(eur|usd|cny)\b", r"€", r"\$"),
    ),
    RoleSpec(
        Role.CURRENCY,
        ("currency", "curr", "币种", "货币", "währung", "devise"),
        _p(r"^curr$", r"^ccy$"),
    ),
    RoleSpec(
        Role.SERVICE,
        ("service", "product", "服务", "产品", "dienst"),
        _p(r"^svc$",),
    ),
)

SPECS_BY_ROLE: Dict[Role, RoleSpec] = {s.role: s for s in ROLE_SPECS}


def _content_score(role: Role, samples: Sequence[Any]) -> float:
    bonus = 0.0
    if role in PRICE_ROLES and all(parse_price(v) is not None for v in samples):
        bonus += NUMERIC_CONTENT_SCORE
    if role == Role.ZONE and any(ZONE_TOKEN_RE.search(cell_text(v)) for v in samples):
        bonus += ZONE_CONTENT_SCORE
    if role == Role.WEIGHT and any(looks_like_weight_range(v) for v in samples):
        bonus += WEIGHT_RANGE_CONTENT_SCORE
    return min(bonus, CONTENT_MAX)


def _keyword_hit(keyword: str, text: str) -> bool:
    k = keyword.lower()
    if k in WHOLE_WORD_KEYWORDS:
        return re.search(rf"\b{re.escape(k)}\b", text) is not None
    return k in text


def score_header(spec: RoleSpec, header_text: str, sample_values: Sequence[Any] = ()) -> float:
    """Match score of one header (plus its sampled cells) against one role."""
    text = (header_text or "").strip().lower()
    if not text:
        return 0.0

    score = 0.0
    if any(_keyword_hit(k, text) for k in spec.keywords):
        score += KEYWORD_SCORE
    if any(p.search(text) for p in spec.patterns):
        score += PATTERN_SCORE

    if score < CONTENT_THRESHOLD:
        samples = [v for v in sample_values if cell_text(v) != ""]
        if samples:
            score += _content_score(spec.role, samples)

    return round(score, 4)


def _samples_for(index: int, sample_rows: Sequence[DataRow]) -> List[Any]:
    return [r.cell(index) for r in sample_rows[:SAMPLE_SIZE]]


def auto_map_columns(
    headers: Sequence[HeaderCell],
    sample_rows: Sequence[DataRow] = (),
) -> ColumnMapping:
    """
    Assign each role to at most one header and each header to at most one role.

    Candidates are taken highest score first. On equal scores a header that
    fits only that one role goes before a header that fits several, so
    "Price/kg" next to "Weight" ends up as the price column. Remaining ties
    follow ROLE_SPECS order, then column order.
    """
    mapping = ColumnMapping()

    candidates = []
    for pos, header in enumerate(headers):
        samples = _samples_for(header.index, sample_rows)
        scores = [score_header(spec, header.value, samples) for spec in ROLE_SPECS]
        for order, (spec, s) in enumerate(zip(ROLE_SPECS, scores)):
            if s <= 0:
                continue
            ties = scores.count(s)
            candidates.append(((-s, ties, order, pos), spec.role, header))
    candidates.sort(key=lambda c: c[0])

    taken = set()
    for key, role, header in candidates:
        if mapping.has(role) or header.index in taken:
            continue
        mapping.columns[role] = ColumnRef(header.index, header.column, header.value)
        mapping.confidence[role] = -key[0]
        taken.add(header.index)

    weight = mapping.get(Role.WEIGHT)
    if weight and not mapping.has(Role.WEIGHT_FROM) and not mapping.has(Role.WEIGHT_TO):
        if any(looks_like_weight_range(v) for v in _samples_for(weight.index, sample_rows)):
            mapping.suggestions.append(
                f"column {weight.column} holds weight ranges (e.g. 0-5kg); they will be split into from/to"
            )

    price = mapping.get(Role.PRICE)
    if price and not mapping.has(Role.PURCHASE_PRICE) and not mapping.has(Role.SALES_PRICE):
        mapping.columns[Role.PURCHASE_PRICE] = price
        mapping.confidence[Role.PURCHASE_PRICE] = mapping.confidence[Role.PRICE]
        mapping.suggestions.append(
            f"price column {price.column} is used as purchase price; map it manually to split purchase/sales"
        )

    mapped = {ref.index for ref in mapping.columns.values()}
    mapping.unmapped = [h for h in headers if h.index not in mapped]
    return mapping


def mapping_from_indexes(headers: Sequence[HeaderCell], indexes: Mapping[str, Optional[int]]) -> ColumnMapping:
    """Manual mapping from the API, e.g. {"zone": 0, "weight_from": 1}."""
    by_index = {h.index: h for h in headers}
    mapping = ColumnMapping()

    for name, idx in indexes.items():
        if idx is None:
            continue
        try:
            role = Role(name)
        except ValueError:
            raise ValueError(f"unknown role: {name!r}") from None
        header = by_index.get(int(idx))
        if header is None:
            raise ValueError(f"column index {idx} out of range for role {name!r}")
        mapping.columns[role] = ColumnRef(header.index, header.column, header.value)
        mapping.confidence[role] = 1.0

    mapped = {ref.index for ref in mapping.columns.values()}
    mapping.unmapped = [h for h in headers if h.index not in mapped]
    return mapping


@dataclass
class MappingValidation:
    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def validate_mapping(
    mapping: ColumnMapping,
    format: SheetFormat = SheetFormat.LIST,
    *,
    detected: Optional[SheetFormat] = None,
) -> MappingValidation:
    errors: List[str] = []
    warnings: List[str] = []

    if format == SheetFormat.MATRIX:
        if detected is not None and detected != SheetFormat.MATRIX:
            warnings.append("matrix layout was not detected; confirm the zone row and weight column manually")
    else:
        if not mapping.has(Role.ZONE):
            errors.append("no zone column found")
        if not mapping.has(Role.WEIGHT) and not mapping.has(Role.WEIGHT_FROM):
            errors.append("no weight column found")
        if not any(mapping.has(r) for r in PRICE_ROLES):
            errors.append("no price column found")

    return MappingValidation(valid=not errors, errors=errors, warnings=warnings)
