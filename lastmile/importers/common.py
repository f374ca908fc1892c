from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional, Tuple

from lastmile.domain.models import OPEN_ENDED_WEIGHT

D = Decimal


# =========================
# Cell helpers
# =========================


def _trim(v: Any) -> Any:
    if isinstance(v, str):
        return v.strip()
    return v


def _is_row_empty(values: Iterable[Any]) -> bool:
    for v in values:
        if v is None:
            continue
        if isinstance(v, str) and v.strip() == "":
            continue
        return False
    return True


def cell_text(v: Any) -> str:
    """Cell value as stripped text; None -> ''."""
    if v is None:
        return ""
    if isinstance(v, float) and v.is_integer():
        return str(int(v))
    return str(v).strip()


def column_letter(index: int) -> str:
    """0 -> A, 25 -> Z, 26 -> AA."""
    letters = ""
    index = int(index)
    while index >= 0:
        letters = chr(index % 26 + 65) + letters
        index = index // 26 - 1
    return letters


# =========================
# Numbers
# =========================

_NUMBER = r"\d+(?:\.\d+)?"
_LEADING_NUMBER_RE = re.compile(r"^[+-]?\d+(?:\.\d+)?")
_CURRENCY_RE = re.compile(r"[€$¥£]")


def _to_decimal(v: Any) -> Optional[D]:
    if isinstance(v, bool):
        return None
    if isinstance(v, D):
        return v if v.is_finite() else None
    if isinstance(v, int):
        return D(v)
    if isinstance(v, float):
        if v != v or v in (float("inf"), float("-inf")):
            return None
        return D(str(v))
    return None


def parse_price(value: Any) -> Optional[D]:
    """
    Price cell -> Decimal.
    Numbers pass through; strings lose currency symbols, thousands separators
    and whitespace. Anything that does not start with a number -> None.
    """
    if value is None:
        return None
    num = _to_decimal(value)
    if num is not None or not isinstance(value, str):
        return num

    cleaned = _CURRENCY_RE.sub("", value).replace(",", "")
    cleaned = re.sub(r"\s+", "", cleaned)
    if not cleaned:
        return None

    m = _LEADING_NUMBER_RE.match(cleaned)
    if not m:
        return None
    try:
        return D(m.group(0))
    except InvalidOperation:
        return None


def parse_number(value: Any) -> Optional[D]:
    """Explicit weight-from / weight-to cell -> Decimal (None when empty or not numeric)."""
    if value is None:
        return None
    num = _to_decimal(value)
    if num is not None or not isinstance(value, str):
        return num

    cleaned = value.replace(",", "").strip()
    cleaned = re.sub(r"(?i)\s*(kg|公斤|千克)$", "", cleaned)
    if not re.fullmatch(r"[+-]?\d+(?:\.\d+)?", cleaned):
        return None
    return D(cleaned)


# =========================
# Weight ranges
# =========================

# "0-5", "0 ~ 5", "0至5", "0到5"
_RANGE_RE = re.compile(rf"({_NUMBER})\s*[-~至到]\s*({_NUMBER})")
# "up to 5", "不超过5", "5以下"
_UP_TO_PREFIX_RE = re.compile(rf"(?:up\s*to|以下|不超过)\s*({_NUMBER})", re.IGNORECASE)
_UP_TO_SUFFIX_RE = re.compile(rf"({_NUMBER})\s*以下")
# "over 30", "超过30", "30以上", "30+", "+30"
_OVER_PREFIX_RE = re.compile(rf"(?:over|以上|超过|\+)\s*({_NUMBER})", re.IGNORECASE)
_OVER_SUFFIX_RE = re.compile(rf"({_NUMBER})\s*(?:以上|\+)")

_UNIT_RE = re.compile(r"kg|公斤|千克|g", re.IGNORECASE)

# weight-range-ish tokens, voor detectie en content-inferentie
WEIGHT_RANGE_TOKEN_RE = re.compile(
    r"\d+\s*[-~至到]\s*\d+|up\s*to\s*\d|over\s*\d|\d+\s*\+|\+\s*\d|以下|以上|超过|不超过",
    re.IGNORECASE,
)


def parse_weight_range(text: Any) -> Optional[Tuple[D, D]]:
    """
    Weight band text -> (from, to), upper bound inclusive.

    Commas are thousands separators ("1,000-2,000" -> 1000..2000), never a
    decimal mark. Open-ended bands get OPEN_ENDED_WEIGHT as upper bound.
    """
    if text is None:
        return None
    s = str(text).replace(",", "")
    s = _UNIT_RE.sub("", s).strip()
    if not s:
        return None

    m = _RANGE_RE.search(s)
    if m:
        return D(m.group(1)), D(m.group(2))

    m = _UP_TO_PREFIX_RE.search(s) or _UP_TO_SUFFIX_RE.search(s)
    if m:
        return D("0"), D(m.group(1))

    m = _OVER_PREFIX_RE.search(s) or _OVER_SUFFIX_RE.search(s)
    if m:
        return D(m.group(1)), OPEN_ENDED_WEIGHT

    return None


def looks_like_weight_range(value: Any) -> bool:
    return bool(WEIGHT_RANGE_TOKEN_RE.search(cell_text(value)))
