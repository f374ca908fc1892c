from __future__ import annotations

import csv
import io
from pathlib import PurePath
from typing import Any, List, Optional, Sequence
from zipfile import BadZipFile

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from lastmile.domain.models import DataRow, HeaderCell, RawTable
from lastmile.errors import ParseError
from lastmile.importers.common import _is_row_empty, _trim, cell_text, column_letter

EXCEL_EXTENSIONS = {".xlsx", ".xlsm"}
IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg"}

CSV_DELIMITERS = ",;\t|"
CSV_DEFAULT_DELIMITER = ","


def file_type_for(file_name: str) -> str:
    """excel | csv | pdf | image | unknown, from the extension only."""
    ext = PurePath(file_name or "").suffix.lower()
    if ext in EXCEL_EXTENSIONS:
        return "excel"
    if ext == ".csv":
        return "csv"
    if ext == ".pdf":
        return "pdf"
    if ext in IMAGE_EXTENSIONS:
        return "image"
    return "unknown"


def build_raw_table(
    matrix: Sequence[Sequence[Any]],
    *,
    header_row: int = 1,
    data_start_row: int = 2,
    sheet_name: Optional[str] = None,
    available_sheets: Sequence[str] = (),
    confidence: float = 1.0,
) -> RawTable:
    """
    Pad `matrix` to a rectangle, drop trailing empty rows and split it into
    header cells and data rows. Row numbers are 1-based.
    """
    if header_row < 1 or data_start_row < 1:
        raise ParseError("header_row and data_start_row are 1-based")

    rows: List[List[Any]] = [[_trim(v) for v in r] for r in matrix]
    while rows and _is_row_empty(rows[-1]):
        rows.pop()

    width = 0
    for r in rows:
        for idx in range(len(r) - 1, -1, -1):
            if not _is_row_empty([r[idx]]):
                width = max(width, idx + 1)
                break

    if not rows or width == 0 or len(rows) < header_row:
        raise ParseError("file contains no data")

    padded = tuple(tuple(r[:width]) + (None,) * max(0, width - len(r)) for r in rows)

    headers = tuple(
        HeaderCell(index=i, column=column_letter(i), value=cell_text(v))
        for i, v in enumerate(padded[header_row - 1])
    )
    data_rows = tuple(
        DataRow(row_number=data_start_row + i, values=r)
        for i, r in enumerate(padded[data_start_row - 1 :])
    )

    return RawTable(
        headers=headers,
        rows=data_rows,
        raw_data=padded,
        sheet_name=sheet_name,
        available_sheets=tuple(available_sheets),
        confidence=confidence,
    )


def read_spreadsheet(
    content: bytes,
    *,
    sheet_name: Optional[str] = None,
    header_row: int = 1,
    data_start_row: int = 2,
) -> RawTable:
    """
    XLSX/XLSM -> RawTable (first sheet unless `sheet_name` is given).
    Formulas are read as their cached values.
    """
    try:
        wb = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except (InvalidFileException, BadZipFile, KeyError, OSError, ValueError) as e:
        raise ParseError(f"cannot read workbook: {e}") from e

    try:
        sheets = list(wb.sheetnames)
        if not sheets:
            raise ParseError("workbook has no sheets")

        target = sheet_name or sheets[0]
        if target not in sheets:
            raise ParseError(f"sheet not found: {target!r} (available: {sheets})")

        ws = wb[target]
        matrix = [list(r) for r in ws.iter_rows(values_only=True)]
    finally:
        wb.close()

    return build_raw_table(
        matrix,
        header_row=header_row,
        data_start_row=data_start_row,
        sheet_name=target,
        available_sheets=sheets,
    )


def sniff_delimiter(sample: str) -> str:
    try:
        return csv.Sniffer().sniff(sample, delimiters=CSV_DELIMITERS).delimiter
    except csv.Error:
        return CSV_DEFAULT_DELIMITER


def read_csv(
    content: bytes,
    *,
    header_row: int = 1,
    data_start_row: int = 2,
    delimiter: Optional[str] = None,
) -> RawTable:
    """UTF-8 CSV (BOM tolerated) -> RawTable; delimiter sniffed when not given."""
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ParseError(f"CSV is not valid UTF-8: {e}") from e

    delimiter = delimiter or sniff_delimiter(text[:4096])
    reader = csv.reader(io.StringIO(text, newline=""), delimiter=delimiter)
    matrix = [[(c if c != "" else None) for c in row] for row in reader]

    return build_raw_table(
        matrix,
        header_row=header_row,
        data_start_row=data_start_row,
        sheet_name="csv",
        available_sheets=("csv",),
    )
