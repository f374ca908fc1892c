import asyncio
import json

import httpx
import pytest

from lastmile.errors import OcrNotConfigured, OcrUnavailable, ParseError
from lastmile.importers.pdf import (
    HttpOcrClient,
    OcrTable,
    ocr_table_to_raw_table,
    read_document,
    table_from_payload,
)
from lastmile.importers.spreadsheet import file_type_for, read_csv, read_spreadsheet

from factories import xlsx_bytes


@pytest.mark.parametrize(
    "name, kind",
    [
        ("tarieven.xlsx", "excel"),
        ("TARIEVEN.XLSM", "excel"),
        ("rates.csv", "csv"),
        ("scan.pdf", "pdf"),
        ("foto.JPG", "image"),
        ("oud.xls", "unknown"),
        ("notes", "unknown"),
    ],
)
def test_file_type_for(name, kind):
    assert file_type_for(name) == kind


def test_read_spreadsheet_builds_raw_table():
    content = xlsx_bytes(
        [
            ["Weight", "Zone 1", "Zone 2"],
            ["0-5kg", 10, 12.5],
            ["5-10kg", 15, None],
            [None, None, None],
        ]
    )
    table = read_spreadsheet(content)

    assert table.sheet_name == "Tarieven"
    assert table.available_sheets == ("Tarieven",)
    assert [h.value for h in table.headers] == ["Weight", "Zone 1", "Zone 2"]
    assert [h.column for h in table.headers] == ["A", "B", "C"]
    assert table.total_rows == 3
    assert table.rows[0].row_number == 2
    assert table.rows[1].values == ("5-10kg", 15, None)


def test_read_spreadsheet_errors():
    with pytest.raises(ParseError):
        read_spreadsheet(b"not a workbook")
    with pytest.raises(ParseError, match="sheet not found"):
        read_spreadsheet(xlsx_bytes([["a"]]), sheet_name="Missing")
    with pytest.raises(ParseError, match="no data"):
        read_spreadsheet(xlsx_bytes([]))


def test_read_csv_sniffs_delimiter_and_bom():
    content = "\ufeffZone;Weight;Price\nZ1;0-5;5,50\nZ2;0-5;\n".encode("utf-8")
    table = read_csv(content)

    assert [h.value for h in table.headers] == ["Zone", "Weight", "Price"]
    assert table.rows[0].values == ("Z1", "0-5", "5,50")
    assert table.rows[1].values == ("Z2", "0-5", None)


def test_read_csv_rejects_non_utf8():
    with pytest.raises(ParseError):
        read_csv("Zone;Prijs\nZ1;€5".encode("cp1252"))


# -----------------------------
# OCR
# -----------------------------

PAYLOAD = {
    "Response": {
        "TableDetections": [
            {
                "Confidence": 93,
                "Cells": [
                    {"RowTl": 0, "RowBr": 0, "ColTl": 0, "ColBr": 0, "Text": "Weight"},
                    {"RowTl": 0, "RowBr": 0, "ColTl": 1, "ColBr": 1, "Text": "Zone 1"},
                    {"RowTl": 0, "RowBr": 0, "ColTl": 2, "ColBr": 2, "Text": "Zone 2"},
                    {"RowTl": 1, "RowBr": 1, "ColTl": 0, "ColBr": 0, "Text": "0-5kg"},
                    {"RowTl": 1, "RowBr": 1, "ColTl": 1, "ColBr": 2, "Text": "9.90"},
                ],
            }
        ]
    }
}


def test_payload_to_raw_table_fills_spanning_cells():
    table = table_from_payload(PAYLOAD)
    assert table.confidence == pytest.approx(0.93)

    raw = ocr_table_to_raw_table(table)
    assert [h.value for h in raw.headers] == ["Weight", "Zone 1", "Zone 2"]
    assert raw.rows[0].values == ("0-5kg", "9.90", "9.90")
    assert raw.confidence == pytest.approx(0.93)


def test_payload_errors():
    with pytest.raises(OcrUnavailable):
        table_from_payload({"Response": {"Error": {"Code": "FailedOperation", "Message": "boom"}}})
    with pytest.raises(ParseError, match="no table"):
        table_from_payload({"TableDetections": []})


@pytest.mark.anyio
async def test_http_ocr_client_posts_base64_document():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=PAYLOAD)

    client = HttpOcrClient("https://ocr.test/table", "secret", transport=httpx.MockTransport(handler))
    raw = await read_document(b"%PDF-1.4", client, is_pdf=True, timeout=5)

    assert seen["auth"] == "Bearer secret"
    assert seen["body"]["IsPdf"] is True
    assert seen["body"]["PdfPageNumber"] == 1
    assert seen["body"]["ImageBase64"] == "JVBERi0xLjQ="
    assert raw.total_columns == 3


@pytest.mark.anyio
async def test_http_ocr_client_failures():
    failing = HttpOcrClient(
        "https://ocr.test/table",
        "secret",
        transport=httpx.MockTransport(lambda request: httpx.Response(502, text="bad gateway")),
    )
    with pytest.raises(OcrUnavailable, match="HTTP 502"):
        await failing.recognize_table(b"img", is_pdf=False)

    with pytest.raises(OcrNotConfigured):
        await HttpOcrClient(None, None).recognize_table(b"img", is_pdf=False)


class SlowOcr:
    async def recognize_table(self, content, *, is_pdf, page=1) -> OcrTable:
        await asyncio.sleep(1)
        raise AssertionError("should have timed out")


@pytest.mark.anyio
async def test_read_document_times_out():
    with pytest.raises(OcrUnavailable, match="did not answer"):
        await read_document(b"img", SlowOcr(), is_pdf=False, timeout=0.01)
