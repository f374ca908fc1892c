from __future__ import annotations

import asyncio
import base64
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Tuple

import httpx

from lastmile.core.logging_config import logger
from lastmile.core.settings import Settings, settings as default_settings
from lastmile.domain.models import RawTable
from lastmile.errors import OcrNotConfigured, OcrUnavailable, ParseError
from lastmile.importers.spreadsheet import build_raw_table

OCR_SHEET_NAME = "ocr"


@dataclass(frozen=True)
class OcrCell:
    row_tl: int
    row_br: int  # inclusive
    col_tl: int
    col_br: int  # inclusive
    text: str


@dataclass(frozen=True)
class OcrTable:
    cells: Tuple[OcrCell, ...]
    confidence: float
    table_count: int = 1


class OcrClient(Protocol):
    async def recognize_table(self, content: bytes, *, is_pdf: bool, page: int = 1) -> OcrTable:
        ...


def _confidence(v: Any) -> float:
    # gateway levert 0-100 of 0-1
    try:
        c = float(v or 0)
    except (TypeError, ValueError):
        return 0.0
    return c / 100.0 if c > 1 else c


def table_from_payload(payload: Dict[str, Any]) -> OcrTable:
    """
    Gateway response -> first detected table.

    Accepts both `{"Response": {...}}` and the bare inner object.
    """
    body = payload.get("Response", payload) if isinstance(payload, dict) else {}
    error = body.get("Error") if isinstance(body, dict) else None
    if error:
        msg = error.get("Message") if isinstance(error, dict) else str(error)
        raise OcrUnavailable(f"OCR recognition failed: {msg}")

    tables = body.get("TableDetections") or []
    if not tables:
        raise ParseError("no table detected in document")

    first = tables[0]
    cells: List[OcrCell] = []
    for c in first.get("Cells") or []:
        try:
            cells.append(
                OcrCell(
                    row_tl=int(c["RowTl"]),
                    row_br=int(c.get("RowBr", c["RowTl"])),
                    col_tl=int(c["ColTl"]),
                    col_br=int(c.get("ColBr", c["ColTl"])),
                    text=str(c.get("Text") or ""),
                )
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ParseError(f"malformed OCR cell: {c!r}") from e

    if not cells:
        raise ParseError("detected table has no cells")

    return OcrTable(
        cells=tuple(cells),
        confidence=_confidence(first.get("Confidence")),
        table_count=len(tables),
    )


def ocr_table_to_raw_table(table: OcrTable) -> RawTable:
    """Spanning cells fill every slot they cover; row 0 is the header."""
    max_row = max(max(c.row_tl, c.row_br) for c in table.cells)
    max_col = max(max(c.col_tl, c.col_br) for c in table.cells)

    matrix: List[List[Optional[str]]] = [[None] * (max_col + 1) for _ in range(max_row + 1)]
    for c in table.cells:
        for r in range(c.row_tl, c.row_br + 1):
            for col in range(c.col_tl, c.col_br + 1):
                matrix[r][col] = c.text.strip() or None

    return build_raw_table(
        matrix,
        header_row=1,
        data_start_row=2,
        sheet_name=OCR_SHEET_NAME,
        available_sheets=(OCR_SHEET_NAME,),
        confidence=table.confidence,
    )


class HttpOcrClient:
    """
    Table OCR through an HTTP gateway (bearer key). The gateway answers with
    the Tencent RecognizeTableOCR shape: TableDetections[].Cells[].
    """

    def __init__(
        self,
        endpoint: Optional[str],
        api_key: Optional[str],
        *,
        provider: str = "tencent",
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.endpoint = endpoint
        self.api_key = api_key
        self.provider = provider
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, s: Settings = default_settings) -> "HttpOcrClient":
        return cls(
            s.OCR_ENDPOINT,
            s.OCR_API_KEY,
            provider=s.OCR_PROVIDER,
            timeout=s.OCR_TIMEOUT_SECONDS,
        )

    @property
    def configured(self) -> bool:
        return bool(self.endpoint and self.api_key)

    async def recognize_table(self, content: bytes, *, is_pdf: bool, page: int = 1) -> OcrTable:
        if not self.configured:
            raise OcrNotConfigured("OCR service is not configured (OCR_ENDPOINT / OCR_API_KEY)")

        body = {
            "ImageBase64": base64.b64encode(content).decode("ascii"),
            "IsPdf": bool(is_pdf),
            "PdfPageNumber": int(page),
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                r = await client.post(self.endpoint, json=body, headers=headers)
        except httpx.HTTPError as e:
            logger.warning("ocr_call_failed", provider=self.provider, error=str(e))
            raise OcrUnavailable(f"OCR gateway call failed: {e}") from e

        if r.status_code >= 300:
            logger.warning("ocr_call_failed", provider=self.provider, status=r.status_code)
            raise OcrUnavailable(f"OCR gateway returned HTTP {r.status_code}")

        try:
            payload = r.json()
        except ValueError as e:
            raise OcrUnavailable("OCR gateway returned invalid JSON") from e

        return table_from_payload(payload)


async def read_document(
    content: bytes,
    ocr_client: OcrClient,
    *,
    is_pdf: bool,
    page: int = 1,
    timeout: Optional[float] = None,
) -> RawTable:
    """PDF / image -> RawTable via OCR, time-boxed by `timeout` seconds."""
    try:
        table = await asyncio.wait_for(
            ocr_client.recognize_table(content, is_pdf=is_pdf, page=page),
            timeout=timeout,
        )
    except asyncio.TimeoutError as e:
        logger.warning("ocr_timeout", timeout=timeout, is_pdf=is_pdf)
        raise OcrUnavailable(f"OCR did not answer within {timeout}s") from e

    logger.info(
        "ocr_table_recognized",
        cells=len(table.cells),
        confidence=table.confidence,
        table_count=table.table_count,
    )
    return ocr_table_to_raw_table(table)


def ocr_status(s: Settings = default_settings) -> Dict[str, Any]:
    return {"configured": s.ocr_configured, "provider": s.OCR_PROVIDER}
