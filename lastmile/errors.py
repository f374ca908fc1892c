from __future__ import annotations

from typing import Any, Dict, List, Optional


class ParseError(ValueError):
    """Raised when an uploaded rate sheet cannot be turned into a raw table."""


class UnsupportedFileType(ParseError):
    pass


class OcrNotConfigured(ParseError):
    """OCR gateway endpoint / key missing; PDF and image sheets cannot be read."""


class OcrUnavailable(ParseError):
    """OCR gateway failed, answered with an error payload, or timed out."""


class MappingError(ValueError):
    """Required roles (zone, weight, price) could not be mapped."""

    def __init__(self, errors: List[str], warnings: Optional[List[str]] = None):
        self.errors = list(errors)
        self.warnings = list(warnings or [])
        super().__init__("; ".join(self.errors))


class PreviewExpired(KeyError):
    """Preview entry is unknown or its TTL elapsed."""

    def __init__(self, import_id: str):
        self.import_id = import_id
        super().__init__(import_id)

    def __str__(self) -> str:
        return f"import preview {self.import_id} not found or expired"


class ImportBlocked(ValueError):
    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(f"{code}: {message}")


class PricingError(Exception):
    """
    Base for quote-time failures. `code` is stable so callers can tell
    configuration problems (no zone / rate card) from request problems.
    """

    code: str = "PRICING_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = str(message)
        self.details = details or {}
        super().__init__(f"{self.code}: {self.message}")


class InvalidQuoteRequest(PricingError):
    code = "INVALID_REQUEST"


class ZoneNotFound(PricingError):
    code = "ZONE_NOT_FOUND"


class NoActiveRateCard(PricingError):
    code = "NO_ACTIVE_RATE_CARD"


class NoMatchingRate(PricingError):
    code = "NO_MATCHING_RATE"
