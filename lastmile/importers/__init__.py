# Rate sheet import: reading, detection, mapping, normalizing, validation

from .preview_store import PreviewStore
from .service import ImportService, ParseResult, PreviewOptions, PreviewResult

__all__ = [
    "ImportService",
    "ParseResult",
    "PreviewOptions",
    "PreviewResult",
    "PreviewStore",
]
