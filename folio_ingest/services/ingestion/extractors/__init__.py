"""Per-format text extractors and the registry that dispatches between them.

- **PlainTextExtractor** -- ``text/plain``
- **DocxExtractor**      -- DOCX via python-docx (tables flattened)
- **PDFExtractor**       -- PDF via PyMuPDF page text
"""

from folio_ingest.services.ingestion.extractors.docx_extractor import DocxExtractor
from folio_ingest.services.ingestion.extractors.pdf_extractor import PDFExtractor
from folio_ingest.services.ingestion.extractors.plain_text_extractor import PlainTextExtractor
from folio_ingest.services.ingestion.extractors.registry import (
    ALLOWED_EXTENSIONS,
    OCTET_STREAM,
    ExtractorRegistry,
    content_type_for_filename,
)


def build_default_registry() -> ExtractorRegistry:
    """Return a registry with every built-in extractor registered."""
    return ExtractorRegistry([PlainTextExtractor(), DocxExtractor(), PDFExtractor()])


__all__ = [
    "ALLOWED_EXTENSIONS",
    "DocxExtractor",
    "ExtractorRegistry",
    "OCTET_STREAM",
    "PDFExtractor",
    "PlainTextExtractor",
    "build_default_registry",
    "content_type_for_filename",
]
