"""Abstract base class for per-format text extractors."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from folio_ingest.models.ingestion import ContentType, ExtractionResult


# Concrete implementations:
#   PlainTextExtractor  - text/plain (UTF-8, invalid bytes replaced)
#   DocxExtractor       - DOCX via python-docx
#   PDFExtractor        - PDF via PyMuPDF
# Located in: folio_ingest/services/ingestion/extractors/
class ITextExtractor(ABC):
    """Contract for turning one file format into plain text.

    Each extractor handles exactly one :class:`ContentType`; the
    :class:`~folio_ingest.services.ingestion.extractors.registry.ExtractorRegistry`
    dispatches on it.
    """

    @abstractmethod
    async def extract(self, file_path: Path) -> ExtractionResult:
        """Read *file_path* and return its text plus format-specific metadata.

        Parser warnings belong in ``metadata["messages"]``; they are never
        raised.

        Raises
        ------
        folio_ingest.utils.errors.ExtractionError
            If the file cannot be read or parsed.
        """

    @abstractmethod
    def get_content_type(self) -> ContentType:
        """Return the content type this extractor handles."""

    @abstractmethod
    def get_extractor_name(self) -> str:
        """Return a short identifier used in logs and error prefixes."""
