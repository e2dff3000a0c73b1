"""Extractor for PDF uploads, via PyMuPDF (fitz).

Text is pulled page by page; pages with no text layer are skipped and
counted.  Encrypted documents are rejected rather than silently yielding
nothing.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import fitz  # PyMuPDF -- the "fitz" import name is a PyMuPDF convention
import structlog

from folio_ingest.interfaces.text_extractor import ITextExtractor
from folio_ingest.models.ingestion import ContentType, ExtractionResult
from folio_ingest.utils.errors import ExtractionError

logger = structlog.get_logger(logger_name=__name__)


class PDFExtractor(ITextExtractor):
    """Concatenates the text layer of every page, separated by blank lines."""

    async def extract(self, file_path: Path) -> ExtractionResult:
        return await asyncio.to_thread(self._extract_sync, file_path)

    def get_content_type(self) -> ContentType:
        return ContentType.PDF

    def get_extractor_name(self) -> str:
        return "pdf"

    def _extract_sync(self, file_path: Path) -> ExtractionResult:
        try:
            doc = fitz.open(str(file_path))
        except Exception as exc:  # noqa: BLE001 - fitz raises its own FileDataError/RuntimeError
            raise ExtractionError(
                message=f"Cannot open PDF {file_path.name}: {exc}",
                provider_name=self.get_extractor_name(),
            ) from exc

        try:
            if doc.needs_pass:
                raise ExtractionError(
                    message=f"PDF {file_path.name} is password protected",
                    provider_name=self.get_extractor_name(),
                )

            pages: list[str] = []
            for page in doc:
                text = page.get_text("text").strip()
                if text:
                    pages.append(text)
            page_count = doc.page_count
        finally:
            doc.close()

        messages: list[str] = []
        empty_pages = page_count - len(pages)
        if empty_pages:
            messages.append(f"{empty_pages} page(s) without a text layer skipped")
            logger.debug("pdf_pages_without_text", file=file_path.name, pages=empty_pages)

        text = "\n\n".join(pages)
        return ExtractionResult(
            text=text,
            metadata={
                "page_count": page_count,
                "pages_with_text": len(pages),
                "character_count": len(text),
                "messages": messages,
            },
        )
