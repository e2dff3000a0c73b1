"""Extractor for DOCX uploads, via python-docx.

Paragraphs and tables are emitted in document order, each table
flattened row by row with cells joined by `` | ``.  Blocks are separated
by blank lines so the paragraph-preserving chunker sees the original
structure.  Anything the parser complains about is collected into
``metadata["messages"]``.
"""

from __future__ import annotations

import asyncio
import warnings
from pathlib import Path
from typing import Any

import docx
import structlog
from docx.oxml.ns import qn
from docx.table import Table
from docx.text.paragraph import Paragraph

from folio_ingest.interfaces.text_extractor import ITextExtractor
from folio_ingest.models.ingestion import ContentType, ExtractionResult
from folio_ingest.utils.errors import ExtractionError

logger = structlog.get_logger(logger_name=__name__)

_PARAGRAPH_TAG = qn("w:p")
_TABLE_TAG = qn("w:tbl")


class DocxExtractor(ITextExtractor):
    """Flattens a Word document into plain text."""

    async def extract(self, file_path: Path) -> ExtractionResult:
        return await asyncio.to_thread(self._extract_sync, file_path)

    def get_content_type(self) -> ContentType:
        return ContentType.DOCX

    def get_extractor_name(self) -> str:
        return "docx"

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _extract_sync(self, file_path: Path) -> ExtractionResult:
        messages: list[str] = []
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            try:
                document = docx.Document(str(file_path))
            except Exception as exc:  # noqa: BLE001 - python-docx raises zip/XML/KeyError variants
                raise ExtractionError(
                    message=f"Cannot parse DOCX {file_path.name}: {exc}",
                    provider_name=self.get_extractor_name(),
                ) from exc

            blocks: list[str] = []
            table_count = 0
            # Walk the body itself so tables stay where they sit between paragraphs.
            for child in document.element.body.iterchildren():
                if child.tag == _PARAGRAPH_TAG:
                    line = Paragraph(child, document).text.strip()
                    if line:
                        blocks.append(line)
                elif child.tag == _TABLE_TAG:
                    table_count += 1
                    blocks.extend(_table_rows(Table(child, document)))

        messages.extend(str(w.message) for w in caught)
        if table_count:
            messages.append(f"{table_count} table(s) flattened to text")

        text = "\n\n".join(blocks)
        metadata: dict[str, Any] = {
            "paragraph_count": len(document.paragraphs),
            "table_count": table_count,
            "character_count": len(text),
            "messages": messages,
        }
        core = document.core_properties
        if core.title:
            metadata["title"] = core.title
        if core.author:
            metadata["author"] = core.author

        if messages:
            logger.debug("docx_parser_messages", file=file_path.name, messages=messages)
        return ExtractionResult(text=text, metadata=metadata)


def _table_rows(table: Table) -> list[str]:
    rows = []
    for row in table.rows:
        cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
        if cells:
            rows.append(" | ".join(cells))
    return rows
