"""Extractor for ``text/plain`` uploads."""

from __future__ import annotations

import asyncio
from pathlib import Path

from folio_ingest.interfaces.text_extractor import ITextExtractor
from folio_ingest.models.ingestion import ContentType, ExtractionResult
from folio_ingest.utils.errors import ExtractionError


class PlainTextExtractor(ITextExtractor):
    """Reads the file as UTF-8; undecodable bytes become U+FFFD."""

    async def extract(self, file_path: Path) -> ExtractionResult:
        try:
            raw = await asyncio.to_thread(file_path.read_bytes)
        except OSError as exc:
            raise ExtractionError(
                message=f"Cannot read {file_path.name}: {exc}",
                provider_name=self.get_extractor_name(),
            ) from exc

        text = raw.decode("utf-8", errors="replace")
        metadata: dict[str, object] = {
            "character_count": len(text),
            "encoding": "utf-8",
        }
        replaced = text.count("\ufffd")
        if replaced:
            metadata["messages"] = [f"{replaced} undecodable byte sequence(s) replaced"]
        return ExtractionResult(text=text, metadata=metadata)

    def get_content_type(self) -> ContentType:
        return ContentType.PLAIN_TEXT

    def get_extractor_name(self) -> str:
        return "plain_text"
