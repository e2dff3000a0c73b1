"""Extractor registry: dispatch on a closed set of content types.

The registry is the only entry point the pipeline uses for extraction.  It
resolves the declared MIME string to a :class:`ContentType`, refuses
anything unregistered up front, checks the file exists, and rejects
whitespace-only output so that no downstream stage ever runs on empty text.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import structlog

from folio_ingest.interfaces.text_extractor import ITextExtractor
from folio_ingest.models.ingestion import ContentType, ExtractionResult
from folio_ingest.utils.errors import (
    ExtractionError,
    NoContentExtractedError,
    UnsupportedFormatError,
)

logger = structlog.get_logger(logger_name=__name__)

OCTET_STREAM = "application/octet-stream"

_EXTENSION_CONTENT_TYPES: dict[str, ContentType] = {
    ".txt": ContentType.PLAIN_TEXT,
    ".docx": ContentType.DOCX,
    ".pdf": ContentType.PDF,
}

ALLOWED_EXTENSIONS = frozenset(_EXTENSION_CONTENT_TYPES)


def content_type_for_filename(filename: str) -> str:
    """Map a file name to its MIME type by extension (case-insensitive).

    >>> content_type_for_filename("resume.PDF")
    'application/pdf'
    >>> content_type_for_filename("photo.png")
    'application/octet-stream'
    """
    content_type = _EXTENSION_CONTENT_TYPES.get(Path(filename).suffix.lower())
    return content_type.value if content_type else OCTET_STREAM


class ExtractorRegistry:
    """Maps each :class:`ContentType` to the extractor that handles it."""

    def __init__(self, extractors: list[ITextExtractor] | None = None) -> None:
        self._extractors: dict[ContentType, ITextExtractor] = {}
        for extractor in extractors or []:
            self.register(extractor)

    def register(self, extractor: ITextExtractor) -> None:
        """Register *extractor*, replacing any previous one for its type."""
        self._extractors[extractor.get_content_type()] = extractor

    def supported_types(self) -> list[ContentType]:
        return sorted(self._extractors, key=lambda ct: ct.value)

    def resolve(self, content_type: ContentType | str) -> ITextExtractor:
        """Return the extractor for *content_type*.

        Raises
        ------
        UnsupportedFormatError
            If the type is outside the closed set or has no extractor.
        """
        raw = content_type.value if isinstance(content_type, ContentType) else content_type
        # Declared types may carry parameters, e.g. "text/plain; charset=utf-8".
        normalized = raw.split(";", 1)[0].strip().lower()
        try:
            resolved = ContentType(normalized)
        except ValueError:
            raise UnsupportedFormatError(raw, provider_name="extractor_registry") from None
        extractor = self._extractors.get(resolved)
        if extractor is None:
            raise UnsupportedFormatError(raw, provider_name="extractor_registry")
        return extractor

    async def extract(
        self, file_path: str | Path, content_type: ContentType | str
    ) -> ExtractionResult:
        """Extract text from *file_path* using the extractor for *content_type*.

        Stamps ``content_type``, ``extracted_at`` and ``file_size`` into the
        returned metadata.

        Raises
        ------
        UnsupportedFormatError
            Unknown or unregistered content type (checked before any I/O).
        ExtractionError
            Missing/unreadable file or parser failure.
        NoContentExtractedError
            The extracted text is empty after trimming.
        """
        extractor = self.resolve(content_type)
        path = Path(file_path)
        if not path.is_file():
            raise ExtractionError(
                message=f"File not found: {path}",
                provider_name=extractor.get_extractor_name(),
            )

        result = await extractor.extract(path)
        if not result.text.strip():
            raise NoContentExtractedError(
                message=f"No text content extracted from {path.name}",
                provider_name=extractor.get_extractor_name(),
            )

        metadata = {
            **result.metadata,
            "content_type": extractor.get_content_type().value,
            "extracted_at": datetime.now(timezone.utc).isoformat(),
            "file_size": path.stat().st_size,
        }
        metadata.setdefault("messages", [])
        logger.info(
            "text_extracted",
            file=path.name,
            extractor=extractor.get_extractor_name(),
            characters=len(result.text),
        )
        return ExtractionResult(text=result.text, metadata=metadata)
