"""Unit tests for the per-format extractors and the ExtractorRegistry."""

from __future__ import annotations

from pathlib import Path

import pytest

from folio_ingest.models.ingestion import ContentType
from folio_ingest.services.ingestion.extractors import (
    DocxExtractor,
    ExtractorRegistry,
    PDFExtractor,
    PlainTextExtractor,
    build_default_registry,
    content_type_for_filename,
)
from folio_ingest.utils.errors import (
    ExtractionError,
    NoContentExtractedError,
    UnsupportedFormatError,
)

_DOCX = ContentType.DOCX.value


# ---------------------------------------------------------------------------
# Registry dispatch
# ---------------------------------------------------------------------------


class TestExtractorRegistry:
    def test_default_registry_supports_closed_set(self) -> None:
        registry = build_default_registry()
        assert registry.supported_types() == sorted(ContentType, key=lambda ct: ct.value)

    @pytest.mark.parametrize(
        ("declared", "expected"),
        [
            ("text/plain", PlainTextExtractor),
            ("text/plain; charset=utf-8", PlainTextExtractor),
            ("APPLICATION/PDF", PDFExtractor),
            (_DOCX, DocxExtractor),
            (ContentType.PDF, PDFExtractor),
        ],
    )
    def test_resolve(self, declared, expected) -> None:
        assert isinstance(build_default_registry().resolve(declared), expected)

    @pytest.mark.parametrize("declared", ["text/csv", "application/msword", ""])
    def test_resolve_unsupported(self, declared: str) -> None:
        with pytest.raises(UnsupportedFormatError) as exc_info:
            build_default_registry().resolve(declared)
        assert exc_info.value.content_type == declared

    def test_known_type_without_registered_extractor(self) -> None:
        registry = ExtractorRegistry([PlainTextExtractor()])
        with pytest.raises(UnsupportedFormatError):
            registry.resolve(ContentType.PDF)

    @pytest.mark.asyncio
    async def test_unsupported_type_checked_before_file_access(self, tmp_path: Path) -> None:
        missing = tmp_path / "does-not-exist.csv"
        with pytest.raises(UnsupportedFormatError, match="text/csv"):
            await build_default_registry().extract(missing, "text/csv")

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ExtractionError, match="File not found"):
            await build_default_registry().extract(tmp_path / "gone.txt", "text/plain")

    @pytest.mark.asyncio
    async def test_whitespace_only_file_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "blank.txt"
        path.write_text("  \n\n\t \n", encoding="utf-8")

        with pytest.raises(NoContentExtractedError):
            await build_default_registry().extract(path, "text/plain")

    @pytest.mark.asyncio
    async def test_docx_without_paragraphs_or_tables_rejected(self, tmp_path: Path) -> None:
        import docx

        path = tmp_path / "empty.docx"
        docx.Document().save(str(path))

        with pytest.raises(NoContentExtractedError):
            await build_default_registry().extract(path, _DOCX)

    @pytest.mark.asyncio
    async def test_pdf_with_only_blank_pages_rejected(self, tmp_path: Path) -> None:
        import fitz

        doc = fitz.open()
        doc.new_page()
        doc.new_page()
        path = tmp_path / "scanned.pdf"
        doc.save(str(path))
        doc.close()

        with pytest.raises(NoContentExtractedError):
            await build_default_registry().extract(path, ContentType.PDF)

    @pytest.mark.asyncio
    async def test_metadata_is_stamped(self, text_file: Path) -> None:
        result = await build_default_registry().extract(text_file, "text/plain")

        assert result.metadata["content_type"] == "text/plain"
        assert result.metadata["file_size"] == text_file.stat().st_size
        assert "extracted_at" in result.metadata
        assert result.metadata["messages"] == []


class TestContentTypeForFilename:
    @pytest.mark.parametrize(
        ("filename", "expected"),
        [
            ("notes.txt", "text/plain"),
            ("CV.PDF", "application/pdf"),
            ("case.docx", _DOCX),
            ("photo.png", "application/octet-stream"),
            ("no_extension", "application/octet-stream"),
        ],
    )
    def test_mapping(self, filename: str, expected: str) -> None:
        assert content_type_for_filename(filename) == expected


# ---------------------------------------------------------------------------
# Individual extractors
# ---------------------------------------------------------------------------


class TestPlainTextExtractor:
    @pytest.mark.asyncio
    async def test_reads_utf8(self, text_file: Path, sample_text: str) -> None:
        result = await PlainTextExtractor().extract(text_file)
        assert result.text == sample_text
        assert "messages" not in result.metadata

    @pytest.mark.asyncio
    async def test_invalid_bytes_are_replaced_and_reported(self, tmp_path: Path) -> None:
        path = tmp_path / "latin1.txt"
        path.write_bytes(b"caf\xe9 au lait")

        result = await PlainTextExtractor().extract(path)

        assert "\ufffd" in result.text
        assert result.metadata["messages"] == ["1 undecodable byte sequence(s) replaced"]


class TestDocxExtractor:
    @pytest.mark.asyncio
    async def test_paragraphs_and_tables(self, docx_file: Path) -> None:
        result = await DocxExtractor().extract(docx_file)

        blocks = result.text.split("\n\n")
        assert blocks[0] == "Reduced checkout latency by 40 percent."
        assert blocks[1] == "Rolled out to every region within a quarter."
        assert "Metric | Value" in blocks
        assert "p95 latency | 180ms" in blocks

    @pytest.mark.asyncio
    async def test_tables_keep_document_order(self, tmp_path: Path) -> None:
        import docx

        document = docx.Document()
        document.add_paragraph("Before the table.")
        table = document.add_table(rows=1, cols=2)
        table.cell(0, 0).text = "Stack"
        table.cell(0, 1).text = "Python"
        document.add_paragraph("After the table.")
        path = tmp_path / "ordered.docx"
        document.save(str(path))

        result = await DocxExtractor().extract(path)

        assert result.text.split("\n\n") == [
            "Before the table.",
            "Stack | Python",
            "After the table.",
        ]

    @pytest.mark.asyncio
    async def test_metadata(self, docx_file: Path) -> None:
        result = await DocxExtractor().extract(docx_file)

        assert result.metadata["table_count"] == 1
        assert result.metadata["title"] == "Case Study"
        assert result.metadata["author"] == "A. Writer"
        assert "1 table(s) flattened to text" in result.metadata["messages"]

    @pytest.mark.asyncio
    async def test_corrupt_file(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.docx"
        path.write_bytes(b"this is not a zip archive")

        with pytest.raises(ExtractionError, match="Cannot parse DOCX"):
            await DocxExtractor().extract(path)


class TestPDFExtractor:
    @pytest.mark.asyncio
    async def test_text_and_page_counts(self, pdf_file: Path) -> None:
        result = await PDFExtractor().extract(pdf_file)

        assert "distributed systems engineer" in result.text
        assert result.metadata["page_count"] == 2
        assert result.metadata["pages_with_text"] == 1
        assert result.metadata["messages"] == ["1 page(s) without a text layer skipped"]

    @pytest.mark.asyncio
    async def test_corrupt_file(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.pdf"
        path.write_bytes(b"%PDF-garbage")

        # Either the parser rejects it or the repaired document holds no text.
        with pytest.raises(ExtractionError):
            await build_default_registry().extract(path, ContentType.PDF)
