"""Text chunking in two modes: paragraph-preserving and sliding window.

**Paragraph-preserving** (default) -- Split on blank lines, then greedily
pack whole paragraphs into a buffer joined by ``"\\n\\n"``.  When the next
paragraph would push the buffer past ``max_chunk_size`` the buffer is
flushed.  A single paragraph longer than the limit becomes its own chunk;
paragraphs are never split, so the limit is a soft bound.  ``overlap`` is
not used in this mode.

**Sliding window** -- Fixed windows of ``max_chunk_size`` characters,
starting every ``max_chunk_size - overlap`` characters, until a window
reaches the end of the text.  For 2500 characters with size 1000 and
overlap 200 the windows are [0, 1000), [800, 1800), [1600, 2500).
"""

from __future__ import annotations

import re
from typing import Iterator

import structlog

from folio_ingest.models.ingestion import Chunk, ChunkOptions, ChunkType
from folio_ingest.utils.errors import ChunkingConfigurationError

logger = structlog.get_logger(logger_name=__name__)

_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")


class TextChunker:
    """Splits extracted text into :class:`Chunk` objects.

    Parameters
    ----------
    default_options:
        Options used when :meth:`chunk` is called without any.
    """

    def __init__(self, default_options: ChunkOptions | None = None) -> None:
        self._default_options = default_options or ChunkOptions()

    @property
    def default_options(self) -> ChunkOptions:
        return self._default_options

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def chunk(self, text: str, options: ChunkOptions | None = None) -> list[Chunk]:
        """Split *text* into an ordered list of chunks.

        Raises
        ------
        ChunkingConfigurationError
            If the options cannot produce a finite sequence.
        """
        options = options or self._default_options
        chunks = list(self.iter_chunks(text, options))
        logger.debug(
            "chunking_complete",
            num_chunks=len(chunks),
            mode=self._chunk_type(options).value,
            max_chunk_size=options.max_chunk_size,
            characters=len(text),
        )
        return chunks

    def iter_chunks(self, text: str, options: ChunkOptions | None = None) -> Iterator[Chunk]:
        """Lazily yield the same chunks :meth:`chunk` returns.

        Options are validated eagerly, before the iterator is returned.
        The iterator is single-use.
        """
        options = options or self._default_options
        self._validate(options)
        if not text or not text.strip():
            return iter(())
        if options.preserve_paragraphs:
            pieces = self._paragraph_pieces(text, options.max_chunk_size)
        else:
            pieces = self._window_pieces(text, options.max_chunk_size, options.overlap)
        return self._to_chunks(pieces, options)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    @staticmethod
    def _validate(options: ChunkOptions) -> None:
        if options.max_chunk_size <= 0:
            raise ChunkingConfigurationError(
                f"max_chunk_size must be positive, got {options.max_chunk_size}"
            )
        if not options.preserve_paragraphs and not 0 <= options.overlap < options.max_chunk_size:
            raise ChunkingConfigurationError(
                f"overlap must be in [0, max_chunk_size); got overlap={options.overlap}, "
                f"max_chunk_size={options.max_chunk_size}"
            )

    # ------------------------------------------------------------------
    # Splitting strategies
    # ------------------------------------------------------------------

    @staticmethod
    def _split_paragraphs(text: str) -> list[str]:
        """Split *text* on blank lines, discarding blanks."""
        parts = _PARAGRAPH_BREAK.split(text)
        return [p.strip() for p in parts if p.strip()]

    def _paragraph_pieces(
        self, text: str, max_chunk_size: int
    ) -> Iterator[tuple[str, dict[str, int]]]:
        buffer = ""
        for paragraph in self._split_paragraphs(text):
            if buffer and len(buffer) + len(paragraph) > max_chunk_size:
                yield buffer.strip(), {}
                buffer = paragraph
            else:
                buffer = f"{buffer}\n\n{paragraph}" if buffer else paragraph
        if buffer.strip():
            yield buffer.strip(), {}

    @staticmethod
    def _window_pieces(
        text: str, max_chunk_size: int, overlap: int
    ) -> Iterator[tuple[str, dict[str, int]]]:
        step = max_chunk_size - overlap
        start = 0
        length = len(text)
        while start < length:
            end = min(start + max_chunk_size, length)
            window = text[start:end]
            if window.strip():
                yield window, {"start_index": start, "end_index": end}
            if end >= length:
                break
            start += step

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _to_chunks(
        self,
        pieces: Iterator[tuple[str, dict[str, int]]],
        options: ChunkOptions,
    ) -> Iterator[Chunk]:
        chunk_type = self._chunk_type(options)
        for index, (piece, offsets) in enumerate(pieces):
            yield Chunk(
                text=piece,
                index=index,
                metadata={
                    "category": options.category,
                    "chunk_type": chunk_type.value,
                    "word_count": len(piece.split()),
                    "character_count": len(piece),
                    **offsets,
                },
            )

    @staticmethod
    def _chunk_type(options: ChunkOptions) -> ChunkType:
        return ChunkType.PARAGRAPH if options.preserve_paragraphs else ChunkType.SLIDING_WINDOW
