"""Data models flowing through one ingestion run.

extract -> :class:`ExtractionResult`
chunk   -> :class:`Chunk` (ephemeral, never persisted)
embed   -> :class:`EmbeddingOutcome` (one per chunk, success or failure)
store   -> :class:`EmbeddingRecord` / :class:`BatchStoreResult`
finish  -> :class:`IngestionOutcome`
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from folio_ingest.models.document import DocumentStatus


class ContentType(str, Enum):
    """Closed set of content types the extractor registry understands."""

    PLAIN_TEXT = "text/plain"
    DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
    PDF = "application/pdf"


class ChunkType(str, Enum):
    PARAGRAPH = "paragraph-based"
    SLIDING_WINDOW = "sliding-window"


# ---------------------------------------------------------------------------
# Extraction / chunking
# ---------------------------------------------------------------------------


class ExtractionResult(BaseModel):
    """Plain text pulled out of an uploaded file plus parser metadata."""

    model_config = ConfigDict(frozen=True)

    text: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class ChunkOptions(BaseModel):
    """Chunker configuration.  Validation of size/overlap happens in the chunker."""

    model_config = ConfigDict(frozen=True)

    max_chunk_size: int = 1000
    overlap: int = 200
    category: str = "general"
    preserve_paragraphs: bool = True


class Chunk(BaseModel):
    """One contiguous piece of extracted text, sized for an embedding call."""

    model_config = ConfigDict(frozen=True)

    text: str
    index: int = Field(ge=0, description="Position of the chunk within its document.")
    metadata: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Embedding / storage
# ---------------------------------------------------------------------------


class EmbeddingOutcome(BaseModel):
    """Result of embedding a single chunk; exactly one of embedding/error is set."""

    model_config = ConfigDict(frozen=True)

    index: int
    embedding: list[float] | None = None
    error: str | None = None
    # The chunk text was cut to the generator's input limit before embedding.
    truncated: bool = False

    @model_validator(mode="after")
    def _one_of(self) -> EmbeddingOutcome:
        if (self.embedding is None) == (self.error is None):
            raise ValueError("EmbeddingOutcome needs exactly one of embedding or error")
        return self

    @property
    def succeeded(self) -> bool:
        return self.embedding is not None


class EmbeddingRecord(BaseModel):
    """A persisted (chunk text, vector) pair.  ``id`` is assigned by the repository."""

    model_config = ConfigDict(frozen=True)

    id: int | None = None
    document_id: int
    embedding: list[float]
    text_content: str
    category: str = "general"
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class StoreFailure(BaseModel):
    """One record that could not be inserted."""

    model_config = ConfigDict(frozen=True)

    position: int = Field(description="Index of the record in the submitted batch.")
    error: str


class BatchStoreResult(BaseModel):
    """Outcome of :meth:`IVectorRepository.store_many`."""

    model_config = ConfigDict(frozen=True)

    ids: list[int] = Field(default_factory=list)
    failures: list[StoreFailure] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Run outcome
# ---------------------------------------------------------------------------


class IngestionOutcome(BaseModel):
    """Summary of a single pipeline run, handed back to the queue layer."""

    model_config = ConfigDict(frozen=True)

    document_id: int
    job_id: str = ""
    status: DocumentStatus | None = Field(
        default=None, description="Final document status, None if the record is gone."
    )
    chunks_total: int = 0
    embeddings_succeeded: int = 0
    embeddings_failed: int = 0
    records_stored: int = 0
    storage_failures: int = 0
    vector_ids: list[int] = Field(default_factory=list)
    error: str | None = None
    retryable: bool = False
    # A late write from a superseded attempt was rejected by the status controller.
    stale: bool = False
    elapsed_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.status in (DocumentStatus.EMBEDDED, DocumentStatus.PROCESSED)
