"""folio-ingest domain models - re-exports all public model classes.

Submodules by concern:
    - document.py   - Document records and their lifecycle status
    - ingestion.py  - Extraction results, chunks, embedding records, run outcomes
    - queue.py      - Ingestion jobs, job state, queue statistics
"""

from __future__ import annotations

from folio_ingest.models.document import TERMINAL_STATUSES, Document, DocumentStatus
from folio_ingest.models.ingestion import (
    BatchStoreResult,
    Chunk,
    ChunkOptions,
    ChunkType,
    ContentType,
    EmbeddingOutcome,
    EmbeddingRecord,
    ExtractionResult,
    IngestionOutcome,
    StoreFailure,
)
from folio_ingest.models.queue import IngestionJob, JobState, JobStatus, QueueStats

__all__ = [
    # document
    "Document",
    "DocumentStatus",
    "TERMINAL_STATUSES",
    # ingestion
    "BatchStoreResult",
    "Chunk",
    "ChunkOptions",
    "ChunkType",
    "ContentType",
    "EmbeddingOutcome",
    "EmbeddingRecord",
    "ExtractionResult",
    "IngestionOutcome",
    "StoreFailure",
    # queue
    "IngestionJob",
    "JobState",
    "JobStatus",
    "QueueStats",
]
