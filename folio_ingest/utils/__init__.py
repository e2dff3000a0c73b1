"""Utility modules for folio-ingest.

- **errors** -- Domain exception hierarchy rooted at FolioIngestError; each
  pipeline stage raises its own subclass so the pipeline can decide between
  "fail the job", "count and continue" and "retry".
- **concurrency** -- asyncio semaphore throttling and timeout helpers that
  bound the embedding fan-out.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
"""

# -- Domain exception hierarchy --------------------------------------------
from folio_ingest.utils.errors import (
    ChunkingConfigurationError,
    ConfigurationError,
    DocumentNotFoundError,
    EmbeddingError,
    ExtractionError,
    FolioIngestError,
    InvalidStatusTransitionError,
    NoContentExtractedError,
    QueueUnavailableError,
    StorageError,
    UnsupportedFormatError,
    UploadRejectedError,
)

# -- Async concurrency helpers ---------------------------------------------
from folio_ingest.utils.concurrency import call_with_timeout, throttled_gather

# -- Structured logging setup ----------------------------------------------
from folio_ingest.utils.logging import configure_logging

__all__ = [
    "ChunkingConfigurationError",
    "ConfigurationError",
    "DocumentNotFoundError",
    "EmbeddingError",
    "ExtractionError",
    "FolioIngestError",
    "InvalidStatusTransitionError",
    "NoContentExtractedError",
    "QueueUnavailableError",
    "StorageError",
    "UnsupportedFormatError",
    "UploadRejectedError",
    "call_with_timeout",
    "configure_logging",
    "throttled_gather",
]
