"""Document record models.

A :class:`Document` is one uploaded portfolio artifact (resume, case study,
write-up).  Its ``status`` follows a forward-only lifecycle::

    queued -> processing -> embedded | processed | failed

``embedded``: at least one embedding record was stored.
``processed``: text was extracted and chunked but no embedding succeeded.
``failed``: extraction/chunking failed, every store failed, or the run
crashed.  A new ingestion attempt re-enters ``processing`` and overwrites
status and metadata; history is not merged.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class DocumentStatus(str, Enum):
    """Lifecycle status of a document record."""

    QUEUED = "queued"
    PROCESSING = "processing"
    EMBEDDED = "embedded"
    PROCESSED = "processed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES: frozenset[DocumentStatus] = frozenset(
    {DocumentStatus.EMBEDDED, DocumentStatus.PROCESSED, DocumentStatus.FAILED}
)


class Document(BaseModel):
    """Immutable snapshot of a document record as read from the store."""

    model_config = ConfigDict(frozen=True)

    id: int = Field(description="Document record id.")
    filename: str = Field(description="Stored file name inside the upload directory.")
    original_name: str = Field(description="File name as uploaded by the user.")
    content_type: str = Field(default="", description="Declared MIME type.")
    category: str = Field(default="general", description="Portfolio category label.")
    size: int = Field(default=0, ge=0, description="File size in bytes.")
    status: DocumentStatus = Field(default=DocumentStatus.QUEUED)
    content_text: str | None = Field(default=None, description="Extracted plain text.")
    # Primary vector reference: the first record stored by the last successful run.
    vector_id: int | None = Field(default=None)
    tags: list[str] = Field(default_factory=list)
    ai_summary: str | None = Field(default=None)
    metadata: dict[str, Any] = Field(default_factory=dict)
    uploaded_at: datetime
    processed_at: datetime | None = None
