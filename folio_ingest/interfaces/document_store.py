"""Abstract base class for the document record store.

The document store belongs to the surrounding portfolio application; the
pipeline only needs create/read/partial-update, plus a status listing used
to find documents an interrupted run left in ``processing``.
Within the pipeline, only
:class:`~folio_ingest.services.ingestion.status_controller.DocumentStatusController`
writes ``status``, ``processed_at``, ``content_text``, ``vector_id`` and
``metadata``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from folio_ingest.models.document import Document, DocumentStatus


class IDocumentStore(ABC):
    """Contract for persisting :class:`Document` records."""

    @abstractmethod
    async def create_document(
        self,
        filename: str,
        original_name: str,
        content_type: str,
        category: str = "general",
        size: int = 0,
        tags: list[str] | None = None,
    ) -> Document:
        """Insert a new record in ``queued`` status and return it."""

    @abstractmethod
    async def get_document(self, document_id: int) -> Document | None:
        """Return the record for *document_id*, or ``None`` if absent."""

    @abstractmethod
    async def update_document(self, document_id: int, **fields: Any) -> Document:
        """Apply a partial update and return the updated record.

        Raises
        ------
        folio_ingest.utils.errors.DocumentNotFoundError
            If no record exists for *document_id*.
        """

    @abstractmethod
    async def list_by_status(self, status: DocumentStatus, limit: int = 100) -> list[Document]:
        """Return up to *limit* records in *status*, oldest upload first."""

    @abstractmethod
    async def delete_document(self, document_id: int) -> bool:
        """Delete the record.  Returns ``False`` if it did not exist."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier, e.g. ``"sqlite_documents"``."""
