"""Abstract base class for embedding record persistence."""

from __future__ import annotations

from abc import ABC, abstractmethod

from folio_ingest.models.ingestion import BatchStoreResult, EmbeddingRecord


# Concrete implementations:
#   SQLiteVectorRepository - vectors stored as JSON text in SQLite
# Located in: folio_ingest/providers/persistence/
class IVectorRepository(ABC):
    """Contract for storing and removing :class:`EmbeddingRecord` rows.

    Every insert is independent: one failing record never rolls back the
    others.  Similarity search is out of scope here.
    """

    @abstractmethod
    async def store_one(self, record: EmbeddingRecord) -> int:
        """Persist one record and return its generated id.

        Raises
        ------
        folio_ingest.utils.errors.StorageError
            If the insert fails.
        """

    @abstractmethod
    async def store_many(self, records: list[EmbeddingRecord]) -> BatchStoreResult:
        """Persist each record independently.

        Returns the ids of the successful inserts (in submission order) and
        one failure entry per record that could not be written.  Never
        raises for individual record failures.
        """

    @abstractmethod
    async def get_by_document(self, document_id: int) -> list[EmbeddingRecord]:
        """Return all records of *document_id*, ordered by id."""

    @abstractmethod
    async def delete_by_document(self, document_id: int) -> int:
        """Remove every record of *document_id*; return the number removed.

        Idempotent: removing zero rows is not an error.
        """

    @abstractmethod
    async def count(self) -> int:
        """Return the total number of stored records."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier, e.g. ``"sqlite_vectors"``."""
