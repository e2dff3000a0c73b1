"""SQLite persistence for document records and embedding records.

Both stores share one :class:`SQLiteDatabase` connection opened at startup.
"""

from folio_ingest.providers.persistence.sqlite_database import SQLiteDatabase
from folio_ingest.providers.persistence.sqlite_document_store import SQLiteDocumentStore
from folio_ingest.providers.persistence.sqlite_vector_repository import SQLiteVectorRepository

__all__ = ["SQLiteDatabase", "SQLiteDocumentStore", "SQLiteVectorRepository"]
