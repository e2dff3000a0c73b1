"""Public interface definitions for every pluggable backend.

Business logic in ``folio_ingest/services`` and ``folio_ingest/pipeline``
talks only to these abstract base classes.  Concrete adapters live in
``folio_ingest/providers`` (and the extractors in
``folio_ingest/services/ingestion/extractors``) and are wired together once
in ``folio_ingest/main.py``.

CONCRETE PROVIDER MAP:
    Interface            →  Concrete implementations
    ─────────────────────────────────────────────────────────
    IEmbeddingProvider   →  OpenAIEmbeddingProvider, NomicEmbeddingProvider
    ITextExtractor       →  PlainTextExtractor, DocxExtractor, PDFExtractor
    IDocumentStore       →  SQLiteDocumentStore
    IVectorRepository    →  SQLiteVectorRepository
    IJobBroker           →  RedisJobBroker, InMemoryJobBroker
"""

from folio_ingest.interfaces.document_store import IDocumentStore
from folio_ingest.interfaces.embedding_provider import IEmbeddingProvider
from folio_ingest.interfaces.job_broker import IJobBroker
from folio_ingest.interfaces.text_extractor import ITextExtractor
from folio_ingest.interfaces.vector_repository import IVectorRepository

__all__ = [
    "IDocumentStore",
    "IEmbeddingProvider",
    "IJobBroker",
    "ITextExtractor",
    "IVectorRepository",
]
