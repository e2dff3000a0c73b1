"""folio-ingest: document ingestion and embedding pipeline.

Turns uploaded portfolio documents (plain text, DOCX, PDF) into persisted
embedding records.  Jobs flow through a durable queue, a small worker pool,
and a per-document pipeline: extract -> chunk -> embed -> store -> finalize.
"""

__version__ = "0.1.0"
