"""Document ingestion pipeline: **extract -> chunk -> embed -> store -> finalize**.

1. **Extract** (extractors/) -- Format-specific extractors behind a registry
   keyed by a closed content-type enum (plain text, DOCX, PDF).
2. **Chunk** (chunker.py / TextChunker) -- Paragraph-preserving or
   sliding-window splitting into embedding-sized pieces.
3. **Embed** (embedding_generator.py / EmbeddingGenerator) -- One call per
   chunk, bounded fan-out, failures isolated per chunk.
4. **Store** (via IVectorRepository) -- Independent inserts, old records of
   the document replaced.
5. **Finalize** (status_controller.py / DocumentStatusController) --
   Validated, per-document serialized status writes.

IngestionPipeline (ingestion_pipeline.py) runs the five stages for one job.
"""

from folio_ingest.services.ingestion.chunker import TextChunker
from folio_ingest.services.ingestion.embedding_generator import EmbeddingGenerator
from folio_ingest.services.ingestion.ingestion_pipeline import IngestionPipeline
from folio_ingest.services.ingestion.status_controller import DocumentStatusController

__all__ = [
    "DocumentStatusController",
    "EmbeddingGenerator",
    "IngestionPipeline",
    "TextChunker",
]
