"""Job queue and worker pool around the ingestion pipeline."""

from folio_ingest.pipeline.ingestion_queue import INLINE_PREFIX, IngestionQueue, is_inline_job_id
from folio_ingest.pipeline.worker_pool import WorkerPool

__all__ = [
    "INLINE_PREFIX",
    "IngestionQueue",
    "WorkerPool",
    "is_inline_job_id",
]
