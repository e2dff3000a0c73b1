"""Orchestrator for one document ingestion attempt.

Stages, always in this order: **extract -> chunk -> embed -> store -> finalize**.

:class:`IngestionPipeline` coordinates the extractor registry, chunker,
embedding generator, vector repository and status controller without any
of them knowing about each other.  All dependencies are injected through
the constructor, so providers can be swapped without touching this class.

Error policy (the only place domain errors are interpreted):

- Extraction or chunking errors fail the document; retrying will not help.
- Per-chunk embedding failures and per-record storage failures are counted
  and the run continues with whatever succeeded.
- Zero successful embeddings finishes as ``processed``.
- Every store failing, or any unexpected exception, fails the document and
  marks the attempt retryable.
- Each run is an attempt with its own id.  Once a newer attempt has taken
  over the document, the older one is dropped as stale: it never deletes
  or stores records and its status writes are rejected.

:meth:`IngestionPipeline.run` never raises; the queue layer only sees the
returned :class:`IngestionOutcome`.
"""

from __future__ import annotations

import time
import uuid
from typing import Any

import structlog

from folio_ingest.interfaces.document_store import IDocumentStore
from folio_ingest.interfaces.vector_repository import IVectorRepository
from folio_ingest.models.document import Document, DocumentStatus
from folio_ingest.models.ingestion import (
    ChunkOptions,
    EmbeddingRecord,
    IngestionOutcome,
)
from folio_ingest.models.queue import IngestionJob
from folio_ingest.services.ingestion.chunker import TextChunker
from folio_ingest.services.ingestion.embedding_generator import EmbeddingGenerator
from folio_ingest.services.ingestion.extractors.registry import (
    ExtractorRegistry,
    content_type_for_filename,
)
from folio_ingest.services.ingestion.status_controller import DocumentStatusController
from folio_ingest.utils.errors import (
    ChunkingConfigurationError,
    DocumentNotFoundError,
    ExtractionError,
    InvalidStatusTransitionError,
    StorageError,
)

logger = structlog.get_logger(logger_name=__name__)


class IngestionPipeline:
    """Runs one :class:`IngestionJob` to a terminal document status.

    Parameters
    ----------
    extractors:
        Registry dispatching on the document's content type.
    chunker:
        Splits extracted text; its default options supply size/overlap/mode.
    embedding_generator:
        Bounded per-chunk embedding fan-out.
    vector_repository:
        Persists embedding records.
    status_controller:
        The only writer of document lifecycle fields.
    document_store:
        Read access to document records (declared content type, category).
    """

    def __init__(
        self,
        extractors: ExtractorRegistry,
        chunker: TextChunker,
        embedding_generator: EmbeddingGenerator,
        vector_repository: IVectorRepository,
        status_controller: DocumentStatusController,
        document_store: IDocumentStore,
    ) -> None:
        self._extractors = extractors
        self._chunker = chunker
        self._embedding_generator = embedding_generator
        self._vector_repository = vector_repository
        self._status = status_controller
        self._store = document_store

    async def run(self, job: IngestionJob) -> IngestionOutcome:
        """Ingest the file referenced by *job* into its document record."""
        start = time.monotonic()
        document_id = job.document_id
        attempt_id = uuid.uuid4().hex
        log = logger.bind(document_id=document_id, job_id=job.job_id, attempt_id=attempt_id)
        counters: dict[str, Any] = {"document_id": document_id, "job_id": job.job_id}

        try:
            document = await self._status.mark_processing(document_id, attempt_id=attempt_id)

            # -- extract ----------------------------------------------------
            content_type = document.content_type or content_type_for_filename(
                job.original_name or job.file_path
            )
            extraction = await self._extractors.extract(job.file_path, content_type)

            # -- chunk ------------------------------------------------------
            options = self._options_for(job, document)
            chunks = self._chunker.chunk(extraction.text, options)
            counters["chunks_total"] = len(chunks)

            # -- embed ------------------------------------------------------
            outcomes = await self._embedding_generator.embed_chunks(chunks)
            chunks_by_index = {chunk.index: chunk for chunk in chunks}
            successes = [o for o in outcomes if o.succeeded]
            counters["embeddings_succeeded"] = len(successes)
            counters["embeddings_failed"] = len(outcomes) - len(successes)

            base_metadata = {
                **extraction.metadata,
                "chunks_processed": len(chunks),
                "embedding_failures": counters["embeddings_failed"],
                "embedding_provider": self._embedding_generator.provider_name,
            }
            records = [
                EmbeddingRecord(
                    document_id=document_id,
                    embedding=outcome.embedding,
                    text_content=chunks_by_index[outcome.index].text,
                    category=options.category,
                    metadata={
                        **chunks_by_index[outcome.index].metadata,
                        "chunk_index": outcome.index,
                        "total_chunks": len(chunks),
                        "original_name": job.original_name or document.original_name,
                        "truncated": outcome.truncated,
                    },
                )
                for outcome in successes
            ]

            # -- store + finalize -------------------------------------------
            # A newer attempt cannot start until this block has finished.
            async with self._status.finalizing(document_id, attempt_id) as finish:
                # Records from a previous attempt are replaced, never merged.
                await self._vector_repository.delete_by_document(document_id)

                if not records:
                    await finish.processed(
                        content_text=extraction.text,
                        metadata={**base_metadata, "embeddings_stored": 0},
                    )
                    log.warning("document_processed_without_embeddings", chunks=len(chunks))
                    return self._outcome(counters, DocumentStatus.PROCESSED, start)

                stored = await self._vector_repository.store_many(records)
                counters["records_stored"] = len(stored.ids)
                counters["storage_failures"] = len(stored.failures)
                counters["vector_ids"] = list(stored.ids)
                if not stored.ids:
                    raise StorageError(
                        message=f"All {len(records)} embedding record inserts failed",
                        provider_name=self._vector_repository.get_provider_name(),
                    )

                await finish.embedded(
                    content_text=extraction.text,
                    vector_ids=stored.ids,
                    metadata={
                        **base_metadata,
                        "embeddings_stored": len(stored.ids),
                        "storage_failures": len(stored.failures),
                    },
                )
            log.info(
                "document_embedded",
                chunks=len(chunks),
                stored=len(stored.ids),
                embedding_failures=counters["embeddings_failed"],
                storage_failures=len(stored.failures),
                elapsed_s=round(time.monotonic() - start, 2),
            )
            return self._outcome(counters, DocumentStatus.EMBEDDED, start)

        except InvalidStatusTransitionError as exc:
            log.warning("stale_status_write", error=str(exc), attempted=exc.target)
            current = await self._current_status(document_id)
            return self._outcome(counters, current, start, error=str(exc), stale=True)

        except DocumentNotFoundError as exc:
            log.error("document_missing", error=str(exc))
            return self._outcome(counters, None, start, error=str(exc))

        except (ExtractionError, ChunkingConfigurationError) as exc:
            log.error("document_ingestion_failed", stage="extract_or_chunk", error=str(exc))
            status, stale = await self._fail(document_id, attempt_id, exc)
            return self._outcome(counters, status, start, error=str(exc), stale=stale)

        except Exception as exc:  # noqa: BLE001 - the queue boundary must never see a raise
            log.error(
                "document_ingestion_failed",
                stage="embed_or_store",
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=True,
            )
            status, stale = await self._fail(document_id, attempt_id, exc)
            return self._outcome(
                counters, status, start, error=str(exc), retryable=not stale, stale=stale
            )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _options_for(self, job: IngestionJob, document: Document) -> ChunkOptions:
        defaults = self._chunker.default_options
        category = job.category or document.category or defaults.category
        return defaults.model_copy(update={"category": category})

    async def _fail(
        self, document_id: int, attempt_id: str, exc: Exception
    ) -> tuple[DocumentStatus | None, bool]:
        """Write the failed status; a failing write is logged, not raised.

        Returns the document's status and whether the attempt was superseded.
        """
        try:
            await self._status.mark_failed(
                document_id,
                message=str(exc),
                error_type=type(exc).__name__,
                attempt_id=attempt_id,
            )
        except InvalidStatusTransitionError as stale_exc:
            logger.warning(
                "stale_status_write",
                document_id=document_id,
                error=str(stale_exc),
                attempted=stale_exc.target,
                original_error=str(exc),
            )
            return await self._current_status(document_id), True
        except Exception as write_exc:  # noqa: BLE001
            logger.error(
                "failed_status_write_failed",
                document_id=document_id,
                error=str(write_exc),
                original_error=str(exc),
            )
            return await self._current_status(document_id), False
        return DocumentStatus.FAILED, False

    async def _current_status(self, document_id: int) -> DocumentStatus | None:
        try:
            document = await self._store.get_document(document_id)
        except Exception as exc:  # noqa: BLE001
            logger.error("document_status_lookup_failed", document_id=document_id, error=str(exc))
            return None
        return document.status if document else None

    @staticmethod
    def _outcome(
        counters: dict[str, Any],
        status: DocumentStatus | None,
        start: float,
        error: str | None = None,
        retryable: bool = False,
        stale: bool = False,
    ) -> IngestionOutcome:
        return IngestionOutcome(
            **counters,
            status=status,
            error=error,
            retryable=retryable,
            stale=stale,
            elapsed_seconds=round(time.monotonic() - start, 3),
        )
