"""Runtime assembly for folio-ingest.

:func:`build_runtime` constructs every provider and service exactly once
from a :class:`Settings` object (explicit dependency injection, no
module-level singletons).  :class:`IngestionRuntime` owns their lifecycle:

    start()  -> open SQLite, create tables, connect the broker (or go degraded),
                optionally requeue stalled jobs and start the worker pool
    stop()   -> drain the worker pool, await inline runs, close the broker,
                close SQLite

It also exposes the operations callers need: ``submit_file``,
``reingest``, ``reprocess_stuck``, ``enqueue``, ``get_job_status``,
``get_queue_stats``.
"""

from __future__ import annotations

import asyncio
import shutil
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import AsyncIterator

import structlog

from folio_ingest.config.settings import Settings
from folio_ingest.interfaces.embedding_provider import IEmbeddingProvider
from folio_ingest.interfaces.job_broker import IJobBroker
from folio_ingest.models.document import Document, DocumentStatus
from folio_ingest.models.ingestion import ChunkOptions
from folio_ingest.models.queue import IngestionJob, JobStatus, QueueStats
from folio_ingest.pipeline.ingestion_queue import IngestionQueue
from folio_ingest.pipeline.worker_pool import WorkerPool
from folio_ingest.providers.broker.memory_job_broker import InMemoryJobBroker
from folio_ingest.providers.broker.redis_job_broker import RedisJobBroker
from folio_ingest.providers.embedding.nomic_embedding_provider import NomicEmbeddingProvider
from folio_ingest.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from folio_ingest.providers.persistence.sqlite_database import SQLiteDatabase
from folio_ingest.providers.persistence.sqlite_document_store import SQLiteDocumentStore
from folio_ingest.providers.persistence.sqlite_vector_repository import SQLiteVectorRepository
from folio_ingest.services.ingestion.chunker import TextChunker
from folio_ingest.services.ingestion.embedding_generator import EmbeddingGenerator
from folio_ingest.services.ingestion.extractors import (
    ALLOWED_EXTENSIONS,
    ExtractorRegistry,
    build_default_registry,
    content_type_for_filename,
)
from folio_ingest.services.ingestion.ingestion_pipeline import IngestionPipeline
from folio_ingest.services.ingestion.status_controller import DocumentStatusController
from folio_ingest.utils.errors import (
    ConfigurationError,
    DocumentNotFoundError,
    InvalidStatusTransitionError,
    UploadRejectedError,
)

logger = structlog.get_logger(logger_name=__name__)


# ---------------------------------------------------------------------------
# Provider factories
# ---------------------------------------------------------------------------


def _build_embedding_provider(app_settings: Settings) -> IEmbeddingProvider:
    """Select the first available embedding provider.

    Priority: OpenAI/OpenAI-compatible (if API key set) ->
              Nomic/Ollama (if reachable).
    When neither is available the Nomic provider is still returned: every
    call then fails and documents finish as ``processed``.
    """
    if app_settings.openai_api_key:
        provider: IEmbeddingProvider = OpenAIEmbeddingProvider(settings=app_settings)
        if provider.is_available():
            return provider

    provider = NomicEmbeddingProvider(settings=app_settings)
    if not provider.is_available():
        logger.warning(
            "no_embedding_provider_available",
            fallback=provider.get_provider_name(),
            ollama_base_url=app_settings.ollama_base_url,
        )
    return provider


def _build_broker(app_settings: Settings) -> IJobBroker:
    """Build the job broker named by ``queue_backend``."""
    backend = app_settings.queue_backend.lower()
    common = {
        "max_attempts": app_settings.queue_max_attempts,
        "backoff_base_ms": app_settings.queue_backoff_base_ms,
        "keep_completed": app_settings.queue_keep_completed,
        "keep_failed": app_settings.queue_keep_failed,
    }
    if backend == "redis":
        return RedisJobBroker(
            redis_url=app_settings.redis_url,
            queue_name=app_settings.queue_name,
            **common,
        )
    if backend == "memory":
        return InMemoryJobBroker(**common)
    raise ConfigurationError(
        message=(
            f"Unknown queue backend '{app_settings.queue_backend}' "
            "(expected redis or memory)"
        ),
        provider_name="settings",
    )


def build_runtime(
    app_settings: Settings,
    embedding_provider: IEmbeddingProvider | None = None,
    broker: IJobBroker | None = None,
    extractors: ExtractorRegistry | None = None,
) -> IngestionRuntime:
    """Construct every component of the ingestion runtime.

    Any of the keyword arguments overrides the settings-driven choice
    (tests inject fakes this way).
    """
    database = SQLiteDatabase(app_settings.database_path)
    document_store = SQLiteDocumentStore(database)
    vector_repository = SQLiteVectorRepository(database)
    status_controller = DocumentStatusController(document_store)

    chunker = TextChunker(
        ChunkOptions(
            max_chunk_size=app_settings.chunk_max_size,
            overlap=app_settings.chunk_overlap,
            category=app_settings.default_category,
            preserve_paragraphs=app_settings.chunk_preserve_paragraphs,
        )
    )
    embedding_generator = EmbeddingGenerator(
        provider=embedding_provider or _build_embedding_provider(app_settings),
        concurrency=app_settings.embedding_concurrency,
        timeout_seconds=app_settings.embedding_timeout_seconds,
        max_input_chars=app_settings.embedding_max_input_chars,
    )
    pipeline = IngestionPipeline(
        extractors=extractors or build_default_registry(),
        chunker=chunker,
        embedding_generator=embedding_generator,
        vector_repository=vector_repository,
        status_controller=status_controller,
        document_store=document_store,
    )

    job_broker = broker or _build_broker(app_settings)
    queue = IngestionQueue(broker=job_broker, pipeline=pipeline)
    worker_pool = WorkerPool(
        broker=job_broker,
        pipeline=pipeline,
        concurrency=app_settings.worker_concurrency,
        reserve_timeout=app_settings.queue_reserve_timeout_seconds,
    )

    return IngestionRuntime(
        settings=app_settings,
        database=database,
        document_store=document_store,
        vector_repository=vector_repository,
        status_controller=status_controller,
        pipeline=pipeline,
        queue=queue,
        worker_pool=worker_pool,
    )


# ---------------------------------------------------------------------------
# Runtime
# ---------------------------------------------------------------------------


class IngestionRuntime:
    """Owns the process-wide resources and exposes the ingestion operations."""

    def __init__(
        self,
        settings: Settings,
        database: SQLiteDatabase,
        document_store: SQLiteDocumentStore,
        vector_repository: SQLiteVectorRepository,
        status_controller: DocumentStatusController,
        pipeline: IngestionPipeline,
        queue: IngestionQueue,
        worker_pool: WorkerPool,
    ) -> None:
        self.settings = settings
        self.database = database
        self.document_store = document_store
        self.vector_repository = vector_repository
        self.status_controller = status_controller
        self.pipeline = pipeline
        self.queue = queue
        self.worker_pool = worker_pool
        self._started = False

    # -- Lifecycle -------------------------------------------------------

    async def start(self, run_workers: bool = False, recover_stalled: bool = False) -> None:
        """Open resources.  Workers only start when the broker is reachable."""
        if self._started:
            return
        await self.database.connect()
        await self.document_store.initialize()
        await self.vector_repository.initialize()
        await self.queue.start()
        self._started = True

        broker = self.queue.broker
        if broker is not None and not self.queue.is_degraded:
            if recover_stalled:
                await broker.recover_stalled()
            if run_workers:
                self.worker_pool.start()
        elif run_workers:
            logger.warning("worker_pool_not_started", reason="queue degraded")

        logger.info(
            "runtime_started",
            queue_backend=self.settings.queue_backend,
            degraded=self.queue.is_degraded,
            workers=self.worker_pool.is_running,
            database=self.database.path,
        )

    async def stop(self, drain_waiting: bool = False) -> None:
        """Drain workers and inline runs, then release every resource."""
        if not self._started:
            return
        await self.worker_pool.stop(drain_waiting=drain_waiting)
        await self.queue.close()
        await self.database.close()
        self._started = False
        logger.info("runtime_stopped")

    # -- Operations ------------------------------------------------------

    async def enqueue(self, job: IngestionJob) -> str:
        return await self.queue.enqueue(job)

    async def get_job_status(self, job_id: str) -> JobStatus:
        return await self.queue.get_status(job_id)

    async def get_queue_stats(self) -> QueueStats:
        return await self.queue.get_stats()

    async def get_document(self, document_id: int) -> Document:
        document = await self.document_store.get_document(document_id)
        if document is None:
            raise DocumentNotFoundError(document_id, provider_name="runtime")
        return document

    async def submit_file(
        self,
        source_path: str | Path,
        original_name: str | None = None,
        category: str | None = None,
        tags: list[str] | None = None,
    ) -> tuple[Document, str]:
        """Accept a file: check it, store a copy, create its record, enqueue it.

        Returns the new document record and the job id.

        Raises
        ------
        UploadRejectedError
            Missing file, disallowed extension, or larger than ``max_upload_bytes``.
        """
        source = Path(source_path)
        name = original_name or source.name
        extension = Path(name).suffix.lower()
        if not source.is_file():
            raise UploadRejectedError(message=f"No such file: {source}", provider_name="intake")
        if extension not in ALLOWED_EXTENSIONS:
            raise UploadRejectedError(
                message=(
                    f"File type '{extension or name}' not allowed; "
                    f"expected one of {sorted(ALLOWED_EXTENSIONS)}"
                ),
                provider_name="intake",
            )
        size = source.stat().st_size
        if size > self.settings.max_upload_bytes:
            raise UploadRejectedError(
                message=f"{name} is {size} bytes; limit is {self.settings.max_upload_bytes}",
                provider_name="intake",
            )

        upload_dir = Path(self.settings.upload_dir)
        stored_name = f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:12]}{extension}"
        destination = upload_dir / stored_name
        await asyncio.to_thread(upload_dir.mkdir, parents=True, exist_ok=True)
        await asyncio.to_thread(shutil.copyfile, source, destination)

        resolved_category = category or self.settings.default_category
        document = await self.document_store.create_document(
            filename=stored_name,
            original_name=name,
            content_type=content_type_for_filename(name),
            category=resolved_category,
            size=size,
            tags=tags,
        )
        job_id = await self.enqueue(
            IngestionJob(
                document_id=document.id,
                file_path=str(destination),
                category=resolved_category,
                original_name=name,
            )
        )
        return document, job_id

    async def reingest(self, document_id: int) -> str:
        """Queue a fresh ingestion attempt for an existing document."""
        document = await self.status_controller.mark_queued(document_id)
        return await self.enqueue(self._job_for(document))

    async def reprocess_stuck(
        self, min_age_seconds: float = 0.0, limit: int = 100
    ) -> list[tuple[int, str]]:
        """Re-enqueue documents an interrupted run left in ``processing``.

        Only documents whose last status write is at least *min_age_seconds*
        old are touched.  Returns ``(document_id, job_id)`` pairs.
        """
        cutoff = datetime.now(timezone.utc) - timedelta(seconds=min_age_seconds)
        stuck = await self.document_store.list_by_status(DocumentStatus.PROCESSING, limit=limit)

        requeued: list[tuple[int, str]] = []
        for document in stuck:
            if document.processed_at is not None and document.processed_at > cutoff:
                continue
            try:
                document = await self.status_controller.mark_interrupted(document.id)
            except InvalidStatusTransitionError:
                # Finished between the listing and now.
                continue
            job_id = await self.enqueue(self._job_for(document))
            requeued.append((document.id, job_id))

        logger.info(
            "stuck_documents_requeued",
            found=len(stuck),
            requeued=len(requeued),
            min_age_seconds=min_age_seconds,
        )
        return requeued

    def _job_for(self, document: Document) -> IngestionJob:
        return IngestionJob(
            document_id=document.id,
            file_path=str(Path(self.settings.upload_dir) / document.filename),
            category=document.category,
            original_name=document.original_name,
        )


@asynccontextmanager
async def running_runtime(
    app_settings: Settings,
    run_workers: bool = False,
    drain_waiting: bool = False,
    **overrides,
) -> AsyncIterator[IngestionRuntime]:
    """Build, start, yield, and always stop an :class:`IngestionRuntime`."""
    runtime = build_runtime(app_settings, **overrides)
    await runtime.start(run_workers=run_workers, recover_stalled=run_workers)
    try:
        yield runtime
    finally:
        await runtime.stop(drain_waiting=drain_waiting)
