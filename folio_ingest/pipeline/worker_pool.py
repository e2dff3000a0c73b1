"""Worker pool: N asyncio tasks pulling jobs from the broker.

Each worker loops: reserve one job -> run the pipeline to a terminal
state -> acknowledge (complete, or fail with retry when the outcome says
the failure was transient) -> reserve the next.  ``stop()`` stops new
reservations and waits for in-flight jobs to finish.
"""

from __future__ import annotations

import asyncio

import structlog

from folio_ingest.interfaces.job_broker import IJobBroker
from folio_ingest.models.ingestion import IngestionOutcome
from folio_ingest.models.queue import IngestionJob
from folio_ingest.services.ingestion.ingestion_pipeline import IngestionPipeline
from folio_ingest.utils.errors import QueueUnavailableError

logger = structlog.get_logger(logger_name=__name__)

# Pause after a failed reserve or job before trying again.
_ERROR_BACKOFF_SECONDS = 2.0


class WorkerPool:
    """Runs ingestion jobs from *broker* with bounded concurrency.

    Parameters
    ----------
    broker:
        Source of jobs.  Must already be connected.
    pipeline:
        Runs one job end to end.
    concurrency:
        Number of worker tasks (jobs processed at once).
    reserve_timeout:
        How long one reserve call blocks; also bounds how quickly idle
        workers notice ``stop()``.
    error_backoff_seconds:
        Pause after an error from the broker or an unexpected exception.
    """

    def __init__(
        self,
        broker: IJobBroker,
        pipeline: IngestionPipeline,
        concurrency: int = 2,
        reserve_timeout: float = 1.0,
        error_backoff_seconds: float = _ERROR_BACKOFF_SECONDS,
    ) -> None:
        self._broker = broker
        self._pipeline = pipeline
        self._concurrency = max(1, concurrency)
        self._reserve_timeout = reserve_timeout
        self._error_backoff_seconds = error_backoff_seconds
        self._tasks: list[asyncio.Task[None]] = []
        self._stopping = asyncio.Event()
        self._drain_waiting = False
        self._processed = 0

    @property
    def is_running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    @property
    def processed_count(self) -> int:
        return self._processed

    def start(self) -> None:
        """Spawn the worker tasks (idempotent)."""
        if self.is_running:
            return
        self._stopping.clear()
        self._drain_waiting = False
        self._tasks = [
            asyncio.create_task(self._worker_loop(n), name=f"ingest-worker-{n}")
            for n in range(self._concurrency)
        ]
        logger.info("worker_pool_started", concurrency=self._concurrency)

    async def stop(self, drain_waiting: bool = False) -> None:
        """Stop reserving and wait for in-flight jobs.

        With *drain_waiting*, workers first empty the waiting list.
        """
        self._drain_waiting = drain_waiting
        self._stopping.set()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("worker_pool_stopped", processed=self._processed)

    # ------------------------------------------------------------------
    # Worker loop
    # ------------------------------------------------------------------

    async def _worker_loop(self, worker_number: int) -> None:
        log = logger.bind(worker=worker_number)
        while True:
            if self._stopping.is_set() and not self._drain_waiting:
                return
            try:
                job = await self._broker.reserve(self._reserve_timeout)
            except QueueUnavailableError as exc:
                log.warning("job_reserve_failed", error=str(exc))
                if not await self._back_off():
                    return
                continue
            except Exception as exc:  # noqa: BLE001 - a worker must outlive any single error
                log.error("worker_loop_error", stage="reserve", error=str(exc), exc_info=True)
                if not await self._back_off():
                    return
                continue

            if job is None:
                if self._stopping.is_set():
                    return
                continue

            try:
                await self._process(job, log)
            except Exception as exc:  # noqa: BLE001
                log.error(
                    "worker_loop_error",
                    stage="process",
                    job_id=job.job_id,
                    error=str(exc),
                    exc_info=True,
                )

    async def _back_off(self) -> bool:
        """Pause after an error.  Returns False when the pool is stopping."""
        if self._stopping.is_set():
            return False
        try:
            await asyncio.wait_for(
                self._stopping.wait(), timeout=self._error_backoff_seconds
            )
        except asyncio.TimeoutError:
            pass
        return True

    async def _process(self, job: IngestionJob, log: structlog.BoundLogger) -> None:
        log.info(
            "job_started",
            job_id=job.job_id,
            document_id=job.document_id,
            attempt=job.attempts_made + 1,
        )
        outcome = await self._pipeline.run(job)
        self._processed += 1
        try:
            await self._acknowledge(job, outcome, log)
        except (QueueUnavailableError, KeyError) as exc:
            # Unacknowledged jobs stay active and are requeued by recover_stalled().
            log.error("job_ack_failed", job_id=job.job_id, error=str(exc))

    async def _acknowledge(
        self,
        job: IngestionJob,
        outcome: IngestionOutcome,
        log: structlog.BoundLogger,
    ) -> None:
        if outcome.succeeded or outcome.stale:
            await self._broker.complete(
                job.job_id,
                {
                    "status": outcome.status.value if outcome.status else None,
                    "chunks": outcome.chunks_total,
                    "embeddings_stored": outcome.records_stored,
                    "vector_ids": outcome.vector_ids,
                    "stale": outcome.stale,
                },
            )
            log.info(
                "job_completed",
                job_id=job.job_id,
                document_id=job.document_id,
                status=outcome.status.value if outcome.status else None,
                elapsed_s=outcome.elapsed_seconds,
            )
            return

        state = await self._broker.fail(
            job.job_id, outcome.error or "ingestion failed", retry=outcome.retryable
        )
        log.warning(
            "job_failed",
            job_id=job.job_id,
            document_id=job.document_id,
            error=outcome.error,
            retryable=outcome.retryable,
            next_state=state.value,
        )
