"""Ingestion job queue with an in-process fallback.

# ─── DEGRADED MODE ─────────────────────────────────────────────────────
#
# enqueue() must never block or fail because the broker is down.  When the
# broker was unreachable at start() or raises QueueUnavailableError during
# add(), the job runs right here instead: the full pipeline is scheduled as
# a background asyncio task and a synthetic id is returned immediately:
#
#     inline_<epoch-ms>_<document_id>
#
# get_status() on such an id always reports "completed"; the real outcome
# lives on the document record.  Inline tasks are awaited by close().
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
import time

import structlog

from folio_ingest.interfaces.job_broker import IJobBroker
from folio_ingest.models.ingestion import IngestionOutcome
from folio_ingest.models.queue import IngestionJob, JobState, JobStatus, QueueStats
from folio_ingest.services.ingestion.ingestion_pipeline import IngestionPipeline
from folio_ingest.utils.errors import QueueUnavailableError

logger = structlog.get_logger(logger_name=__name__)

INLINE_PREFIX = "inline_"
_INLINE_NOTE = "Processed in-process; check the document record for the outcome"


def is_inline_job_id(job_id: str) -> bool:
    return job_id.startswith(INLINE_PREFIX)


class IngestionQueue:
    """Front door for ingestion jobs.

    Parameters
    ----------
    broker:
        Durable broker, or ``None`` to always run inline.
    pipeline:
        Pipeline used for inline runs.
    """

    def __init__(self, broker: IJobBroker | None, pipeline: IngestionPipeline) -> None:
        self._broker = broker
        self._pipeline = pipeline
        self._degraded = broker is None
        self._inline_tasks: set[asyncio.Task[IngestionOutcome]] = set()

    @property
    def broker(self) -> IJobBroker | None:
        return self._broker

    @property
    def is_degraded(self) -> bool:
        return self._degraded

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Connect the broker; fall back to degraded mode if that fails."""
        if self._broker is None:
            logger.warning("queue_degraded", reason="no broker configured")
            return
        try:
            await self._broker.connect()
        except QueueUnavailableError as exc:
            self._degraded = True
            logger.warning(
                "queue_degraded",
                broker=self._broker.get_provider_name(),
                reason=str(exc),
            )
            return
        self._degraded = False
        logger.info("queue_started", broker=self._broker.get_provider_name())

    async def close(self) -> None:
        """Wait for inline runs to finish, then release the broker."""
        await self.drain_inline()
        if self._broker is not None and not self._degraded:
            try:
                await self._broker.close()
            except QueueUnavailableError as exc:
                logger.warning("queue_close_failed", error=str(exc))

    async def drain_inline(self) -> None:
        """Await every in-flight inline pipeline run."""
        if self._inline_tasks:
            logger.info("inline_jobs_draining", count=len(self._inline_tasks))
            await asyncio.gather(*list(self._inline_tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def enqueue(self, job: IngestionJob) -> str:
        """Hand *job* to the broker, or run it inline when the broker is down."""
        if self._broker is not None and not self._degraded:
            try:
                job_id = await self._broker.add(job)
            except QueueUnavailableError as exc:
                logger.warning(
                    "enqueue_fallback_inline",
                    document_id=job.document_id,
                    error=str(exc),
                )
            else:
                logger.info("job_enqueued", job_id=job_id, document_id=job.document_id)
                return job_id
        return self._run_inline(job)

    async def get_status(self, job_id: str) -> JobStatus:
        """Return the job's state; inline ids are always reported completed."""
        if is_inline_job_id(job_id):
            return JobStatus(
                job_id=job_id,
                state=JobState.COMPLETED,
                progress=100,
                document_id=_document_id_from_inline(job_id),
                note=_INLINE_NOTE,
            )
        if self._broker is None or self._degraded:
            return JobStatus(job_id=job_id, state=JobState.UNKNOWN, note="Queue is degraded")
        try:
            status = await self._broker.get_job(job_id)
        except QueueUnavailableError as exc:
            return JobStatus(job_id=job_id, state=JobState.UNKNOWN, note=str(exc))
        return status or JobStatus(job_id=job_id, state=JobState.UNKNOWN, note="Job not found")

    async def get_stats(self) -> QueueStats:
        """Return queue counters, or zeros flagged ``degraded``."""
        if self._broker is None or self._degraded:
            return QueueStats(status="degraded", note="Jobs run in-process")
        try:
            return await self._broker.get_counts()
        except QueueUnavailableError as exc:
            return QueueStats(status="degraded", note=str(exc))

    async def health_check(self) -> bool:
        if self._broker is None or self._degraded:
            return False
        return await self._broker.ping()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _run_inline(self, job: IngestionJob) -> str:
        job_id = f"{INLINE_PREFIX}{int(time.time() * 1000)}_{job.document_id}"
        task = asyncio.create_task(
            self._pipeline.run(job.model_copy(update={"job_id": job_id})),
            name=job_id,
        )
        self._inline_tasks.add(task)
        task.add_done_callback(self._inline_tasks.discard)
        logger.info("job_running_inline", job_id=job_id, document_id=job.document_id)
        return job_id


def _document_id_from_inline(job_id: str) -> int | None:
    tail = job_id.rsplit("_", 1)[-1]
    return int(tail) if tail.isdigit() else None
