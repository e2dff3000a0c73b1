"""In-process job broker built on asyncio primitives.

Same semantics as :class:`RedisJobBroker` (FIFO waiting list, active set
until acknowledged, exponential-backoff retries, bounded completed/failed
retention), but state lives in this process only and is lost on exit.
Used for single-process deployments and throughout the test suite.
"""

from __future__ import annotations

import asyncio
import heapq
import time
from collections import deque
from datetime import datetime, timezone
from typing import Any

import structlog

from folio_ingest.interfaces.job_broker import IJobBroker
from folio_ingest.models.queue import IngestionJob, JobState, JobStatus, QueueStats
from folio_ingest.utils.errors import QueueUnavailableError

logger = structlog.get_logger(logger_name=__name__)


class _JobRecord:
    """Internal mutable state for one job.  Never leaves the broker."""

    def __init__(self, job: IngestionJob) -> None:
        self.job = job
        self.state = JobState.WAITING
        self.attempts_made = 0
        self.failed_reason: str | None = None
        self.result: dict[str, Any] | None = None
        self.finished_at: datetime | None = None

    def to_status(self) -> JobStatus:
        return JobStatus(
            job_id=self.job.job_id,
            state=self.state,
            progress=100 if self.state in (JobState.COMPLETED, JobState.FAILED) else 0,
            document_id=self.job.document_id,
            attempts_made=self.attempts_made,
            failed_reason=self.failed_reason,
            result=self.result,
            finished_at=self.finished_at,
        )


class InMemoryJobBroker(IJobBroker):
    """Job broker for a single process.

    Parameters
    ----------
    max_attempts:
        Total attempts per job, including the first.
    backoff_base_ms:
        Delay before the first retry; doubles for every further retry.
    keep_completed / keep_failed:
        How many finished jobs to retain for inspection.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        backoff_base_ms: int = 2000,
        keep_completed: int = 10,
        keep_failed: int = 50,
    ) -> None:
        self._max_attempts = max(1, max_attempts)
        self._backoff_base_ms = max(0, backoff_base_ms)
        self._keep_completed = keep_completed
        self._keep_failed = keep_failed

        self._jobs: dict[str, _JobRecord] = {}
        self._waiting: deque[str] = deque()
        self._active: set[str] = set()
        self._delayed: list[tuple[float, str]] = []  # heap of (ready_at monotonic, job_id)
        self._completed: deque[str] = deque()
        self._failed: deque[str] = deque()
        self._next_id = 0
        self._wakeup = asyncio.Event()
        self._connected = False

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        self._connected = True
        logger.info("memory_broker_connected")

    async def close(self) -> None:
        self._connected = False
        self._wakeup.set()

    async def ping(self) -> bool:
        return self._connected

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    async def add(self, job: IngestionJob) -> str:
        self._ensure_connected()
        self._next_id += 1
        job_id = str(self._next_id)
        record = _JobRecord(job.model_copy(update={"job_id": job_id}))
        self._jobs[job_id] = record
        self._waiting.append(job_id)
        self._wakeup.set()
        logger.debug("job_added", job_id=job_id, document_id=job.document_id)
        return job_id

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------

    async def reserve(self, timeout: float) -> IngestionJob | None:
        self._ensure_connected()
        deadline = time.monotonic() + max(0.0, timeout)
        while True:
            self._promote_delayed()
            if self._waiting:
                job_id = self._waiting.popleft()
                record = self._jobs[job_id]
                record.state = JobState.ACTIVE
                self._active.add(job_id)
                return record.job.model_copy(update={"attempts_made": record.attempts_made})

            now = time.monotonic()
            remaining = deadline - now
            if remaining <= 0 or not self._connected:
                return None
            if self._delayed:
                remaining = min(remaining, max(0.0, self._delayed[0][0] - now))

            self._wakeup.clear()
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=remaining)
            except asyncio.TimeoutError:
                pass

    async def complete(self, job_id: str, result: dict[str, Any] | None = None) -> None:
        record = self._take_active(job_id)
        record.attempts_made += 1
        record.state = JobState.COMPLETED
        record.result = result
        record.finished_at = datetime.now(timezone.utc)
        self._retain(self._completed, job_id, self._keep_completed)

    async def fail(self, job_id: str, reason: str, retry: bool = True) -> JobState:
        record = self._take_active(job_id)
        record.attempts_made += 1
        record.failed_reason = reason

        if retry and record.attempts_made < self._max_attempts:
            delay_ms = self._backoff_base_ms * (2 ** (record.attempts_made - 1))
            record.state = JobState.DELAYED
            heapq.heappush(self._delayed, (time.monotonic() + delay_ms / 1000, job_id))
            self._wakeup.set()
            logger.info(
                "job_retry_scheduled",
                job_id=job_id,
                attempts_made=record.attempts_made,
                delay_ms=delay_ms,
            )
            return JobState.DELAYED

        record.state = JobState.FAILED
        record.finished_at = datetime.now(timezone.utc)
        self._retain(self._failed, job_id, self._keep_failed)
        return JobState.FAILED

    async def recover_stalled(self) -> int:
        stalled = sorted(self._active, key=int)
        for job_id in stalled:
            self._jobs[job_id].state = JobState.WAITING
            self._waiting.appendleft(job_id)
        self._active.clear()
        if stalled:
            self._wakeup.set()
            logger.warning("stalled_jobs_requeued", count=len(stalled))
        return len(stalled)

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    async def get_job(self, job_id: str) -> JobStatus | None:
        record = self._jobs.get(job_id)
        return record.to_status() if record else None

    async def get_counts(self) -> QueueStats:
        return QueueStats(
            waiting=len(self._waiting),
            active=len(self._active),
            completed=len(self._completed),
            failed=len(self._failed),
            delayed=len(self._delayed),
        )

    def get_provider_name(self) -> str:
        return "memory"

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _ensure_connected(self) -> None:
        if not self._connected:
            raise QueueUnavailableError(
                message="In-memory broker is not connected",
                provider_name=self.get_provider_name(),
            )

    def _promote_delayed(self) -> None:
        now = time.monotonic()
        while self._delayed and self._delayed[0][0] <= now:
            _, job_id = heapq.heappop(self._delayed)
            self._jobs[job_id].state = JobState.WAITING
            self._waiting.append(job_id)

    def _take_active(self, job_id: str) -> _JobRecord:
        if job_id not in self._active:
            raise KeyError(f"Job {job_id} is not active")
        self._active.discard(job_id)
        return self._jobs[job_id]

    def _retain(self, finished: deque[str], job_id: str, keep: int) -> None:
        finished.appendleft(job_id)
        while len(finished) > max(keep, 0):
            dropped = finished.pop()
            self._jobs.pop(dropped, None)
