"""Abstract base class for ingestion job brokers.

A broker owns job state: waiting -> active -> completed | failed, with
failed attempts parked as ``delayed`` until their backoff expires.
Delivery is at-least-once: a reserved job stays ``active`` until the
worker acknowledges it with :meth:`complete` or :meth:`fail`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from folio_ingest.models.queue import IngestionJob, JobState, JobStatus, QueueStats


# Concrete implementations:
#   RedisJobBroker     - durable, shared between processes (redis-py asyncio)
#   InMemoryJobBroker  - single process, used in tests and local runs
# Located in: folio_ingest/providers/broker/
class IJobBroker(ABC):
    """Contract for durable job storage and delivery."""

    @abstractmethod
    async def connect(self) -> None:
        """Open the broker connection.

        Raises
        ------
        folio_ingest.utils.errors.QueueUnavailableError
            If the backend cannot be reached.
        """

    @abstractmethod
    async def close(self) -> None:
        """Release the broker connection."""

    @abstractmethod
    async def add(self, job: IngestionJob) -> str:
        """Append *job* to the waiting list and return its assigned id."""

    @abstractmethod
    async def reserve(self, timeout: float) -> IngestionJob | None:
        """Move the oldest waiting job to ``active`` and return it.

        Blocks for at most *timeout* seconds; returns ``None`` when nothing
        became available.
        """

    @abstractmethod
    async def complete(self, job_id: str, result: dict[str, Any] | None = None) -> None:
        """Acknowledge a successful run."""

    @abstractmethod
    async def fail(self, job_id: str, reason: str, retry: bool = True) -> JobState:
        """Acknowledge a failed run.

        Returns ``DELAYED`` if the job will be retried after backoff, or
        ``FAILED`` if it has exhausted its attempts (or *retry* is False).
        """

    @abstractmethod
    async def get_job(self, job_id: str) -> JobStatus | None:
        """Return the job's current state, or ``None`` if unknown/trimmed."""

    @abstractmethod
    async def get_counts(self) -> QueueStats:
        """Return per-state job counts."""

    @abstractmethod
    async def recover_stalled(self) -> int:
        """Move jobs left ``active`` by a dead worker process back to waiting."""

    @abstractmethod
    async def ping(self) -> bool:
        """Return ``True`` if the backend answers."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier, e.g. ``"redis"``."""
