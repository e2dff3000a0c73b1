"""Job queue models: the unit of work, its broker-side state, and queue counters."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class JobState(str, Enum):
    WAITING = "waiting"
    ACTIVE = "active"
    DELAYED = "delayed"
    COMPLETED = "completed"
    FAILED = "failed"
    UNKNOWN = "unknown"


class IngestionJob(BaseModel):
    """A request to ingest one file for one document record.

    ``job_id`` is empty until a broker accepts the job; brokers return a copy
    with the id filled in.
    """

    model_config = ConfigDict(frozen=True)

    document_id: int
    file_path: str
    category: str = "general"
    original_name: str = ""
    job_id: str = ""
    attempts_made: int = Field(default=0, ge=0)
    enqueued_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class JobStatus(BaseModel):
    """Point-in-time view of a job for ``get_job_status``."""

    model_config = ConfigDict(frozen=True)

    job_id: str
    state: JobState
    progress: int = Field(default=0, ge=0, le=100)
    document_id: int | None = None
    attempts_made: int = 0
    failed_reason: str | None = None
    result: dict[str, Any] | None = None
    finished_at: datetime | None = None
    note: str | None = None


class QueueStats(BaseModel):
    """Queue counters.  ``status`` is ``"healthy"`` or ``"degraded"``."""

    model_config = ConfigDict(frozen=True)

    waiting: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0
    delayed: int = 0
    status: str = "healthy"
    note: str | None = None

    @property
    def total(self) -> int:
        return self.waiting + self.active + self.completed + self.failed + self.delayed

    def to_dict(self) -> dict[str, Any]:
        data = self.model_dump()
        data["total"] = self.total
        return data
