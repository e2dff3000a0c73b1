"""Durable job broker on Redis (redis-py asyncio client).

# ─── KEY LAYOUT ────────────────────────────────────────────────────────
#
#   {prefix}:id          INCR counter for job ids
#   {prefix}:job:{id}    hash: data (job JSON), state, attempts_made,
#                        failed_reason, result (JSON), finished_at
#   {prefix}:waiting     list, LPUSH on add, BLMOVE RIGHT -> active LEFT
#   {prefix}:active      list of reserved, unacknowledged job ids
#   {prefix}:delayed     zset of retrying job ids scored by ready-at (ms)
#   {prefix}:completed   list, newest first, trimmed to keep_completed
#   {prefix}:failed      list, newest first, trimmed to keep_failed
#
# A job stays in ``active`` until the worker acknowledges it, so a crash
# mid-run leaves it there for recover_stalled() to push back onto the
# front of ``waiting`` when a worker process starts.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import json
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError

from folio_ingest.interfaces.job_broker import IJobBroker
from folio_ingest.models.queue import IngestionJob, JobState, JobStatus, QueueStats
from folio_ingest.utils.errors import QueueUnavailableError

logger = structlog.get_logger(logger_name=__name__)

# BLMOVE with timeout 0 blocks forever; never ask for less than this.
_MIN_BLOCK_SECONDS = 0.01


class RedisJobBroker(IJobBroker):
    """Job broker backed by a Redis server.

    Parameters
    ----------
    redis_url:
        Connection URL, e.g. ``redis://localhost:6379/0``.
    queue_name:
        Name of the queue; keys are prefixed ``folio:{queue_name}``.
    max_attempts:
        Total attempts per job, including the first.
    backoff_base_ms:
        Delay before the first retry; doubles for every further retry.
    keep_completed / keep_failed:
        How many finished jobs to retain for inspection.
    client:
        Pre-built client (tests inject a mock here).
    """

    def __init__(
        self,
        redis_url: str,
        queue_name: str = "ingest",
        max_attempts: int = 3,
        backoff_base_ms: int = 2000,
        keep_completed: int = 10,
        keep_failed: int = 50,
        client: aioredis.Redis | None = None,
    ) -> None:
        self._redis_url = redis_url
        self._prefix = f"folio:{queue_name}"
        self._max_attempts = max(1, max_attempts)
        self._backoff_base_ms = max(0, backoff_base_ms)
        self._keep_completed = keep_completed
        self._keep_failed = keep_failed
        self._client = client

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        if self._client is None:
            self._client = aioredis.from_url(self._redis_url, decode_responses=True)
        with self._translate_errors("connect"):
            await self._client.ping()
        logger.info("redis_broker_connected", url=self._redis_url, prefix=self._prefix)

    async def close(self) -> None:
        if self._client is None:
            return
        with self._translate_errors("close"):
            await self._client.aclose()
        self._client = None

    async def ping(self) -> bool:
        if self._client is None:
            return False
        try:
            return bool(await self._client.ping())
        except (RedisError, OSError):
            return False

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    async def add(self, job: IngestionJob) -> str:
        client = self._require_client()
        with self._translate_errors("add"):
            job_id = str(await client.incr(self._key("id")))
            stored = job.model_copy(update={"job_id": job_id})
            async with client.pipeline(transaction=True) as pipe:
                pipe.hset(
                    self._job_key(job_id),
                    mapping={
                        "data": stored.model_dump_json(),
                        "state": JobState.WAITING.value,
                        "attempts_made": 0,
                    },
                )
                pipe.lpush(self._key("waiting"), job_id)
                await pipe.execute()
        logger.debug("job_added", job_id=job_id, document_id=job.document_id)
        return job_id

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------

    async def reserve(self, timeout: float) -> IngestionJob | None:
        client = self._require_client()
        with self._translate_errors("reserve"):
            await self._promote_delayed(client)
            job_id = await client.blmove(
                self._key("waiting"),
                self._key("active"),
                max(timeout, _MIN_BLOCK_SECONDS),
                "RIGHT",
                "LEFT",
            )
            if job_id is None:
                return None
            await client.hset(self._job_key(job_id), "state", JobState.ACTIVE.value)
            fields = await client.hgetall(self._job_key(job_id))

        if not fields or "data" not in fields:
            # Hash vanished (trimmed or deleted by hand); drop the orphan id.
            logger.warning("orphan_job_id_dropped", job_id=job_id)
            with self._translate_errors("reserve"):
                await client.lrem(self._key("active"), 0, job_id)
            return None

        try:
            job = IngestionJob.model_validate_json(fields["data"])
            attempts_made = int(fields.get("attempts_made", 0))
        except ValueError as exc:
            # Covers pydantic's ValidationError.  No retries for bad payloads.
            logger.error("invalid_job_payload", job_id=job_id, error=str(exc))
            await self.fail(job_id, f"Invalid job payload: {exc}", retry=False)
            return None
        return job.model_copy(update={"attempts_made": attempts_made})

    async def complete(self, job_id: str, result: dict[str, Any] | None = None) -> None:
        client = self._require_client()
        with self._translate_errors("complete"):
            async with client.pipeline(transaction=True) as pipe:
                pipe.lrem(self._key("active"), 0, job_id)
                pipe.hincrby(self._job_key(job_id), "attempts_made", 1)
                pipe.hset(
                    self._job_key(job_id),
                    mapping={
                        "state": JobState.COMPLETED.value,
                        "result": json.dumps(result or {}),
                        "finished_at": _now_iso(),
                    },
                )
                pipe.lpush(self._key("completed"), job_id)
                await pipe.execute()
            await self._trim(client, "completed", self._keep_completed)

    async def fail(self, job_id: str, reason: str, retry: bool = True) -> JobState:
        client = self._require_client()
        with self._translate_errors("fail"):
            attempts = int(await client.hincrby(self._job_key(job_id), "attempts_made", 1))

            if retry and attempts < self._max_attempts:
                delay_ms = self._backoff_base_ms * (2 ** (attempts - 1))
                ready_at = int(time.time() * 1000) + delay_ms
                async with client.pipeline(transaction=True) as pipe:
                    pipe.lrem(self._key("active"), 0, job_id)
                    pipe.hset(
                        self._job_key(job_id),
                        mapping={"state": JobState.DELAYED.value, "failed_reason": reason},
                    )
                    pipe.zadd(self._key("delayed"), {job_id: ready_at})
                    await pipe.execute()
                logger.info(
                    "job_retry_scheduled",
                    job_id=job_id,
                    attempts_made=attempts,
                    delay_ms=delay_ms,
                )
                return JobState.DELAYED

            async with client.pipeline(transaction=True) as pipe:
                pipe.lrem(self._key("active"), 0, job_id)
                pipe.hset(
                    self._job_key(job_id),
                    mapping={
                        "state": JobState.FAILED.value,
                        "failed_reason": reason,
                        "finished_at": _now_iso(),
                    },
                )
                pipe.lpush(self._key("failed"), job_id)
                await pipe.execute()
            await self._trim(client, "failed", self._keep_failed)
        return JobState.FAILED

    async def recover_stalled(self) -> int:
        client = self._require_client()
        with self._translate_errors("recover_stalled"):
            stalled = await client.lrange(self._key("active"), 0, -1)
            for job_id in stalled:
                async with client.pipeline(transaction=True) as pipe:
                    pipe.lrem(self._key("active"), 0, job_id)
                    # RPUSH puts it at the consuming end: next in line.
                    pipe.rpush(self._key("waiting"), job_id)
                    pipe.hset(self._job_key(job_id), "state", JobState.WAITING.value)
                    await pipe.execute()
        if stalled:
            logger.warning("stalled_jobs_requeued", count=len(stalled))
        return len(stalled)

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    async def get_job(self, job_id: str) -> JobStatus | None:
        client = self._require_client()
        with self._translate_errors("get_job"):
            fields = await client.hgetall(self._job_key(job_id))
        if not fields or "data" not in fields:
            return None

        job = IngestionJob.model_validate_json(fields["data"])
        state = JobState(fields.get("state", JobState.UNKNOWN.value))
        result = json.loads(fields["result"]) if fields.get("result") else None
        return JobStatus(
            job_id=job_id,
            state=state,
            progress=100 if state in (JobState.COMPLETED, JobState.FAILED) else 0,
            document_id=job.document_id,
            attempts_made=int(fields.get("attempts_made", 0)),
            failed_reason=fields.get("failed_reason"),
            result=result,
            finished_at=fields.get("finished_at") or None,
        )

    async def get_counts(self) -> QueueStats:
        client = self._require_client()
        with self._translate_errors("get_counts"):
            async with client.pipeline(transaction=False) as pipe:
                pipe.llen(self._key("waiting"))
                pipe.llen(self._key("active"))
                pipe.llen(self._key("completed"))
                pipe.llen(self._key("failed"))
                pipe.zcard(self._key("delayed"))
                waiting, active, completed, failed, delayed = await pipe.execute()
        return QueueStats(
            waiting=waiting,
            active=active,
            completed=completed,
            failed=failed,
            delayed=delayed,
        )

    def get_provider_name(self) -> str:
        return "redis"

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _key(self, name: str) -> str:
        return f"{self._prefix}:{name}"

    def _job_key(self, job_id: str) -> str:
        return f"{self._prefix}:job:{job_id}"

    def _require_client(self) -> aioredis.Redis:
        if self._client is None:
            raise QueueUnavailableError(
                message="Redis broker is not connected",
                provider_name=self.get_provider_name(),
            )
        return self._client

    async def _promote_delayed(self, client: aioredis.Redis) -> None:
        now_ms = int(time.time() * 1000)
        due = await client.zrangebyscore(self._key("delayed"), 0, now_ms)
        for job_id in due:
            # Only the caller whose ZREM wins moves the job.
            if await client.zrem(self._key("delayed"), job_id):
                async with client.pipeline(transaction=True) as pipe:
                    pipe.hset(self._job_key(job_id), "state", JobState.WAITING.value)
                    pipe.lpush(self._key("waiting"), job_id)
                    await pipe.execute()

    async def _trim(self, client: aioredis.Redis, list_name: str, keep: int) -> None:
        keep = max(keep, 0)
        dropped = await client.lrange(self._key(list_name), keep, -1)
        if not dropped:
            return
        async with client.pipeline(transaction=True) as pipe:
            pipe.delete(*[self._job_key(job_id) for job_id in dropped])
            if keep:
                pipe.ltrim(self._key(list_name), 0, keep - 1)
            else:
                pipe.delete(self._key(list_name))
            await pipe.execute()

    @contextmanager
    def _translate_errors(self, operation: str) -> Iterator[None]:
        try:
            yield
        except (RedisError, OSError) as exc:
            raise QueueUnavailableError(
                message=f"Redis {operation} failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
