"""Unit tests for WorkerPool: bounded workers, acknowledgement, retry hand-off."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from folio_ingest.models.document import DocumentStatus
from folio_ingest.models.ingestion import IngestionOutcome
from folio_ingest.models.queue import IngestionJob, JobState
from folio_ingest.pipeline.worker_pool import WorkerPool
from folio_ingest.providers.broker.memory_job_broker import InMemoryJobBroker
from folio_ingest.services.ingestion.ingestion_pipeline import IngestionPipeline


def _job(document_id: int) -> IngestionJob:
    return IngestionJob(document_id=document_id, file_path=f"/uploads/{document_id}.txt")


def _pipeline(outcome_for) -> MagicMock:
    pipeline = MagicMock(spec=IngestionPipeline)
    pipeline.run = AsyncMock(side_effect=outcome_for)
    return pipeline


def _embedded(job: IngestionJob) -> IngestionOutcome:
    return IngestionOutcome(
        document_id=job.document_id,
        job_id=job.job_id,
        status=DocumentStatus.EMBEDDED,
        chunks_total=2,
        records_stored=2,
        vector_ids=[1, 2],
    )


async def _run_until_idle(pool: WorkerPool) -> None:
    pool.start()
    await pool.stop(drain_waiting=True)


class TestWorkerPool:
    @pytest.mark.asyncio
    async def test_processes_and_completes_jobs(self, memory_broker: InMemoryJobBroker) -> None:
        ids = [await memory_broker.add(_job(n)) for n in range(3)]
        pool = WorkerPool(memory_broker, _pipeline(_embedded), concurrency=2, reserve_timeout=0.05)

        await _run_until_idle(pool)

        assert pool.processed_count == 3
        for job_id in ids:
            status = await memory_broker.get_job(job_id)
            assert status.state == JobState.COMPLETED
            assert status.result["status"] == "embedded"
            assert status.result["vector_ids"] == [1, 2]

    @pytest.mark.asyncio
    async def test_concurrency_bound(self, memory_broker: InMemoryJobBroker) -> None:
        in_flight = 0
        peak = 0

        async def _slow(job: IngestionJob) -> IngestionOutcome:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.02)
            in_flight -= 1
            return _embedded(job)

        for n in range(6):
            await memory_broker.add(_job(n))
        pool = WorkerPool(memory_broker, _pipeline(_slow), concurrency=2, reserve_timeout=0.05)

        await _run_until_idle(pool)

        assert peak == 2
        assert pool.processed_count == 6

    @pytest.mark.asyncio
    async def test_retryable_failure_is_retried(self, memory_broker: InMemoryJobBroker) -> None:
        attempts: list[int] = []

        def _flaky(job: IngestionJob) -> IngestionOutcome:
            attempts.append(job.attempts_made)
            if job.attempts_made == 0:
                return IngestionOutcome(
                    document_id=job.document_id,
                    status=DocumentStatus.FAILED,
                    error="provider down",
                    retryable=True,
                )
            return _embedded(job)

        job_id = await memory_broker.add(_job(1))
        pool = WorkerPool(memory_broker, _pipeline(_flaky), concurrency=1, reserve_timeout=0.05)
        pool.start()
        for _ in range(100):
            status = await memory_broker.get_job(job_id)
            if status.state == JobState.COMPLETED:
                break
            await asyncio.sleep(0.01)
        await pool.stop()

        assert attempts == [0, 1]
        assert (await memory_broker.get_job(job_id)).attempts_made == 2

    @pytest.mark.asyncio
    async def test_permanent_failure_is_not_retried(
        self, memory_broker: InMemoryJobBroker
    ) -> None:
        def _bad_file(job: IngestionJob) -> IngestionOutcome:
            return IngestionOutcome(
                document_id=job.document_id,
                status=DocumentStatus.FAILED,
                error="Unsupported content type: text/csv",
            )

        job_id = await memory_broker.add(_job(1))
        pipeline = _pipeline(_bad_file)
        pool = WorkerPool(memory_broker, pipeline, concurrency=1, reserve_timeout=0.05)

        await _run_until_idle(pool)

        status = await memory_broker.get_job(job_id)
        assert status.state == JobState.FAILED
        assert status.failed_reason == "Unsupported content type: text/csv"
        assert pipeline.run.await_count == 1

    @pytest.mark.asyncio
    async def test_stale_outcome_is_acknowledged(self, memory_broker: InMemoryJobBroker) -> None:
        def _stale(job: IngestionJob) -> IngestionOutcome:
            return IngestionOutcome(
                document_id=job.document_id, status=DocumentStatus.EMBEDDED, stale=True
            )

        job_id = await memory_broker.add(_job(1))
        pool = WorkerPool(memory_broker, _pipeline(_stale), concurrency=1, reserve_timeout=0.05)

        await _run_until_idle(pool)

        status = await memory_broker.get_job(job_id)
        assert status.state == JobState.COMPLETED
        assert status.result["stale"] is True

    @pytest.mark.asyncio
    async def test_stop_without_jobs(self, memory_broker: InMemoryJobBroker) -> None:
        pool = WorkerPool(memory_broker, _pipeline(_embedded), concurrency=3, reserve_timeout=0.05)
        pool.start()
        assert pool.is_running

        await asyncio.wait_for(pool.stop(), timeout=2.0)

        assert not pool.is_running
        assert pool.processed_count == 0


class TestWorkerResilience:
    @pytest.mark.asyncio
    async def test_worker_survives_unexpected_reserve_error(
        self, memory_broker: InMemoryJobBroker
    ) -> None:
        job_id = await memory_broker.add(_job(1))
        real_reserve = memory_broker.reserve
        calls = 0

        async def _reserve(timeout: float) -> IngestionJob | None:
            nonlocal calls
            calls += 1
            if calls == 1:
                raise ValueError("corrupt payload")
            return await real_reserve(timeout)

        memory_broker.reserve = _reserve  # type: ignore[method-assign]
        pool = WorkerPool(
            memory_broker,
            _pipeline(_embedded),
            concurrency=1,
            reserve_timeout=0.05,
            error_backoff_seconds=0.01,
        )

        pool.start()
        await asyncio.sleep(0.2)
        still_running = pool.is_running
        await pool.stop()

        assert still_running is True
        assert pool.processed_count == 1
        assert (await memory_broker.get_job(job_id)).state == JobState.COMPLETED

    @pytest.mark.asyncio
    async def test_worker_survives_acknowledgement_error(
        self, memory_broker: InMemoryJobBroker
    ) -> None:
        for n in range(2):
            await memory_broker.add(_job(n))
        memory_broker.complete = AsyncMock(  # type: ignore[method-assign]
            side_effect=RuntimeError("ack exploded")
        )
        pool = WorkerPool(
            memory_broker,
            _pipeline(_embedded),
            concurrency=1,
            reserve_timeout=0.05,
            error_backoff_seconds=0.01,
        )

        await _run_until_idle(pool)

        assert pool.processed_count == 2
