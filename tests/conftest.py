"""Shared pytest fixtures for the folio-ingest test suite."""

from __future__ import annotations

import asyncio
import hashlib
import struct
from pathlib import Path
from typing import AsyncIterator

import pytest

from folio_ingest.config.settings import Settings
from folio_ingest.interfaces.embedding_provider import IEmbeddingProvider
from folio_ingest.main import IngestionRuntime, build_runtime
from folio_ingest.providers.broker.memory_job_broker import InMemoryJobBroker
from folio_ingest.providers.persistence.sqlite_database import SQLiteDatabase
from folio_ingest.providers.persistence.sqlite_document_store import SQLiteDocumentStore
from folio_ingest.providers.persistence.sqlite_vector_repository import SQLiteVectorRepository

_EMBEDDING_DIM = 16


# ---------------------------------------------------------------------------
# Deterministic embedding providers
# ---------------------------------------------------------------------------


def _hash_to_vector(text: str, dim: int = _EMBEDDING_DIM) -> list[float]:
    """Generate a deterministic fixed-length vector by hashing *text*."""
    raw = hashlib.sha256(text.encode("utf-8")).digest()
    while len(raw) < dim * 4:
        raw += hashlib.sha256(raw).digest()
    values = struct.unpack(f"<{dim}I", raw[: dim * 4])
    norm = max(values) or 1
    return [v / norm for v in values]


class MockEmbeddingProvider(IEmbeddingProvider):
    """In-memory deterministic embedding provider for tests.

    ``fail_when`` selects texts that should raise instead of embedding;
    ``delay`` makes every call sleep so concurrency can be observed.
    """

    def __init__(self, fail_when=None, delay: float = 0.0) -> None:
        self._fail_when = fail_when
        self._delay = delay
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def embed_single(self, text: str) -> list[float]:
        self.calls.append(text)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self._delay:
                await asyncio.sleep(self._delay)
            if self._fail_when is not None and self._fail_when(text):
                raise RuntimeError(f"mock provider refused: {text[:20]}")
            return _hash_to_vector(text)
        finally:
            self.in_flight -= 1

    def get_dimension(self) -> int:
        return _EMBEDDING_DIM

    def get_provider_name(self) -> str:
        return "mock-embedding"

    def is_available(self) -> bool:
        return True


class FailingEmbeddingProvider(MockEmbeddingProvider):
    """Every embedding call raises."""

    def __init__(self) -> None:
        super().__init__(fail_when=lambda _text: True)

    def get_provider_name(self) -> str:
        return "failing-embedding"


# ---------------------------------------------------------------------------
# Settings / persistence fixtures
# ---------------------------------------------------------------------------


def make_settings(tmp_path: Path, **overrides) -> Settings:
    """Settings pointing every path at *tmp_path*, memory broker, fast retries."""
    defaults = {
        "database_path": str(tmp_path / "folio.db"),
        "upload_dir": str(tmp_path / "uploads"),
        "queue_backend": "memory",
        "queue_backoff_base_ms": 10,
        "queue_reserve_timeout_seconds": 0.05,
        "worker_concurrency": 2,
        "openai_api_key": "",
    }
    defaults.update(overrides)
    return Settings(**defaults)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return make_settings(tmp_path)


@pytest.fixture
async def database(tmp_path: Path) -> AsyncIterator[SQLiteDatabase]:
    db = SQLiteDatabase(tmp_path / "folio.db")
    await db.connect()
    yield db
    await db.close()


@pytest.fixture
async def document_store(database: SQLiteDatabase) -> SQLiteDocumentStore:
    store = SQLiteDocumentStore(database)
    await store.initialize()
    return store


@pytest.fixture
async def vector_repository(database: SQLiteDatabase) -> SQLiteVectorRepository:
    repository = SQLiteVectorRepository(database)
    await repository.initialize()
    return repository


@pytest.fixture
async def memory_broker() -> AsyncIterator[InMemoryJobBroker]:
    broker = InMemoryJobBroker(max_attempts=3, backoff_base_ms=10)
    await broker.connect()
    yield broker
    await broker.close()


@pytest.fixture
def mock_embedding_provider() -> MockEmbeddingProvider:
    return MockEmbeddingProvider()


@pytest.fixture
async def runtime(
    settings: Settings, mock_embedding_provider: MockEmbeddingProvider
) -> AsyncIterator[IngestionRuntime]:
    """A started runtime (no workers) on a temp database with the mock embedder."""
    rt = build_runtime(settings, embedding_provider=mock_embedding_provider)
    await rt.start()
    yield rt
    await rt.stop()


# ---------------------------------------------------------------------------
# Sample files
# ---------------------------------------------------------------------------


@pytest.fixture
def sample_text() -> str:
    """Five paragraphs: 1-3 total ~900 chars, paragraph 4 alone ~1200 chars."""
    p1 = "Led the migration of a billing platform to event sourcing. " * 5
    p2 = "Designed a retry-safe ingestion service for partner uploads. " * 5
    p3 = "Mentored four engineers and ran the weekly architecture review. " * 4
    p4 = "Built a document search feature on top of vector embeddings. " * 20
    p5 = "Outside work: trail running and contributing to open source."
    return "\n\n".join(p.strip() for p in (p1, p2, p3, p4, p5))


@pytest.fixture
def text_file(tmp_path: Path, sample_text: str) -> Path:
    path = tmp_path / "resume.txt"
    path.write_text(sample_text, encoding="utf-8")
    return path


@pytest.fixture
def docx_file(tmp_path: Path) -> Path:
    """A DOCX with two paragraphs, one 2x2 table and core properties."""
    import docx

    document = docx.Document()
    document.core_properties.title = "Case Study"
    document.core_properties.author = "A. Writer"
    document.add_paragraph("Reduced checkout latency by 40 percent.")
    document.add_paragraph("Rolled out to every region within a quarter.")
    table = document.add_table(rows=2, cols=2)
    table.cell(0, 0).text = "Metric"
    table.cell(0, 1).text = "Value"
    table.cell(1, 0).text = "p95 latency"
    table.cell(1, 1).text = "180ms"
    path = tmp_path / "case_study.docx"
    document.save(str(path))
    return path


@pytest.fixture
def pdf_file(tmp_path: Path) -> Path:
    """A two-page PDF: page one has text, page two is blank."""
    import fitz

    doc = fitz.open()
    page = doc.new_page()
    page.insert_text((72, 72), "Portfolio summary: distributed systems engineer.")
    doc.new_page()
    path = tmp_path / "summary.pdf"
    doc.save(str(path))
    doc.close()
    return path
