"""Unit tests for EmbeddingGenerator: per-chunk isolation, timeouts, fan-out cap."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from folio_ingest.interfaces.embedding_provider import IEmbeddingProvider
from folio_ingest.models.ingestion import Chunk
from folio_ingest.services.ingestion.embedding_generator import EmbeddingGenerator
from folio_ingest.utils.errors import EmbeddingError
from tests.conftest import FailingEmbeddingProvider, MockEmbeddingProvider


def _chunks(*texts: str) -> list[Chunk]:
    return [Chunk(text=t, index=i) for i, t in enumerate(texts)]


def _provider_returning(value) -> IEmbeddingProvider:
    mock = MagicMock(spec=IEmbeddingProvider)
    mock.get_provider_name.return_value = "mock-embedding"
    mock.embed_single = AsyncMock(return_value=value)
    return mock


class TestEmbedText:
    @pytest.mark.asyncio
    async def test_returns_vector(self) -> None:
        generator = EmbeddingGenerator(MockEmbeddingProvider())
        vector = await generator.embed_text("hello")
        assert len(vector) == 16

    @pytest.mark.asyncio
    async def test_empty_vector_is_an_error(self) -> None:
        generator = EmbeddingGenerator(_provider_returning([]))
        with pytest.raises(EmbeddingError, match="empty vector"):
            await generator.embed_text("hello")

    @pytest.mark.asyncio
    async def test_provider_exception_is_wrapped(self) -> None:
        generator = EmbeddingGenerator(FailingEmbeddingProvider())
        with pytest.raises(EmbeddingError) as exc_info:
            await generator.embed_text("hello")
        assert exc_info.value.provider_name == "failing-embedding"

    @pytest.mark.asyncio
    async def test_timeout_is_an_embedding_error(self) -> None:
        generator = EmbeddingGenerator(MockEmbeddingProvider(delay=0.5), timeout_seconds=0.01)
        with pytest.raises(EmbeddingError, match="timed out"):
            await generator.embed_text("slow")


class TestEmbedChunks:
    @pytest.mark.asyncio
    async def test_one_outcome_per_chunk_in_order(self) -> None:
        generator = EmbeddingGenerator(MockEmbeddingProvider(delay=0.001))
        outcomes = await generator.embed_chunks(_chunks("a", "b", "c", "d"))

        assert [o.index for o in outcomes] == [0, 1, 2, 3]
        assert all(o.succeeded for o in outcomes)

    @pytest.mark.asyncio
    async def test_failures_are_isolated(self) -> None:
        provider = MockEmbeddingProvider(fail_when=lambda text: text == "bad")
        generator = EmbeddingGenerator(provider)

        outcomes = await generator.embed_chunks(_chunks("good", "bad", "fine"))

        assert [o.succeeded for o in outcomes] == [True, False, True]
        assert outcomes[1].embedding is None
        assert "mock provider refused" in outcomes[1].error

    @pytest.mark.asyncio
    async def test_all_failures_still_return_outcomes(self) -> None:
        generator = EmbeddingGenerator(FailingEmbeddingProvider())
        outcomes = await generator.embed_chunks(_chunks("a", "b"))

        assert len(outcomes) == 2
        assert not any(o.succeeded for o in outcomes)

    @pytest.mark.asyncio
    async def test_concurrency_is_capped(self) -> None:
        provider = MockEmbeddingProvider(delay=0.01)
        generator = EmbeddingGenerator(provider, concurrency=3)

        await generator.embed_chunks(_chunks(*[f"chunk {i}" for i in range(12)]))

        assert len(provider.calls) == 12
        assert provider.max_in_flight == 3

    @pytest.mark.asyncio
    async def test_failed_chunk_is_not_retried(self) -> None:
        provider = MockEmbeddingProvider(fail_when=lambda text: text == "bad")
        generator = EmbeddingGenerator(provider)

        await generator.embed_chunks(_chunks("bad"))

        assert provider.calls == ["bad"]

    @pytest.mark.asyncio
    async def test_empty_input(self) -> None:
        generator = EmbeddingGenerator(MockEmbeddingProvider())
        assert await generator.embed_chunks([]) == []

    @pytest.mark.asyncio
    async def test_separate_calls_run_concurrently(self) -> None:
        provider = MockEmbeddingProvider(delay=0.01)
        generator = EmbeddingGenerator(provider, concurrency=2)

        await asyncio.gather(
            generator.embed_chunks(_chunks("a", "b")),
            generator.embed_chunks(_chunks("c", "d")),
        )

        # The cap applies per document, so two documents can reach 2 + 2.
        assert provider.max_in_flight == 4


class TestInputLimit:
    @pytest.mark.asyncio
    async def test_long_chunk_is_cut_before_the_provider_call(self) -> None:
        provider = MockEmbeddingProvider()
        generator = EmbeddingGenerator(provider, max_input_chars=10)

        outcomes = await generator.embed_chunks(_chunks("x" * 25, "short"))

        assert provider.calls == ["x" * 10, "short"]
        assert [o.truncated for o in outcomes] == [True, False]
        assert all(o.succeeded for o in outcomes)

    @pytest.mark.asyncio
    async def test_chunk_at_the_limit_is_untouched(self) -> None:
        provider = MockEmbeddingProvider()
        generator = EmbeddingGenerator(provider, max_input_chars=5)

        outcomes = await generator.embed_chunks(_chunks("abcde"))

        assert provider.calls == ["abcde"]
        assert outcomes[0].truncated is False
