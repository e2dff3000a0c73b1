"""Unit tests for factory functions in folio_ingest/main.py.

Covers embedding provider selection, broker selection, and runtime
assembly, with the network probe mocked so no Ollama server or API key
is required.
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from folio_ingest.config.settings import Settings
from folio_ingest.main import _build_broker, _build_embedding_provider, build_runtime
from folio_ingest.providers.broker.memory_job_broker import InMemoryJobBroker
from folio_ingest.providers.broker.redis_job_broker import RedisJobBroker
from folio_ingest.providers.embedding.nomic_embedding_provider import NomicEmbeddingProvider
from folio_ingest.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from folio_ingest.utils.errors import ConfigurationError
from tests.conftest import MockEmbeddingProvider, make_settings


# ======================================================================
# _build_embedding_provider
# ======================================================================


class TestBuildEmbeddingProvider:
    """Provider priority: OpenAI when keyed, otherwise Nomic/Ollama."""

    def test_openai_when_key_set(self, tmp_path: Path) -> None:
        s = make_settings(tmp_path, openai_api_key="sk-test")
        with patch("folio_ingest.providers.embedding.openai_embedding_provider.openai.AsyncOpenAI"):
            result = _build_embedding_provider(s)
        assert isinstance(result, OpenAIEmbeddingProvider)

    def test_nomic_fallback_without_key(self, tmp_path: Path) -> None:
        s = make_settings(tmp_path)
        with patch.object(NomicEmbeddingProvider, "is_available", return_value=True):
            result = _build_embedding_provider(s)
        assert isinstance(result, NomicEmbeddingProvider)

    def test_unreachable_nomic_still_returned(self, tmp_path: Path) -> None:
        s = make_settings(tmp_path)
        with patch.object(NomicEmbeddingProvider, "is_available", return_value=False):
            result = _build_embedding_provider(s)
        assert isinstance(result, NomicEmbeddingProvider)


# ======================================================================
# _build_broker
# ======================================================================


class TestBuildBroker:
    def test_memory_backend(self, tmp_path: Path) -> None:
        assert isinstance(_build_broker(make_settings(tmp_path)), InMemoryJobBroker)

    def test_redis_backend_case_insensitive(self, tmp_path: Path) -> None:
        s = make_settings(tmp_path, queue_backend="Redis")
        assert isinstance(_build_broker(s), RedisJobBroker)

    def test_unknown_backend_rejected(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="Unknown queue backend"):
            _build_broker(make_settings(tmp_path, queue_backend="kafka"))


# ======================================================================
# build_runtime
# ======================================================================


class TestBuildRuntime:
    def test_components_wired_once(self, tmp_path: Path) -> None:
        provider = MockEmbeddingProvider()
        runtime = build_runtime(make_settings(tmp_path), embedding_provider=provider)

        assert runtime.queue.broker is runtime.worker_pool._broker
        assert runtime.pipeline is runtime.queue._pipeline
        assert runtime.pipeline._embedding_generator._provider is provider

    def test_chunk_settings_flow_into_chunker(self, tmp_path: Path) -> None:
        s = make_settings(tmp_path, chunk_max_size=500, chunk_overlap=50)
        runtime = build_runtime(s, embedding_provider=MockEmbeddingProvider())

        options = runtime.pipeline._chunker.default_options
        assert (options.max_chunk_size, options.overlap) == (500, 50)

    def test_settings_object_is_kept(self, tmp_path: Path) -> None:
        s: Settings = make_settings(tmp_path)
        runtime = build_runtime(s, embedding_provider=MockEmbeddingProvider())
        assert runtime.settings is s
