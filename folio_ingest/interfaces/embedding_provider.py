"""Abstract base class for text-embedding service providers.

Implementations wrap OpenAI ``text-embedding-3-small`` (or any
OpenAI-compatible endpoint) and Nomic ``nomic-embed-text`` served locally
by Ollama.  The pipeline only ever talks to this contract, so providers are
interchangeable and tests can inject deterministic fakes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations:
#   OpenAIEmbeddingProvider  - text-embedding-3-small (requires API key)
#   NomicEmbeddingProvider   - nomic-embed-text via Ollama (local)
# Located in: folio_ingest/providers/embedding/
class IEmbeddingProvider(ABC):
    """Contract for text-embedding services used by the ingestion pipeline."""

    @abstractmethod
    async def embed_single(self, text: str) -> list[float]:
        """Generate an embedding vector for one chunk of text.

        The ingestion pipeline calls this once per chunk so that one failing
        chunk never takes its siblings down with it.

        Raises
        ------
        folio_ingest.utils.errors.EmbeddingError
            If the embedding API call fails or returns no vector.
        """

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the dimensionality of the embedding vectors.

        Constant for the lifetime of the provider instance.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"openai_embedding"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured and reachable."""
