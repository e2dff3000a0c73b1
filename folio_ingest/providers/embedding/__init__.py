"""Embedding provider implementations.

Two implementations of IEmbeddingProvider, in selection priority order:
    1. OpenAIEmbeddingProvider - text-embedding-3-small (1536 dims), or any
       OpenAI-compatible endpoint.  Requires an API key.
    2. NomicEmbeddingProvider  - nomic-embed-text via Ollama (768 dims).
       Free and local, but requires a running Ollama server.
"""

from folio_ingest.providers.embedding.nomic_embedding_provider import NomicEmbeddingProvider
from folio_ingest.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

__all__ = ["OpenAIEmbeddingProvider", "NomicEmbeddingProvider"]
