"""Local chunk embeddings from ``nomic-embed-text`` served by Ollama.

Ollama exposes an OpenAI-compatible ``/v1/embeddings`` route, so the same
``openai`` client drives it; the key is a placeholder Ollama never checks.
Reachability is probed on Ollama's native ``/api/tags`` route with httpx.
"""

from __future__ import annotations

import httpx
import openai
import structlog

from folio_ingest.config.settings import Settings
from folio_ingest.interfaces.embedding_provider import IEmbeddingProvider
from folio_ingest.utils.errors import EmbeddingError

logger = structlog.get_logger(logger_name=__name__)

_NOMIC_MODEL = "nomic-embed-text"
_NOMIC_DIMENSION = 768


class NomicEmbeddingProvider(IEmbeddingProvider):
    """One Ollama request per chunk, 768-dimensional vectors."""

    def __init__(self, settings: Settings) -> None:
        self._base_url = settings.ollama_base_url.rstrip("/")
        self._client = openai.AsyncOpenAI(base_url=f"{self._base_url}/v1", api_key="ollama")

    async def embed_single(self, text: str) -> list[float]:
        try:
            response = await self._client.embeddings.create(input=text, model=_NOMIC_MODEL)
        except openai.APIError as exc:
            raise EmbeddingError(
                message=f"Ollama embedding request failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        if not response.data:
            raise EmbeddingError(
                message="Ollama returned no vectors",
                provider_name=self.get_provider_name(),
            )
        vector = list(response.data[0].embedding)
        logger.debug("chunk_embedded", provider=self.get_provider_name(), chars=len(text))
        return vector

    def get_dimension(self) -> int:
        return _NOMIC_DIMENSION

    def get_provider_name(self) -> str:
        return "nomic_embedding"

    def is_available(self) -> bool:
        """Return ``True`` if the Ollama server answers on ``/api/tags``."""
        if not self._base_url:
            return False
        try:
            response = httpx.get(f"{self._base_url}/api/tags", timeout=3.0)
        except (httpx.ConnectError, httpx.TimeoutException):
            return False
        return response.status_code == 200
