"""Chunk embeddings from an OpenAI-compatible ``/embeddings`` endpoint.

Targets api.openai.com by default.  Setting ``openai_base_url`` points the
same client at a compatible host (TogetherAI, Fireworks, a local vLLM), in
which case ``openai_embedding_model`` names the model served there.
"""

from __future__ import annotations

import openai
import structlog

from folio_ingest.config.settings import Settings
from folio_ingest.interfaces.embedding_provider import IEmbeddingProvider
from folio_ingest.utils.errors import EmbeddingError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_MODEL = "text-embedding-3-small"

# Output width of the models we know; anything else is assumed to be 768.
_MODEL_DIMENSIONS: dict[str, int] = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
    "BAAI/bge-base-en-v1.5": 768,
    "BAAI/bge-large-en-v1.5": 1024,
}


class OpenAIEmbeddingProvider(IEmbeddingProvider):
    """Embeds one chunk per request; the pipeline bounds how many run at once."""

    def __init__(self, settings: Settings) -> None:
        self._api_key = settings.openai_api_key
        self._compatible = bool(settings.openai_base_url)

        client_kwargs: dict = {"api_key": self._api_key}
        if self._compatible:
            client_kwargs["base_url"] = settings.openai_base_url
        self._client = openai.AsyncOpenAI(**client_kwargs)
        self._model = settings.openai_embedding_model or _DEFAULT_MODEL

    async def embed_single(self, text: str) -> list[float]:
        try:
            response = await self._client.embeddings.create(input=text, model=self._model)
        except openai.APIError as exc:
            raise EmbeddingError(
                message=f"{self.get_provider_name()} request failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        if not response.data:
            raise EmbeddingError(
                message="Embedding API returned no vectors",
                provider_name=self.get_provider_name(),
            )
        logger.debug(
            "chunk_embedded",
            provider=self.get_provider_name(),
            model=self._model,
            tokens=response.usage.total_tokens if response.usage else None,
        )
        return list(response.data[0].embedding)

    def get_dimension(self) -> int:
        return _MODEL_DIMENSIONS.get(self._model, 768)

    def get_provider_name(self) -> str:
        return "openai-compatible_embedding" if self._compatible else "openai_embedding"

    def is_available(self) -> bool:
        """Return ``True`` if an API key is configured."""
        return bool(self._api_key)
