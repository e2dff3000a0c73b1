"""Bounded per-chunk embedding fan-out.

Every chunk gets its own ``embed_single`` call so failures stay isolated.
A semaphore caps how many calls are in flight for one document, and each
call is bounded by a timeout.  Text longer than ``max_input_chars`` is cut
to that length before it reaches the provider.  Results come back tagged
success/failure in chunk order; failures are logged with the chunk index
and are not retried within the same attempt.
"""

from __future__ import annotations

import asyncio

import structlog

from folio_ingest.interfaces.embedding_provider import IEmbeddingProvider
from folio_ingest.models.ingestion import Chunk, EmbeddingOutcome
from folio_ingest.utils.concurrency import call_with_timeout, throttled_gather
from folio_ingest.utils.errors import EmbeddingError

logger = structlog.get_logger(logger_name=__name__)


class EmbeddingGenerator:
    """Turns chunks into vectors through an :class:`IEmbeddingProvider`.

    Parameters
    ----------
    provider:
        The embedding backend.
    concurrency:
        Maximum in-flight embedding calls per :meth:`embed_chunks` call.
    timeout_seconds:
        Upper bound for a single embedding call.
    max_input_chars:
        Longest text sent to the provider; longer input is truncated.
    """

    def __init__(
        self,
        provider: IEmbeddingProvider,
        concurrency: int = 5,
        timeout_seconds: float = 30.0,
        max_input_chars: int = 8192,
    ) -> None:
        self._provider = provider
        self._concurrency = max(1, concurrency)
        self._timeout_seconds = timeout_seconds
        self._max_input_chars = max(1, max_input_chars)

    @property
    def provider_name(self) -> str:
        return self._provider.get_provider_name()

    async def embed_text(self, text: str) -> list[float]:
        """Embed one text; every failure mode surfaces as :class:`EmbeddingError`."""
        provider_name = self._provider.get_provider_name()
        try:
            vector = await call_with_timeout(
                self._provider.embed_single(text[: self._max_input_chars]),
                self._timeout_seconds,
                lambda: EmbeddingError(
                    message=f"Embedding call timed out after {self._timeout_seconds}s",
                    provider_name=provider_name,
                ),
            )
        except EmbeddingError:
            raise
        except Exception as exc:  # noqa: BLE001 - SDK/network errors vary by provider
            raise EmbeddingError(message=str(exc), provider_name=provider_name) from exc

        if not vector:
            raise EmbeddingError(
                message="Provider returned an empty vector",
                provider_name=provider_name,
            )
        return list(vector)

    async def embed_chunks(self, chunks: list[Chunk]) -> list[EmbeddingOutcome]:
        """Embed every chunk; one outcome per chunk, in chunk order."""
        if not chunks:
            return []

        semaphore = asyncio.Semaphore(self._concurrency)
        results = await throttled_gather(
            [self.embed_text(chunk.text) for chunk in chunks],
            semaphore=semaphore,
            return_exceptions=True,
        )

        outcomes: list[EmbeddingOutcome] = []
        for chunk, result in zip(chunks, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "chunk_embedding_failed",
                    chunk_index=chunk.index,
                    provider=self.provider_name,
                    error=str(result),
                )
                error = str(result) or type(result).__name__
                outcomes.append(EmbeddingOutcome(index=chunk.index, error=error))
                continue

            truncated = len(chunk.text) > self._max_input_chars
            if truncated:
                logger.info(
                    "chunk_input_truncated",
                    chunk_index=chunk.index,
                    characters=len(chunk.text),
                    limit=self._max_input_chars,
                )
            outcomes.append(
                EmbeddingOutcome(index=chunk.index, embedding=result, truncated=truncated)
            )

        succeeded = sum(1 for o in outcomes if o.succeeded)
        logger.info(
            "chunks_embedded",
            total=len(outcomes),
            succeeded=succeeded,
            failed=len(outcomes) - succeeded,
            provider=self.provider_name,
        )
        return outcomes
