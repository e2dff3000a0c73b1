"""Document status controller: the single writer of lifecycle fields.

Allowed transitions::

    queued | terminal      -> queued       (re-enqueue)
    processing             -> queued       (interrupted run, explicit recovery)
    any                    -> processing   (a new attempt always starts)
    processing             -> embedded | processed
    processing | queued    -> failed

Everything else raises :class:`InvalidStatusTransitionError`.  Each
transition reads the current status, validates, and writes under a
per-document ``asyncio.Lock``, so concurrent writers for one document are
linearized and a late write from a superseded attempt is rejected instead
of clobbering a newer state.

Attempt ownership: ``mark_processing(attempt_id=...)`` records the id in
``metadata["attempt_id"]``.  Writes that pass an ``attempt_id`` are accepted
only while the document is still owned by that attempt.  :meth:`finalizing`
holds the lock for the whole replace-records-and-finish step of one
attempt, so a newer attempt cannot start in the middle of it.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator

import structlog

from folio_ingest.interfaces.document_store import IDocumentStore
from folio_ingest.models.document import TERMINAL_STATUSES, Document, DocumentStatus
from folio_ingest.utils.errors import DocumentNotFoundError, InvalidStatusTransitionError

logger = structlog.get_logger(logger_name=__name__)

_ANY_STATUS = frozenset(DocumentStatus)
_FROM_QUEUED_OR_TERMINAL = frozenset({DocumentStatus.QUEUED}) | TERMINAL_STATUSES
_FROM_PROCESSING = frozenset({DocumentStatus.PROCESSING})
_FROM_PROCESSING_OR_QUEUED = frozenset({DocumentStatus.PROCESSING, DocumentStatus.QUEUED})


class DocumentStatusController:
    """Validated, serialized status writes on top of an :class:`IDocumentStore`."""

    def __init__(self, document_store: IDocumentStore) -> None:
        self._store = document_store
        self._locks: defaultdict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def mark_queued(self, document_id: int) -> Document:
        """Put a finished (or never started) document back in line."""
        return await self._transition(
            document_id, DocumentStatus.QUEUED, _FROM_QUEUED_OR_TERMINAL
        )

    async def mark_interrupted(self, document_id: int) -> Document:
        """Send a document stranded in ``processing`` back to ``queued``.

        The attempt id is dropped, so a run that is in fact still going
        ends as superseded instead of overwriting the next attempt.
        """
        return await self._transition(
            document_id,
            DocumentStatus.QUEUED,
            _FROM_PROCESSING,
            metadata={"interrupted_at": _utcnow().isoformat()},
        )

    async def mark_processing(
        self, document_id: int, attempt_id: str | None = None
    ) -> Document:
        """Start an attempt.  Accepted from every status.

        With *attempt_id*, the document's metadata is reset to
        ``{"attempt_id": attempt_id}`` and any earlier attempt loses ownership.
        """
        fields: dict[str, Any] = {}
        if attempt_id is not None:
            fields["metadata"] = {"attempt_id": attempt_id}
        return await self._transition(
            document_id, DocumentStatus.PROCESSING, _ANY_STATUS, **fields
        )

    async def mark_embedded(
        self,
        document_id: int,
        content_text: str,
        vector_ids: list[int],
        metadata: dict[str, Any],
        attempt_id: str | None = None,
    ) -> Document:
        """Finish with at least one stored record.

        ``vector_id`` points at the first stored record; the full id list
        goes into ``metadata["vector_ids"]``.
        """
        return await self._transition(
            document_id,
            DocumentStatus.EMBEDDED,
            _FROM_PROCESSING,
            attempt_id=attempt_id,
            **_embedded_fields(content_text, vector_ids, metadata, attempt_id),
        )

    async def mark_processed(
        self,
        document_id: int,
        content_text: str,
        metadata: dict[str, Any],
        attempt_id: str | None = None,
    ) -> Document:
        """Finish with text extracted but no embeddings stored."""
        return await self._transition(
            document_id,
            DocumentStatus.PROCESSED,
            _FROM_PROCESSING,
            attempt_id=attempt_id,
            **_processed_fields(content_text, metadata, attempt_id),
        )

    async def mark_failed(
        self,
        document_id: int,
        message: str,
        error_type: str | None = None,
        attempt_id: str | None = None,
    ) -> Document:
        """Finish unsuccessfully.  Replaces metadata with the failure record."""
        failure: dict[str, Any] = {
            "error": message,
            "failed_at": _utcnow().isoformat(),
        }
        if error_type:
            failure["error_type"] = error_type
        if attempt_id is not None:
            failure["attempt_id"] = attempt_id
        return await self._transition(
            document_id,
            DocumentStatus.FAILED,
            _FROM_PROCESSING_OR_QUEUED,
            attempt_id=attempt_id,
            vector_id=None,
            metadata=failure,
        )

    @asynccontextmanager
    async def finalizing(
        self, document_id: int, attempt_id: str
    ) -> AsyncIterator[AttemptFinalizer]:
        """Hold the document's lock while *attempt_id* replaces records and finishes.

        Raises :class:`InvalidStatusTransitionError` before yielding when the
        attempt no longer owns the document, so a superseded attempt never
        touches stored records.
        """
        async with self._locks[document_id]:
            current = await self._load(document_id)
            _check(current, DocumentStatus.PROCESSING, _FROM_PROCESSING, attempt_id)
            yield AttemptFinalizer(self, document_id, attempt_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _transition(
        self,
        document_id: int,
        target: DocumentStatus,
        allowed_from: frozenset[DocumentStatus],
        attempt_id: str | None = None,
        **fields: Any,
    ) -> Document:
        async with self._locks[document_id]:
            return await self._write(document_id, target, allowed_from, attempt_id, **fields)

    async def _write(
        self,
        document_id: int,
        target: DocumentStatus,
        allowed_from: frozenset[DocumentStatus],
        attempt_id: str | None,
        **fields: Any,
    ) -> Document:
        """Read, validate and write.  Caller holds the document's lock."""
        current = await self._load(document_id)
        _check(current, target, allowed_from, attempt_id)
        updated = await self._store.update_document(
            document_id,
            status=target,
            processed_at=_utcnow(),
            **fields,
        )
        logger.info(
            "document_status_changed",
            document_id=document_id,
            previous=current.status.value,
            status=target.value,
        )
        return updated

    async def _load(self, document_id: int) -> Document:
        current = await self._store.get_document(document_id)
        if current is None:
            raise DocumentNotFoundError(
                document_id, provider_name=self._store.get_provider_name()
            )
        return current


class AttemptFinalizer:
    """Terminal writes for one attempt, issued while :meth:`finalizing` holds the lock."""

    def __init__(
        self, controller: DocumentStatusController, document_id: int, attempt_id: str
    ) -> None:
        self._controller = controller
        self._document_id = document_id
        self._attempt_id = attempt_id

    async def embedded(
        self, content_text: str, vector_ids: list[int], metadata: dict[str, Any]
    ) -> Document:
        return await self._controller._write(
            self._document_id,
            DocumentStatus.EMBEDDED,
            _FROM_PROCESSING,
            self._attempt_id,
            **_embedded_fields(content_text, vector_ids, metadata, self._attempt_id),
        )

    async def processed(self, content_text: str, metadata: dict[str, Any]) -> Document:
        return await self._controller._write(
            self._document_id,
            DocumentStatus.PROCESSED,
            _FROM_PROCESSING,
            self._attempt_id,
            **_processed_fields(content_text, metadata, self._attempt_id),
        )


def _check(
    current: Document,
    target: DocumentStatus,
    allowed_from: frozenset[DocumentStatus],
    attempt_id: str | None,
) -> None:
    if current.status not in allowed_from:
        raise InvalidStatusTransitionError(current.id, current.status.value, target.value)
    if attempt_id is not None and current.metadata.get("attempt_id") != attempt_id:
        raise InvalidStatusTransitionError(
            current.id,
            f"{current.status.value} (owned by another attempt)",
            target.value,
        )


def _embedded_fields(
    content_text: str,
    vector_ids: list[int],
    metadata: dict[str, Any],
    attempt_id: str | None,
) -> dict[str, Any]:
    if not vector_ids:
        raise ValueError("mark_embedded requires at least one vector id")
    merged = {**metadata, "vector_ids": list(vector_ids)}
    if attempt_id is not None:
        merged["attempt_id"] = attempt_id
    return {"content_text": content_text, "vector_id": vector_ids[0], "metadata": merged}


def _processed_fields(
    content_text: str, metadata: dict[str, Any], attempt_id: str | None
) -> dict[str, Any]:
    merged = dict(metadata)
    if attempt_id is not None:
        merged["attempt_id"] = attempt_id
    return {"content_text": content_text, "vector_id": None, "metadata": merged}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)
