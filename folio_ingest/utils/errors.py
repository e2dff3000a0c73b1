"""Custom exception hierarchy for folio-ingest.

All application exceptions inherit from :class:`FolioIngestError`, which
carries an optional ``provider_name`` so log lines can say which backend
(e.g. "openai_embedding", "redis", "sqlite_vectors") caused the failure.

    FolioIngestError  (base)
    +-- ExtractionError               (reading text out of an uploaded file)
    |   +-- UnsupportedFormatError    (no extractor registered for the type)
    |   +-- NoContentExtractedError   (file parsed but holds no text)
    +-- ChunkingConfigurationError    (invalid chunk size / overlap)
    +-- EmbeddingError                (one embedding call failed or timed out)
    +-- StorageError                  (one vector record could not be written)
    +-- QueueUnavailableError         (job broker unreachable)
    +-- DocumentNotFoundError         (no document record for the id)
    +-- InvalidStatusTransitionError  (status write rejected by the controller)
    +-- ConfigurationError            (startup / missing config)
    +-- UploadRejectedError           (file fails intake checks)

The ingestion pipeline is the single place that interprets these: extraction
and chunking errors fail the job for good, embedding and storage errors are
counted per item, everything else fails the attempt and lets the queue retry.
"""


class FolioIngestError(Exception):
    """Base exception for all folio-ingest errors.

    The ``__str__`` method prefixes the provider name in brackets for
    structured log output, e.g. ``[redis] Connection refused``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------

class ExtractionError(FolioIngestError):
    """Raised when text cannot be read out of an uploaded file."""

    def __init__(
        self,
        message: str = "Text extraction failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class UnsupportedFormatError(ExtractionError):
    """Raised when no extractor is registered for a declared content type."""

    def __init__(
        self,
        content_type: str,
        provider_name: str | None = None,
    ) -> None:
        self._content_type = content_type
        super().__init__(
            message=f"Unsupported content type: {content_type}",
            provider_name=provider_name,
        )

    @property
    def content_type(self) -> str:
        return self._content_type


class NoContentExtractedError(ExtractionError):
    """Raised when a file parses cleanly but yields only whitespace."""

    def __init__(
        self,
        message: str = "No text content could be extracted",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Chunking / embedding / storage
# ---------------------------------------------------------------------------

class ChunkingConfigurationError(FolioIngestError):
    """Raised when chunk options cannot produce a finite chunk sequence."""

    def __init__(
        self,
        message: str = "Invalid chunking configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmbeddingError(FolioIngestError):
    """Raised when a single embedding call fails, times out, or returns nothing."""

    def __init__(
        self,
        message: str = "Embedding generation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class StorageError(FolioIngestError):
    """Raised when an embedding record cannot be persisted."""

    def __init__(
        self,
        message: str = "Embedding record storage failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Queue / documents / status
# ---------------------------------------------------------------------------

class QueueUnavailableError(FolioIngestError):
    """Raised when the job broker cannot be reached."""

    def __init__(
        self,
        message: str = "Job queue is unavailable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class DocumentNotFoundError(FolioIngestError):
    """Raised when a document id has no record in the document store."""

    def __init__(
        self,
        document_id: int,
        provider_name: str | None = None,
    ) -> None:
        self._document_id = document_id
        super().__init__(
            message=f"Document {document_id} not found",
            provider_name=provider_name,
        )

    @property
    def document_id(self) -> int:
        return self._document_id


class InvalidStatusTransitionError(FolioIngestError):
    """Raised when a status write does not follow the document lifecycle."""

    def __init__(
        self,
        document_id: int,
        current: str,
        target: str,
    ) -> None:
        self._document_id = document_id
        self._current = current
        self._target = target
        super().__init__(
            message=(
                f"Document {document_id}: cannot move from '{current}' to '{target}'"
            ),
            provider_name="status_controller",
        )

    @property
    def document_id(self) -> int:
        return self._document_id

    @property
    def current(self) -> str:
        return self._current

    @property
    def target(self) -> str:
        return self._target


class ConfigurationError(FolioIngestError):
    """Raised when required configuration is missing or invalid."""

    def __init__(
        self,
        message: str = "Configuration error",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class UploadRejectedError(FolioIngestError):
    """Raised when a submitted file fails intake checks (extension, size)."""

    def __init__(
        self,
        message: str = "Upload rejected",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
