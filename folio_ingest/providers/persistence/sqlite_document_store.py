"""SQLite-backed document record store.

Stands in for the portfolio application's relational ``documents`` table.
``tags`` and ``metadata`` are stored as JSON text; timestamps as ISO-8601.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import aiosqlite
import structlog

from folio_ingest.interfaces.document_store import IDocumentStore
from folio_ingest.models.document import Document, DocumentStatus
from folio_ingest.providers.persistence.sqlite_database import SQLiteDatabase
from folio_ingest.utils.errors import DocumentNotFoundError, StorageError

logger = structlog.get_logger(logger_name=__name__)

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS documents (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    filename      TEXT    NOT NULL,
    original_name TEXT    NOT NULL,
    content_type  TEXT    NOT NULL DEFAULT '',
    category      TEXT    NOT NULL DEFAULT 'general',
    size          INTEGER NOT NULL DEFAULT 0,
    status        TEXT    NOT NULL DEFAULT 'queued',
    content_text  TEXT,
    vector_id     INTEGER,
    tags          TEXT    NOT NULL DEFAULT '[]',
    ai_summary    TEXT,
    metadata      TEXT    NOT NULL DEFAULT '{}',
    uploaded_at   TEXT    NOT NULL,
    processed_at  TEXT
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_documents_status ON documents(status);",
    "CREATE INDEX IF NOT EXISTS idx_documents_category ON documents(category);",
]

_INSERT_SQL = """\
INSERT INTO documents (filename, original_name, content_type, category, size,
                       status, tags, metadata, uploaded_at)
VALUES (?, ?, ?, ?, ?, ?, ?, '{}', ?);
"""

_SELECT_SQL = "SELECT * FROM documents WHERE id = ?;"
_SELECT_BY_STATUS_SQL = (
    "SELECT * FROM documents WHERE status = ? ORDER BY uploaded_at, id LIMIT ?;"
)

# Columns a caller may change through update_document().
_UPDATABLE_COLUMNS = frozenset(
    {
        "filename",
        "original_name",
        "content_type",
        "category",
        "size",
        "status",
        "content_text",
        "vector_id",
        "tags",
        "ai_summary",
        "metadata",
        "processed_at",
    }
)
_JSON_COLUMNS = frozenset({"tags", "metadata"})


class SQLiteDocumentStore(IDocumentStore):
    """Document records in the shared SQLite database."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self._database = database

    async def initialize(self) -> None:
        """Create the documents table and indices if they don't exist."""
        db = self._database.connection
        await db.execute(_CREATE_TABLE_SQL)
        for idx_sql in _CREATE_INDICES_SQL:
            await db.execute(idx_sql)
        logger.info("document_store_initialized", path=self._database.path)

    # ------------------------------------------------------------------
    # IDocumentStore implementation
    # ------------------------------------------------------------------

    async def create_document(
        self,
        filename: str,
        original_name: str,
        content_type: str,
        category: str = "general",
        size: int = 0,
        tags: list[str] | None = None,
    ) -> Document:
        now = datetime.now(timezone.utc).isoformat()
        try:
            cursor = await self._database.connection.execute(
                _INSERT_SQL,
                (
                    filename,
                    original_name,
                    content_type,
                    category,
                    size,
                    DocumentStatus.QUEUED.value,
                    json.dumps(tags or []),
                    now,
                ),
            )
        except aiosqlite.Error as exc:
            raise StorageError(
                message=f"Cannot create document record: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        document_id = cursor.lastrowid
        logger.info(
            "document_created",
            document_id=document_id,
            original_name=original_name,
            content_type=content_type,
            size=size,
        )
        document = await self.get_document(document_id)
        if document is None:
            raise DocumentNotFoundError(document_id, provider_name=self.get_provider_name())
        return document

    async def get_document(self, document_id: int) -> Document | None:
        cursor = await self._database.connection.execute(_SELECT_SQL, (document_id,))
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_document(row)

    async def update_document(self, document_id: int, **fields: Any) -> Document:
        unknown = set(fields) - _UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update document columns: {sorted(unknown)}")

        if fields:
            columns = sorted(fields)
            assignments = ", ".join(f"{col} = ?" for col in columns)
            params = [self._to_column_value(col, fields[col]) for col in columns]
            try:
                cursor = await self._database.connection.execute(
                    f"UPDATE documents SET {assignments} WHERE id = ?;",  # noqa: S608
                    (*params, document_id),
                )
            except aiosqlite.Error as exc:
                raise StorageError(
                    message=f"Cannot update document {document_id}: {exc}",
                    provider_name=self.get_provider_name(),
                ) from exc
            if cursor.rowcount == 0:
                raise DocumentNotFoundError(document_id, provider_name=self.get_provider_name())

        document = await self.get_document(document_id)
        if document is None:
            raise DocumentNotFoundError(document_id, provider_name=self.get_provider_name())
        return document

    async def list_by_status(self, status: DocumentStatus, limit: int = 100) -> list[Document]:
        cursor = await self._database.connection.execute(
            _SELECT_BY_STATUS_SQL, (DocumentStatus(status).value, max(0, limit))
        )
        rows = await cursor.fetchall()
        return [self._row_to_document(row) for row in rows]

    async def delete_document(self, document_id: int) -> bool:
        cursor = await self._database.connection.execute(
            "DELETE FROM documents WHERE id = ?;", (document_id,)
        )
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("document_deleted", document_id=document_id)
        return deleted

    def get_provider_name(self) -> str:
        return "sqlite_documents"

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _to_column_value(column: str, value: Any) -> Any:
        if column in _JSON_COLUMNS:
            return json.dumps(value if value is not None else ([] if column == "tags" else {}))
        if isinstance(value, Enum):
            return value.value
        if isinstance(value, datetime):
            return value.isoformat()
        return value

    @staticmethod
    def _row_to_document(row: aiosqlite.Row) -> Document:
        data = dict(row)
        data["tags"] = json.loads(data["tags"] or "[]")
        data["metadata"] = json.loads(data["metadata"] or "{}")
        return Document(**data)
