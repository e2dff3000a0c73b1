"""SQLite-backed embedding record repository.

Vectors and metadata are stored as JSON text in ``vector_embeddings``.
Inserts run one statement per record on an autocommit connection, so a
failing record is reported without touching the others.
"""

from __future__ import annotations

import json
from datetime import datetime

import aiosqlite
import structlog

from folio_ingest.interfaces.vector_repository import IVectorRepository
from folio_ingest.models.ingestion import BatchStoreResult, EmbeddingRecord, StoreFailure
from folio_ingest.providers.persistence.sqlite_database import SQLiteDatabase
from folio_ingest.utils.errors import StorageError

logger = structlog.get_logger(logger_name=__name__)

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS vector_embeddings (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    document_id  INTEGER NOT NULL,
    embedding    TEXT    NOT NULL,
    text_content TEXT    NOT NULL,
    category     TEXT    NOT NULL DEFAULT 'general',
    metadata     TEXT    NOT NULL DEFAULT '{}',
    created_at   TEXT    NOT NULL
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_vectors_document ON vector_embeddings(document_id);",
    "CREATE INDEX IF NOT EXISTS idx_vectors_category ON vector_embeddings(category);",
]

_INSERT_SQL = """\
INSERT INTO vector_embeddings (document_id, embedding, text_content, category, metadata, created_at)
VALUES (?, ?, ?, ?, ?, ?);
"""


class SQLiteVectorRepository(IVectorRepository):
    """Embedding records in the shared SQLite database."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self._database = database

    async def initialize(self) -> None:
        """Create the vector_embeddings table and indices if they don't exist."""
        db = self._database.connection
        await db.execute(_CREATE_TABLE_SQL)
        for idx_sql in _CREATE_INDICES_SQL:
            await db.execute(idx_sql)
        logger.info("vector_repository_initialized", path=self._database.path)

    # ------------------------------------------------------------------
    # IVectorRepository implementation
    # ------------------------------------------------------------------

    async def store_one(self, record: EmbeddingRecord) -> int:
        if not record.embedding:
            raise StorageError(
                message=f"Refusing to store an empty vector for document {record.document_id}",
                provider_name=self.get_provider_name(),
            )
        try:
            cursor = await self._database.connection.execute(
                _INSERT_SQL,
                (
                    record.document_id,
                    json.dumps(record.embedding),
                    record.text_content,
                    record.category,
                    json.dumps(record.metadata),
                    record.created_at.isoformat(),
                ),
            )
        except (aiosqlite.Error, TypeError, ValueError) as exc:
            raise StorageError(
                message=f"Insert failed for document {record.document_id}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        return int(cursor.lastrowid)

    async def store_many(self, records: list[EmbeddingRecord]) -> BatchStoreResult:
        ids: list[int] = []
        failures: list[StoreFailure] = []
        for position, record in enumerate(records):
            try:
                ids.append(await self.store_one(record))
            except StorageError as exc:
                logger.warning(
                    "embedding_record_store_failed",
                    document_id=record.document_id,
                    position=position,
                    error=str(exc),
                )
                failures.append(StoreFailure(position=position, error=str(exc)))

        logger.debug(
            "embedding_records_stored",
            stored=len(ids),
            failed=len(failures),
        )
        return BatchStoreResult(ids=ids, failures=failures)

    async def get_by_document(self, document_id: int) -> list[EmbeddingRecord]:
        cursor = await self._database.connection.execute(
            "SELECT * FROM vector_embeddings WHERE document_id = ? ORDER BY id;",
            (document_id,),
        )
        rows = await cursor.fetchall()
        return [
            EmbeddingRecord(
                id=row["id"],
                document_id=row["document_id"],
                embedding=json.loads(row["embedding"]),
                text_content=row["text_content"],
                category=row["category"],
                metadata=json.loads(row["metadata"] or "{}"),
                created_at=datetime.fromisoformat(row["created_at"]),
            )
            for row in rows
        ]

    async def delete_by_document(self, document_id: int) -> int:
        try:
            cursor = await self._database.connection.execute(
                "DELETE FROM vector_embeddings WHERE document_id = ?;",
                (document_id,),
            )
        except aiosqlite.Error as exc:
            raise StorageError(
                message=f"Cannot delete vectors of document {document_id}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        removed = max(cursor.rowcount, 0)
        if removed:
            logger.info("document_vectors_deleted", document_id=document_id, removed=removed)
        return removed

    async def count(self) -> int:
        cursor = await self._database.connection.execute(
            "SELECT COUNT(*) FROM vector_embeddings;"
        )
        row = await cursor.fetchone()
        return int(row[0]) if row else 0

    def get_provider_name(self) -> str:
        return "sqlite_vectors"
