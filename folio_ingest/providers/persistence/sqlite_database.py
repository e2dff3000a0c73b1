"""Process-wide SQLite connection shared by the document store and vector repository.

One ``aiosqlite`` connection is opened at startup and closed at shutdown.
The connection runs in autocommit mode (``isolation_level=None``) so that
every statement is its own transaction: one failed embedding insert can
never roll back its siblings.
"""

from __future__ import annotations

from pathlib import Path

import aiosqlite
import structlog

from folio_ingest.utils.errors import StorageError

logger = structlog.get_logger(logger_name=__name__)

_PRAGMAS = [
    "PRAGMA journal_mode=WAL;",
    "PRAGMA foreign_keys=ON;",
    "PRAGMA busy_timeout=5000;",
]


class SQLiteDatabase:
    """Owns the shared aiosqlite connection.

    Parameters
    ----------
    db_path:
        Filesystem path of the database, or ``":memory:"``.
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = str(db_path)
        self._conn: aiosqlite.Connection | None = None

    @property
    def path(self) -> str:
        return self._db_path

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    @property
    def connection(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise StorageError(
                message="Database connection is not open; call connect() first",
                provider_name="sqlite",
            )
        return self._conn

    async def connect(self) -> None:
        """Open the connection (idempotent) and apply pragmas."""
        if self._conn is not None:
            return
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        try:
            self._conn = await aiosqlite.connect(self._db_path, isolation_level=None)
            self._conn.row_factory = aiosqlite.Row
            for pragma in _PRAGMAS:
                await self._conn.execute(pragma)
        except aiosqlite.Error as exc:
            raise StorageError(
                message=f"Cannot open database at {self._db_path}: {exc}",
                provider_name="sqlite",
            ) from exc
        logger.info("database_connected", path=self._db_path)

    async def close(self) -> None:
        """Close the connection if open."""
        if self._conn is None:
            return
        await self._conn.close()
        self._conn = None
        logger.info("database_closed", path=self._db_path)
