"""
SQLite record store.

Durable local store built on aiosqlite. One ``notes`` table keyed by id;
the sync state is persisted by symbolic name and timestamps as epoch
milliseconds, so new states can be added without a migration.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import aiosqlite

from ..exceptions import LocalStoreError
from ..records import Record, SyncState
from .base import RecordStore

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

# Column order matches Record.to_row / Record.from_row
NOTE_COLUMNS = (
    "id",
    "payload",
    "created_at",
    "updated_at",
    "sync_state",
    "server_version",
    "deleted",
)

_SELECT = f"SELECT {', '.join(NOTE_COLUMNS)} FROM notes"
_UPSERT = (
    f"INSERT OR REPLACE INTO notes ({', '.join(NOTE_COLUMNS)}) "
    f"VALUES ({', '.join('?' for _ in NOTE_COLUMNS)})"
)


@dataclass
class SQLiteStoreConfig:
    """Configuration for the SQLite record store."""

    db_path: str | Path = ":memory:"


class SQLiteRecordStore(RecordStore):
    """Record store persisted in a single SQLite file."""

    def __init__(self, config: SQLiteStoreConfig | None = None):
        super().__init__()
        self.config = config or SQLiteStoreConfig()
        self.conn: aiosqlite.Connection | None = None

    @classmethod
    async def create(cls, config: SQLiteStoreConfig | None = None) -> SQLiteRecordStore:
        """Create and initialize a SQLite store."""
        store = cls(config)
        await store.initialize()
        return store

    async def _open(self) -> None:
        db_path = self.config.db_path
        if str(db_path) != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        try:
            self.conn = await aiosqlite.connect(str(db_path))
            await self.conn.execute("""
                CREATE TABLE IF NOT EXISTS notes (
                    id TEXT NOT NULL PRIMARY KEY,
                    payload TEXT NOT NULL,
                    created_at INTEGER NOT NULL,
                    updated_at INTEGER NOT NULL,
                    sync_state TEXT NOT NULL,
                    server_version INTEGER NOT NULL DEFAULT 0,
                    deleted INTEGER NOT NULL DEFAULT 0
                )
            """)
            await self.conn.execute("""
                CREATE TABLE IF NOT EXISTS schema_meta (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
            """)
            await self.conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_notes_sync_state ON notes(sync_state)"
            )
            await self.conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_notes_updated ON notes(updated_at DESC)"
            )
            if await self._get_schema_version() < SCHEMA_VERSION:
                await self._set_schema_version(SCHEMA_VERSION)
            await self.conn.commit()
        except aiosqlite.Error as e:
            await self._close()
            raise LocalStoreError("initialize", cause=e) from e

        logger.info(f"SQLite record store ready: {db_path}")

    async def _close(self) -> None:
        if self.conn:
            await self.conn.close()
            self.conn = None

    async def _get_schema_version(self) -> int:
        """Get the current schema version (0 for an empty database)."""
        async with self._connection().execute(
            "SELECT value FROM schema_meta WHERE key = 'version'"
        ) as cursor:
            result = await cursor.fetchone()
            return int(result[0]) if result else 0

    async def _set_schema_version(self, version: int) -> None:
        await self._connection().execute(
            """
            INSERT INTO schema_meta (key, value) VALUES ('version', ?)
            ON CONFLICT (key) DO UPDATE SET value = excluded.value
            """,
            (str(version),),
        )

    def _connection(self) -> aiosqlite.Connection:
        if self.conn is None:
            raise LocalStoreError("connect", cause=RuntimeError("store is not initialized"))
        return self.conn

    async def _query(self, operation: str, sql: str, params: tuple[Any, ...] = ()) -> list[Any]:
        try:
            async with self._connection().execute(sql, params) as cursor:
                return list(await cursor.fetchall())
        except aiosqlite.Error as e:
            raise LocalStoreError(operation, cause=e) from e

    async def _execute(self, operation: str, sql: str, params: tuple[Any, ...] = ()) -> int:
        try:
            cursor = await self._connection().execute(sql, params)
            return cursor.rowcount
        except aiosqlite.Error as e:
            raise LocalStoreError(operation, cause=e) from e

    async def _commit(self) -> None:
        try:
            await self._connection().commit()
        except aiosqlite.Error as e:
            raise LocalStoreError("commit", cause=e) from e

    async def _rollback(self) -> None:
        if self.conn is None:
            return
        try:
            await self.conn.rollback()
        except aiosqlite.Error as e:
            logger.warning(f"Rollback failed: {e}")

    # =========================================================================
    # Primitives
    # =========================================================================

    async def _fetch(self, record_id: str) -> Record | None:
        rows = await self._query("get_by_id", f"{_SELECT} WHERE id = ?", (record_id,))
        return Record.from_row(rows[0]) if rows else None

    async def _fetch_all(self) -> list[Record]:
        rows = await self._query("observe_all", f"{_SELECT} ORDER BY updated_at DESC")
        return [Record.from_row(row) for row in rows]

    async def _fetch_pending(self) -> list[Record]:
        rows = await self._query(
            "pending_records",
            f"{_SELECT} WHERE sync_state != ? ORDER BY updated_at ASC",
            (SyncState.SYNCED.value,),
        )
        return [Record.from_row(row) for row in rows]

    async def _upsert(self, records: list[Record]) -> None:
        try:
            await self._connection().executemany(_UPSERT, [r.to_row() for r in records])
        except aiosqlite.Error as e:
            first_id = records[0].id if records else None
            raise LocalStoreError("put", record_id=first_id, cause=e) from e

    async def _remove(self, record_id: str) -> bool:
        deleted = await self._execute(
            "delete_by_id", "DELETE FROM notes WHERE id = ?", (record_id,)
        )
        return deleted > 0

    async def _set_sync_state(self, record_id: str, state: SyncState) -> bool:
        changed = await self._execute(
            "update_sync_state",
            "UPDATE notes SET sync_state = ? WHERE id = ?",
            (state.value, record_id),
        )
        return changed > 0

    async def _remove_all(self) -> int:
        return await self._execute("clear_all", "DELETE FROM notes")
