"""SQLite chunk store."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import aiosqlite

from chunksync.storage.base import LocalChunkStore
from chunksync.sync.protocol import ChunkData, ChunkMetadata, SyncState

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

SCHEMA = """
CREATE TABLE IF NOT EXISTS chunks (
    id TEXT PRIMARY KEY,
    version INTEGER NOT NULL,
    checksum TEXT NOT NULL,
    created_at INTEGER NOT NULL,
    updated_at INTEGER NOT NULL,
    size INTEGER NOT NULL,
    data_type TEXT NOT NULL,
    device_id TEXT NOT NULL,
    data TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS sync_state (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    state TEXT NOT NULL
);
"""


def _row_to_meta(row: aiosqlite.Row) -> ChunkMetadata:
    return ChunkMetadata(
        id=row["id"],
        version=row["version"],
        checksum=row["checksum"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        size=row["size"],
        data_type=row["data_type"],
        device_id=row["device_id"],
    )


class SQLiteChunkStore(LocalChunkStore):
    """Chunks persisted in a single SQLite file.

    Payloads are stored as JSON text next to their metadata columns.
    """

    def __init__(self, db_path: str | Path) -> None:
        super().__init__()
        self._db_path = Path(db_path).resolve()
        self._conn: aiosqlite.Connection | None = None

    @property
    def db_path(self) -> Path:
        return self._db_path

    async def initialize(self) -> None:
        """Open the connection and create the schema."""
        if self._conn is not None:
            return
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = await aiosqlite.connect(self._db_path)
        self._conn.row_factory = aiosqlite.Row

        await self._conn.execute("PRAGMA journal_mode=WAL")
        await self._conn.execute("PRAGMA synchronous=NORMAL")
        await self._conn.execute(
            "CREATE TABLE IF NOT EXISTS schema_version (version INTEGER PRIMARY KEY)"
        )
        await self._conn.executescript(SCHEMA)

        async with self._conn.execute("SELECT version FROM schema_version") as cursor:
            row = await cursor.fetchone()
        if row is None:
            await self._conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,)
            )
        await self._conn.commit()
        logger.debug("Opened chunk store %s", self._db_path)

    async def close(self) -> None:
        if self._conn:
            await self._conn.close()
            self._conn = None

    async def __aenter__(self) -> SQLiteChunkStore:
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def _ensure_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("Database not initialized. Call initialize() first.")
        return self._conn

    async def get_chunk(self, chunk_id: str) -> ChunkData | None:
        conn = self._ensure_conn()
        async with conn.execute("SELECT * FROM chunks WHERE id = ?", (chunk_id,)) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        return ChunkData(meta=_row_to_meta(row), data=json.loads(row["data"]))

    async def get_local_chunks(self) -> dict[str, ChunkMetadata]:
        conn = self._ensure_conn()
        async with conn.execute(
            """SELECT id, version, checksum, created_at, updated_at, size, data_type, device_id
               FROM chunks ORDER BY id"""
        ) as cursor:
            rows = await cursor.fetchall()
        return {row["id"]: _row_to_meta(row) for row in rows}

    async def _write(self, chunk: ChunkData) -> None:
        conn = self._ensure_conn()
        meta = chunk.meta
        await conn.execute(
            """INSERT OR REPLACE INTO chunks
               (id, version, checksum, created_at, updated_at, size, data_type, device_id, data)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                meta.id,
                meta.version,
                meta.checksum,
                meta.created_at,
                meta.updated_at,
                meta.size,
                meta.data_type,
                meta.device_id,
                json.dumps(chunk.data, ensure_ascii=False),
            ),
        )
        await conn.commit()

    async def _remove(self, chunk_id: str) -> bool:
        conn = self._ensure_conn()
        cursor = await conn.execute("DELETE FROM chunks WHERE id = ?", (chunk_id,))
        await conn.commit()
        return cursor.rowcount > 0

    async def load_sync_state(self) -> SyncState | None:
        conn = self._ensure_conn()
        async with conn.execute("SELECT state FROM sync_state WHERE id = 1") as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        try:
            return SyncState.from_dict(json.loads(row["state"]))
        except (ValueError, TypeError):
            logger.warning("Discarding unreadable sync state in %s", self._db_path, exc_info=True)
            return None

    async def save_sync_state(self, state: SyncState) -> None:
        conn = self._ensure_conn()
        await conn.execute(
            "INSERT OR REPLACE INTO sync_state (id, state) VALUES (1, ?)",
            (json.dumps(state.to_dict()),),
        )
        await conn.commit()
