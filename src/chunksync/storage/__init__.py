"""Local chunk stores."""

from chunksync.storage.base import CallbackChunkSource, ChunkSource, LocalChunkStore
from chunksync.storage.memory_store import InMemoryChunkStore
from chunksync.storage.sqlite_store import SQLiteChunkStore

__all__ = [
    "CallbackChunkSource",
    "ChunkSource",
    "InMemoryChunkStore",
    "LocalChunkStore",
    "SQLiteChunkStore",
]
