"""Exceptions raised by the sync engine and chunk stores."""

from __future__ import annotations


class ChunkCorruptError(Exception):
    """A chunk document is malformed or its checksum does not match."""

    def __init__(self, chunk_id: str, reason: str) -> None:
        super().__init__(f"Chunk {chunk_id} is corrupt: {reason}")
        self.chunk_id = chunk_id
        self.reason = reason


class ChunkTooLargeError(ValueError):
    """A payload exceeds the configured maximum chunk size."""

    def __init__(self, chunk_id: str, size: int, limit: int) -> None:
        super().__init__(f"Chunk {chunk_id} is {size} bytes, exceeds maximum of {limit} bytes")
        self.chunk_id = chunk_id
        self.size = size
        self.limit = limit


class SyncInProgressError(RuntimeError):
    """An operation was attempted while a sync cycle is running."""


class EngineNotInitializedError(RuntimeError):
    """The engine was used before ``initialize()`` or after ``destroy()``."""
