"""In-memory chunk store for tests and ephemeral use."""

from __future__ import annotations

import copy

from chunksync.storage.base import LocalChunkStore
from chunksync.sync.protocol import ChunkData, ChunkMetadata, SyncState


class InMemoryChunkStore(LocalChunkStore):
    """Chunks kept in a dict. Payloads are deep-copied on the way in and out."""

    def __init__(self) -> None:
        super().__init__()
        self._chunks: dict[str, ChunkData] = {}
        self._state: SyncState | None = None

    def __len__(self) -> int:
        return len(self._chunks)

    async def get_chunk(self, chunk_id: str) -> ChunkData | None:
        chunk = self._chunks.get(chunk_id)
        if chunk is None:
            return None
        return ChunkData(meta=chunk.meta, data=copy.deepcopy(chunk.data))

    async def get_local_chunks(self) -> dict[str, ChunkMetadata]:
        return {chunk_id: chunk.meta for chunk_id, chunk in self._chunks.items()}

    async def _write(self, chunk: ChunkData) -> None:
        self._chunks[chunk.meta.id] = ChunkData(meta=chunk.meta, data=copy.deepcopy(chunk.data))

    async def _remove(self, chunk_id: str) -> bool:
        return self._chunks.pop(chunk_id, None) is not None

    async def load_sync_state(self) -> SyncState | None:
        return self._state

    async def save_sync_state(self, state: SyncState) -> None:
        self._state = state
