"""Local chunk store contract."""

from __future__ import annotations

import asyncio
import inspect
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any, Protocol, runtime_checkable

from chunksync.sync.checksum import compute_checksum, encode_payload
from chunksync.sync.errors import ChunkTooLargeError
from chunksync.sync.protocol import ChunkData, ChunkMetadata, SyncState
from chunksync.utils.timeutils import now_ms


@runtime_checkable
class ChunkSource(Protocol):
    """The four operations the sync engine needs from the application.

    ``get_local_data`` raises ``KeyError`` for an unknown id.
    ``save_local_data`` receives the verified remote document; the store
    must adopt its metadata unchanged so both catalogs converge.
    """

    async def get_local_chunks(self) -> dict[str, ChunkMetadata]: ...

    async def get_local_data(self, chunk_id: str) -> Any: ...

    async def save_local_data(self, chunk_id: str, chunk: ChunkData) -> None: ...

    async def delete_local_data(self, chunk_id: str) -> None: ...


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class CallbackChunkSource:
    """Adapts four plain callables (sync or async) to :class:`ChunkSource`.

    Usage:
        source = CallbackChunkSource(
            get_chunks=app.catalog,
            get_data=app.read,
            save_data=app.write,
            delete_data=app.remove,
        )
        result = await engine.sync(source)
    """

    def __init__(
        self,
        get_chunks: Callable[[], dict[str, ChunkMetadata] | Awaitable[dict[str, ChunkMetadata]]],
        get_data: Callable[[str], Any],
        save_data: Callable[[str, ChunkData], Any],
        delete_data: Callable[[str], Any],
    ) -> None:
        self._get_chunks = get_chunks
        self._get_data = get_data
        self._save_data = save_data
        self._delete_data = delete_data

    async def get_local_chunks(self) -> dict[str, ChunkMetadata]:
        return dict(await _maybe_await(self._get_chunks()))

    async def get_local_data(self, chunk_id: str) -> Any:
        return await _maybe_await(self._get_data(chunk_id))

    async def save_local_data(self, chunk_id: str, chunk: ChunkData) -> None:
        await _maybe_await(self._save_data(chunk_id, chunk))

    async def delete_local_data(self, chunk_id: str) -> None:
        await _maybe_await(self._delete_data(chunk_id))


class LocalChunkStore(ABC):
    """
    Versioned chunk storage owned by the application.

    Implements :class:`ChunkSource` and adds versioned writes through
    :meth:`put_chunk` plus persistence of the engine's :class:`SyncState`.
    Payloads must be JSON-serializable.
    """

    def __init__(self) -> None:
        self._write_lock = asyncio.Lock()

    async def initialize(self) -> None:  # noqa: B027
        """Open underlying resources. No-op by default."""

    async def close(self) -> None:  # noqa: B027
        """Release underlying resources. No-op by default."""

    # ── Raw record access ──

    @abstractmethod
    async def get_chunk(self, chunk_id: str) -> ChunkData | None:
        """Return the stored chunk, or None if unknown."""
        ...

    @abstractmethod
    async def get_local_chunks(self) -> dict[str, ChunkMetadata]:
        """Return the metadata of every stored chunk keyed by id."""
        ...

    @abstractmethod
    async def _write(self, chunk: ChunkData) -> None:
        """Insert or replace a record exactly as given."""
        ...

    @abstractmethod
    async def _remove(self, chunk_id: str) -> bool:
        """Delete a record. Returns True if it existed."""
        ...

    # ── Sync state ──

    @abstractmethod
    async def load_sync_state(self) -> SyncState | None:
        """Return the last persisted engine state, or None."""
        ...

    @abstractmethod
    async def save_sync_state(self, state: SyncState) -> None:
        """Persist the engine state, replacing any previous one."""
        ...

    # ── ChunkSource ──

    async def get_local_data(self, chunk_id: str) -> Any:
        chunk = await self.get_chunk(chunk_id)
        if chunk is None:
            raise KeyError(chunk_id)
        return chunk.data

    async def save_local_data(self, chunk_id: str, chunk: ChunkData) -> None:
        if chunk.meta.id != chunk_id:
            raise ValueError(f"Chunk id mismatch: {chunk_id!r} != {chunk.meta.id!r}")
        async with self._write_lock:
            await self._write(chunk)

    async def delete_local_data(self, chunk_id: str) -> None:
        async with self._write_lock:
            await self._remove(chunk_id)

    # ── Versioned writes ──

    async def put_chunk(
        self,
        chunk_id: str,
        data: Any,
        data_type: str,
        device_id: str,
        *,
        max_size: int | None = None,
    ) -> ChunkMetadata:
        """Store a new version of a chunk written on this device.

        The version is one more than the stored one (1 for a new id), the
        checksum and size are computed from ``data``, ``created_at`` is
        kept from the first version and ``updated_at`` is now, always later
        than the stored version's.

        Raises:
            ChunkTooLargeError: If the encoded payload exceeds ``max_size``.
            TypeError: If ``data`` is not JSON-serializable.
        """
        if not chunk_id:
            raise ValueError("Chunk id must not be empty")
        if isinstance(data, bytes | bytearray | memoryview):
            raise TypeError(
                f"Chunk {chunk_id} payload must be JSON data, not {type(data).__name__}"
            )

        encoded = encode_payload(data)
        if max_size is not None and len(encoded) > max_size:
            raise ChunkTooLargeError(chunk_id, len(encoded), max_size)

        async with self._write_lock:
            existing = await self.get_chunk(chunk_id)
            now = now_ms()
            if existing is not None:
                now = max(now, existing.meta.updated_at + 1)
            meta = ChunkMetadata(
                id=chunk_id,
                version=existing.meta.version + 1 if existing else 1,
                checksum=compute_checksum(encoded),
                created_at=existing.meta.created_at if existing else now,
                updated_at=now,
                size=len(encoded),
                data_type=data_type,
                device_id=device_id,
            )
            await self._write(ChunkData(meta=meta, data=data))
        return meta

    async def remove_chunk(self, chunk_id: str) -> bool:
        """Delete a chunk. Returns True if it existed."""
        async with self._write_lock:
            return await self._remove(chunk_id)
